"""
Endpoints de conversaciones, mensajes, pagos y confirmación de entrega.
"""

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from bagami.core.database import get_db
from bagami.core.security import get_active_user, get_current_user
from bagami.schemas.conversation import (
    ConfirmDeliveryRequest,
    ConversationCreate,
    MessageCreate,
    OfferCreate,
    PaymentRequest,
)
from bagami.services import conversation_service, settlement_service

router = APIRouter()


@router.get("")
async def list_conversations(user=Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return {"conversations": await conversation_service.list_conversations(db, user.id)}


@router.post("")
async def create_conversation(
    data: ConversationCreate,
    user=Depends(get_active_user),
    db: AsyncSession = Depends(get_db)
):
    conversation, created = await conversation_service.get_or_create_conversation(
        db, user, data.delivery_id, data.other_user_id
    )
    body = {
        "success": True,
        "created": created,
        "conversation": conversation_service.serialize_conversation(conversation),
    }
    return JSONResponse(body, status_code=status.HTTP_201_CREATED if created else status.HTTP_200_OK)


@router.get("/{conversation_id}")
@router.get("/{conversation_id}/messages")
async def get_messages(
    conversation_id: str,
    user=Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return {"success": True, **await conversation_service.get_messages(db, conversation_id, user.id)}


@router.post("/{conversation_id}/messages", status_code=status.HTTP_201_CREATED)
async def post_message(
    conversation_id: str,
    data: MessageCreate,
    user=Depends(get_active_user),
    db: AsyncSession = Depends(get_db)
):
    message = await conversation_service.post_message(
        db, conversation_id, user, data.content, data.message_type
    )
    return {"success": True, "message": conversation_service.serialize_message(message)}


@router.post("/{conversation_id}/offers", status_code=status.HTTP_201_CREATED)
async def send_offer(
    conversation_id: str,
    data: OfferCreate,
    user=Depends(get_active_user),
    db: AsyncSession = Depends(get_db)
):
    message = await conversation_service.send_offer(
        db, conversation_id, user, data.price, data.currency, data.message
    )
    return {"success": True, "message": conversation_service.serialize_message(message)}


@router.post("/{conversation_id}/payment")
async def pay(
    conversation_id: str,
    data: PaymentRequest,
    user=Depends(get_active_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Liquida el pago de la entrega. Con saldo insuficiente y sin pago directo
    responde 400 INSUFFICIENT_BALANCE con el faltante.
    """
    return await settlement_service.settle_payment(
        db, conversation_id, user,
        direct_payment_amount=data.direct_payment_amount,
        direct_payment_method=data.direct_payment_method,
    )


@router.post("/{conversation_id}/confirm-delivery")
async def confirm_delivery(
    conversation_id: str,
    data: ConfirmDeliveryRequest,
    user=Depends(get_active_user),
    db: AsyncSession = Depends(get_db)
):
    return await settlement_service.confirm_delivery(db, conversation_id, user, data.code)
