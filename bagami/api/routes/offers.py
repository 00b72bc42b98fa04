"""
Endpoint de respuesta a ofertas de precio.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from bagami.core.database import get_db
from bagami.core.security import get_active_user
from bagami.schemas.conversation import OfferRespond
from bagami.services import conversation_service

router = APIRouter()


@router.post("/respond")
async def respond(
    data: OfferRespond,
    user=Depends(get_active_user),
    db: AsyncSession = Depends(get_db)
):
    offer, system_message = await conversation_service.respond_to_offer(
        db, data.message_id, user, data.action
    )
    return {
        "success": True,
        "action": data.action,
        "message": conversation_service.serialize_message(offer),
        "systemMessage": conversation_service.serialize_message(system_message),
    }
