"""
Servicio de Conversaciones - Chats por publicación, mensajes y ofertas.
"""

from datetime import datetime
from typing import Optional, Tuple
from sqlalchemy import select, func, or_, and_, update
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from bagami.core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from bagami.models import Conversation, Delivery, Message, User
from bagami.services import identity_service, review_service
from bagami.services.message_payloads import (
    SETTLEMENT_MESSAGES,
    TYPED_MESSAGES,
    dump_payload,
    load_payload,
    offer_payload,
    offer_response_payload,
    personalized_payload,
)

logger = structlog.get_logger()


async def get_conversation(
    db: AsyncSession,
    conversation_id: str,
    user_id: str,
    lock: bool = False
) -> Conversation:
    """Carga la conversación y verifica que el usuario participe en ella."""
    query = select(Conversation).where(Conversation.id == conversation_id)
    if lock:
        query = query.with_for_update()
    result = await db.execute(query)
    conversation = result.scalar_one_or_none()

    if not conversation:
        raise NotFoundError("Conversación no encontrada")
    if not conversation.has_participant(user_id):
        raise ForbiddenError("No participas en esta conversación")
    return conversation


async def get_open_delivery(db: AsyncSession, delivery_id: str) -> Delivery:
    """La publicación de la conversación, que no debe estar eliminada."""
    delivery = await db.get(Delivery, delivery_id)
    if not delivery or delivery.is_deleted:
        raise ForbiddenError("La publicación de esta conversación fue eliminada", code="DELIVERY_DELETED")
    return delivery


async def add_message(
    db: AsyncSession,
    conversation: Conversation,
    sender_id: str,
    content: str,
    message_type: str = "text"
) -> Message:
    now = datetime.utcnow()
    message = Message(
        conversation_id=conversation.id,
        sender_id=sender_id,
        content=content,
        message_type=message_type,
        is_read=False,
        created_at=now,
    )
    db.add(message)
    conversation.last_message_at = now
    await db.flush()
    return message


async def get_or_create_conversation(
    db: AsyncSession,
    current_user: User,
    delivery_id: str,
    other_user_id: str
) -> Tuple[Conversation, bool]:
    """
    Retorna (conversación, creada). El par de participantes se busca en
    ambos órdenes.
    """
    delivery = await db.get(Delivery, delivery_id)
    if not delivery or delivery.is_deleted:
        raise NotFoundError("Publicación no encontrada")

    other_user = await db.get(User, other_user_id)
    if not other_user:
        raise NotFoundError("Usuario no encontrado")
    if other_user.id == current_user.id:
        raise ValidationError("No puedes iniciar una conversación contigo mismo")

    result = await db.execute(
        select(Conversation).where(
            Conversation.delivery_id == delivery_id,
            or_(
                and_(Conversation.participant1_id == current_user.id,
                     Conversation.participant2_id == other_user_id),
                and_(Conversation.participant1_id == other_user_id,
                     Conversation.participant2_id == current_user.id),
            ),
        )
    )
    existing = result.scalars().first()
    if existing:
        return existing, False

    conversation = Conversation(
        delivery_id=delivery_id,
        participant1_id=current_user.id,
        participant2_id=other_user_id,
        is_active=True,
        extra_data={},
    )
    db.add(conversation)
    await db.flush()

    if delivery.sender_id != current_user.id:
        poster = await db.get(User, delivery.sender_id)
        content = dump_payload(personalized_payload(delivery, poster, current_user))
    else:
        content = f"Started conversation about delivery: {delivery.title}"
    await add_message(db, conversation, current_user.id, content, "system")

    logger.info("conversation_created", conversation_id=conversation.id, delivery_id=delivery_id)
    return conversation, True


async def list_conversations(db: AsyncSession, user_id: str) -> list:
    result = await db.execute(
        select(Conversation)
        .where(or_(Conversation.participant1_id == user_id, Conversation.participant2_id == user_id))
        .order_by(Conversation.last_message_at.desc())
    )
    conversations = result.scalars().all()

    items = []
    for conversation in conversations:
        delivery = await db.get(Delivery, conversation.delivery_id)
        other = await db.get(User, conversation.other_participant_id(user_id))

        last = await db.execute(
            select(Message)
            .where(Message.conversation_id == conversation.id)
            .order_by(Message.created_at.desc())
            .limit(1)
        )
        last_message = last.scalar_one_or_none()

        unread = await db.execute(
            select(func.count(Message.id)).where(
                Message.conversation_id == conversation.id,
                Message.sender_id != user_id,
                Message.is_read.is_(False),
            )
        )
        confirmed = await db.execute(
            select(func.count(Message.id)).where(
                Message.conversation_id == conversation.id,
                Message.message_type == "deliveryConfirmation",
            )
        )

        item = serialize_conversation(conversation)
        item.update({
            "delivery": _delivery_summary(delivery),
            "otherParticipant": _user_summary(other),
            "lastMessage": serialize_message(last_message) if last_message else None,
            "unreadCount": unread.scalar_one(),
            "hasDeliveryConfirmation": confirmed.scalar_one() > 0,
        })
        items.append(item)
    return items


async def get_messages(db: AsyncSession, conversation_id: str, user_id: str) -> dict:
    """
    Mensajes de la conversación. Marca como leídos los del otro participante.
    """
    conversation = await get_conversation(db, conversation_id, user_id)

    await db.execute(
        update(Message)
        .where(
            Message.conversation_id == conversation.id,
            Message.sender_id != user_id,
            Message.is_read.is_(False),
        )
        .values(is_read=True, read_at=datetime.utcnow())
        .execution_options(synchronize_session="fetch")
    )

    result = await db.execute(
        select(Message)
        .where(Message.conversation_id == conversation.id)
        .order_by(Message.created_at.asc())
    )
    messages = result.scalars().all()

    other_id = conversation.other_participant_id(user_id)
    other = await db.get(User, other_id)
    average, count = await review_service.get_user_rating(db, other_id)
    delivery = await db.get(Delivery, conversation.delivery_id)

    other_summary = _user_summary(other)
    other_summary.update({
        "averageRating": average,
        "reviewCount": count,
        "isVerified": await identity_service.is_user_verified(db, other_id),
    })

    data = serialize_conversation(conversation)
    data.update({
        "delivery": _delivery_summary(delivery),
        "otherParticipant": other_summary,
    })
    return {
        "conversation": data,
        "messages": [serialize_message(m) for m in messages],
    }


async def post_message(
    db: AsyncSession,
    conversation_id: str,
    user: User,
    content: str,
    message_type: str = "text"
) -> Message:
    if message_type in SETTLEMENT_MESSAGES:
        raise ForbiddenError(
            f"Los mensajes {message_type} solo se generan al pagar o confirmar la entrega",
            code="RESERVED_MESSAGE_TYPE",
        )

    conversation = await get_conversation(db, conversation_id, user.id)
    await get_open_delivery(db, conversation.delivery_id)

    if message_type in TYPED_MESSAGES:
        payload = load_payload(content)
        if payload is None:
            raise ValidationError(f"El contenido de un mensaje {message_type} debe ser un objeto JSON")

    return await add_message(db, conversation, user.id, content, message_type)


# ===========================================
# OFERTAS
# ===========================================

async def send_offer(
    db: AsyncSession,
    conversation_id: str,
    user: User,
    price: float,
    currency: str = "XOF",
    message: Optional[str] = None
) -> Message:
    conversation = await get_conversation(db, conversation_id, user.id)
    delivery = await get_open_delivery(db, conversation.delivery_id)

    content = dump_payload(offer_payload(delivery, price, currency, message))
    offer = await add_message(db, conversation, user.id, content, "offer")
    logger.info("offer_sent", conversation_id=conversation.id, price=price)
    return offer


async def respond_to_offer(
    db: AsyncSession,
    message_id: str,
    user: User,
    action: str
) -> Tuple[Message, Message]:
    """
    Acepta o rechaza una oferta. Solo responde el participante que no la envió.
    Retorna (oferta actualizada, mensaje de sistema).
    """
    if action not in ("accept", "reject"):
        raise ValidationError("action debe ser accept o reject")

    offer = await db.get(Message, message_id)
    if not offer or offer.message_type != "offer":
        raise NotFoundError("Oferta no encontrada")

    conversation = await get_conversation(db, offer.conversation_id, user.id)
    if offer.sender_id == user.id:
        raise ForbiddenError("No puedes responder a tu propia oferta")

    payload = load_payload(offer.content)
    if payload is None:
        raise ValidationError("Datos de la oferta inválidos")
    if payload.get("status") in ("accepted", "rejected"):
        raise ConflictError("La oferta ya fue respondida")

    accepted = action == "accept"
    payload["status"] = "accepted" if accepted else "rejected"
    payload["respondedAt"] = datetime.utcnow().isoformat()
    payload["respondedBy"] = user.id
    offer.content = dump_payload(payload)

    system_message = await add_message(
        db, conversation, user.id, dump_payload(offer_response_payload(payload, accepted)), "system"
    )
    logger.info("offer_answered", message_id=offer.id, action=action)
    return offer, system_message


async def get_agreed_price(db: AsyncSession, conversation: Conversation, delivery: Delivery):
    """Precio de la última oferta aceptada o, si no hay, el de la publicación."""
    result = await db.execute(
        select(Message)
        .where(Message.conversation_id == conversation.id, Message.message_type == "offer")
        .order_by(Message.created_at.desc())
    )
    for offer in result.scalars().all():
        payload = load_payload(offer.content) or {}
        if payload.get("status") == "accepted" and payload.get("price") is not None:
            return payload["price"]
    return delivery.price


# ===========================================
# SERIALIZACIÓN
# ===========================================

def serialize_message(message: Message) -> dict:
    return {
        "id": message.id,
        "conversationId": message.conversation_id,
        "senderId": message.sender_id,
        "content": message.content,
        "messageType": message.message_type,
        "isRead": message.is_read,
        "readAt": message.read_at.isoformat() if message.read_at else None,
        "createdAt": message.created_at.isoformat() if message.created_at else None,
    }


def serialize_conversation(conversation: Conversation) -> dict:
    return {
        "id": conversation.id,
        "deliveryId": conversation.delivery_id,
        "participant1Id": conversation.participant1_id,
        "participant2Id": conversation.participant2_id,
        "isActive": conversation.is_active,
        "lastMessageAt": conversation.last_message_at.isoformat() if conversation.last_message_at else None,
    }


def _user_summary(user: Optional[User]) -> Optional[dict]:
    if not user:
        return None
    return {"id": user.id, "name": user.name, "email": user.email, "phone": user.phone}


def _delivery_summary(delivery: Optional[Delivery]) -> Optional[dict]:
    if not delivery:
        return None
    return {
        "id": delivery.id,
        "type": delivery.type,
        "title": delivery.title,
        "price": delivery.price,
        "currency": delivery.currency,
        "status": delivery.status,
        "senderId": delivery.sender_id,
        "fromCity": delivery.from_city,
        "toCity": delivery.to_city,
        "isDeleted": delivery.is_deleted,
    }
