"""
Guardia de eliminación de publicaciones.

Se revisan juntas todas las conversaciones del usuario sobre la publicación:
si hay algún mensaje payment y ningún deliveryConfirmation, no se puede eliminar.
Si no se puede verificar, se bloquea.
"""

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from bagami.models import Conversation, Message

logger = structlog.get_logger()

PAYMENT_PENDING = "paymentPending"
VERIFICATION_ERROR = "verificationError"


async def _load_conversation_message_types(db: AsyncSession, delivery_id: str, user_id: str) -> dict:
    """{conversation_id: set(message_type)} de las conversaciones del usuario sobre la publicación."""
    result = await db.execute(
        select(Conversation.id).where(
            Conversation.delivery_id == delivery_id,
            or_(Conversation.participant1_id == user_id, Conversation.participant2_id == user_id),
        )
    )
    conversation_ids = result.scalars().all()

    types = {}
    for conversation_id in conversation_ids:
        messages = await db.execute(
            select(Message.message_type).where(Message.conversation_id == conversation_id)
        )
        types[conversation_id] = set(messages.scalars().all())
    return types


def classify(message_types_by_conversation: dict) -> dict:
    """Agrega los tipos de todas las conversaciones: basta una confirmación para liberar el pago."""
    seen = set()
    for types in message_types_by_conversation.values():
        seen.update(types)
    if "payment" in seen and "deliveryConfirmation" not in seen:
        return {"canDelete": False, "reason": PAYMENT_PENDING}
    return {"canDelete": True, "reason": None}


async def check_deletion_eligibility(db: AsyncSession, delivery_id: str, user_id: str) -> dict:
    """
    Retorna {"canDelete": bool, "reason": "paymentPending" | "verificationError" | None}.
    """
    try:
        async with db.begin_nested():
            types = await _load_conversation_message_types(db, delivery_id, user_id)
    except Exception as e:
        logger.error("deletion_check_failed", delivery_id=delivery_id, error=str(e), exc_info=True)
        return {"canDelete": False, "reason": VERIFICATION_ERROR}

    result = classify(types)
    logger.info(
        "deletion_check",
        delivery_id=delivery_id,
        conversations=len(types),
        can_delete=result["canDelete"],
        reason=result["reason"],
    )
    return result
