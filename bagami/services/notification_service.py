"""
Servicio de Notificaciones - Avisos in-app para los usuarios.

Las notificaciones son un efecto secundario: si fallan se registran en el
log y la operación principal continúa.
"""

from typing import Optional
from sqlalchemy import select, func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from bagami.models import Notification, User

logger = structlog.get_logger()


# Títulos por idioma del usuario
TITLES = {
    "en": {
        "walletTopUp": "Wallet top-up",
        "moneyReceived": "Money received",
        "refundReceived": "Refund received",
        "paymentReceived": "Payment received",
        "withdrawalRequested": "Withdrawal requested",
        "paymentSent": "Payment sent",
        "moneySent": "Money sent",
        "directPaymentCompleted": "Direct payment completed",
        "withdrawalApproved": "Withdrawal approved",
        "withdrawalRejected": "Withdrawal rejected",
        "review": "New review",
        "idApproved": "Identity verified",
        "idRejected": "Identity document rejected",
    },
    "fr": {
        "walletTopUp": "Recharge du portefeuille",
        "moneyReceived": "Argent reçu",
        "refundReceived": "Remboursement reçu",
        "paymentReceived": "Paiement reçu",
        "withdrawalRequested": "Retrait demandé",
        "paymentSent": "Paiement envoyé",
        "moneySent": "Argent envoyé",
        "directPaymentCompleted": "Paiement direct effectué",
        "withdrawalApproved": "Retrait approuvé",
        "withdrawalRejected": "Retrait refusé",
        "review": "Nouvel avis",
        "idApproved": "Identité vérifiée",
        "idRejected": "Pièce d'identité refusée",
    },
}

DOCUMENT_NAMES = {
    "en": {"national_id": "national ID card", "passport": "passport"},
    "fr": {"national_id": "carte d'identité", "passport": "passeport"},
}


def format_amount(amount) -> str:
    """1500000 -> '1 500 000' (formato fr-FR)."""
    return f"{int(amount):,}".replace(",", " ")


def _title(locale: str, key: str) -> str:
    return TITLES.get(locale, TITLES["en"])[key]


async def get_user_locale(db: AsyncSession, user_id: str) -> str:
    result = await db.execute(select(User.language).where(User.id == user_id))
    language = result.scalar_one_or_none()
    return language if language in TITLES else "en"


def transaction_title_key(tx_type: str, category: str, description: str, metadata: Optional[dict]) -> str:
    if tx_type == "credit":
        if category == "Bonus":
            if "Wallet top-up from Bagami" in description:
                return "walletTopUp"
            if "Wallet top-up" in description:
                return "moneyReceived"
            return "refundReceived"
        if category in ("Delivery Payment", "Delivery Income"):
            return "paymentReceived"
        return "moneyReceived"

    if (metadata or {}).get("paymentType") == "direct_payment":
        return "directPaymentCompleted"
    if category == "Withdrawal":
        return "withdrawalRequested"
    if category == "Delivery Payment":
        return "paymentSent"
    return "moneySent"


async def create_notification(
    db: AsyncSession,
    user_id: str,
    type: str,
    title: str,
    message: str,
    related_id: Optional[str] = None
) -> Optional[Notification]:
    """
    Crea una notificación dentro de un savepoint.
    Retorna None si no se pudo crear.
    """
    try:
        async with db.begin_nested():
            notification = Notification(
                user_id=user_id,
                type=type,
                title=title,
                message=message,
                related_id=related_id,
                is_read=False,
            )
            db.add(notification)
        return notification
    except SQLAlchemyError as e:
        logger.warning("notification_failed", user_id=user_id, type=type, error=str(e))
        return None


async def notify_transaction(db: AsyncSession, transaction) -> Optional[Notification]:
    locale = await get_user_locale(db, transaction.user_id)
    key = transaction_title_key(
        transaction.type, transaction.category, transaction.description, transaction.extra_data
    )
    message = f"{transaction.description} - {format_amount(transaction.amount)} {transaction.currency}"
    return await create_notification(
        db, transaction.user_id, "transaction", _title(locale, key), message, related_id=transaction.id
    )


async def notify_withdrawal_processed(
    db: AsyncSession,
    transaction,
    approved: bool,
    reason: Optional[str] = None
) -> Optional[Notification]:
    locale = await get_user_locale(db, transaction.user_id)
    amount = f"{format_amount(transaction.amount)} {transaction.currency}"
    if approved:
        key = "withdrawalApproved"
        message = amount
    else:
        key = "withdrawalRejected"
        message = f"{amount} - {reason}" if reason else amount
    return await create_notification(
        db, transaction.user_id, "transaction", _title(locale, key), message, related_id=transaction.id
    )


async def notify_review(db: AsyncSession, review, reviewer_name: str) -> Optional[Notification]:
    locale = await get_user_locale(db, review.reviewee_id)
    title = f"{'⭐' * review.rating} {_title(locale, 'review')}"
    if locale == "fr":
        message = f"{reviewer_name} vous a donné {review.rating}/5"
    else:
        message = f"{reviewer_name} rated you {review.rating}/5"
    if review.comment:
        message = f'{message}: "{review.comment}"'
    return await create_notification(
        db, review.reviewee_id, "review", title, message, related_id=review.id
    )


async def notify_id_verification(db: AsyncSession, document) -> Optional[Notification]:
    locale = await get_user_locale(db, document.user_id)
    doc_name = DOCUMENT_NAMES.get(locale, DOCUMENT_NAMES["en"]).get(
        document.document_type, document.document_type
    )
    approved = document.verification_status == "approved"
    title = _title(locale, "idApproved" if approved else "idRejected")
    return await create_notification(
        db, document.user_id, "id_verification", title, doc_name, related_id=document.id
    )


# ===========================================
# LECTURA
# ===========================================

async def list_notifications(db: AsyncSession, user_id: str, limit: int = 50, offset: int = 0):
    result = await db.execute(
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all())


async def count_unread(db: AsyncSession, user_id: str) -> int:
    result = await db.execute(
        select(func.count(Notification.id)).where(
            Notification.user_id == user_id, Notification.is_read.is_(False)
        )
    )
    return result.scalar_one()


async def mark_as_read(db: AsyncSession, user_id: str, notification_ids: Optional[list] = None) -> int:
    """Marca como leídas las notificaciones indicadas, o todas si no se indica ninguna."""
    stmt = update(Notification).where(
        Notification.user_id == user_id, Notification.is_read.is_(False)
    )
    if notification_ids:
        stmt = stmt.where(Notification.id.in_(notification_ids))
    result = await db.execute(stmt.values(is_read=True))
    return result.rowcount


def serialize_notification(notification: Notification) -> dict:
    return {
        "id": notification.id,
        "type": notification.type,
        "title": notification.title,
        "message": notification.message,
        "relatedId": notification.related_id,
        "isRead": notification.is_read,
        "createdAt": notification.created_at.isoformat() if notification.created_at else None,
    }
