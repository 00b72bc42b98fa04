"""
Servicio de Retiros - Revisión manual de retiros desde el backoffice.

El saldo se descuenta al pedir el retiro; aprobar solo cambia el estado y
rechazar devuelve el monto al wallet.
"""

from datetime import datetime
from typing import Optional
from fastapi import Request
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from bagami.core.exceptions import NotFoundError, ValidationError
from bagami.core.security import BackofficeContext
from bagami.models import Transaction, User
from bagami.services import audit_service, notification_service, wallet_service

logger = structlog.get_logger()


async def get_withdrawal(db: AsyncSession, withdrawal_id: str, lock: bool = False) -> Transaction:
    query = select(Transaction).where(
        Transaction.id == withdrawal_id, Transaction.category == "Withdrawal"
    )
    if lock:
        query = query.with_for_update()
    result = await db.execute(query)
    withdrawal = result.scalar_one_or_none()
    if not withdrawal:
        raise NotFoundError("Retiro no encontrado")
    return withdrawal


async def _get_pending(db: AsyncSession, withdrawal_id: str) -> Transaction:
    withdrawal = await get_withdrawal(db, withdrawal_id, lock=True)
    # Solo request_withdrawal descuenta el saldo al crear el retiro
    if not (withdrawal.extra_data or {}).get("withdrawalType"):
        raise ValidationError("El movimiento no es un retiro solicitado", code="NOT_A_WITHDRAWAL_REQUEST")
    if withdrawal.status != "pending":
        raise ValidationError("El retiro ya fue procesado", code="ALREADY_PROCESSED")
    return withdrawal


async def approve_withdrawal(
    db: AsyncSession,
    withdrawal_id: str,
    ctx: BackofficeContext,
    request: Optional[Request] = None
) -> Transaction:
    withdrawal = await _get_pending(db, withdrawal_id)

    withdrawal.status = "completed"
    withdrawal.extra_data = {
        **(withdrawal.extra_data or {}),
        "approvedBy": ctx.actor_id,
        "approvedAt": datetime.utcnow().isoformat(),
    }
    await db.flush()

    await notification_service.notify_withdrawal_processed(db, withdrawal, approved=True)
    user = await db.get(User, withdrawal.user_id)
    await audit_service.log_action(
        db, ctx, "APPROVE_WITHDRAWAL", "Transaction", withdrawal.id,
        f"Approved withdrawal of {withdrawal.amount} {withdrawal.currency} for user {user.name or user.email}",
        request,
    )
    logger.info("withdrawal_approved", withdrawal_id=withdrawal.id, amount=withdrawal.amount)
    return withdrawal


async def reject_withdrawal(
    db: AsyncSession,
    withdrawal_id: str,
    ctx: BackofficeContext,
    reason: str,
    request: Optional[Request] = None
) -> dict:
    if not reason or not reason.strip():
        raise ValidationError("Se requiere un motivo de rechazo")

    withdrawal = await _get_pending(db, withdrawal_id)

    withdrawal.status = "failed"
    withdrawal.extra_data = {
        **(withdrawal.extra_data or {}),
        "rejectedBy": ctx.actor_id,
        "rejectedAt": datetime.utcnow().isoformat(),
        "rejectionReason": reason,
    }
    await db.flush()

    # Reembolso del monto descontado al pedir el retiro
    refund, wallet = await wallet_service.credit_wallet(
        db, withdrawal.user_id, withdrawal.amount,
        description=f"Refund for rejected withdrawal: {reason}",
        category="Bonus",
        reference_id=f"REFUND-{withdrawal.reference_id or withdrawal.id}",
        metadata={"originalWithdrawalId": withdrawal.id, "rejectionReason": reason},
    )

    await notification_service.notify_withdrawal_processed(db, withdrawal, approved=False, reason=reason)
    await audit_service.log_action(
        db, ctx, "REJECT_WITHDRAWAL", "Transaction", withdrawal.id,
        {"amount": withdrawal.amount, "reason": reason, "refundTransactionId": refund.id},
        request,
    )
    logger.info("withdrawal_rejected", withdrawal_id=withdrawal.id, amount=withdrawal.amount)
    return {"withdrawal": withdrawal, "refund": refund, "wallet": wallet}


async def list_withdrawals(
    db: AsyncSession,
    status: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    page: int = 1,
    limit: int = 20
) -> dict:
    conditions = [Transaction.category == "Withdrawal"]
    if status and status != "all":
        conditions.append(Transaction.status == status)
    if date_from:
        conditions.append(Transaction.created_at >= date_from)
    if date_to:
        conditions.append(Transaction.created_at <= date_to)

    page = max(page, 1)
    total = (await db.execute(select(func.count(Transaction.id)).where(*conditions))).scalar_one()
    result = await db.execute(
        select(Transaction, User)
        .join(User, User.id == Transaction.user_id)
        .where(*conditions)
        .order_by(Transaction.created_at.desc())
        .limit(limit)
        .offset((page - 1) * limit)
    )

    items = []
    for withdrawal, user in result.all():
        item = wallet_service.serialize_transaction(withdrawal)
        item["user"] = {"id": user.id, "name": user.name, "email": user.email, "phone": user.phone}
        items.append(item)
    return {"withdrawals": items, "pagination": audit_service.pagination(page, limit, total)}


async def get_withdrawal_stats(db: AsyncSession) -> dict:
    result = await db.execute(
        select(Transaction.status, func.count(Transaction.id), func.coalesce(func.sum(Transaction.amount), 0))
        .where(Transaction.category == "Withdrawal")
        .group_by(Transaction.status)
    )
    counts = {status: (count, int(amount)) for status, count, amount in result.all()}
    return {
        "totalPending": counts.get("pending", (0, 0))[0],
        "totalCompleted": counts.get("completed", (0, 0))[0],
        "totalFailed": counts.get("failed", (0, 0))[0],
        "pendingAmount": counts.get("pending", (0, 0))[1],
    }
