"""
Servicio de Wallet - Saldo y libro de transacciones de cada usuario.

Cada movimiento crea una Transaction y, si está completado, actualiza el
saldo en la misma transacción de base de datos. Las funciones no hacen
commit: lo hace get_db al final de la request.
"""

from datetime import datetime
from typing import Optional, Tuple
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from bagami.core.config import settings
from bagami.core.exceptions import InsufficientBalanceError, ValidationError
from bagami.models import Wallet, Transaction
from bagami.services import notification_service

logger = structlog.get_logger()


async def get_or_create_wallet(db: AsyncSession, user_id: str, lock: bool = False) -> Wallet:
    """
    Obtiene el wallet del usuario o lo crea con saldo 0.

    lock=True bloquea la fila (SELECT ... FOR UPDATE) hasta el commit.
    """
    query = select(Wallet).where(Wallet.user_id == user_id)
    if lock:
        query = query.with_for_update()

    result = await db.execute(query)
    wallet = result.scalar_one_or_none()

    if wallet:
        return wallet

    wallet = Wallet(user_id=user_id, balance=0, currency=settings.default_currency)
    db.add(wallet)
    await db.flush()
    logger.info("wallet_created", user_id=user_id)
    return wallet


async def create_transaction(
    db: AsyncSession,
    user_id: str,
    type: str,
    amount: int,
    description: str,
    category: str = "General",
    currency: Optional[str] = None,
    status: str = "completed",
    reference_id: Optional[str] = None,
    metadata: Optional[dict] = None,
    apply_to_balance: bool = True,
    wallet: Optional[Wallet] = None
) -> Tuple[Transaction, Wallet]:
    """
    Registra un movimiento.

    El saldo solo cambia si status == completed y apply_to_balance es True.
    Los retiros pendientes se descuentan aparte (ver request_withdrawal).
    """
    if type not in ("credit", "debit"):
        raise ValidationError("type debe ser credit o debit")
    if amount <= 0:
        raise ValidationError("El monto debe ser mayor a 0")

    if wallet is None:
        wallet = await get_or_create_wallet(db, user_id, lock=True)

    if apply_to_balance and status == "completed":
        if type == "credit":
            wallet.balance = wallet.balance + amount
        else:
            wallet.balance = wallet.balance - amount

    transaction = Transaction(
        user_id=user_id,
        type=type,
        amount=amount,
        currency=currency or wallet.currency or settings.default_currency,
        status=status,
        description=description,
        category=category,
        reference_id=reference_id,
        extra_data=metadata or {},
    )
    db.add(transaction)
    await db.flush()

    logger.info(
        "wallet_transaction",
        user_id=user_id,
        type=type,
        amount=amount,
        status=status,
        category=category,
        balance=wallet.balance,
    )

    await notification_service.notify_transaction(db, transaction)
    return transaction, wallet


async def credit_wallet(
    db: AsyncSession,
    user_id: str,
    amount: int,
    description: str,
    category: str = "General",
    reference_id: Optional[str] = None,
    metadata: Optional[dict] = None
) -> Tuple[Transaction, Wallet]:
    return await create_transaction(
        db, user_id, "credit", amount, description,
        category=category, reference_id=reference_id, metadata=metadata,
    )


async def debit_wallet(
    db: AsyncSession,
    user_id: str,
    amount: int,
    description: str,
    category: str = "General",
    reference_id: Optional[str] = None,
    metadata: Optional[dict] = None
) -> Tuple[Transaction, Wallet]:
    """Debita el wallet. Lanza InsufficientBalanceError si el saldo no alcanza."""
    wallet = await get_or_create_wallet(db, user_id, lock=True)
    if wallet.balance < amount:
        raise InsufficientBalanceError(wallet.balance, amount, wallet.currency)

    return await create_transaction(
        db, user_id, "debit", amount, description,
        category=category, reference_id=reference_id, metadata=metadata, wallet=wallet,
    )


async def record_transaction(
    db: AsyncSession,
    user_id: str,
    type: str,
    amount: int,
    description: str,
    category: str = "General",
    status: str = "completed",
    reference_id: Optional[str] = None,
    metadata: Optional[dict] = None
) -> Tuple[Transaction, Wallet]:
    """Registra un movimiento sin tocar el saldo (pagos directos fuera del wallet)."""
    return await create_transaction(
        db, user_id, type, amount, description,
        category=category, status=status, reference_id=reference_id,
        metadata=metadata, apply_to_balance=False,
    )


async def add_money(
    db: AsyncSession,
    user_id: str,
    amount: int,
    payment_method: Optional[str] = None
) -> Tuple[Transaction, Wallet]:
    if amount < settings.min_topup_amount:
        raise ValidationError(f"El monto mínimo es {settings.min_topup_amount}")
    if amount > settings.max_topup_amount:
        raise ValidationError(f"El monto máximo es {settings.max_topup_amount}")

    return await credit_wallet(
        db, user_id, amount,
        description="Wallet top-up",
        category="Bonus",
        reference_id=f"TOPUP-{int(datetime.utcnow().timestamp() * 1000)}",
        metadata={"paymentMethod": payment_method or "mobile_money"},
    )


async def request_withdrawal(
    db: AsyncSession,
    user_id: str,
    amount: int,
    phone_number: Optional[str],
    description: Optional[str] = None
) -> Tuple[Transaction, Wallet]:
    """
    Crea un retiro pendiente y descuenta el saldo de inmediato.
    Si el backoffice lo rechaza, el monto se reembolsa.
    """
    if not phone_number:
        raise ValidationError("Se requiere el número de teléfono para el retiro")
    if amount <= 0:
        raise ValidationError("El monto debe ser mayor a 0")

    wallet = await get_or_create_wallet(db, user_id, lock=True)
    if wallet.balance < amount:
        raise InsufficientBalanceError(wallet.balance, amount, wallet.currency)

    now = datetime.utcnow()
    wallet.balance = wallet.balance - amount

    transaction, wallet = await create_transaction(
        db, user_id, "debit", amount,
        description or f"Withdrawal to {phone_number}",
        category="Withdrawal",
        status="pending",
        reference_id=f"WITHDRAWAL-{int(now.timestamp() * 1000)}",
        metadata={
            "phoneNumber": phone_number,
            "requestedAt": now.isoformat(),
            "withdrawalType": "mobile_money",
        },
        wallet=wallet,
    )
    logger.info("withdrawal_requested", user_id=user_id, amount=amount, transaction_id=transaction.id)
    return transaction, wallet


# ===========================================
# CONSULTAS
# ===========================================

async def get_user_transactions(
    db: AsyncSession,
    user_id: str,
    type: Optional[str] = None,
    status: Optional[str] = None,
    limit: int = 50,
    offset: int = 0
) -> Tuple[list, int]:
    conditions = [Transaction.user_id == user_id]
    if type:
        conditions.append(Transaction.type == type)
    if status:
        conditions.append(Transaction.status == status)

    total = (await db.execute(select(func.count(Transaction.id)).where(*conditions))).scalar_one()
    result = await db.execute(
        select(Transaction)
        .where(*conditions)
        .order_by(Transaction.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all()), total


async def get_wallet_stats(db: AsyncSession, user_id: str) -> dict:
    async def total(*conditions) -> int:
        result = await db.execute(
            select(func.coalesce(func.sum(Transaction.amount), 0)).where(
                Transaction.user_id == user_id, *conditions
            )
        )
        return int(result.scalar_one())

    return {
        "totalCredit": await total(Transaction.type == "credit", Transaction.status == "completed"),
        "totalDebit": await total(Transaction.type == "debit", Transaction.status == "completed"),
        "pendingAmount": await total(Transaction.status == "pending"),
    }


def serialize_wallet(wallet: Wallet) -> dict:
    return {
        "id": wallet.id,
        "userId": wallet.user_id,
        "balance": wallet.balance,
        "currency": wallet.currency,
    }


def serialize_transaction(transaction: Transaction) -> dict:
    return {
        "id": transaction.id,
        "userId": transaction.user_id,
        "type": transaction.type,
        "amount": transaction.amount,
        "currency": transaction.currency,
        "status": transaction.status,
        "description": transaction.description,
        "category": transaction.category,
        "referenceId": transaction.reference_id,
        "metadata": transaction.extra_data or {},
        "createdAt": transaction.created_at.isoformat() if transaction.created_at else None,
    }
