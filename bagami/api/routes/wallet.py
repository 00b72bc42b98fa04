"""
Endpoints del wallet del usuario autenticado.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from bagami.core.database import get_db
from bagami.core.exceptions import ForbiddenError
from bagami.core.security import get_active_user, get_current_user
from bagami.schemas.wallet import (
    AddMoneyRequest,
    RecordTransactionRequest,
    WalletMovementRequest,
    WithdrawRequest,
)
from bagami.services import wallet_service

router = APIRouter()


def _movement_response(transaction, wallet) -> dict:
    return {
        "success": True,
        "transaction": wallet_service.serialize_transaction(transaction),
        "wallet": wallet_service.serialize_wallet(wallet),
        "balance": wallet.balance,
    }


@router.get("/balance")
async def get_balance(user=Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    wallet = await wallet_service.get_or_create_wallet(db, user.id)
    return {
        "balance": wallet.balance,
        "currency": wallet.currency,
        "wallet": wallet_service.serialize_wallet(wallet),
    }


@router.get("/transactions")
async def list_transactions(
    type: Optional[str] = Query(None, pattern="^(credit|debit)$"),
    status: Optional[str] = Query(None, pattern="^(completed|pending|failed)$"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user=Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    transactions, total = await wallet_service.get_user_transactions(
        db, user.id, type=type, status=status, limit=limit, offset=offset
    )
    return {
        "transactions": [wallet_service.serialize_transaction(t) for t in transactions],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


@router.get("/stats")
async def get_stats(user=Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await wallet_service.get_wallet_stats(db, user.id)


@router.post("/credit")
async def credit(
    data: WalletMovementRequest,
    user=Depends(get_active_user),
    db: AsyncSession = Depends(get_db)
):
    """Acreditación manual. Reservada a administradores."""
    if not user.is_admin:
        raise ForbiddenError("Solo un administrador puede acreditar un wallet")
    transaction, wallet = await wallet_service.credit_wallet(
        db, user.id, data.amount, data.description,
        category=data.category, reference_id=data.reference_id, metadata=data.metadata,
    )
    return _movement_response(transaction, wallet)


@router.post("/debit")
async def debit(
    data: WalletMovementRequest,
    user=Depends(get_active_user),
    db: AsyncSession = Depends(get_db)
):
    transaction, wallet = await wallet_service.debit_wallet(
        db, user.id, data.amount, data.description,
        category=data.category, reference_id=data.reference_id, metadata=data.metadata,
    )
    return _movement_response(transaction, wallet)


@router.post("/record-transaction")
async def record_transaction(
    data: RecordTransactionRequest,
    user=Depends(get_active_user),
    db: AsyncSession = Depends(get_db)
):
    """Registra un movimiento externo (pago directo) sin tocar el saldo."""
    transaction, wallet = await wallet_service.record_transaction(
        db, user.id, data.type, data.amount, data.description,
        category=data.category, status=data.status,
        reference_id=data.reference_id, metadata=data.metadata,
    )
    return _movement_response(transaction, wallet)


@router.post("/add-money")
async def add_money(
    data: AddMoneyRequest,
    user=Depends(get_active_user),
    db: AsyncSession = Depends(get_db)
):
    transaction, wallet = await wallet_service.add_money(db, user.id, data.amount, data.payment_method)
    return _movement_response(transaction, wallet)


@router.post("/withdraw")
async def withdraw(
    data: WithdrawRequest,
    user=Depends(get_active_user),
    db: AsyncSession = Depends(get_db)
):
    transaction, wallet = await wallet_service.request_withdrawal(
        db, user.id, data.amount, data.phone_number, data.description
    )
    return _movement_response(transaction, wallet)
