"""
Backoffice: transacciones y retiros.
"""

from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from bagami.core.database import get_db
from bagami.core.security import BackofficeContext, require_permission
from bagami.schemas.backoffice import WithdrawalReject
from bagami.services import report_service, wallet_service, withdrawal_service

router = APIRouter()


# ===========================================
# TRANSACCIONES
# ===========================================

@router.get("/transactions")
async def list_transactions(
    search: Optional[str] = None,
    type: str = Query("all", pattern="^(all|credit|debit)$"),
    status: str = Query("all", pattern="^(all|completed|pending|failed)$"),
    category: str = "all",
    date_from: Optional[datetime] = Query(None, alias="dateFrom"),
    date_to: Optional[datetime] = Query(None, alias="dateTo"),
    sort_field: str = Query("createdAt", alias="sortField"),
    sort_order: str = Query("desc", alias="sortOrder", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    ctx: BackofficeContext = Depends(require_permission("transactions")),
    db: AsyncSession = Depends(get_db)
):
    return await report_service.list_transactions(
        db, search=search, type=type, status=status, category=category,
        date_from=date_from, date_to=date_to, sort_field=sort_field, sort_order=sort_order,
        page=page, limit=limit,
    )


@router.get("/transactions/stats")
async def transaction_stats(
    ctx: BackofficeContext = Depends(require_permission("transactions")),
    db: AsyncSession = Depends(get_db)
):
    return await report_service.transaction_stats(db)


@router.get("/transactions/{transaction_id}")
async def transaction_detail(
    transaction_id: str,
    ctx: BackofficeContext = Depends(require_permission("transactions")),
    db: AsyncSession = Depends(get_db)
):
    return {"transaction": await report_service.transaction_detail(db, transaction_id)}


# ===========================================
# RETIROS
# ===========================================

@router.get("/withdrawals")
async def list_withdrawals(
    status: str = Query("all", pattern="^(all|completed|pending|failed)$"),
    date_from: Optional[datetime] = Query(None, alias="dateFrom"),
    date_to: Optional[datetime] = Query(None, alias="dateTo"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    ctx: BackofficeContext = Depends(require_permission("withdrawals")),
    db: AsyncSession = Depends(get_db)
):
    return await withdrawal_service.list_withdrawals(
        db, status=status, date_from=date_from, date_to=date_to, page=page, limit=limit
    )


@router.get("/withdrawals/stats")
async def withdrawal_stats(
    ctx: BackofficeContext = Depends(require_permission("withdrawals")),
    db: AsyncSession = Depends(get_db)
):
    return await withdrawal_service.get_withdrawal_stats(db)


@router.get("/withdrawals/{withdrawal_id}")
async def withdrawal_detail(
    withdrawal_id: str,
    ctx: BackofficeContext = Depends(require_permission("withdrawals")),
    db: AsyncSession = Depends(get_db)
):
    await withdrawal_service.get_withdrawal(db, withdrawal_id)
    return {"withdrawal": await report_service.transaction_detail(db, withdrawal_id)}


@router.post("/withdrawals/{withdrawal_id}/approve")
async def approve_withdrawal(
    withdrawal_id: str,
    request: Request,
    ctx: BackofficeContext = Depends(require_permission("withdrawals")),
    db: AsyncSession = Depends(get_db)
):
    withdrawal = await withdrawal_service.approve_withdrawal(db, withdrawal_id, ctx, request)
    return {
        "success": True,
        "message": "Withdrawal approved successfully",
        "withdrawal": wallet_service.serialize_transaction(withdrawal),
    }


@router.post("/withdrawals/{withdrawal_id}/reject")
async def reject_withdrawal(
    withdrawal_id: str,
    data: WithdrawalReject,
    request: Request,
    ctx: BackofficeContext = Depends(require_permission("withdrawals")),
    db: AsyncSession = Depends(get_db)
):
    result = await withdrawal_service.reject_withdrawal(db, withdrawal_id, ctx, data.reason, request)
    return {
        "success": True,
        "message": "Withdrawal rejected and amount refunded",
        "withdrawal": wallet_service.serialize_transaction(result["withdrawal"]),
        "refund": wallet_service.serialize_transaction(result["refund"]),
        "newBalance": result["wallet"].balance,
    }
