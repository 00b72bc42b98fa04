"""
Backoffice: publicaciones.
"""

from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from bagami.core.database import get_db
from bagami.core.security import BackofficeContext, require_permission
from bagami.services import report_service

router = APIRouter()


@router.get("")
async def list_deliveries(
    search: Optional[str] = None,
    type: str = Query("all", pattern="^(all|request|offer)$"),
    status: str = "all",
    min_price: Optional[float] = Query(None, alias="minPrice"),
    max_price: Optional[float] = Query(None, alias="maxPrice"),
    date_from: Optional[datetime] = Query(None, alias="dateFrom"),
    date_to: Optional[datetime] = Query(None, alias="dateTo"),
    sort_field: str = Query("createdAt", alias="sortField"),
    sort_order: str = Query("desc", alias="sortOrder", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    ctx: BackofficeContext = Depends(require_permission("deliveries")),
    db: AsyncSession = Depends(get_db)
):
    return await report_service.list_deliveries(
        db, search=search, type=type, status=status, min_price=min_price, max_price=max_price,
        date_from=date_from, date_to=date_to, sort_field=sort_field, sort_order=sort_order,
        page=page, limit=limit,
    )


@router.get("/stats")
async def delivery_stats(
    ctx: BackofficeContext = Depends(require_permission("deliveries")),
    db: AsyncSession = Depends(get_db)
):
    return await report_service.delivery_stats(db)


@router.get("/{delivery_id}")
async def delivery_detail(
    delivery_id: str,
    ctx: BackofficeContext = Depends(require_permission("deliveries")),
    db: AsyncSession = Depends(get_db)
):
    return {"delivery": await report_service.delivery_detail(db, delivery_id)}
