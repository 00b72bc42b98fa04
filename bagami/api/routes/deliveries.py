"""
Endpoints de publicaciones.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from bagami.core.database import get_db
from bagami.core.security import get_active_user, get_current_user
from bagami.schemas.delivery import DeletionEligibility, DeliveryCreate, DeliveryStatusUpdate, DeliveryUpdate
from bagami.services import deletion_service, delivery_service

router = APIRouter()


@router.get("")
async def search_deliveries(
    type: Optional[str] = Query(None, pattern="^(request|offer)$"),
    from_country: Optional[str] = Query(None, alias="fromCountry"),
    to_country: Optional[str] = Query(None, alias="toCountry"),
    search: Optional[str] = None,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db)
):
    deliveries, total = await delivery_service.search_deliveries(
        db, type=type, from_country=from_country, to_country=to_country,
        search=search, limit=limit, offset=offset,
    )
    return {
        "deliveries": [delivery_service.serialize_delivery(d) for d in deliveries],
        "total": total,
    }


@router.get("/mine")
async def my_deliveries(user=Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    deliveries = await delivery_service.list_user_deliveries(db, user.id)
    return {"deliveries": [delivery_service.serialize_delivery(d) for d in deliveries]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_delivery(
    data: DeliveryCreate,
    user=Depends(get_active_user),
    db: AsyncSession = Depends(get_db)
):
    delivery = await delivery_service.create_delivery(db, user, data)
    return {"success": True, "delivery": delivery_service.serialize_delivery(delivery)}


@router.get("/{delivery_id}")
async def get_delivery(delivery_id: str, db: AsyncSession = Depends(get_db)):
    return {"delivery": await delivery_service.get_delivery_detail(db, delivery_id)}


@router.put("/{delivery_id}")
async def update_delivery(
    delivery_id: str,
    data: DeliveryUpdate,
    user=Depends(get_active_user),
    db: AsyncSession = Depends(get_db)
):
    delivery = await delivery_service.update_delivery(db, delivery_id, user.id, data)
    return {"success": True, "delivery": delivery_service.serialize_delivery(delivery)}


@router.patch("/{delivery_id}")
async def update_delivery_status(
    delivery_id: str,
    data: DeliveryStatusUpdate,
    user=Depends(get_active_user),
    db: AsyncSession = Depends(get_db)
):
    delivery = await delivery_service.update_status(db, delivery_id, user.id, data.status)
    return {
        "success": True,
        "message": f"Delivery {delivery.status.lower()} successfully",
        "delivery": delivery_service.serialize_delivery(delivery),
    }


@router.get("/{delivery_id}/deletion-eligibility", response_model=DeletionEligibility)
async def deletion_eligibility(
    delivery_id: str,
    user=Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    result = await deletion_service.check_deletion_eligibility(db, delivery_id, user.id)
    return {"canDelete": result["canDelete"], "reason": result["reason"]}


@router.delete("/{delivery_id}")
async def delete_delivery(
    delivery_id: str,
    user=Depends(get_active_user),
    db: AsyncSession = Depends(get_db)
):
    await delivery_service.delete_delivery(db, delivery_id, user.id)
    return {"success": True, "message": "Delivery deleted successfully"}
