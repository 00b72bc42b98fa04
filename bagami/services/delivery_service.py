"""
Servicio de Publicaciones - Solicitudes de envío y ofertas de viaje.
"""

from datetime import datetime
from typing import Optional, Tuple
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from bagami.core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from bagami.models import Delivery, User
from bagami.schemas.delivery import DeliveryCreate, DeliveryUpdate
from bagami.services import deletion_service, identity_service, review_service

logger = structlog.get_logger()


def build_title(data: DeliveryCreate) -> str:
    if data.post_type == "delivery":
        return f"Space request: {data.item_type} delivery"
    return f"Space offer: {data.from_city}, {data.from_country} to {data.to_city}, {data.to_country}"


def build_description(data: DeliveryCreate) -> str:
    description = data.description or ""
    if data.post_type == "delivery" and data.notes and data.notes.strip():
        description = f"{description}\n\nAdditional Notes:\n{data.notes}"
    return description


async def create_delivery(db: AsyncSession, user: User, data: DeliveryCreate) -> Delivery:
    delivery = Delivery(
        type="request" if data.post_type == "delivery" else "offer",
        title=build_title(data),
        description=build_description(data),
        weight=data.weight,
        price=data.price,
        currency=data.currency,
        from_country=data.from_country,
        from_city=data.from_city,
        to_country=data.to_country,
        to_city=data.to_city,
        # Una solicitud sale desde el momento en que se publica
        departure_date=datetime.utcnow() if data.post_type == "delivery" else data.departure_date,
        arrival_date=data.arrival_date,
        status="PENDING",
        sender_id=user.id,
    )
    db.add(delivery)
    await db.flush()

    logger.info("delivery_created", delivery_id=delivery.id, type=delivery.type, user_id=user.id)
    return delivery


async def get_delivery(db: AsyncSession, delivery_id: str, include_deleted: bool = False) -> Delivery:
    delivery = await db.get(Delivery, delivery_id)
    if not delivery or (delivery.is_deleted and not include_deleted):
        raise NotFoundError("Publicación no encontrada")
    return delivery


async def get_owned_delivery(db: AsyncSession, delivery_id: str, user_id: str) -> Delivery:
    delivery = await get_delivery(db, delivery_id)
    if delivery.sender_id != user_id:
        raise ForbiddenError("Solo puedes modificar tus propias publicaciones")
    return delivery


async def get_delivery_detail(db: AsyncSession, delivery_id: str) -> dict:
    """Publicación con la calificación y verificación de quien la publicó."""
    delivery = await get_delivery(db, delivery_id)
    sender = await db.get(User, delivery.sender_id)
    average, count = await review_service.get_user_rating(db, delivery.sender_id)

    data = serialize_delivery(delivery)
    data["sender"] = {
        "id": sender.id,
        "name": sender.name,
        "averageRating": average,
        "reviewCount": count,
        "isVerified": await identity_service.is_user_verified(db, sender.id),
        "reviews": await review_service.list_reviews_for_user(db, sender.id),
    }
    return data


async def search_deliveries(
    db: AsyncSession,
    type: Optional[str] = None,
    from_country: Optional[str] = None,
    to_country: Optional[str] = None,
    search: Optional[str] = None,
    limit: int = 20,
    offset: int = 0
) -> Tuple[list, int]:
    """Publicaciones activas visibles para todos."""
    conditions = [Delivery.deleted_at.is_(None), Delivery.status == "PENDING"]
    if type:
        conditions.append(Delivery.type == type)
    if from_country:
        conditions.append(Delivery.from_country == from_country)
    if to_country:
        conditions.append(Delivery.to_country == to_country)
    if search:
        pattern = f"%{search}%"
        conditions.append(or_(
            Delivery.title.ilike(pattern),
            Delivery.description.ilike(pattern),
            Delivery.from_city.ilike(pattern),
            Delivery.to_city.ilike(pattern),
        ))

    total = (await db.execute(select(func.count(Delivery.id)).where(*conditions))).scalar_one()
    result = await db.execute(
        select(Delivery).where(*conditions).order_by(Delivery.created_at.desc()).limit(limit).offset(offset)
    )
    return list(result.scalars().all()), total


async def list_user_deliveries(db: AsyncSession, user_id: str) -> list:
    result = await db.execute(
        select(Delivery)
        .where(Delivery.sender_id == user_id, Delivery.deleted_at.is_(None))
        .order_by(Delivery.created_at.desc())
    )
    return list(result.scalars().all())


async def update_delivery(db: AsyncSession, delivery_id: str, user_id: str, data: DeliveryUpdate) -> Delivery:
    delivery = await get_owned_delivery(db, delivery_id, user_id)
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(delivery, field, value)
    await db.flush()
    logger.info("delivery_updated", delivery_id=delivery.id)
    return delivery


async def update_status(db: AsyncSession, delivery_id: str, user_id: str, status: str) -> Delivery:
    """Activar / desactivar. Solo PENDING e INACTIVE."""
    if status not in ("PENDING", "INACTIVE"):
        raise ValidationError("Estado inválido. Debe ser PENDING o INACTIVE")
    delivery = await get_owned_delivery(db, delivery_id, user_id)
    delivery.status = status
    await db.flush()
    logger.info("delivery_status_changed", delivery_id=delivery.id, status=status)
    return delivery


async def delete_delivery(db: AsyncSession, delivery_id: str, user_id: str) -> Delivery:
    """Soft delete, después de volver a evaluar la guardia de eliminación."""
    delivery = await get_owned_delivery(db, delivery_id, user_id)

    eligibility = await deletion_service.check_deletion_eligibility(db, delivery.id, user_id)
    if not eligibility["canDelete"]:
        raise ConflictError(
            "La publicación no se puede eliminar",
            code=eligibility["reason"],
            extra={"reason": eligibility["reason"]},
        )

    delivery.deleted_at = datetime.utcnow()
    await db.flush()
    logger.info("delivery_deleted", delivery_id=delivery.id, user_id=user_id)
    return delivery


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def serialize_delivery(delivery: Delivery) -> dict:
    return {
        "id": delivery.id,
        "type": delivery.type,
        "title": delivery.title,
        "description": delivery.description,
        "weight": delivery.weight,
        "price": delivery.price,
        "currency": delivery.currency,
        "fromCountry": delivery.from_country,
        "fromCity": delivery.from_city,
        "toCountry": delivery.to_country,
        "toCity": delivery.to_city,
        "departureDate": _iso(delivery.departure_date),
        "arrivalDate": _iso(delivery.arrival_date),
        "status": delivery.status,
        "senderId": delivery.sender_id,
        "receiverId": delivery.receiver_id,
        "createdAt": _iso(delivery.created_at),
        "deletedAt": _iso(delivery.deleted_at),
    }
