"""
Servicio de Reseñas - Calificaciones entre usuarios después de una entrega.
"""

from typing import Optional, Tuple
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from bagami.core.exceptions import ConflictError, NotFoundError, ValidationError
from bagami.models import Delivery, Review, User
from bagami.services import notification_service

logger = structlog.get_logger()


async def get_user_rating(db: AsyncSession, user_id: str) -> Tuple[Optional[float], int]:
    """Retorna (promedio con un decimal, cantidad de reseñas)."""
    result = await db.execute(
        select(func.avg(Review.rating), func.count(Review.id)).where(Review.reviewee_id == user_id)
    )
    average, count = result.one()
    if not count:
        return None, 0
    return round(float(average), 1), count


async def create_review(
    db: AsyncSession,
    reviewer: User,
    delivery_id: str,
    reviewee_id: str,
    rating: int,
    comment: Optional[str] = None
) -> Review:
    if reviewee_id == reviewer.id:
        raise ValidationError("No puedes calificarte a ti mismo")
    if rating < 1 or rating > 5:
        raise ValidationError("La calificación debe estar entre 1 y 5")

    if not await db.get(Delivery, delivery_id):
        raise NotFoundError("Publicación no encontrada")
    if not await db.get(User, reviewee_id):
        raise NotFoundError("Usuario no encontrado")

    existing = await db.execute(
        select(Review.id).where(
            Review.reviewer_id == reviewer.id,
            Review.reviewee_id == reviewee_id,
            Review.delivery_id == delivery_id,
        )
    )
    if existing.scalar_one_or_none():
        raise ConflictError("Ya calificaste a este usuario para esta entrega")

    review = Review(
        rating=rating,
        comment=comment,
        reviewer_id=reviewer.id,
        reviewee_id=reviewee_id,
        delivery_id=delivery_id,
    )
    db.add(review)
    await db.flush()

    logger.info("review_created", reviewer_id=reviewer.id, reviewee_id=reviewee_id, rating=rating)
    await notification_service.notify_review(db, review, reviewer.name or "Unknown User")
    return review


async def list_reviews_for_user(db: AsyncSession, user_id: str) -> list:
    result = await db.execute(
        select(Review, User.name)
        .join(User, User.id == Review.reviewer_id)
        .where(Review.reviewee_id == user_id)
        .order_by(Review.created_at.desc())
    )
    return [serialize_review(review, reviewer_name) for review, reviewer_name in result.all()]


def serialize_review(review: Review, reviewer_name: Optional[str] = None) -> dict:
    return {
        "id": review.id,
        "rating": review.rating,
        "comment": review.comment,
        "reviewerId": review.reviewer_id,
        "reviewerName": reviewer_name,
        "revieweeId": review.reviewee_id,
        "deliveryId": review.delivery_id,
        "createdAt": review.created_at.isoformat() if review.created_at else None,
    }
