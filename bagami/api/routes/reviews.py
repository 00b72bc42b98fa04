"""
Endpoints de reseñas.
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from bagami.core.database import get_db
from bagami.core.security import get_active_user
from bagami.schemas.conversation import ReviewCreate
from bagami.services import review_service

router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_review(
    data: ReviewCreate,
    user=Depends(get_active_user),
    db: AsyncSession = Depends(get_db)
):
    review = await review_service.create_review(
        db, user, data.delivery_id, data.reviewee_id, data.rating, data.comment
    )
    return {"success": True, "review": review_service.serialize_review(review, user.name)}


@router.get("")
async def list_reviews(user_id: str = Query(..., alias="userId"), db: AsyncSession = Depends(get_db)):
    average, count = await review_service.get_user_rating(db, user_id)
    return {
        "reviews": await review_service.list_reviews_for_user(db, user_id),
        "averageRating": average,
        "reviewCount": count,
    }
