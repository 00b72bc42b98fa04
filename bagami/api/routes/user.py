"""
Endpoints del perfil del usuario autenticado.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from bagami.core.database import get_db
from bagami.core.security import get_active_user, get_current_user
from bagami.schemas.auth import ChangePasswordRequest, ProfileUpdate
from bagami.services import auth_service, identity_service, review_service, wallet_service

router = APIRouter()


@router.get("/profile")
async def get_profile(user=Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    wallet = await wallet_service.get_or_create_wallet(db, user.id)
    average, count = await review_service.get_user_rating(db, user.id)
    data = auth_service.serialize_user(user)
    data.update({
        "wallet": wallet_service.serialize_wallet(wallet),
        "averageRating": average,
        "reviewCount": count,
        "isVerified": await identity_service.is_user_verified(db, user.id),
    })
    return {"user": data}


@router.patch("/profile")
async def update_profile(
    data: ProfileUpdate,
    user=Depends(get_active_user),
    db: AsyncSession = Depends(get_db)
):
    user = await auth_service.update_profile(db, user, data)
    return {"success": True, "user": auth_service.serialize_user(user)}


@router.post("/change-password")
async def change_password(
    data: ChangePasswordRequest,
    user=Depends(get_active_user),
    db: AsyncSession = Depends(get_db)
):
    await auth_service.change_password(db, user, data.current_password, data.new_password)
    return {"success": True}
