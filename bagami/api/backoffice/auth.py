"""
Acceso al backoffice: administradores y subadmins.
"""

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from bagami.core.config import settings
from bagami.core.database import get_db
from bagami.core.security import (
    SUBADMIN_COOKIE,
    USER_COOKIE,
    BackofficeContext,
    get_backoffice_context,
)
from bagami.models.admin import PERMISSIONS
from bagami.schemas.backoffice import BackofficeLogin
from bagami.services import backoffice_service

router = APIRouter()


@router.post("/login")
async def admin_login(data: BackofficeLogin, response: Response, db: AsyncSession = Depends(get_db)):
    result = await backoffice_service.admin_login(db, data.email, data.password)
    response.set_cookie(
        USER_COOKIE,
        result["token"],
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        max_age=settings.access_token_expire_minutes * 60,
    )
    return {"success": True, **result}


@router.post("/subadmin-login")
async def subadmin_login(data: BackofficeLogin, response: Response, db: AsyncSession = Depends(get_db)):
    result = await backoffice_service.subadmin_login(db, data.email, data.password)
    response.set_cookie(
        SUBADMIN_COOKIE,
        result["token"],
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        max_age=settings.subadmin_token_expire_days * 24 * 3600,
    )
    return {"success": True, **result}


@router.post("/logout")
async def logout(response: Response):
    response.delete_cookie(SUBADMIN_COOKIE)
    response.delete_cookie(USER_COOKIE)
    return {"success": True}


@router.get("/verify-admin")
async def verify_admin(ctx: BackofficeContext = Depends(get_backoffice_context)):
    return {
        "authenticated": True,
        "id": ctx.actor_id,
        "email": ctx.email,
        "name": ctx.name,
        "isAdmin": ctx.is_admin,
        "permissions": list(PERMISSIONS) if ctx.is_admin else ctx.permissions,
    }
