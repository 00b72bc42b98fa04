"""
Endpoints de autenticación de usuarios.
"""

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from bagami.core.config import settings
from bagami.core.database import get_db
from bagami.core.security import USER_COOKIE, get_current_user
from bagami.schemas.auth import LoginRequest, RegisterRequest
from bagami.services import auth_service

router = APIRouter()
logger = structlog.get_logger()


def _token_response(response: Response, user) -> dict:
    token = auth_service.issue_token(user)
    response.set_cookie(
        USER_COOKIE,
        token,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        max_age=settings.access_token_expire_minutes * 60,
    )
    return {
        "accessToken": token,
        "tokenType": "bearer",
        "user": auth_service.serialize_user(user),
    }


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(data: RegisterRequest, response: Response, db: AsyncSession = Depends(get_db)):
    user = await auth_service.register_user(db, data)
    return _token_response(response, user)


@router.post("/login")
async def login(data: LoginRequest, response: Response, db: AsyncSession = Depends(get_db)):
    """
    Login con email, teléfono o indicativo + teléfono.
    Los usuarios suspendidos pueden entrar pero no modificar datos.
    """
    user = await auth_service.authenticate(db, data.contact, data.password)
    logger.info("user_login", user_id=user.id)
    return _token_response(response, user)


@router.post("/logout")
async def logout(response: Response):
    response.delete_cookie(USER_COOKIE)
    return {"success": True}


@router.get("/me")
async def me(user=Depends(get_current_user)):
    return {"user": auth_service.serialize_user(user)}
