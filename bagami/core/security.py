"""
Seguridad y autenticación.
Hash de contraseñas, tokens JWT y contexto del usuario / operador del backoffice.
"""

from datetime import datetime, timedelta
from typing import Optional, List

import bcrypt
from fastapi import Depends, Request, Security
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bagami.core.config import settings
from bagami.core.database import get_db
from bagami.core.exceptions import AuthenticationError, ForbiddenError, AccountSuspendedError


USER_COOKIE = "access_token"
SUBADMIN_COOKIE = "subadmin-token"

bearer_scheme = HTTPBearer(
    auto_error=False,
    description="Token JWT obtenido en /api/auth/login"
)


# ===========================================
# CONTRASEÑAS Y TOKENS
# ===========================================

def get_password_hash(password: str) -> str:
    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    if not hashed_password:
        return False
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        # Hash con formato inválido
        return False


def create_access_token(
    subject: str,
    extra_claims: Optional[dict] = None,
    expires_delta: Optional[timedelta] = None
) -> str:
    """
    Genera un JWT firmado con SECRET_KEY.

    Claims: sub, exp, type (access | subadmin) más los extra.
    """
    expire = datetime.utcnow() + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode = {"sub": subject, "exp": expire, "type": "access"}
    if extra_claims:
        to_encode.update(extra_claims)
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.jwt_algorithm)


def create_subadmin_token(subadmin_id: str, email: str, permissions: List[str]) -> str:
    return create_access_token(
        subadmin_id,
        extra_claims={
            "type": "subadmin",
            "subadminId": subadmin_id,
            "email": email,
            "permissions": permissions,
        },
        expires_delta=timedelta(days=settings.subadmin_token_expire_days),
    )


def decode_access_token(token: str) -> Optional[dict]:
    """Retorna los claims o None si el token es inválido o expiró."""
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None


def _extract_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials],
    cookie_name: str
) -> Optional[str]:
    if credentials and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(cookie_name)


# ===========================================
# USUARIOS
# ===========================================

async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    db: AsyncSession = Depends(get_db)
):
    """
    Resuelve el usuario autenticado desde el header Authorization o la cookie.

    Uso:
        @router.get("/endpoint")
        async def endpoint(user: User = Depends(get_current_user)):
            print(user.id)
    """
    from bagami.models import User

    token = _extract_token(request, credentials, USER_COOKIE)
    if not token:
        raise AuthenticationError("Autenticación requerida")

    payload = decode_access_token(token)
    if not payload or payload.get("type") != "access":
        raise AuthenticationError("Token inválido o expirado")

    result = await db.execute(select(User).where(User.id == payload.get("sub")))
    user = result.scalar_one_or_none()
    if not user:
        raise AuthenticationError("Usuario no encontrado")

    return user


async def get_active_user(user=Depends(get_current_user)):
    """Usuario autenticado y no suspendido. Para endpoints que modifican datos."""
    if not user.is_active:
        raise AccountSuspendedError()
    return user


# ===========================================
# BACKOFFICE
# ===========================================

class BackofficeContext:
    """
    Operador autenticado del backoffice.
    Un admin tiene todos los permisos; un subadmin solo los asignados.
    """
    def __init__(
        self,
        actor_id: str,
        email: Optional[str],
        name: Optional[str],
        is_admin: bool,
        permissions: Optional[List[str]] = None
    ):
        self.actor_id = actor_id
        self.email = email
        self.name = name
        self.is_admin = is_admin
        self.permissions = list(permissions or [])

    def has_permission(self, permission: str) -> bool:
        return self.is_admin or permission in self.permissions

    def __repr__(self):
        kind = "admin" if self.is_admin else "subadmin"
        return f"<BackofficeContext {kind} {self.email}>"


async def get_backoffice_context(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    db: AsyncSession = Depends(get_db)
) -> BackofficeContext:
    """
    Acepta el token de un subadmin (cookie subadmin-token o bearer)
    o el token de un usuario con rol admin / superadmin.
    """
    from bagami.models import User, Subadmin

    token = request.cookies.get(SUBADMIN_COOKIE) or _extract_token(request, credentials, USER_COOKIE)
    if not token:
        raise AuthenticationError("Autenticación requerida")

    payload = decode_access_token(token)
    if not payload:
        raise AuthenticationError("Token inválido o expirado")

    if payload.get("type") == "subadmin":
        result = await db.execute(select(Subadmin).where(Subadmin.id == payload.get("sub")))
        subadmin = result.scalar_one_or_none()
        if not subadmin or not subadmin.is_active:
            raise AuthenticationError("Subadmin inválido o desactivado")
        # Los permisos vigentes son los de la base, no los del token
        return BackofficeContext(
            actor_id=subadmin.id,
            email=subadmin.email,
            name=subadmin.name,
            is_admin=False,
            permissions=subadmin.permissions or [],
        )

    result = await db.execute(select(User).where(User.id == payload.get("sub")))
    user = result.scalar_one_or_none()
    if not user:
        raise AuthenticationError("Usuario no encontrado")
    if not user.is_admin:
        raise ForbiddenError("Acceso reservado a administradores")

    return BackofficeContext(
        actor_id=user.id,
        email=user.email,
        name=user.name,
        is_admin=True,
    )


def require_permission(permission: str):
    """
    Dependency factory para endpoints del backoffice.

    Uso:
        @router.get("/users")
        async def list_users(ctx: BackofficeContext = Depends(require_permission("users"))):
            ...
    """
    async def dependency(
        ctx: BackofficeContext = Depends(get_backoffice_context)
    ) -> BackofficeContext:
        if not ctx.has_permission(permission):
            raise ForbiddenError(f"Permiso requerido: {permission}")
        return ctx

    return dependency


async def require_admin(
    ctx: BackofficeContext = Depends(get_backoffice_context)
) -> BackofficeContext:
    if not ctx.is_admin:
        raise ForbiddenError("Acción reservada a administradores")
    return ctx
