"""
Servicio de Cuentas - Registro, login y perfil de usuarios.
"""

from typing import Optional
from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from bagami.core.exceptions import AuthenticationError, ConflictError, ValidationError
from bagami.core.security import get_password_hash, verify_password, create_access_token
from bagami.models import User
from bagami.schemas.auth import RegisterRequest, ProfileUpdate
from bagami.services import wallet_service

logger = structlog.get_logger()


async def find_user_by_contact(db: AsyncSession, contact: str) -> Optional[User]:
    """
    Busca por email, por teléfono o por indicativo + teléfono
    (ej. "+237699000000" con country_code "+237" y phone "699000000").
    """
    contact = contact.strip()
    result = await db.execute(
        select(User).where(or_(User.email == contact.lower(), User.phone == contact)).limit(1)
    )
    user = result.scalar_one_or_none()
    if user or not contact.startswith("+"):
        return user

    result = await db.execute(
        select(User).where(
            User.country_code.is_not(None),
            User.phone.is_not(None),
            (User.country_code + User.phone) == contact,
        ).limit(1)
    )
    return result.scalar_one_or_none()


async def register_user(db: AsyncSession, data: RegisterRequest) -> User:
    email = data.email.strip().lower() if data.email else None

    if email:
        existing = await db.execute(select(User.id).where(User.email == email))
        if existing.scalar_one_or_none():
            raise ConflictError("Ya existe una cuenta con este email", code="EMAIL_TAKEN")
    if data.phone:
        if await find_user_by_contact(db, data.phone) or (
            data.country_code and await find_user_by_contact(db, f"{data.country_code}{data.phone}")
        ):
            raise ConflictError("Ya existe una cuenta con este teléfono", code="PHONE_TAKEN")

    user = User(
        name=data.name.strip(),
        email=email,
        phone=data.phone,
        country_code=data.country_code,
        country=data.country,
        password_hash=get_password_hash(data.password),
        role="user",
        is_active=True,
        language=data.language,
    )
    db.add(user)
    await db.flush()
    await wallet_service.get_or_create_wallet(db, user.id)

    logger.info("user_registered", user_id=user.id)
    return user


async def authenticate(db: AsyncSession, contact: str, password: str) -> User:
    user = await find_user_by_contact(db, contact)
    if not user or not verify_password(password, user.password_hash):
        logger.warning("login_failed", contact=contact)
        raise AuthenticationError("Credenciales inválidas")
    return user


def issue_token(user: User) -> str:
    return create_access_token(user.id, extra_claims={"role": user.role})


async def update_profile(db: AsyncSession, user: User, data: ProfileUpdate) -> User:
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(user, field, value)
    await db.flush()
    return user


async def change_password(db: AsyncSession, user: User, current_password: str, new_password: str) -> None:
    if not verify_password(current_password, user.password_hash):
        raise ValidationError("La contraseña actual es incorrecta", code="INVALID_PASSWORD")
    user.password_hash = get_password_hash(new_password)
    await db.flush()
    logger.info("password_changed", user_id=user.id)


def serialize_user(user: User) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "phone": user.phone,
        "countryCode": user.country_code,
        "country": user.country,
        "role": user.role,
        "isActive": user.is_active,
        "language": user.language,
        "createdAt": user.created_at.isoformat() if user.created_at else None,
    }
