"""
Datos iniciales: cuenta de administrador y tasa de comisión.

Uso: python -m bagami.seed
"""

import asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from bagami.core.config import settings
from bagami.core.database import async_session_maker, init_db, close_db
from bagami.core.security import get_password_hash
from bagami.models import PlatformSetting, User
from bagami.services import platform_fee_service, wallet_service

logger = structlog.get_logger()


async def seed_admin(db: AsyncSession) -> User:
    email = settings.admin_email.lower()
    result = await db.execute(select(User).where(User.email == email))
    admin = result.scalar_one_or_none()
    if admin:
        if admin.role != "admin":
            admin.role = "admin"
            logger.info("admin_role_restored", email=email)
        return admin

    admin = User(
        name="Bagami Admin",
        email=email,
        password_hash=get_password_hash(settings.admin_password),
        role="admin",
        is_active=True,
    )
    db.add(admin)
    await db.flush()
    await wallet_service.get_or_create_wallet(db, admin.id)
    logger.info("admin_created", email=email)
    return admin


async def seed_platform_settings(db: AsyncSession) -> None:
    result = await db.execute(
        select(PlatformSetting).where(PlatformSetting.key == platform_fee_service.COMMISSION_RATE_KEY)
    )
    if result.scalar_one_or_none():
        return
    db.add(PlatformSetting(
        key=platform_fee_service.COMMISSION_RATE_KEY,
        value=str(settings.default_commission_rate),
        description="Platform commission rate (decimal)",
    ))
    logger.info("commission_rate_seeded", value=settings.default_commission_rate)


async def main():
    await init_db()
    async with async_session_maker() as session:
        await seed_admin(session)
        await seed_platform_settings(session)
        await session.commit()
    await close_db()


if __name__ == "__main__":
    asyncio.run(main())
