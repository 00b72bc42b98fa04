"""
Servicio de Comisión - Calcula la comisión de la plataforma sobre un pago.

La tasa vive en platform_settings (key commission_rate); si falta o no se
puede leer se usa la tasa por defecto de la configuración.
"""

import math
from typing import Optional
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from bagami.core.config import settings
from bagami.models import PlatformSetting

logger = structlog.get_logger()

COMMISSION_RATE_KEY = "commission_rate"


async def get_commission_rate(db: AsyncSession) -> float:
    try:
        result = await db.execute(
            select(PlatformSetting.value).where(PlatformSetting.key == COMMISSION_RATE_KEY)
        )
        value = result.scalar_one_or_none()
    except SQLAlchemyError as e:
        logger.warning("commission_rate_lookup_failed", error=str(e))
        return settings.default_commission_rate

    if value is None:
        return settings.default_commission_rate

    try:
        rate = float(value)
    except ValueError:
        logger.warning("commission_rate_invalid", value=value)
        return settings.default_commission_rate

    if not math.isfinite(rate) or rate < 0 or rate > 1:
        logger.warning("commission_rate_out_of_range", value=value)
        return settings.default_commission_rate
    return rate


def compute_platform_fee(
    amount,
    rate: float,
    min_fee: Optional[int] = None,
    max_fee: Optional[int] = None
) -> dict:
    """
    fee = max(min_fee, min(floor(amount * rate), max_fee)); net = amount - fee.

    Siempre se cumple fee + net == amount.
    """
    min_fee = settings.min_platform_fee if min_fee is None else min_fee
    max_fee = settings.max_platform_fee if max_fee is None else max_fee

    fee = math.floor(amount * rate)
    if max_fee is not None:
        fee = min(fee, max_fee)
    fee = max(min_fee, fee)

    return {
        "grossAmount": amount,
        "feeAmount": fee,
        "netAmount": amount - fee,
        "feeRate": rate,
        "feePercentage": f"{rate * 100:.1f}%",
    }


async def calculate_platform_fee(db: AsyncSession, amount) -> dict:
    rate = await get_commission_rate(db)
    return compute_platform_fee(amount, rate)
