"""
Endpoint de cálculo de la comisión de la plataforma.
"""

import math

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from bagami.core.database import get_db
from bagami.core.exceptions import ValidationError
from bagami.services import platform_fee_service

router = APIRouter()


@router.post("/calculate")
async def calculate(request: Request, db: AsyncSession = Depends(get_db)):
    """
    Body: {"amount": number}. Responde 400 si el monto falta o no es un número finito.
    """
    try:
        body = await request.json()
    except ValueError:
        body = None

    amount = body.get("amount") if isinstance(body, dict) else None
    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        raise ValidationError("Se requiere un monto válido")
    if not amount or not math.isfinite(amount):
        raise ValidationError("Se requiere un monto válido")

    result = await platform_fee_service.calculate_platform_fee(db, amount)
    return {"success": True, **result}
