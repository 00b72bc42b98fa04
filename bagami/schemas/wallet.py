"""
Esquemas del wallet y de la comisión de la plataforma.
"""

from pydantic import Field, field_validator
from typing import Optional, Literal

from bagami.schemas.common import CamelModel


class WalletMovementRequest(CamelModel):
    """Body de /api/wallet/credit y /api/wallet/debit."""
    amount: int = Field(..., gt=0)
    description: str = Field(..., min_length=1)
    category: str = "General"
    reference_id: Optional[str] = None
    metadata: Optional[dict] = None


# Categorías que solo escriben los flujos del servidor
RESERVED_CATEGORIES = ("Withdrawal", "Delivery Income", "Bonus")


class RecordTransactionRequest(WalletMovementRequest):
    type: Literal["credit", "debit"]
    status: Literal["completed"] = "completed"

    @field_validator("category")
    @classmethod
    def category_not_reserved(cls, value: str) -> str:
        if value in RESERVED_CATEGORIES:
            raise ValueError(f"La categoría {value} no se puede registrar manualmente")
        return value


class AddMoneyRequest(CamelModel):
    amount: int
    payment_method: Optional[str] = None


class WithdrawRequest(CamelModel):
    amount: int = Field(..., gt=0)
    phone_number: Optional[str] = None
    description: Optional[str] = None
