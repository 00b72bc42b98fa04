"""
Esquemas de conversaciones, mensajes, ofertas y liquidación de pagos.
"""

from pydantic import Field
from typing import Optional, Literal

from bagami.schemas.common import CamelModel


class ConversationCreate(CamelModel):
    delivery_id: str
    other_user_id: str


class MessageCreate(CamelModel):
    content: str = Field(..., min_length=1)
    message_type: Literal["text", "offer", "payment", "deliveryConfirmation", "system"] = "text"


class OfferCreate(CamelModel):
    price: float = Field(..., gt=0)
    currency: str = "XOF"
    message: Optional[str] = None


class OfferRespond(CamelModel):
    message_id: str
    action: Literal["accept", "reject"]


class PaymentRequest(CamelModel):
    """
    direct_payment_amount: monto pagado fuera del wallet (mobile money,
    tarjeta, transferencia) para cubrir el faltante.
    """
    direct_payment_amount: Optional[int] = Field(None, gt=0)
    direct_payment_method: Optional[str] = None


class ConfirmDeliveryRequest(CamelModel):
    code: str = Field(..., min_length=1, max_length=12)


class ReviewCreate(CamelModel):
    delivery_id: str
    reviewee_id: str
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None
