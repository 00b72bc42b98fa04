"""
Esquemas de publicaciones (solicitudes de envío y ofertas de viaje).
"""

from pydantic import Field, field_validator, model_validator
from typing import Optional, Literal
from datetime import datetime, timezone

from bagami.schemas.common import CamelModel


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Las columnas DateTime guardan UTC sin zona horaria."""
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class DeliveryCreate(CamelModel):
    """
    postType = delivery -> solicitud (type request)
    postType = travel   -> oferta de espacio (type offer)
    """
    post_type: Literal["delivery", "travel"]
    item_type: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    weight: Optional[float] = Field(None, ge=0)
    price: Optional[float] = Field(None, ge=0)
    currency: str = "XOF"
    from_country: str
    from_city: str
    to_country: str
    to_city: str
    departure_date: Optional[datetime] = None
    arrival_date: Optional[datetime] = None

    normalize_dates = field_validator("departure_date", "arrival_date")(to_naive_utc)

    @model_validator(mode="after")
    def required_by_type(self):
        if self.post_type == "delivery":
            if not self.item_type or not self.description or not self.arrival_date:
                raise ValueError("Una solicitud requiere itemType, description y arrivalDate")
        elif not self.departure_date:
            raise ValueError("Una oferta de viaje requiere departureDate")
        return self


class DeliveryUpdate(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    weight: Optional[float] = Field(None, ge=0)
    price: Optional[float] = Field(None, ge=0)
    currency: Optional[str] = None
    from_country: Optional[str] = None
    from_city: Optional[str] = None
    to_country: Optional[str] = None
    to_city: Optional[str] = None
    departure_date: Optional[datetime] = None
    arrival_date: Optional[datetime] = None

    normalize_dates = field_validator("departure_date", "arrival_date")(to_naive_utc)


class DeliveryStatusUpdate(CamelModel):
    status: Literal["PENDING", "INACTIVE"]


class DeletionEligibility(CamelModel):
    can_delete: bool
    reason: Optional[Literal["paymentPending", "verificationError"]] = None
