"""
Esquemas Pydantic de Bagami.
"""

from bagami.schemas.auth import RegisterRequest, LoginRequest, ProfileUpdate
from bagami.schemas.delivery import DeliveryCreate, DeliveryUpdate, DeletionEligibility
from bagami.schemas.conversation import OfferCreate, PaymentRequest, ConfirmDeliveryRequest

__all__ = [
    "RegisterRequest",
    "LoginRequest",
    "ProfileUpdate",
    "DeliveryCreate",
    "DeliveryUpdate",
    "DeletionEligibility",
    "OfferCreate",
    "PaymentRequest",
    "ConfirmDeliveryRequest",
]
