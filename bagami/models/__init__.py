"""
Modelos de base de datos.
"""

from bagami.models.user import User, IdDocument
from bagami.models.wallet import Wallet, Transaction
from bagami.models.delivery import Delivery, Review
from bagami.models.conversation import Conversation, Message
from bagami.models.admin import AdminAction, Subadmin, PlatformSetting
from bagami.models.notification import Notification

__all__ = [
    "User",
    "IdDocument",
    "Wallet",
    "Transaction",
    "Delivery",
    "Review",
    "Conversation",
    "Message",
    "AdminAction",
    "Subadmin",
    "PlatformSetting",
    "Notification",
]
