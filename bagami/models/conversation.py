"""
Modelo de Conversación y Mensajes.

Los mensajes tipados (offer, payment, deliveryConfirmation, system) guardan
su payload como JSON serializado en `content`.
"""

from datetime import datetime
from sqlalchemy import Column, String, DateTime, Text, ForeignKey, Boolean, JSON
from sqlalchemy.orm import relationship
import uuid

from bagami.core.database import Base


MESSAGE_TYPES = ("text", "offer", "payment", "deliveryConfirmation", "system")


class Conversation(Base):
    """
    Chat entre dos usuarios a propósito de una publicación.
    """
    __tablename__ = "conversations"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    delivery_id = Column(String(36), ForeignKey("deliveries.id"), nullable=False)
    participant1_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    participant2_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    last_message_at = Column(DateTime, default=datetime.utcnow)
    # Estado de intentos del código de entrega
    extra_data = Column(JSON, default=dict)

    # Relaciones
    delivery = relationship("Delivery", back_populates="conversations")
    participant1 = relationship("User", foreign_keys=[participant1_id])
    participant2 = relationship("User", foreign_keys=[participant2_id])
    messages = relationship("Message", back_populates="conversation", order_by="Message.created_at")

    def has_participant(self, user_id: str) -> bool:
        return user_id in (self.participant1_id, self.participant2_id)

    def other_participant_id(self, user_id: str) -> str:
        return self.participant2_id if self.participant1_id == user_id else self.participant1_id


class Message(Base):
    """
    Un mensaje individual en una conversación.
    """
    __tablename__ = "messages"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    conversation_id = Column(String(36), ForeignKey("conversations.id"), nullable=False)
    sender_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    content = Column(Text, nullable=False)
    message_type = Column(String(30), default="text")
    is_read = Column(Boolean, default=False)
    read_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relación
    conversation = relationship("Conversation", back_populates="messages")
    sender = relationship("User")
