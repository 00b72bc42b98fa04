"""
Modelos de publicaciones de envío y reseñas.
"""

from datetime import datetime
from sqlalchemy import Column, String, DateTime, Text, ForeignKey, Integer, Float
from sqlalchemy.orm import relationship
import uuid

from bagami.core.database import Base


DELIVERY_STATUSES = ("PENDING", "INACTIVE", "IN_PROGRESS", "DELIVERED", "CANCELLED")


class Delivery(Base):
    """
    Publicación de un usuario.

    type = request: alguien necesita enviar algo.
    type = offer: un viajero ofrece espacio en su equipaje.
    """
    __tablename__ = "deliveries"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    type = Column(String(10), nullable=False)  # request, offer
    title = Column(String(255), nullable=False)
    description = Column(Text)
    weight = Column(Float, nullable=True)  # kg
    price = Column(Float, nullable=True)
    currency = Column(String(10), default="XOF")

    from_country = Column(String(100))
    from_city = Column(String(100))
    to_country = Column(String(100))
    to_city = Column(String(100))
    departure_date = Column(DateTime, nullable=True)
    arrival_date = Column(DateTime, nullable=True)

    status = Column(String(20), default="PENDING")
    sender_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    receiver_id = Column(String(36), ForeignKey("users.id"), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    deleted_at = Column(DateTime, nullable=True)  # soft delete

    # Relaciones
    sender = relationship("User", back_populates="deliveries", foreign_keys=[sender_id])
    receiver = relationship("User", foreign_keys=[receiver_id])
    conversations = relationship("Conversation", back_populates="delivery")

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def __repr__(self):
        return f"<Delivery {self.type} {self.title}>"


class Review(Base):
    """
    Calificación que un usuario deja a otro después de una entrega.
    """
    __tablename__ = "reviews"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    rating = Column(Integer, nullable=False)  # 1-5
    comment = Column(Text, nullable=True)
    reviewer_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    reviewee_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    delivery_id = Column(String(36), ForeignKey("deliveries.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    reviewer = relationship("User", foreign_keys=[reviewer_id])
    reviewee = relationship("User", foreign_keys=[reviewee_id])
    delivery = relationship("Delivery")
