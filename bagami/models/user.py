"""
Modelo User - Usuarios de la plataforma.

Un usuario publica solicitudes de envío u ofertas de espacio, conversa
con otros usuarios y paga desde su wallet. Los administradores también
son usuarios (role = admin / superadmin).
"""

from sqlalchemy import Column, String, DateTime, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid

from bagami.core.database import Base


ADMIN_ROLES = ("admin", "superadmin")


class User(Base):
    """
    Representa un usuario de Bagami.
    """
    __tablename__ = "users"

    # === Identificación ===
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255))
    email = Column(String(255), unique=True, nullable=True)
    phone = Column(String(50), comment="Teléfono sin indicativo")
    country_code = Column(String(10), comment="Indicativo, ej. +237")
    country = Column(String(100))

    # === Autenticación ===
    password_hash = Column(String(255), nullable=True)
    role = Column(String(20), default="user", comment="user, admin, superadmin")

    # === Estado ===
    is_active = Column(Boolean, default=True, comment="False = cuenta suspendida")
    language = Column(String(10), default="fr")

    # === Timestamps ===
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # === Relaciones ===
    wallet = relationship("Wallet", back_populates="user", uselist=False, cascade="all, delete-orphan")
    transactions = relationship("Transaction", back_populates="user", cascade="all, delete-orphan")
    id_documents = relationship("IdDocument", back_populates="user", cascade="all, delete-orphan")
    deliveries = relationship("Delivery", back_populates="sender", foreign_keys="Delivery.sender_id")

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    @property
    def full_phone(self) -> str | None:
        if not self.phone:
            return None
        return f"{self.country_code or ''}{self.phone}"

    def __repr__(self):
        return f"<User {self.name or self.email or self.id[:8]}>"


class IdDocument(Base):
    """
    Documento de identidad subido por un usuario para verificación.
    """
    __tablename__ = "id_documents"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    document_type = Column(String(20), nullable=False)  # national_id, passport
    front_image_path = Column(String(500))
    back_image_path = Column(String(500))
    verification_status = Column(String(20), default="pending")  # pending, approved, rejected
    uploaded_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="id_documents")

    def __repr__(self):
        return f"<IdDocument {self.document_type} {self.verification_status}>"
