"""
Modelos del backoffice: auditoría, subadministradores y parámetros.
"""

from datetime import datetime
from sqlalchemy import Column, String, DateTime, Text, ForeignKey, Boolean, JSON
from sqlalchemy.orm import relationship
import uuid

from bagami.core.database import Base


PERMISSIONS = (
    "dashboard",
    "users",
    "deliveries",
    "transactions",
    "withdrawals",
    "audit",
    "platform-settings",
    "topup",
    "notifications",
)


class AdminAction(Base):
    """
    Registro de auditoría de una acción del backoffice.
    """
    __tablename__ = "admin_actions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    admin_id = Column(String(36), nullable=False)  # User.id o Subadmin.id
    action = Column(String(100), nullable=False)
    target_type = Column(String(50))
    target_id = Column(String(36))
    details = Column(Text)
    ip_address = Column(String(64))
    user_agent = Column(String(500))
    created_at = Column(DateTime, default=datetime.utcnow)


class Subadmin(Base):
    """
    Operador del backoffice con un subconjunto de permisos.
    """
    __tablename__ = "subadmins"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    name = Column(String(255))
    role_title = Column(String(100))
    permissions = Column(JSON, default=list)
    is_active = Column(Boolean, default=True)
    created_by_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    created_by = relationship("User")


class PlatformSetting(Base):
    """
    Parámetro clave/valor editable desde el backoffice (ej. commission_rate).
    """
    __tablename__ = "platform_settings"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    key = Column(String(100), unique=True, nullable=False)
    value = Column(String(255), nullable=False)
    description = Column(Text)
    updated_by = Column(String(36))
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
