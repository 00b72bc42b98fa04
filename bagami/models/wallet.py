"""
Modelos del wallet: saldo por usuario y libro de transacciones.

Los montos son enteros en la unidad de la moneda (XOF no tiene decimales).
"""

from sqlalchemy import Column, String, DateTime, ForeignKey, Integer, Text, JSON
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid

from bagami.core.database import Base


class Wallet(Base):
    __tablename__ = "wallets"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), unique=True, nullable=False)
    balance = Column(Integer, nullable=False, default=0)
    currency = Column(String(10), default="XOF")
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="wallet")

    def __repr__(self):
        return f"<Wallet {self.user_id[:8]} {self.balance} {self.currency}>"


class Transaction(Base):
    """
    Movimiento del wallet.

    type: credit, debit
    status: completed, pending, failed
    category: Delivery Payment, Delivery Income, Withdrawal, Bonus, General
    """
    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    type = Column(String(10), nullable=False)
    amount = Column(Integer, nullable=False)
    currency = Column(String(10), default="XOF")
    status = Column(String(20), default="completed")
    description = Column(Text, nullable=False)
    category = Column(String(50), default="General")
    reference_id = Column(String(100))
    # "metadata" está reservado por el declarative de SQLAlchemy
    extra_data = Column("metadata", JSON, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="transactions")

    def __repr__(self):
        return f"<Transaction {self.type} {self.amount} {self.status}>"
