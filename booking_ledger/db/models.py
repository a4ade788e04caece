"""SQLAlchemy ORM models."""
import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from booking_ledger.core.clock import utcnow
from booking_ledger.infrastructure.database.base import Base


def generate_uuid() -> str:
    return str(uuid.uuid4())


class Wallet(Base):
    __tablename__ = "wallets"
    __table_args__ = (CheckConstraint("balance_cents >= 0", name="ck_wallets_balance_non_negative"),)

    user_id = Column(String(36), primary_key=True)
    balance_cents = Column(Integer, nullable=False, default=0)
    currency = Column(String(10), nullable=False, default="USD")
    # audit figure: balance expressed in the reference currency
    reference_balance_cents = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False, default=0)
    currency_changed_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    transactions = relationship("WalletTransaction", back_populates="wallet")


class WalletTransaction(Base):
    __tablename__ = "wallet_transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("wallets.user_id"), nullable=False, index=True)
    direction = Column(String(20), nullable=False)  # credit, debit, conversion
    amount_cents = Column(Integer, nullable=False)
    delta_cents = Column(Integer, nullable=False)
    balance_after_cents = Column(Integer, nullable=False)
    currency = Column(String(10), nullable=False)
    description = Column(String(255), nullable=False)
    reference = Column(String(64))
    original_amount_cents = Column(Integer)
    original_currency = Column(String(10))
    created_at = Column(DateTime(timezone=True), default=utcnow)

    wallet = relationship("Wallet", back_populates="transactions")


class Discount(Base):
    __tablename__ = "discounts"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    code = Column(String(50), unique=True, nullable=False, index=True)
    kind = Column(String(20), nullable=False)  # percentage, fixed
    # basis points for percentage discounts, cents for fixed ones
    value = Column(Integer, nullable=False)
    max_uses = Column(Integer, nullable=False)
    current_uses = Column(Integer, nullable=False, default=0)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    min_order_cents = Column(Integer)
    max_discount_cents = Column(Integer)
    applicable_items = Column(String(20), nullable=False, default="all")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Payment(Base):
    __tablename__ = "payments"
    __table_args__ = (Index("ix_payments_status_updated_at", "status", "updated_at"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), nullable=False, index=True)
    booking_id = Column(String(36), index=True)
    amount_cents = Column(Integer, nullable=False)
    original_amount_cents = Column(Integer, nullable=False)
    currency = Column(String(10), nullable=False, default="USD")
    status = Column(String(20), nullable=False, default="pending")  # pending, completed, failed, refunded
    method = Column(String(20), nullable=False)  # gateway, wallet
    purpose = Column(String(30), nullable=False, default="booking")  # booking, wallet_funding
    gateway_ref = Column(String(100), unique=True)
    discount_code = Column(String(50))
    failure_reason = Column(String(255))
    refund_reason = Column(Text)
    refunded_amount_cents = Column(Integer)
    gateway_refund_ref = Column(String(100))
    retry_attempted = Column(Boolean, nullable=False, default=False)
    retry_claimed_at = Column(DateTime(timezone=True))
    retried_from = Column(String(100))
    retry_attempt = Column(Integer)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
