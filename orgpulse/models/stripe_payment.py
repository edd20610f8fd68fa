"""Synced payments-provider charge."""

from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, Numeric, String, Text, func

from orgpulse.core.database import Base


class PaymentStatus(str, Enum):
    SUCCEEDED = "succeeded"
    PENDING = "pending"
    FAILED = "failed"


class StripePayment(Base):
    __tablename__ = "stripe_payments"

    id = Column(String(255), primary_key=True)
    customer_id = Column(String(255), nullable=False, index=True)
    customer_email = Column(String(255), nullable=True)
    amount = Column(Numeric(10, 2), nullable=False, default=0)
    amount_refunded = Column(Numeric(10, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="usd")
    status = Column(String(20), nullable=False, index=True)
    created = Column(DateTime(timezone=True), nullable=False, index=True)
    invoice_id = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    failure_message = Column(Text, nullable=True)
    refunded = Column(Boolean, nullable=False, default=False)
    synced_at = Column(DateTime(timezone=True), server_default=func.now())
