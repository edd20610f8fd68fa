"""Cancellation derived from a canceled subscription at sync time."""

from sqlalchemy import Boolean, Column, DateTime, Integer, Numeric, String, func

from orgpulse.core.database import Base


class StripeCancellation(Base):
    __tablename__ = "stripe_cancellations"

    subscription_id = Column(String(255), primary_key=True)
    customer_id = Column(String(255), nullable=False)
    customer_email = Column(String(255), nullable=True)
    customer_name = Column(String(255), nullable=True)
    canceled_at = Column(DateTime(timezone=True), nullable=False, index=True)
    cancel_at_period_end = Column(Boolean, nullable=False, default=False)
    reason = Column(String(255), nullable=True)
    monthly_value = Column(Numeric(10, 2), nullable=False, default=0)
    subscription_type = Column(String(20), nullable=False, default="individual")
    days_as_customer = Column(Integer, nullable=False, default=0)
    total_paid = Column(Numeric(10, 2), nullable=False, default=0)
    last_payment_date = Column(DateTime(timezone=True), nullable=True)
    start_date = Column(DateTime(timezone=True), nullable=True)
    ended_at = Column(DateTime(timezone=True), nullable=True)
    synced_at = Column(DateTime(timezone=True), server_default=func.now())
