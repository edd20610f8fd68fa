"""Synced payments-provider subscription."""

from enum import Enum

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, Numeric, String, func

from orgpulse.core.database import Base


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    TRIALING = "trialing"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    UNPAID = "unpaid"
    PAUSED = "paused"


class StripeSubscription(Base):
    __tablename__ = "stripe_subscriptions"

    id = Column(String(255), primary_key=True)
    customer_id = Column(String(255), nullable=False, index=True)
    customer_email = Column(String(255), nullable=True)
    customer_name = Column(String(255), nullable=True)
    status = Column(String(30), nullable=False, index=True)
    plan_amount = Column(Numeric(10, 2), nullable=False, default=0)
    plan_interval = Column(String(10), nullable=False, default="month")
    plan_interval_count = Column(Integer, nullable=False, default=1)
    currency = Column(String(3), nullable=False, default="usd")
    current_period_start = Column(DateTime(timezone=True), nullable=True)
    current_period_end = Column(DateTime(timezone=True), nullable=True)
    canceled_at = Column(DateTime(timezone=True), nullable=True, index=True)
    cancel_at_period_end = Column(Boolean, nullable=False, default=False)
    cancellation_reason = Column(String(255), nullable=True)
    start_date = Column(DateTime(timezone=True), nullable=True)
    ended_at = Column(DateTime(timezone=True), nullable=True)
    trial_start = Column(DateTime(timezone=True), nullable=True)
    trial_end = Column(DateTime(timezone=True), nullable=True)
    coupon_id = Column(String(255), nullable=True)
    coupon_name = Column(String(255), nullable=True)
    coupon_percent_off = Column(Numeric(5, 2), nullable=True)
    coupon_amount_off = Column(Numeric(10, 2), nullable=True)
    coupon_duration = Column(String(20), nullable=True)
    discounted_amount = Column(Numeric(10, 2), nullable=False, default=0)
    subscription_metadata = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
