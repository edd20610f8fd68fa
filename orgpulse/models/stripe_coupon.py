"""Synced payments-provider coupon."""

from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, Integer, Numeric, String, func

from orgpulse.core.database import Base


class CouponDuration(str, Enum):
    FOREVER = "forever"
    ONCE = "once"
    REPEATING = "repeating"


class StripeCoupon(Base):
    __tablename__ = "stripe_coupons"

    id = Column(String(255), primary_key=True)
    name = Column(String(255), nullable=True)
    percent_off = Column(Numeric(5, 2), nullable=True)
    amount_off = Column(Numeric(10, 2), nullable=True)
    currency = Column(String(3), nullable=True)
    duration = Column(String(20), nullable=False, default=CouponDuration.ONCE.value)
    duration_in_months = Column(Integer, nullable=True)
    times_redeemed = Column(Integer, nullable=False, default=0)
    max_redemptions = Column(Integer, nullable=True)
    valid = Column(Boolean, nullable=False, default=True)
    synced_at = Column(DateTime(timezone=True), server_default=func.now())
