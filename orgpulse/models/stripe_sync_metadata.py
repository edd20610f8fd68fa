"""Single-row bookkeeping for the last billing sync."""

from enum import Enum

from sqlalchemy import Column, DateTime, Integer, String, Text, func

from orgpulse.core.database import Base

SYNC_METADATA_ID = 1


class SyncStatus(str, Enum):
    NEVER = "never"
    SUCCESS = "success"
    FAILED = "failed"


class StripeSyncMetadata(Base):
    __tablename__ = "stripe_sync_metadata"

    id = Column(Integer, primary_key=True, default=SYNC_METADATA_ID)
    last_synced_at = Column(DateTime(timezone=True), nullable=True)
    subscriptions_count = Column(Integer, nullable=False, default=0)
    payments_count = Column(Integer, nullable=False, default=0)
    cancellations_count = Column(Integer, nullable=False, default=0)
    customers_count = Column(Integer, nullable=False, default=0)
    invoices_count = Column(Integer, nullable=False, default=0)
    coupons_count = Column(Integer, nullable=False, default=0)
    sync_status = Column(String(20), nullable=False, default=SyncStatus.NEVER.value)
    sync_error = Column(Text, nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
