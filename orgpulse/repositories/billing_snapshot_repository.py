"""Persistence of the synced billing snapshot.

Each save is a full replace of the four record tables plus the single
sync-metadata row, inside one transaction.
"""

import logging
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from orgpulse.models.shared import utc_now
from orgpulse.models.stripe_cancellation import StripeCancellation
from orgpulse.models.stripe_coupon import StripeCoupon
from orgpulse.models.stripe_payment import StripePayment
from orgpulse.models.stripe_subscription import StripeSubscription
from orgpulse.models.stripe_sync_metadata import SYNC_METADATA_ID, StripeSyncMetadata, SyncStatus
from orgpulse.schemas.billing import (
    BillingSnapshot,
    CancellationRecord,
    CouponRecord,
    PaymentRecord,
    SubscriptionRecord,
)

logger = logging.getLogger(__name__)

_CENTS = Decimal("0.01")


def _to_decimal(value: float | None) -> Decimal | None:
    if value is None:
        return None
    return Decimal(str(value)).quantize(_CENTS, rounding=ROUND_HALF_UP)


def _to_float(value: Decimal | float | None) -> float | None:
    return None if value is None else float(value)


def _aware(value: datetime | None) -> datetime | None:
    """SQLite drops tzinfo; stored values are always UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


class BillingSnapshotRepository:
    """Repository for the synced billing record tables."""

    def __init__(self, db: Session):
        self.db = db

    def save(self, snapshot: BillingSnapshot) -> bool:
        """Replace the stored snapshot. Returns False (and logs) if the write fails."""
        try:
            for model in (StripeSubscription, StripePayment, StripeCancellation, StripeCoupon):
                self.db.query(model).delete()

            self.db.add_all(self._subscription_row(s) for s in snapshot.subscriptions)
            self.db.add_all(self._payment_row(p) for p in snapshot.payments)
            self.db.add_all(self._cancellation_row(c) for c in snapshot.cancellations)
            self.db.add_all(self._coupon_row(c) for c in snapshot.coupons)

            metadata = self.db.get(StripeSyncMetadata, SYNC_METADATA_ID)
            if metadata is None:
                metadata = StripeSyncMetadata(id=SYNC_METADATA_ID)
                self.db.add(metadata)
            metadata.last_synced_at = snapshot.synced_at or utc_now()
            metadata.subscriptions_count = len(snapshot.subscriptions)
            metadata.payments_count = len(snapshot.payments)
            metadata.cancellations_count = len(snapshot.cancellations)
            metadata.coupons_count = len(snapshot.coupons)
            metadata.customers_count = snapshot.customers_count
            metadata.invoices_count = snapshot.invoices_count
            metadata.sync_status = SyncStatus.SUCCESS.value
            metadata.sync_error = None

            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Failed to persist billing snapshot: %s", exc)
            return False

        logger.info(
            "Persisted billing snapshot: %d subscriptions, %d payments, %d cancellations, %d coupons",
            len(snapshot.subscriptions),
            len(snapshot.payments),
            len(snapshot.cancellations),
            len(snapshot.coupons),
        )
        return True

    def record_failure(self, error: str) -> None:
        """Mark the last sync as failed without touching the stored records."""
        try:
            metadata = self.db.get(StripeSyncMetadata, SYNC_METADATA_ID)
            if metadata is None:
                metadata = StripeSyncMetadata(id=SYNC_METADATA_ID)
                self.db.add(metadata)
            metadata.sync_status = SyncStatus.FAILED.value
            metadata.sync_error = error[:1000]
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Failed to record billing sync failure: %s", exc)

    def load(self) -> BillingSnapshot | None:
        """Load the stored snapshot, or None if no successful sync was persisted."""
        metadata = self.db.get(StripeSyncMetadata, SYNC_METADATA_ID)
        if metadata is None or metadata.last_synced_at is None:
            return None

        return BillingSnapshot(
            subscriptions=[
                self._subscription_record(row)
                for row in self.db.query(StripeSubscription).order_by(StripeSubscription.id).all()
            ],
            payments=[
                self._payment_record(row)
                for row in self.db.query(StripePayment).order_by(StripePayment.created.desc()).all()
            ],
            cancellations=[
                self._cancellation_record(row)
                for row in self.db.query(StripeCancellation)
                .order_by(StripeCancellation.canceled_at.desc())
                .all()
            ],
            coupons=[
                self._coupon_record(row)
                for row in self.db.query(StripeCoupon).order_by(StripeCoupon.id).all()
            ],
            customers_count=int(metadata.customers_count or 0),
            invoices_count=int(metadata.invoices_count or 0),
            synced_at=_aware(metadata.last_synced_at),
        )

    # --- Row mapping ---

    @staticmethod
    def _subscription_row(s: SubscriptionRecord) -> StripeSubscription:
        return StripeSubscription(
            id=s.id,
            customer_id=s.customer_id,
            customer_email=s.customer_email,
            customer_name=s.customer_name,
            status=s.status,
            plan_amount=_to_decimal(s.plan_amount),
            plan_interval=s.plan_interval,
            plan_interval_count=s.plan_interval_count,
            currency=s.currency,
            current_period_start=s.current_period_start,
            current_period_end=s.current_period_end,
            canceled_at=s.canceled_at,
            cancel_at_period_end=s.cancel_at_period_end,
            cancellation_reason=s.cancellation_reason,
            start_date=s.start_date,
            ended_at=s.ended_at,
            trial_start=s.trial_start,
            trial_end=s.trial_end,
            coupon_id=s.coupon_id,
            coupon_name=s.coupon_name,
            coupon_percent_off=_to_decimal(s.coupon_percent_off),
            coupon_amount_off=_to_decimal(s.coupon_amount_off),
            coupon_duration=s.coupon_duration,
            discounted_amount=_to_decimal(s.discounted_amount),
            subscription_metadata=dict(s.metadata),
        )

    @staticmethod
    def _subscription_record(row: StripeSubscription) -> SubscriptionRecord:
        return SubscriptionRecord(
            id=row.id,
            customer_id=row.customer_id,
            customer_email=row.customer_email,
            customer_name=row.customer_name,
            status=row.status,
            plan_amount=_to_float(row.plan_amount) or 0.0,
            plan_interval=row.plan_interval,
            plan_interval_count=row.plan_interval_count,
            currency=row.currency,
            current_period_start=_aware(row.current_period_start),
            current_period_end=_aware(row.current_period_end),
            canceled_at=_aware(row.canceled_at),
            cancel_at_period_end=bool(row.cancel_at_period_end),
            cancellation_reason=row.cancellation_reason,
            start_date=_aware(row.start_date),
            ended_at=_aware(row.ended_at),
            trial_start=_aware(row.trial_start),
            trial_end=_aware(row.trial_end),
            coupon_id=row.coupon_id,
            coupon_name=row.coupon_name,
            coupon_percent_off=_to_float(row.coupon_percent_off),
            coupon_amount_off=_to_float(row.coupon_amount_off),
            coupon_duration=row.coupon_duration,
            discounted_amount=_to_float(row.discounted_amount) or 0.0,
            metadata=row.subscription_metadata or {},
        )

    @staticmethod
    def _payment_row(p: PaymentRecord) -> StripePayment:
        return StripePayment(
            id=p.id,
            customer_id=p.customer_id,
            customer_email=p.customer_email,
            amount=_to_decimal(p.amount),
            amount_refunded=_to_decimal(p.amount_refunded),
            currency=p.currency,
            status=p.status,
            created=p.created,
            invoice_id=p.invoice_id,
            description=p.description,
            failure_message=p.failure_message,
            refunded=p.refunded,
        )

    @staticmethod
    def _payment_record(row: StripePayment) -> PaymentRecord:
        return PaymentRecord(
            id=row.id,
            customer_id=row.customer_id,
            customer_email=row.customer_email,
            amount=_to_float(row.amount) or 0.0,
            amount_refunded=_to_float(row.amount_refunded) or 0.0,
            currency=row.currency,
            status=row.status,
            created=_aware(row.created),
            invoice_id=row.invoice_id,
            description=row.description,
            failure_message=row.failure_message,
            refunded=bool(row.refunded),
        )

    @staticmethod
    def _cancellation_row(c: CancellationRecord) -> StripeCancellation:
        return StripeCancellation(
            subscription_id=c.subscription_id,
            customer_id=c.customer_id,
            customer_email=c.customer_email,
            customer_name=c.customer_name,
            canceled_at=c.canceled_at,
            cancel_at_period_end=c.cancel_at_period_end,
            reason=c.reason,
            monthly_value=_to_decimal(c.monthly_value),
            subscription_type=c.subscription_type,
            days_as_customer=c.days_as_customer,
            total_paid=_to_decimal(c.total_paid),
            last_payment_date=c.last_payment_date,
            start_date=c.start_date,
            ended_at=c.ended_at,
        )

    @staticmethod
    def _cancellation_record(row: StripeCancellation) -> CancellationRecord:
        return CancellationRecord(
            subscription_id=row.subscription_id,
            customer_id=row.customer_id,
            customer_email=row.customer_email,
            customer_name=row.customer_name,
            canceled_at=_aware(row.canceled_at),
            cancel_at_period_end=bool(row.cancel_at_period_end),
            reason=row.reason,
            monthly_value=_to_float(row.monthly_value) or 0.0,
            subscription_type=row.subscription_type,
            days_as_customer=row.days_as_customer,
            total_paid=_to_float(row.total_paid) or 0.0,
            last_payment_date=_aware(row.last_payment_date),
            start_date=_aware(row.start_date),
            ended_at=_aware(row.ended_at),
        )

    @staticmethod
    def _coupon_row(c: CouponRecord) -> StripeCoupon:
        return StripeCoupon(
            id=c.id,
            name=c.name,
            percent_off=_to_decimal(c.percent_off),
            amount_off=_to_decimal(c.amount_off),
            currency=c.currency,
            duration=c.duration,
            duration_in_months=c.duration_in_months,
            times_redeemed=c.times_redeemed,
            max_redemptions=c.max_redemptions,
            valid=c.valid,
        )

    @staticmethod
    def _coupon_record(row: StripeCoupon) -> CouponRecord:
        return CouponRecord(
            id=row.id,
            name=row.name,
            percent_off=_to_float(row.percent_off),
            amount_off=_to_float(row.amount_off),
            currency=row.currency,
            duration=row.duration,
            duration_in_months=row.duration_in_months,
            times_redeemed=row.times_redeemed,
            max_redemptions=row.max_redemptions,
            valid=bool(row.valid),
        )
