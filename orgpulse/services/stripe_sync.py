"""Pull billing records from Stripe and normalise them into a snapshot."""

import asyncio
import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from orgpulse.core.config import settings
from orgpulse.core.errors import ProviderNotConfiguredError
from orgpulse.models.stripe_payment import PaymentStatus
from orgpulse.schemas.billing import BillingSnapshot, CouponRecord, PaymentRecord, SubscriptionRecord
from orgpulse.services.billing_metrics import derive_cancellations

logger = logging.getLogger(__name__)

PAGE_SIZE = 100
HISTORY_DAYS = 365
WEEKS_PER_MONTH = 4.33
MISSING_KEY_MESSAGE = "Stripe API key not configured. Add STRIPE_SECRET_KEY to environment variables."


def _plain(obj: Any) -> dict[str, Any]:
    if obj is None:
        return {}
    if isinstance(obj, dict):
        return obj
    return obj.to_dict()


def _object_id(value: Any) -> str | None:
    """Stripe references are either an id string or an expanded object."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return _plain(value).get("id")


def _timestamp(value: int | None) -> datetime | None:
    return datetime.fromtimestamp(value, UTC) if value else None


def _minor(value: int | None) -> float:
    return (value or 0) / 100


def monthly_amount(price: dict[str, Any]) -> float:
    """Convert a recurring price to a monthly amount in major units."""
    amount = _minor(price.get("unit_amount"))
    interval = (price.get("recurring") or {}).get("interval")
    if interval == "year":
        return amount / 12
    if interval == "week":
        return amount * WEEKS_PER_MONTH
    return amount


def apply_discount(amount: float, coupon: dict[str, Any] | None) -> float:
    """Percent-off wins over amount-off; amount-off never drives the total below zero."""
    if not coupon:
        return amount
    if coupon.get("percent_off"):
        return amount * (1 - coupon["percent_off"] / 100)
    if coupon.get("amount_off"):
        return max(0.0, amount - _minor(coupon["amount_off"]))
    return amount


def _subscription_coupon(raw: dict[str, Any]) -> dict[str, Any] | None:
    discounts = raw.get("discounts") or []
    discount = discounts[0] if discounts else raw.get("discount")
    if not discount or isinstance(discount, str):
        return None
    coupon = _plain(discount).get("coupon")
    if not coupon or isinstance(coupon, str):
        return None
    return _plain(coupon)


def normalize_subscription(raw: dict[str, Any]) -> SubscriptionRecord:
    customer = raw.get("customer")
    customer_obj = _plain(customer) if customer and not isinstance(customer, str) else {}
    items = (raw.get("items") or {}).get("data") or []
    item = _plain(items[0]) if items else {}
    price = _plain(item.get("price"))
    recurring = price.get("recurring") or {}
    coupon = _subscription_coupon(raw)
    plan_amount = monthly_amount(price)
    metadata = raw.get("metadata") or {}

    return SubscriptionRecord(
        id=raw["id"],
        customer_id=_object_id(customer) or "",
        customer_email=customer_obj.get("email") or None,
        customer_name=customer_obj.get("name"),
        status=raw["status"],
        plan_amount=plan_amount,
        plan_interval=recurring.get("interval") or "month",
        plan_interval_count=recurring.get("interval_count") or 1,
        currency=raw.get("currency") or "usd",
        current_period_start=_timestamp(raw.get("current_period_start") or item.get("current_period_start")),
        current_period_end=_timestamp(raw.get("current_period_end") or item.get("current_period_end")),
        canceled_at=_timestamp(raw.get("canceled_at")),
        cancel_at_period_end=bool(raw.get("cancel_at_period_end")),
        cancellation_reason=(raw.get("cancellation_details") or {}).get("reason")
        or metadata.get("cancellation_reason"),
        start_date=_timestamp(raw["start_date"]),
        ended_at=_timestamp(raw.get("ended_at")),
        trial_start=_timestamp(raw.get("trial_start")),
        trial_end=_timestamp(raw.get("trial_end")),
        coupon_id=coupon.get("id") if coupon else None,
        coupon_name=coupon.get("name") or None if coupon else None,
        coupon_percent_off=coupon.get("percent_off") or None if coupon else None,
        coupon_amount_off=_minor(coupon["amount_off"]) if coupon and coupon.get("amount_off") else None,
        coupon_duration=coupon.get("duration") if coupon else None,
        discounted_amount=apply_discount(plan_amount, coupon),
        metadata=dict(metadata),
    )


def normalize_charge(raw: dict[str, Any]) -> PaymentRecord:
    status = raw.get("status")
    if status not in (PaymentStatus.SUCCEEDED.value, PaymentStatus.PENDING.value):
        status = PaymentStatus.FAILED.value

    return PaymentRecord(
        id=raw["id"],
        customer_id=_object_id(raw.get("customer")) or "",
        customer_email=(raw.get("billing_details") or {}).get("email") or None,
        amount=_minor(raw.get("amount")),
        amount_refunded=_minor(raw.get("amount_refunded")),
        currency=raw.get("currency") or "usd",
        status=status,
        created=_timestamp(raw["created"]),
        invoice_id=_object_id(raw.get("invoice")),
        description=raw.get("description"),
        failure_message=raw.get("failure_message"),
        refunded=bool(raw.get("refunded")),
    )


def normalize_coupon(raw: dict[str, Any]) -> CouponRecord:
    return CouponRecord(
        id=raw["id"],
        name=raw.get("name"),
        percent_off=raw.get("percent_off"),
        amount_off=_minor(raw["amount_off"]) if raw.get("amount_off") else None,
        currency=raw.get("currency"),
        duration=raw.get("duration") or "once",
        duration_in_months=raw.get("duration_in_months"),
        times_redeemed=raw.get("times_redeemed") or 0,
        max_redemptions=raw.get("max_redemptions"),
        valid=bool(raw.get("valid", True)),
    )


class StripeBillingProvider:
    """Reads customers, subscriptions, charges, invoices and coupons from Stripe."""

    def __init__(self, api_key: str | None = None):
        self.api_key = api_key if api_key is not None else settings.STRIPE_SECRET_KEY
        self._stripe: Any = None

    @property
    def stripe(self) -> Any:
        """Lazy-load stripe module."""
        if self._stripe is None:
            try:
                import stripe

                stripe.api_key = self.api_key
                self._stripe = stripe
            except ImportError as e:
                raise ImportError("stripe package not installed. Run: pip install stripe") from e
        return self._stripe

    def _list(self, resource: Any, **params: Any) -> list[dict[str, Any]]:
        page = resource.list(limit=PAGE_SIZE, **params)
        return [_plain(obj) for obj in page.auto_paging_iter()]

    async def fetch_snapshot(self, now: datetime | None = None) -> BillingSnapshot:
        """Fetch everything needed for the billing metrics in one pass.

        Charges and invoices are limited to the trailing year; the five list
        calls run concurrently in worker threads.
        """
        if not self.api_key:
            raise ProviderNotConfiguredError(MISSING_KEY_MESSAGE)

        now = now or datetime.now(UTC)
        since = int((now - timedelta(days=HISTORY_DAYS)).timestamp())
        stripe = self.stripe
        logger.info("Starting Stripe data sync")

        customers, raw_subscriptions, raw_charges, invoices, raw_coupons = await asyncio.gather(
            asyncio.to_thread(self._list, stripe.Customer),
            asyncio.to_thread(
                self._list,
                stripe.Subscription,
                status="all",
                expand=["data.customer", "data.discounts", "data.discounts.coupon"],
            ),
            asyncio.to_thread(self._list, stripe.Charge, created={"gte": since}),
            asyncio.to_thread(self._list, stripe.Invoice, created={"gte": since}),
            asyncio.to_thread(self._list, stripe.Coupon),
        )

        subscriptions = [normalize_subscription(s) for s in raw_subscriptions]
        payments = [normalize_charge(c) for c in raw_charges]
        coupons = [normalize_coupon(c) for c in raw_coupons]
        cancellations = derive_cancellations(subscriptions, payments)

        logger.info(
            "Fetched %d customers, %d subscriptions, %d payments, %d invoices, %d coupons (%d cancellations)",
            len(customers),
            len(subscriptions),
            len(payments),
            len(invoices),
            len(coupons),
            len(cancellations),
        )

        return BillingSnapshot(
            subscriptions=subscriptions,
            payments=payments,
            cancellations=cancellations,
            coupons=coupons,
            customers_count=len(customers),
            invoices_count=len(invoices),
            synced_at=datetime.now(UTC),
        )
