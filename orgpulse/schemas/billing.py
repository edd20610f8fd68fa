"""Billing records synced from the payments provider and the metrics built from them."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# --- Records ---


class SubscriptionRecord(CamelModel):
    id: str
    customer_id: str
    customer_email: str | None = None
    customer_name: str | None = None
    status: str
    plan_amount: float = 0.0
    plan_interval: str = "month"
    plan_interval_count: int = 1
    currency: str = "usd"
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None
    canceled_at: datetime | None = None
    cancel_at_period_end: bool = False
    cancellation_reason: str | None = None
    start_date: datetime
    ended_at: datetime | None = None
    trial_start: datetime | None = None
    trial_end: datetime | None = None
    coupon_id: str | None = None
    coupon_name: str | None = None
    coupon_percent_off: float | None = None
    coupon_amount_off: float | None = None
    coupon_duration: str | None = None
    discounted_amount: float = 0.0
    metadata: dict[str, Any] = Field(default_factory=dict)


class PaymentRecord(CamelModel):
    id: str
    customer_id: str
    customer_email: str | None = None
    amount: float = 0.0
    amount_refunded: float = 0.0
    currency: str = "usd"
    status: str
    created: datetime
    invoice_id: str | None = None
    description: str | None = None
    failure_message: str | None = None
    refunded: bool = False


class CancellationRecord(CamelModel):
    subscription_id: str
    customer_id: str
    customer_email: str | None = None
    customer_name: str | None = None
    canceled_at: datetime
    cancel_at_period_end: bool = False
    reason: str | None = None
    monthly_value: float = 0.0
    subscription_type: str = "individual"
    days_as_customer: int = 0
    total_paid: float = 0.0
    last_payment_date: datetime | None = None
    start_date: datetime
    ended_at: datetime | None = None


class CouponRecord(CamelModel):
    id: str
    name: str | None = None
    percent_off: float | None = None
    amount_off: float | None = None
    currency: str | None = None
    duration: str = "once"
    duration_in_months: int | None = None
    times_redeemed: int = 0
    max_redemptions: int | None = None
    valid: bool = True


class BillingSnapshot(CamelModel):
    """The full working set produced by one sync and read by the metrics engine."""

    subscriptions: list[SubscriptionRecord] = Field(default_factory=list)
    payments: list[PaymentRecord] = Field(default_factory=list)
    cancellations: list[CancellationRecord] = Field(default_factory=list)
    coupons: list[CouponRecord] = Field(default_factory=list)
    customers_count: int = 0
    invoices_count: int = 0
    synced_at: datetime | None = None

    @property
    def has_data(self) -> bool:
        return self.synced_at is not None and len(self.subscriptions) > 0


# --- Metrics ---


class BillingMetrics(CamelModel):
    mrr: float
    arr: float
    lifetime_revenue: float
    active_subscriptions: int
    canceled_this_month: int
    churn_rate: float
    revenue_lost_this_month: float
    avg_customer_lifetime: int
    total_customers: int
    paying_customers: int
    beta_testers: int
    discounted_customers: int
    actual_revenue: float
    potential_revenue: float
    discounted_revenue: float
    past_due_subscriptions: int
    failed_payments_this_month: int


class MonthlyCancellations(CamelModel):
    month: str
    count: int
    revenue_lost: float


class CancellationAnalysis(CamelModel):
    recent_cancellations: list[CancellationRecord]
    cancellations_this_month: int
    revenue_lost_this_month: float
    avg_customer_lifetime_days: int
    churn_rate: float
    cancellations_by_month: list[MonthlyCancellations]
    early_churn: int
    late_churn: int
    beta_tester_churn: int
    paying_customer_churn: int


class RetentionMetrics(CamelModel):
    retention_30_day: float
    retention_90_day: float
    retention_6_month: float
    retention_12_month: float
    monthly_churn_rate: float
    avg_customer_lifetime_days: int
    avg_revenue_per_customer: float
    customers_at_risk: int
    revenue_at_risk: float


class RetentionCurvePoint(CamelModel):
    months_since_signup: int
    customers_total: int
    customers_remaining: int
    retention_percent: float


class CohortData(CamelModel):
    cohort_month: str
    signup_count: int
    retention_by_month: list[float]


class ChurnReason(CamelModel):
    reason: str
    count: int
    percent_of_churn: float
    revenue_impact: float


class SegmentRetention(CamelModel):
    segment_name: str
    count: int
    retention_rate: float
    churn_rate: float
    avg_lifetime_days: int
    avg_ltv: float = Field(alias="avgLTV")


class AtRiskCustomer(CamelModel):
    subscription_id: str
    customer_id: str
    customer_name: str | None = None
    customer_email: str | None = None
    monthly_value: float
    risk_score: int
    risk_level: str
    risk_factors: list[str]
    suggested_actions: list[str]


class RetentionAnalysis(CamelModel):
    metrics: RetentionMetrics
    retention_curve: list[RetentionCurvePoint]
    cohort_data: list[CohortData]
    churn_reasons: list[ChurnReason]
    segment_retention: list[SegmentRetention]
    at_risk_customers: list[AtRiskCustomer]
    active_cancellations: list[SubscriptionRecord]


class CouponUsage(CamelModel):
    coupon: CouponRecord
    customer_count: int
    revenue_impact: float


class SyncResult(CamelModel):
    success: bool
    customers: int = 0
    subscriptions: int = 0
    payments: int = 0
    cancellations: int = 0
    invoices: int = 0
    coupons: int = 0
    error: str | None = None
    synced_at: datetime
