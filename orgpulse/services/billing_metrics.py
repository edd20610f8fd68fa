"""Revenue, churn and retention metrics over a synced billing snapshot.

All functions are pure: they read a ``BillingSnapshot`` and take ``now`` as an
argument so month boundaries are deterministic. Month boundaries are UTC
calendar months.
"""

import csv
import io
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

from orgpulse.models.stripe_payment import PaymentStatus
from orgpulse.models.stripe_subscription import SubscriptionStatus
from orgpulse.schemas.billing import (
    AtRiskCustomer,
    BillingMetrics,
    BillingSnapshot,
    CancellationAnalysis,
    CancellationRecord,
    ChurnReason,
    CohortData,
    CouponUsage,
    MonthlyCancellations,
    PaymentRecord,
    RetentionAnalysis,
    RetentionCurvePoint,
    RetentionMetrics,
    SegmentRetention,
    SubscriptionRecord,
)

RECENT_CANCELLATIONS_LIMIT = 50
HISTORY_MONTHS = 12
EARLY_CHURN_DAYS = 30
LATE_CHURN_DAYS = 180
LEAGUE_PLAN_THRESHOLD = 100
RETENTION_CURVE_MONTHS = 12
DAYS_PER_MONTH = 30
FAILED_PAYMENT_LOOKBACK_DAYS = 30
TRIAL_ENDING_DAYS = 7
NOT_SPECIFIED_REASON = "not_specified"

_MONTH_ABBR = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


# --- Rounding and calendar helpers ---


def round2(value: float) -> float:
    """Round half-up to two decimal places."""
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def round_int(value: float) -> int:
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def percent(part: int | float, whole: int | float) -> float:
    return round2(part / whole * 100) if whole else 0.0


def month_start(now: datetime) -> datetime:
    return now.astimezone(UTC).replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def add_months(start: datetime, months: int) -> datetime:
    """Shift a month-start datetime by ``months`` calendar months."""
    index = start.year * 12 + (start.month - 1) + months
    return start.replace(year=index // 12, month=index % 12 + 1)


def month_label(start: datetime) -> str:
    return f"{_MONTH_ABBR[start.month - 1]} {start.year % 100:02d}"


# --- Customer segmentation ---


def is_beta_tester(sub: SubscriptionRecord) -> bool:
    """Non-revenue subscription: full-discount, ``beta`` coupon or forever 100%-off."""
    percent_off = sub.coupon_percent_off
    return bool(
        percent_off == 100
        or (sub.coupon_id and "beta" in sub.coupon_id.lower())
        or (sub.coupon_duration == "forever" and percent_off and percent_off >= 100)
    )


def is_discounted(sub: SubscriptionRecord) -> bool:
    percent_off = sub.coupon_percent_off
    return bool(sub.coupon_id and percent_off and 0 < percent_off < 100)


def is_paying(sub: SubscriptionRecord) -> bool:
    percent_off = sub.coupon_percent_off
    return bool(not sub.coupon_id or (percent_off and percent_off < 100))


# --- Record listings ---


def active_subscriptions(snapshot: BillingSnapshot) -> list[SubscriptionRecord]:
    return [s for s in snapshot.subscriptions if s.status == SubscriptionStatus.ACTIVE.value]


def canceled_subscriptions(snapshot: BillingSnapshot) -> list[SubscriptionRecord]:
    return [s for s in snapshot.subscriptions if s.status == SubscriptionStatus.CANCELED.value]


def past_due_subscriptions(snapshot: BillingSnapshot) -> list[SubscriptionRecord]:
    return [s for s in snapshot.subscriptions if s.status == SubscriptionStatus.PAST_DUE.value]


def scheduled_cancellations(snapshot: BillingSnapshot) -> list[SubscriptionRecord]:
    return [s for s in active_subscriptions(snapshot) if s.cancel_at_period_end]


def beta_testers(snapshot: BillingSnapshot) -> list[SubscriptionRecord]:
    return [s for s in active_subscriptions(snapshot) if is_beta_tester(s)]


def failed_payments(snapshot: BillingSnapshot) -> list[PaymentRecord]:
    return [p for p in snapshot.payments if p.status == PaymentStatus.FAILED.value]


def customer_payments(snapshot: BillingSnapshot, customer_id: str) -> list[PaymentRecord]:
    return [p for p in snapshot.payments if p.customer_id == customer_id]


def coupon_usage(snapshot: BillingSnapshot) -> list[CouponUsage]:
    """Active-subscription redemptions and forgone revenue per coupon in use."""
    usage: dict[str, tuple[int, float]] = {}
    for sub in active_subscriptions(snapshot):
        if not sub.coupon_id:
            continue
        count, impact = usage.get(sub.coupon_id, (0, 0.0))
        usage[sub.coupon_id] = (count + 1, impact + sub.plan_amount - sub.discounted_amount)

    return [
        CouponUsage(coupon=coupon, customer_count=usage[coupon.id][0], revenue_impact=usage[coupon.id][1])
        for coupon in snapshot.coupons
        if coupon.id in usage
    ]


# --- Cancellations ---


def derive_cancellations(
    subscriptions: Sequence[SubscriptionRecord],
    payments: Sequence[PaymentRecord],
) -> list[CancellationRecord]:
    """Build one cancellation per canceled subscription, with the customer's payment history."""
    succeeded_by_customer: dict[str, list[PaymentRecord]] = {}
    for payment in payments:
        if payment.status == PaymentStatus.SUCCEEDED.value:
            succeeded_by_customer.setdefault(payment.customer_id, []).append(payment)

    cancellations = []
    for sub in subscriptions:
        if sub.status != SubscriptionStatus.CANCELED.value or sub.canceled_at is None:
            continue
        paid = succeeded_by_customer.get(sub.customer_id, [])
        last_payment = max(paid, key=lambda p: p.created, default=None)
        cancellations.append(
            CancellationRecord(
                subscription_id=sub.id,
                customer_id=sub.customer_id,
                customer_email=sub.customer_email,
                customer_name=sub.customer_name,
                canceled_at=sub.canceled_at,
                cancel_at_period_end=sub.cancel_at_period_end,
                reason=sub.cancellation_reason,
                monthly_value=sub.discounted_amount,
                subscription_type="league" if sub.plan_amount >= LEAGUE_PLAN_THRESHOLD else "individual",
                days_as_customer=(sub.canceled_at - sub.start_date) // timedelta(days=1),
                total_paid=sum(p.amount for p in paid),
                last_payment_date=last_payment.created if last_payment else None,
                start_date=sub.start_date,
                ended_at=sub.ended_at,
            )
        )
    return cancellations


def _canceled_since(snapshot: BillingSnapshot, since: datetime) -> list[CancellationRecord]:
    return [c for c in snapshot.cancellations if c.canceled_at >= since]


def _active_at(snapshot: BillingSnapshot, since: datetime) -> int:
    """Subscriptions active at ``since``: active now, or canceled on/after it."""
    return sum(
        1
        for s in snapshot.subscriptions
        if s.status == SubscriptionStatus.ACTIVE.value
        or (
            s.status == SubscriptionStatus.CANCELED.value
            and s.canceled_at is not None
            and s.canceled_at >= since
        )
    )


def churn_rate(snapshot: BillingSnapshot, now: datetime) -> float:
    start = month_start(now)
    return percent(len(_canceled_since(snapshot, start)), _active_at(snapshot, start))


def _avg_lifetime_days(cancellations: Sequence[CancellationRecord]) -> int:
    if not cancellations:
        return 0
    return round_int(sum(c.days_as_customer for c in cancellations) / len(cancellations))


def calculate_metrics(snapshot: BillingSnapshot, now: datetime) -> BillingMetrics:
    start = month_start(now)
    active = active_subscriptions(snapshot)
    canceled_this_month = _canceled_since(snapshot, start)

    mrr = sum(s.discounted_amount for s in active)
    potential_revenue = sum(s.plan_amount for s in active)

    return BillingMetrics(
        mrr=mrr,
        arr=mrr * 12,
        lifetime_revenue=sum(
            p.amount - p.amount_refunded
            for p in snapshot.payments
            if p.status == PaymentStatus.SUCCEEDED.value
        ),
        active_subscriptions=len(active),
        canceled_this_month=len(canceled_this_month),
        churn_rate=churn_rate(snapshot, now),
        revenue_lost_this_month=sum(c.monthly_value for c in canceled_this_month),
        avg_customer_lifetime=_avg_lifetime_days(snapshot.cancellations),
        total_customers=snapshot.customers_count,
        paying_customers=sum(1 for s in active if is_paying(s)),
        beta_testers=sum(1 for s in active if is_beta_tester(s)),
        discounted_customers=sum(1 for s in active if is_discounted(s)),
        actual_revenue=mrr,
        potential_revenue=potential_revenue,
        discounted_revenue=potential_revenue - mrr,
        past_due_subscriptions=len(past_due_subscriptions(snapshot)),
        failed_payments_this_month=sum(
            1
            for p in snapshot.payments
            if p.status == PaymentStatus.FAILED.value and p.created >= start
        ),
    )


def cancellations_by_month(
    cancellations: Sequence[CancellationRecord],
    now: datetime,
    months: int = HISTORY_MONTHS,
) -> list[MonthlyCancellations]:
    """Trailing calendar-month histogram, oldest month first."""
    current = month_start(now)
    history = []
    for offset in range(months - 1, -1, -1):
        start = add_months(current, -offset)
        end = add_months(start, 1)
        in_month = [c for c in cancellations if start <= c.canceled_at < end]
        history.append(
            MonthlyCancellations(
                month=month_label(start),
                count=len(in_month),
                revenue_lost=sum(c.monthly_value for c in in_month),
            )
        )
    return history


def cancellation_analysis(snapshot: BillingSnapshot, now: datetime) -> CancellationAnalysis:
    this_month = _canceled_since(snapshot, month_start(now))
    recent = sorted(snapshot.cancellations, key=lambda c: c.canceled_at, reverse=True)

    canceled_ids = {c.subscription_id for c in snapshot.cancellations}
    beta_churn = sum(
        1
        for s in snapshot.subscriptions
        if s.id in canceled_ids
        and (s.coupon_percent_off == 100 or (s.coupon_id and "beta" in s.coupon_id.lower()))
    )

    return CancellationAnalysis(
        recent_cancellations=recent[:RECENT_CANCELLATIONS_LIMIT],
        cancellations_this_month=len(this_month),
        revenue_lost_this_month=sum(c.monthly_value for c in this_month),
        avg_customer_lifetime_days=_avg_lifetime_days(snapshot.cancellations),
        churn_rate=churn_rate(snapshot, now),
        cancellations_by_month=cancellations_by_month(snapshot.cancellations, now),
        early_churn=sum(1 for c in snapshot.cancellations if c.days_as_customer < EARLY_CHURN_DAYS),
        late_churn=sum(1 for c in snapshot.cancellations if c.days_as_customer > LATE_CHURN_DAYS),
        beta_tester_churn=beta_churn,
        paying_customer_churn=len(snapshot.cancellations) - beta_churn,
    )


# --- Retention ---


def _churned_at(sub: SubscriptionRecord) -> datetime | None:
    if sub.status != SubscriptionStatus.CANCELED.value:
        return None
    return sub.canceled_at or sub.ended_at


def _retained_until(sub: SubscriptionRecord, checkpoint: datetime) -> bool:
    churned = _churned_at(sub)
    return churned is None or churned >= checkpoint


def _retention_after(subscriptions: Sequence[SubscriptionRecord], days: int, now: datetime) -> float:
    """Percent of subscriptions at least ``days`` old that were still active ``days`` after starting."""
    eligible = [s for s in subscriptions if s.start_date <= now - timedelta(days=days)]
    retained = sum(1 for s in eligible if _retained_until(s, s.start_date + timedelta(days=days)))
    return percent(retained, len(eligible))


def retention_curve(subscriptions: Sequence[SubscriptionRecord], now: datetime) -> list[RetentionCurvePoint]:
    points = []
    for months in range(RETENTION_CURVE_MONTHS + 1):
        age = timedelta(days=months * DAYS_PER_MONTH)
        eligible = [s for s in subscriptions if s.start_date <= now - age]
        if not eligible:
            continue
        remaining = sum(1 for s in eligible if _retained_until(s, s.start_date + age))
        points.append(
            RetentionCurvePoint(
                months_since_signup=months,
                customers_total=len(eligible),
                customers_remaining=remaining,
                retention_percent=percent(remaining, len(eligible)),
            )
        )
    return points


def cohort_retention(subscriptions: Sequence[SubscriptionRecord], now: datetime) -> list[CohortData]:
    """Signup-month cohorts over the trailing year with month-by-month retention."""
    current = month_start(now)
    cohorts = []
    for offset in range(HISTORY_MONTHS - 1, -1, -1):
        start = add_months(current, -offset)
        end = add_months(start, 1)
        members = [s for s in subscriptions if start <= s.start_date < end]
        if not members:
            continue
        retention = []
        for month in range(offset + 1):
            checkpoint = min(add_months(start, month + 1), now)
            retained = sum(1 for s in members if _retained_until(s, checkpoint))
            retention.append(percent(retained, len(members)))
        cohorts.append(
            CohortData(
                cohort_month=start.strftime("%Y-%m"),
                signup_count=len(members),
                retention_by_month=retention,
            )
        )
    return cohorts


def churn_reasons(cancellations: Sequence[CancellationRecord]) -> list[ChurnReason]:
    groups: dict[str, list[CancellationRecord]] = {}
    for cancellation in cancellations:
        groups.setdefault(cancellation.reason or NOT_SPECIFIED_REASON, []).append(cancellation)

    reasons = [
        ChurnReason(
            reason=reason,
            count=len(items),
            percent_of_churn=percent(len(items), len(cancellations)),
            revenue_impact=sum(c.monthly_value for c in items),
        )
        for reason, items in groups.items()
    ]
    reasons.sort(key=lambda r: r.count, reverse=True)
    return reasons


def _segment(
    name: str,
    members: Sequence[SubscriptionRecord],
    paid_by_customer: dict[str, float],
    now: datetime,
) -> SegmentRetention:
    churned = [s for s in members if _churned_at(s) is not None]
    lifetimes = [((_churned_at(s) or now) - s.start_date) // timedelta(days=1) for s in members]
    ltv = [paid_by_customer.get(s.customer_id, 0.0) for s in members]
    return SegmentRetention(
        segment_name=name,
        count=len(members),
        retention_rate=percent(len(members) - len(churned), len(members)),
        churn_rate=percent(len(churned), len(members)),
        avg_lifetime_days=round_int(sum(lifetimes) / len(members)),
        avg_ltv=round2(sum(ltv) / len(members)),
    )


def segment_retention(snapshot: BillingSnapshot, now: datetime) -> list[SegmentRetention]:
    paid_by_customer: dict[str, float] = {}
    for p in snapshot.payments:
        if p.status == PaymentStatus.SUCCEEDED.value:
            paid_by_customer[p.customer_id] = paid_by_customer.get(p.customer_id, 0.0) + p.amount - p.amount_refunded

    beta = [s for s in snapshot.subscriptions if is_beta_tester(s)]
    discounted = [s for s in snapshot.subscriptions if not is_beta_tester(s) and is_discounted(s)]
    full_price = [s for s in snapshot.subscriptions if not is_beta_tester(s) and not is_discounted(s)]

    return [
        _segment(name, members, paid_by_customer, now)
        for name, members in (("Beta Testers", beta), ("Discounted", discounted), ("Full Price", full_price))
        if members
    ]


def _risk_level(score: int) -> str:
    if score >= 60:
        return "high"
    if score >= 30:
        return "medium"
    return "low"


def at_risk_customers(snapshot: BillingSnapshot, now: datetime) -> list[AtRiskCustomer]:
    """Score active and past-due subscriptions on churn signals."""
    recent_failures: dict[str, int] = {}
    lookback = now - timedelta(days=FAILED_PAYMENT_LOOKBACK_DAYS)
    for p in failed_payments(snapshot):
        if p.created >= lookback:
            recent_failures[p.customer_id] = recent_failures.get(p.customer_id, 0) + 1

    candidates = [
        s
        for s in snapshot.subscriptions
        if s.status in (SubscriptionStatus.ACTIVE.value, SubscriptionStatus.PAST_DUE.value)
    ]
    results = []
    for sub in candidates:
        score = 0
        factors: list[str] = []
        actions: list[str] = []
        if sub.status == SubscriptionStatus.PAST_DUE.value:
            score += 40
            factors.append("Payment past due")
            actions.append("Ask the customer to update their payment method")
        if sub.cancel_at_period_end:
            score += 35
            factors.append("Scheduled to cancel at period end")
            actions.append("Reach out before the current period ends")
        failures = recent_failures.get(sub.customer_id, 0)
        if failures:
            score += 25
            factors.append(f"{failures} failed payment(s) in the last {FAILED_PAYMENT_LOOKBACK_DAYS} days")
            actions.append("Retry the payment and contact billing")
        if sub.trial_end is not None and now <= sub.trial_end <= now + timedelta(days=TRIAL_ENDING_DAYS):
            score += 15
            factors.append("Trial ending within a week")
            actions.append("Send a trial conversion offer")
        if now - sub.start_date < timedelta(days=EARLY_CHURN_DAYS):
            score += 10
            factors.append("New customer (under 30 days)")
            actions.append("Schedule an onboarding check-in")
        if score == 0:
            continue
        score = min(score, 100)
        results.append(
            AtRiskCustomer(
                subscription_id=sub.id,
                customer_id=sub.customer_id,
                customer_name=sub.customer_name,
                customer_email=sub.customer_email,
                monthly_value=sub.discounted_amount,
                risk_score=score,
                risk_level=_risk_level(score),
                risk_factors=factors,
                suggested_actions=actions,
            )
        )

    results.sort(key=lambda c: (c.risk_score, c.monthly_value), reverse=True)
    return results


def retention_analysis(snapshot: BillingSnapshot, now: datetime) -> RetentionAnalysis:
    subscriptions = snapshot.subscriptions
    active = active_subscriptions(snapshot)
    at_risk = at_risk_customers(snapshot, now)
    flagged = [c for c in at_risk if c.risk_level != "low"]
    mrr = sum(s.discounted_amount for s in active)

    return RetentionAnalysis(
        metrics=RetentionMetrics(
            retention_30_day=_retention_after(subscriptions, 30, now),
            retention_90_day=_retention_after(subscriptions, 90, now),
            retention_6_month=_retention_after(subscriptions, 182, now),
            retention_12_month=_retention_after(subscriptions, 365, now),
            monthly_churn_rate=churn_rate(snapshot, now),
            avg_customer_lifetime_days=_avg_lifetime_days(snapshot.cancellations),
            avg_revenue_per_customer=round2(mrr / len(active)) if active else 0.0,
            customers_at_risk=len(flagged),
            revenue_at_risk=round2(sum(c.monthly_value for c in flagged)),
        ),
        retention_curve=retention_curve(subscriptions, now),
        cohort_data=cohort_retention(subscriptions, now),
        churn_reasons=churn_reasons(snapshot.cancellations),
        segment_retention=segment_retention(snapshot, now),
        at_risk_customers=at_risk,
        active_cancellations=scheduled_cancellations(snapshot),
    )


# --- CSV exports ---


def _date(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d") if value else ""


def _write_csv(header: Sequence[str], rows: Iterable[Sequence[object]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(header)
    writer.writerows(rows)
    return buffer.getvalue()


def export_subscriptions_csv(snapshot: BillingSnapshot) -> str:
    return _write_csv(
        [
            "Customer Name", "Email", "Status", "Plan Amount", "Discounted Amount",
            "Coupon", "Discount %", "Start Date", "Current Period End", "Canceled At",
        ],
        (
            [
                s.customer_name or "",
                s.customer_email or "",
                s.status,
                f"{s.plan_amount:.2f}",
                f"{s.discounted_amount:.2f}",
                s.coupon_name or s.coupon_id or "",
                s.coupon_percent_off or 0,
                _date(s.start_date),
                _date(s.current_period_end),
                _date(s.canceled_at),
            ]
            for s in snapshot.subscriptions
        ),
    )


def export_cancellations_csv(snapshot: BillingSnapshot) -> str:
    return _write_csv(
        [
            "Customer Name", "Email", "Canceled Date", "Subscription Type",
            "Monthly Value", "Days as Customer", "Total Paid", "Reason",
        ],
        (
            [
                c.customer_name or "",
                c.customer_email or "",
                _date(c.canceled_at),
                c.subscription_type,
                f"{c.monthly_value:.2f}",
                c.days_as_customer,
                f"{c.total_paid:.2f}",
                c.reason or "",
            ]
            for c in snapshot.cancellations
        ),
    )


def export_payments_csv(snapshot: BillingSnapshot) -> str:
    return _write_csv(
        ["Date", "Customer Email", "Amount", "Status", "Refunded", "Description"],
        (
            [
                _date(p.created),
                p.customer_email or "",
                f"{p.amount:.2f}",
                p.status,
                "Yes" if p.refunded else "No",
                p.description or "",
            ]
            for p in snapshot.payments
        ),
    )
