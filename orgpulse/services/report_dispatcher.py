"""Request validation and routing for the activity and billing reports."""

import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import BaseModel

from orgpulse.core.errors import BillingSyncError, ClientError, OrgPulseError
from orgpulse.repositories.activity_repository import ActivitySource
from orgpulse.repositories.billing_snapshot_repository import BillingSnapshotRepository
from orgpulse.schemas.activity import TimeWindow, parse_timestamp
from orgpulse.schemas.billing import BillingSnapshot, SyncResult
from orgpulse.services import billing_metrics
from orgpulse.services.activity_analytics import ActivityAnalyticsService
from orgpulse.services.stripe_sync import StripeBillingProvider

logger = logging.getLogger(__name__)

ACTIVITY_METRICS = (
    "overview",
    "features",
    "actions",
    "roles",
    "daily",
    "errors",
    "error_detail",
    "drilldown_feature",
    "drilldown_action",
    "drilldown_user",
)

# Drill-down metric -> request field that must be present
REQUIRED_PARAMS = {
    "drilldown_feature": "feature",
    "drilldown_action": "action",
    "drilldown_user": "profile_id",
}

NO_BILLING_DATA_MESSAGE = 'No Stripe data. Click "Refresh Revenue Data" to sync from Stripe.'


class ActivityReportRequest(BaseModel):
    org_id: str | None = None
    range: str = "7d"
    date_from: str | None = None
    date_to: str | None = None
    role: str | None = None
    event_type: str | None = None
    metric: str = "overview"
    feature: str | None = None
    action: str | None = None
    profile_id: str | None = None


def _parse_bound(value: str, name: str) -> datetime:
    try:
        return parse_timestamp(value)
    except ValueError:
        raise ClientError(f"Invalid {name}") from None


def resolve_window(
    range_: str,
    date_from: str | None = None,
    date_to: str | None = None,
    now: datetime | None = None,
) -> TimeWindow:
    """Resolve a named range to an inclusive window.

    ``date_to`` overrides the end for every range; ``date_from`` is only
    honoured for ``custom``. Unknown ranges fall back to the last 7 days.
    """
    now = now or datetime.now(UTC)
    end = _parse_bound(date_to, "date_to") if date_to else now

    if range_ == "custom" and date_from:
        start = _parse_bound(date_from, "date_from")
    elif range_ == "30d":
        start = now - timedelta(days=30)
    else:
        start = now - timedelta(days=7)

    return TimeWindow(start=start, end=end)


class ReportDispatcher:
    """Validates an activity report request and runs exactly one report for it."""

    def __init__(self, source: ActivitySource):
        self.source = source

    @staticmethod
    def validate(request: ActivityReportRequest) -> None:
        if not request.org_id:
            raise ClientError("org_id is required")
        if request.metric not in ACTIVITY_METRICS:
            raise ClientError("Invalid metric type")
        required = REQUIRED_PARAMS.get(request.metric)
        if required and not getattr(request, required):
            raise ClientError(f"{required} param required for {request.metric}")

    async def dispatch(self, request: ActivityReportRequest, now: datetime | None = None) -> dict[str, Any]:
        self.validate(request)

        now = now or datetime.now(UTC)
        window = resolve_window(request.range, request.date_from, request.date_to, now)
        service = ActivityAnalyticsService(self.source, str(request.org_id))

        handlers: dict[str, Callable[[], Awaitable[dict[str, Any]]]] = {
            "overview": lambda: self._overview(service, now),
            "features": lambda: self._listing("features", service.features(window, request.role)),
            "actions": lambda: self._listing("actions", service.actions(window)),
            "roles": lambda: self._listing("roles", service.roles(window)),
            "daily": lambda: self._listing("daily", service.daily(window)),
            "errors": lambda: self._listing("errors", service.errors(window)),
            "error_detail": lambda: self._listing("error_details", service.error_detail(window)),
            "drilldown_feature": lambda: self._model(service.feature_drilldown(window, request.feature or "")),
            "drilldown_action": lambda: self._model(service.action_drilldown(window, request.action or "")),
            "drilldown_user": lambda: self._model(service.user_drilldown(window, request.profile_id or "")),
        }

        logger.debug("Dispatching %s report for org %s", request.metric, request.org_id)
        result = await handlers[request.metric]()
        return {"success": True, **result}

    @staticmethod
    async def _overview(service: ActivityAnalyticsService, now: datetime) -> dict[str, Any]:
        overview = await service.overview(now)
        return overview.model_dump(mode="json", by_alias=True)

    @staticmethod
    async def _listing(key: str, rows: Awaitable[list[BaseModel]]) -> dict[str, Any]:
        return {key: [row.model_dump(mode="json") for row in await rows]}

    @staticmethod
    async def _model(result: Awaitable[BaseModel]) -> dict[str, Any]:
        return (await result).model_dump(mode="json")


def _dump(model: BaseModel | list[BaseModel]) -> Any:
    if isinstance(model, list):
        return [item.model_dump(mode="json", by_alias=True) for item in model]
    return model.model_dump(mode="json", by_alias=True)


class BillingReportService:
    """Sync (POST) and fetch (GET) of the billing reports.

    The snapshot lives in the database; every request loads or replaces it
    explicitly rather than sharing in-process state.
    """

    def __init__(self, provider: StripeBillingProvider, repository: BillingSnapshotRepository):
        self.provider = provider
        self.repository = repository

    def _reports(self, snapshot: BillingSnapshot, now: datetime) -> dict[str, Any]:
        return {
            "metrics": _dump(billing_metrics.calculate_metrics(snapshot, now)),
            "cancellationAnalysis": _dump(billing_metrics.cancellation_analysis(snapshot, now)),
            "retentionAnalysis": _dump(billing_metrics.retention_analysis(snapshot, now)),
        }

    async def sync(self, now: datetime | None = None) -> dict[str, Any]:
        try:
            snapshot = await self.provider.fetch_snapshot(now)
        except Exception as exc:
            logger.error("Stripe sync failed: %s", exc)
            self.repository.record_failure(str(exc))
            if isinstance(exc, OrgPulseError):
                raise
            raise BillingSyncError(str(exc) or "Stripe sync failed") from exc

        persisted = self.repository.save(snapshot)
        synced_at = snapshot.synced_at or datetime.now(UTC)
        result = SyncResult(
            success=True,
            customers=snapshot.customers_count,
            subscriptions=len(snapshot.subscriptions),
            payments=len(snapshot.payments),
            cancellations=len(snapshot.cancellations),
            invoices=snapshot.invoices_count,
            coupons=len(snapshot.coupons),
            synced_at=synced_at,
        )

        return {
            "success": True,
            "persisted": persisted,
            "syncResult": _dump(result),
            **self._reports(snapshot, now or datetime.now(UTC)),
            "lastSyncedAt": synced_at.isoformat(),
        }

    def load(self) -> BillingSnapshot | None:
        snapshot = self.repository.load()
        if snapshot is None or not snapshot.has_data:
            return None
        return snapshot

    def fetch(self, now: datetime | None = None) -> dict[str, Any]:
        snapshot = self.load()
        if snapshot is None:
            return {"success": True, "hasData": False, "message": NO_BILLING_DATA_MESSAGE}

        return {
            "success": True,
            "hasData": True,
            **self._reports(snapshot, now or datetime.now(UTC)),
            "activeSubscriptions": _dump(billing_metrics.active_subscriptions(snapshot)),
            "canceledSubscriptions": _dump(billing_metrics.canceled_subscriptions(snapshot)),
            "pastDueSubscriptions": _dump(billing_metrics.past_due_subscriptions(snapshot)),
            "scheduledCancellations": _dump(billing_metrics.scheduled_cancellations(snapshot)),
            "betaTesters": _dump(billing_metrics.beta_testers(snapshot)),
            "failedPayments": _dump(billing_metrics.failed_payments(snapshot)),
            "couponUsage": _dump(billing_metrics.coupon_usage(snapshot)),
            "lastSyncedAt": snapshot.synced_at.isoformat() if snapshot.synced_at else None,
        }
