"""Billing sync, reports and CSV exports."""

import logging
from collections.abc import Callable
from typing import Any

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from orgpulse.core.auth import get_current_user
from orgpulse.core.database import get_db
from orgpulse.core.errors import ClientError
from orgpulse.repositories.billing_snapshot_repository import BillingSnapshotRepository
from orgpulse.schemas.billing import BillingSnapshot
from orgpulse.services import billing_metrics
from orgpulse.services.report_dispatcher import BillingReportService
from orgpulse.services.stripe_sync import StripeBillingProvider
from orgpulse.tasks import enqueue_billing_sync

logger = logging.getLogger(__name__)

router = APIRouter()

CSV_EXPORTS: dict[str, Callable[[BillingSnapshot], str]] = {
    "subscriptions": billing_metrics.export_subscriptions_csv,
    "cancellations": billing_metrics.export_cancellations_csv,
    "payments": billing_metrics.export_payments_csv,
}


def get_billing_provider() -> StripeBillingProvider:
    return StripeBillingProvider()


def get_billing_service(
    provider: StripeBillingProvider = Depends(get_billing_provider),
    db: Session = Depends(get_db),
) -> BillingReportService:
    return BillingReportService(provider, BillingSnapshotRepository(db))


@router.post(
    "/sync",
    summary="Sync billing data from Stripe",
    responses={
        400: {"description": "Stripe API key not configured"},
        401: {"description": "Unauthorized"},
    },
)
async def sync_billing_data(
    background: bool = Query(default=False),
    user_id: str = Depends(get_current_user),
    service: BillingReportService = Depends(get_billing_service),
) -> dict[str, Any]:
    """Pull a fresh snapshot, store it and return the computed reports.

    With ``background=true`` the sync is queued for the worker instead and
    only the job id is returned.
    """
    if background:
        job = await enqueue_billing_sync()
        job_id = job.job_id if job else None
        logger.info("Queued billing sync job %s for user %s", job_id, user_id)
        return {"success": True, "queued": True, "jobId": job_id}
    return await service.sync()


@router.get(
    "/sync",
    summary="Get billing reports from the last sync",
    responses={401: {"description": "Unauthorized"}},
)
async def get_billing_data(
    user_id: str = Depends(get_current_user),
    service: BillingReportService = Depends(get_billing_service),
) -> dict[str, Any]:
    return service.fetch()


@router.get(
    "/customers/{customer_id}/payments",
    summary="List a customer's payments from the last sync",
    responses={401: {"description": "Unauthorized"}},
)
async def list_customer_payments(
    customer_id: str,
    user_id: str = Depends(get_current_user),
    service: BillingReportService = Depends(get_billing_service),
) -> dict[str, Any]:
    snapshot = service.load() or BillingSnapshot()
    payments = billing_metrics.customer_payments(snapshot, customer_id)
    return {
        "success": True,
        "payments": [p.model_dump(mode="json", by_alias=True) for p in payments],
    }


@router.get(
    "/export/{kind}",
    summary="Export billing records as CSV",
    responses={
        400: {"description": "Unknown export type"},
        401: {"description": "Unauthorized"},
    },
)
async def export_billing_csv(
    kind: str,
    user_id: str = Depends(get_current_user),
    service: BillingReportService = Depends(get_billing_service),
) -> Response:
    exporter = CSV_EXPORTS.get(kind)
    if exporter is None:
        raise ClientError("Invalid export type")

    snapshot = service.load() or BillingSnapshot()
    return Response(
        content=exporter(snapshot),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{kind}.csv"'},
    )
