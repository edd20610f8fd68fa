"""Activity analytics reports over the caller's connected customer database."""

from typing import Any

from fastapi import APIRouter, Depends, Query

from orgpulse.core.auth import get_activity_source
from orgpulse.repositories.activity_repository import ActivitySource
from orgpulse.services.report_dispatcher import ActivityReportRequest, ReportDispatcher

router = APIRouter()


def get_report_request(
    org_id: str | None = Query(default=None),
    range: str | None = Query(default=None),
    date_from: str | None = Query(default=None),
    date_to: str | None = Query(default=None),
    role: str | None = Query(default=None),
    event_type: str | None = Query(default=None),
    metric: str | None = Query(default=None),
    feature: str | None = Query(default=None),
    action: str | None = Query(default=None),
    profile_id: str | None = Query(default=None),
) -> ActivityReportRequest:
    """Parse and validate the query string before any credentials are resolved."""
    request = ActivityReportRequest(
        org_id=org_id or None,
        range=range or "7d",
        date_from=date_from or None,
        date_to=date_to or None,
        role=role or None,
        event_type=event_type or None,
        metric=metric or "overview",
        feature=feature or None,
        action=action or None,
        profile_id=profile_id or None,
    )
    ReportDispatcher.validate(request)
    return request


@router.get(
    "/activity",
    summary="Get an activity report",
    responses={
        400: {"description": "Missing or invalid parameter"},
        401: {"description": "Unauthorized"},
        404: {"description": "No connection found"},
    },
)
async def get_activity_report(
    report: ActivityReportRequest = Depends(get_report_request),
    source: ActivitySource = Depends(get_activity_source),
) -> dict[str, Any]:
    """Run exactly one activity report (selected by ``metric``) for an organization."""
    return await ReportDispatcher(source).dispatch(report)
