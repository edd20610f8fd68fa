"""Read access to a customer's activity and profile tables.

``SupabaseActivityRepository`` talks to the customer's hosted PostgREST API;
``InMemoryActivitySource`` serves the same contract from fixtures.
"""

import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Any, Protocol

import httpx
from pydantic import BaseModel, ValidationError

from orgpulse.core.errors import DataFetchError
from orgpulse.schemas.activity import ActivityRecord, ProfileRecord, TimeWindow

logger = logging.getLogger(__name__)

ACTIVITY_TABLE = "user_activity"
PROFILES_TABLE = "profiles"
ACTIVITY_COLUMNS = "id,organization_id,profile_id,event_type,event_details,timestamp"
PROFILE_COLUMNS = "id,full_name,email"


class ActivityQuery(BaseModel):
    """Filter applied to the activity table before rows are returned."""

    start: datetime | None = None
    end: datetime | None = None
    event_type: str | None = None
    profile_id: str | None = None
    viewer_role: str | None = None
    action_not_null: bool = False
    ascending: bool | None = None
    limit: int | None = None

    @classmethod
    def for_window(cls, window: TimeWindow, **kwargs: Any) -> "ActivityQuery":
        return cls(start=window.start, end=window.end, **kwargs)

    def matches(self, record: ActivityRecord) -> bool:
        details = record.event_details
        if self.start is not None and record.timestamp < self.start:
            return False
        if self.end is not None and record.timestamp > self.end:
            return False
        if self.event_type is not None and record.event_type != self.event_type:
            return False
        if self.profile_id is not None and record.profile_id != self.profile_id:
            return False
        if self.viewer_role is not None and details.viewer_role != self.viewer_role:
            return False
        return not (self.action_not_null and not details.has_action)


class ActivitySource(Protocol):
    async def fetch_activity(self, organization_id: str, query: ActivityQuery) -> list[ActivityRecord]: ...

    async def count_activity(self, organization_id: str, query: ActivityQuery) -> int: ...

    async def fetch_profiles(self, profile_ids: Sequence[str]) -> list[ProfileRecord]: ...


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _parse_content_range(header: str | None) -> int:
    """Total row count from a PostgREST ``Content-Range`` header (``0-9/42`` or ``*/0``)."""
    if not header or "/" not in header:
        raise DataFetchError("Missing row count in response")
    total = header.rsplit("/", 1)[1]
    if total == "*":
        raise DataFetchError("Row count was not computed")
    return int(total)


class SupabaseActivityRepository:
    """PostgREST client for a customer database, authenticated with its service key."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=f"{self.base_url}/rest/v1",
            headers={
                "apikey": self.api_key,
                "Authorization": f"Bearer {self.api_key}",
            },
            timeout=self.timeout,
            transport=self.transport,
        )

    def _activity_params(self, organization_id: str, query: ActivityQuery) -> list[tuple[str, str]]:
        params = [("organization_id", f"eq.{organization_id}")]
        if query.start is not None:
            params.append(("timestamp", f"gte.{query.start.isoformat()}"))
        if query.end is not None:
            params.append(("timestamp", f"lte.{query.end.isoformat()}"))
        if query.event_type is not None:
            params.append(("event_type", f"eq.{query.event_type}"))
        if query.profile_id is not None:
            params.append(("profile_id", f"eq.{query.profile_id}"))
        if query.viewer_role is not None:
            params.append(("event_details->>viewer_role", f"eq.{query.viewer_role}"))
        if query.action_not_null:
            params.append(("event_details->>action", "not.is.null"))
        if query.ascending is not None:
            params.append(("order", "timestamp.asc" if query.ascending else "timestamp.desc"))
        if query.limit is not None:
            params.append(("limit", str(query.limit)))
        return params

    async def _request(
        self,
        table: str,
        params: list[tuple[str, str]],
        headers: dict[str, str] | None = None,
        method: str = "GET",
    ) -> httpx.Response:
        try:
            async with self._client() as client:
                response = await client.request(method, f"/{table}", params=params, headers=headers)
        except httpx.HTTPError as exc:
            raise DataFetchError(f"{table} request failed: {exc}") from exc
        if response.status_code >= 400:
            raise DataFetchError(f"{table} request failed with HTTP {response.status_code}: {response.text[:500]}")
        return response

    async def fetch_activity(self, organization_id: str, query: ActivityQuery) -> list[ActivityRecord]:
        params = [("select", ACTIVITY_COLUMNS), *self._activity_params(organization_id, query)]
        response = await self._request(ACTIVITY_TABLE, params)
        try:
            return [ActivityRecord.from_row(row) for row in response.json()]
        except (KeyError, TypeError, ValueError, ValidationError) as exc:
            raise DataFetchError(f"Malformed {ACTIVITY_TABLE} rows: {exc}") from exc

    async def count_activity(self, organization_id: str, query: ActivityQuery) -> int:
        params = [("select", "id"), *self._activity_params(organization_id, query)]
        response = await self._request(ACTIVITY_TABLE, params, headers={"Prefer": "count=exact"}, method="HEAD")
        return _parse_content_range(response.headers.get("Content-Range"))

    async def fetch_profiles(self, profile_ids: Sequence[str]) -> list[ProfileRecord]:
        if not profile_ids:
            return []
        id_list = ",".join(_quote(pid) for pid in profile_ids)
        params = [("select", PROFILE_COLUMNS), ("id", f"in.({id_list})")]
        response = await self._request(PROFILES_TABLE, params)
        try:
            return [ProfileRecord.model_validate(row) for row in response.json()]
        except (TypeError, ValueError, ValidationError) as exc:
            raise DataFetchError(f"Malformed {PROFILES_TABLE} rows: {exc}") from exc

    async def check_connection(self) -> None:
        """Query one profile row to verify the URL and key are usable."""
        await self._request(PROFILES_TABLE, [("select", "id"), ("limit", "1")])


class InMemoryActivitySource:
    """Activity source backed by in-memory records, with per-call failure injection."""

    def __init__(
        self,
        records: Sequence[ActivityRecord] = (),
        profiles: Sequence[ProfileRecord] = (),
        fail_on: set[str] | None = None,
    ):
        self.records = list(records)
        self.profiles = list(profiles)
        self.fail_on = fail_on or set()
        self.queries: list[ActivityQuery] = []

    def _check(self, operation: str) -> None:
        if operation in self.fail_on:
            raise DataFetchError(f"{operation} failed")

    def _select(self, organization_id: str, query: ActivityQuery) -> list[ActivityRecord]:
        rows = [r for r in self.records if r.organization_id == organization_id and query.matches(r)]
        if query.ascending is not None:
            rows.sort(key=lambda r: r.timestamp, reverse=not query.ascending)
        if query.limit is not None:
            rows = rows[: query.limit]
        return rows

    async def fetch_activity(self, organization_id: str, query: ActivityQuery) -> list[ActivityRecord]:
        self.queries.append(query)
        self._check("fetch_activity")
        return self._select(organization_id, query)

    async def count_activity(self, organization_id: str, query: ActivityQuery) -> int:
        self.queries.append(query)
        self._check("count_activity")
        return len(self._select(organization_id, query))

    async def fetch_profiles(self, profile_ids: Sequence[str]) -> list[ProfileRecord]:
        self._check("fetch_profiles")
        wanted = set(profile_ids)
        return [p for p in self.profiles if p.id in wanted]
