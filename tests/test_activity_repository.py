"""Tests for the PostgREST activity repository."""

import httpx
import pytest

from orgpulse.core.errors import DataFetchError
from orgpulse.repositories.activity_repository import ActivityQuery, SupabaseActivityRepository
from orgpulse.schemas.activity import TimeWindow
from orgpulse.services.activity_analytics import ActivityAnalyticsService
from tests.conftest import utc

WINDOW = TimeWindow(start=utc(2026, 1, 1), end=utc(2026, 1, 8))

ROW = {
    "id": "a1",
    "organization_id": "org-1",
    "profile_id": "u1",
    "event_type": "view",
    "event_details": {"feature": "chat", "viewer_role": "coach"},
    "timestamp": "2026-01-02T10:00:00+00:00",
}


def _repo(handler) -> SupabaseActivityRepository:
    return SupabaseActivityRepository(
        base_url="https://tenant.supabase.co/",
        api_key="service-key",
        transport=httpx.MockTransport(handler),
    )


class TestFetchActivity:
    @pytest.mark.asyncio
    async def test_builds_filters_and_parses_rows(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[ROW])

        query = ActivityQuery.for_window(WINDOW, viewer_role="coach", ascending=False, limit=100)
        records = await _repo(handler).fetch_activity("org-1", query)

        assert len(records) == 1
        assert records[0].event_details.feature == "chat"
        assert records[0].timestamp == utc(2026, 1, 2, 10)

        request = seen[0]
        assert request.url.path == "/rest/v1/user_activity"
        assert request.headers["apikey"] == "service-key"
        assert request.headers["Authorization"] == "Bearer service-key"
        params = request.url.params
        assert params["organization_id"] == "eq.org-1"
        assert params.get_list("timestamp") == [
            "gte.2026-01-01T00:00:00+00:00",
            "lte.2026-01-08T00:00:00+00:00",
        ]
        assert params["event_details->>viewer_role"] == "eq.coach"
        assert params["order"] == "timestamp.desc"
        assert params["limit"] == "100"

    @pytest.mark.asyncio
    async def test_action_not_null_filter(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[])

        await _repo(handler).fetch_activity("org-1", ActivityQuery.for_window(WINDOW, action_not_null=True))
        assert seen[0].url.params["event_details->>action"] == "not.is.null"

    @pytest.mark.asyncio
    async def test_http_error_raises_data_fetch_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text="boom")

        with pytest.raises(DataFetchError, match="HTTP 500"):
            await _repo(handler).fetch_activity("org-1", ActivityQuery())

    @pytest.mark.asyncio
    async def test_transport_error_raises_data_fetch_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(DataFetchError, match="request failed"):
            await _repo(handler).fetch_activity("org-1", ActivityQuery())

    @pytest.mark.asyncio
    async def test_malformed_rows_raise_data_fetch_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=[{"id": "a1"}])

        with pytest.raises(DataFetchError, match="Malformed"):
            await _repo(handler).fetch_activity("org-1", ActivityQuery())

    @pytest.mark.asyncio
    @pytest.mark.parametrize("timestamp", [None, 1767261600, ["2026-01-02"]])
    async def test_non_string_timestamp_raises_data_fetch_error(self, timestamp):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=[{**ROW, "timestamp": timestamp}])

        with pytest.raises(DataFetchError, match="Malformed"):
            await _repo(handler).fetch_activity("org-1", ActivityQuery())

    @pytest.mark.asyncio
    async def test_null_timestamp_yields_empty_report(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=[ROW, {**ROW, "id": "a2", "timestamp": None}])

        service = ActivityAnalyticsService(_repo(handler), "org-1")
        assert await service.roles(WINDOW) == []


class TestCountActivity:
    @pytest.mark.asyncio
    async def test_reads_exact_count(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, headers={"Content-Range": "0-0/42"})

        count = await _repo(handler).count_activity("org-1", ActivityQuery(event_type="error"))
        assert count == 42
        assert seen[0].method == "HEAD"
        assert seen[0].headers["Prefer"] == "count=exact"
        assert seen[0].url.params["event_type"] == "eq.error"

    @pytest.mark.asyncio
    async def test_empty_table(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, headers={"Content-Range": "*/0"})

        assert await _repo(handler).count_activity("org-1", ActivityQuery()) == 0

    @pytest.mark.asyncio
    async def test_missing_header(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200)

        with pytest.raises(DataFetchError):
            await _repo(handler).count_activity("org-1", ActivityQuery())


class TestProfiles:
    @pytest.mark.asyncio
    async def test_fetch_profiles(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[{"id": "u1", "full_name": "Ada", "email": "ada@example.com"}])

        profiles = await _repo(handler).fetch_profiles(["u1", "u2"])
        assert profiles[0].display_name == "Ada"
        assert seen[0].url.path == "/rest/v1/profiles"
        assert seen[0].url.params["id"] == 'in.("u1","u2")'

    @pytest.mark.asyncio
    async def test_no_ids_skips_request(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        assert await _repo(handler).fetch_profiles([]) == []

    @pytest.mark.asyncio
    async def test_check_connection_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"message": "Invalid API key"})

        with pytest.raises(DataFetchError, match="HTTP 401"):
            await _repo(handler).check_connection()
