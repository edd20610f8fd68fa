"""Tests for the activity aggregation functions."""

from datetime import timedelta

import pytest

from orgpulse.schemas.activity import ActivityRecord, EventDetails, ProfileRecord, TimeWindow, parse_timestamp
from orgpulse.services.activity_analytics import (
    action_breakdown,
    action_drilldown,
    build_overview,
    daily_series,
    error_details,
    error_groups,
    feature_breakdown,
    feature_drilldown,
    overview_metrics,
    role_breakdown,
    user_activity,
)
from tests.conftest import make_record, utc

WINDOW = TimeWindow(start=utc(2026, 1, 1), end=utc(2026, 1, 31, 23, 59, 59))


class TestEventDetails:
    def test_missing_payload_defaults_to_unknown(self):
        record = ActivityRecord.from_row(
            {
                "id": "a1",
                "organization_id": "org-1",
                "profile_id": "u1",
                "event_type": "view",
                "event_details": None,
                "timestamp": "2026-01-05T10:00:00Z",
            }
        )
        details = record.event_details
        assert details.feature_key == "unknown"
        assert details.role_key == "unknown"
        assert details.error_code_key == "unknown"
        assert details.action is None
        assert details.has_action is False
        assert record.timestamp == utc(2026, 1, 5, 10)

    def test_empty_strings_count_as_absent(self):
        details = EventDetails.from_payload({"feature": "", "viewer_role": "", "route": ""})
        assert details.feature_key == "unknown"
        assert details.role_key == "unknown"
        assert details.route is None

    def test_non_string_scalars_are_coerced(self):
        details = EventDetails.from_payload({"feature": 42, "error_code": 500})
        assert details.feature == "42"
        assert details.error_code == "500"

    def test_http_status_is_numeric_or_none(self):
        assert EventDetails.from_payload({"http_status": "404"}).http_status == 404
        assert EventDetails.from_payload({"http_status": 502}).http_status == 502
        assert EventDetails.from_payload({"http_status": "oops"}).http_status is None
        assert EventDetails.from_payload({"http_status": 0}).http_status is None
        assert EventDetails.from_payload({}).http_status is None

    def test_null_action_is_not_present(self):
        assert EventDetails.from_payload({"action": None}).has_action is False
        assert EventDetails.from_payload({"action": "save"}).has_action is True

    def test_timestamp_with_offset_is_normalised_to_utc(self):
        record = make_record("2026-01-05T12:00:00+02:00")
        assert record.timestamp == utc(2026, 1, 5, 10)

    def test_non_string_timestamp_is_rejected(self):
        for value in (None, 1767261600, 3.5):
            with pytest.raises(ValueError, match="Invalid timestamp"):
                parse_timestamp(value)


class TestOverview:
    def test_empty_input(self):
        overview = overview_metrics([], utc(2026, 1, 31))
        assert overview.active_users_7d == 0
        assert overview.total_events_30d == 0
        assert overview.error_rate_7d == "0.00"
        assert overview.error_rate_30d == "0.00"
        assert overview.avg_events_per_user_7d == "0"
        assert overview.avg_events_per_user_30d == "0"

    def test_trailing_windows(self):
        now = utc(2026, 1, 31, 12)
        records = [
            make_record(now - timedelta(days=1), profile_id="u1"),
            make_record(now - timedelta(days=2), profile_id="u1", event_type="error"),
            make_record(now - timedelta(days=3), profile_id="u2"),
            make_record(now - timedelta(days=10), profile_id="u3", event_type="error"),
            make_record(now - timedelta(days=40), profile_id="u4"),
        ]
        overview = overview_metrics(records, now)
        assert overview.active_users_7d == 2
        assert overview.active_users_30d == 3
        assert overview.total_events_7d == 3
        assert overview.total_events_30d == 4
        assert overview.errors_7d == 1
        assert overview.errors_30d == 2
        assert overview.error_rate_7d == "33.33"
        assert overview.error_rate_30d == "50.00"
        assert overview.avg_events_per_user_7d == "1.5"
        assert overview.avg_events_per_user_30d == "1.3"

    def test_serialised_with_camel_case_keys(self):
        overview = build_overview(1, 2, 3, 4, 0, 1)
        payload = overview.model_dump(by_alias=True)
        assert payload["activeUsers7d"] == 1
        assert payload["errorRate30d"] == "25.00"
        assert payload["avgEventsPerUser30d"] == "2.0"


class TestFeatureBreakdown:
    def test_truncates_to_top_twenty(self):
        records = [
            make_record(utc(2026, 1, 2), profile_id=f"u{n}", feature=f"f{i}")
            for i in range(25)
            for n in range(i + 1)
        ]
        features = feature_breakdown(records, WINDOW)
        assert len(features) == 20
        assert [f.feature for f in features] == [f"f{i}" for i in range(24, 4, -1)]
        assert features[0].event_count == 25
        assert features[0].unique_users == 25

    def test_unknown_role_is_dropped_from_buckets(self):
        records = [
            make_record(utc(2026, 1, 2), profile_id="u1", feature="roster", viewer_role="coach"),
            make_record(utc(2026, 1, 2), profile_id="u2", feature="roster", viewer_role="owner"),
            make_record(utc(2026, 1, 2), profile_id="u3", feature="roster"),
        ]
        [feature] = feature_breakdown(records, WINDOW)
        assert feature.event_count == 3
        assert feature.by_role.model_dump() == {
            "coach": 1,
            "parent": 0,
            "admin": 0,
            "staff": 0,
            "unknown": 1,
        }

        roles = {r.viewer_role: r.event_count for r in role_breakdown(records, WINDOW)}
        assert roles == {"coach": 1, "owner": 1, "unknown": 1}

    def test_role_filter(self):
        records = [
            make_record(utc(2026, 1, 2), feature="chat", viewer_role="parent"),
            make_record(utc(2026, 1, 2), feature="chat", viewer_role="coach"),
            make_record(utc(2026, 1, 2), feature="schedule", viewer_role="coach"),
        ]
        features = feature_breakdown(records, WINDOW, role="coach")
        assert {f.feature: f.event_count for f in features} == {"chat": 1, "schedule": 1}

    def test_counts_sum_to_window_rows(self):
        records = [
            make_record(utc(2026, 1, 2), feature="a"),
            make_record(utc(2026, 1, 3), feature="b"),
            make_record(utc(2026, 1, 4)),
            make_record(utc(2026, 2, 4), feature="a"),
        ]
        assert sum(f.event_count for f in feature_breakdown(records, WINDOW)) == 3
        assert sum(r.event_count for r in role_breakdown(records, WINDOW)) == 3

    def test_ties_keep_first_encounter_order(self):
        records = [
            make_record(utc(2026, 1, 2), feature="zeta"),
            make_record(utc(2026, 1, 2), feature="alpha"),
        ]
        assert [f.feature for f in feature_breakdown(records, WINDOW)] == ["zeta", "alpha"]


class TestActionAndRoleBreakdown:
    def test_only_rows_with_action(self):
        records = [
            make_record(utc(2026, 1, 2), profile_id="u1", action="save"),
            make_record(utc(2026, 1, 2), profile_id="u2", action="save", event_type="error"),
            make_record(utc(2026, 1, 2), profile_id="u2", action=""),
            make_record(utc(2026, 1, 2), profile_id="u3", feature="no-action"),
        ]
        actions = action_breakdown(records, WINDOW)
        assert [(a.action, a.event_count, a.unique_users, a.error_count) for a in actions] == [
            ("save", 2, 2, 1),
            ("unknown", 1, 1, 0),
        ]

    def test_roles_are_not_truncated(self):
        records = [make_record(utc(2026, 1, 2), viewer_role=f"role{i}") for i in range(30)]
        assert len(role_breakdown(records, WINDOW)) == 30


class TestDailySeries:
    def test_splits_on_utc_midnight(self):
        records = [
            make_record("2026-01-10T23:59:59.999Z", profile_id="u1"),
            make_record("2026-01-11T00:00:00.000Z", profile_id="u2", event_type="error"),
            make_record("2026-01-11T08:00:00.000Z", profile_id="u2"),
        ]
        daily = daily_series(records, WINDOW)
        assert [(d.date, d.total_events, d.error_events, d.unique_users) for d in daily] == [
            ("2026-01-10", 1, 0, 1),
            ("2026-01-11", 2, 1, 1),
        ]

    def test_empty(self):
        assert daily_series([], WINDOW) == []


class TestErrors:
    def test_groups_by_feature_and_code(self):
        day1 = utc(2026, 1, 3, 9)
        day2 = utc(2026, 1, 4, 9)
        records = [
            make_record(day1, profile_id="u1", event_type="error", feature="search", error_code="E1"),
            make_record(day2, profile_id="u2", event_type="error", feature="search", error_code="E1"),
        ]
        [group] = error_groups(records, WINDOW)
        assert group.feature == "search"
        assert group.error_code == "E1"
        assert group.count == 2
        assert group.unique_users == 2
        assert group.last_seen == day2

    def test_ignores_non_error_events(self):
        records = [
            make_record(utc(2026, 1, 3), event_type="view", feature="search"),
            make_record(utc(2026, 1, 3), event_type="error"),
        ]
        [group] = error_groups(records, WINDOW)
        assert (group.feature, group.error_code, group.count) == ("unknown", "unknown", 1)

    def test_details_newest_first_and_limited(self):
        records = [
            make_record(
                utc(2026, 1, 1) + timedelta(minutes=i),
                event_type="error",
                feature="upload",
                http_status="413",
                route="/files",
            )
            for i in range(120)
        ]
        details = error_details(records, WINDOW)
        assert len(details) == 100
        assert details[0].timestamp == utc(2026, 1, 1) + timedelta(minutes=119)
        assert details[0].http_status == 413
        assert details[0].route == "/files"
        assert details[0].action is None
        assert details[0].error_code == "unknown"


class TestDrilldowns:
    def test_top_ten_users(self):
        records = [
            make_record(utc(2026, 1, 2) + timedelta(minutes=n), profile_id=f"u{i}", feature="chat")
            for i in range(15)
            for n in range(i + 1)
        ]
        profiles = [ProfileRecord(id="u14", full_name="Pat Lee", email="pat@example.com")]
        result = feature_drilldown(records, WINDOW, "chat", profiles)

        assert [u.profile_id for u in result.top_users] == [f"u{i}" for i in range(14, 4, -1)]
        assert [u.count for u in result.top_users] == list(range(15, 5, -1))
        assert result.top_users[0].full_name == "Pat Lee"
        assert result.top_users[1].full_name == "Unknown"
        assert result.top_users[1].email is None
        assert len(result.recent_events) == 50
        assert result.recent_events[0].timestamp >= result.recent_events[-1].timestamp

    def test_feature_matches_defaulted_value(self):
        records = [
            make_record(utc(2026, 1, 2), profile_id="u1"),
            make_record(utc(2026, 1, 2), profile_id="u2", feature="chat"),
        ]
        result = feature_drilldown(records, WINDOW, "unknown")
        assert [u.profile_id for u in result.top_users] == ["u1"]
        assert result.recent_events[0].feature == "unknown"

    def test_action_matches_exact_value_only(self):
        records = [
            make_record(utc(2026, 1, 2), profile_id="u1"),
            make_record(utc(2026, 1, 2), profile_id="u2", action="send"),
        ]
        assert action_drilldown(records, WINDOW, "unknown").top_users == []
        assert [u.profile_id for u in action_drilldown(records, WINDOW, "send").top_users] == ["u2"]

    def test_user_activity(self):
        records = [
            make_record(utc(2026, 1, 2), profile_id="u1", event_type="error", error_code="E9"),
            make_record(utc(2026, 1, 3), profile_id="u1", feature="chat", viewer_role="coach"),
            make_record(utc(2026, 1, 3), profile_id="u2"),
        ]
        result = user_activity(records, WINDOW, "u1", ProfileRecord(id="u1", full_name=None))
        assert result.profile is not None
        assert result.profile.full_name == "Unknown"
        assert [e.feature for e in result.events] == ["chat", "unknown"]
        assert result.events[0].viewer_role == "coach"
        assert result.events[1].error_code == "E9"

    def test_user_activity_without_profile(self):
        result = user_activity([], WINDOW, "ghost")
        assert result.profile is None
        assert result.events == []

    def test_blank_profile_email_is_null(self):
        records = [make_record(utc(2026, 1, 2), profile_id="u1", feature="chat")]
        profile = ProfileRecord(id="u1", full_name="Ada", email="")

        drilldown = feature_drilldown(records, WINDOW, "chat", [profile])
        assert drilldown.top_users[0].email is None
        assert drilldown.model_dump()["top_users"][0]["email"] is None

        result = user_activity(records, WINDOW, "u1", profile)
        assert result.profile.email is None
