"""Usage, issue and drill-down analytics over customer activity records.

The module-level functions are pure: they take the materialised records for a
request plus a time window and return report shapes. ``ActivityAnalyticsService``
fetches those records through an ``ActivitySource`` and degrades to empty
results when an individual fetch fails.
"""

import asyncio
import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from orgpulse.core.errors import DataFetchError
from orgpulse.repositories.activity_repository import ActivityQuery, ActivitySource
from orgpulse.schemas.activity import (
    ERROR_EVENT_TYPE,
    UNKNOWN_PROFILE_NAME,
    ActionUsage,
    ActivityRecord,
    DailyActivity,
    Drilldown,
    DrilldownEvent,
    ErrorDetail,
    ErrorGroup,
    FeatureUsage,
    OverviewMetrics,
    ProfileRecord,
    RoleCounts,
    RoleUsage,
    TimeWindow,
    TopUser,
    UserDrilldown,
    UserEvent,
    UserProfile,
)

logger = logging.getLogger(__name__)

TOP_FEATURES_LIMIT = 20
TOP_ACTIONS_LIMIT = 20
ERROR_DETAIL_LIMIT = 100
TOP_USERS_LIMIT = 10
RECENT_EVENTS_LIMIT = 50
USER_EVENTS_LIMIT = 100
KNOWN_ROLES = ("coach", "parent", "admin", "staff", "unknown")


@dataclass
class _Group:
    count: int = 0
    errors: int = 0
    users: set[str] = field(default_factory=set)
    by_role: dict[str, int] = field(default_factory=dict)
    last_seen: datetime | None = None

    def add(self, record: ActivityRecord) -> None:
        self.count += 1
        self.users.add(record.profile_id)
        if record.is_error:
            self.errors += 1
        if self.last_seen is None or record.timestamp > self.last_seen:
            self.last_seen = record.timestamp


def _in_window(records: Iterable[ActivityRecord], window: TimeWindow) -> list[ActivityRecord]:
    return [r for r in records if window.contains(r.timestamp)]


def _newest_first(records: Iterable[ActivityRecord]) -> list[ActivityRecord]:
    return sorted(records, key=lambda r: r.timestamp, reverse=True)


def trailing_window(now: datetime, days: int) -> TimeWindow:
    return TimeWindow(start=now - timedelta(days=days), end=now)


# --- Overview ---


def build_overview(
    active_users_7d: int,
    active_users_30d: int,
    total_events_7d: int,
    total_events_30d: int,
    errors_7d: int,
    errors_30d: int,
) -> OverviewMetrics:
    """Derive error rates and per-user averages from the six windowed counts."""

    def error_rate(errors: int, total: int) -> str:
        return f"{errors / total * 100:.2f}" if total > 0 else "0.00"

    def per_user(total: int, users: int) -> str:
        return f"{total / users:.1f}" if users > 0 else "0"

    return OverviewMetrics(
        active_users_7d=active_users_7d,
        active_users_30d=active_users_30d,
        total_events_7d=total_events_7d,
        total_events_30d=total_events_30d,
        errors_7d=errors_7d,
        errors_30d=errors_30d,
        error_rate_7d=error_rate(errors_7d, total_events_7d),
        error_rate_30d=error_rate(errors_30d, total_events_30d),
        avg_events_per_user_7d=per_user(total_events_7d, active_users_7d),
        avg_events_per_user_30d=per_user(total_events_30d, active_users_30d),
    )


def overview_metrics(records: Sequence[ActivityRecord], now: datetime) -> OverviewMetrics:
    """Overview over the trailing 7 and 30 days ending at ``now``."""
    last_7d = _in_window(records, trailing_window(now, 7))
    last_30d = _in_window(records, trailing_window(now, 30))
    return build_overview(
        active_users_7d=len({r.profile_id for r in last_7d}),
        active_users_30d=len({r.profile_id for r in last_30d}),
        total_events_7d=len(last_7d),
        total_events_30d=len(last_30d),
        errors_7d=sum(1 for r in last_7d if r.is_error),
        errors_30d=sum(1 for r in last_30d if r.is_error),
    )


# --- Breakdowns ---


def feature_breakdown(
    records: Sequence[ActivityRecord],
    window: TimeWindow,
    role: str | None = None,
) -> list[FeatureUsage]:
    """Top features by event count, with a fixed five-role split.

    Roles outside ``KNOWN_ROLES`` are counted in the feature totals but not
    in ``by_role``.
    """
    groups: dict[str, _Group] = {}
    for record in _in_window(records, window):
        details = record.event_details
        if role and details.viewer_role != role:
            continue
        group = groups.setdefault(details.feature_key, _Group())
        group.add(record)
        group.by_role[details.role_key] = group.by_role.get(details.role_key, 0) + 1

    features = [
        FeatureUsage(
            feature=feature,
            event_count=group.count,
            unique_users=len(group.users),
            by_role=RoleCounts(**{r: group.by_role.get(r, 0) for r in KNOWN_ROLES}),
        )
        for feature, group in groups.items()
    ]
    features.sort(key=lambda f: f.event_count, reverse=True)
    return features[:TOP_FEATURES_LIMIT]


def action_breakdown(records: Sequence[ActivityRecord], window: TimeWindow) -> list[ActionUsage]:
    """Top actions by event count for rows that carry an ``action`` value."""
    groups: dict[str, _Group] = {}
    for record in _in_window(records, window):
        details = record.event_details
        if not details.has_action:
            continue
        groups.setdefault(details.action_key, _Group()).add(record)

    actions = [
        ActionUsage(
            action=action,
            event_count=group.count,
            unique_users=len(group.users),
            error_count=group.errors,
        )
        for action, group in groups.items()
    ]
    actions.sort(key=lambda a: a.event_count, reverse=True)
    return actions[:TOP_ACTIONS_LIMIT]


def role_breakdown(records: Sequence[ActivityRecord], window: TimeWindow) -> list[RoleUsage]:
    groups: dict[str, _Group] = {}
    for record in _in_window(records, window):
        groups.setdefault(record.event_details.role_key, _Group()).add(record)

    roles = [
        RoleUsage(viewer_role=role, event_count=group.count, unique_users=len(group.users))
        for role, group in groups.items()
    ]
    roles.sort(key=lambda r: r.event_count, reverse=True)
    return roles


def daily_series(records: Sequence[ActivityRecord], window: TimeWindow) -> list[DailyActivity]:
    """Per-day totals keyed by the UTC calendar date of each event."""
    groups: dict[str, _Group] = {}
    for record in _in_window(records, window):
        day = record.timestamp.astimezone(UTC).strftime("%Y-%m-%d")
        groups.setdefault(day, _Group()).add(record)

    return [
        DailyActivity(
            date=day,
            total_events=group.count,
            error_events=group.errors,
            unique_users=len(group.users),
        )
        for day, group in sorted(groups.items())
    ]


# --- Errors ---


def error_groups(records: Sequence[ActivityRecord], window: TimeWindow) -> list[ErrorGroup]:
    """Errors grouped by (feature, error_code), most frequent first."""
    groups: dict[tuple[str, str], _Group] = {}
    for record in _in_window(records, window):
        if not record.is_error:
            continue
        details = record.event_details
        key = (details.feature_key, details.error_code_key)
        groups.setdefault(key, _Group()).add(record)

    errors = [
        ErrorGroup(
            feature=feature,
            error_code=error_code,
            count=group.count,
            unique_users=len(group.users),
            last_seen=group.last_seen,
        )
        for (feature, error_code), group in groups.items()
    ]
    errors.sort(key=lambda e: e.count, reverse=True)
    return errors


def error_details(
    records: Sequence[ActivityRecord],
    window: TimeWindow,
    limit: int = ERROR_DETAIL_LIMIT,
) -> list[ErrorDetail]:
    errors = _newest_first(r for r in _in_window(records, window) if r.is_error)
    return [
        ErrorDetail(
            timestamp=r.timestamp,
            profile_id=r.profile_id,
            feature=r.event_details.feature_key,
            action=r.event_details.action,
            error_code=r.event_details.error_code_key,
            http_status=r.event_details.http_status,
            route=r.event_details.route,
        )
        for r in errors[:limit]
    ]


# --- Drill-downs ---


def _drilldown_event(record: ActivityRecord) -> DrilldownEvent:
    details = record.event_details
    return DrilldownEvent(
        timestamp=record.timestamp,
        event_type=record.event_type,
        feature=details.feature_key,
        action=details.action,
        viewer_role=details.viewer_role,
        route=details.route,
    )


def top_user_ids(records: Iterable[ActivityRecord], limit: int = TOP_USERS_LIMIT) -> list[str]:
    """Most active profile ids; ties keep first-encounter order."""
    counts = user_event_counts(records)
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return [profile_id for profile_id, _ in ranked[:limit]]


def user_event_counts(records: Iterable[ActivityRecord]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for record in records:
        counts[record.profile_id] = counts.get(record.profile_id, 0) + 1
    return counts


def drilldown(
    records: Sequence[ActivityRecord],
    window: TimeWindow,
    matches: Callable[[ActivityRecord], bool],
    profiles: Sequence[ProfileRecord] = (),
) -> Drilldown:
    """Top users and the most recent events among records accepted by ``matches``."""
    matched = [r for r in _in_window(records, window) if matches(r)]
    counts = user_event_counts(matched)
    profile_map = {p.id: p for p in profiles}

    top_users = []
    for profile_id in top_user_ids(matched):
        profile = profile_map.get(profile_id)
        top_users.append(
            TopUser(
                profile_id=profile_id,
                full_name=profile.display_name if profile else UNKNOWN_PROFILE_NAME,
                email=(profile.email or None) if profile else None,
                count=counts[profile_id],
            )
        )

    recent = _newest_first(matched)[:RECENT_EVENTS_LIMIT]
    return Drilldown(top_users=top_users, recent_events=[_drilldown_event(r) for r in recent])


def matches_feature(feature: str) -> Callable[[ActivityRecord], bool]:
    return lambda r: r.event_details.feature_key == feature


def matches_action(action: str) -> Callable[[ActivityRecord], bool]:
    return lambda r: r.event_details.action == action


def feature_drilldown(
    records: Sequence[ActivityRecord],
    window: TimeWindow,
    feature: str,
    profiles: Sequence[ProfileRecord] = (),
) -> Drilldown:
    return drilldown(records, window, matches_feature(feature), profiles)


def action_drilldown(
    records: Sequence[ActivityRecord],
    window: TimeWindow,
    action: str,
    profiles: Sequence[ProfileRecord] = (),
) -> Drilldown:
    return drilldown(records, window, matches_action(action), profiles)


def user_activity(
    records: Sequence[ActivityRecord],
    window: TimeWindow,
    profile_id: str,
    profile: ProfileRecord | None = None,
) -> UserDrilldown:
    """Profile summary plus the user's most recent events in the window."""
    own = _newest_first(r for r in _in_window(records, window) if r.profile_id == profile_id)
    events = [
        UserEvent(
            **_drilldown_event(r).model_dump(),
            error_code=r.event_details.error_code,
        )
        for r in own[:USER_EVENTS_LIMIT]
    ]
    return UserDrilldown(
        profile=(
            UserProfile(id=profile.id, full_name=profile.display_name, email=profile.email or None)
            if profile
            else None
        ),
        events=events,
    )


class ActivityAnalyticsService:
    """Fetches activity for one organization and runs the aggregations over it."""

    def __init__(self, source: ActivitySource, organization_id: str):
        self.source = source
        self.organization_id = organization_id

    async def _fetch(self, query: ActivityQuery, label: str) -> list[ActivityRecord]:
        try:
            return await self.source.fetch_activity(self.organization_id, query)
        except DataFetchError as exc:
            logger.error("%s query error for org %s: %s", label, self.organization_id, exc)
            return []

    async def _count(self, query: ActivityQuery, label: str) -> int:
        try:
            return await self.source.count_activity(self.organization_id, query)
        except DataFetchError as exc:
            logger.error("%s count error for org %s: %s", label, self.organization_id, exc)
            return 0

    async def _profiles(self, profile_ids: list[str]) -> list[ProfileRecord]:
        if not profile_ids:
            return []
        try:
            return await self.source.fetch_profiles(profile_ids)
        except DataFetchError as exc:
            logger.warning("Profile lookup failed for org %s: %s", self.organization_id, exc)
            return []

    async def overview(self, now: datetime | None = None) -> OverviewMetrics:
        """Run the six overview sub-queries concurrently and combine them."""
        now = now or datetime.now(UTC)
        since_7d = ActivityQuery(start=now - timedelta(days=7))
        since_30d = ActivityQuery(start=now - timedelta(days=30))
        errors_7d = ActivityQuery(start=since_7d.start, event_type=ERROR_EVENT_TYPE)
        errors_30d = ActivityQuery(start=since_30d.start, event_type=ERROR_EVENT_TYPE)

        users_7d, users_30d, total_7d, total_30d, err_7d, err_30d = await asyncio.gather(
            self._fetch(since_7d, "Active users 7d"),
            self._fetch(since_30d, "Active users 30d"),
            self._count(since_7d, "Total events 7d"),
            self._count(since_30d, "Total events 30d"),
            self._count(errors_7d, "Errors 7d"),
            self._count(errors_30d, "Errors 30d"),
        )
        return build_overview(
            active_users_7d=len({r.profile_id for r in users_7d}),
            active_users_30d=len({r.profile_id for r in users_30d}),
            total_events_7d=total_7d,
            total_events_30d=total_30d,
            errors_7d=err_7d,
            errors_30d=err_30d,
        )

    async def features(self, window: TimeWindow, role: str | None = None) -> list[FeatureUsage]:
        records = await self._fetch(ActivityQuery.for_window(window, viewer_role=role), "Features")
        return feature_breakdown(records, window, role)

    async def actions(self, window: TimeWindow) -> list[ActionUsage]:
        records = await self._fetch(ActivityQuery.for_window(window, action_not_null=True), "Actions")
        return action_breakdown(records, window)

    async def roles(self, window: TimeWindow) -> list[RoleUsage]:
        records = await self._fetch(ActivityQuery.for_window(window), "Roles")
        return role_breakdown(records, window)

    async def daily(self, window: TimeWindow) -> list[DailyActivity]:
        records = await self._fetch(ActivityQuery.for_window(window, ascending=True), "Daily")
        return daily_series(records, window)

    async def errors(self, window: TimeWindow) -> list[ErrorGroup]:
        query = ActivityQuery.for_window(window, event_type=ERROR_EVENT_TYPE)
        return error_groups(await self._fetch(query, "Errors"), window)

    async def error_detail(self, window: TimeWindow) -> list[ErrorDetail]:
        query = ActivityQuery.for_window(
            window, event_type=ERROR_EVENT_TYPE, ascending=False, limit=ERROR_DETAIL_LIMIT
        )
        return error_details(await self._fetch(query, "Error detail"), window)

    async def _drilldown(
        self,
        window: TimeWindow,
        matches: Callable[[ActivityRecord], bool],
        label: str,
    ) -> Drilldown:
        records = await self._fetch(ActivityQuery.for_window(window), label)
        matched = [r for r in _in_window(records, window) if matches(r)]
        profiles = await self._profiles(top_user_ids(matched))
        return drilldown(matched, window, matches, profiles)

    async def feature_drilldown(self, window: TimeWindow, feature: str) -> Drilldown:
        return await self._drilldown(window, matches_feature(feature), "Drilldown feature")

    async def action_drilldown(self, window: TimeWindow, action: str) -> Drilldown:
        return await self._drilldown(window, matches_action(action), "Drilldown action")

    async def user_drilldown(self, window: TimeWindow, profile_id: str) -> UserDrilldown:
        query = ActivityQuery.for_window(
            window, profile_id=profile_id, ascending=False, limit=USER_EVENTS_LIMIT
        )
        profiles, records = await asyncio.gather(
            self._profiles([profile_id]),
            self._fetch(query, "Drilldown user"),
        )
        profile = next((p for p in profiles if p.id == profile_id), None)
        return user_activity(records, window, profile_id, profile)
