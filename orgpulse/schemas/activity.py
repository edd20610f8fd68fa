"""Activity records and the analytics report shapes built from them."""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

UNKNOWN = "unknown"
UNKNOWN_PROFILE_NAME = "Unknown"
ERROR_EVENT_TYPE = "error"


def _text(value: Any) -> str | None:
    """Coerce a payload value to a non-empty string, or None."""
    if not value or isinstance(value, (dict, list)):
        return None
    return str(value)


def _number(value: Any) -> int | float | None:
    """Coerce a payload value to a number; falsy or non-numeric values become None."""
    if not value:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number != number:  # NaN
        return None
    return int(number) if number.is_integer() else number


def parse_timestamp(value: datetime | str) -> datetime:
    """Parse an ISO-8601 timestamp into an aware UTC datetime.

    Raises:
        ValueError: If the value is neither an ISO-8601 string nor a datetime.
    """
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    elif not isinstance(value, datetime):
        raise ValueError(f"Invalid timestamp: {value!r}")
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class EventDetails(BaseModel):
    """Typed view of an activity row's semi-structured ``event_details`` payload.

    Values are normalised once: empty strings and nulls become ``None`` and
    the ``*_key`` properties apply the ``"unknown"`` default used when grouping.
    """

    feature: str | None = None
    viewer_role: str | None = None
    action: str | None = None
    has_action: bool = False
    error_code: str | None = None
    route: str | None = None
    http_status: int | float | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any] | None) -> "EventDetails":
        if not isinstance(payload, dict):
            return cls()
        return cls(
            feature=_text(payload.get("feature")),
            viewer_role=_text(payload.get("viewer_role")),
            action=_text(payload.get("action")),
            has_action=payload.get("action") is not None,
            error_code=_text(payload.get("error_code")),
            route=_text(payload.get("route")),
            http_status=_number(payload.get("http_status")),
        )

    @property
    def feature_key(self) -> str:
        return self.feature or UNKNOWN

    @property
    def role_key(self) -> str:
        return self.viewer_role or UNKNOWN

    @property
    def action_key(self) -> str:
        return self.action or UNKNOWN

    @property
    def error_code_key(self) -> str:
        return self.error_code or UNKNOWN


class ActivityRecord(BaseModel):
    id: str
    organization_id: str
    profile_id: str
    event_type: str
    event_details: EventDetails = Field(default_factory=EventDetails)
    timestamp: datetime

    @field_validator("timestamp", mode="before")
    @classmethod
    def _parse_timestamp(cls, value: Any) -> datetime:
        return parse_timestamp(value)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "ActivityRecord":
        """Build a record from a raw ``user_activity`` row."""
        return cls(
            id=str(row.get("id") or ""),
            organization_id=str(row.get("organization_id") or ""),
            profile_id=str(row.get("profile_id") or ""),
            event_type=str(row.get("event_type") or ""),
            event_details=EventDetails.from_payload(row.get("event_details")),
            timestamp=row["timestamp"],
        )

    @property
    def is_error(self) -> bool:
        return self.event_type == ERROR_EVENT_TYPE


class ProfileRecord(BaseModel):
    id: str
    full_name: str | None = None
    email: str | None = None

    @property
    def display_name(self) -> str:
        return self.full_name or UNKNOWN_PROFILE_NAME


class TimeWindow(BaseModel):
    """Inclusive ``[start, end]`` time range."""

    start: datetime
    end: datetime

    @field_validator("start", "end", mode="before")
    @classmethod
    def _parse_bound(cls, value: Any) -> datetime:
        return parse_timestamp(value)

    def contains(self, timestamp: datetime) -> bool:
        return self.start <= timestamp <= self.end


# --- Report shapes ---


class OverviewMetrics(BaseModel):
    """Overview counters; serialised with camelCase keys at the top level of the response."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    active_users_7d: int
    active_users_30d: int
    total_events_7d: int
    total_events_30d: int
    errors_7d: int
    errors_30d: int
    error_rate_7d: str
    error_rate_30d: str
    avg_events_per_user_7d: str
    avg_events_per_user_30d: str


class RoleCounts(BaseModel):
    coach: int = 0
    parent: int = 0
    admin: int = 0
    staff: int = 0
    unknown: int = 0


class FeatureUsage(BaseModel):
    feature: str
    event_count: int
    unique_users: int
    by_role: RoleCounts


class ActionUsage(BaseModel):
    action: str
    event_count: int
    unique_users: int
    error_count: int


class RoleUsage(BaseModel):
    viewer_role: str
    event_count: int
    unique_users: int


class DailyActivity(BaseModel):
    date: str
    total_events: int
    error_events: int
    unique_users: int


class ErrorGroup(BaseModel):
    feature: str
    error_code: str
    count: int
    unique_users: int
    last_seen: datetime


class ErrorDetail(BaseModel):
    timestamp: datetime
    profile_id: str
    feature: str
    action: str | None = None
    error_code: str
    http_status: int | float | None = None
    route: str | None = None


class TopUser(BaseModel):
    profile_id: str
    full_name: str
    email: str | None = None
    count: int


class DrilldownEvent(BaseModel):
    timestamp: datetime
    event_type: str
    feature: str
    action: str | None = None
    viewer_role: str | None = None
    route: str | None = None


class Drilldown(BaseModel):
    top_users: list[TopUser]
    recent_events: list[DrilldownEvent]


class UserProfile(BaseModel):
    id: str
    full_name: str
    email: str | None = None


class UserEvent(DrilldownEvent):
    error_code: str | None = None


class UserDrilldown(BaseModel):
    profile: UserProfile | None
    events: list[UserEvent]
