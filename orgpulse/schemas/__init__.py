from orgpulse.schemas.activity import (
    ActionUsage,
    ActivityRecord,
    DailyActivity,
    Drilldown,
    ErrorDetail,
    ErrorGroup,
    EventDetails,
    FeatureUsage,
    OverviewMetrics,
    ProfileRecord,
    RoleUsage,
    TimeWindow,
    UserDrilldown,
)
from orgpulse.schemas.billing import (
    BillingMetrics,
    BillingSnapshot,
    CancellationAnalysis,
    CancellationRecord,
    CouponRecord,
    PaymentRecord,
    RetentionAnalysis,
    SubscriptionRecord,
    SyncResult,
)
from orgpulse.schemas.connection import ConnectionCreate, ConnectionResponse

__all__ = [
    "ActionUsage",
    "ActivityRecord",
    "BillingMetrics",
    "BillingSnapshot",
    "CancellationAnalysis",
    "CancellationRecord",
    "ConnectionCreate",
    "ConnectionResponse",
    "CouponRecord",
    "DailyActivity",
    "Drilldown",
    "ErrorDetail",
    "ErrorGroup",
    "EventDetails",
    "FeatureUsage",
    "OverviewMetrics",
    "PaymentRecord",
    "ProfileRecord",
    "RetentionAnalysis",
    "RoleUsage",
    "SubscriptionRecord",
    "SyncResult",
    "TimeWindow",
    "UserDrilldown",
]
