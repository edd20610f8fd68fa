from orgpulse.repositories.activity_repository import (
    ActivityQuery,
    ActivitySource,
    InMemoryActivitySource,
    SupabaseActivityRepository,
)
from orgpulse.repositories.billing_snapshot_repository import BillingSnapshotRepository
from orgpulse.repositories.connection_repository import ConnectionRepository

__all__ = [
    "ActivityQuery",
    "ActivitySource",
    "BillingSnapshotRepository",
    "ConnectionRepository",
    "InMemoryActivitySource",
    "SupabaseActivityRepository",
]
