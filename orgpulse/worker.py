import logging
from typing import Any

from arq import cron

from orgpulse.core.config import configure_logging, settings
from orgpulse.core.database import SessionLocal
from orgpulse.repositories.billing_snapshot_repository import BillingSnapshotRepository
from orgpulse.services.stripe_sync import StripeBillingProvider
from orgpulse.tasks import redis_settings

logger = logging.getLogger(__name__)


async def sync_billing_data_task(ctx: dict[str, Any]) -> bool:
    """Background task: pull a fresh Stripe snapshot and replace the stored one.

    Runs daily. Returns whether the snapshot was persisted; a missing API key
    skips the run.
    """
    provider = StripeBillingProvider()
    if not provider.api_key:
        logger.info("Stripe API key not configured, skipping billing sync")
        return False

    db = SessionLocal()
    try:
        repo = BillingSnapshotRepository(db)
        try:
            snapshot = await provider.fetch_snapshot()
        except Exception as exc:
            logger.error("Scheduled billing sync failed: %s", exc)
            repo.record_failure(str(exc))
            raise
        persisted = repo.save(snapshot)
        if persisted:
            logger.info("Synced %d subscriptions from Stripe", len(snapshot.subscriptions))
        return persisted
    finally:
        db.close()


async def startup(ctx: dict[str, Any]) -> None:
    configure_logging()


class WorkerSettings:
    functions = [sync_billing_data_task]
    cron_jobs = [
        cron(sync_billing_data_task, hour=settings.BILLING_SYNC_CRON_HOUR, minute=0),  # daily
    ]
    on_startup = startup
    redis_settings = redis_settings
