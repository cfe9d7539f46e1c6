"""
Background sync scheduler using APScheduler.

One interval job sweeps every tenant through the backfill reconciler.
The first sweep fires as soon as the scheduler starts.
"""

from datetime import datetime
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from shopsync.config.settings import Settings
from shopsync.core.logger import setup_logger
from shopsync.db.repository import Storage
from shopsync.services.backfill import BackfillReconciler
from shopsync.services.subscriptions import SubscriptionReconciler

logger = setup_logger(__name__)

SWEEP_JOB_ID = "tenant_sweep"


class SyncScheduler:
    """Manages the periodic tenant sweep."""

    def __init__(
        self,
        settings: Settings,
        storage: Storage,
        backfill: BackfillReconciler,
        subscriptions: SubscriptionReconciler,
    ):
        self.settings = settings
        self.storage = storage
        self.backfill = backfill
        self.subscriptions = subscriptions
        self.scheduler = AsyncIOScheduler()
        self._started = False

    async def start(self):
        """Register the sweep job and start the scheduler."""
        if self._started:
            logger.warning("Scheduler already started")
            return

        interval = self.settings.sync_interval_seconds
        self.scheduler.add_job(
            self.sweep,
            IntervalTrigger(seconds=interval),
            id=SWEEP_JOB_ID,
            name="Tenant Backfill Sweep",
            next_run_time=datetime.now(),
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        logger.info(
            f"Added sweep job (every {interval}s, collections {self.settings.sync_collections})"
        )

        self.scheduler.start()
        self._started = True
        logger.info("Sync scheduler started")

    async def stop(self):
        """Gracefully stop scheduler."""
        if not self._started:
            return

        self.scheduler.shutdown(wait=False)
        self._started = False
        logger.info("Sync scheduler stopped")

    async def sweep(self) -> dict:
        """
        Backfill every tenant once.

        A failing tenant is logged and skipped; the sweep itself never raises.

        Returns:
            Mapping of tenant id to "ok" or the error message
        """
        outcomes = {}
        try:
            async with self.storage.tenants() as tenants:
                all_tenants = await tenants.list_all()
        except Exception as e:
            logger.error(f"Sweep could not list tenants: {e}", exc_info=True)
            return outcomes

        logger.info(f"Sweep triggered for {len(all_tenants)} tenant(s)")
        for tenant in all_tenants:
            try:
                await self.backfill.reconcile_tenant(
                    tenant,
                    collections=self.settings.sync_collections,
                    sync_type="scheduled",
                )
                outcomes[tenant.id] = "ok"
            except Exception as e:
                outcomes[tenant.id] = str(e)
                logger.error(
                    f"Scheduled sync failed for {tenant.shop_domain}: {e}",
                    extra={"tenant_id": tenant.id},
                )
        return outcomes

    async def register_subscriptions_for_all(self) -> dict:
        """Reconcile webhook subscriptions for every tenant; failures logged per tenant."""
        reports = {}
        async with self.storage.tenants() as tenants:
            all_tenants = await tenants.list_all()

        for tenant in all_tenants:
            try:
                report = await self.subscriptions.reconcile(tenant)
                reports[tenant.id] = report.to_dict()
            except Exception as e:
                reports[tenant.id] = {"ok": False, "error": str(e)}
                logger.error(
                    f"Webhook registration failed for {tenant.shop_domain}: {e}",
                    extra={"tenant_id": tenant.id},
                )
        return reports

    def get_next_run_time(self) -> Optional[str]:
        """Next sweep time as an ISO string, or None when not scheduled."""
        job = self.scheduler.get_job(SWEEP_JOB_ID)
        if job and job.next_run_time:
            return job.next_run_time.isoformat()
        return None

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._started and self.scheduler.running

    def status(self) -> dict:
        return {
            "enabled": self.settings.auto_sync_enabled,
            "running": self.is_running,
            "intervalSeconds": self.settings.sync_interval_seconds,
            "nextRun": self.get_next_run_time(),
        }
