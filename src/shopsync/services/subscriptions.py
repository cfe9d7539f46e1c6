"""Webhook subscription reconciliation."""

from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from shopsync.api.client import ClientFactory
from shopsync.config.constants import WEBHOOK_TOPICS
from shopsync.config.settings import Settings
from shopsync.core.errors import ShopSyncError
from shopsync.core.logger import setup_logger
from shopsync.db.models import Tenant

logger = setup_logger(__name__)

Subscription = Tuple[str, str]  # (topic, callback address)


def desired_subscriptions(app_url: str) -> List[Subscription]:
    """Topics the app listens to, each pointing at its own webhook route."""
    base = app_url.rstrip("/")
    return [(topic, f"{base}/webhooks/{topic}") for topic in WEBHOOK_TOPICS]


@dataclass
class SubscriptionReport:
    created: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    unchanged: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> dict:
        return dict(asdict(self), ok=self.ok)


class SubscriptionReconciler:
    """Converges a tenant's registered webhooks onto the desired table."""

    def __init__(self, settings: Settings, clients: ClientFactory):
        self.settings = settings
        self.clients = clients

    async def reconcile(
        self,
        tenant: Tenant,
        desired: Optional[Sequence[Subscription]] = None,
    ) -> SubscriptionReport:
        """
        Create missing subscriptions and repoint ones with a stale address.

        Raises:
            TransientUpstreamError: current subscriptions could not be listed
        """
        if desired is None:
            desired = desired_subscriptions(self.settings.app_url)

        report = SubscriptionReport()
        log_extra = {"tenant_id": tenant.id, "shop_domain": tenant.shop_domain}

        async with self.clients.for_tenant(tenant) as client:
            existing = {}
            for webhook in await client.list_webhooks():
                existing.setdefault(webhook.get("topic"), webhook)

            for topic, address in desired:
                current = existing.get(topic)
                try:
                    if current is None:
                        await client.create_webhook(topic, address)
                        report.created.append(topic)
                        logger.info(f"Registered webhook {topic} -> {address}", extra=log_extra)
                    elif current.get("address") != address:
                        await client.update_webhook(current["id"], address)
                        report.updated.append(topic)
                        logger.info(f"Repointed webhook {topic} -> {address}", extra=log_extra)
                    else:
                        report.unchanged.append(topic)
                except ShopSyncError as e:
                    report.failed[topic] = e.message
                    logger.error(f"Failed to register webhook {topic}: {e.message}", extra=log_extra)

        logger.info(
            f"Webhook reconcile for {tenant.shop_domain}: {len(report.created)} created, "
            f"{len(report.updated)} updated, {len(report.unchanged)} unchanged, "
            f"{len(report.failed)} failed",
            extra=log_extra,
        )
        return report
