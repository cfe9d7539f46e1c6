"""Business services."""

from .backfill import BackfillReconciler, CollectionResult, SyncResult
from .metrics import MetricsAggregator
from .scheduler import SyncScheduler
from .subscriptions import SubscriptionReconciler, SubscriptionReport, desired_subscriptions
from .token_exchange import TokenExchange
from .webhook_ingestor import DeliveryState, IngestOutcome, RejectReason, WebhookIngestor

__all__ = [
    "BackfillReconciler",
    "CollectionResult",
    "SyncResult",
    "MetricsAggregator",
    "SyncScheduler",
    "SubscriptionReconciler",
    "SubscriptionReport",
    "desired_subscriptions",
    "TokenExchange",
    "DeliveryState",
    "IngestOutcome",
    "RejectReason",
    "WebhookIngestor",
]
