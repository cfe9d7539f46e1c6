"""Webhook ingestion: verify, parse, resolve tenant, upsert."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from shopsync.config.constants import COLLECTIONS
from shopsync.core.errors import PayloadError, VerificationError
from shopsync.core.logger import setup_logger
from shopsync.core.monitoring import capture_exception, set_webhook_context
from shopsync.core.signature import WebhookVerifier
from shopsync.db.repository import Storage
from shopsync.models.payloads import normalize_entity
from shopsync.models.webhook import WebhookDelivery

logger = setup_logger(__name__)


class DeliveryState(str, Enum):
    RECEIVED = "received"
    VERIFIED = "verified"
    PARSED = "parsed"
    TENANT_RESOLVED = "tenant_resolved"
    UPSERTED = "upserted"
    ACKNOWLEDGED = "acknowledged"
    REJECTED = "rejected"


class RejectReason(str, Enum):
    UNVERIFIED = "unverified"
    MALFORMED = "malformed"
    NOT_FOUND = "not_found"
    STORAGE = "storage"


# Malformed payloads and storage failures answer 500 so Shopify redelivers
REJECT_STATUS = {
    RejectReason.UNVERIFIED: 401,
    RejectReason.NOT_FOUND: 404,
    RejectReason.MALFORMED: 500,
    RejectReason.STORAGE: 500,
}


@dataclass
class IngestOutcome:
    """Final state of one delivery."""

    state: DeliveryState
    reason: Optional[RejectReason] = None
    message: str = "OK"
    tenant_id: Optional[str] = None
    external_id: Optional[str] = None

    @property
    def status_code(self) -> int:
        if self.state == DeliveryState.ACKNOWLEDGED:
            return 200
        return REJECT_STATUS[self.reason]


class WebhookIngestor:
    """
    Decodes a verified delivery and applies one idempotent upsert.

    Every path ends in a definite outcome; redelivery after a rejection is
    left to the platform.
    """

    def __init__(self, storage: Storage, verifier: WebhookVerifier):
        self.storage = storage
        self.verifier = verifier

    async def ingest(self, delivery: WebhookDelivery) -> IngestOutcome:
        """
        Run one delivery through the ingestion states.

        Args:
            delivery: Delivery captured once from the raw request

        Returns:
            ACKNOWLEDGED outcome, or REJECTED with a reason
        """
        log_extra = {"topic": delivery.topic, "shop_domain": delivery.shop_domain}
        set_webhook_context(topic=delivery.topic, shop_domain=delivery.shop_domain)

        try:
            self.verifier.verify(delivery.raw_body, delivery.signature)
        except VerificationError as e:
            logger.warning(f"Webhook rejected: {e.message}", extra=log_extra)
            return IngestOutcome(DeliveryState.REJECTED, RejectReason.UNVERIFIED, e.message)
        logger.debug("Webhook state: verified", extra=log_extra)

        collection = delivery.collection
        try:
            if collection not in COLLECTIONS:
                raise PayloadError(f"Unsupported webhook topic: {delivery.topic}")
            external_id, fields = normalize_entity(collection, delivery.parse())
        except PayloadError as e:
            logger.error(f"Malformed webhook payload: {e.message}", extra=log_extra)
            return IngestOutcome(DeliveryState.REJECTED, RejectReason.MALFORMED, "Error")
        logger.debug(f"Webhook state: parsed ({collection} {external_id})", extra=log_extra)

        try:
            tenant = None
            if delivery.shop_domain:
                async with self.storage.tenants() as tenants:
                    tenant = await tenants.get_by_shop_domain(delivery.shop_domain.lower())
            if tenant is None:
                logger.warning("Webhook for unknown shop", extra=log_extra)
                return IngestOutcome(
                    DeliveryState.REJECTED,
                    RejectReason.NOT_FOUND,
                    "Tenant not found",
                    external_id=external_id,
                )
            log_extra["tenant_id"] = tenant.id
            logger.debug("Webhook state: tenant resolved", extra=log_extra)

            async with self.storage.entities() as entities:
                await entities.upsert(collection, tenant.id, external_id, fields)
        except Exception as e:
            logger.error(f"Webhook upsert failed: {e}", extra=log_extra, exc_info=True)
            capture_exception(e, {"topic": delivery.topic, "external_id": external_id})
            return IngestOutcome(DeliveryState.REJECTED, RejectReason.STORAGE, "Error")

        logger.info(f"Webhook {delivery.topic} upserted {collection} {external_id}", extra=log_extra)
        return IngestOutcome(
            DeliveryState.ACKNOWLEDGED,
            tenant_id=tenant.id,
            external_id=external_id,
        )
