"""Webhook receiver and health routes."""

from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import PlainTextResponse

from shopsync.config.constants import COLLECTIONS, WEBHOOK_ACTIONS
from shopsync.core.errors import NotFoundError
from shopsync.core.logger import setup_logger
from shopsync.models.webhook import WebhookDelivery
from shopsync.server.dependencies import get_service
from shopsync.services.webhook_ingestor import WebhookIngestor

logger = setup_logger(__name__)
router = APIRouter()


@router.get("/healthz")
async def health_check(request: Request) -> dict:
    """Liveness probe with the background sync status."""
    scheduler = getattr(request.app.state, "scheduler", None)
    return {
        "ok": True,
        "scheduler": scheduler.status() if scheduler is not None else None,
    }


@router.post("/webhooks/{collection}/{action}")
async def receive_webhook(
    collection: str,
    action: str,
    request: Request,
    x_shopify_hmac_sha256: Optional[str] = Header(None),
    x_shopify_shop_domain: Optional[str] = Header(None),
    x_shopify_topic: Optional[str] = Header(None),
    x_shopify_webhook_id: Optional[str] = Header(None),
    ingestor: WebhookIngestor = Depends(get_service("ingestor")),
) -> PlainTextResponse:
    """
    Shopify webhook endpoint for customers, orders and products.

    The body is read once as raw bytes; the signature is checked against
    exactly those bytes before anything is decoded.

    Returns:
        200 "OK" once upserted; 401 unverified; 404 unknown shop;
        500 when the delivery should be retried
    """
    if collection not in COLLECTIONS or action not in WEBHOOK_ACTIONS:
        raise NotFoundError(f"No webhook route for {collection}/{action}")

    topic = f"{collection}/{action}"
    if x_shopify_topic and x_shopify_topic != topic:
        logger.debug(f"Topic header {x_shopify_topic} differs from route {topic}; using route")

    delivery = WebhookDelivery(
        topic=topic,
        raw_body=await request.body(),
        signature=x_shopify_hmac_sha256,
        shop_domain=x_shopify_shop_domain,
        webhook_id=x_shopify_webhook_id,
    )
    outcome = await ingestor.ingest(delivery)
    return PlainTextResponse(outcome.message, status_code=outcome.status_code)
