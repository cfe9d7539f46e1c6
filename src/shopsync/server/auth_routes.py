"""
OAuth install routes.

Install redirects the merchant to the consent screen; the callback
exchanges the authorization code and registers the tenant.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import PlainTextResponse, RedirectResponse

from shopsync.core.errors import AuthError, ShopSyncError
from shopsync.core.logger import setup_logger
from shopsync.server.dependencies import get_service
from shopsync.services.subscriptions import SubscriptionReconciler
from shopsync.services.token_exchange import TokenExchange

logger = setup_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/install")
async def install(
    shop: Optional[str] = Query(None),
    tokens: TokenExchange = Depends(get_service("tokens")),
) -> RedirectResponse:
    """Redirect to the platform consent URL for this shop."""
    url = tokens.build_install_url(shop)
    logger.info(f"Redirecting {shop} to consent screen")
    return RedirectResponse(url, status_code=302)


@router.get("/callback")
async def callback(
    shop: Optional[str] = Query(None),
    code: Optional[str] = Query(None),
    tokens: TokenExchange = Depends(get_service("tokens")),
    subscriptions: SubscriptionReconciler = Depends(get_service("subscriptions")),
) -> PlainTextResponse:
    """
    Complete the install: exchange the code, upsert the tenant and
    register webhooks.

    Webhook registration is best-effort; a failure there does not undo the
    install.
    """
    if not shop or not code:
        raise AuthError("Missing shop or code")

    tenant = await tokens.exchange(shop, code)

    try:
        report = await subscriptions.reconcile(tenant)
        if report.failed:
            logger.warning(
                f"Some webhooks failed to register for {tenant.shop_domain}: {report.failed}",
                extra={"tenant_id": tenant.id},
            )
    except ShopSyncError as e:
        logger.error(
            f"Webhook registration failed for {tenant.shop_domain}: {e.message}",
            extra={"tenant_id": tenant.id},
        )

    return PlainTextResponse("App installed. You can close this window.")
