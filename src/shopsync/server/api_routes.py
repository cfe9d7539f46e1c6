"""
Dashboard and operations API.

Every route here is tenant-scoped except tenant registration/listing.
Responses are marked no-store by the app middleware.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Request

from shopsync.config.constants import DEFAULT_TOP_CUSTOMERS, MAX_TOP_CUSTOMERS
from shopsync.core.logger import setup_logger
from shopsync.db.models import Tenant
from shopsync.models.webhook import TenantCreate
from shopsync.server.dependencies import get_service, require_tenant
from shopsync.services.backfill import BackfillReconciler
from shopsync.services.metrics import MetricsAggregator
from shopsync.services.subscriptions import SubscriptionReconciler
from shopsync.services.token_exchange import TokenExchange

logger = setup_logger(__name__)

router = APIRouter(prefix="/api", tags=["api"])


@router.post("/sync/{tenant_id}")
async def sync_tenant(
    skip_customers: bool = Query(False, alias="skipCustomers"),
    tenant: Tenant = Depends(require_tenant),
    backfill: BackfillReconciler = Depends(get_service("backfill")),
) -> Dict[str, Any]:
    """Run a full backfill for the tenant and wait for it to finish."""
    logger.info(f"Manual sync requested for {tenant.shop_domain}", extra={"tenant_id": tenant.id})
    result = await backfill.reconcile_tenant(tenant, skip_customers=skip_customers)
    return {"ok": True, "result": result.to_dict()}


@router.get("/sync/diagnose/{tenant_id}")
async def diagnose_tenant(
    tenant: Tenant = Depends(require_tenant),
    backfill: BackfillReconciler = Depends(get_service("backfill")),
) -> Dict[str, Any]:
    return await backfill.diagnose(tenant)


@router.get("/metrics/summary")
async def metrics_summary(
    tenant: Tenant = Depends(require_tenant),
    metrics: MetricsAggregator = Depends(get_service("metrics")),
) -> Dict[str, Any]:
    return await metrics.summary(tenant)


@router.get("/metrics/orders-by-date")
async def metrics_orders_by_date(
    date_from: Optional[str] = Query(None, alias="from"),
    date_to: Optional[str] = Query(None, alias="to"),
    tenant: Tenant = Depends(require_tenant),
    metrics: MetricsAggregator = Depends(get_service("metrics")),
) -> List[Dict[str, Any]]:
    """Daily order count and revenue (ISO dates, inclusive)."""
    return await metrics.orders_by_date(tenant, date_from, date_to)


@router.get("/metrics/top-customers")
async def metrics_top_customers(
    limit: int = Query(DEFAULT_TOP_CUSTOMERS, ge=1, le=MAX_TOP_CUSTOMERS),
    tenant: Tenant = Depends(require_tenant),
    metrics: MetricsAggregator = Depends(get_service("metrics")),
) -> List[Dict[str, Any]]:
    return await metrics.top_customers(tenant, limit)


@router.post("/webhooks/register/{tenant_id}")
async def register_webhooks(
    tenant: Tenant = Depends(require_tenant),
    subscriptions: SubscriptionReconciler = Depends(get_service("subscriptions")),
) -> Dict[str, Any]:
    """Reconcile the tenant's webhook subscriptions now."""
    report = await subscriptions.reconcile(tenant)
    return report.to_dict()


@router.post("/tenants")
async def create_tenant(
    payload: TenantCreate,
    tokens: TokenExchange = Depends(get_service("tokens")),
) -> Dict[str, Any]:
    """Register a tenant from a custom-app access token (no OAuth)."""
    tenant = await tokens.register_tenant(payload.shop_domain, payload.access_token)
    return {"id": tenant.id, "shopDomain": tenant.shop_domain}


@router.get("/tenants")
async def list_tenants(request: Request) -> List[Dict[str, Any]]:
    """All tenants, without credentials."""
    async with request.app.state.storage.tenants() as tenants:
        rows = await tenants.list_all()
    return [
        {"id": t.id, "shopDomain": t.shop_domain, "createdAt": t.created_at.isoformat()}
        for t in rows
    ]


@router.get("/debug/recent-orders")
async def recent_orders(
    request: Request,
    limit: int = Query(10, ge=1, le=MAX_TOP_CUSTOMERS),
    tenant: Tenant = Depends(require_tenant),
) -> List[Dict[str, Any]]:
    """Latest orders for a tenant, newest first."""
    async with request.app.state.storage.entities() as entities:
        orders = await entities.recent_orders(tenant.id, limit)
    return [
        {
            "shopifyId": o.external_id,
            "totalPrice": o.total_price,
            "createdAt": o.created_at.isoformat(),
        }
        for o in orders
    ]
