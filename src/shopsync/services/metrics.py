"""Read-only dashboard metrics over persisted entities."""

import asyncio
from collections import defaultdict
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from shopsync.api import endpoints
from shopsync.api.client import ClientFactory
from shopsync.config.constants import CUSTOMERS, LIVE_REVENUE_SAMPLE_FIELDS, LIVE_REVENUE_SAMPLE_SIZE, ORDERS
from shopsync.core.errors import PayloadError, ShopSyncError
from shopsync.core.logger import setup_logger
from shopsync.db.models import Tenant
from shopsync.db.repository import Storage
from shopsync.models.payloads import to_naive_utc

logger = setup_logger(__name__)


def to_decimal(value: Any) -> Decimal:
    """Exact decimal for a stored or fetched money value; unparseable counts as 0."""
    if value is None:
        return Decimal("0")
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return Decimal("0")


def parse_bound(value: Optional[str], end_of_day: bool = False) -> Optional[datetime]:
    """
    Parse an ISO date or datetime query bound into naive UTC.

    A date-only upper bound covers the whole day.

    Raises:
        PayloadError: if the value is not ISO 8601
    """
    if not value:
        return None
    try:
        if len(value) == 10:
            day = date.fromisoformat(value)
            return datetime.combine(day, time.max if end_of_day else time.min)
        return to_naive_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError as e:
        raise PayloadError(f"Invalid date: {value}") from e


class MetricsAggregator:
    """Computes summary, daily series and top customers for a tenant."""

    def __init__(self, storage: Storage, clients: ClientFactory):
        self.storage = storage
        self.clients = clients

    async def summary(self, tenant: Tenant) -> Dict[str, Any]:
        """
        Customer count, order count and revenue.

        Falls back to distinct order customers when no customers are stored,
        then to live platform counts when nothing is stored at all. The
        fallback never writes.
        """
        async with self.storage.entities() as entities:
            customers = await entities.count(CUSTOMERS, tenant.id)
            orders = await entities.count(ORDERS, tenant.id)
            totals = await entities.order_totals(tenant.id)
            if customers == 0:
                customers = await entities.count_distinct_order_customers(tenant.id)

        revenue = sum((to_decimal(t) for t in totals), Decimal("0"))

        if customers == 0 and orders == 0:
            return await self._live_summary(tenant)

        return {"customers": customers, "orders": orders, "revenue": str(revenue)}

    async def _live_summary(self, tenant: Tenant) -> Dict[str, Any]:
        log_extra = {"tenant_id": tenant.id}
        logger.info(f"No stored data for {tenant.shop_domain}, using live counts", extra=log_extra)

        async with self.clients.for_tenant(tenant) as client:

            async def live_count(path: str, params: Optional[dict] = None) -> int:
                try:
                    return await client.count(path, params)
                except ShopSyncError as e:
                    logger.warning(f"Live count {path} failed: {e.message}", extra=log_extra)
                    return 0

            async def live_revenue() -> Decimal:
                try:
                    sample = await client.list_orders_sample(
                        LIVE_REVENUE_SAMPLE_SIZE, LIVE_REVENUE_SAMPLE_FIELDS
                    )
                except ShopSyncError as e:
                    logger.warning(f"Live revenue sample failed: {e.message}", extra=log_extra)
                    return Decimal("0")
                return sum((to_decimal(o.get("total_price")) for o in sample), Decimal("0"))

            customers, orders, revenue = await asyncio.gather(
                live_count(endpoints.CUSTOMERS_COUNT),
                live_count(endpoints.ORDERS_COUNT, {"status": "any"}),
                live_revenue(),
            )

        return {"customers": customers, "orders": orders, "revenue": str(revenue)}

    async def orders_by_date(
        self,
        tenant: Tenant,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Order count and revenue per UTC day, ascending, inclusive bounds."""
        start = parse_bound(date_from)
        end = parse_bound(date_to, end_of_day=True)

        async with self.storage.entities() as entities:
            rows = await entities.orders_created_between(tenant.id, start, end)

        counts: Dict[str, int] = defaultdict(int)
        revenue: Dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
        for created_at, total_price in rows:
            day = created_at.date().isoformat()
            counts[day] += 1
            revenue[day] += to_decimal(total_price)

        return [
            {"date": day, "orders": counts[day], "revenue": str(revenue[day])}
            for day in sorted(counts)
        ]

    async def top_customers(self, tenant: Tenant, limit: int = 5) -> List[Dict[str, Any]]:
        """Customers by total order spend; ties ordered by external id."""
        async with self.storage.entities() as entities:
            rows = await entities.customer_spend_rows(tenant.id)

            spend: Dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
            for customer_id, total_price in rows:
                spend[customer_id] += to_decimal(total_price)

            ranked = sorted(spend.items(), key=lambda item: (-item[1], item[0]))[:limit]
            profiles = await entities.customers_by_external_ids(
                tenant.id, [customer_id for customer_id, _ in ranked]
            )

        results = []
        for customer_id, total in ranked:
            customer = profiles.get(customer_id)
            name = None
            if customer is not None:
                name = f"{customer.first_name or ''} {customer.last_name or ''}".strip() or None
            results.append(
                {
                    "shopifyId": customer_id,
                    "email": customer.email if customer else None,
                    "name": name,
                    "spend": str(total),
                }
            )
        return results
