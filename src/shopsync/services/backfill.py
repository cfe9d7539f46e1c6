"""
Backfill reconciliation for Shopify collections.

Walks every page of the customers, products and orders listings for one
tenant and upserts each item. Webhooks keep rows current in between;
this is the catch-up path for history and missed deliveries.
"""

import asyncio
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from shopsync.api import endpoints
from shopsync.api.client import ClientFactory, ShopifyClient
from shopsync.config.constants import COLLECTIONS, CUSTOMERS, ORDER_PROJECTION_FIELDS, ORDERS
from shopsync.core.errors import AuthError, PayloadError, RestrictedDataError, UpstreamError
from shopsync.core.logger import setup_logger
from shopsync.core.single_flight import SingleFlight
from shopsync.db.models import Tenant
from shopsync.db.repository import Storage
from shopsync.models.payloads import normalize_entity

logger = setup_logger(__name__)


@dataclass
class CollectionResult:
    """Result of backfilling one collection."""
    collection: str
    pages: int = 0
    fetched: int = 0
    upserted: int = 0
    skipped: int = 0
    restricted: bool = False
    used_projection: bool = False
    errors: List[str] = field(default_factory=list)


@dataclass
class SyncResult:
    """Result of a tenant backfill."""
    sync_type: str  # "manual", "scheduled"
    tenant_id: str
    started_at: float
    completed_at: float
    collections: Dict[str, CollectionResult]
    errors: List[str]
    success: bool

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class BackfillReconciler:
    """
    Backfills collections for a tenant from the platform listings.

    Runs for one (tenant, collection) never overlap: the manual trigger
    and the scheduler share the same single-flight group.
    """

    def __init__(self, storage: Storage, clients: ClientFactory, single_flight: SingleFlight):
        self.storage = storage
        self.clients = clients
        self.single_flight = single_flight

    async def reconcile_collection(self, tenant: Tenant, collection: str) -> CollectionResult:
        """
        Backfill one collection, or join the run already in flight for it.

        Raises:
            TransientUpstreamError: listing failed for a non-restricted reason
            AuthError: stored access token rejected
        """
        if collection not in COLLECTIONS:
            raise PayloadError(f"Unknown collection: {collection}")

        key = (tenant.id, collection)
        return await self.single_flight.run(key, lambda: self._run_collection(tenant, collection))

    async def _run_collection(self, tenant: Tenant, collection: str) -> CollectionResult:
        log_extra = {"tenant_id": tenant.id, "collection": collection}
        logger.info(f"Backfilling {collection} for {tenant.shop_domain}", extra=log_extra)

        async with self.clients.for_tenant(tenant) as client:
            try:
                if collection == ORDERS:
                    result = await self._backfill_orders(client, tenant)
                else:
                    result = CollectionResult(collection=collection)
                    await self._walk(client, tenant, result)
            except RestrictedDataError as e:
                logger.warning(
                    f"Skipping {collection} for {tenant.shop_domain}: {e.message}",
                    extra=log_extra,
                )
                return CollectionResult(collection=collection, restricted=True, errors=[e.message])

        logger.info(
            f"Backfilled {collection} for {tenant.shop_domain}: "
            f"{result.upserted}/{result.fetched} upserted over {result.pages} pages",
            extra=log_extra,
        )
        return result

    async def _backfill_orders(self, client: ShopifyClient, tenant: Tenant) -> CollectionResult:
        """Orders with the slim projection, restarting with full objects if it is refused."""
        result = CollectionResult(collection=ORDERS, used_projection=True)
        try:
            await self._walk(client, tenant, result, {"status": "any", "fields": ORDER_PROJECTION_FIELDS})
            return result
        except RestrictedDataError:
            raise
        except UpstreamError as e:
            logger.warning(
                f"Order projection refused for {tenant.shop_domain} ({e.message}); "
                f"retrying with full objects",
                extra={"tenant_id": tenant.id, "collection": ORDERS},
            )

        result = CollectionResult(collection=ORDERS)
        await self._walk(client, tenant, result, {"status": "any"})
        return result

    async def _walk(
        self,
        client: ShopifyClient,
        tenant: Tenant,
        result: CollectionResult,
        params: Optional[dict] = None,
    ) -> None:
        collection = result.collection
        path = endpoints.LISTINGS[collection]

        async for page in client.paginate(path, collection, params):
            result.pages += 1
            result.fetched += len(page)

            for item in page:
                try:
                    external_id, fields = normalize_entity(collection, item)
                except PayloadError as e:
                    result.skipped += 1
                    result.errors.append(f"{e.message} on page {result.pages}")
                    logger.warning(
                        f"Skipping malformed {collection} item: {e.message}",
                        extra={"tenant_id": tenant.id, "collection": collection},
                    )
                    continue

                async with self.storage.entities() as entities:
                    await entities.upsert(collection, tenant.id, external_id, fields)
                result.upserted += 1

    async def reconcile_tenant(
        self,
        tenant: Tenant,
        skip_customers: bool = False,
        collections: Optional[Iterable[str]] = None,
        sync_type: str = "manual",
    ) -> SyncResult:
        """
        Backfill a tenant's collections in order: customers, products, orders.

        A restricted collection is recorded and skipped; any other failure
        aborts the run and propagates to the caller.
        """
        wanted = set(collections) if collections is not None else set(COLLECTIONS)
        if skip_customers:
            wanted.discard(CUSTOMERS)

        started_at = time.time()
        results: Dict[str, CollectionResult] = {}
        errors: List[str] = []

        logger.info(f"Starting {sync_type} sync for {tenant.shop_domain}", extra={"tenant_id": tenant.id})

        for collection in COLLECTIONS:
            if collection not in wanted:
                continue
            try:
                result = await self.reconcile_collection(tenant, collection)
            except Exception as e:
                logger.error(
                    f"Sync of {collection} failed for {tenant.shop_domain}: {e}",
                    extra={"tenant_id": tenant.id, "collection": collection},
                )
                raise
            results[collection] = result
            if result.restricted:
                errors.extend(f"{collection}: {message}" for message in result.errors)

        sync_result = SyncResult(
            sync_type=sync_type,
            tenant_id=tenant.id,
            started_at=started_at,
            completed_at=time.time(),
            collections=results,
            errors=errors,
            success=True,
        )
        logger.info(
            f"Sync completed for {tenant.shop_domain}: "
            + ", ".join(f"{name}={r.upserted}" for name, r in results.items()),
            extra={"tenant_id": tenant.id},
        )
        return sync_result

    async def diagnose(self, tenant: Tenant) -> Dict[str, Any]:
        """Read-only connectivity probe using the stored credential."""
        async with self.clients.for_tenant(tenant) as client:
            customers, orders = await asyncio.gather(
                _probe(client.get_json(endpoints.CUSTOMERS_COUNT)),
                _probe(client.get_json(endpoints.ORDERS_COUNT, {"status": "any"})),
            )
        return {
            "ok": True,
            "shop": tenant.shop_domain,
            "customers": customers,
            "orders": orders,
        }


async def _probe(call) -> Any:
    try:
        return await call
    except UpstreamError as e:
        return {"error": e.status, "data": e.details}
    except AuthError as e:
        return {"error": 401, "data": e.details}
