"""Repositories for tenant and entity data access."""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import distinct, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from shopsync.core.errors import ConfigError

from .base import get_engine, get_session_factory, init_db
from .models import ENTITY_MODELS, Customer, Order, Tenant, new_tenant_id, utcnow

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _dialect_insert(session: AsyncSession, model):
    """Dialect-specific INSERT supporting ON CONFLICT DO UPDATE."""
    dialect = session.bind.dialect.name
    insert = _DIALECT_INSERTS.get(dialect)
    if insert is None:
        raise ConfigError(f"Unsupported database dialect for upserts: {dialect}")
    return insert(model)


class Storage:
    """
    Explicitly constructed storage handle.

    Owns the engine and session factory; components receive it through
    their constructors and open a short-lived session per operation.
    """

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self.session_factory = get_session_factory(engine)

    @classmethod
    def from_url(cls, database_url: str) -> "Storage":
        return cls(get_engine(database_url))

    async def init(self) -> None:
        await init_db(self.engine)

    async def dispose(self) -> None:
        await self.engine.dispose()

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        async with self.session_factory() as session:
            yield session

    @asynccontextmanager
    async def tenants(self) -> AsyncIterator["TenantRepository"]:
        async with self.session() as session:
            yield TenantRepository(session)

    @asynccontextmanager
    async def entities(self) -> AsyncIterator["EntityRepository"]:
        async with self.session() as session:
            yield EntityRepository(session)


class TenantRepository:
    """Data access layer for Tenant model."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, tenant_id: str) -> Optional[Tenant]:
        return await self.session.get(Tenant, tenant_id)

    async def get_by_shop_domain(self, shop_domain: str) -> Optional[Tenant]:
        query = select(Tenant).where(Tenant.shop_domain == shop_domain)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def list_all(self) -> List[Tenant]:
        result = await self.session.execute(select(Tenant).order_by(Tenant.created_at))
        return list(result.scalars().all())

    async def upsert(self, shop_domain: str, access_token: str) -> Tenant:
        """
        Create the tenant for shop_domain, or rotate its access token.

        A single INSERT ... ON CONFLICT keeps concurrent callbacks for the
        same shop from creating duplicates.
        """
        now = utcnow()
        stmt = _dialect_insert(self.session, Tenant).values(
            id=new_tenant_id(),
            shop_domain=shop_domain,
            access_token=access_token,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["shop_domain"],
            set_={"access_token": stmt.excluded.access_token, "updated_at": now},
        )
        await self.session.execute(stmt)
        await self.session.commit()

        tenant = await self.get_by_shop_domain(shop_domain)
        # Re-read the committed row, not a stale identity-map copy
        await self.session.refresh(tenant)
        return tenant


class EntityRepository:
    """Data access layer for customers, orders and products."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def upsert(self, collection: str, tenant_id: str, external_id: str, fields: dict) -> None:
        """
        Insert or overwrite one entity keyed by (tenant_id, external_id).

        Each call is its own transaction. Mutable fields of an existing row
        are replaced (last write wins).
        """
        model = ENTITY_MODELS[collection]
        values = dict(fields, synced_at=utcnow())

        stmt = _dialect_insert(self.session, model).values(
            tenant_id=tenant_id,
            external_id=external_id,
            **values,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["tenant_id", "external_id"],
            set_={name: stmt.excluded[name] for name in values},
        )
        await self.session.execute(stmt)
        await self.session.commit()

    async def get(self, collection: str, tenant_id: str, external_id: str):
        model = ENTITY_MODELS[collection]
        query = select(model).where(model.tenant_id == tenant_id, model.external_id == external_id)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def count(self, collection: str, tenant_id: str) -> int:
        model = ENTITY_MODELS[collection]
        query = select(func.count()).select_from(model).where(model.tenant_id == tenant_id)
        return (await self.session.execute(query)).scalar_one()

    async def count_distinct_order_customers(self, tenant_id: str) -> int:
        query = select(func.count(distinct(Order.customer_external_id))).where(
            Order.tenant_id == tenant_id,
            Order.customer_external_id.is_not(None),
        )
        return (await self.session.execute(query)).scalar_one()

    async def order_totals(self, tenant_id: str) -> List[str]:
        query = select(Order.total_price).where(Order.tenant_id == tenant_id)
        return list((await self.session.execute(query)).scalars().all())

    async def orders_created_between(
        self,
        tenant_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> Sequence[Tuple[datetime, str]]:
        query = select(Order.created_at, Order.total_price).where(Order.tenant_id == tenant_id)
        if start is not None:
            query = query.where(Order.created_at >= start)
        if end is not None:
            query = query.where(Order.created_at <= end)
        return (await self.session.execute(query)).all()

    async def customer_spend_rows(self, tenant_id: str) -> Sequence[Tuple[str, str]]:
        query = select(Order.customer_external_id, Order.total_price).where(
            Order.tenant_id == tenant_id,
            Order.customer_external_id.is_not(None),
        )
        return (await self.session.execute(query)).all()

    async def customers_by_external_ids(
        self, tenant_id: str, external_ids: Iterable[str]
    ) -> Dict[str, Customer]:
        ids = list(external_ids)
        if not ids:
            return {}
        query = select(Customer).where(
            Customer.tenant_id == tenant_id,
            Customer.external_id.in_(ids),
        )
        result = await self.session.execute(query)
        return {c.external_id: c for c in result.scalars().all()}

    async def recent_orders(self, tenant_id: str, limit: int = 10) -> List[Order]:
        query = (
            select(Order)
            .where(Order.tenant_id == tenant_id)
            .order_by(Order.created_at.desc())
            .limit(limit)
        )
        return list((await self.session.execute(query)).scalars().all())
