"""SQLAlchemy models for tenants and synced commerce entities."""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


def utcnow() -> datetime:
    """Naive UTC timestamp (all stored datetimes are naive UTC)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_tenant_id() -> str:
    return str(uuid.uuid4())


class Tenant(Base):
    """
    One onboarded store.

    The access token is exclusive to this tenant and is only rewritten on
    re-authorization; the tenant id survives re-installs.
    """

    __tablename__ = "tenants"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_tenant_id)
    shop_domain: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    access_token: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    def __repr__(self) -> str:
        # never expose access_token
        return f"<Tenant id={self.id} shop_domain={self.shop_domain}>"


class Customer(Base):
    """Customer profile synced from the platform."""

    __tablename__ = "customers"
    __table_args__ = (
        UniqueConstraint("tenant_id", "external_id", name="uq_customers_tenant_external"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tenants.id"), index=True, nullable=False
    )
    external_id: Mapped[str] = mapped_column(String(32), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)
    first_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    synced_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class Order(Base):
    """
    Order synced from the platform.

    total_price is an exact decimal string. customer_external_id is a
    lookup-only back-reference into customers, never a foreign key.
    """

    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("tenant_id", "external_id", name="uq_orders_tenant_external"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tenants.id"), index=True, nullable=False
    )
    external_id: Mapped[str] = mapped_column(String(32), nullable=False)
    total_price: Mapped[str] = mapped_column(String(32), default="0", nullable=False)
    customer_external_id: Mapped[Optional[str]] = mapped_column(
        String(32), index=True, nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, index=True, nullable=False)
    synced_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class Product(Base):
    """Product synced from the platform (price of the first variant)."""

    __tablename__ = "products"
    __table_args__ = (
        UniqueConstraint("tenant_id", "external_id", name="uq_products_tenant_external"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tenants.id"), index=True, nullable=False
    )
    external_id: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(String(512), default="Untitled", nullable=False)
    price: Mapped[str] = mapped_column(String(32), default="0", nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    synced_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


# collection name -> model
ENTITY_MODELS = {
    "customers": Customer,
    "orders": Order,
    "products": Product,
}
