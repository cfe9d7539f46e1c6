"""Database module."""

from .base import Base, get_engine, get_session_factory, init_db
from .models import Customer, Order, Product, Tenant
from .repository import EntityRepository, Storage, TenantRepository

__all__ = [
    "Base",
    "get_engine",
    "get_session_factory",
    "init_db",
    "Customer",
    "Order",
    "Product",
    "Tenant",
    "EntityRepository",
    "Storage",
    "TenantRepository",
]
