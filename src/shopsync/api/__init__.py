"""Shopify platform API."""

from .client import ClientFactory, ShopifyClient, request_access_token

__all__ = ["ClientFactory", "ShopifyClient", "request_access_token"]
