"""ShopSync - multi-tenant Shopify ingestion service."""

__version__ = "1.0.0"
