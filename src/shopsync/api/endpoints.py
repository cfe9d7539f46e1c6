"""Shopify Admin REST endpoint paths (relative to /admin/api/{version})."""

CUSTOMERS = "/customers.json"
CUSTOMERS_COUNT = "/customers/count.json"

PRODUCTS = "/products.json"

ORDERS = "/orders.json"
ORDERS_COUNT = "/orders/count.json"

WEBHOOKS = "/webhooks.json"
WEBHOOK = "/webhooks/{webhook_id}.json"

# Listing endpoint per collection
LISTINGS = {
    "customers": CUSTOMERS,
    "products": PRODUCTS,
    "orders": ORDERS,
}

# OAuth (absolute, per shop)
OAUTH_AUTHORIZE = "https://{shop}/admin/oauth/authorize"
OAUTH_ACCESS_TOKEN = "https://{shop}/admin/oauth/access_token"
