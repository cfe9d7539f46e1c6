"""
Centralized application constants.

Single point of truth for platform and sync constants shared by the
webhook path, the backfill path and the metrics endpoints.
"""

# ==============================================================================
# COLLECTIONS
# ==============================================================================

CUSTOMERS = "customers"
PRODUCTS = "products"
ORDERS = "orders"

# Backfill order (customers first so order back-references resolve in metrics)
COLLECTIONS = [CUSTOMERS, PRODUCTS, ORDERS]

# ==============================================================================
# WEBHOOK SUBSCRIPTIONS
# ==============================================================================

# Topics this service keeps registered on every tenant
WEBHOOK_TOPICS = [
    "orders/create",
    "orders/updated",
    "customers/create",
    "customers/update",
    "products/create",
    "products/update",
]

# Route actions accepted under /webhooks/{collection}/{action}
WEBHOOK_ACTIONS = ["create", "update", "updated"]

# ==============================================================================
# PLATFORM API
# ==============================================================================

# Maximum items per listing page (Shopify limit is 250)
PAGE_SIZE = 250

# Narrow projection for order listings (captures the linked customer id)
ORDER_PROJECTION_FIELDS = "id,created_at,processed_at,total_price,customer"

# Error text Shopify returns when Protected Customer Data access is not granted
RESTRICTED_DATA_MARKER = "protected customer data"

# ==============================================================================
# METRICS
# ==============================================================================

# Orders sampled from the live platform when local data is empty
LIVE_REVENUE_SAMPLE_SIZE = 50
LIVE_REVENUE_SAMPLE_FIELDS = "id,total_price,created_at"

DEFAULT_TOP_CUSTOMERS = 5
MAX_TOP_CUSTOMERS = 100
