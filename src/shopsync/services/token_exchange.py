"""OAuth install flow: consent URL and authorization-code exchange."""

import asyncio
import re
import secrets
from typing import Dict, Optional
from urllib.parse import urlencode

from shopsync.api import endpoints
from shopsync.api.client import ClientFactory
from shopsync.config.settings import Settings
from shopsync.core.errors import AuthError, PayloadError
from shopsync.core.logger import setup_logger
from shopsync.db.models import Tenant
from shopsync.db.repository import Storage

logger = setup_logger(__name__)


def normalize_shop_domain(shop: Optional[str]) -> str:
    """Lower-case a shop domain and strip any scheme or trailing slashes."""
    if not shop:
        return ""
    value = shop.strip().lower()
    for prefix in ("https://", "http://"):
        if value.startswith(prefix):
            value = value[len(prefix):]
    return value.rstrip("/")


def is_valid_shop_domain(shop: str, suffix: str) -> bool:
    """A single DNS label (the store name) followed by the platform suffix, nothing else."""
    if not shop:
        return False
    pattern = r"[a-z0-9][a-z0-9-]*" + re.escape(suffix.lower())
    return re.fullmatch(pattern, shop) is not None


class TokenExchange:
    """
    Turns an authorization code into a persisted per-tenant credential.

    Re-authorization writes for one shop are serialized; reads of the
    tenant row elsewhere need no coordination.
    """

    def __init__(self, settings: Settings, storage: Storage, clients: ClientFactory):
        self.settings = settings
        self.storage = storage
        self.clients = clients
        self._shop_locks: Dict[str, asyncio.Lock] = {}

    def validate_shop(self, shop: Optional[str]) -> str:
        """
        Normalize and check a shop identifier.

        Raises:
            AuthError: missing or not a platform shop domain
        """
        domain = normalize_shop_domain(shop)
        if not is_valid_shop_domain(domain, self.settings.shop_domain_suffix):
            raise AuthError("Missing or invalid 'shop' parameter")
        return domain

    def build_install_url(self, shop: str, state: Optional[str] = None) -> str:
        """Consent URL the installer is redirected to."""
        domain = self.validate_shop(shop)
        query = urlencode(
            {
                "client_id": self.settings.shopify_api_key or "",
                "scope": self.settings.shopify_scopes,
                "redirect_uri": f"{self.settings.app_url}/auth/callback",
                "state": state or secrets.token_hex(16),
            }
        )
        return f"{endpoints.OAUTH_AUTHORIZE.format(shop=domain)}?{query}"

    async def exchange(self, shop: str, code: str) -> Tenant:
        """
        Exchange an authorization code and upsert the tenant by shop domain.

        Raises:
            AuthError: malformed domain, missing code, or code rejected
            TransientUpstreamError: token endpoint unreachable
        """
        domain = self.validate_shop(shop)
        if not code:
            raise AuthError("Missing authorization code")

        access_token = await self.clients.exchange_code(domain, code)
        tenant = await self._save(domain, access_token)
        logger.info(f"Access token obtained for {domain}", extra={"tenant_id": tenant.id})
        return tenant

    async def register_tenant(self, shop: str, access_token: str) -> Tenant:
        """
        Register or update a tenant from a pre-provisioned token (no OAuth).

        Raises:
            PayloadError: invalid shop domain or empty token
        """
        domain = normalize_shop_domain(shop)
        if not is_valid_shop_domain(domain, self.settings.shop_domain_suffix):
            raise PayloadError(
                f"Valid shopDomain like store{self.settings.shop_domain_suffix} required"
            )
        token = (access_token or "").strip()
        if not token:
            raise PayloadError("accessToken required")

        tenant = await self._save(domain, token)
        logger.info(f"Tenant registered manually for {domain}", extra={"tenant_id": tenant.id})
        return tenant

    async def _save(self, shop_domain: str, access_token: str) -> Tenant:
        lock = self._shop_locks.setdefault(shop_domain, asyncio.Lock())
        async with lock:
            async with self.storage.tenants() as tenants:
                return await tenants.upsert(shop_domain, access_token)
