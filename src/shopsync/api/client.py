"""Shopify Admin REST API client."""

from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from shopsync.config.constants import ORDERS, PAGE_SIZE, RESTRICTED_DATA_MARKER
from shopsync.config.settings import Settings
from shopsync.core.errors import AuthError, RestrictedDataError, TransientUpstreamError
from shopsync.core.logger import setup_logger
from shopsync.models.payloads import decode_json

from . import endpoints

logger = setup_logger(__name__)

DEFAULT_TIMEOUT = 30.0


def _error_detail(response: httpx.Response) -> Any:
    """Best-effort parsed error body of a failed response."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:500] or None
    if isinstance(body, dict) and "errors" in body:
        return body["errors"]
    return body


def is_restricted_data_refusal(detail: Any) -> bool:
    """Whether an error body carries the protected-customer-data signal."""
    return RESTRICTED_DATA_MARKER in str(detail).lower()


def raise_for_status(response: httpx.Response, action: str) -> None:
    """
    Map a non-2xx platform response onto the error taxonomy.

    Raises:
        RestrictedDataError: protected customer data not granted
        AuthError: stored access token rejected (401)
        TransientUpstreamError: any other failure
    """
    if response.is_success:
        return

    status = response.status_code
    detail = _error_detail(response)

    if is_restricted_data_refusal(detail):
        raise RestrictedDataError(
            f"Protected customer data access not granted for {action}",
            status=status,
            details=detail,
        )
    if status == 401:
        raise AuthError(
            "Shopify rejected the stored access token; re-install the app",
            details=detail,
        )
    raise TransientUpstreamError(
        f"Shopify API error {status} during {action}",
        status=status,
        details=detail,
    )


class ShopifyClient:
    """Async HTTP client for one tenant's Shopify Admin REST API."""

    def __init__(
        self,
        shop_domain: str,
        access_token: str,
        api_version: str = "2024-07",
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize API client with a tenant credential."""
        self.shop_domain = shop_domain
        self.base_url = f"https://{shop_domain}/admin/api/{api_version}"
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "X-Shopify-Access-Token": access_token,
                "Accept": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "ShopifyClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        url: str,
        params: Optional[dict] = None,
        json: Optional[dict] = None,
    ) -> httpx.Response:
        """
        Make an authenticated request to the Admin API.

        Args:
            method: HTTP method
            url: Endpoint path, or an absolute pagination URL
            params: Query parameters
            json: JSON request body

        Returns:
            The successful response
        """
        try:
            logger.debug(f"{method} {url} ({self.shop_domain})")
            response = await self.client.request(method, url, params=params, json=json)
        except httpx.TimeoutException as e:
            logger.error(f"Timeout calling {url} for {self.shop_domain}")
            raise TransientUpstreamError(f"Timeout calling Shopify ({url})") from e
        except httpx.HTTPError as e:
            logger.error(f"HTTP error calling {url} for {self.shop_domain}: {e}")
            raise TransientUpstreamError(f"Could not reach Shopify: {e}") from e

        raise_for_status(response, f"{method} {url.split('?')[0]}")
        return response

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return decode_json(response.content)
        except ValueError as e:
            raise TransientUpstreamError("Shopify returned a non-JSON body") from e

    async def paginate(
        self,
        path: str,
        key: str,
        params: Optional[dict] = None,
    ) -> AsyncIterator[List[Dict[str, Any]]]:
        """
        Yield listing pages, following the Link rel="next" cursor until exhausted.

        Only the first request carries the filter params; cursor URLs
        already encode them together with page_info.
        """
        url: Optional[str] = path
        query: Optional[dict] = {"limit": PAGE_SIZE, **(params or {})}
        page = 0

        while url:
            response = await self._request("GET", url, params=query)
            body = self._json(response)
            items = body.get(key) if isinstance(body, dict) else None
            if not isinstance(items, list):
                raise TransientUpstreamError(f"Listing {path} has no '{key}' array", status=response.status_code)

            page += 1
            logger.debug(f"Fetched page {page} of {key} ({len(items)} items) for {self.shop_domain}")
            yield items

            url = response.links.get("next", {}).get("url")
            query = None

    async def count(self, path: str, params: Optional[dict] = None) -> int:
        response = await self._request("GET", path, params=params)
        body = self._json(response)
        return int(body.get("count", 0))

    async def get_json(self, path: str, params: Optional[dict] = None) -> Any:
        return self._json(await self._request("GET", path, params=params))

    async def list_orders_sample(self, limit: int, fields: str) -> List[Dict[str, Any]]:
        response = await self._request(
            "GET",
            endpoints.ORDERS,
            params={"limit": limit, "status": "any", "fields": fields},
        )
        return self._json(response).get(ORDERS) or []

    async def list_webhooks(self) -> List[Dict[str, Any]]:
        """All registered webhook subscriptions (every page)."""
        webhooks: List[Dict[str, Any]] = []
        async for page in self.paginate(endpoints.WEBHOOKS, "webhooks"):
            webhooks.extend(page)
        return webhooks

    async def create_webhook(self, topic: str, address: str) -> Dict[str, Any]:
        response = await self._request(
            "POST",
            endpoints.WEBHOOKS,
            json={"webhook": {"topic": topic, "address": address, "format": "json"}},
        )
        return self._json(response).get("webhook") or {}

    async def update_webhook(self, webhook_id: int, address: str) -> Dict[str, Any]:
        response = await self._request(
            "PUT",
            endpoints.WEBHOOK.format(webhook_id=webhook_id),
            json={"webhook": {"id": webhook_id, "address": address, "format": "json"}},
        )
        return self._json(response).get("webhook") or {}

    async def close(self) -> None:
        """Close HTTP client connection."""
        await self.client.aclose()


async def request_access_token(
    shop_domain: str,
    api_key: str,
    api_secret: str,
    code: str,
    timeout: float = DEFAULT_TIMEOUT,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> str:
    """
    Exchange an OAuth authorization code for a permanent access token.

    Raises:
        AuthError: invalid/expired code or no token in the response
        TransientUpstreamError: Shopify unreachable or 5xx
    """
    url = endpoints.OAUTH_ACCESS_TOKEN.format(shop=shop_domain)
    payload = {"client_id": api_key, "client_secret": api_secret, "code": code}

    async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
        try:
            response = await client.post(url, json=payload)
        except httpx.HTTPError as e:
            logger.error(f"Token exchange request failed for {shop_domain}: {e}")
            raise TransientUpstreamError(f"Could not reach Shopify: {e}") from e

    if response.status_code >= 500:
        raise TransientUpstreamError(
            f"Shopify token endpoint error {response.status_code}",
            status=response.status_code,
            details=_error_detail(response),
        )
    if not response.is_success:
        raise AuthError(
            "Authorization code was rejected",
            details=_error_detail(response),
        )

    try:
        access_token = response.json().get("access_token")
    except ValueError:
        access_token = None
    if not access_token:
        raise AuthError("Failed to obtain access token")
    return access_token


class ClientFactory:
    """Builds per-tenant clients with the configured version and timeout."""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self.transport = transport

    def for_tenant(self, tenant) -> ShopifyClient:
        return ShopifyClient(
            shop_domain=tenant.shop_domain,
            access_token=tenant.access_token,
            api_version=self.settings.shopify_api_version,
            timeout=self.settings.http_timeout_seconds,
            transport=self.transport,
        )

    async def exchange_code(self, shop_domain: str, code: str) -> str:
        return await request_access_token(
            shop_domain,
            self.settings.shopify_api_key or "",
            self.settings.shopify_api_secret or "",
            code,
            timeout=self.settings.http_timeout_seconds,
            transport=self.transport,
        )
