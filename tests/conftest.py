"""
Root test configuration and fixtures.

Provides:
- settings bound to a per-test SQLite file
- storage / tenant fixtures
- FakeShopify: an in-memory Admin API served through httpx.MockTransport
"""

import asyncio
import json
from typing import Callable, Dict, List, Optional, Tuple

import httpx
import pytest
import pytest_asyncio

from shopsync.api.client import ClientFactory
from shopsync.config.settings import Settings
from shopsync.core.signature import compute_webhook_signature
from shopsync.db.repository import Storage

TEST_SECRET = "test-app-secret"
APP_URL = "https://app.example.com"


def sign(body: bytes, secret: str = TEST_SECRET) -> str:
    """X-Shopify-Hmac-Sha256 value for a raw body."""
    return compute_webhook_signature(body, secret)


class FakeShopify:
    """
    In-memory Shopify Admin REST API.

    Listings are served page by page with Link rel="next" cursors. Any
    resource can be made to fail with fail(); every request is recorded.
    """

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.requests: List[httpx.Request] = []
        self.pages: Dict[str, List[List[dict]]] = {}
        self.counts: Dict[str, int] = {}
        self.webhooks: List[dict] = []
        self.token_response: Tuple[int, dict] = (200, {"access_token": "shpat_fresh", "scope": "read_orders"})
        self._failures: List[Tuple[str, Callable[[httpx.Request], bool], int, dict]] = []
        self._next_webhook_id = 1000
        self.transport = httpx.MockTransport(self.handle)

    # -- setup helpers -----------------------------------------------------

    def set_listing(self, collection: str, pages: List[List[dict]]) -> None:
        self.pages[f"{collection}.json"] = pages

    def add_webhook(self, topic: str, address: str) -> dict:
        webhook = {"id": self._next_webhook_id, "topic": topic, "address": address, "format": "json"}
        self._next_webhook_id += 1
        self.webhooks.append(webhook)
        return webhook

    def fail(
        self,
        resource: str,
        status: int,
        body: dict,
        method: Optional[str] = None,
        when: Optional[Callable[[httpx.Request], bool]] = None,
    ) -> None:
        """Make requests for resource (e.g. "orders.json") answer with an error."""

        def predicate(request: httpx.Request) -> bool:
            if method and request.method != method:
                return False
            return when(request) if when else True

        self._failures.append((resource, predicate, status, body))

    # -- inspection --------------------------------------------------------

    def calls(self, resource: str, method: str = "GET") -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and self.resource(r) == resource]

    def first_page_calls(self, resource: str) -> List[httpx.Request]:
        return [r for r in self.calls(resource) if "page_info" not in r.url.params]

    @staticmethod
    def resource(request: httpx.Request) -> str:
        path = request.url.path
        if "/admin/api/" in path:
            return path.split("/admin/api/", 1)[1].split("/", 1)[1]
        return path.lstrip("/")

    # -- transport ---------------------------------------------------------

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)

        resource = self.resource(request)
        for failing, predicate, status, body in self._failures:
            if failing == resource and predicate(request):
                return httpx.Response(status, json=body)

        if resource == "admin/oauth/access_token":
            status, body = self.token_response
            return httpx.Response(status, json=body)

        if resource.endswith("/count.json"):
            collection = resource.split("/", 1)[0]
            return httpx.Response(200, json={"count": self.counts.get(collection, 0)})

        if resource == "webhooks.json" and request.method == "GET":
            return httpx.Response(200, json={"webhooks": self.webhooks})

        if resource == "webhooks.json" and request.method == "POST":
            data = json.loads(request.content)["webhook"]
            webhook = self.add_webhook(data["topic"], data["address"])
            return httpx.Response(201, json={"webhook": webhook})

        if resource.startswith("webhooks/") and request.method == "PUT":
            webhook_id = int(resource.split("/")[1].split(".")[0])
            data = json.loads(request.content)["webhook"]
            for webhook in self.webhooks:
                if webhook["id"] == webhook_id:
                    webhook["address"] = data["address"]
                    return httpx.Response(200, json={"webhook": webhook})
            return httpx.Response(404, json={"errors": "Not Found"})

        if resource in self.pages:
            return self._listing_page(request, resource)

        return httpx.Response(404, json={"errors": "Not Found"})

    def _listing_page(self, request: httpx.Request, resource: str) -> httpx.Response:
        pages = self.pages[resource]
        index = int(request.url.params.get("page_info", "0"))
        items = pages[index] if index < len(pages) else []
        headers = {}
        if index + 1 < len(pages):
            next_url = request.url.copy_with(params={"limit": "250", "page_info": str(index + 1)})
            headers["Link"] = f'<{next_url}>; rel="next"'
        key = resource.split(".", 1)[0]
        return httpx.Response(200, json={key: items}, headers=headers)


@pytest.fixture
def database_url(tmp_path):
    """File-backed SQLite database unique to the test."""
    return f"sqlite+aiosqlite:///{tmp_path / 'shopsync.db'}"


@pytest.fixture
def settings(database_url):
    """Complete settings independent of the developer's environment."""
    return Settings(
        _env_file=None,
        shopify_api_key="test-api-key",
        shopify_api_secret=TEST_SECRET,
        shopify_app_url=APP_URL,
        database_url=database_url,
        auto_sync_enabled=False,
        auto_register_webhooks_on_boot=False,
    )


@pytest.fixture
def fake_shopify():
    return FakeShopify()


@pytest.fixture
def clients(settings, fake_shopify):
    return ClientFactory(settings, transport=fake_shopify.transport)


@pytest_asyncio.fixture
async def storage(database_url):
    """Initialized storage, disposed after the test."""
    storage = Storage.from_url(database_url)
    await storage.init()
    yield storage
    await storage.dispose()


@pytest_asyncio.fixture
async def tenant(storage):
    async with storage.tenants() as tenants:
        return await tenants.upsert("acme.myshopify.com", "shpat_acme")


@pytest_asyncio.fixture
async def other_tenant(storage):
    async with storage.tenants() as tenants:
        return await tenants.upsert("globex.myshopify.com", "shpat_globex")
