"""Tests for the OAuth install flow."""

import json
from urllib.parse import parse_qs, urlparse

import pytest

from shopsync.core.errors import AuthError, PayloadError, TransientUpstreamError
from shopsync.services.token_exchange import TokenExchange, normalize_shop_domain

from conftest import APP_URL


@pytest.fixture
def tokens(settings, storage, clients):
    return TokenExchange(settings, storage, clients)


# Shop values whose URL host would not be the store's own domain
SMUGGLED_HOSTS = [
    "evil.example?.myshopify.com",
    "evil.example#.myshopify.com",
    "evil.example@acme.myshopify.com",
    "evil.example:443.myshopify.com",
    "evil.example\\.myshopify.com",
    "acme.evil.myshopify.com",
    "-acme.myshopify.com",
]


async def all_tenants(storage):
    async with storage.tenants() as tenants:
        return await tenants.list_all()


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("acme.myshopify.com", "acme.myshopify.com"),
        ("https://ACME.myshopify.com/", "acme.myshopify.com"),
        ("  http://acme.myshopify.com  ", "acme.myshopify.com"),
        (None, ""),
    ],
)
def test_normalize_shop_domain(raw, expected):
    assert normalize_shop_domain(raw) == expected


class TestInstallUrl:
    def test_consent_url_parameters(self, tokens):
        url = urlparse(tokens.build_install_url("acme.myshopify.com", state="abc123"))
        query = parse_qs(url.query)

        assert url.netloc == "acme.myshopify.com"
        assert url.path == "/admin/oauth/authorize"
        assert query["client_id"] == ["test-api-key"]
        assert query["scope"] == ["read_products,read_orders,read_customers"]
        assert query["redirect_uri"] == [f"{APP_URL}/auth/callback"]
        assert query["state"] == ["abc123"]

    def test_state_is_generated(self, tokens):
        first = parse_qs(urlparse(tokens.build_install_url("acme.myshopify.com")).query)["state"][0]
        second = parse_qs(urlparse(tokens.build_install_url("acme.myshopify.com")).query)["state"][0]
        assert len(first) == 32
        assert first != second

    @pytest.mark.parametrize("shop", [None, "", "acme.example.com", ".myshopify.com", "acme.myshopify.com/admin"])
    def test_invalid_shop(self, tokens, shop):
        with pytest.raises(AuthError):
            tokens.build_install_url(shop)


class TestExchange:
    @pytest.mark.asyncio
    async def test_code_exchange_creates_tenant(self, tokens, fake_shopify, storage):
        tenant = await tokens.exchange("acme.myshopify.com", "the-code")

        assert tenant.shop_domain == "acme.myshopify.com"
        assert tenant.access_token == "shpat_fresh"

        request = fake_shopify.calls("admin/oauth/access_token", "POST")[0]
        assert json.loads(request.content) == {
            "client_id": "test-api-key",
            "client_secret": "test-app-secret",
            "code": "the-code",
        }

    @pytest.mark.asyncio
    async def test_repeated_callback_rotates_token_without_duplicating(self, tokens, fake_shopify, storage):
        first = await tokens.exchange("acme.myshopify.com", "code-1")
        fake_shopify.token_response = (200, {"access_token": "shpat_rotated"})
        second = await tokens.exchange("https://acme.myshopify.com", "code-2")

        assert first.id == second.id
        assert second.access_token == "shpat_rotated"
        assert len(await all_tenants(storage)) == 1

    @pytest.mark.asyncio
    async def test_rejected_code(self, tokens, fake_shopify, storage):
        fake_shopify.token_response = (400, {"error": "invalid_request"})

        with pytest.raises(AuthError):
            await tokens.exchange("acme.myshopify.com", "stale")
        assert await all_tenants(storage) == []

    @pytest.mark.asyncio
    async def test_response_without_token(self, tokens, fake_shopify):
        fake_shopify.token_response = (200, {"scope": "read_orders"})

        with pytest.raises(AuthError):
            await tokens.exchange("acme.myshopify.com", "code")

    @pytest.mark.asyncio
    async def test_platform_outage_is_transient(self, tokens, fake_shopify):
        fake_shopify.token_response = (502, {"errors": "Bad Gateway"})

        with pytest.raises(TransientUpstreamError):
            await tokens.exchange("acme.myshopify.com", "code")

    @pytest.mark.asyncio
    async def test_missing_code(self, tokens):
        with pytest.raises(AuthError):
            await tokens.exchange("acme.myshopify.com", "")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("shop", SMUGGLED_HOSTS)
    async def test_smuggled_host_never_receives_credentials(self, tokens, fake_shopify, storage, shop):
        with pytest.raises(AuthError):
            await tokens.exchange(shop, "code")

        assert fake_shopify.requests == []
        assert await all_tenants(storage) == []


class TestRegisterTenant:
    @pytest.mark.asyncio
    async def test_manual_registration(self, tokens, storage):
        tenant = await tokens.register_tenant("Shop.myshopify.com", " shpat_custom ")

        assert tenant.shop_domain == "shop.myshopify.com"
        assert tenant.access_token == "shpat_custom"

    @pytest.mark.asyncio
    async def test_invalid_domain(self, tokens):
        with pytest.raises(PayloadError):
            await tokens.register_tenant("shop.example.com", "shpat_custom")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("shop", SMUGGLED_HOSTS)
    async def test_smuggled_host_is_rejected(self, tokens, storage, shop):
        with pytest.raises(PayloadError):
            await tokens.register_tenant(shop, "shpat_custom")
        assert await all_tenants(storage) == []

    @pytest.mark.asyncio
    async def test_empty_token(self, tokens):
        with pytest.raises(PayloadError):
            await tokens.register_tenant("shop.myshopify.com", "   ")
