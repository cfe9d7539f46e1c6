"""
Tests for webhook ingestion.

Covers verification, tenant resolution, idempotent upserts, convergence
of create/update orderings and tenant isolation.
"""

import json

import pytest
import pytest_asyncio

from shopsync.core.signature import WebhookVerifier
from shopsync.models.webhook import WebhookDelivery
from shopsync.services.metrics import MetricsAggregator
from shopsync.services.webhook_ingestor import DeliveryState, RejectReason, WebhookIngestor

from conftest import TEST_SECRET, sign


def make_delivery(topic, payload, shop_domain="acme.myshopify.com", signature=None, raw_body=None):
    body = raw_body if raw_body is not None else json.dumps(payload).encode()
    return WebhookDelivery(
        topic=topic,
        raw_body=body,
        signature=signature if signature is not None else sign(body),
        shop_domain=shop_domain,
    )


@pytest.fixture
def ingestor(storage):
    return WebhookIngestor(storage, WebhookVerifier(TEST_SECRET))


async def fetch(storage, collection, tenant_id, external_id):
    async with storage.entities() as entities:
        return await entities.get(collection, tenant_id, external_id)


async def count(storage, collection, tenant_id):
    async with storage.entities() as entities:
        return await entities.count(collection, tenant_id)


class TestRejections:
    @pytest.mark.asyncio
    async def test_bad_signature_is_unverified(self, ingestor, tenant):
        outcome = await ingestor.ingest(
            make_delivery("orders/create", {"id": 1, "total_price": "1.00"}, signature="bogus")
        )

        assert outcome.state == DeliveryState.REJECTED
        assert outcome.reason == RejectReason.UNVERIFIED
        assert outcome.status_code == 401
        assert await count(ingestor.storage, "orders", tenant.id) == 0

    @pytest.mark.asyncio
    async def test_missing_signature_is_unverified(self, ingestor, tenant):
        body = b'{"id": 1}'
        delivery = WebhookDelivery(topic="orders/create", raw_body=body, shop_domain=tenant.shop_domain)

        outcome = await ingestor.ingest(delivery)

        assert outcome.status_code == 401

    @pytest.mark.asyncio
    async def test_unknown_shop_is_not_found(self, ingestor, tenant):
        outcome = await ingestor.ingest(
            make_delivery("orders/create", {"id": 1}, shop_domain="unknown.myshopify.com")
        )

        assert outcome.reason == RejectReason.NOT_FOUND
        assert outcome.status_code == 404

    @pytest.mark.asyncio
    async def test_missing_shop_header_is_not_found(self, ingestor, tenant):
        outcome = await ingestor.ingest(make_delivery("orders/create", {"id": 1}, shop_domain=None))
        assert outcome.status_code == 404

    @pytest.mark.asyncio
    async def test_invalid_json_is_malformed(self, ingestor, tenant):
        outcome = await ingestor.ingest(make_delivery("orders/create", None, raw_body=b"{not json"))

        assert outcome.reason == RejectReason.MALFORMED
        assert outcome.status_code == 500

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad_id", [None, "abc", 1.5, True])
    async def test_non_integer_id_is_malformed(self, ingestor, tenant, bad_id):
        outcome = await ingestor.ingest(make_delivery("customers/create", {"id": bad_id}))
        assert outcome.reason == RejectReason.MALFORMED

    @pytest.mark.asyncio
    async def test_non_decimal_money_is_malformed(self, ingestor, tenant):
        outcome = await ingestor.ingest(make_delivery("orders/create", {"id": 5, "total_price": "lots"}))
        assert outcome.reason == RejectReason.MALFORMED

    @pytest.mark.asyncio
    async def test_unknown_topic_is_malformed(self, ingestor, tenant):
        outcome = await ingestor.ingest(make_delivery("refunds/create", {"id": 5}))
        assert outcome.reason == RejectReason.MALFORMED


class TestUpserts:
    @pytest.mark.asyncio
    async def test_order_create_is_acknowledged(self, ingestor, tenant, storage):
        payload = {
            "id": 100,
            "total_price": "19.99",
            "created_at": "2024-03-01T10:00:00-05:00",
            "customer": {"id": 555, "email": "a@example.com"},
        }

        outcome = await ingestor.ingest(make_delivery("orders/create", payload))

        assert outcome.state == DeliveryState.ACKNOWLEDGED
        assert outcome.status_code == 200
        assert outcome.message == "OK"

        order = await fetch(storage, "orders", tenant.id, "100")
        assert order.total_price == "19.99"
        assert order.customer_external_id == "555"
        # Stored as naive UTC
        assert order.created_at.isoformat() == "2024-03-01T15:00:00"

    @pytest.mark.asyncio
    async def test_money_keeps_exact_decimal_text(self, ingestor, tenant, storage):
        body = b'{"id": 7, "total_price": 0.10000000000000000555}'
        await ingestor.ingest(make_delivery("orders/create", None, raw_body=body))

        order = await fetch(storage, "orders", tenant.id, "7")
        assert order.total_price == "0.10000000000000000555"

    @pytest.mark.asyncio
    async def test_identical_redelivery_keeps_one_row(self, ingestor, tenant, storage):
        payload = {"id": 42, "email": "x@example.com", "first_name": "Ada", "last_name": "L"}

        await ingestor.ingest(make_delivery("customers/create", payload))
        await ingestor.ingest(make_delivery("customers/create", payload))

        assert await count(storage, "customers", tenant.id) == 1
        customer = await fetch(storage, "customers", tenant.id, "42")
        assert customer.email == "x@example.com"
        assert customer.first_name == "Ada"

    @pytest.mark.asyncio
    async def test_update_overwrites_mutable_fields(self, ingestor, tenant, storage):
        await ingestor.ingest(make_delivery("products/create", {"id": 9, "title": "Mug", "variants": [{"price": "5.00"}]}))
        await ingestor.ingest(make_delivery("products/update", {"id": 9, "title": "Big Mug", "variants": [{"price": "7.50"}]}))

        product = await fetch(storage, "products", tenant.id, "9")
        assert product.title == "Big Mug"
        assert product.price == "7.50"
        assert await count(storage, "products", tenant.id) == 1

    @pytest.mark.asyncio
    async def test_product_defaults(self, ingestor, tenant, storage):
        await ingestor.ingest(make_delivery("products/create", {"id": 10}))

        product = await fetch(storage, "products", tenant.id, "10")
        assert product.title == "Untitled"
        assert product.price == "0"

    @pytest.mark.asyncio
    async def test_create_and_update_orderings_converge(self, storage, tenant, other_tenant):
        ingestor = WebhookIngestor(storage, WebhookVerifier(TEST_SECRET))
        created = {"id": 3, "total_price": "10.00", "created_at": "2024-01-01T00:00:00Z"}
        updated = {"id": 3, "total_price": "12.00", "created_at": "2024-01-01T00:00:00Z"}

        await ingestor.ingest(make_delivery("orders/create", created, tenant.shop_domain))
        await ingestor.ingest(make_delivery("orders/updated", updated, tenant.shop_domain))

        await ingestor.ingest(make_delivery("orders/updated", updated, other_tenant.shop_domain))
        await ingestor.ingest(make_delivery("orders/create", updated, other_tenant.shop_domain))

        first = await fetch(storage, "orders", tenant.id, "3")
        second = await fetch(storage, "orders", other_tenant.id, "3")
        assert (first.total_price, first.created_at) == (second.total_price, second.created_at)

    @pytest.mark.asyncio
    async def test_tenants_sharing_external_id_do_not_collide(self, ingestor, storage, tenant, other_tenant):
        await ingestor.ingest(make_delivery("customers/create", {"id": 1, "email": "a@acme.test"}, tenant.shop_domain))
        await ingestor.ingest(make_delivery("customers/create", {"id": 1, "email": "b@globex.test"}, other_tenant.shop_domain))

        assert (await fetch(storage, "customers", tenant.id, "1")).email == "a@acme.test"
        assert (await fetch(storage, "customers", other_tenant.id, "1")).email == "b@globex.test"

    @pytest.mark.asyncio
    async def test_shop_domain_header_is_case_insensitive(self, ingestor, tenant, storage):
        outcome = await ingestor.ingest(make_delivery("orders/create", {"id": 8}, shop_domain="ACME.myshopify.com"))
        assert outcome.status_code == 200


class TestOrderRevenueScenario:
    @pytest_asyncio.fixture
    async def platform_tenant(self, storage):
        async with storage.tenants() as tenants:
            return await tenants.upsert("acme.example-platform.com", "token")

    @pytest.mark.asyncio
    async def test_order_update_replaces_revenue(self, storage, clients, platform_tenant):
        ingestor = WebhookIngestor(storage, WebhookVerifier(TEST_SECRET))
        metrics = MetricsAggregator(storage, clients)
        shop = platform_tenant.shop_domain

        await ingestor.ingest(make_delivery("orders/create", {"id": 100, "total_price": "19.99"}, shop))
        summary = await metrics.summary(platform_tenant)
        assert summary["orders"] == 1
        assert summary["revenue"] == "19.99"

        await ingestor.ingest(make_delivery("orders/updated", {"id": 100, "total_price": "29.99"}, shop))
        summary = await metrics.summary(platform_tenant)
        assert summary["orders"] == 1
        assert summary["revenue"] == "29.99"
