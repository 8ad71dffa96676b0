import pytest

from app.crud import price_crud, product_crud
from app.schemas.stripe_events import decode_event
from app.services.billing_service import BillingService
from app.services.catalog_sync import sync_catalog
from app.services.webhook_service import WebhookService

from tests.factories import event, price_obj, product_obj


@pytest.fixture
def webhooks():
    return WebhookService(lease_seconds=300)


@pytest.fixture
def stripe_catalog(fake_stripe):
    fake_stripe.products = [
        product_obj("prod_1", "Pro"),
        product_obj("prod_old", "Legacy", active=False),
    ]
    fake_stripe.prices = [
        price_obj("price_1", "prod_1"),
        price_obj("price_old", "prod_old", active=False),
        price_obj("price_orphan", "prod_missing"),
    ]
    return fake_stripe


@pytest.mark.anyio
async def test_sync_mirrors_products_and_prices(db, stripe_catalog, webhooks):
    result = await sync_catalog(db, stripe_catalog, webhooks)

    assert (result.products, result.prices, result.skipped_prices) == (2, 2, 1)
    legacy = await product_crud.get_by_field(db, field="stripe_product_id", value="prod_old")
    assert legacy.active is False
    assert await price_crud.get_by_stripe_price_id(db, "price_orphan") is None


@pytest.mark.anyio
async def test_sync_is_idempotent(db, stripe_catalog, webhooks):
    await sync_catalog(db, stripe_catalog, webhooks)
    await sync_catalog(db, stripe_catalog, webhooks)

    assert len(await product_crud.get_multi(db)) == 2
    assert len(await price_crud.get_multi(db)) == 2


@pytest.mark.anyio
async def test_archived_product_is_deactivated_by_sync(db, stripe_catalog, webhooks):
    await sync_catalog(db, stripe_catalog, webhooks)
    stripe_catalog.products[0]["active"] = False

    await sync_catalog(db, stripe_catalog, webhooks)

    product = await product_crud.get_by_field(db, field="stripe_product_id", value="prod_1", populate_existing=True)
    assert product.active is False


@pytest.mark.anyio
async def test_sync_replays_events_waiting_on_the_catalog(db, stripe_catalog, webhooks):
    early_price = decode_event(event("evt_early", "price.created", price_obj("price_new", "prod_new")))
    await webhooks.handle(db, early_price)
    stripe_catalog.products.append(product_obj("prod_new", "Team"))

    result = await sync_catalog(db, stripe_catalog, webhooks)

    assert result.replayed_events == 1
    assert await price_crud.get_by_stripe_price_id(db, "price_new") is not None


@pytest.mark.anyio
async def test_product_listing_shows_only_active_prices(db, stripe_catalog, webhooks, fake_stripe):
    stripe_catalog.prices.append(price_obj("price_1_retired", "prod_1", active=False))
    await sync_catalog(db, stripe_catalog, webhooks)

    products = await BillingService(fake_stripe).get_products(db)

    assert [p.stripe_product_id for p in products] == ["prod_1"]
    assert [price.stripe_price_id for price in products[0].prices] == ["price_1"]
