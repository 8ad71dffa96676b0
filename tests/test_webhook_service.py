import pytest

from app.core.exceptions import EventInProgress, ReconciliationFailure
from app.crud import ClaimResult, price_crud, product_crud, stripe_webhook_crud, subscription_crud
from app.models.subscription import SubscriptionStatus
from app.schemas.stripe_events import StripeProductPayload, decode_event
from app.services import event_router
from app.services.event_router import DispatchOutcome
from app.services.reconcilers import product_reconciler
from app.services.webhook_service import WebhookService

from tests.factories import event, invoice_obj, now_ts, price_obj, product_obj, subscription_obj
from tests.seed import seed_catalog, seed_customer, seed_subscription


@pytest.fixture
def service():
    return WebhookService(lease_seconds=300)


def counting(monkeypatch, event_type):
    """Wrap the registered handler for ``event_type`` and count its invocations"""
    calls = []
    original = event_router.EVENT_HANDLERS[event_type]

    async def wrapper(db, payload):
        calls.append(payload)
        return await original(db, payload)

    monkeypatch.setitem(event_router.EVENT_HANDLERS, event_type, wrapper)
    return calls


async def _ledger(db, event_id):
    return await stripe_webhook_crud.get_by_event_id(db, event_id)


@pytest.mark.anyio
async def test_deleted_subscription_is_canceled_once(db, service, monkeypatch):
    await seed_customer(db)
    await seed_catalog(db)
    await seed_subscription(db, id="sub_1", status="active")
    calls = counting(monkeypatch, "customer.subscription.deleted")
    evt = decode_event(event("evt_1", "customer.subscription.deleted", subscription_obj("sub_1", status="canceled")))

    assert await service.handle(db, evt) == DispatchOutcome.APPLIED

    subscription = await subscription_crud.get_by_field(
        db, field="stripe_subscription_id", value="sub_1", populate_existing=True
    )
    assert subscription.status == SubscriptionStatus.CANCELED
    assert subscription.ended_at is not None
    snapshot = (subscription.status, subscription.ended_at, subscription.updated_at)
    assert (await _ledger(db, "evt_1")).processed is True

    assert await service.handle(db, evt) == DispatchOutcome.DUPLICATE

    subscription = await subscription_crud.get_by_field(
        db, field="stripe_subscription_id", value="sub_1", populate_existing=True
    )
    assert (subscription.status, subscription.ended_at, subscription.updated_at) == snapshot
    assert len(calls) == 1


@pytest.mark.anyio
async def test_redelivered_upsert_runs_reconciler_once(db, service, monkeypatch):
    await seed_customer(db)
    await seed_catalog(db)
    calls = counting(monkeypatch, "customer.subscription.created")
    evt = decode_event(event("evt_2", "customer.subscription.created", subscription_obj("sub_2")))

    await service.handle(db, evt)
    await service.handle(db, evt)
    await service.handle(db, evt)

    assert len(calls) == 1
    assert len(await subscription_crud.get_multi(db)) == 1


@pytest.mark.anyio
async def test_unresolved_price_heals_on_redelivery(db, service):
    price_event = decode_event(event("evt_price", "price.updated", price_obj("price_9", "prod_9")))

    assert await service.handle(db, price_event) == DispatchOutcome.SKIPPED
    assert await price_crud.get_by_stripe_price_id(db, "price_9") is None
    record = await _ledger(db, "evt_price")
    assert record.processed is False
    assert record.claimed_at is None
    assert record.last_error == "unresolved reference"

    product_event = decode_event(event("evt_product", "product.created", product_obj("prod_9", "Team")))
    assert await service.handle(db, product_event) == DispatchOutcome.APPLIED

    assert await service.handle(db, price_event) == DispatchOutcome.APPLIED

    price = await price_crud.get_by_field(db, field="stripe_price_id", value="price_9", populate_existing=True)
    product = await product_crud.get_by_field(db, field="stripe_product_id", value="prod_9")
    assert price.product_id == product.id
    record = await _ledger(db, "evt_price")
    assert record.processed is True
    assert record.attempts == 2


@pytest.mark.anyio
async def test_reconciler_failure_leaves_event_retryable(db, service, monkeypatch):
    async def half_applied(db, payload):
        await product_reconciler.upsert(db, payload)
        raise RuntimeError("database hiccup")

    monkeypatch.setitem(event_router.EVENT_HANDLERS, "product.created", half_applied)
    evt = decode_event(event("evt_3", "product.created", product_obj("prod_3", "Starter")))

    with pytest.raises(ReconciliationFailure) as exc_info:
        await service.handle(db, evt)

    assert exc_info.value.status_code == 500
    assert await product_crud.get_by_field(db, field="stripe_product_id", value="prod_3") is None
    record = await _ledger(db, "evt_3")
    assert record.processed is False
    assert record.claimed_at is None
    assert "database hiccup" in record.last_error

    monkeypatch.undo()
    assert await service.handle(db, evt) == DispatchOutcome.APPLIED
    assert await product_crud.get_by_field(db, field="stripe_product_id", value="prod_3") is not None


@pytest.mark.anyio
async def test_delivery_while_claim_is_held_is_rejected(db, service):
    evt = decode_event(event("evt_4", "product.created", product_obj("prod_4")))
    claim = await stripe_webhook_crud.claim(
        db, event_id="evt_4", event_type=evt.type, payload=evt.raw, lease_seconds=300
    )
    assert claim == ClaimResult.CLAIMED

    with pytest.raises(EventInProgress):
        await service.handle(db, evt)

    assert await product_crud.get_by_field(db, field="stripe_product_id", value="prod_4") is None


@pytest.mark.anyio
async def test_unhandled_event_type_is_acknowledged(db, service):
    evt = decode_event(event("evt_5", "charge.refunded", {"id": "ch_1"}))

    assert await service.handle(db, evt) == DispatchOutcome.IGNORED
    assert (await _ledger(db, "evt_5")).processed is True


@pytest.mark.anyio
async def test_replay_completes_skipped_events(db, service):
    await service.handle(db, decode_event(event("evt_6", "price.created", price_obj("price_6", "prod_6"))))
    await product_reconciler.upsert(db, StripeProductPayload.model_validate(product_obj("prod_6")))
    await db.commit()

    assert await service.replay_pending_events(db) == 1

    assert await price_crud.get_by_stripe_price_id(db, "price_6") is not None
    assert (await _ledger(db, "evt_6")).processed is True
    assert await service.replay_pending_events(db) == 0


@pytest.mark.anyio
async def test_replay_skips_events_overtaken_by_a_processed_one(db, service):
    await seed_catalog(db)
    await seed_customer(db, stripe_customer_id=None)
    stale = decode_event(event(
        "evt_sub_old", "customer.subscription.created", subscription_obj(status="incomplete"),
        created=now_ts() - 60,
    ))
    assert await service.handle(db, stale) == DispatchOutcome.SKIPPED

    await seed_customer(db)
    fresh = decode_event(event("evt_sub_new", "customer.subscription.updated", subscription_obj(status="active")))
    assert await service.handle(db, fresh) == DispatchOutcome.APPLIED

    assert await service.replay_pending_events(db) == 0

    subscription = await subscription_crud.get_by_stripe_subscription_id(db, "sub_1")
    assert subscription.status == SubscriptionStatus.ACTIVE
    record = await _ledger(db, "evt_sub_old")
    assert record.processed is True
    assert record.last_error == "superseded"


@pytest.mark.anyio
async def test_replay_applies_events_newer_than_the_processed_ones(db, service, monkeypatch):
    await seed_catalog(db)
    await seed_customer(db)
    first = decode_event(event(
        "evt_sub_a", "customer.subscription.created", subscription_obj(status="incomplete"),
        created=now_ts() - 60,
    ))
    assert await service.handle(db, first) == DispatchOutcome.APPLIED

    async def unavailable(db, payload):
        raise RuntimeError("database hiccup")

    monkeypatch.setitem(event_router.EVENT_HANDLERS, "customer.subscription.updated", unavailable)
    second = decode_event(event("evt_sub_b", "customer.subscription.updated", subscription_obj(status="active")))
    with pytest.raises(ReconciliationFailure):
        await service.handle(db, second)
    monkeypatch.undo()

    assert await service.replay_pending_events(db) == 1

    subscription = await subscription_crud.get_by_stripe_subscription_id(db, "sub_1")
    assert subscription.status == SubscriptionStatus.ACTIVE
    assert (await _ledger(db, "evt_sub_b")).last_error is None


@pytest.mark.anyio
async def test_invoice_events_are_recorded_against_their_subscription(db, service):
    evt = decode_event(event("evt_inv_1", "invoice.payment_failed", invoice_obj("in_9", "sub_9", via_parent=True)))

    await service.handle(db, evt)

    assert (await _ledger(db, "evt_inv_1")).object_id == "sub_9"
