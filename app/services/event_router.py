import enum
import logging
from typing import Any, Awaitable, Callable, Dict, FrozenSet

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import UnresolvedReference
from app.schemas.stripe_events import WebhookEvent
from app.services.reconcilers import (
    customer_reconciler,
    payment_method_reconciler,
    price_reconciler,
    product_reconciler,
    subscription_reconciler,
)

logger = logging.getLogger(__name__)

Handler = Callable[[AsyncSession, Any], Awaitable[Any]]


class DispatchOutcome(str, enum.Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"  # ledger says the event already took full effect
    SKIPPED = "skipped"    # a referenced parent is not known locally yet
    IGNORED = "ignored"    # event type not handled


# Event type -> reconciler operation
EVENT_HANDLERS: Dict[str, Handler] = {
    "customer.subscription.created": subscription_reconciler.upsert,
    "customer.subscription.updated": subscription_reconciler.upsert,
    "customer.subscription.deleted": subscription_reconciler.terminate,
    "invoice.payment_succeeded": subscription_reconciler.mark_active_if_attached,
    "invoice.payment_failed": subscription_reconciler.mark_past_due,
    "customer.created": customer_reconciler.upsert,
    "customer.updated": customer_reconciler.upsert,
    "product.created": product_reconciler.upsert,
    "product.updated": product_reconciler.upsert,
    "product.deleted": product_reconciler.delete,
    "price.created": price_reconciler.upsert,
    "price.updated": price_reconciler.upsert,
    "price.deleted": price_reconciler.delete,
    "payment_method.attached": payment_method_reconciler.attach,
    "payment_method.detached": payment_method_reconciler.detach,
}


def handled_event_types() -> FrozenSet[str]:
    return frozenset(EVENT_HANDLERS)


async def dispatch(db: AsyncSession, event: WebhookEvent) -> DispatchOutcome:
    """Run the reconciler registered for ``event.type``.

    Unknown types are ignored. An unresolved reference is logged and reported
    as SKIPPED; any other exception propagates to the caller.
    """
    handler = EVENT_HANDLERS.get(event.type)
    if handler is None or event.payload is None:
        logger.info("Ignoring unhandled Stripe event %s (%s)", event.id, event.type)
        return DispatchOutcome.IGNORED

    try:
        await handler(db, event.payload)
    except UnresolvedReference as e:
        logger.warning("Skipping Stripe event %s (%s): %s", event.id, event.type, e)
        return DispatchOutcome.SKIPPED

    return DispatchOutcome.APPLIED
