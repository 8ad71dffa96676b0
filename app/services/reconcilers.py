"""Per-entity reconcilers driven by Stripe payloads.

Every write is keyed by the Stripe id, so applying the same payload twice
gives the same rows. Reconcilers flush through the CRUD layer and never
commit; the caller owns the transaction. A parent that is not known locally
yet raises ``UnresolvedReference`` before anything is written.
"""
import logging
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import UnresolvedReference
from app.crud import (
    customer_crud,
    payment_method_crud,
    price_crud,
    product_crud,
    subscription_crud,
)
from app.models.customer import Customer
from app.models.payment_method import PaymentMethod
from app.models.price import Price, PriceInterval, PriceType
from app.models.product import Product
from app.models.subscription import Subscription, SubscriptionStatus
from app.schemas.stripe_events import (
    StripeCustomerPayload,
    StripeInvoicePayload,
    StripePaymentMethodPayload,
    StripePricePayload,
    StripeProductPayload,
    StripeSubscriptionPayload,
)
from app.utils.utils import from_epoch, utcnow

logger = logging.getLogger(__name__)


def map_subscription_status(status: Optional[str]) -> SubscriptionStatus:
    """Translate a Stripe subscription status to the local status set.

    Total: anything Stripe adds later maps to ``UNKNOWN`` and is logged loudly,
    never aliased to a real status.
    """
    try:
        return SubscriptionStatus(status)
    except ValueError:
        logger.warning("Unrecognised Stripe subscription status %r, storing as UNKNOWN", status)
        return SubscriptionStatus.UNKNOWN


class CustomerReconciler:
    async def upsert(self, db: AsyncSession, payload: StripeCustomerPayload) -> Optional[Customer]:
        """Link a Stripe customer to a local principal and sync its default payment method.

        Linkage prefers ``metadata.user_id`` and falls back to a unique
        unlinked principal with the same email. An existing linkage is never
        replaced.
        """
        customer = await customer_crud.get_by_stripe_customer_id(db, payload.id)

        if customer is None:
            customer = await self._find_link_candidate(db, payload)
            if customer is None:
                logger.info("No local principal to link Stripe customer %s", payload.id)
                return None
            linked = await customer_crud.link_stripe_customer(db, id=customer.id, stripe_customer_id=payload.id)
            if not linked:
                logger.info("Principal %s was linked concurrently, keeping existing linkage", customer.user_id)
                return None
            logger.info("Linked Stripe customer %s to principal %s", payload.id, customer.user_id)

        if payload.invoice_settings is not None:
            await payment_method_crud.set_default(
                db,
                customer_id=customer.id,
                stripe_payment_method_id=payload.invoice_settings.default_payment_method,
            )
        return customer

    async def _find_link_candidate(self, db: AsyncSession, payload: StripeCustomerPayload) -> Optional[Customer]:
        user_id = payload.metadata.get("user_id")
        if user_id:
            customer = await customer_crud.get_by_user_id(db, user_id)
            if customer is not None and customer.stripe_customer_id is None:
                return customer

        if payload.email:
            matches = await customer_crud.get_unlinked_by_email(db, payload.email)
            if len(matches) == 1:
                return matches[0]
            if len(matches) > 1:
                logger.warning("Email %s matches %d unlinked principals, not linking", payload.email, len(matches))
        return None


class ProductReconciler:
    async def upsert(self, db: AsyncSession, payload: StripeProductPayload) -> Product:
        return await product_crud.upsert(
            db,
            key="stripe_product_id",
            values={
                "stripe_product_id": payload.id,
                "name": payload.name,
                "description": payload.description,
                "active": payload.active,
                "meta_data": payload.metadata,
            },
        )

    async def delete(self, db: AsyncSession, payload: StripeProductPayload) -> None:
        # Soft delete: prices and subscriptions keep pointing at the row
        await product_crud.update_where(
            db, Product.stripe_product_id == payload.id, values={"active": False}
        )


class PriceReconciler:
    async def upsert(self, db: AsyncSession, payload: StripePricePayload) -> Price:
        product = await product_crud.get_by_field(db, field="stripe_product_id", value=payload.product)
        if product is None:
            raise UnresolvedReference("product", payload.product)

        interval = None
        interval_count = None
        trial_period_days = None
        if payload.is_recurring and payload.recurring is not None:
            interval = PriceInterval(payload.recurring.interval)
            interval_count = payload.recurring.interval_count
            trial_period_days = payload.recurring.trial_period_days

        return await price_crud.upsert(
            db,
            key="stripe_price_id",
            values={
                "stripe_price_id": payload.id,
                "product_id": product.id,
                "nickname": payload.nickname,
                "currency": payload.currency,
                "type": PriceType.RECURRING if payload.is_recurring else PriceType.ONE_TIME,
                "unit_amount": payload.unit_amount,
                "interval": interval,
                "interval_count": interval_count,
                "trial_period_days": trial_period_days,
                "active": payload.active,
                "meta_data": payload.metadata,
            },
        )

    async def delete(self, db: AsyncSession, payload: StripePricePayload) -> None:
        await price_crud.update_where(
            db, Price.stripe_price_id == payload.id, values={"active": False}
        )


class SubscriptionReconciler:
    async def upsert(self, db: AsyncSession, payload: StripeSubscriptionPayload) -> Subscription:
        """Write every field from the payload. Last delivery wins; no timestamp comparison."""
        customer = await customer_crud.get_by_stripe_customer_id(db, payload.customer)
        if customer is None:
            raise UnresolvedReference("customer", payload.customer)

        price = await price_crud.get_by_stripe_price_id(db, payload.price_id) if payload.price_id else None
        if price is None:
            raise UnresolvedReference("price", payload.price_id)

        period_start = from_epoch(payload.period_start) or utcnow()
        period_end = from_epoch(payload.period_end) or period_start

        return await subscription_crud.upsert(
            db,
            key="stripe_subscription_id",
            values={
                "stripe_subscription_id": payload.id,
                "customer_id": customer.id,
                "price_id": price.id,
                "status": map_subscription_status(payload.status),
                "cancel_at_period_end": payload.cancel_at_period_end,
                "cancel_at": from_epoch(payload.cancel_at),
                "canceled_at": from_epoch(payload.canceled_at),
                "current_period_start": period_start,
                "current_period_end": period_end,
                "trial_start": from_epoch(payload.trial_start),
                "trial_end": from_epoch(payload.trial_end),
                "ended_at": from_epoch(payload.ended_at),
                "meta_data": payload.metadata,
            },
        )

    async def terminate(self, db: AsyncSession, payload: StripeSubscriptionPayload) -> int:
        """Force a deleted subscription to CANCELED; the row is kept as history"""
        changed = await subscription_crud.update_where(
            db,
            Subscription.stripe_subscription_id == payload.id,
            values={
                "status": SubscriptionStatus.CANCELED,
                "ended_at": from_epoch(payload.ended_at) or utcnow(),
            },
        )
        if not changed:
            logger.info("Deleted subscription %s is not known locally", payload.id)
        return changed

    async def mark_active_if_attached(self, db: AsyncSession, payload: StripeInvoicePayload) -> int:
        """Paid invoice: promote the subscription to ACTIVE unless it is trialing or already over"""
        subscription_id = payload.subscription_id
        if not subscription_id:
            return 0
        return await subscription_crud.update_where(
            db,
            Subscription.stripe_subscription_id == subscription_id,
            Subscription.status.notin_(_KEEP_ON_PAYMENT),
            values={"status": SubscriptionStatus.ACTIVE},
        )

    async def mark_past_due(self, db: AsyncSession, payload: StripeInvoicePayload) -> int:
        subscription_id = payload.subscription_id
        if not subscription_id:
            return 0
        return await subscription_crud.update_where(
            db,
            Subscription.stripe_subscription_id == subscription_id,
            Subscription.status.notin_(_TERMINAL_STATUSES),
            values={"status": SubscriptionStatus.PAST_DUE},
        )


_TERMINAL_STATUSES = (SubscriptionStatus.CANCELED, SubscriptionStatus.INCOMPLETE_EXPIRED)
_KEEP_ON_PAYMENT = (SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING) + _TERMINAL_STATUSES


class PaymentMethodReconciler:
    async def attach(self, db: AsyncSession, payload: StripePaymentMethodPayload) -> Optional[PaymentMethod]:
        if not payload.customer:
            logger.info("Payment method %s carries no customer, nothing to attach", payload.id)
            return None

        customer = await customer_crud.get_by_stripe_customer_id(db, payload.customer)
        if customer is None:
            raise UnresolvedReference("customer", payload.customer)

        values: Dict[str, Any] = {
            "stripe_payment_method_id": payload.id,
            "customer_id": customer.id,
            "type": payload.type,
            "brand": None,
            "last4": None,
            "expiry_month": None,
            "expiry_year": None,
        }
        if payload.type == "card" and payload.card is not None:
            values.update(
                brand=payload.card.brand,
                last4=payload.card.last4,
                expiry_month=payload.card.exp_month,
                expiry_year=payload.card.exp_year,
            )

        # is_default is owned by customer.updated and keeps its stored value here
        return await payment_method_crud.upsert(db, key="stripe_payment_method_id", values=values)

    async def detach(self, db: AsyncSession, payload: StripePaymentMethodPayload) -> int:
        # Already absent counts as success
        return await payment_method_crud.remove_by_field(
            db, field="stripe_payment_method_id", value=payload.id
        )


customer_reconciler = CustomerReconciler()
product_reconciler = ProductReconciler()
price_reconciler = PriceReconciler()
subscription_reconciler = SubscriptionReconciler()
payment_method_reconciler = PaymentMethodReconciler()
