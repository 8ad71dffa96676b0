import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import (
    CustomerNotLinked,
    InvalidOrInactivePrice,
    NotEligibleForReactivation,
    NotFoundError,
    UnresolvedReference,
)
from app.crud import customer_crud, payment_method_crud, price_crud, product_crud, subscription_crud
from app.models.customer import Customer
from app.models.payment_method import PaymentMethod
from app.models.price import Price, PriceType
from app.models.product import Product
from app.models.subscription import Subscription
from app.schemas.auth import TokenData
from app.schemas.billing import (
    CheckoutSessionResponse,
    CreateCheckoutRequest,
    PortalSessionResponse,
)
from app.schemas.stripe_events import StripeSubscriptionPayload
from app.services.reconcilers import subscription_reconciler
from app.services.stripe_service import StripeService

logger = logging.getLogger(__name__)


class BillingService:
    """User-initiated billing actions.

    Each action that changes Stripe state calls Stripe first, then writes the
    returned object locally through the same reconciler the webhooks use. The
    local write is optimistic: the matching webhook re-applies Stripe's view
    and may override it. Nothing is committed when the Stripe call fails.
    """

    def __init__(self, stripe_service: StripeService):
        self.stripe = stripe_service

    async def ensure_customer(self, db: AsyncSession, user: TokenData) -> Customer:
        return await customer_crud.ensure(db, user_id=user.user_id, email=user.email, name=user.name)

    async def create_customer_if_absent(self, db: AsyncSession, user: TokenData) -> Customer:
        """Principal row linked to a Stripe customer, creating either as needed"""
        customer = await self.ensure_customer(db, user)
        if customer.stripe_customer_id:
            return customer

        stripe_customer = await self.stripe.create_customer(
            user_id=user.user_id, email=user.email, name=user.name
        )
        linked = await customer_crud.link_stripe_customer(
            db, id=customer.id, stripe_customer_id=stripe_customer["id"]
        )
        await db.commit()
        if linked:
            logger.info("Created Stripe customer %s for user %s", stripe_customer["id"], user.user_id)
        else:
            logger.info("User %s was linked concurrently, keeping existing Stripe customer", user.user_id)

        return await customer_crud.get_by_field(db, field="id", value=customer.id, populate_existing=True)

    async def _get_active_price(self, db: AsyncSession, price_id: UUID) -> Price:
        price = await price_crud.get(db, price_id, raise_if_not_found=False)
        if price is None or not price.active:
            raise InvalidOrInactivePrice(str(price_id))
        product = await product_crud.get(db, price.product_id, raise_if_not_found=False)
        if product is None or not product.active:
            raise InvalidOrInactivePrice(str(price_id))
        return price

    async def create_checkout_session(
        self,
        db: AsyncSession,
        user: TokenData,
        request: CreateCheckoutRequest
    ) -> CheckoutSessionResponse:
        price = await self._get_active_price(db, request.price_id)
        customer = await self.create_customer_if_absent(db, user)

        metadata = dict(request.metadata or {})
        metadata.update({"user_id": user.user_id, "price_id": str(price.id)})

        session = await self.stripe.create_checkout_session(
            customer_id=customer.stripe_customer_id,
            price_id=price.stripe_price_id,
            mode="subscription" if price.type == PriceType.RECURRING else "payment",
            success_url=request.success_url,
            cancel_url=request.cancel_url,
            client_reference_id=user.user_id,
            metadata=metadata,
            trial_days=request.trial_days,
            attempt_id=request.request_id,
        )
        return CheckoutSessionResponse(session_id=session["id"], url=session.get("url"))

    async def create_portal_session(self, db: AsyncSession, user: TokenData) -> PortalSessionResponse:
        customer = await customer_crud.get_by_user_id(db, user.user_id)
        if customer is None or not customer.stripe_customer_id:
            raise CustomerNotLinked()

        session = await self.stripe.create_portal_session(
            customer_id=customer.stripe_customer_id,
            return_url=f"{settings.frontend_url}/dashboard",
        )
        return PortalSessionResponse(url=session["url"])

    async def get_products(self, db: AsyncSession) -> List[Product]:
        return await product_crud.get_active_with_prices(db)

    async def get_user_subscriptions(self, db: AsyncSession, user: TokenData) -> List[Subscription]:
        customer = await customer_crud.get_by_user_id(db, user.user_id)
        if customer is None:
            return []
        return await subscription_crud.list_for_customer(db, customer.id)

    async def get_payment_methods(self, db: AsyncSession, user: TokenData) -> List[PaymentMethod]:
        customer = await customer_crud.get_by_user_id(db, user.user_id)
        if customer is None:
            return []
        return await payment_method_crud.list_for_customer(db, customer.id)

    async def _get_owned_subscription(self, db: AsyncSession, user: TokenData, subscription_id: UUID) -> Subscription:
        customer = await customer_crud.get_by_user_id(db, user.user_id)
        if customer is None:
            raise NotFoundError("Subscription")
        subscription = await subscription_crud.get_for_customer(db, id=subscription_id, customer_id=customer.id)
        if subscription is None:
            raise NotFoundError("Subscription")
        return subscription

    async def _apply_optimistic(self, db: AsyncSession, subscription_id: UUID, stripe_subscription: dict) -> Subscription:
        try:
            await subscription_reconciler.upsert(db, StripeSubscriptionPayload.model_validate(stripe_subscription))
        except UnresolvedReference as e:
            # The webhook will carry the change once the reference is known
            logger.warning("Optimistic update of subscription %s skipped: %s", subscription_id, e)
        await db.commit()
        return await subscription_crud.get_with_price(db, subscription_id)

    async def cancel_subscription(
        self,
        db: AsyncSession,
        user: TokenData,
        subscription_id: UUID,
        *,
        immediate: bool = False
    ) -> Subscription:
        subscription = await self._get_owned_subscription(db, user, subscription_id)
        result = await self.stripe.cancel_subscription(subscription.stripe_subscription_id, immediate=immediate)
        logger.info(
            "Canceled subscription %s for user %s (immediate=%s)",
            subscription.stripe_subscription_id, user.user_id, immediate,
        )
        return await self._apply_optimistic(db, subscription.id, result)

    async def reactivate_subscription(self, db: AsyncSession, user: TokenData, subscription_id: UUID) -> Subscription:
        """Undo an end-of-period cancellation; anything else is not reactivatable"""
        subscription = await self._get_owned_subscription(db, user, subscription_id)
        if not subscription.cancel_at_period_end:
            raise NotEligibleForReactivation()

        result = await self.stripe.reactivate_subscription(subscription.stripe_subscription_id)
        logger.info("Reactivated subscription %s for user %s", subscription.stripe_subscription_id, user.user_id)
        return await self._apply_optimistic(db, subscription.id, result)

    async def change_subscription(
        self,
        db: AsyncSession,
        user: TokenData,
        subscription_id: UUID,
        price_id: UUID
    ) -> Subscription:
        price = await self._get_active_price(db, price_id)
        subscription = await self._get_owned_subscription(db, user, subscription_id)

        result = await self.stripe.update_subscription_price(subscription.stripe_subscription_id, price.stripe_price_id)
        logger.info(
            "Moved subscription %s to price %s for user %s",
            subscription.stripe_subscription_id, price.stripe_price_id, user.user_id,
        )
        return await self._apply_optimistic(db, subscription.id, result)
