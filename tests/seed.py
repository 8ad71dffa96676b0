from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.crud import customer_crud
from app.models.customer import Customer
from app.models.subscription import Subscription
from app.schemas.stripe_events import StripePricePayload, StripeProductPayload, StripeSubscriptionPayload
from app.services.reconcilers import price_reconciler, product_reconciler, subscription_reconciler

from tests.factories import price_obj, product_obj, subscription_obj


async def seed_customer(
    db: AsyncSession,
    user_id: str = "user_1",
    stripe_customer_id: Optional[str] = "cus_1",
    email: Optional[str] = "user1@example.com"
) -> Customer:
    customer = await customer_crud.ensure(db, user_id=user_id, email=email, name="User One")
    if stripe_customer_id:
        await customer_crud.link_stripe_customer(db, id=customer.id, stripe_customer_id=stripe_customer_id)
    await db.commit()
    return await customer_crud.get_by_field(db, field="user_id", value=user_id, populate_existing=True)


async def seed_catalog(db: AsyncSession) -> None:
    """prod_1 with a monthly price_1 and a yearly price_2, prod_2 with a one-time price_3"""
    await product_reconciler.upsert(db, StripeProductPayload.model_validate(product_obj("prod_1", "Pro")))
    await product_reconciler.upsert(db, StripeProductPayload.model_validate(product_obj("prod_2", "Lifetime")))
    await price_reconciler.upsert(db, StripePricePayload.model_validate(price_obj("price_1", "prod_1")))
    await price_reconciler.upsert(
        db, StripePricePayload.model_validate(price_obj("price_2", "prod_1", interval="year", unit_amount=10000))
    )
    await price_reconciler.upsert(
        db, StripePricePayload.model_validate(price_obj("price_3", "prod_2", recurring=False, unit_amount=50000))
    )
    await db.commit()


async def seed_subscription(db: AsyncSession, **kwargs) -> Subscription:
    subscription = await subscription_reconciler.upsert(
        db, StripeSubscriptionPayload.model_validate(subscription_obj(**kwargs))
    )
    await db.commit()
    return subscription
