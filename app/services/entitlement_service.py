from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.crud import customer_crud, subscription_crud
from app.models.subscription import Subscription, SubscriptionStatus
from app.schemas.billing import SubscriptionPriceResponse, UserPlanResponse
from app.utils.utils import utcnow


async def _entitled_subscription(db: AsyncSession, user_id: str, now: Optional[datetime]) -> Optional[Subscription]:
    customer = await customer_crud.get_by_user_id(db, user_id)
    if customer is None:
        return None
    return await subscription_crud.get_entitled(db, customer.id, now or utcnow())


async def has_active_entitlement(db: AsyncSession, user_id: str, now: Optional[datetime] = None) -> bool:
    """True while some subscription of the principal is active or trialing
    and its current period ends strictly after ``now``.

    Always read from storage; there is no cache to drift after a cancellation.
    """
    return await _entitled_subscription(db, user_id, now) is not None


async def get_user_plan(db: AsyncSession, user_id: str, now: Optional[datetime] = None) -> Optional[UserPlanResponse]:
    subscription = await _entitled_subscription(db, user_id, now)
    if subscription is None:
        return None

    return UserPlanResponse(
        subscription_id=subscription.id,
        status=subscription.status,
        is_active=True,
        is_trial=subscription.status == SubscriptionStatus.TRIALING,
        current_period_end=subscription.current_period_end,
        cancel_at_period_end=subscription.cancel_at_period_end,
        price=SubscriptionPriceResponse.model_validate(subscription.price),
    )
