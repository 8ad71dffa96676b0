from datetime import datetime
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_
from sqlalchemy.orm import selectinload

from app.crud.base import CRUDBase
from app.models.price import Price
from app.models.subscription import Subscription, ENTITLED_STATUSES


class CRUDSubscription(CRUDBase[Subscription]):
    async def get_by_stripe_subscription_id(self, db: AsyncSession, stripe_subscription_id: str) -> Optional[Subscription]:
        return await self.get_by_field(db, field="stripe_subscription_id", value=stripe_subscription_id, populate_existing=True)

    async def get_for_customer(self, db: AsyncSession, *, id, customer_id) -> Optional[Subscription]:
        """Get a subscription by local id, scoped to its owner"""
        result = await db.execute(
            select(self.model).where(
                and_(self.model.id == id, self.model.customer_id == customer_id)
            )
        )
        return result.scalar_one_or_none()

    async def get_with_price(self, db: AsyncSession, id) -> Optional[Subscription]:
        """Fresh copy of the row with its price and product loaded"""
        result = await db.execute(
            select(self.model)
            .where(self.model.id == id)
            .options(selectinload(self.model.price).selectinload(Price.product))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_for_customer(self, db: AsyncSession, customer_id) -> List[Subscription]:
        result = await db.execute(
            select(self.model)
            .where(self.model.customer_id == customer_id)
            .options(selectinload(self.model.price).selectinload(Price.product))
            .order_by(self.model.created_at.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def get_entitled(self, db: AsyncSession, customer_id, now: datetime) -> Optional[Subscription]:
        """Newest subscription in an entitled status whose period ends after ``now``"""
        result = await db.execute(
            select(self.model)
            .where(
                and_(
                    self.model.customer_id == customer_id,
                    self.model.status.in_(ENTITLED_STATUSES),
                    self.model.current_period_end > now
                )
            )
            .options(selectinload(self.model.price).selectinload(Price.product))
            .order_by(self.model.created_at.desc())
            .execution_options(populate_existing=True)
            .limit(1)
        )
        return result.scalar_one_or_none()


subscription_crud = CRUDSubscription(Subscription)
