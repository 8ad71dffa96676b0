from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_

from app.crud.base import CRUDBase, dialect_insert
from app.models.customer import Customer


class CRUDCustomer(CRUDBase[Customer]):
    async def get_by_user_id(self, db: AsyncSession, user_id: str) -> Optional[Customer]:
        return await self.get_by_field(db, field="user_id", value=user_id)

    async def get_by_stripe_customer_id(self, db: AsyncSession, stripe_customer_id: str) -> Optional[Customer]:
        return await self.get_by_field(db, field="stripe_customer_id", value=stripe_customer_id)

    async def ensure(
        self,
        db: AsyncSession,
        *,
        user_id: str,
        email: Optional[str] = None,
        name: Optional[str] = None
    ) -> Customer:
        """Get the principal row, creating it if absent (race safe)"""
        stmt = (
            dialect_insert(db, self.model)
            .values(user_id=user_id, email=email, name=name)
            .on_conflict_do_nothing(index_elements=["user_id"])
        )
        await db.execute(stmt)
        return await self.get_by_field(db, field="user_id", value=user_id, populate_existing=True)

    async def link_stripe_customer(self, db: AsyncSession, *, id, stripe_customer_id: str) -> bool:
        """Attach a Stripe customer id only if the principal has none yet"""
        changed = await self.update_where(
            db,
            self.model.id == id,
            self.model.stripe_customer_id.is_(None),
            values={"stripe_customer_id": stripe_customer_id},
        )
        return changed > 0

    async def get_unlinked_by_email(self, db: AsyncSession, email: str) -> List[Customer]:
        result = await db.execute(
            select(self.model).where(
                and_(
                    self.model.email == email,
                    self.model.stripe_customer_id.is_(None)
                )
            )
        )
        return list(result.scalars().all())


customer_crud = CRUDCustomer(Customer)
