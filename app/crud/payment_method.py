from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from app.crud.base import CRUDBase
from app.models.payment_method import PaymentMethod


class CRUDPaymentMethod(CRUDBase[PaymentMethod]):
    async def list_for_customer(self, db: AsyncSession, customer_id) -> List[PaymentMethod]:
        """Default method first, then newest first"""
        result = await db.execute(
            select(self.model)
            .where(self.model.customer_id == customer_id)
            .order_by(self.model.is_default.desc(), self.model.created_at.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def set_default(self, db: AsyncSession, *, customer_id, stripe_payment_method_id: Optional[str]) -> None:
        """Mark one method as the customer's default and clear the flag on the rest"""
        await self.update_where(
            db,
            self.model.customer_id == customer_id,
            self.model.stripe_payment_method_id != (stripe_payment_method_id or ""),
            values={"is_default": False},
        )
        if stripe_payment_method_id:
            await self.update_where(
                db,
                self.model.customer_id == customer_id,
                self.model.stripe_payment_method_id == stripe_payment_method_id,
                values={"is_default": True},
            )


payment_method_crud = CRUDPaymentMethod(PaymentMethod)
