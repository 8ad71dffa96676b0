from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession

from app.crud.base import CRUDBase
from app.models.price import Price


class CRUDPrice(CRUDBase[Price]):
    async def get_by_stripe_price_id(self, db: AsyncSession, stripe_price_id: str) -> Optional[Price]:
        return await self.get_by_field(db, field="stripe_price_id", value=stripe_price_id)


price_crud = CRUDPrice(Price)
