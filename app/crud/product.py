from typing import List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.orm import selectinload

from app.crud.base import CRUDBase
from app.models.product import Product
from app.models.price import Price


class CRUDProduct(CRUDBase[Product]):
    async def get_active_with_prices(self, db: AsyncSession) -> List[Product]:
        """Active products ordered by name, each with only its active prices loaded"""
        result = await db.execute(
            select(self.model)
            .where(self.model.active.is_(True))
            .options(selectinload(self.model.prices.and_(Price.active.is_(True))))
            .order_by(self.model.name.asc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())


product_crud = CRUDProduct(Product)
