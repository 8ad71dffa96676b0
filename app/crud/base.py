from typing import Any, Dict, Generic, Iterable, List, Optional, Type, TypeVar
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, and_
from sqlalchemy.dialects import postgresql, sqlite
from app.models.base import Base
from app.core.exceptions import NotFoundError
from app.utils.utils import utcnow

ModelType = TypeVar("ModelType", bound=Base)


def dialect_insert(db: AsyncSession, model: Type[ModelType]):
    """Core INSERT on the model's table that supports ON CONFLICT for the session's backend"""
    dialect_name = db.get_bind().dialect.name
    if dialect_name == "postgresql":
        return postgresql.insert(model.__table__)
    if dialect_name == "sqlite":
        return sqlite.insert(model.__table__)
    raise NotImplementedError(f"ON CONFLICT upserts are not supported on {dialect_name}")


class CRUDBase(Generic[ModelType]):
    """Shared data access. Methods flush but never commit; callers own the transaction."""

    def __init__(self, model: Type[ModelType]):
        self.model = model

    async def get(self, db: AsyncSession, id: Any, *, raise_if_not_found: bool = True) -> Optional[ModelType]:
        """Get a single record by surrogate ID"""
        result = await db.execute(select(self.model).where(self.model.id == id))
        obj = result.scalar_one_or_none()

        if raise_if_not_found and obj is None:
            raise NotFoundError(f"{self.model.__name__}")

        return obj

    async def get_by_field(
        self,
        db: AsyncSession,
        *,
        field: str,
        value: Any,
        populate_existing: bool = False
    ) -> Optional[ModelType]:
        """Get a single record by a unique field (e.g. an external Stripe id)"""
        if not hasattr(self.model, field):
            raise ValueError(f"Field '{field}' does not exist on model {self.model.__name__}")

        query = select(self.model).where(getattr(self.model, field) == value)
        if populate_existing:
            query = query.execution_options(populate_existing=True)
        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def get_multi(
        self,
        db: AsyncSession,
        *,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        order_desc: bool = True,
        skip: int = 0,
        limit: int = 100
    ) -> List[ModelType]:
        """Get multiple records with simple equality / IN filtering"""
        query = select(self.model)

        if filters:
            conditions = []
            for field, value in filters.items():
                column = getattr(self.model, field)
                if isinstance(value, (list, tuple)):
                    conditions.append(column.in_(value))
                else:
                    conditions.append(column == value)
            query = query.where(and_(*conditions))

        order_field = getattr(self.model, order_by or "created_at")
        query = query.order_by(order_field.desc() if order_desc else order_field.asc())

        result = await db.execute(query.offset(skip).limit(limit))
        return list(result.scalars().all())

    async def upsert(
        self,
        db: AsyncSession,
        *,
        key: str,
        values: Dict[str, Any],
        update_fields: Optional[Iterable[str]] = None
    ) -> ModelType:
        """Insert or update a record keyed by a unique natural key in one statement.

        ``update_fields`` limits which columns an existing row receives; by
        default every supplied value except the key is overwritten.
        """
        stmt = dialect_insert(db, self.model).values(**values)
        fields = update_fields if update_fields is not None else values.keys()
        set_ = {field: stmt.excluded[field] for field in fields if field != key}
        set_["updated_at"] = utcnow()

        stmt = stmt.on_conflict_do_update(
            index_elements=[key],
            set_=set_,
        )
        await db.execute(stmt)
        return await self.get_by_field(db, field=key, value=values[key], populate_existing=True)

    async def update_where(self, db: AsyncSession, *conditions: Any, values: Dict[str, Any]) -> int:
        """Conditional UPDATE; returns the number of rows changed"""
        values = {**values, "updated_at": utcnow()}
        result = await db.execute(
            update(self.model)
            .where(and_(*conditions))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def remove_by_field(self, db: AsyncSession, *, field: str, value: Any) -> int:
        """Hard delete records by field value; 0 when nothing matched"""
        result = await db.execute(
            delete(self.model)
            .where(getattr(self.model, field) == value)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
