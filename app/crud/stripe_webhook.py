from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
import enum

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, and_, or_

from app.crud.base import CRUDBase, dialect_insert
from app.models.stripe_webhook import StripeWebhookEvent
from app.utils.utils import utcnow


class ClaimResult(str, enum.Enum):
    CLAIMED = "claimed"
    ALREADY_PROCESSED = "already_processed"
    IN_PROGRESS = "in_progress"


class CRUDStripeWebhookEvent(CRUDBase[StripeWebhookEvent]):
    async def get_by_event_id(self, db: AsyncSession, event_id: str) -> Optional[StripeWebhookEvent]:
        return await self.get_by_field(db, field="event_id", value=event_id, populate_existing=True)

    async def claim(
        self,
        db: AsyncSession,
        *,
        event_id: str,
        event_type: str,
        payload: Dict[str, Any],
        lease_seconds: int,
        object_id: Optional[str] = None,
        event_created: Optional[datetime] = None
    ) -> ClaimResult:
        """Atomically claim an event for processing and commit the claim.

        First sight inserts the row already claimed. Later deliveries take
        the claim with a compare-and-set that only matches an unprocessed row
        whose previous claim was released or has outlived its lease.
        """
        now = utcnow()
        insert_stmt = (
            dialect_insert(db, self.model)
            .values(
                event_id=event_id,
                type=event_type,
                payload=payload,
                object_id=object_id,
                event_created=event_created,
                processed=False,
                claimed_at=now,
                attempts=1,
            )
            .on_conflict_do_nothing(index_elements=["event_id"])
            .returning(self.model.__table__.c.id)
        )
        inserted = (await db.execute(insert_stmt)).scalar_one_or_none()
        if inserted is not None:
            await db.commit()
            return ClaimResult.CLAIMED

        stale_before = now - timedelta(seconds=lease_seconds)
        result = await db.execute(
            update(self.model)
            .where(
                and_(
                    self.model.event_id == event_id,
                    self.model.processed.is_(False),
                    or_(self.model.claimed_at.is_(None), self.model.claimed_at < stale_before)
                )
            )
            .values(claimed_at=now, attempts=self.model.attempts + 1, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        if result.rowcount == 1:
            return ClaimResult.CLAIMED

        existing = await self.get_by_event_id(db, event_id)
        if existing is not None and existing.processed:
            return ClaimResult.ALREADY_PROCESSED
        return ClaimResult.IN_PROGRESS

    async def mark_processed(self, db: AsyncSession, event_id: str) -> None:
        """Flag the event as fully applied; committed together with the reconciler writes"""
        now = utcnow()
        await self.update_where(
            db,
            self.model.event_id == event_id,
            values={"processed": True, "processed_at": now, "claimed_at": None, "last_error": None},
        )

    async def release(self, db: AsyncSession, event_id: str, error: Optional[str]) -> None:
        """Drop the claim and leave the event unprocessed so it can be retried"""
        await self.update_where(
            db,
            self.model.event_id == event_id,
            values={"claimed_at": None, "last_error": error},
        )

    async def is_superseded(
        self,
        db: AsyncSession,
        *,
        event_id: str,
        object_id: Optional[str],
        event_created: Optional[datetime]
    ) -> bool:
        """True when a processed event for the same object was created no earlier than this one"""
        if object_id is None or event_created is None:
            return False
        result = await db.execute(
            select(self.model.id)
            .where(
                and_(
                    self.model.object_id == object_id,
                    self.model.event_id != event_id,
                    self.model.processed.is_(True),
                    self.model.event_created >= event_created
                )
            )
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def mark_superseded(self, db: AsyncSession, event_id: str, *, lease_seconds: int) -> bool:
        """Close a pending event without applying it; False if someone holds its claim"""
        now = utcnow()
        stale_before = now - timedelta(seconds=lease_seconds)
        changed = await self.update_where(
            db,
            self.model.event_id == event_id,
            self.model.processed.is_(False),
            or_(self.model.claimed_at.is_(None), self.model.claimed_at < stale_before),
            values={"processed": True, "processed_at": now, "claimed_at": None, "last_error": "superseded"},
        )
        return changed == 1

    async def get_pending(self, db: AsyncSession, *, lease_seconds: int, limit: int = 100) -> List[StripeWebhookEvent]:
        """Unprocessed events nobody currently holds, oldest first"""
        stale_before = utcnow() - timedelta(seconds=lease_seconds)
        result = await db.execute(
            select(self.model)
            .where(
                and_(
                    self.model.processed.is_(False),
                    or_(self.model.claimed_at.is_(None), self.model.claimed_at < stale_before)
                )
            )
            .order_by(self.model.created_at.asc())
            .limit(limit)
        )
        return list(result.scalars().all())


stripe_webhook_crud = CRUDStripeWebhookEvent(StripeWebhookEvent)
