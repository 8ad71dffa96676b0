import logging
from typing import Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import EventInProgress, ReconciliationFailure
from app.crud import ClaimResult, stripe_webhook_crud
from app.schemas.stripe_events import WebhookEvent, decode_event
from app.services.event_router import DispatchOutcome, dispatch
from app.utils.utils import from_epoch

logger = logging.getLogger(__name__)


class WebhookService:
    """Applies verified Stripe events exactly once through the ledger.

    Flow per event: atomic claim (committed on its own), dispatch to the
    reconciler, then the reconciler writes and ``processed=True`` commit
    together. Anything that goes wrong leaves the ledger row unprocessed
    with its claim released, so Stripe's redelivery or a replay retries it.
    """

    def __init__(self, lease_seconds: Optional[int] = None):
        self.lease_seconds = lease_seconds if lease_seconds is not None else settings.webhook_claim_lease_seconds

    async def handle(self, db: AsyncSession, event: WebhookEvent) -> DispatchOutcome:
        claim = await stripe_webhook_crud.claim(
            db,
            event_id=event.id,
            event_type=event.type,
            payload=event.raw,
            lease_seconds=self.lease_seconds,
            object_id=event.object_id,
            event_created=from_epoch(event.created),
        )
        if claim == ClaimResult.ALREADY_PROCESSED:
            logger.info("Stripe event %s already processed, acknowledging duplicate", event.id)
            return DispatchOutcome.DUPLICATE
        if claim == ClaimResult.IN_PROGRESS:
            logger.info("Stripe event %s is held by another delivery", event.id)
            raise EventInProgress(event.id)

        logger.info("Claimed Stripe event %s (%s)", event.id, event.type)
        try:
            outcome = await dispatch(db, event)
            if outcome == DispatchOutcome.SKIPPED:
                await db.rollback()
                await stripe_webhook_crud.release(db, event.id, "unresolved reference")
            else:
                await stripe_webhook_crud.mark_processed(db, event.id)
            await db.commit()
        except Exception as e:
            logger.exception("Failed to process Stripe event %s (%s)", event.id, event.type)
            await db.rollback()
            await stripe_webhook_crud.release(db, event.id, f"{type(e).__name__}: {e}")
            await db.commit()
            raise ReconciliationFailure(event.id, str(e)) from e

        return outcome

    async def replay_pending_events(self, db: AsyncSession, *, limit: int = 100) -> int:
        """Re-run unprocessed ledger rows from their stored payload.

        A row is closed as superseded instead when a later event for the same
        Stripe object has already been processed, so an old payload never
        overwrites newer state. Returns how many events took full effect.
        """
        records = await stripe_webhook_crud.get_pending(db, lease_seconds=self.lease_seconds, limit=limit)
        # Rows expire on every rollback inside handle(), so read them up front
        pending = [
            (record.event_id, record.payload, record.object_id, record.event_created)
            for record in records
        ]
        applied = 0
        for event_id, payload, object_id, event_created in pending:
            if await stripe_webhook_crud.is_superseded(
                db, event_id=event_id, object_id=object_id, event_created=event_created
            ):
                if await stripe_webhook_crud.mark_superseded(db, event_id, lease_seconds=self.lease_seconds):
                    logger.info("Stripe event %s superseded by a later event for %s", event_id, object_id)
                await db.commit()
                continue

            try:
                event = decode_event(payload)
            except (ValueError, KeyError, TypeError, PydanticValidationError):
                logger.exception("Stored payload of Stripe event %s cannot be decoded", event_id)
                continue

            try:
                outcome = await self.handle(db, event)
            except (EventInProgress, ReconciliationFailure) as e:
                logger.warning("Replay of Stripe event %s did not complete: %s", event_id, e.detail)
                continue

            if outcome in (DispatchOutcome.APPLIED, DispatchOutcome.IGNORED):
                applied += 1

        if pending:
            logger.info("Replayed %d of %d pending Stripe events", applied, len(pending))
        return applied


webhook_service = WebhookService()
