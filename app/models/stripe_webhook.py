from sqlalchemy import Column, String, DateTime, Boolean, Integer, Text, JSON
import uuid
from .base import Base, TimestampMixin, UUID_TYPE


class StripeWebhookEvent(Base, TimestampMixin):
    """Idempotency ledger: one row per Stripe event id, never deleted"""
    __tablename__ = "stripe_webhook_events"

    id = Column(UUID_TYPE, primary_key=True, default=uuid.uuid4, index=True)
    # Stripe event id for idempotency
    event_id = Column(String(255), nullable=False, unique=True, index=True)
    type = Column(String(100), nullable=False, index=True)
    payload = Column(JSON, nullable=False)  # Raw event as delivered
    # Stripe id of the record the event changes, and when Stripe created the event
    object_id = Column(String(255), nullable=True, index=True)
    event_created = Column(DateTime, nullable=True)

    processed = Column(Boolean, default=False, nullable=False, index=True)
    processed_at = Column(DateTime, nullable=True)

    # Claim bookkeeping
    claimed_at = Column(DateTime, nullable=True)  # Set while a worker holds the event
    attempts = Column(Integer, default=0, nullable=False)
    last_error = Column(Text, nullable=True)
