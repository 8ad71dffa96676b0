from sqlalchemy import Column, String, Boolean, DateTime, JSON, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship
import uuid
import enum
from .base import Base, TimestampMixin, UUID_TYPE


class SubscriptionStatus(str, enum.Enum):
    """Local subscription status set"""
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    UNPAID = "unpaid"
    PAUSED = "paused"
    UNKNOWN = "unknown"  # Stripe reported a status we do not recognise


# Statuses that grant access while the current period has not ended
ENTITLED_STATUSES = (SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING)


class Subscription(Base, TimestampMixin):
    __tablename__ = "subscriptions"

    id = Column(UUID_TYPE, primary_key=True, default=uuid.uuid4, index=True)
    stripe_subscription_id = Column(String(255), nullable=False, unique=True, index=True)
    customer_id = Column(UUID_TYPE, ForeignKey("customers.id"), nullable=False, index=True)
    price_id = Column(UUID_TYPE, ForeignKey("prices.id"), nullable=False, index=True)
    status = Column(SQLEnum(SubscriptionStatus), nullable=False)

    # Cancellation intent
    cancel_at_period_end = Column(Boolean, default=False, nullable=False)
    cancel_at = Column(DateTime, nullable=True)
    canceled_at = Column(DateTime, nullable=True)

    # Current billing period [start, end)
    current_period_start = Column(DateTime, nullable=False)
    current_period_end = Column(DateTime, nullable=False)

    trial_start = Column(DateTime, nullable=True)
    trial_end = Column(DateTime, nullable=True)
    ended_at = Column(DateTime, nullable=True)
    meta_data = Column(JSON, nullable=True)

    customer = relationship("Customer", back_populates="subscriptions")
    price = relationship("Price")
