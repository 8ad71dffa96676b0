from sqlalchemy import Column, String, Integer, BigInteger, Boolean, JSON, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship
import uuid
import enum
from .base import Base, TimestampMixin, UUID_TYPE


class PriceType(str, enum.Enum):
    ONE_TIME = "one_time"
    RECURRING = "recurring"


class PriceInterval(str, enum.Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


class Price(Base, TimestampMixin):
    """Stripe price; always attached to a known local product"""
    __tablename__ = "prices"

    id = Column(UUID_TYPE, primary_key=True, default=uuid.uuid4, index=True)
    stripe_price_id = Column(String(255), nullable=False, unique=True, index=True)
    product_id = Column(UUID_TYPE, ForeignKey("products.id"), nullable=False, index=True)
    nickname = Column(String(255), nullable=True)
    currency = Column(String(3), nullable=False)
    type = Column(SQLEnum(PriceType), nullable=False)
    unit_amount = Column(BigInteger, nullable=True)  # Null for usage-based prices
    # interval/interval_count are set iff type == RECURRING
    interval = Column(SQLEnum(PriceInterval), nullable=True)
    interval_count = Column(Integer, nullable=True)
    trial_period_days = Column(Integer, nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    meta_data = Column(JSON, nullable=True)

    product = relationship("Product", back_populates="prices")
