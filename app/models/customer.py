from sqlalchemy import Column, String
from sqlalchemy.orm import relationship
import uuid
from .base import Base, TimestampMixin, UUID_TYPE


class Customer(Base, TimestampMixin):
    """Local billing principal and its (optional) Stripe customer linkage"""
    __tablename__ = "customers"

    id = Column(UUID_TYPE, primary_key=True, default=uuid.uuid4, index=True)
    user_id = Column(String(255), nullable=False, unique=True, index=True)  # Auth subject of the principal
    email = Column(String(320), nullable=True, index=True)
    name = Column(String(255), nullable=True)

    # Null until the first billing action; never overwritten once set
    stripe_customer_id = Column(String(255), nullable=True, unique=True, index=True)

    subscriptions = relationship("Subscription", back_populates="customer")
    payment_methods = relationship("PaymentMethod", back_populates="customer")
