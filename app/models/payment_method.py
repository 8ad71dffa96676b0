from sqlalchemy import Column, String, Integer, Boolean, ForeignKey
from sqlalchemy.orm import relationship
import uuid
from .base import Base, TimestampMixin, UUID_TYPE


class PaymentMethod(Base, TimestampMixin):
    """Stripe payment method attached to a customer. Hard deleted on detach."""
    __tablename__ = "payment_methods"

    id = Column(UUID_TYPE, primary_key=True, default=uuid.uuid4, index=True)
    stripe_payment_method_id = Column(String(255), nullable=False, unique=True, index=True)
    customer_id = Column(UUID_TYPE, ForeignKey("customers.id"), nullable=False, index=True)
    type = Column(String(50), nullable=False)  # card, sepa_debit, us_bank_account, ...

    # Display fields, only populated for cards
    brand = Column(String(50), nullable=True)
    last4 = Column(String(4), nullable=True)
    expiry_month = Column(Integer, nullable=True)
    expiry_year = Column(Integer, nullable=True)

    is_default = Column(Boolean, default=False, nullable=False)

    customer = relationship("Customer", back_populates="payment_methods")
