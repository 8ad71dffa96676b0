from sqlalchemy import Column, String, Text, Boolean, JSON
from sqlalchemy.orm import relationship
import uuid
from .base import Base, TimestampMixin, UUID_TYPE


class Product(Base, TimestampMixin):
    """Catalog product mirrored from Stripe. Deletion only flips ``active``."""
    __tablename__ = "products"

    id = Column(UUID_TYPE, primary_key=True, default=uuid.uuid4, index=True)
    stripe_product_id = Column(String(255), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    meta_data = Column(JSON, nullable=True)

    prices = relationship("Price", back_populates="product", order_by="Price.unit_amount")
