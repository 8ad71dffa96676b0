from pydantic import BaseModel, Field
from typing import Optional, List, Dict
from datetime import datetime
from uuid import UUID

from app.models.price import PriceType, PriceInterval
from app.models.subscription import SubscriptionStatus


# Checkout / portal
class CreateCheckoutRequest(BaseModel):
    price_id: UUID = Field(..., description="Local price id")
    success_url: str = Field(..., description="Redirect after successful payment")
    cancel_url: str = Field(..., description="Redirect when the user abandons checkout")
    trial_days: Optional[int] = Field(None, ge=1, le=365, description="Free trial length in days")
    metadata: Optional[Dict[str, str]] = Field(None, description="Extra metadata copied to the checkout session")
    request_id: Optional[str] = Field(
        None, min_length=1, max_length=200, description="Client id of this purchase attempt; retries with the same id reuse the session"
    )


class CheckoutSessionResponse(BaseModel):
    session_id: str
    url: Optional[str] = None


class PortalSessionResponse(BaseModel):
    url: str


# Catalog
class PriceResponse(BaseModel):
    id: UUID
    stripe_price_id: str
    nickname: Optional[str] = None
    currency: str
    type: PriceType
    unit_amount: Optional[int] = None
    interval: Optional[PriceInterval] = None
    interval_count: Optional[int] = None
    trial_period_days: Optional[int] = None
    active: bool

    class Config:
        from_attributes = True


class ProductResponse(BaseModel):
    id: UUID
    stripe_product_id: str
    name: str
    description: Optional[str] = None
    active: bool
    prices: List[PriceResponse] = []

    class Config:
        from_attributes = True


class ProductSummary(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None

    class Config:
        from_attributes = True


class SubscriptionPriceResponse(PriceResponse):
    product: Optional[ProductSummary] = None


# Subscriptions
class SubscriptionResponse(BaseModel):
    id: UUID
    stripe_subscription_id: str
    status: SubscriptionStatus
    cancel_at_period_end: bool
    cancel_at: Optional[datetime] = None
    canceled_at: Optional[datetime] = None
    current_period_start: datetime
    current_period_end: datetime
    trial_start: Optional[datetime] = None
    trial_end: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    price: Optional[SubscriptionPriceResponse] = None

    class Config:
        from_attributes = True


class CancelSubscriptionRequest(BaseModel):
    immediate: bool = Field(False, description="Cancel now instead of at the end of the billing period")


class ChangeSubscriptionRequest(BaseModel):
    price_id: UUID = Field(..., description="Local id of the new price")


class UserPlanResponse(BaseModel):
    subscription_id: UUID
    status: SubscriptionStatus
    is_active: bool
    is_trial: bool
    current_period_end: datetime
    cancel_at_period_end: bool
    price: SubscriptionPriceResponse


class EntitlementResponse(BaseModel):
    has_active_entitlement: bool
    plan: Optional[UserPlanResponse] = None


# Payment methods
class PaymentMethodResponse(BaseModel):
    id: UUID
    stripe_payment_method_id: str
    type: str
    brand: Optional[str] = None
    last4: Optional[str] = None
    expiry_month: Optional[int] = None
    expiry_year: Optional[int] = None
    is_default: bool

    class Config:
        from_attributes = True


# Admin
class CatalogSyncResponse(BaseModel):
    products: int
    prices: int
    skipped_prices: int
    replayed_events: int
