"""Typed shapes of the Stripe objects carried by webhook events.

Each handled event type decodes its ``data.object`` into exactly one of the
payload models below; reconcilers only ever see these records. Fields the
service does not use are ignored.
"""
from typing import Any, Dict, List, Optional, Type, Union
from typing_extensions import Annotated

from pydantic import BaseModel, BeforeValidator, Field


def _expandable_id(value: Any) -> Any:
    # Expandable references arrive either as "xx_123" or as the full object
    if isinstance(value, dict):
        return value.get("id")
    return value


ExpandableId = Annotated[str, BeforeValidator(_expandable_id)]


class StripeRecurring(BaseModel):
    interval: str
    interval_count: int = 1
    trial_period_days: Optional[int] = None


class StripePricePayload(BaseModel):
    id: str
    product: ExpandableId
    active: bool = True
    currency: str
    nickname: Optional[str] = None
    type: str = "one_time"
    unit_amount: Optional[int] = None
    recurring: Optional[StripeRecurring] = None
    metadata: Dict[str, str] = Field(default_factory=dict)

    @property
    def is_recurring(self) -> bool:
        return self.type == "recurring"


class StripeProductPayload(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    active: bool = True
    metadata: Dict[str, str] = Field(default_factory=dict)


class StripePriceRef(BaseModel):
    id: str


class StripeSubscriptionItem(BaseModel):
    id: Optional[str] = None
    price: StripePriceRef
    current_period_start: Optional[int] = None
    current_period_end: Optional[int] = None


class StripeList(BaseModel):
    data: List[StripeSubscriptionItem] = Field(default_factory=list)


class StripeSubscriptionPayload(BaseModel):
    id: str
    customer: ExpandableId
    status: str
    cancel_at_period_end: bool = False
    cancel_at: Optional[int] = None
    canceled_at: Optional[int] = None
    current_period_start: Optional[int] = None
    current_period_end: Optional[int] = None
    ended_at: Optional[int] = None
    trial_start: Optional[int] = None
    trial_end: Optional[int] = None
    items: StripeList = Field(default_factory=StripeList)
    metadata: Dict[str, str] = Field(default_factory=dict)

    @property
    def first_item(self) -> Optional[StripeSubscriptionItem]:
        return self.items.data[0] if self.items.data else None

    @property
    def price_id(self) -> Optional[str]:
        item = self.first_item
        return item.price.id if item else None

    @property
    def period_start(self) -> Optional[int]:
        # Newer API versions only report the period on subscription items
        if self.current_period_start is not None:
            return self.current_period_start
        return self.first_item.current_period_start if self.first_item else None

    @property
    def period_end(self) -> Optional[int]:
        if self.current_period_end is not None:
            return self.current_period_end
        return self.first_item.current_period_end if self.first_item else None


class StripeSubscriptionDetails(BaseModel):
    subscription: Optional[ExpandableId] = None


class StripeInvoiceParent(BaseModel):
    subscription_details: Optional[StripeSubscriptionDetails] = None


class StripeInvoicePayload(BaseModel):
    id: str
    customer: Optional[ExpandableId] = None
    subscription: Optional[ExpandableId] = None
    parent: Optional[StripeInvoiceParent] = None

    @property
    def subscription_id(self) -> Optional[str]:
        if self.subscription:
            return self.subscription
        if self.parent and self.parent.subscription_details:
            return self.parent.subscription_details.subscription
        return None


class StripeInvoiceSettings(BaseModel):
    default_payment_method: Optional[ExpandableId] = None


class StripeCustomerPayload(BaseModel):
    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    invoice_settings: Optional[StripeInvoiceSettings] = None


class StripeCard(BaseModel):
    brand: Optional[str] = None
    last4: Optional[str] = None
    exp_month: Optional[int] = None
    exp_year: Optional[int] = None


class StripePaymentMethodPayload(BaseModel):
    id: str
    type: str
    customer: Optional[ExpandableId] = None
    card: Optional[StripeCard] = None


EventPayload = Union[
    StripeSubscriptionPayload,
    StripeInvoicePayload,
    StripeCustomerPayload,
    StripeProductPayload,
    StripePricePayload,
    StripePaymentMethodPayload,
]


class WebhookEvent(BaseModel):
    """A verified Stripe event with its decoded payload.

    ``payload`` is None for event types the service does not handle.
    """
    id: str
    type: str
    created: Optional[int] = None
    livemode: bool = False
    payload: Optional[EventPayload] = None
    raw: Dict[str, Any] = Field(default_factory=dict, repr=False)

    @property
    def object_id(self) -> Optional[str]:
        """Stripe id of the record this event changes locally"""
        if isinstance(self.payload, StripeInvoicePayload):
            return self.payload.subscription_id
        if self.payload is not None:
            return self.payload.id
        return None


# Event type -> shape of data.object. Types missing here are acknowledged as no-ops.
PAYLOAD_MODELS: Dict[str, Type[BaseModel]] = {
    "customer.subscription.created": StripeSubscriptionPayload,
    "customer.subscription.updated": StripeSubscriptionPayload,
    "customer.subscription.deleted": StripeSubscriptionPayload,
    "invoice.payment_succeeded": StripeInvoicePayload,
    "invoice.payment_failed": StripeInvoicePayload,
    "customer.created": StripeCustomerPayload,
    "customer.updated": StripeCustomerPayload,
    "product.created": StripeProductPayload,
    "product.updated": StripeProductPayload,
    "product.deleted": StripeProductPayload,
    "price.created": StripePricePayload,
    "price.updated": StripePricePayload,
    "price.deleted": StripePricePayload,
    "payment_method.attached": StripePaymentMethodPayload,
    "payment_method.detached": StripePaymentMethodPayload,
}


def decode_event(raw: Dict[str, Any]) -> WebhookEvent:
    """Build a typed event from a Stripe event dict.

    Raises ``pydantic.ValidationError`` (or ``KeyError``/``TypeError``) when
    the envelope or a handled payload does not have the expected shape.
    """
    event_type = raw["type"]
    model = PAYLOAD_MODELS.get(event_type)
    payload = None
    if model is not None:
        payload = model.model_validate(raw["data"]["object"])
    return WebhookEvent(
        id=raw["id"],
        type=event_type,
        created=raw.get("created"),
        livemode=bool(raw.get("livemode", False)),
        payload=payload,
        raw=raw,
    )
