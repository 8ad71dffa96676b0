"""Stripe-shaped payloads and signing helpers shared by the tests"""
import hashlib
import hmac
import json
import time
from typing import Any, Dict, Optional

WEBHOOK_SECRET = "whsec_test_secret"


def now_ts() -> int:
    return int(time.time())


def product_obj(id: str = "prod_1", name: str = "Pro", active: bool = True, **extra) -> Dict[str, Any]:
    obj = {
        "id": id,
        "object": "product",
        "name": name,
        "description": f"{name} plan",
        "active": active,
        "metadata": {"tier": name.lower()},
    }
    obj.update(extra)
    return obj


def price_obj(
    id: str = "price_1",
    product: Any = "prod_1",
    *,
    recurring: bool = True,
    unit_amount: Optional[int] = 1000,
    interval: str = "month",
    active: bool = True,
    trial_period_days: Optional[int] = None
) -> Dict[str, Any]:
    return {
        "id": id,
        "object": "price",
        "product": product,
        "active": active,
        "currency": "usd",
        "nickname": f"{id} nickname",
        "type": "recurring" if recurring else "one_time",
        "unit_amount": unit_amount,
        "recurring": (
            {"interval": interval, "interval_count": 1, "trial_period_days": trial_period_days}
            if recurring else None
        ),
        "metadata": {},
    }


def subscription_obj(
    id: str = "sub_1",
    customer: Any = "cus_1",
    price: str = "price_1",
    status: str = "active",
    *,
    period_start: Optional[int] = None,
    period_end: Optional[int] = None,
    cancel_at_period_end: bool = False,
    cancel_at: Optional[int] = None,
    ended_at: Optional[int] = None,
    periods_on_item: bool = False
) -> Dict[str, Any]:
    start = period_start if period_start is not None else now_ts() - 10 * 86400
    end = period_end if period_end is not None else now_ts() + 20 * 86400
    item = {"id": f"si_{id}", "price": {"id": price}}
    obj = {
        "id": id,
        "object": "subscription",
        "customer": customer,
        "status": status,
        "cancel_at_period_end": cancel_at_period_end,
        "cancel_at": cancel_at,
        "canceled_at": None,
        "ended_at": ended_at,
        "trial_start": None,
        "trial_end": None,
        "items": {"object": "list", "data": [item]},
        "metadata": {},
    }
    if periods_on_item:
        item.update(current_period_start=start, current_period_end=end)
    else:
        obj.update(current_period_start=start, current_period_end=end)
    return obj


def customer_obj(
    id: str = "cus_1",
    email: Optional[str] = "user1@example.com",
    *,
    user_id: Optional[str] = None,
    default_payment_method: Optional[str] = None,
    with_invoice_settings: bool = True
) -> Dict[str, Any]:
    obj = {
        "id": id,
        "object": "customer",
        "email": email,
        "name": "User One",
        "metadata": {"user_id": user_id} if user_id else {},
    }
    if with_invoice_settings:
        obj["invoice_settings"] = {"default_payment_method": default_payment_method}
    return obj


def payment_method_obj(id: str = "pm_1", customer: Optional[str] = "cus_1", *, card: bool = True) -> Dict[str, Any]:
    obj = {"id": id, "object": "payment_method", "type": "card" if card else "sepa_debit", "customer": customer}
    if card:
        obj["card"] = {"brand": "visa", "last4": "4242", "exp_month": 12, "exp_year": 2030}
    return obj


def invoice_obj(id: str = "in_1", subscription: Optional[str] = "sub_1", *, via_parent: bool = False) -> Dict[str, Any]:
    obj = {"id": id, "object": "invoice", "customer": "cus_1"}
    if via_parent:
        obj["parent"] = {"subscription_details": {"subscription": subscription}}
    else:
        obj["subscription"] = subscription
    return obj


def event(event_id: str, event_type: str, obj: Dict[str, Any], *, created: Optional[int] = None) -> Dict[str, Any]:
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "created": created if created is not None else now_ts(),
        "livemode": False,
        "data": {"object": obj},
    }


def sign(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Stripe-Signature header value for ``payload``"""
    ts = timestamp if timestamp is not None else now_ts()
    signed = f"{ts}.{payload.decode('utf-8')}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={signature}"


def encode(body: Dict[str, Any]) -> bytes:
    return json.dumps(body).encode("utf-8")
