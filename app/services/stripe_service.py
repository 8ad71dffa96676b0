import json
import logging
from functools import partial
from typing import Any, Callable, Dict, List, Optional

import anyio
import stripe
from pydantic import ValidationError as PydanticValidationError

from app.core.config import settings
from app.core.exceptions import (
    ExternalProcessorError,
    MalformedEvent,
    SignatureInvalid,
    SignatureStale,
)
from app.schemas.stripe_events import WebhookEvent, decode_event
from app.services.stripe_idempotency import make_idempotency_key

logger = logging.getLogger(__name__)

# Worth retrying by the caller; everything else from the SDK is terminal
RETRYABLE_ERRORS = (
    stripe.APIConnectionError,
    stripe.RateLimitError,
    stripe.APIError,
)

# Full listings page through the whole catalog in one call
LIST_TIMEOUT_FACTOR = 6


def _as_dict(obj: Any) -> Dict[str, Any]:
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return dict(obj)


class StripeService:
    """Explicit Stripe client: every call carries its own api key and timeout.

    One instance is built at startup and stored on ``app.state``; nothing
    here touches the SDK's process-wide ``stripe.api_key``.
    """

    def __init__(
        self,
        secret_key: Optional[str],
        webhook_secret: Optional[str],
        *,
        tolerance: int = 300,
        timeout: float = 10.0
    ):
        self.secret_key = secret_key or None
        self.webhook_secret = webhook_secret or None
        self.tolerance = tolerance
        self.timeout = timeout

    @classmethod
    def from_settings(cls) -> "StripeService":
        return cls(
            settings.stripe_secret,
            settings.stripe_webhook_secret,
            tolerance=settings.stripe_webhook_tolerance_seconds,
            timeout=settings.stripe_timeout_seconds,
        )

    # ------------------------------------------------------------------
    # Webhook intake
    # ------------------------------------------------------------------

    def construct_event(self, payload: bytes, signature: Optional[str]) -> WebhookEvent:
        """Verify the signature header and decode the payload into a typed event.

        Runs before any storage access. Raises ``SignatureInvalid``,
        ``SignatureStale`` or ``MalformedEvent``.
        """
        if not self.webhook_secret:
            logger.error("Stripe webhook secret is not configured")
            raise SignatureInvalid("Webhook secret not configured")
        if not signature:
            raise SignatureInvalid("Missing Stripe-Signature header")

        try:
            body = payload.decode("utf-8")
        except UnicodeDecodeError:
            raise SignatureInvalid()

        try:
            stripe.WebhookSignature.verify_header(body, signature, self.webhook_secret, self.tolerance)
        except stripe.SignatureVerificationError as e:
            if "tolerance" in str(e).lower():
                logger.warning("Rejected stale Stripe signature: %s", e)
                raise SignatureStale()
            logger.warning("Rejected Stripe signature: %s", e)
            raise SignatureInvalid()

        try:
            raw = json.loads(body)
            return decode_event(raw)
        except (ValueError, KeyError, TypeError, PydanticValidationError) as e:
            logger.warning("Malformed Stripe event payload: %s", e)
            raise MalformedEvent()

    # ------------------------------------------------------------------
    # API calls
    # ------------------------------------------------------------------

    async def _call(self, operation: str, fn: Callable[..., Any], *args, **kwargs) -> Any:
        """Run a blocking SDK call in a worker thread under the configured timeout"""
        return await self._run(operation, partial(fn, *args, api_key=self.secret_key, **kwargs), self.timeout)

    async def _run(self, operation: str, call: Callable[[], Any], timeout: Optional[float]) -> Any:
        if not self.secret_key:
            raise ExternalProcessorError("Stripe not configured", retryable=False)
        try:
            with anyio.fail_after(timeout):
                return await anyio.to_thread.run_sync(call, abandon_on_cancel=True)
        except TimeoutError:
            logger.warning("Stripe %s timed out after %ss", operation, timeout)
            raise ExternalProcessorError(f"Stripe {operation} timed out", retryable=True)
        except RETRYABLE_ERRORS as e:
            logger.warning("Stripe %s failed (retryable): %s", operation, e)
            raise ExternalProcessorError(str(e.user_message or e), retryable=True)
        except stripe.StripeError as e:
            logger.error("Stripe %s failed: %s", operation, e)
            raise ExternalProcessorError(str(e.user_message or e), retryable=False)

    async def create_customer(self, *, user_id: str, email: Optional[str], name: Optional[str]) -> Dict[str, Any]:
        """Create a Stripe customer carrying the local principal id in its metadata"""
        customer = await self._call(
            "create_customer",
            stripe.Customer.create,
            email=email,
            name=name,
            metadata={"user_id": user_id},
            idempotency_key=make_idempotency_key("customer_create", subject=user_id),
        )
        return _as_dict(customer)

    async def create_checkout_session(
        self,
        *,
        customer_id: str,
        price_id: str,
        mode: str,
        success_url: str,
        cancel_url: str,
        client_reference_id: str,
        metadata: Dict[str, str],
        trial_days: Optional[int] = None,
        attempt_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Hosted checkout for one price.

        Idempotent only per ``attempt_id``, one id per purchase attempt.
        """
        params: Dict[str, Any] = {
            "customer": customer_id,
            "line_items": [{"price": price_id, "quantity": 1}],
            "mode": mode,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "allow_promotion_codes": True,
            "billing_address_collection": "auto",
            "client_reference_id": client_reference_id,
            "metadata": metadata,
        }
        if mode == "subscription":
            subscription_data: Dict[str, Any] = {"metadata": metadata}
            if trial_days:
                subscription_data["trial_period_days"] = trial_days
            params["subscription_data"] = subscription_data

        if attempt_id:
            params["idempotency_key"] = make_idempotency_key(
                "checkout_session", subject=attempt_id, extra={"customer": customer_id, "price": price_id}
            )

        session = await self._call("create_checkout_session", stripe.checkout.Session.create, **params)
        return _as_dict(session)

    async def create_portal_session(self, *, customer_id: str, return_url: str) -> Dict[str, Any]:
        session = await self._call(
            "create_portal_session",
            stripe.billing_portal.Session.create,
            customer=customer_id,
            return_url=return_url,
        )
        return _as_dict(session)

    async def cancel_subscription(self, subscription_id: str, *, immediate: bool = False) -> Dict[str, Any]:
        """Cancel now, or flag the subscription to end with its current period"""
        if immediate:
            subscription = await self._call("cancel_subscription", stripe.Subscription.cancel, subscription_id)
        else:
            subscription = await self._call(
                "cancel_subscription",
                stripe.Subscription.modify,
                subscription_id,
                cancel_at_period_end=True,
            )
        return _as_dict(subscription)

    async def reactivate_subscription(self, subscription_id: str) -> Dict[str, Any]:
        # An empty string unsets cancel_at on Stripe's side
        subscription = await self._call(
            "reactivate_subscription",
            stripe.Subscription.modify,
            subscription_id,
            cancel_at_period_end=False,
            cancel_at="",
        )
        return _as_dict(subscription)

    async def update_subscription_price(self, subscription_id: str, price_id: str) -> Dict[str, Any]:
        """Swap the subscription's single item onto a new price, prorating the change"""
        current = _as_dict(
            await self._call("retrieve_subscription", stripe.Subscription.retrieve, subscription_id)
        )
        items = (current.get("items") or {}).get("data") or []
        if not items:
            raise ExternalProcessorError(f"Subscription {subscription_id} has no items", retryable=False)

        subscription = await self._call(
            "update_subscription_price",
            stripe.Subscription.modify,
            subscription_id,
            items=[{"id": items[0]["id"], "price": price_id}],
            proration_behavior="create_prorations",
        )
        return _as_dict(subscription)

    async def list_products(self) -> List[Dict[str, Any]]:
        """Every product, active and archived, across all pages"""
        def _list():
            pages = stripe.Product.list(limit=100, api_key=self.secret_key)
            return [_as_dict(p) for p in pages.auto_paging_iter()]

        return await self._run("list_products", _list, self.timeout * LIST_TIMEOUT_FACTOR)

    async def list_prices(self) -> List[Dict[str, Any]]:
        def _list():
            pages = stripe.Price.list(limit=100, api_key=self.secret_key)
            return [_as_dict(p) for p in pages.auto_paging_iter()]

        return await self._run("list_prices", _list, self.timeout * LIST_TIMEOUT_FACTOR)

