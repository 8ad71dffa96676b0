import copy
from typing import Any, Dict, List, Optional

from app.services.stripe_service import StripeService

from tests.factories import WEBHOOK_SECRET, now_ts


class FakeStripeService(StripeService):
    """StripeService with the network calls replaced by an in-memory account.

    Signature verification is the real implementation.
    """

    def __init__(self):
        super().__init__("sk_test_fake", WEBHOOK_SECRET, tolerance=300, timeout=1)
        self.calls: List[tuple] = []
        self.subscriptions: Dict[str, Dict[str, Any]] = {}
        self.products: List[Dict[str, Any]] = []
        self.prices: List[Dict[str, Any]] = []
        self.error: Optional[Exception] = None

    def _record(self, _call: str, **kwargs) -> None:
        self.calls.append((_call, kwargs))
        if self.error is not None:
            raise self.error

    def called(self, name: str) -> List[Dict[str, Any]]:
        return [kwargs for call, kwargs in self.calls if call == name]

    async def create_customer(self, *, user_id, email, name):
        self._record("create_customer", user_id=user_id, email=email, name=name)
        return {"id": f"cus_{user_id}", "object": "customer", "email": email, "metadata": {"user_id": user_id}}

    async def create_checkout_session(self, **kwargs):
        self._record("create_checkout_session", **kwargs)
        return {"id": "cs_test_1", "object": "checkout.session", "url": "https://checkout.stripe.com/c/cs_test_1"}

    async def create_portal_session(self, *, customer_id, return_url):
        self._record("create_portal_session", customer_id=customer_id, return_url=return_url)
        return {"id": "bps_1", "object": "billing_portal.session", "url": "https://billing.stripe.com/p/session_1"}

    async def cancel_subscription(self, subscription_id, *, immediate=False):
        self._record("cancel_subscription", subscription_id=subscription_id, immediate=immediate)
        subscription = self.subscriptions[subscription_id]
        if immediate:
            subscription.update(status="canceled", canceled_at=now_ts(), ended_at=now_ts())
        else:
            subscription.update(
                cancel_at_period_end=True,
                cancel_at=subscription.get("current_period_end"),
                canceled_at=now_ts(),
            )
        return copy.deepcopy(subscription)

    async def reactivate_subscription(self, subscription_id):
        self._record("reactivate_subscription", subscription_id=subscription_id)
        subscription = self.subscriptions[subscription_id]
        subscription.update(cancel_at_period_end=False, cancel_at=None, canceled_at=None)
        return copy.deepcopy(subscription)

    async def update_subscription_price(self, subscription_id, price_id):
        self._record("update_subscription_price", subscription_id=subscription_id, price_id=price_id)
        subscription = self.subscriptions[subscription_id]
        subscription["items"]["data"][0]["price"] = {"id": price_id}
        return copy.deepcopy(subscription)

    async def list_products(self):
        self._record("list_products")
        return copy.deepcopy(self.products)

    async def list_prices(self):
        self._record("list_prices")
        return copy.deepcopy(self.prices)
