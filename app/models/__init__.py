# Database models package

from .base import Base
from .customer import Customer
from .product import Product
from .price import Price, PriceType, PriceInterval
from .subscription import Subscription, SubscriptionStatus, ENTITLED_STATUSES
from .payment_method import PaymentMethod
from .stripe_webhook import StripeWebhookEvent

__all__ = [
    'Base',
    'Customer',
    'Product',
    'Price',
    'PriceType',
    'PriceInterval',
    'Subscription',
    'SubscriptionStatus',
    'ENTITLED_STATUSES',
    'PaymentMethod',
    'StripeWebhookEvent'
]
