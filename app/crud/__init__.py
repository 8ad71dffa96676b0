# CRUD operations package

from .customer import customer_crud
from .product import product_crud
from .price import price_crud
from .subscription import subscription_crud
from .payment_method import payment_method_crud
from .stripe_webhook import stripe_webhook_crud, ClaimResult

__all__ = [
    'customer_crud',
    'product_crud',
    'price_crud',
    'subscription_crud',
    'payment_method_crud',
    'stripe_webhook_crud',
    'ClaimResult'
]
