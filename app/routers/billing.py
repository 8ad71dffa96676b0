from fastapi import APIRouter, HTTPException, Depends, Header, status, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from uuid import UUID
import hmac
import logging

from app.schemas.auth import TokenData
from app.schemas.billing import (
    CancelSubscriptionRequest,
    CatalogSyncResponse,
    ChangeSubscriptionRequest,
    CheckoutSessionResponse,
    CreateCheckoutRequest,
    EntitlementResponse,
    UserPlanResponse,
    PaymentMethodResponse,
    PortalSessionResponse,
    ProductResponse,
    SubscriptionResponse,
)
from app.core.auth import get_current_user
from app.core.billing_middleware import require_active_subscription
from app.core.config import settings
from app.core.database import get_db
from app.services.billing_service import BillingService
from app.services.catalog_sync import sync_catalog
from app.services.entitlement_service import get_user_plan
from app.services.stripe_service import StripeService
from app.services.webhook_service import WebhookService, webhook_service

logger = logging.getLogger(__name__)

router = APIRouter()


def get_stripe_service(request: Request) -> StripeService:
    """The Stripe client built at startup"""
    return request.app.state.stripe_service


def get_billing_service(stripe_service: StripeService = Depends(get_stripe_service)) -> BillingService:
    return BillingService(stripe_service)


def get_webhook_service() -> WebhookService:
    return webhook_service


def require_admin_token(x_admin_token: Optional[str] = Header(None)) -> None:
    expected = settings.admin_api_key
    if not expected or not x_admin_token or not hmac.compare_digest(x_admin_token, expected):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin token required")


@router.post("/webhook/stripe")
async def stripe_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    stripe_service: StripeService = Depends(get_stripe_service),
    webhooks: WebhookService = Depends(get_webhook_service)
):
    """
    Handle Stripe webhook events.
    Acknowledges only once the event is durably claimed or already processed;
    any reconciliation failure is returned as a non-2xx so Stripe retries.
    """
    payload = await request.body()
    signature = request.headers.get("stripe-signature")

    # Signature check happens before the ledger is touched
    event = stripe_service.construct_event(payload, signature)
    outcome = await webhooks.handle(db, event)

    return JSONResponse(content={"received": True, "event_id": event.id, "outcome": outcome.value})


@router.post("/checkout", response_model=CheckoutSessionResponse)
async def create_checkout_session(
    request: CreateCheckoutRequest,
    current_user: TokenData = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    billing: BillingService = Depends(get_billing_service)
):
    """
    Create a Stripe checkout session for a local price.
    Creates the Stripe customer on first use.
    """
    return await billing.create_checkout_session(db, current_user, request)


@router.post("/portal", response_model=PortalSessionResponse)
async def create_portal_session(
    current_user: TokenData = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    billing: BillingService = Depends(get_billing_service)
):
    """Create a Stripe billing portal session for the current user"""
    return await billing.create_portal_session(db, current_user)


@router.get("/products", response_model=List[ProductResponse])
async def list_products(
    db: AsyncSession = Depends(get_db),
    billing: BillingService = Depends(get_billing_service)
):
    """Active products with their active prices"""
    return await billing.get_products(db)


@router.get("/subscriptions", response_model=List[SubscriptionResponse])
async def list_subscriptions(
    current_user: TokenData = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    billing: BillingService = Depends(get_billing_service)
):
    return await billing.get_user_subscriptions(db, current_user)


@router.post("/subscriptions/{subscription_id}/cancel", response_model=SubscriptionResponse)
async def cancel_subscription(
    subscription_id: UUID,
    request: CancelSubscriptionRequest,
    current_user: TokenData = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    billing: BillingService = Depends(get_billing_service)
):
    """Cancel immediately or at the end of the current billing period"""
    return await billing.cancel_subscription(db, current_user, subscription_id, immediate=request.immediate)


@router.post("/subscriptions/{subscription_id}/reactivate", response_model=SubscriptionResponse)
async def reactivate_subscription(
    subscription_id: UUID,
    current_user: TokenData = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    billing: BillingService = Depends(get_billing_service)
):
    return await billing.reactivate_subscription(db, current_user, subscription_id)


@router.post("/subscriptions/{subscription_id}/change", response_model=SubscriptionResponse)
async def change_subscription(
    subscription_id: UUID,
    request: ChangeSubscriptionRequest,
    current_user: TokenData = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    billing: BillingService = Depends(get_billing_service)
):
    """Move the subscription to another price with proration"""
    return await billing.change_subscription(db, current_user, subscription_id, request.price_id)


@router.get("/payment-methods", response_model=List[PaymentMethodResponse])
async def list_payment_methods(
    current_user: TokenData = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    billing: BillingService = Depends(get_billing_service)
):
    return await billing.get_payment_methods(db, current_user)


@router.get("/entitlement", response_model=EntitlementResponse)
async def get_entitlement(
    current_user: TokenData = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Current plan of the user, if any subscription grants access right now"""
    plan = await get_user_plan(db, current_user.user_id)
    return EntitlementResponse(has_active_entitlement=plan is not None, plan=plan)


@router.get("/plan", response_model=UserPlanResponse)
async def get_plan(plan: UserPlanResponse = Depends(require_active_subscription)):
    """Plan of a paying user; 402 for everyone else"""
    return plan


@router.post("/sync-products", response_model=CatalogSyncResponse, dependencies=[Depends(require_admin_token)])
async def sync_products(
    db: AsyncSession = Depends(get_db),
    stripe_service: StripeService = Depends(get_stripe_service),
    webhooks: WebhookService = Depends(get_webhook_service)
):
    """Manually trigger a full Stripe catalog sync"""
    logger.info("Manual catalog sync requested")
    return await sync_catalog(db, stripe_service, webhooks)


@router.get("/health")
async def billing_health(stripe_service: StripeService = Depends(get_stripe_service)):
    return {
        "status": "healthy",
        "stripe_configured": bool(stripe_service.secret_key),
        "webhook_configured": bool(stripe_service.webhook_secret),
    }
