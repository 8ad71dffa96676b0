import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import UnresolvedReference
from app.schemas.billing import CatalogSyncResponse
from app.schemas.stripe_events import StripePricePayload, StripeProductPayload
from app.services.reconcilers import price_reconciler, product_reconciler
from app.services.stripe_service import StripeService
from app.services.webhook_service import WebhookService, webhook_service as default_webhook_service

logger = logging.getLogger(__name__)


async def sync_catalog(
    db: AsyncSession,
    stripe_service: StripeService,
    webhooks: Optional[WebhookService] = None
) -> CatalogSyncResponse:
    """Pull every product and price from Stripe through the webhook reconcilers.

    Products are committed before prices so each price can resolve its
    product. Afterwards, ledger events that were waiting on a missing
    reference are replayed. Safe to run next to live webhook traffic.
    """
    webhooks = webhooks or default_webhook_service
    logger.info("Starting Stripe catalog sync")

    products = await stripe_service.list_products()
    for raw in products:
        await product_reconciler.upsert(db, StripeProductPayload.model_validate(raw))
    await db.commit()

    prices = await stripe_service.list_prices()
    synced_prices = 0
    skipped_prices = 0
    for raw in prices:
        try:
            await price_reconciler.upsert(db, StripePricePayload.model_validate(raw))
            synced_prices += 1
        except UnresolvedReference as e:
            logger.warning("Skipping price %s during sync: %s", raw.get("id"), e)
            skipped_prices += 1
    await db.commit()

    replayed = await webhooks.replay_pending_events(db)

    logger.info(
        "Catalog sync finished: %d products, %d prices, %d prices skipped, %d events replayed",
        len(products), synced_prices, skipped_prices, replayed,
    )
    return CatalogSyncResponse(
        products=len(products),
        prices=synced_prices,
        skipped_prices=skipped_prices,
        replayed_events=replayed,
    )
