import asyncio
import logging

from app.core.config import settings
from app.core.database import get_session_factory
from app.schemas.billing import CatalogSyncResponse
from app.services.catalog_sync import sync_catalog
from app.services.stripe_service import StripeService

logger = logging.getLogger(__name__)


async def run_catalog_sync(stripe_service: StripeService) -> CatalogSyncResponse:
    """One full catalog sync in its own session"""
    session_factory = get_session_factory()
    async with session_factory() as db:
        return await sync_catalog(db, stripe_service)


async def catalog_sync_loop(stripe_service: StripeService, interval_seconds: int) -> None:
    """Sync the catalog every ``interval_seconds`` until cancelled"""
    while True:
        try:
            await run_catalog_sync(stripe_service)
        except Exception:
            logger.exception("Scheduled catalog sync failed")
        await asyncio.sleep(interval_seconds)


def main() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format='%(levelname)s - %(name)s - %(message)s'
    )
    result = asyncio.run(run_catalog_sync(StripeService.from_settings()))
    logger.info("Catalog sync result: %s", result.model_dump())


if __name__ == "__main__":
    main()
