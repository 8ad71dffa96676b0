from contextlib import asynccontextmanager
import asyncio
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from dotenv import load_dotenv

from app.routers import billing
from app.core.config import settings
from app.core.database import AsyncSessionLocal
from app.services.stripe_service import StripeService
from app.tasks.catalog_sync import catalog_sync_loop

load_dotenv()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(levelname)s - %(name)s - %(message)s',
    handlers=[logging.StreamHandler()]
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.stripe_service = StripeService.from_settings()

    sync_task = None
    if settings.catalog_sync_interval_seconds > 0 and AsyncSessionLocal and app.state.stripe_service.secret_key:
        sync_task = asyncio.create_task(
            catalog_sync_loop(app.state.stripe_service, settings.catalog_sync_interval_seconds)
        )
        logger.info("Catalog sync scheduled every %ss", settings.catalog_sync_interval_seconds)

    yield

    if sync_task is not None:
        sync_task.cancel()
        try:
            await sync_task
        except asyncio.CancelledError:
            pass


app = FastAPI(
    title="Billing Sync API",
    description="Stripe webhook ingestion and billing state reconciliation",
    version="1.0.0",
    redirect_slashes=False,
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.environment == "development" else [settings.frontend_url],
    allow_credentials=False if settings.environment == "development" else True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Health check endpoint
@app.get("/health")
async def health_check():
    return JSONResponse(content={
        "status": "healthy",
        "service": "Billing Sync API",
        "version": "1.0.0"
    })

# Include routers
app.include_router(billing.router, prefix="/api/billing", tags=["Billing"])

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
