"""
Lightning POS - Backend API
Receives settlement pushes from the Lightning wallet backend

The process shares one set of collaborators, built lazily from settings:
- get_kv_store(), get_catalog_repository(), get_basket_repository()
- get_lightning_connector(), the connector the webhook resolves against
- get_checkout_service(), which starts checkouts on that connector

A POS front end running in this process calls
get_checkout_service().start_checkout(), and settlement pushes posted to
/api/v1/lightning/webhook reach the session it started.
"""
import logging
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI

# Load environment variables
env_path = Path(__file__).parent.parent / '.env'
load_dotenv(env_path)

from app.api import lightning
from app.core.config import settings
from app.connectors.lightning_connector import get_lightning_connector
from app.services.checkout_service import get_checkout_service

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Tear down the open checkout and pending wallet timers on shutdown"""
    logger.info(f"Starting with {settings.LIGHTNING_BACKEND} Lightning backend")
    yield
    await get_checkout_service().end_session()
    await get_lightning_connector().aclose()


app = FastAPI(
    title=settings.API_TITLE,
    version=settings.API_VERSION,
    description=settings.API_DESCRIPTION,
    lifespan=lifespan,
)

app.include_router(lightning.router)


@app.get("/health")
async def health():
    """Health check endpoint for monitoring"""
    return {
        "status": "healthy",
        "service": "lightning-pos-api",
        "version": settings.API_VERSION,
        "storage_backend": settings.STORAGE_BACKEND,
        "lightning_backend": settings.LIGHTNING_BACKEND,
    }
