"""
Lightning API - settlement webhook receiver

The wallet backend POSTs here when an invoice is paid. The body is handed
to the Lightning connector, which fires the listening checkout session.

Endpoints:
- POST /api/v1/lightning/webhook  - Settlement push from the wallet backend

Security:
- When LIGHTNING_WEBHOOK_SECRET is set, the request must carry it as the
  `key` query parameter (put it in the webhook URL given to the backend)
"""
import hmac
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from pydantic import BaseModel

from app.connectors.lightning_connector import LightningConnector, get_lightning_connector
from app.core.config import settings

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/lightning", tags=["Lightning"])


# ============================================================================
# Security - Webhook Secret Verification
# ============================================================================

async def verify_webhook_key(key: Optional[str] = Query(None, description="Webhook secret")):
    """
    Verify the webhook secret from the `key` query parameter.

    If LIGHTNING_WEBHOOK_SECRET is not configured, all requests are accepted.
    """
    secret = settings.LIGHTNING_WEBHOOK_SECRET
    if not secret:
        logger.warning("LIGHTNING_WEBHOOK_SECRET not configured - webhook is unprotected!")
        return

    if not key or not hmac.compare_digest(key, secret):
        logger.warning("Lightning webhook call with missing or invalid key")
        raise HTTPException(status_code=401, detail="Invalid webhook key")


# ============================================================================
# Response Models
# ============================================================================

class WebhookResponse(BaseModel):
    """Response model for an accepted settlement push"""
    success: bool
    message: str


# ============================================================================
# Endpoints
# ============================================================================

@router.post("/webhook", response_model=WebhookResponse, dependencies=[Depends(verify_webhook_key)])
async def lightning_webhook(
    payload: Dict[str, Any] = Body(...),
    connector: LightningConnector = Depends(get_lightning_connector),
):
    """
    Record a settlement push

    Returns 404 when the payload does not match an invoice issued by this
    process.
    """
    if not connector.handle_webhook(payload):
        raise HTTPException(status_code=404, detail="Unknown payment")

    return WebhookResponse(success=True, message="Settlement recorded")
