"""
Inbound provider callbacks.

  POST /webhooks/momo   MTN MoMo request-to-pay / invoice callbacks

Callbacks are unsigned. Only their ids are read; the matched payment is
then polled from the provider like any other status check.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from propdesk.database import get_db
from propdesk.logging_config import mask
from propdesk.services.momo_client import MomoClient, get_momo_client
from propdesk.services.payment_service import handle_provider_callback

logger = structlog.get_logger()
router = APIRouter()


@router.api_route("/momo", methods=["POST", "PUT"], status_code=status.HTTP_200_OK)
async def momo_callback(
    request: Request,
    db: AsyncSession = Depends(get_db),
    client: MomoClient = Depends(get_momo_client),
):
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    logger.info(
        "momo_callback_received",
        external_id=mask(str(payload.get("externalId") or ""), 8),
        status=payload.get("status"),
    )

    result = await handle_provider_callback(db, client, payload)
    if result is None:
        return {"received": True, "matched": False}

    return {
        "received": True,
        "matched": True,
        "payment_id": result.payment_id,
        "status": result.local_status.value if result.local_status else None,
        "applied": result.applied,
    }
