# propdesk/jobs/scheduled.py
"""
Background jobs triggered by an external scheduler → API endpoints.

Jobs:
  - reconcile-pending: poll the provider for every open, linked payment
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status
import structlog

from propdesk.config import settings
from propdesk.database import async_session_factory
from propdesk.services.momo_client import MomoClient, get_momo_client
from propdesk.services.payment_service import check_all_pending

logger = structlog.get_logger()
router = APIRouter()


async def _require_internal_auth(request: Request):
    """Validates X-Internal-Secret header against INTERNAL_JOB_SECRET from settings."""
    secret = settings.INTERNAL_JOB_SECRET
    if not secret:
        # In development (DEBUG=True), allow unauthenticated internal calls
        if settings.DEBUG:
            return
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="INTERNAL_JOB_SECRET is not configured",
        )
    provided = request.headers.get("X-Internal-Secret")
    if not provided or provided != secret:
        logger.warning("internal_auth_failed", path=request.url.path)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Forbidden",
        )


@router.post("/reconcile-pending")
async def reconcile_pending(
    _auth: None = Depends(_require_internal_auth),
    client: MomoClient = Depends(get_momo_client),
):
    summary = await check_all_pending(async_session_factory, client)
    return {
        "checked": summary.checked,
        "updated": summary.updated,
        "unchanged": summary.unchanged,
        "failed": summary.failed,
    }
