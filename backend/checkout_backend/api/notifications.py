"""
Payment Notification Endpoint

Receives Midtrans HTTP notifications. Responses are plain text: Midtrans
only looks at the status code, and retries anything that is not 2xx.
"""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from ..config import settings
from ..db.init_db import get_db
from ..exceptions import UnauthenticatedError, ConfigurationError
from ..services.notification_service import reconcile_notification

logger = logging.getLogger(__name__)

router = APIRouter()

ACKNOWLEDGEMENTS = {
    "updated": "Notification processed successfully.",
    "order_not_found": "Order not found, notification acknowledged.",
    "error": "Notification received, but internal server error occurred.",
}


@router.post("/midtrans-notification", response_class=PlainTextResponse)
async def midtrans_notification_endpoint(
    request: Request,
    db: AsyncSession = Depends(get_db)
) -> PlainTextResponse:
    """
    Verify and apply a gateway notification.

    Returns:
        200 once the notification is verified (even if applying it failed)
        400 for a body that is not a JSON object
        403 for a bad signature_key
        500 when the server key is not configured
    """
    try:
        payload = await request.json()
    except ValueError:
        logger.warning("Notification body is not valid JSON")
        return PlainTextResponse("Invalid JSON payload.", status_code=400)

    if not isinstance(payload, dict):
        logger.warning("Notification body is not a JSON object")
        return PlainTextResponse("Invalid JSON payload.", status_code=400)

    try:
        outcome = await reconcile_notification(db, payload, settings.midtrans_server_key)
    except UnauthenticatedError as e:
        return PlainTextResponse(e.message, status_code=403)
    except ConfigurationError as e:
        return PlainTextResponse(e.message, status_code=500)

    return PlainTextResponse(ACKNOWLEDGEMENTS[outcome.result], status_code=200)
