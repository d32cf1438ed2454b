"""
Notification Service

Reconciles asynchronous gateway notifications onto order records.

Policy:
- Unsigned or wrongly signed notifications are rejected and change nothing
- Notifications for unknown orders are acknowledged as no-ops
- Once verified, failures are logged and still acknowledged, so the gateway
  does not retry the same notification forever
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, Optional
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.models import OrderModel, to_naive_utc
from ..exceptions import UnauthenticatedError, ConfigurationError
from ..models.notifications import GatewayNotification, ReconcileOutcome
from .order_service import find_order_by_order_id, apply_notification_update
from .signature_service import verify_notification_signature
from .status_mapping import resolve_status

logger = logging.getLogger(__name__)

# Concurrent deliveries for the same order retry against the fresh status
MAX_APPLY_ATTEMPTS = 3

# Midtrans reports transaction_time in Western Indonesia Time
GATEWAY_TIMEZONE = timezone(timedelta(hours=7))


def parse_transaction_time(value: Optional[str]) -> Optional[datetime]:
    """Parse "YYYY-MM-DD HH:MM:SS" (WIB unless an offset is given) to naive UTC."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        logger.warning(f"Unparseable transaction_time {value!r}")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=GATEWAY_TIMEZONE)
    return to_naive_utc(parsed)


def build_update_fields(notification: GatewayNotification, order: OrderModel) -> Dict[str, Any]:
    """Columns a notification writes onto the order it belongs to."""
    transition = resolve_status(
        notification.transaction_status,
        notification.fraud_status,
        order.status,
        order.payment_status_internal
    )

    fields = {
        "status": transition.status,
        "payment_status_internal": transition.payment_status_internal,
        "gateway_transaction_status": notification.transaction_status,
        "gateway_fraud_status": notification.fraud_status,
        "payment_method": notification.payment_type or order.payment_method,
    }

    transaction_time = parse_transaction_time(notification.transaction_time)
    if transaction_time is not None:
        fields["gateway_last_transaction_time"] = transaction_time

    return fields


async def reconcile_notification(
    db: AsyncSession,
    payload: Dict[str, Any],
    server_key: str
) -> ReconcileOutcome:
    """
    Verify a gateway notification and merge it into its order.

    Args:
        db: Database session
        payload: Raw notification body as received
        server_key: Merchant server key the gateway signs with

    Returns:
        ReconcileOutcome (updated, order_not_found, or error)

    Raises:
        ConfigurationError: No server key configured
        UnauthenticatedError: Signature mismatch (nothing is written)
    """
    if not server_key:
        logger.error("MIDTRANS_SERVER_KEY is not set; cannot verify notifications")
        raise ConfigurationError("Server configuration error.")

    order_id = payload.get("order_id")

    if not verify_notification_signature(payload, server_key):
        logger.warning(f"Invalid signature key for order {order_id}")
        raise UnauthenticatedError("Invalid signature.", {"order_id": order_id})

    logger.info(f"Signature verified for order {order_id}")

    try:
        notification = GatewayNotification.model_validate(payload)
        logger.info(
            f"Processing notification: order={notification.order_id}, "
            f"transaction_status={notification.transaction_status}, "
            f"fraud_status={notification.fraud_status}, payment_type={notification.payment_type}"
        )

        for attempt in range(1, MAX_APPLY_ATTEMPTS + 1):
            order = await find_order_by_order_id(db, notification.order_id)
            if order is None:
                logger.warning(f"Order {notification.order_id} not found; notification acknowledged")
                return ReconcileOutcome(result="order_not_found", order_id=notification.order_id)

            previous_status = order.status
            fields = build_update_fields(notification, order)

            if await apply_notification_update(db, order, previous_status, fields, payload):
                logger.info(
                    f"Order {notification.order_id} updated: {previous_status} -> {fields['status']} "
                    f"({fields['payment_status_internal']})"
                )
                return ReconcileOutcome(
                    result="updated",
                    order_id=notification.order_id,
                    previous_status=previous_status,
                    status=fields["status"],
                    payment_status_internal=fields["payment_status_internal"]
                )

            logger.info(
                f"Order {notification.order_id} status changed concurrently "
                f"(attempt {attempt}/{MAX_APPLY_ATTEMPTS}); re-reading"
            )

        raise RuntimeError(
            f"Order {notification.order_id} status kept changing; notification not applied"
        )

    except Exception as e:
        logger.exception(f"Error processing notification for order {order_id}: {e}")
        try:
            await db.rollback()
        except Exception as rollback_error:
            logger.error(f"Rollback failed after notification error: {rollback_error}")
        return ReconcileOutcome(result="error", order_id=order_id if isinstance(order_id, str) else None)
