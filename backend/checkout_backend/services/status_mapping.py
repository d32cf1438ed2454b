"""
Order Status Mapping

Pure translation of a gateway notification (transaction_status, fraud_status)
into the order's customer-facing status and internal payment sub-status.

Notifications can arrive late, duplicated, or out of order, so the mapping
also takes the current status and never moves an order backwards:
- "pending" never downgrades an order past pending
- "expire"/"cancel" never cancel an order that has been paid
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class OrderStatus(str, Enum):
    """Customer-facing order lifecycle state."""
    PENDING = "pending"
    PROCESSING = "processing"
    PAID = "paid"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    FAILED = "failed"


class PaymentSubStatus(str, Enum):
    """Internal payment progress, independent of OrderStatus."""
    AWAITING_CHARGE = "awaiting_charge"
    CHARGE_PENDING_USER_ACTION = "charge_api_success_pending_user_action"
    PAYMENT_TYPE_UNSUPPORTED = "backend_payment_type_unsupported"
    ITEM_DETAILS_MISMATCH = "backend_item_details_mismatch"
    CHARGE_API_FAILED = "charge_api_failed"
    PAID_CAPTURED_ACCEPTED = "paid_captured_accepted"
    CHALLENGED_BY_FDS = "payment_challenged_by_fds"
    FAILED_FDS_CHECK = "failed_fds_check"
    PAID_SETTLED = "paid_settled"
    PENDING_PAYMENT_COMPLETION = "pending_payment_completion"
    EXPIRED_PAYMENT = "expired_payment"
    CANCELLED = "cancelled_by_midtrans_or_user"
    DENIED = "denied_by_payment_provider"


# Statuses a late expire/cancel notification must not revert
PAID_OR_LATER = frozenset({
    OrderStatus.PROCESSING.value,
    OrderStatus.PAID.value,
    OrderStatus.SHIPPED.value,
    OrderStatus.DELIVERED.value,
})

# Statuses a repeated charge request may reset to pending
RESTARTABLE_STATUSES = (OrderStatus.PENDING.value, OrderStatus.FAILED.value)


@dataclass(frozen=True)
class StatusTransition:
    status: Optional[str]
    payment_status_internal: Optional[str]


def resolve_status(
    transaction_status: Optional[str],
    fraud_status: Optional[str],
    current_status: Optional[str],
    current_internal: Optional[str] = None
) -> StatusTransition:
    """
    Map a notification onto (status, internal sub-status).

    Args:
        transaction_status: Gateway transaction_status (capture, settlement, ...)
        fraud_status: Gateway fraud_status (accept, challenge, deny, ...)
        current_status: Order status before this notification
        current_internal: Internal sub-status before this notification

    Returns:
        StatusTransition; unknown transaction statuses leave both unchanged
    """
    if transaction_status == "capture":
        if fraud_status == "accept":
            return StatusTransition(OrderStatus.PROCESSING.value, PaymentSubStatus.PAID_CAPTURED_ACCEPTED.value)
        if fraud_status == "challenge":
            return StatusTransition(OrderStatus.PENDING.value, PaymentSubStatus.CHALLENGED_BY_FDS.value)
        return StatusTransition(OrderStatus.FAILED.value, PaymentSubStatus.FAILED_FDS_CHECK.value)

    if transaction_status == "settlement":
        return StatusTransition(OrderStatus.PROCESSING.value, PaymentSubStatus.PAID_SETTLED.value)

    if transaction_status == "pending":
        # A failed order is still payable when the gateway says so
        status = OrderStatus.PENDING.value if current_status == OrderStatus.FAILED.value else current_status
        return StatusTransition(status, PaymentSubStatus.PENDING_PAYMENT_COMPLETION.value)

    if transaction_status in ("expire", "cancel"):
        internal = (
            PaymentSubStatus.EXPIRED_PAYMENT.value
            if transaction_status == "expire"
            else PaymentSubStatus.CANCELLED.value
        )
        status = current_status if current_status in PAID_OR_LATER else OrderStatus.CANCELLED.value
        return StatusTransition(status, internal)

    if transaction_status == "deny":
        return StatusTransition(OrderStatus.FAILED.value, PaymentSubStatus.DENIED.value)

    return StatusTransition(current_status, current_internal)

