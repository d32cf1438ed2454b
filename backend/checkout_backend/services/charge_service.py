"""
Charge Service

Creates a gateway charge for a fully priced order:
1. Re-verify the client's total (and claimed promo discount) server-side
2. Persist the order as pending before the gateway is contacted
3. Build gateway line items, adding a negative-price discount item
4. Map the app's payment type onto a gateway payment method
5. Reuse an existing gateway transaction for the order id, else charge
6. Persist the gateway result onto the order
7. Optionally fetch the GoPay QRIS payload

Client totals are never trusted: a breakdown mismatch is rejected before
anything is written or sent; line items that do not add up fail the saved
order without contacting the gateway.
"""
import logging
from typing import Dict, Any, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..exceptions import (
    InvalidInputError,
    TotalMismatchError,
    UnsupportedPaymentTypeError,
)
from ..models.orders import ChargeRequest, ChargeResult
from .amounts import round_currency, round_to_unit
from .order_service import upsert_pending_order, record_charge_result, mark_order_failed
from .payment_gateway import PaymentGateway
from .promo_service import validate_promo
from .status_mapping import PaymentSubStatus

logger = logging.getLogger(__name__)

TOTAL_TOLERANCE = 0.01
QR_ACTION_NAME = "generate-qr-code"

# App payment type -> gateway charge parameters
PAYMENT_METHODS: Dict[str, Dict[str, Any]] = {
    "gopay": {"payment_type": "gopay"},
    "bca_va": {"payment_type": "bank_transfer", "bank_transfer": {"bank": "bca"}},
    "permata_va": {"payment_type": "bank_transfer", "bank_transfer": {"bank": "permata"}},
}


# ============================================================================
# Validation and request building
# ============================================================================

def expected_total(request: ChargeRequest) -> float:
    """subtotal - discount + shipping + tax, rounded to cents."""
    return round_currency(
        request.product_subtotal - request.discount + request.shipping_cost + request.tax_amount
    )


def verify_total(request: ChargeRequest) -> None:
    """
    Reject a request whose grossAmount disagrees with its breakdown.

    Raises:
        TotalMismatchError: Difference greater than 0.01
    """
    expected = expected_total(request)
    claimed = round_currency(request.gross_amount)

    if abs(expected - claimed) > TOTAL_TOLERANCE:
        logger.error(
            f"Total mismatch for order {request.order_id}: server={expected}, client={claimed} "
            f"(subtotal={request.product_subtotal}, discount={request.discount}, "
            f"shipping={request.shipping_cost}, tax={request.tax_amount})"
        )
        raise TotalMismatchError(
            "Order total does not match its breakdown. Please refresh and try again.",
            {"serverTotal": expected, "grossAmount": claimed}
        )


async def verify_promo_discount(db: AsyncSession, request: ChargeRequest) -> None:
    """
    Re-run promo validation for a claimed promo discount.

    Raises:
        InvalidInputError: Promo no longer valid for this subtotal
        TotalMismatchError: Claimed discount differs from the promo's discount
    """
    if not request.applied_promo_code or request.discount <= 0:
        return

    verdict = await validate_promo(
        db, request.applied_promo_code, request.user_id, request.product_subtotal
    )
    if not verdict.is_valid:
        raise InvalidInputError(
            f"Applied promo code is not valid: {verdict.message}",
            {"promoCode": request.applied_promo_code, "reason": verdict.reason}
        )

    if abs(verdict.discount_amount - round_currency(request.discount)) > TOTAL_TOLERANCE:
        logger.error(
            f"Discount mismatch for order {request.order_id}: promo={verdict.discount_amount}, "
            f"client={request.discount}"
        )
        raise TotalMismatchError(
            "Applied discount does not match the promo code.",
            {"promoDiscount": verdict.discount_amount, "discountApplied": request.discount}
        )


def build_item_details(request: ChargeRequest) -> List[Dict[str, Any]]:
    """
    Gateway line items: the app's items plus a negative discount item.

    Raises:
        TotalMismatchError: Line items do not sum to the rounded grossAmount
    """
    items = [item.model_dump(exclude_none=True) for item in request.item_details]

    if request.discount > 0:
        label = request.applied_promo_code or "Promo"
        items.append({
            "id": f"DISC_{request.applied_promo_code or 'PROMO'}",
            "price": -round_to_unit(request.discount),
            "quantity": 1,
            "name": f"Discount ({label})",
        })

    items_sum = round_to_unit(sum(item["price"] * item["quantity"] for item in items))
    gross = round_to_unit(request.gross_amount)

    if items_sum != gross:
        logger.error(
            f"Line item mismatch for order {request.order_id}: items={items_sum}, gross={gross}"
        )
        raise TotalMismatchError(
            "Item details do not add up to the order total.",
            {"serverSum": items_sum, "grossAmount": gross}
        )

    return items


def resolve_payment_method(payment_type: str) -> Optional[Dict[str, Any]]:
    """Gateway parameters for an app payment type (case-insensitive), or None."""
    method = PAYMENT_METHODS.get(payment_type.strip().lower())
    if method is None:
        return None
    # Callers mutate the charge params; hand out copies
    return {key: dict(value) if isinstance(value, dict) else value for key, value in method.items()}


def find_action_url(response: Dict[str, Any], name: str) -> Optional[str]:
    for action in response.get("actions") or []:
        if action.get("name") == name and action.get("url"):
            return action["url"]
    return None


async def fetch_qr_string(
    gateway: PaymentGateway,
    response: Dict[str, Any],
    order_id: str
) -> Optional[str]:
    """
    Fetch the QRIS payload for a GoPay charge. Never raises.

    A failure here must not fail the charge that already exists.
    """
    url = find_action_url(response, QR_ACTION_NAME)
    if not url:
        return None

    try:
        qr_string = await gateway.fetch_qr_string(url)
    except Exception as e:
        logger.error(f"Error fetching GoPay QR string for order {order_id}: {e}")
        return None

    if not qr_string:
        logger.warning(f"GoPay QR string not found in response for order {order_id}")
        return None

    logger.info(f"Fetched GoPay QR string for order {order_id}")
    return qr_string


def gateway_result_fields(response: Dict[str, Any]) -> Dict[str, Any]:
    """Order columns to persist from a charge or status response."""
    fields = {
        "gateway_transaction_id": response.get("transaction_id"),
        "gateway_payment_type": response.get("payment_type"),
        "gateway_transaction_status": response.get("transaction_status"),
        "gateway_status_code": response.get("status_code"),
        "gateway_status_message": response.get("status_message"),
        "gateway_actions": response.get("actions"),
        "payment_status_internal": PaymentSubStatus.CHARGE_PENDING_USER_ACTION.value,
    }

    va_numbers = response.get("va_numbers") or []
    if response.get("payment_type") == "bank_transfer" and va_numbers:
        fields["virtual_account_number"] = va_numbers[0].get("va_number")
        fields["bank"] = va_numbers[0].get("bank")
    elif response.get("permata_va_number"):
        fields["virtual_account_number"] = response["permata_va_number"]
        fields["bank"] = "permata"

    # Merge only what the gateway reported; status lookups carry no actions
    return {key: value for key, value in fields.items() if value is not None}


# ============================================================================
# Charge creation
# ============================================================================

async def create_charge(
    db: AsyncSession,
    gateway: PaymentGateway,
    request: ChargeRequest
) -> ChargeResult:
    """
    Create (or reuse) the gateway charge for an order.

    Args:
        db: Database session
        gateway: Payment gateway
        request: Validated charge request

    Returns:
        ChargeResult with the gateway response

    Raises:
        TotalMismatchError: Client totals inconsistent (nothing written), or line
            items inconsistent (order marked failed)
        InvalidInputError: Claimed promo not valid
        UnsupportedPaymentTypeError: Payment type not offered (order marked failed)
        GatewayError: Gateway rejected or failed the call (order marked failed)
    """
    logger.info(
        f"Charge requested: order={request.order_id}, user={request.user_id}, "
        f"gross={request.gross_amount}, promo={request.applied_promo_code}, discount={request.discount}"
    )

    verify_total(request)
    if settings.verify_promo_on_charge:
        await verify_promo_discount(db, request)

    await upsert_pending_order(db, request)

    try:
        try:
            item_details = build_item_details(request)
        except TotalMismatchError as e:
            await mark_order_failed(
                db, request.user_id, request.order_id,
                e.message,
                PaymentSubStatus.ITEM_DETAILS_MISMATCH.value
            )
            raise

        method = resolve_payment_method(request.payment_type)
        if method is None:
            logger.error(f"Unsupported payment type {request.payment_type!r} for order {request.order_id}")
            await mark_order_failed(
                db, request.user_id, request.order_id,
                f"Payment method '{request.payment_type}' is not supported.",
                PaymentSubStatus.PAYMENT_TYPE_UNSUPPORTED.value
            )
            raise UnsupportedPaymentTypeError(request.payment_type)

        charge_params = {
            "transaction_details": {
                "order_id": request.order_id,
                "gross_amount": round_to_unit(request.gross_amount),
            },
            "item_details": item_details,
            "customer_details": request.customer_details,
            **method,
        }

        response = await gateway.get_status(request.order_id)
        reused = response is not None
        if reused:
            logger.info(
                f"Reusing existing gateway transaction {response.get('transaction_id')} "
                f"for order {request.order_id}"
            )
        else:
            logger.info(
                f"Charging gateway for order {request.order_id}: "
                f"type={charge_params['payment_type']}, gross={charge_params['transaction_details']['gross_amount']}"
            )
            response = await gateway.charge(charge_params)
            logger.info(
                f"Charge created for order {request.order_id}, status={response.get('transaction_status')}"
            )

        gateway_response = dict(response)
        fields = gateway_result_fields(response)
        progress_fields = {}
        if reused:
            if response.get("transaction_status") != "pending":
                # Notifications own the sub-status once the payment moved on
                fields.pop("payment_status_internal")
        else:
            # A notification may have landed while the charge call was in flight
            progress_fields = {
                name: fields.pop(name)
                for name in ("payment_status_internal", "gateway_transaction_status")
                if name in fields
            }

        if (
            settings.fetch_gopay_qr_string
            and response.get("payment_type") == "gopay"
            and response.get("actions")
        ):
            qr_string = await fetch_qr_string(gateway, response, request.order_id)
            if qr_string:
                fields["qris_data_string"] = qr_string
                gateway_response["qris_data_string"] = qr_string

        await record_charge_result(db, request.user_id, request.order_id, fields, progress_fields)
        logger.info(f"Order {request.order_id} updated with gateway charge details")

    except (UnsupportedPaymentTypeError, TotalMismatchError):
        # Already marked failed with its own reason
        raise
    except Exception as e:
        await _mark_charge_failed(db, request, e)
        raise

    return ChargeResult(
        message="Transaction created successfully.",
        order_id=request.order_id,
        payment_type=response.get("payment_type"),
        gateway_response=gateway_response
    )


async def _mark_charge_failed(db: AsyncSession, request: ChargeRequest, error: Exception) -> None:
    """Best-effort failure marking; never masks the original error."""
    logger.error(f"Charge failed for order {request.order_id}: {error}", exc_info=error)
    limit = settings.error_details_max_length
    try:
        await db.rollback()
        await mark_order_failed(
            db, request.user_id, request.order_id,
            f"Charge API Error: {str(error)[:limit]}",
            PaymentSubStatus.CHARGE_API_FAILED.value
        )
    except Exception as db_error:
        logger.error(f"Could not mark order {request.order_id} failed: {db_error}")
