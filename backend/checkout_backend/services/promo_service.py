"""
Promo Service

Validates promo codes against a cart subtotal and computes the discount.
Read-only: usage counters are checked here but never incremented.
"""
import logging
import math
from datetime import datetime
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.models import PromoCodeModel, utc_now
from ..exceptions import InvalidInputError
from ..models.promos import PromoVerdict, PromoDetails
from .amounts import round_currency

logger = logging.getLogger(__name__)

DEFAULT_SUCCESS_MESSAGE = "Promo code applied!"
DEFAULT_DESCRIPTION = "Discount applied"


def normalize_code(code: str) -> str:
    """Promo codes are stored trimmed and uppercased."""
    return code.strip().upper()


def _rejected(reason: str, message: str) -> PromoVerdict:
    return PromoVerdict(is_valid=False, reason=reason, message=message)


def evaluate_promo(
    promo: PromoCodeModel,
    cart_subtotal: float,
    now: datetime
) -> PromoVerdict:
    """
    Apply eligibility rules and compute the discount for a stored promo.

    Args:
        promo: Stored promo code
        cart_subtotal: Non-negative cart subtotal
        now: Naive UTC reference time

    Returns:
        PromoVerdict; the discount never exceeds cart_subtotal
    """
    if not promo.is_active:
        return _rejected("inactive", "Promo code is no longer active.")
    if promo.valid_from is not None and now < promo.valid_from:
        return _rejected("not_yet_valid", "Promo code is not valid yet.")
    if promo.valid_until is not None and now > promo.valid_until:
        return _rejected("expired", "Promo code has expired.")

    if promo.min_purchase_amount is not None and cart_subtotal < promo.min_purchase_amount:
        minimum = promo.min_purchase_amount
        if float(minimum).is_integer():
            minimum = int(minimum)
        return _rejected(
            "min_purchase_not_met",
            f"Minimum purchase of Rp{minimum} required for this code."
        )

    if (
        promo.total_usage_limit is not None
        and promo.current_total_usage is not None
        and promo.current_total_usage >= promo.total_usage_limit
    ):
        return _rejected("usage_limit_reached", "Promo code usage limit has been reached.")

    if promo.discount_type == "percentage":
        discount = cart_subtotal * (promo.discount_value / 100.0)
    elif promo.discount_type == "fixed_amount":
        discount = promo.discount_value
    else:
        logger.warning(f"Unknown discount type {promo.discount_type!r} for promo {promo.code}")
        return _rejected("unknown_discount_type", "Promo discount type is not recognized.")

    discount = min(discount, cart_subtotal)

    return PromoVerdict(
        is_valid=True,
        message=promo.description or DEFAULT_SUCCESS_MESSAGE,
        promo_details=PromoDetails(
            code=promo.code,
            description=promo.description or DEFAULT_DESCRIPTION,
            discount_type=promo.discount_type,
            discount_value=promo.discount_value,
            calculated_discount_amount=round_currency(discount)
        )
    )


async def validate_promo(
    db: AsyncSession,
    code: str,
    user_id: Optional[str],
    cart_subtotal: float,
    now: Optional[datetime] = None
) -> PromoVerdict:
    """
    Validate a promo code for a cart.

    Args:
        db: Database session
        code: Code as typed by the user
        user_id: Requesting user (logged only, no per-user limits)
        cart_subtotal: Cart subtotal before discount
        now: Reference time, defaults to current UTC time

    Returns:
        PromoVerdict (not found is a negative verdict, not an error)

    Raises:
        InvalidInputError: Blank code or negative / non-numeric subtotal
    """
    if not isinstance(code, str) or not code.strip():
        raise InvalidInputError("Promo code is required.")
    if (
        isinstance(cart_subtotal, bool)
        or not isinstance(cart_subtotal, (int, float))
        or not math.isfinite(cart_subtotal)
        or cart_subtotal < 0
    ):
        raise InvalidInputError("Cart subtotal is invalid.")

    normalized = normalize_code(code)
    logger.info(f"Validating promo {normalized} for user {user_id}, subtotal={cart_subtotal}")

    promo = await db.get(PromoCodeModel, normalized)
    if promo is None:
        logger.info(f"Promo code {normalized} not found")
        return _rejected("not_found", "Promo code not found.")

    verdict = evaluate_promo(promo, cart_subtotal, now or utc_now())

    if verdict.is_valid:
        logger.info(f"Promo {normalized} applied, discount={verdict.discount_amount}")
    else:
        logger.info(f"Promo {normalized} rejected: {verdict.reason}")

    return verdict
