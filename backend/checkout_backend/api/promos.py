"""
Promo API Endpoints

Validates a promo code against the shopper's cart before checkout.
A rejected code is a normal 200 response with isValid=false; only a
malformed request is a 400.
"""
from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Dict, Any
import logging

from ..db.init_db import get_db
from ..exceptions import InvalidInputError
from ..models.promos import PromoValidationRequest
from ..services.promo_service import validate_promo

logger = logging.getLogger(__name__)

router = APIRouter()


def _invalid(message: str) -> JSONResponse:
    return JSONResponse(status_code=400, content={"isValid": False, "message": message})


@router.post("/validate-promo")
async def validate_promo_endpoint(
    body: Dict[str, Any] = Body(...),
    db: AsyncSession = Depends(get_db)
):
    """
    Validate a promo code for a cart subtotal.

    Request Body:
        {"promoCode": "SAVE10", "userId": "user_demo_001", "cartSubtotal": 100000}

    Returns:
        {"isValid": true, "message": ..., "promoDetails": {...}} or
        {"isValid": false, "message": ..., "reason": "expired"}

    Example:
        POST /validate-promo
    """
    try:
        request = PromoValidationRequest.model_validate(body)
        verdict = await validate_promo(db, request.promo_code, request.user_id, request.cart_subtotal)
    except ValidationError as e:
        error = InvalidInputError.from_errors(e.errors())
        logger.warning(f"Rejected promo request: {error.message}")
        return _invalid(error.message)
    except InvalidInputError as e:
        logger.warning(f"Rejected promo request: {e.message}")
        return _invalid(e.message)

    return verdict.model_dump(by_alias=True, exclude_none=True)
