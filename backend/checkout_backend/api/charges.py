"""
Charge API Endpoints

Creates the gateway charge for a checkout. Errors are CheckoutError
subclasses rendered by the application exception handler.
"""
from fastapi import APIRouter, Body, Depends
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Dict, Any
import logging

from ..db.init_db import get_db
from ..exceptions import InvalidInputError
from ..models.orders import ChargeRequest
from ..services.charge_service import create_charge
from ..services.payment_gateway import PaymentGateway, get_payment_gateway

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/charge-transaction")
async def charge_transaction_endpoint(
    body: Dict[str, Any] = Body(...),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway)
) -> Dict[str, Any]:
    """
    Create (or reuse) the gateway transaction for an order.

    Request Body:
        ChargeRequest (camelCase), see models/orders.py

    Returns:
        {"message", "orderId", "paymentType", "gatewayResponse"}

    Errors:
        400: Invalid input, total mismatch, unsupported payment type
        4xx/500: Gateway error (gateway-reported status when available)
    """
    try:
        request = ChargeRequest.model_validate(body)
    except ValidationError as e:
        raise InvalidInputError.from_errors(e.errors())

    result = await create_charge(db, gateway, request)
    return result.model_dump(by_alias=True)
