"""
Pydantic Notification Models

Midtrans HTTP notification payload (snake_case, as sent by the gateway).
"""
from typing import Optional, Literal
from pydantic import BaseModel


class GatewayNotification(BaseModel):
    """
    Asynchronous transaction status callback from the gateway.

    Only the fields the reconciler reads are declared; everything else the
    gateway sends is kept so the raw payload can be archived.
    """
    order_id: Optional[str] = None
    status_code: Optional[str] = None
    gross_amount: Optional[str] = None
    signature_key: Optional[str] = None
    transaction_id: Optional[str] = None
    transaction_status: Optional[str] = None
    fraud_status: Optional[str] = None
    payment_type: Optional[str] = None
    transaction_time: Optional[str] = None

    model_config = {
        "extra": "allow",
        "coerce_numbers_to_str": True,
        "json_schema_extra": {
            "example": {
                "transaction_time": "2026-10-19 10:15:02",
                "transaction_status": "settlement",
                "transaction_id": "9aed5972-5b6a-401e-894b-a32c91ed1a3a",
                "status_code": "200",
                "signature_key": "<sha512 hex>",
                "payment_type": "bank_transfer",
                "order_id": "ORDER-1730000000",
                "gross_amount": "90000.00",
                "fraud_status": "accept"
            }
        }
    }


class ReconcileOutcome(BaseModel):
    """What the reconciler did with a verified notification."""
    result: Literal["updated", "order_not_found", "error"]
    order_id: Optional[str] = None
    previous_status: Optional[str] = None
    status: Optional[str] = None
    payment_status_internal: Optional[str] = None
