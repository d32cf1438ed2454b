"""
Pydantic Order Models

Charge request submitted by the mobile app and the result returned to it.
All monetary values are in rupiah; gateway line-item prices are whole units.
"""
from datetime import datetime
from typing import Optional, List, Dict, Any, Union
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

Number = Union[int, float]


class ItemDetail(BaseModel):
    """
    Gateway line item as sent by the app (products, shipping, tax).

    Extra keys (brand, category, merchant_name, ...) are passed through to
    the gateway untouched.
    """
    id: Optional[str] = None
    price: Number
    quantity: int = Field(gt=0)
    name: str

    model_config = {"strict": True, "extra": "allow", "allow_inf_nan": False}


class ChargeRequest(BaseModel):
    """
    Body of POST /charge-transaction.

    grossAmount is what the client claims the order costs; it is only trusted
    after it has been recomputed from the breakdown.
    """
    user_id: str = Field(min_length=1)
    order_id: str = Field(min_length=1)
    gross_amount: Number = Field(gt=0)
    payment_type: str = Field(min_length=1)
    item_details: List[ItemDetail] = Field(min_length=1)
    customer_details: Dict[str, Any]

    product_subtotal: Number = Field(ge=0)
    shipping_cost: Number = Field(ge=0)
    tax_amount: Number = Field(ge=0)
    discount_applied: Optional[Number] = Field(default=None, ge=0)
    applied_promo_code: Optional[str] = None

    full_address_details: Optional[Dict[str, Any]] = None
    items_from_app: List[Dict[str, Any]] = Field(default_factory=list)
    delivery_date: Optional[datetime] = Field(default=None, strict=False)
    initial_payment_method: Optional[str] = None

    model_config = {
        "strict": True,
        "extra": "ignore",
        "alias_generator": to_camel,
        "populate_by_name": True,
        "allow_inf_nan": False,
        "json_schema_extra": {
            "example": {
                "userId": "user_demo_001",
                "orderId": "ORDER-1730000000",
                "grossAmount": 90000,
                "paymentType": "bca_va",
                "itemDetails": [
                    {"id": "SKU-1", "price": 80000, "quantity": 1, "name": "Kemeja Batik"},
                    {"id": "SHIPPING", "price": 10000, "quantity": 1, "name": "Ongkir"},
                    {"id": "SKU-2", "price": 10000, "quantity": 1, "name": "Sarung Tangan"}
                ],
                "customerDetails": {"first_name": "Sari", "email": "sari@example.com"},
                "productSubtotal": 90000,
                "shippingCost": 10000,
                "taxAmount": 0,
                "discountApplied": 10000
            }
        }
    }

    @property
    def discount(self) -> float:
        """Claimed discount, 0 when absent."""
        return self.discount_applied or 0


class ChargeResult(BaseModel):
    """Successful /charge-transaction response."""
    message: str
    order_id: str
    payment_type: Optional[str] = None
    gateway_response: Dict[str, Any]

    model_config = {"alias_generator": to_camel, "populate_by_name": True}
