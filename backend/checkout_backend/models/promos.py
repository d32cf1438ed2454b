"""
Pydantic Promo Models

Request and verdict shapes for /validate-promo. JSON fields are camelCase
to match the mobile app.
"""
from typing import Optional, Literal, Union
from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel

VerdictReason = Literal[
    "not_found",
    "inactive",
    "not_yet_valid",
    "expired",
    "min_purchase_not_met",
    "usage_limit_reached",
    "unknown_discount_type",
]


class PromoValidationRequest(BaseModel):
    """Body of POST /validate-promo."""
    promo_code: str
    user_id: Optional[str] = None
    cart_subtotal: Union[int, float] = Field(ge=0)

    @field_validator("promo_code")
    @classmethod
    def promo_code_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Promo code is required")
        return v

    model_config = {
        "strict": True,
        "extra": "ignore",
        "alias_generator": to_camel,
        "populate_by_name": True,
        "allow_inf_nan": False,
    }


class PromoDetails(BaseModel):
    """Applied promo summary returned with a positive verdict."""
    code: str
    description: str
    discount_type: str
    discount_value: float
    calculated_discount_amount: float

    model_config = {"alias_generator": to_camel, "populate_by_name": True}


class PromoVerdict(BaseModel):
    """
    Outcome of a promo validation.

    A negative verdict is a normal business result (HTTP 200); ``reason``
    tells the client why the code was rejected.
    """
    is_valid: bool
    message: str
    reason: Optional[VerdictReason] = None
    promo_details: Optional[PromoDetails] = None

    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "json_schema_extra": {
            "example": {
                "isValid": True,
                "message": "10% off orders from Rp50000",
                "promoDetails": {
                    "code": "SAVE10",
                    "description": "10% off orders from Rp50000",
                    "discountType": "percentage",
                    "discountValue": 10,
                    "calculatedDiscountAmount": 10000.0
                }
            }
        }
    }

    @property
    def discount_amount(self) -> float:
        """Calculated discount, 0 for negative verdicts."""
        return self.promo_details.calculated_discount_amount if self.promo_details else 0.0
