"""
Tests for promo code validation
"""
from datetime import timedelta

import pytest

from checkout_backend.db.models import utc_now
from checkout_backend.exceptions import InvalidInputError
from checkout_backend.services.promo_service import validate_promo


class TestValidatePromo:
    """Test eligibility rules and discount computation"""

    async def test_percentage_discount(self, db):
        """Test SAVE10 on a 100000 cart"""
        verdict = await validate_promo(db, "SAVE10", "user_demo_001", 100000)

        assert verdict.is_valid
        assert verdict.reason is None
        assert verdict.promo_details.code == "SAVE10"
        assert verdict.promo_details.discount_type == "percentage"
        assert verdict.promo_details.calculated_discount_amount == 10000.0

    async def test_minimum_purchase_not_met(self, db):
        """Test SAVE10 on a 40000 cart"""
        verdict = await validate_promo(db, "SAVE10", "user_demo_001", 40000)

        assert not verdict.is_valid
        assert verdict.reason == "min_purchase_not_met"
        assert "Rp50000" in verdict.message
        assert verdict.promo_details is None

    async def test_code_is_normalized(self, db):
        """Test lowercase code with surrounding whitespace"""
        verdict = await validate_promo(db, "  save10 ", None, 100000)
        assert verdict.is_valid
        assert verdict.promo_details.code == "SAVE10"

    async def test_unknown_code(self, db):
        """Test code that does not exist"""
        verdict = await validate_promo(db, "NOPE", "user_demo_001", 100000)
        assert not verdict.is_valid
        assert verdict.reason == "not_found"

    async def test_fixed_discount_clamped_to_subtotal(self, db):
        """Test HEMAT5K (Rp5000 off) on a 3000 cart"""
        verdict = await validate_promo(db, "HEMAT5K", None, 3000)
        assert verdict.is_valid
        assert verdict.promo_details.calculated_discount_amount == 3000.0

    async def test_percentage_rounded_to_cents(self, db, add_promo):
        """Test 12.5% of 333.33"""
        await add_promo(code="ODD", discount_type="percentage", discount_value=12.5)
        verdict = await validate_promo(db, "ODD", None, 333.33)
        assert verdict.promo_details.calculated_discount_amount == 41.67

    async def test_inactive(self, db, add_promo):
        """Test deactivated code"""
        await add_promo(code="OLD", is_active=False, discount_type="fixed_amount", discount_value=1000)
        verdict = await validate_promo(db, "OLD", None, 100000)
        assert verdict.reason == "inactive"

    async def test_not_yet_valid(self, db, add_promo):
        """Test code whose validity window has not started"""
        await add_promo(
            code="SOON",
            valid_from=utc_now() + timedelta(days=1),
            discount_type="fixed_amount",
            discount_value=1000
        )
        verdict = await validate_promo(db, "SOON", None, 100000)
        assert verdict.reason == "not_yet_valid"

    async def test_expired(self, db, add_promo):
        """Test code whose validity window has ended"""
        await add_promo(
            code="GONE",
            valid_until=utc_now() - timedelta(days=1),
            discount_type="fixed_amount",
            discount_value=1000
        )
        verdict = await validate_promo(db, "GONE", None, 100000)
        assert verdict.reason == "expired"

    async def test_within_validity_window(self, db, add_promo):
        """Test code inside its validity window"""
        now = utc_now()
        await add_promo(
            code="NOW",
            valid_from=now - timedelta(days=1),
            valid_until=now + timedelta(days=1),
            discount_type="fixed_amount",
            discount_value=1000
        )
        verdict = await validate_promo(db, "NOW", None, 100000)
        assert verdict.is_valid

    async def test_usage_limit_reached(self, db, add_promo):
        """Test code used up"""
        await add_promo(
            code="LIMITED",
            total_usage_limit=10,
            current_total_usage=10,
            discount_type="fixed_amount",
            discount_value=1000
        )
        verdict = await validate_promo(db, "LIMITED", None, 100000)
        assert verdict.reason == "usage_limit_reached"

    async def test_unknown_discount_type(self, db, add_promo):
        """Test discount type the backend does not know"""
        await add_promo(code="BOGO", discount_type="buy_one_get_one", discount_value=1)
        verdict = await validate_promo(db, "BOGO", None, 100000)
        assert not verdict.is_valid
        assert verdict.reason == "unknown_discount_type"

    async def test_default_message(self, db, add_promo):
        """Test promo without description"""
        await add_promo(code="PLAIN", discount_type="fixed_amount", discount_value=1000)
        verdict = await validate_promo(db, "PLAIN", None, 100000)
        assert verdict.message == "Promo code applied!"
        assert verdict.promo_details.description == "Discount applied"

    async def test_blank_code(self, db):
        """Test empty promo code"""
        with pytest.raises(InvalidInputError):
            await validate_promo(db, "   ", None, 100000)

    @pytest.mark.parametrize("subtotal", [-1, "100000", None, True, float("inf"), float("nan")])
    async def test_invalid_subtotal(self, db, subtotal):
        """Test negative, non-numeric or non-finite subtotal"""
        with pytest.raises(InvalidInputError):
            await validate_promo(db, "SAVE10", None, subtotal)
