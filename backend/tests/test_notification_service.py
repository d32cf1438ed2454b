"""
Tests for gateway notification reconciliation
"""
from datetime import datetime

import pytest

from checkout_backend.exceptions import ConfigurationError, UnauthenticatedError
from checkout_backend.models.orders import ChargeRequest
from checkout_backend.services import notification_service
from checkout_backend.services.charge_service import create_charge
from checkout_backend.services.notification_service import reconcile_notification, parse_transaction_time
from checkout_backend.services.order_service import get_order, get_notification_history, update_order
from checkout_backend.services.signature_service import sign_notification


@pytest.fixture
async def charged_order(db, gateway, charge_body):
    """A pending BCA VA order with a gateway transaction."""
    await create_charge(db, gateway, ChargeRequest.model_validate(charge_body()))
    return await get_order(db, "user_demo_001", "ORDER-1001")


class TestReconcileNotification:
    """Test verification, mapping and persistence"""

    async def test_settlement(self, db, gateway, charged_order):
        """Test settlement moves the order to processing"""
        payload = gateway.build_notification("ORDER-1001", "settlement")

        outcome = await reconcile_notification(db, payload, gateway.server_key)

        assert outcome.result == "updated"
        assert outcome.previous_status == "pending"
        assert outcome.status == "processing"
        order = await get_order(db, "user_demo_001", "ORDER-1001")
        assert order.status == "processing"
        assert order.payment_status_internal == "paid_settled"
        assert order.gateway_transaction_status == "settlement"
        assert order.gateway_fraud_status == "accept"
        assert order.payment_method == "bank_transfer"
        assert order.gateway_last_transaction_time is not None

    async def test_raw_payload_archived(self, db, gateway, charged_order):
        """Test every applied notification is appended to the history"""
        first = gateway.build_notification("ORDER-1001", "pending", status_code="201")
        second = gateway.build_notification("ORDER-1001", "settlement")

        await reconcile_notification(db, first, gateway.server_key)
        await reconcile_notification(db, second, gateway.server_key)

        history = await get_notification_history(db, charged_order.id)
        assert [entry["transaction_status"] for entry in history] == ["pending", "settlement"]
        assert history[1] == second

    async def test_tampered_amount_rejected(self, db, gateway, charged_order):
        """Test gross_amount changed after signing"""
        payload = gateway.build_notification("ORDER-1001", "settlement")
        payload["gross_amount"] = "1.00"

        with pytest.raises(UnauthenticatedError) as exc:
            await reconcile_notification(db, payload, gateway.server_key)

        assert exc.value.status_code == 403
        order = await get_order(db, "user_demo_001", "ORDER-1001")
        assert order.status == "pending"
        assert order.gateway_transaction_status == "pending"
        assert await get_notification_history(db, charged_order.id) == []

    async def test_wrong_signature_rejected(self, db, gateway, charged_order):
        """Test signature computed with another key"""
        payload = gateway.build_notification("ORDER-1001", "settlement")
        with pytest.raises(UnauthenticatedError):
            await reconcile_notification(db, payload, "SB-Mid-server-other")

    async def test_non_ascii_signature_rejected(self, db, gateway, charged_order):
        """Test signature_key that is not a hex digest"""
        payload = gateway.build_notification("ORDER-1001", "settlement")
        payload["signature_key"] = "é" * 128

        with pytest.raises(UnauthenticatedError):
            await reconcile_notification(db, payload, gateway.server_key)

        order = await get_order(db, "user_demo_001", "ORDER-1001")
        assert order.status == "pending"

    async def test_missing_server_key(self, db, gateway, charged_order):
        """Test server key not configured"""
        payload = gateway.build_notification("ORDER-1001", "settlement")
        with pytest.raises(ConfigurationError):
            await reconcile_notification(db, payload, "")

    async def test_unknown_order_acknowledged(self, db, gateway):
        """Test notification for an order this backend never saved"""
        payload = sign_notification({
            "order_id": "ORDER-UNKNOWN",
            "status_code": "200",
            "gross_amount": "5000.00",
            "transaction_status": "settlement",
        }, gateway.server_key)

        outcome = await reconcile_notification(db, payload, gateway.server_key)

        assert outcome.result == "order_not_found"
        assert outcome.order_id == "ORDER-UNKNOWN"

    async def test_late_expire_keeps_processing(self, db, gateway, charged_order):
        """Test expire delivered after settlement"""
        await reconcile_notification(db, gateway.build_notification("ORDER-1001", "settlement"), gateway.server_key)
        await reconcile_notification(
            db, gateway.build_notification("ORDER-1001", "expire", status_code="407"), gateway.server_key
        )

        order = await get_order(db, "user_demo_001", "ORDER-1001")
        assert order.status == "processing"
        assert order.payment_status_internal == "expired_payment"

    async def test_late_pending_keeps_processing(self, db, gateway, charged_order):
        """Test pending delivered after capture"""
        await reconcile_notification(db, gateway.build_notification("ORDER-1001", "capture"), gateway.server_key)
        await reconcile_notification(
            db, gateway.build_notification("ORDER-1001", "pending", status_code="201"), gateway.server_key
        )

        order = await get_order(db, "user_demo_001", "ORDER-1001")
        assert order.status == "processing"

    async def test_expire_cancels_unpaid_order(self, db, gateway, charged_order):
        """Test expire for an order never paid"""
        outcome = await reconcile_notification(
            db, gateway.build_notification("ORDER-1001", "expire", status_code="407"), gateway.server_key
        )
        assert outcome.status == "cancelled"
        assert outcome.payment_status_internal == "expired_payment"

    async def test_pending_reopens_failed_order(self, db, gateway, charged_order):
        """Test pending notification for an order marked failed"""
        await update_order(db, "user_demo_001", "ORDER-1001", {"status": "failed"})

        outcome = await reconcile_notification(
            db, gateway.build_notification("ORDER-1001", "pending", status_code="201"), gateway.server_key
        )

        assert outcome.status == "pending"
        assert outcome.payment_status_internal == "pending_payment_completion"

    async def test_fraud_challenge(self, db, gateway, charged_order):
        """Test capture flagged by fraud detection"""
        outcome = await reconcile_notification(
            db, gateway.build_notification("ORDER-1001", "capture", fraud_status="challenge"), gateway.server_key
        )
        assert outcome.status == "pending"
        assert outcome.payment_status_internal == "payment_challenged_by_fds"

    async def test_status_change_underneath_is_retried(self, db, gateway, charged_order, monkeypatch):
        """Test optimistic update losing a race once"""
        real_apply = notification_service.apply_notification_update
        calls = []

        async def racing_apply(db, order, expected_status, fields, payload):
            calls.append(expected_status)
            if len(calls) == 1:
                # Another delivery settles the order first
                await update_order(db, "user_demo_001", "ORDER-1001", {
                    "status": "processing",
                    "payment_status_internal": "paid_settled",
                })
            return await real_apply(db, order, expected_status, fields, payload)

        monkeypatch.setattr(notification_service, "apply_notification_update", racing_apply)

        outcome = await reconcile_notification(
            db, gateway.build_notification("ORDER-1001", "expire", status_code="407"), gateway.server_key
        )

        assert calls == ["pending", "processing"]
        assert outcome.result == "updated"
        order = await get_order(db, "user_demo_001", "ORDER-1001")
        assert order.status == "processing"
        assert len(await get_notification_history(db, charged_order.id)) == 1

    async def test_internal_error_acknowledged(self, db, gateway, charged_order, monkeypatch):
        """Test failure after verification is logged and swallowed"""
        async def broken_apply(*args, **kwargs):
            raise RuntimeError("database is locked")

        monkeypatch.setattr(notification_service, "apply_notification_update", broken_apply)

        outcome = await reconcile_notification(
            db, gateway.build_notification("ORDER-1001", "settlement"), gateway.server_key
        )

        assert outcome.result == "error"
        assert outcome.order_id == "ORDER-1001"
        order = await get_order(db, "user_demo_001", "ORDER-1001")
        assert order.status == "pending"

    async def test_unknown_transaction_status(self, db, gateway, charged_order):
        """Test status the mapping does not know"""
        outcome = await reconcile_notification(
            db, gateway.build_notification("ORDER-1001", "refund"), gateway.server_key
        )

        assert outcome.result == "updated"
        order = await get_order(db, "user_demo_001", "ORDER-1001")
        assert order.status == "pending"
        assert order.payment_status_internal == "charge_api_success_pending_user_action"
        assert order.gateway_transaction_status == "refund"


class TestParseTransactionTime:
    """Test gateway timestamp parsing"""

    def test_gateway_local_time_converted_to_utc(self):
        """Test WIB timestamp"""
        assert parse_transaction_time("2026-10-19 10:15:02") == datetime(2026, 10, 19, 3, 15, 2)

    def test_explicit_offset(self):
        """Test timestamp carrying its own offset"""
        assert parse_transaction_time("2026-10-19T10:15:02+00:00") == datetime(2026, 10, 19, 10, 15, 2)

    @pytest.mark.parametrize("value", [None, "", "yesterday"])
    def test_unparseable(self, value):
        """Test missing or malformed timestamps"""
        assert parse_transaction_time(value) is None
