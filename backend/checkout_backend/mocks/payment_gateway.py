"""
Mock Midtrans Gateway

In-memory stand-in for the Midtrans Core API, used in demo mode and tests.
Returns Midtrans-shaped responses and can emit correctly signed
notifications for the transactions it created.

Mock Behavior:
- Order ids starting with DENY- are denied at charge time
- Charging an order id twice is rejected like Midtrans does (HTTP 406)
"""
import hashlib
import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, List, Optional

from ..exceptions import GatewayError
from ..services.payment_gateway import PaymentGateway
from ..services.signature_service import sign_notification

DENIED_ORDER_PREFIX = "DENY-"
MOCK_API_URL = "https://api.sandbox.midtrans.com"

# Midtrans timestamps are Western Indonesia Time
GATEWAY_TIMEZONE = timezone(timedelta(hours=7))


class MockMidtransGateway(PaymentGateway):
    """Records charges per order id; never leaves the process."""

    def __init__(self, server_key: str = "mock-server-key"):
        self.server_key = server_key
        self.transactions: Dict[str, Dict[str, Any]] = {}
        self.charge_requests: List[Dict[str, Any]] = []
        self.status_requests: List[str] = []

    @property
    def charge_count(self) -> int:
        return len(self.charge_requests)

    async def charge(self, params: Dict[str, Any]) -> Dict[str, Any]:
        self.charge_requests.append(params)
        order_id = params["transaction_details"]["order_id"]
        gross_amount = params["transaction_details"]["gross_amount"]
        payment_type = params.get("payment_type")

        if order_id in self.transactions:
            raise GatewayError(
                "Transaction already exists",
                status_code=406,
                response={"status_code": "406", "status_message": "The request could not be completed due to a conflict with the current state of the target resource, please try again"}
            )

        transaction_id = str(uuid.uuid4())
        transaction = {
            "status_code": "201",
            "status_message": f"Success, {payment_type} transaction is created",
            "transaction_id": transaction_id,
            "order_id": order_id,
            "merchant_id": "M000000",
            "gross_amount": f"{gross_amount}.00",
            "currency": "IDR",
            "payment_type": payment_type,
            "transaction_time": datetime.now(GATEWAY_TIMEZONE).strftime("%Y-%m-%d %H:%M:%S"),
            "transaction_status": "pending",
            "fraud_status": "accept",
        }

        if order_id.startswith(DENIED_ORDER_PREFIX):
            transaction.update({
                "status_code": "202",
                "status_message": "Deny by Bank [MOCK] with code [05] and message [Do not honour]",
                "transaction_status": "deny",
                "fraud_status": "deny",
            })
        elif payment_type == "gopay":
            transaction["actions"] = _gopay_actions(transaction_id)
        elif payment_type == "bank_transfer":
            bank = params.get("bank_transfer", {}).get("bank", "bca")
            transaction["va_numbers"] = [{"bank": bank, "va_number": _va_number(order_id)}]

        self.transactions[order_id] = transaction
        return dict(transaction)

    async def get_status(self, order_id: str) -> Optional[Dict[str, Any]]:
        self.status_requests.append(order_id)
        transaction = self.transactions.get(order_id)
        if transaction is None:
            return None
        status = dict(transaction)
        status["status_code"] = "200" if status["transaction_status"] == "settlement" else "201"
        status["status_message"] = "Success, transaction is found"
        return status

    async def fetch_qr_string(self, url: str) -> Optional[str]:
        for transaction in self.transactions.values():
            for action in transaction.get("actions", []):
                if action["url"] == url:
                    digest = hashlib.sha256(transaction["transaction_id"].encode()).hexdigest()[:24]
                    return f"00020101021226620014COM.GO-JEK.WWW0118{digest}5204599953033605802ID6304MOCK"
        return None

    def set_transaction_status(
        self,
        order_id: str,
        transaction_status: str,
        fraud_status: str = "accept"
    ) -> None:
        """Advance a recorded transaction (e.g. the customer paid)."""
        transaction = self.transactions[order_id]
        transaction["transaction_status"] = transaction_status
        transaction["fraud_status"] = fraud_status

    def build_notification(
        self,
        order_id: str,
        transaction_status: str,
        fraud_status: str = "accept",
        status_code: str = "200"
    ) -> Dict[str, Any]:
        """
        Build a signed HTTP notification for a recorded transaction.

        Returns:
            Notification payload as Midtrans would POST it
        """
        transaction = self.transactions[order_id]
        payload = {
            "transaction_time": transaction["transaction_time"],
            "transaction_status": transaction_status,
            "transaction_id": transaction["transaction_id"],
            "status_message": "midtrans payment notification",
            "status_code": status_code,
            "payment_type": transaction["payment_type"],
            "order_id": order_id,
            "merchant_id": transaction["merchant_id"],
            "gross_amount": transaction["gross_amount"],
            "fraud_status": fraud_status,
            "currency": transaction["currency"],
        }
        if transaction.get("va_numbers"):
            payload["va_numbers"] = transaction["va_numbers"]
        return sign_notification(payload, self.server_key)


def _gopay_actions(transaction_id: str) -> List[Dict[str, str]]:
    return [
        {
            "name": "generate-qr-code",
            "method": "GET",
            "url": f"{MOCK_API_URL}/v2/gopay/{transaction_id}/qr-code",
        },
        {
            "name": "deeplink-redirect",
            "method": "GET",
            "url": f"https://simulator.sandbox.midtrans.com/gopay/partner/app/payment-pin?id={transaction_id}",
        },
        {
            "name": "get-status",
            "method": "GET",
            "url": f"{MOCK_API_URL}/v2/{transaction_id}/status",
        },
        {
            "name": "cancel",
            "method": "POST",
            "url": f"{MOCK_API_URL}/v2/{transaction_id}/cancel",
        },
    ]


def _va_number(order_id: str) -> str:
    """Deterministic 11-digit virtual account number per order."""
    return str(int(hashlib.sha256(order_id.encode()).hexdigest()[:12], 16))[:11].rjust(11, "0")
