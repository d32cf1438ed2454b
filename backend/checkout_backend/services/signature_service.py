"""
Signature Service for Gateway Notifications

Midtrans signs every HTTP notification with
SHA512(order_id + status_code + gross_amount + server_key), hex encoded.
This module is the single place that formula lives.
"""
import hmac
import hashlib
from typing import Dict, Any, Optional


def _field(payload: Dict[str, Any], name: str) -> str:
    """Signed fields are concatenated as sent; absent fields contribute nothing."""
    value = payload.get(name)
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def compute_notification_signature(
    order_id: str,
    status_code: str,
    gross_amount: str,
    server_key: str
) -> str:
    """
    Compute the expected signature_key of a notification.

    Args:
        order_id: Merchant order identifier
        status_code: Gateway status code, e.g. "200"
        gross_amount: Amount exactly as sent, e.g. "90000.00"
        server_key: Merchant server key

    Returns:
        SHA512 hex digest
    """
    message = f"{order_id}{status_code}{gross_amount}{server_key}"
    return hashlib.sha512(message.encode("utf-8")).hexdigest()


def signature_for_payload(payload: Dict[str, Any], server_key: str) -> str:
    """Expected signature_key for a raw notification payload."""
    return compute_notification_signature(
        _field(payload, "order_id"),
        _field(payload, "status_code"),
        _field(payload, "gross_amount"),
        server_key
    )


def verify_notification_signature(payload: Dict[str, Any], server_key: str) -> bool:
    """
    Verify a raw notification payload using constant-time comparison.

    Returns:
        True if signature_key matches, False otherwise (including when absent
        or not ASCII)
    """
    received: Optional[str] = payload.get("signature_key")
    if not isinstance(received, str) or not received:
        return False

    expected = signature_for_payload(payload, server_key)
    # compare_digest only accepts ASCII str, bytes work for any input
    return hmac.compare_digest(
        expected.encode("ascii"),
        received.encode("utf-8", "surrogatepass")
    )


def sign_notification(payload: Dict[str, Any], server_key: str) -> Dict[str, Any]:
    """Return a copy of payload with a valid signature_key (mock gateway, tests)."""
    signed = dict(payload)
    signed["signature_key"] = signature_for_payload(payload, server_key)
    return signed
