"""
Checkout Exception Hierarchy

Error codes shared by the promo, charge and notification endpoints.
Every error carries the HTTP status it is rendered with.
"""
from typing import Optional, Dict, Any, List


class CheckoutError(Exception):
    """
    Base exception for all checkout errors.

    Rendered by the application exception handler as
    {"error_code", "error", "details"} with ``status_code``.
    """

    status_code: int = 400

    def __init__(
        self,
        error_code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None
    ):
        self.error_code = error_code
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to API error response format."""
        return {
            "error_code": self.error_code,
            "error": self.message,
            "details": self.details
        }


class InvalidInputError(CheckoutError):
    """
    Request fields missing, malformed or inconsistent.

    Examples:
    - Empty promo code
    - Negative shipping cost
    - Claimed promo discount not granted by the promo rules
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("checkout:input:invalid", message, details, 400)

    @classmethod
    def from_errors(cls, errors: List[Dict[str, Any]]) -> "InvalidInputError":
        """
        Build from pydantic ``errors()`` output.

        The message names the first offending field; all fields are listed
        in details.
        """
        fields = [".".join(str(part) for part in error.get("loc", ()) if part != "body") for error in errors]
        if not errors:
            return cls("Invalid request.")
        first = errors[0]
        message = first.get("msg", "Invalid value")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        field = fields[0] or "request"
        return cls(f"Invalid {field}: {message}", {"fields": fields})


class TotalMismatchError(CheckoutError):
    """
    Client-supplied amount disagrees with the server-side computation.

    Examples:
    - grossAmount != subtotal - discount + shipping + tax
    - Sum of gateway line items != rounded grossAmount
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("checkout:total:mismatch", message, details, 400)


class UnsupportedPaymentTypeError(CheckoutError):
    """Payment type not offered by this backend (order already marked failed)."""

    def __init__(self, payment_type: str):
        super().__init__(
            "checkout:payment_type:unsupported",
            f"Payment method '{payment_type}' is not supported.",
            {"payment_type": payment_type},
            400
        )


class UnauthenticatedError(CheckoutError):
    """
    Notification signature verification failed.

    Example:
    - gross_amount tampered in transit
    - signature_key computed with another server key
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("checkout:notification:unauthenticated", message, details, 403)


class GatewayError(CheckoutError):
    """
    Payment gateway call failed.

    ``status_code`` is the gateway-reported status when it is a valid HTTP
    error status, otherwise 500. ``response`` holds the gateway body if any.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response: Optional[Dict[str, Any]] = None
    ):
        self.response = response
        http_status = status_code if status_code and 400 <= status_code < 600 else 500
        super().__init__(
            "checkout:gateway:error",
            message,
            {"gateway_response": response} if response else {},
            http_status
        )


class ConfigurationError(CheckoutError):
    """Required server configuration (e.g. MIDTRANS_SERVER_KEY) is missing."""

    def __init__(self, message: str):
        super().__init__("checkout:config:missing", message, None, 500)
