"""
Payment Gateway Service

Narrow interface the checkout core codes against, plus the Midtrans Core API
binding. The concrete gateway is chosen by PAYMENT_GATEWAY.
"""
import logging
from abc import ABC, abstractmethod
from typing import Dict, Any, Optional
from urllib.parse import quote

import httpx

from ..config import settings
from ..exceptions import GatewayError, ConfigurationError

logger = logging.getLogger(__name__)


class PaymentGateway(ABC):
    """Operations the checkout core needs from a payment gateway."""

    @abstractmethod
    async def charge(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Create a charge. Raises GatewayError on rejection."""

    @abstractmethod
    async def get_status(self, order_id: str) -> Optional[Dict[str, Any]]:
        """Transaction status for an order id, or None if none exists."""

    @abstractmethod
    async def fetch_qr_string(self, url: str) -> Optional[str]:
        """Fetch the raw QRIS payload behind a generate-qr-code action URL."""

    async def close(self) -> None:
        """Release transport resources."""


def _reported_status(body: Dict[str, Any]) -> Optional[int]:
    """Midtrans reports its own status_code inside 200 OK bodies."""
    try:
        return int(body.get("status_code"))
    except (TypeError, ValueError):
        return None


class MidtransGateway(PaymentGateway):
    """
    Midtrans Core API over httpx.

    Every call is authenticated with HTTP Basic auth, server key as username
    and an empty password.
    """

    SANDBOX_BASE_URL = "https://api.sandbox.midtrans.com"
    PRODUCTION_BASE_URL = "https://api.midtrans.com"

    # Status lookups of expired transactions report 407; not a failed call
    NON_ERROR_STATUS_CODES = frozenset({407})

    def __init__(
        self,
        server_key: str,
        is_production: bool = False,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        if not server_key:
            raise ConfigurationError("MIDTRANS_SERVER_KEY is not set.")

        self.base_url = self.PRODUCTION_BASE_URL if is_production else self.SANDBOX_BASE_URL
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            auth=httpx.BasicAuth(server_key, ""),
            headers={"Accept": "application/json", "Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )
        logger.info(f"Midtrans gateway initialized (production={is_production})")

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.HTTPError as e:
            raise GatewayError(f"Midtrans request failed: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = {"raw_response": response.text}
        if not isinstance(body, dict):
            body = {"raw_response": body}

        reported = _reported_status(body)
        failed_http = response.status_code >= 400
        failed_body = (
            reported is not None
            and reported >= 400
            and reported not in self.NON_ERROR_STATUS_CODES
        )
        if failed_http or failed_body:
            raise GatewayError(
                body.get("status_message") or f"Midtrans returned HTTP {response.status_code}",
                status_code=reported if failed_body else response.status_code,
                response=body
            )
        return body

    async def charge(self, params: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/v2/charge", params)

    async def get_status(self, order_id: str) -> Optional[Dict[str, Any]]:
        try:
            return await self._request("GET", f"/v2/{quote(order_id, safe='')}/status")
        except GatewayError as e:
            if e.status_code == 404:
                return None
            raise

    async def fetch_qr_string(self, url: str) -> Optional[str]:
        response = await self._client.get(url)
        response.raise_for_status()
        return response.json().get("qr_string")

    async def close(self) -> None:
        await self._client.aclose()


# ============================================================================
# Gateway selection
# ============================================================================

_payment_gateway: Optional[PaymentGateway] = None


def create_payment_gateway() -> PaymentGateway:
    """Build the gateway configured by PAYMENT_GATEWAY."""
    if settings.payment_gateway == "mock":
        from ..mocks.payment_gateway import MockMidtransGateway
        return MockMidtransGateway(server_key=settings.midtrans_server_key)

    return MidtransGateway(
        server_key=settings.midtrans_server_key,
        is_production=settings.midtrans_is_production,
        timeout=settings.gateway_timeout_seconds,
    )


def get_payment_gateway() -> PaymentGateway:
    """
    Get or create the global payment gateway instance.

    Used as a FastAPI dependency.
    """
    global _payment_gateway
    if _payment_gateway is None:
        _payment_gateway = create_payment_gateway()
    return _payment_gateway


async def close_payment_gateway() -> None:
    """Close the global gateway, if one was created."""
    global _payment_gateway
    if _payment_gateway is not None:
        await _payment_gateway.close()
        _payment_gateway = None
