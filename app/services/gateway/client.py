"""
Payment gateway (Razorpay Orders API) client using httpx sync client.
Only the calls the checkout needs; the hosted checkout UI talks to the gateway directly.
"""
import time
import logging
from typing import Any

import httpx

from app.core.config import GatewayConfig
from app.services.errors import GatewayUnavailable, OrderCreationFailed
from app.utils.metrics import (
    gateway_requests_total,
    gateway_request_duration_seconds,
)


logger = logging.getLogger(__name__)


def _error_message(resp: httpx.Response) -> str:
    """Gateway error description if the body carries one, else the HTTP reason."""
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("description"):
            return str(error["description"])
        if body.get("message"):
            return str(body["message"])
    return f"{resp.status_code} {resp.reason_phrase}".strip()


class GatewayClient:
    """
    Sync gateway client. Credentials come from the injected GatewayConfig,
    every request carries the configured finite timeout.
    """

    def __init__(self, config: GatewayConfig, transport: httpx.BaseTransport | None = None) -> None:
        self._config = config
        self._transport = transport
        self._client: httpx.Client | None = None

    @property
    def client(self) -> httpx.Client:
        """Lazy initialization of httpx client."""
        if self._client is None:
            self._client = httpx.Client(
                base_url=self._config.api_base,
                auth=(self._config.key_id, self._config.key_secret.get_secret_value()),
                timeout=self._config.timeout_seconds,
                transport=self._transport,
            )
        return self._client

    def _record_request(self, method: str, status: str, duration: float) -> None:
        gateway_requests_total.labels(method=method, status=status).inc()
        gateway_request_duration_seconds.labels(method=method).observe(duration)

    def _api_call(self, method: str, path: str, data: dict[str, Any]) -> dict[str, Any]:
        """
        POST to the gateway.
        Raises GatewayUnavailable on transport errors, timeouts, 429 and 5xx (retriable),
        OrderCreationFailed on other non-2xx responses (not retriable).
        """
        start = time.time()
        try:
            resp = self.client.post(path, json=data)
        except httpx.TimeoutException as e:
            self._record_request(method, "timeout", time.time() - start)
            raise GatewayUnavailable("Payment gateway timed out", {"error": type(e).__name__}) from e
        except httpx.TransportError as e:
            self._record_request(method, "transport_error", time.time() - start)
            raise GatewayUnavailable("Payment gateway unreachable", {"error": type(e).__name__}) from e

        duration = time.time() - start
        if resp.status_code == 429 or resp.status_code >= 500:
            self._record_request(method, str(resp.status_code), duration)
            raise GatewayUnavailable(_error_message(resp), {"http_status": resp.status_code})
        if resp.status_code >= 400:
            self._record_request(method, str(resp.status_code), duration)
            logger.warning(
                "gateway_request_rejected",
                extra={"status_code": resp.status_code, "path": path},
            )
            raise OrderCreationFailed(_error_message(resp), {"http_status": resp.status_code})

        self._record_request(method, "success", duration)
        # 2xx: the order may already exist, so a bad body is final, not retried
        try:
            body = resp.json()
        except ValueError as e:
            logger.error("gateway_response_malformed", extra={"status_code": resp.status_code, "path": path})
            raise OrderCreationFailed(
                "Payment gateway returned a malformed response",
                {"http_status": resp.status_code},
            ) from e
        if not isinstance(body, dict):
            logger.error("gateway_response_malformed", extra={"status_code": resp.status_code, "path": path})
            raise OrderCreationFailed(
                "Payment gateway returned a malformed response",
                {"http_status": resp.status_code},
            )
        return body

    def create_order(
        self,
        amount_minor: int,
        currency: str,
        receipt: str,
        notes: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """Create an order; returns the gateway's order entity ({"id", "amount", "currency", ...})."""
        payload: dict[str, Any] = {
            "amount": amount_minor,
            "currency": currency,
            "receipt": receipt,
        }
        if notes:
            payload["notes"] = notes
        return self._api_call("createOrder", "/orders", payload)

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
