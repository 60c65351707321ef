"""
OrderService — asks the payment gateway to create an order for a major-unit amount.

Responsibilities:
- Amount validation before any network call
- Major -> minor unit conversion (callers always pass rupees)
- Receipt generation within the gateway's 40 character limit
- Bounded retry with jitter on GatewayUnavailable, behind a circuit breaker

Nothing is persisted: the gateway is the source of truth for the order.
"""
import logging
import math
import random
import time
from dataclasses import dataclass
from decimal import Decimal

import pybreaker

from app.core.config import GatewayConfig
from app.services.errors import GatewayUnavailable, OrderCreationFailed, ValidationError
from app.services.gateway.client import GatewayClient
from app.utils.currency import to_minor_units
from app.utils.metrics import orders_created_total, orders_failed_total

logger = logging.getLogger(__name__)

RECEIPT_MAX_LENGTH = 40
SUPPORTED_CURRENCIES = frozenset({"INR"})


@dataclass(frozen=True)
class Order:
    """Gateway order as returned to the checkout. amount is in minor units."""
    order_id: str
    amount: int
    currency: str
    receipt: str


def validate_amount(amount) -> Decimal:
    """Positive, finite, numeric (bool is not a number here)."""
    if amount is None or isinstance(amount, bool):
        raise ValidationError("Amount must be a positive number")
    if isinstance(amount, str):
        try:
            amount = float(amount)
        except ValueError:
            raise ValidationError("Amount must be a positive number") from None
    if not isinstance(amount, (int, float, Decimal)):
        raise ValidationError("Amount must be a positive number")
    if isinstance(amount, float) and not math.isfinite(amount):
        raise ValidationError("Amount must be a positive number")
    if isinstance(amount, Decimal) and not amount.is_finite():
        raise ValidationError("Amount must be a positive number")
    if amount <= 0:
        raise ValidationError("Amount must be a positive number")
    return Decimal(str(amount))


def build_receipt(receipt_seed: str | None = None) -> str:
    """
    r_<seed> or r_<ms timestamp>, truncated to the gateway limit.
    Collisions only cost liveness (the gateway may reject), never safety.
    """
    seed = (receipt_seed or "").strip() or str(int(time.time() * 1000))
    return f"r_{seed}"[:RECEIPT_MAX_LENGTH]


class OrderService:
    def __init__(
        self,
        config: GatewayConfig,
        client: GatewayClient | None = None,
        breaker: pybreaker.CircuitBreaker | None = None,
        sleep=time.sleep,
    ) -> None:
        self._config = config
        self._client = client or GatewayClient(config)
        self._breaker = breaker or pybreaker.CircuitBreaker()
        # Rejected requests (4xx) say nothing about gateway health
        if OrderCreationFailed not in self._breaker.excluded_exceptions:
            self._breaker.add_excluded_exception(OrderCreationFailed)
        self._sleep = sleep

    def create_order(
        self,
        amount,
        currency: str = "INR",
        receipt_seed: str | None = None,
        notes: dict[str, str] | None = None,
    ) -> Order:
        """
        Create a gateway order for `amount` major units.
        Raises ValidationError before any network call; OrderCreationFailed on gateway failure.
        """
        try:
            major = validate_amount(amount)
            currency = (currency or "INR").upper()
            if currency not in SUPPORTED_CURRENCIES:
                raise ValidationError(f"Unsupported currency: {currency}")
        except ValidationError:
            orders_failed_total.labels(reason="validation").inc()
            raise

        amount_minor = to_minor_units(major, currency)
        if amount_minor <= 0:
            orders_failed_total.labels(reason="validation").inc()
            raise ValidationError("Amount must be a positive number")
        receipt = build_receipt(receipt_seed)

        entity = self._call_with_retry(amount_minor, currency, receipt, notes)
        order_id = entity.get("id")
        if not order_id:
            orders_failed_total.labels(reason="malformed_response").inc()
            raise OrderCreationFailed("Payment gateway did not return an order id")

        order = Order(
            order_id=str(order_id),
            amount=int(entity.get("amount", amount_minor)),
            currency=str(entity.get("currency", currency)),
            receipt=str(entity.get("receipt", receipt)),
        )
        orders_created_total.labels(currency=order.currency).inc()
        logger.info(
            "order_created",
            extra={
                "order_id": order.order_id,
                "amount": order.amount,
                "currency": order.currency,
                "receipt": order.receipt,
            },
        )
        return order

    def _call_with_retry(
        self,
        amount_minor: int,
        currency: str,
        receipt: str,
        notes: dict[str, str] | None,
    ) -> dict:
        max_attempts = self._config.retry_max_attempts
        attempt = 0
        while True:
            attempt += 1
            try:
                return self._breaker.call(
                    self._client.create_order, amount_minor, currency, receipt, notes
                )
            except pybreaker.CircuitBreakerError as e:
                orders_failed_total.labels(reason="breaker_open").inc()
                logger.warning("order_gateway_breaker_open", extra={"attempt": attempt})
                raise OrderCreationFailed("Payment gateway is temporarily unavailable") from e
            except OrderCreationFailed as e:
                # 4xx from the gateway: request is wrong, retrying will not help
                orders_failed_total.labels(reason="gateway_client").inc()
                logger.warning(
                    "order_creation_rejected",
                    extra={"error": e.message, "attempt": attempt},
                )
                raise
            except GatewayUnavailable as e:
                logger.warning(
                    "order_gateway_unavailable",
                    extra={"error": e.message, "attempt": attempt},
                )
                if attempt >= max_attempts:
                    orders_failed_total.labels(reason="gateway_unavailable").inc()
                    raise OrderCreationFailed(e.message, e.detail) from e
                delay = self._config.retry_backoff_seconds * (2 ** (attempt - 1))
                delay += random.uniform(0, self._config.retry_backoff_seconds)
                self._sleep(delay)
