"""
CheckoutOrchestrator — drives one checkout attempt through its states.

Verification always precedes entitlement: the Entitlement Store is only called
after the Signature Verifier accepted the callback. Attempts hold no shared
state, so concurrent attempts (module and global, or the same module twice)
are independent. Between the start and the completion request an attempt lives
in the client as a signed checkout token.
"""
import logging
import uuid
from typing import Any

from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError

from app.paywall.config import get_currency, get_default_price
from app.paywall.keys import module_key, normalize_module_title
from app.paywall.models import Scope
from app.services.checkout.states import CheckoutState, can_transition, is_terminal
from app.services.checkout.token import CheckoutTokenCodec
from app.services.entitlements.service import EntitlementService
from app.services.errors import (
    CheckoutTokenInvalid,
    EntitlementWriteFailed,
    InvalidTransition,
    OrderCreationFailed,
    ValidationError,
)
from app.services.orders.service import OrderService
from app.services.payments.signature import SignatureVerifier
from app.services.pricing.service import PricingService
from app.utils.metrics import checkout_transitions_total

logger = logging.getLogger(__name__)

MISMATCH_MESSAGE = "Payment verification failed"
RECONCILIATION_MESSAGE = (
    "Your payment was received but access could not be activated yet. "
    "Please try again shortly or contact support."
)


class CheckoutAttempt(BaseModel):
    """One checkout attempt. amount is in major units, order_amount in minor units."""

    attempt_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    user_id: str | None = None
    scope: Scope
    module_title: str | None = None
    module_key: str | None = None
    state: CheckoutState = CheckoutState.IDLE
    amount: int | None = None
    order_id: str | None = None
    order_amount: int | None = None
    currency: str | None = None
    payment_id: str | None = None
    error: str | None = None
    history: list[CheckoutState] = Field(default_factory=list)

    @property
    def terminal(self) -> bool:
        return is_terminal(self.state)


class CheckoutOrchestrator:
    def __init__(
        self,
        pricing: PricingService,
        orders: OrderService,
        verifier: SignatureVerifier,
        entitlements: EntitlementService,
        tokens: CheckoutTokenCodec | None = None,
    ) -> None:
        self.pricing = pricing
        self.orders = orders
        self.verifier = verifier
        self.entitlements = entitlements
        self.tokens = tokens

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _transition(self, attempt: CheckoutAttempt, target: CheckoutState) -> None:
        current = attempt.state
        if is_terminal(current) or not can_transition(current, target):
            raise InvalidTransition(
                f"Cannot move checkout from {current.value} to {target.value}",
                {"state": current.value, "target": target.value},
            )
        attempt.history.append(current)
        attempt.state = target
        checkout_transitions_total.labels(state=target.value).inc()
        logger.info(
            "checkout_transition",
            extra={
                "attempt_id": attempt.attempt_id,
                "user_id": attempt.user_id,
                "scope": attempt.scope.value,
                "module_key": attempt.module_key,
                "order_id": attempt.order_id,
                "old_state": current.value,
                "new_state": target.value,
            },
        )

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def start(self, user_id: str | None, scope: Scope, module_title: str | None = None) -> CheckoutAttempt:
        """New attempt. Suspends in auth_required without identity, else runs up to gateway_ui_open."""
        attempt = CheckoutAttempt(
            scope=scope,
            module_title=normalize_module_title(module_title) if scope == Scope.MODULE else None,
            module_key=module_key(module_title) if scope == Scope.MODULE else None,
            state=CheckoutState.AUTH_REQUIRED if not user_id else CheckoutState.IDLE,
            user_id=user_id or None,
        )
        if not user_id:
            checkout_transitions_total.labels(state=attempt.state.value).inc()
            logger.info(
                "checkout_auth_required",
                extra={"attempt_id": attempt.attempt_id, "scope": scope.value, "module_key": attempt.module_key},
            )
            return attempt
        self._run(attempt)
        return attempt

    def resume(self, attempt: CheckoutAttempt, user_id: str) -> CheckoutAttempt:
        """Identity established: auth_required -> idle, then continue."""
        if not user_id:
            raise ValidationError("user_id is required")
        if attempt.state != CheckoutState.AUTH_REQUIRED:
            raise InvalidTransition(
                f"Cannot resume checkout in state {attempt.state.value}",
                {"state": attempt.state.value},
            )
        attempt.user_id = user_id
        self._transition(attempt, CheckoutState.IDLE)
        self._run(attempt)
        return attempt

    def _run(self, attempt: CheckoutAttempt) -> None:
        attempt.amount = self._resolve_price(attempt)
        attempt.currency = get_currency()
        self._transition(attempt, CheckoutState.PRICE_RESOLVED)

        notes = {"userId": attempt.user_id, "scope": attempt.scope.value}
        if attempt.module_key:
            notes["moduleKey"] = attempt.module_key
        try:
            order = self.orders.create_order(
                attempt.amount,
                currency=attempt.currency,
                receipt_seed=attempt.attempt_id,
                notes=notes,
            )
        except (OrderCreationFailed, ValidationError) as e:
            attempt.error = e.message
            self._transition(attempt, CheckoutState.ORDER_CREATION_FAILED)
            return

        attempt.order_id = order.order_id
        attempt.order_amount = order.amount
        attempt.currency = order.currency
        self._transition(attempt, CheckoutState.ORDER_CREATED)
        # Order handed to the hosted gateway UI
        self._transition(attempt, CheckoutState.GATEWAY_UI_OPEN)

    def _resolve_price(self, attempt: CheckoutAttempt) -> int | float:
        try:
            return self.pricing.resolve_price(attempt.scope, attempt.module_key)
        except SQLAlchemyError as e:
            self.pricing.db.rollback()
            logger.warning(
                "price_lookup_failed",
                extra={
                    "attempt_id": attempt.attempt_id,
                    "scope": attempt.scope.value,
                    "module_key": attempt.module_key,
                    "error": type(e).__name__,
                },
            )
            return get_default_price(attempt.scope)

    def abandon(self, attempt: CheckoutAttempt) -> CheckoutAttempt:
        """Buyer closed the hosted UI without paying. No entitlement change."""
        self._transition(attempt, CheckoutState.GATEWAY_ABANDONED)
        return attempt

    def complete(
        self,
        attempt: CheckoutAttempt,
        order_id: str | None,
        payment_id: str | None,
        signature: str | None,
    ) -> CheckoutAttempt:
        """
        Gateway callback: verify, then (only on success) grant.
        Ends in entitled, verification_failed or reconciliation_pending.
        """
        self._transition(attempt, CheckoutState.CALLBACK_RECEIVED)
        attempt.payment_id = payment_id if isinstance(payment_id, str) else None
        self._transition(attempt, CheckoutState.VERIFYING)

        try:
            verified = order_id == attempt.order_id and self.verifier.verify(order_id, payment_id, signature)
        except ValidationError as e:
            attempt.error = e.message
            self._transition(attempt, CheckoutState.VERIFICATION_FAILED)
            return attempt
        if not verified:
            attempt.error = MISMATCH_MESSAGE
            logger.warning(
                "checkout_verification_failed",
                extra={
                    "attempt_id": attempt.attempt_id,
                    "user_id": attempt.user_id,
                    "order_id": order_id,
                    "payment_id": attempt.payment_id,
                },
            )
            self._transition(attempt, CheckoutState.VERIFICATION_FAILED)
            return attempt

        try:
            self.entitlements.grant_with_retry(
                attempt.user_id,
                attempt.scope,
                attempt.module_key,
                order_id=attempt.order_id,
                payment_id=attempt.payment_id,
            )
        except EntitlementWriteFailed:
            attempt.error = RECONCILIATION_MESSAGE
            self._transition(attempt, CheckoutState.RECONCILIATION_PENDING)
            return attempt

        self._transition(attempt, CheckoutState.ENTITLED)
        return attempt

    # ------------------------------------------------------------------
    # Checkout token
    # ------------------------------------------------------------------

    def issue_token(self, attempt: CheckoutAttempt) -> str:
        if self.tokens is None:
            raise RuntimeError("Checkout token codec is not configured")
        if attempt.state != CheckoutState.GATEWAY_UI_OPEN:
            raise InvalidTransition(
                f"No checkout token for state {attempt.state.value}",
                {"state": attempt.state.value},
            )
        return self.tokens.dumps(
            {
                "attempt_id": attempt.attempt_id,
                "user_id": attempt.user_id,
                "scope": attempt.scope.value,
                "module_key": attempt.module_key,
                "order_id": attempt.order_id,
                "amount": attempt.order_amount,
                "currency": attempt.currency,
            }
        )

    def restore(self, token: str | None, user_id: str, order_id: str | None = None) -> CheckoutAttempt:
        """
        Rebuild an attempt waiting in gateway_ui_open from its token.
        The token must belong to the caller and, when given, to the callback's order.
        """
        if self.tokens is None:
            raise RuntimeError("Checkout token codec is not configured")
        data = self.tokens.loads(token)
        if data["user_id"] != user_id:
            logger.warning(
                "checkout_token_user_mismatch",
                extra={"user_id": user_id, "order_id": data.get("order_id")},
            )
            raise CheckoutTokenInvalid("Checkout token does not belong to this user")
        if order_id is not None and data["order_id"] != order_id:
            logger.warning(
                "checkout_token_order_mismatch",
                extra={"user_id": user_id, "order_id": order_id},
            )
            raise CheckoutTokenInvalid("Checkout token does not match this order")
        try:
            scope = Scope(data.get("scope"))
        except ValueError as e:
            raise CheckoutTokenInvalid("Checkout token is not valid") from e
        if scope == Scope.MODULE and not data.get("module_key"):
            raise CheckoutTokenInvalid("Checkout token is not valid")
        return CheckoutAttempt(
            attempt_id=data.get("attempt_id") or uuid.uuid4().hex,
            user_id=data["user_id"],
            scope=scope,
            module_key=data.get("module_key"),
            state=CheckoutState.GATEWAY_UI_OPEN,
            order_id=data["order_id"],
            order_amount=data.get("amount"),
            currency=data.get("currency"),
        )

    @staticmethod
    def as_dict(attempt: CheckoutAttempt) -> dict[str, Any]:
        return {
            "attemptId": attempt.attempt_id,
            "state": attempt.state.value,
            "scope": attempt.scope.value,
            "moduleKey": attempt.module_key,
            "orderId": attempt.order_id,
            "amount": attempt.order_amount,
            "currency": attempt.currency,
            "message": attempt.error,
        }
