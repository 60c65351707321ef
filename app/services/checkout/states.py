"""
Checkout attempt states and the allowed transitions between them.

    auth_required -> idle -> price_resolved -> order_created -> gateway_ui_open
    gateway_ui_open -> callback_received -> verifying -> entitled | verification_failed
                                                    \\-> reconciliation_pending
    price_resolved -> order_creation_failed
    gateway_ui_open -> gateway_abandoned
"""
from enum import Enum


class CheckoutState(str, Enum):
    AUTH_REQUIRED = "auth_required"
    IDLE = "idle"
    PRICE_RESOLVED = "price_resolved"
    ORDER_CREATED = "order_created"
    GATEWAY_UI_OPEN = "gateway_ui_open"
    CALLBACK_RECEIVED = "callback_received"
    VERIFYING = "verifying"
    ENTITLED = "entitled"
    VERIFICATION_FAILED = "verification_failed"
    ORDER_CREATION_FAILED = "order_creation_failed"
    GATEWAY_ABANDONED = "gateway_abandoned"
    RECONCILIATION_PENDING = "reconciliation_pending"


TRANSITIONS: dict[CheckoutState, frozenset[CheckoutState]] = {
    CheckoutState.AUTH_REQUIRED: frozenset({CheckoutState.IDLE}),
    CheckoutState.IDLE: frozenset({CheckoutState.PRICE_RESOLVED}),
    CheckoutState.PRICE_RESOLVED: frozenset(
        {CheckoutState.ORDER_CREATED, CheckoutState.ORDER_CREATION_FAILED}
    ),
    CheckoutState.ORDER_CREATED: frozenset({CheckoutState.GATEWAY_UI_OPEN}),
    CheckoutState.GATEWAY_UI_OPEN: frozenset(
        {CheckoutState.CALLBACK_RECEIVED, CheckoutState.GATEWAY_ABANDONED}
    ),
    CheckoutState.CALLBACK_RECEIVED: frozenset({CheckoutState.VERIFYING}),
    CheckoutState.VERIFYING: frozenset(
        {
            CheckoutState.ENTITLED,
            CheckoutState.VERIFICATION_FAILED,
            CheckoutState.RECONCILIATION_PENDING,
        }
    ),
}

TERMINAL_STATES = frozenset(
    {
        CheckoutState.ENTITLED,
        CheckoutState.VERIFICATION_FAILED,
        CheckoutState.ORDER_CREATION_FAILED,
        CheckoutState.GATEWAY_ABANDONED,
        CheckoutState.RECONCILIATION_PENDING,
    }
)


def can_transition(current: CheckoutState, target: CheckoutState) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def is_terminal(state: CheckoutState) -> bool:
    return state in TERMINAL_STATES
