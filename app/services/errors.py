"""
Error taxonomy for checkout and entitlement.

ValidationError          malformed request, immediate, never retried
GatewayUnavailable       network / 5xx during order creation, retried with bounded backoff
OrderCreationFailed      final order failure surfaced to the caller (gateway message kept)
SignatureInvalid         verification failed, fatal for the attempt, never grants
EntitlementWriteFailed   store unavailable after a valid signature, retried then reconciled
"""
from typing import Any


class EntitlementError(Exception):
    """Base class; detail holds structured fields for logging and API responses."""

    def __init__(self, message: str, detail: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class ValidationError(EntitlementError):
    pass


class GatewayUnavailable(EntitlementError):
    pass


class OrderCreationFailed(EntitlementError):
    pass


class SignatureInvalid(EntitlementError):
    pass


class EntitlementWriteFailed(EntitlementError):
    pass


class InvalidTransition(EntitlementError):
    """Checkout event not allowed in the attempt's current state."""


class CheckoutTokenInvalid(EntitlementError):
    """Checkout token was tampered with, expired, or belongs to another user/order."""
