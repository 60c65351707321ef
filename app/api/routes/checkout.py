"""
Checkout API: start an attempt, complete it from the gateway callback, or abandon it.
The attempt travels between requests as a signed checkout token.
"""
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from app.api.deps import get_checkout_orchestrator
from app.core.config import settings
from app.schemas.checkout import (
    CheckoutAbandonRequest,
    CheckoutCompleteRequest,
    CheckoutOut,
    CheckoutStartRequest,
)
from app.services.auth.identity import Identity, get_current_identity, get_optional_identity
from app.services.checkout.orchestrator import CheckoutAttempt, CheckoutOrchestrator
from app.services.checkout.states import CheckoutState


router = APIRouter(prefix="/checkout", tags=["checkout"])

STATE_STATUS = {
    CheckoutState.AUTH_REQUIRED: status.HTTP_401_UNAUTHORIZED,
    CheckoutState.GATEWAY_UI_OPEN: status.HTTP_200_OK,
    CheckoutState.ORDER_CREATION_FAILED: status.HTTP_502_BAD_GATEWAY,
    CheckoutState.GATEWAY_ABANDONED: status.HTTP_200_OK,
    CheckoutState.ENTITLED: status.HTTP_200_OK,
    CheckoutState.VERIFICATION_FAILED: status.HTTP_400_BAD_REQUEST,
    CheckoutState.RECONCILIATION_PENDING: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def _respond(orchestrator: CheckoutOrchestrator, attempt: CheckoutAttempt) -> JSONResponse:
    body = CheckoutOut(**orchestrator.as_dict(attempt))
    if attempt.state == CheckoutState.GATEWAY_UI_OPEN:
        body.keyId = settings.gateway_key_id
        body.merchantName = settings.gateway_merchant_name
        body.checkoutToken = orchestrator.issue_token(attempt)
        body.callbackUrl = f"{settings.public_base_url.rstrip('/')}/checkout/complete"
    return JSONResponse(
        status_code=STATE_STATUS.get(attempt.state, status.HTTP_200_OK),
        content=body.model_dump(),
    )


@router.post("/start", response_model=CheckoutOut)
def start_checkout(
    body: CheckoutStartRequest,
    identity: Identity | None = Depends(get_optional_identity),
    orchestrator: CheckoutOrchestrator = Depends(get_checkout_orchestrator),
) -> JSONResponse:
    """
    Resolve the price and create the gateway order.
    401 (auth_required) without identity, 502 when the order cannot be created.
    """
    attempt = orchestrator.start(identity.user_id if identity else None, body.scope, body.module_title)
    return _respond(orchestrator, attempt)


@router.post("/complete", response_model=CheckoutOut)
def complete_checkout(
    body: CheckoutCompleteRequest,
    identity: Identity = Depends(get_current_identity),
    orchestrator: CheckoutOrchestrator = Depends(get_checkout_orchestrator),
) -> JSONResponse:
    """Gateway callback: verify the signature, then grant. 400 on mismatch, 503 when the grant is deferred."""
    order_id = body.order_id if isinstance(body.order_id, str) else None
    attempt = orchestrator.restore(body.checkout_token, identity.user_id, order_id)
    attempt = orchestrator.complete(attempt, body.order_id, body.payment_id, body.signature)
    return _respond(orchestrator, attempt)


@router.post("/abandon", response_model=CheckoutOut)
def abandon_checkout(
    body: CheckoutAbandonRequest,
    identity: Identity = Depends(get_current_identity),
    orchestrator: CheckoutOrchestrator = Depends(get_checkout_orchestrator),
) -> JSONResponse:
    """Buyer closed the hosted UI. No entitlement change."""
    attempt = orchestrator.restore(body.checkout_token, identity.user_id)
    return _respond(orchestrator, orchestrator.abandon(attempt))
