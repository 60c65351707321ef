from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from app.api.deps import get_signature_verifier
from app.schemas.payments import PaymentVerifyOut, PaymentVerifyRequest
from app.services.errors import SignatureInvalid, ValidationError
from app.services.payments.signature import SignatureVerifier


router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/verify", response_model=PaymentVerifyOut)
def verify_payment(
    body: PaymentVerifyRequest,
    verifier: SignatureVerifier = Depends(get_signature_verifier),
):
    """Verify a gateway callback signature. Grants nothing by itself."""
    try:
        if not verifier.verify(body.order_id, body.payment_id, body.signature):
            raise SignatureInvalid("Payment verification failed")
    except (ValidationError, SignatureInvalid) as e:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "message": e.message},
        )
    return PaymentVerifyOut(success=True)
