"""
SignatureVerifier — confirms a completed-payment callback was signed by the gateway.

expected = hex(HMAC-SHA256(key_secret, f"{order_id}|{payment_id}"))

Runs only in the API process (the secret never leaves the server). Stateless apart
from the injected secret, so one instance is shared by all requests.
"""
import hashlib
import hmac
import logging

from app.core.config import GatewayConfig
from app.services.errors import ValidationError
from app.utils.metrics import signature_verifications_total

logger = logging.getLogger(__name__)


class SignatureVerifier:
    def __init__(self, config: GatewayConfig) -> None:
        self._secret = config.key_secret.get_secret_value().encode("utf-8")

    def expected_signature(self, order_id: str, payment_id: str) -> str:
        body = f"{order_id}|{payment_id}".encode("utf-8")
        return hmac.new(self._secret, body, hashlib.sha256).hexdigest()

    def verify(self, order_id: str | None, payment_id: str | None, signature: str | None) -> bool:
        """
        Strict accept/reject.
        Missing fields raise ValidationError before any cryptography is done.
        """
        missing = [
            name
            for name, value in (("orderId", order_id), ("paymentId", payment_id), ("signature", signature))
            if not isinstance(value, str) or not value
        ]
        if missing:
            raise ValidationError("Missing payment details", {"missing": missing})

        expected = self.expected_signature(order_id, payment_id)
        ok = hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8"))
        signature_verifications_total.labels(result="accepted" if ok else "rejected").inc()
        if not ok:
            logger.warning(
                "payment_signature_rejected",
                extra={"order_id": order_id, "payment_id": payment_id},
            )
        return ok
