"""
Checkout token: signed, client-held serialization of a started checkout attempt.
Uses itsdangerous (same pattern as the admin session cookies) so the attempt
needs no server-side storage and cannot be edited by the client.
"""
from typing import Any

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from app.services.errors import CheckoutTokenInvalid

TOKEN_SALT = "checkout-attempt"
TOKEN_FIELDS = ("attempt_id", "user_id", "scope", "module_key", "order_id", "amount", "currency")


class CheckoutTokenCodec:
    def __init__(self, secret: str, max_age: int | None = None) -> None:
        self.serializer = URLSafeTimedSerializer(secret, salt=TOKEN_SALT)
        self.max_age = max_age

    def dumps(self, payload: dict[str, Any]) -> str:
        return self.serializer.dumps({k: payload.get(k) for k in TOKEN_FIELDS})

    def loads(self, token: str | None) -> dict[str, Any]:
        if not token:
            raise CheckoutTokenInvalid("Missing checkout token")
        try:
            data = self.serializer.loads(token, max_age=self.max_age)
        except SignatureExpired as e:
            raise CheckoutTokenInvalid("Checkout token expired") from e
        except BadSignature as e:
            raise CheckoutTokenInvalid("Checkout token is not valid") from e
        if not isinstance(data, dict) or not data.get("order_id") or not data.get("user_id"):
            raise CheckoutTokenInvalid("Checkout token is not valid")
        return data
