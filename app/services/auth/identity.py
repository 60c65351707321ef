"""
Request identity.

Buyers: bearer JWT issued by the Identity Provider; `sub` is the stable user id.
Admin API: shared key in the X-Admin-Key header.
"""
import hmac
import logging

import jwt
from fastapi import Header, HTTPException, Request, status
from pydantic import BaseModel

from app.core.config import settings

logger = logging.getLogger("auth")


class Identity(BaseModel):
    user_id: str
    email: str | None = None
    display_name: str | None = None

    model_config = {"frozen": True}


def get_client_ip(request: Request) -> str:
    """Client IP (supports X-Forwarded-For from proxy)."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded and settings.app_env == "production":
        trusted = settings.trusted_proxy_ips_set
        if trusted and request.client and request.client.host in trusted:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "127.0.0.1"


def decode_identity_token(token: str) -> Identity:
    """
    Verify the IdP token and extract the identity.
    Raises HTTPException 401 on an invalid, expired or subject-less token.
    """
    options = {"verify_signature": True, "verify_exp": True, "verify_aud": bool(settings.identity_jwt_audience)}
    try:
        payload = jwt.decode(
            token,
            settings.identity_jwt_secret.get_secret_value(),
            algorithms=[settings.identity_jwt_algorithm],
            audience=settings.identity_jwt_audience,
            options=options,
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except jwt.InvalidTokenError as e:
        logger.info("identity_token_invalid", extra={"error": type(e).__name__})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    user_id = payload.get("sub")
    if not isinstance(user_id, str) or not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    return Identity(
        user_id=user_id,
        email=payload.get("email"),
        display_name=payload.get("name"),
    )


def get_optional_identity(authorization: str | None = Header(None)) -> Identity | None:
    """None when no bearer token is sent; 401 when a token is sent but invalid."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return decode_identity_token(token.strip())


def get_current_identity(authorization: str | None = Header(None)) -> Identity:
    identity = get_optional_identity(authorization)
    if identity is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return identity


def require_admin_key(request: Request, x_admin_key: str | None = Header(None)) -> str:
    """403 unless the header matches the configured admin key. Returns an actor id for the audit log."""
    expected = settings.admin_api_key
    if not expected or not x_admin_key or not hmac.compare_digest(x_admin_key.encode(), expected.encode()):
        logger.warning(
            "admin_key_rejected",
            extra={"client_ip": get_client_ip(request), "path": request.url.path},
        )
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return f"admin-key@{get_client_ip(request)}"
