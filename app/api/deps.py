"""
Dependency providers for the routes. Gateway-facing services are built once per
process from settings; tests swap them through app.dependency_overrides.
"""
from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from app.core.config import GatewayConfig, settings
from app.db.session import get_db
from app.services.checkout.orchestrator import CheckoutOrchestrator
from app.services.checkout.token import CheckoutTokenCodec
from app.services.circuit_breaker import GATEWAY_BREAKER, get_circuit_breaker
from app.services.entitlements.service import EntitlementService
from app.services.orders.service import OrderService
from app.services.payments.signature import SignatureVerifier
from app.services.pricing.service import PricingService


@lru_cache
def get_gateway_config() -> GatewayConfig:
    return GatewayConfig.from_settings(settings)


@lru_cache
def get_signature_verifier() -> SignatureVerifier:
    return SignatureVerifier(get_gateway_config())


@lru_cache
def get_order_service() -> OrderService:
    return OrderService(get_gateway_config(), breaker=get_circuit_breaker(GATEWAY_BREAKER))


@lru_cache
def get_checkout_token_codec() -> CheckoutTokenCodec:
    return CheckoutTokenCodec(
        settings.checkout_token_secret.get_secret_value(),
        max_age=settings.checkout_token_max_age,
    )


def get_checkout_orchestrator(
    db: Session = Depends(get_db),
    orders: OrderService = Depends(get_order_service),
    verifier: SignatureVerifier = Depends(get_signature_verifier),
    tokens: CheckoutTokenCodec = Depends(get_checkout_token_codec),
) -> CheckoutOrchestrator:
    return CheckoutOrchestrator(
        pricing=PricingService(db),
        orders=orders,
        verifier=verifier,
        entitlements=EntitlementService(db),
        tokens=tokens,
    )
