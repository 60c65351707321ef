"""
Paywall config — typed wrappers over app.core.config for compiled-in price defaults.
"""
from __future__ import annotations

from app.core.config import settings
from app.paywall.models import Scope


def get_default_module_price() -> int:
    return getattr(settings, "default_module_price", 499)


def get_default_global_price() -> int:
    return getattr(settings, "default_global_price", 1999)


def get_default_price(scope: Scope) -> int:
    if scope == Scope.GLOBAL:
        return get_default_global_price()
    return get_default_module_price()


def get_currency() -> str:
    return getattr(settings, "default_currency", "INR")
