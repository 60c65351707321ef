"""
Paywall primitives shared by pricing, entitlement and content lookups (internal library).
Key normalization and the access decision are pure; no I/O happens here.
"""
from app.paywall.access import decide_access, has_access
from app.paywall.keys import (
    DEFAULT_MODULE_TITLE,
    GLOBAL_PRICING_KEY,
    module_key,
    normalize_module_title,
)
from app.paywall.models import (
    AccessContext,
    AccessDecision,
    Scope,
    Tier,
)

__all__ = [
    "AccessContext",
    "AccessDecision",
    "DEFAULT_MODULE_TITLE",
    "GLOBAL_PRICING_KEY",
    "Scope",
    "Tier",
    "decide_access",
    "has_access",
    "module_key",
    "normalize_module_title",
]
