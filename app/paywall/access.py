"""
Decision only: decide_access(ctx) -> AccessDecision.
Pure function, no I/O. Order of guardrails: free tier -> global pass -> module purchase.
"""
from __future__ import annotations

from app.paywall.models import AccessContext, AccessDecision, Tier


def decide_access(ctx: AccessContext) -> AccessDecision:
    """
    hasAccess(tier, module) = tier == free OR globalAccess OR purchasedModules[module] == true

    The legacy is_paid flag counts as a global pass.
    """
    if ctx.tier == Tier.FREE:
        return AccessDecision(allowed=True, reason="free")

    # Global pass covers every module regardless of purchased_modules
    if ctx.global_access or ctx.is_paid:
        return AccessDecision(allowed=True, reason="global")

    if ctx.purchased_modules.get(ctx.module_key) is True:
        return AccessDecision(allowed=True, reason="module")

    return AccessDecision(allowed=False, reason="locked")


def has_access(ctx: AccessContext) -> bool:
    return decide_access(ctx).allowed
