"""
DTO paywall: Scope, Tier, AccessContext (input of decide_access), AccessDecision.
"""
from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class Scope(str, Enum):
    """Entitlement granularity: one module or every module (global pass)."""

    MODULE = "module"
    GLOBAL = "global"


class Tier(str, Enum):
    """Question tier as stored in the content store."""

    FREE = "free"
    PAID = "paid"


# ----- Input for decide_access (one contract instead of sprawling signatures) -----


class AccessContext(BaseModel):
    """Entitlement facts of one user plus the content being opened."""

    user_id: str | None = None
    tier: Tier = Tier.FREE
    module_key: str
    global_access: bool = False
    # Legacy alias for global_access, still set by older admin overrides.
    is_paid: bool = False
    purchased_modules: dict[str, bool] = Field(default_factory=dict)

    model_config = {"frozen": True}


# ----- Access decision (pure logic, no I/O) -----


class AccessDecision(BaseModel):
    """Result of decide_access."""

    allowed: bool = Field(..., description="True = the content can be shown")
    reason: str = Field(
        ...,
        description="free / global / module / locked",
    )

    model_config = {"frozen": True}
