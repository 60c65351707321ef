"""
Module key normalization — the single function shared by pricing, entitlement and content lookups.

    "  SQL   Basics " -> "sql_basics"
    "" / None         -> "general"
    "C++ & Go"        -> "c%2B%2B_%26_go"
"""
from __future__ import annotations

import re
from urllib.parse import quote

DEFAULT_MODULE_TITLE = "General"
# Reserved price key for the global pass. Contains an upper-case letter, so it can
# never collide with a normalized (case-folded) module key.
GLOBAL_PRICING_KEY = "globalPricing"

_WHITESPACE_RUN = re.compile(r"\s+")


def normalize_module_title(title: str | None) -> str:
    """Trimmed display title; empty or missing titles map to the default module."""
    trimmed = (title or "").strip()
    return trimmed if trimmed else DEFAULT_MODULE_TITLE


def module_key(title: str | None) -> str:
    """Case-folded, whitespace-collapsed, percent-encoded key for a module title."""
    folded = normalize_module_title(title).casefold()
    joined = _WHITESPACE_RUN.sub("_", folded)
    return quote(joined, safe="")
