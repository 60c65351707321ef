"""
Unit tests for decide_access: pure logic, no store.
"""
import unittest

from app.paywall.access import decide_access, has_access
from app.paywall.models import AccessContext, Tier


class TestDecideAccess(unittest.TestCase):
    """Free tier, global pass and per-module purchase rules."""

    def test_free_tier_always_allowed(self):
        ctx = AccessContext(tier=Tier.FREE, module_key="sql_basics")
        decision = decide_access(ctx)
        self.assertTrue(decision.allowed)
        self.assertEqual(decision.reason, "free")

    def test_paid_tier_locked_without_entitlement(self):
        ctx = AccessContext(user_id="u1", tier=Tier.PAID, module_key="sql_basics")
        decision = decide_access(ctx)
        self.assertFalse(decision.allowed)
        self.assertEqual(decision.reason, "locked")

    def test_module_purchase_opens_that_module_only(self):
        modules = {"sql_basics": True}
        own = AccessContext(user_id="u1", tier=Tier.PAID, module_key="sql_basics", purchased_modules=modules)
        other = AccessContext(user_id="u1", tier=Tier.PAID, module_key="graphs", purchased_modules=modules)
        self.assertEqual(decide_access(own).reason, "module")
        self.assertFalse(has_access(other))

    def test_global_access_opens_every_module(self):
        for key in ("sql_basics", "graphs", "general", "c%2B%2B"):
            ctx = AccessContext(user_id="u1", tier=Tier.PAID, module_key=key, global_access=True)
            decision = decide_access(ctx)
            self.assertTrue(decision.allowed)
            self.assertEqual(decision.reason, "global")

    def test_legacy_paid_flag_counts_as_global(self):
        ctx = AccessContext(user_id="u1", tier=Tier.PAID, module_key="graphs", is_paid=True)
        self.assertTrue(has_access(ctx))

    def test_only_literal_true_grants(self):
        """Truthy non-boolean values in the map are not entitlements."""
        ctx = AccessContext(
            user_id="u1",
            tier=Tier.PAID,
            module_key="graphs",
            purchased_modules={"graphs": False},
        )
        self.assertFalse(has_access(ctx))

    def test_anonymous_paid_locked(self):
        ctx = AccessContext(tier=Tier.PAID, module_key="graphs")
        self.assertFalse(has_access(ctx))
