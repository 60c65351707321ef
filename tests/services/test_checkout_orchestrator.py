"""
Tests for CheckoutOrchestrator — state machine and end-to-end purchase scenarios
against the in-memory store and a fake gateway.
"""
import httpx
import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from app.models.user import User
from app.paywall.models import Scope, Tier
from app.services.checkout.orchestrator import CheckoutAttempt, CheckoutOrchestrator
from app.services.checkout.states import TERMINAL_STATES, TRANSITIONS, CheckoutState, can_transition
from app.services.entitlements.service import EntitlementService
from app.services.errors import CheckoutTokenInvalid, InvalidTransition, ValidationError
from app.services.gateway.client import GatewayClient
from app.services.orders.service import OrderService
from app.services.pricing.service import PricingService


@pytest.fixture
def reconciled():
    return []


@pytest.fixture
def entitlements(db, reconciled):
    return EntitlementService(db, sleep=lambda _: None, reconcile=lambda **kw: reconciled.append(kw))


@pytest.fixture
def orchestrator(db, order_service, verifier, entitlements, token_codec):
    return CheckoutOrchestrator(
        pricing=PricingService(db),
        orders=order_service,
        verifier=verifier,
        entitlements=entitlements,
        tokens=token_codec,
    )


def _user(db, user_id: str) -> User | None:
    db.expire_all()
    return db.query(User).filter(User.id == user_id).one_or_none()


def _pay(orchestrator, attempt, sign_payment, payment_id="pay_1", signature=None):
    signature = signature or sign_payment(attempt.order_id, payment_id)
    return orchestrator.complete(attempt, attempt.order_id, payment_id, signature)


class TestStateTable:
    def test_terminal_states_have_no_exits(self):
        for state in TERMINAL_STATES:
            assert state not in TRANSITIONS

    def test_entitlement_only_after_verifying(self):
        sources = [s for s, targets in TRANSITIONS.items() if CheckoutState.ENTITLED in targets]
        assert sources == [CheckoutState.VERIFYING]

    def test_order_failure_only_from_price_resolved(self):
        assert can_transition(CheckoutState.PRICE_RESOLVED, CheckoutState.ORDER_CREATION_FAILED)
        assert not can_transition(CheckoutState.IDLE, CheckoutState.ORDER_CREATION_FAILED)


class TestStart:
    def test_start_runs_to_gateway_ui(self, orchestrator, fake_gateway):
        attempt = orchestrator.start("u1", Scope.MODULE, "SQL Basics")
        assert attempt.state == CheckoutState.GATEWAY_UI_OPEN
        assert attempt.history == [
            CheckoutState.IDLE,
            CheckoutState.PRICE_RESOLVED,
            CheckoutState.ORDER_CREATED,
        ]
        assert attempt.module_key == "sql_basics"
        assert attempt.amount == 499
        assert attempt.order_amount == 49900
        assert attempt.order_id == "order_test1"
        body = fake_gateway.sent_bodies[0]
        assert body["notes"] == {"userId": "u1", "scope": "module", "moduleKey": "sql_basics"}
        assert body["receipt"] == f"r_{attempt.attempt_id}"

    def test_global_scope_uses_global_price(self, orchestrator, db):
        PricingService(db).set_price(Scope.GLOBAL, 1499)
        attempt = orchestrator.start("u1", Scope.GLOBAL)
        assert attempt.module_key is None
        assert attempt.order_amount == 149900

    def test_no_identity_suspends(self, orchestrator, fake_gateway):
        attempt = orchestrator.start(None, Scope.MODULE, "Graphs")
        assert attempt.state == CheckoutState.AUTH_REQUIRED
        assert fake_gateway.requests == []

    def test_resume_after_sign_in(self, orchestrator):
        attempt = orchestrator.start(None, Scope.MODULE, "Graphs")
        orchestrator.resume(attempt, "u1")
        assert attempt.user_id == "u1"
        assert attempt.state == CheckoutState.GATEWAY_UI_OPEN
        assert attempt.history[:2] == [CheckoutState.AUTH_REQUIRED, CheckoutState.IDLE]

    def test_resume_only_from_auth_required(self, orchestrator):
        attempt = orchestrator.start("u1", Scope.MODULE, "Graphs")
        with pytest.raises(InvalidTransition):
            orchestrator.resume(attempt, "u1")

    def test_order_failure_is_terminal(self, orchestrator, fake_gateway):
        fake_gateway.queue(httpx.Response(400, json={"error": {"description": "Invalid receipt"}}))
        attempt = orchestrator.start("u1", Scope.MODULE, "Graphs")
        assert attempt.state == CheckoutState.ORDER_CREATION_FAILED
        assert attempt.error == "Invalid receipt"
        assert attempt.terminal
        with pytest.raises(InvalidTransition):
            orchestrator.complete(attempt, "order_x", "pay_x", "sig")

    def test_pricing_store_failure_uses_default(self, orchestrator, monkeypatch):
        def store_down(*args, **kwargs):
            raise OperationalError("SELECT pricing", {}, Exception("unavailable"))

        monkeypatch.setattr(orchestrator.pricing, "resolve_price", store_down)
        attempt = orchestrator.start("u1", Scope.GLOBAL)
        assert attempt.state == CheckoutState.GATEWAY_UI_OPEN
        assert attempt.amount == 1999

    def test_breaker_storage_outage_does_not_block_checkout(
        self, db, gateway_config, fake_gateway, verifier, entitlements, redis_down_breaker
    ):
        client = GatewayClient(gateway_config, transport=httpx.MockTransport(fake_gateway))
        orchestrator = CheckoutOrchestrator(
            pricing=PricingService(db),
            orders=OrderService(gateway_config, client=client, breaker=redis_down_breaker, sleep=lambda _: None),
            verifier=verifier,
            entitlements=entitlements,
        )
        attempt = orchestrator.start("u1", Scope.MODULE, "Graphs")
        assert attempt.state == CheckoutState.GATEWAY_UI_OPEN
        assert attempt.order_id == "order_test1"

    def test_sub_unit_price_is_never_charged(self, orchestrator, db, fake_gateway):
        with pytest.raises(ValidationError):
            orchestrator.pricing.set_price(Scope.MODULE, 0.004, "Graphs")
        attempt = orchestrator.start("u1", Scope.MODULE, "Graphs")
        assert attempt.state == CheckoutState.GATEWAY_UI_OPEN
        assert attempt.amount == 499
        assert fake_gateway.sent_bodies[0]["amount"] == 49900


class TestAbandon:
    def test_abandon_changes_nothing(self, orchestrator, db):
        attempt = orchestrator.start("u1", Scope.MODULE, "Graphs")
        orchestrator.abandon(attempt)
        assert attempt.state == CheckoutState.GATEWAY_ABANDONED
        assert _user(db, "u1") is None

    def test_abandon_only_from_gateway_ui(self, orchestrator):
        attempt = orchestrator.start(None, Scope.MODULE, "Graphs")
        with pytest.raises(InvalidTransition):
            orchestrator.abandon(attempt)


class TestScenarios:
    def test_scenario_a_module_purchase_at_default_price(self, orchestrator, db, fake_gateway, sign_payment):
        attempt = orchestrator.start("u1", Scope.MODULE, "SQL Basics")
        assert fake_gateway.sent_bodies[0]["amount"] == 49900

        _pay(orchestrator, attempt, sign_payment)

        assert attempt.state == CheckoutState.ENTITLED
        user = _user(db, "u1")
        assert user.purchased_modules["sql_basics"] is True
        assert user.global_access is False

    def test_scenario_b_global_pass_opens_locked_modules(self, orchestrator, db, entitlements, sign_payment):
        assert not entitlements.has_access("u1", Tier.PAID, "graphs")
        attempt = orchestrator.start("u1", Scope.GLOBAL)
        _pay(orchestrator, attempt, sign_payment)

        assert attempt.state == CheckoutState.ENTITLED
        assert _user(db, "u1").global_access is True
        assert entitlements.has_access("u1", Tier.PAID, "graphs")
        assert entitlements.has_access("u1", Tier.PAID, "system_design")

    def test_scenario_c_tampered_signature(self, orchestrator, db, sign_payment):
        attempt = orchestrator.start("u1", Scope.MODULE, "SQL Basics")
        good = sign_payment(attempt.order_id, "pay_1")
        tampered = ("0" if good[0] != "0" else "1") + good[1:]

        _pay(orchestrator, attempt, sign_payment, signature=tampered)

        assert attempt.state == CheckoutState.VERIFICATION_FAILED
        assert attempt.error
        assert _user(db, "u1") is None

    def test_scenario_d_concurrent_attempts_same_module(self, engine, order_service, verifier, token_codec, sign_payment):
        Session = sessionmaker(bind=engine, autocommit=False, autoflush=False)
        first_db, second_db = Session(), Session()

        def checkout(session):
            return CheckoutOrchestrator(
                pricing=PricingService(session),
                orders=order_service,
                verifier=verifier,
                entitlements=EntitlementService(session, sleep=lambda _: None, reconcile=None),
                tokens=token_codec,
            )

        try:
            first_checkout, second_checkout = checkout(first_db), checkout(second_db)
            first = first_checkout.start("u1", Scope.MODULE, "Graphs")
            second = second_checkout.start("u1", Scope.MODULE, "graphs")
            assert first.order_id != second.order_id
            # both sessions have read state before either grant lands
            assert _user(first_db, "u1") is None
            assert _user(second_db, "u1") is None

            _pay(first_checkout, first, sign_payment, payment_id="pay_1")
            _pay(second_checkout, second, sign_payment, payment_id="pay_2")

            assert first.state == CheckoutState.ENTITLED
            assert second.state == CheckoutState.ENTITLED
            assert _user(first_db, "u1").purchased_modules == {"graphs": True}
            assert _user(second_db, "u1").purchased_modules == {"graphs": True}
        finally:
            first_db.close()
            second_db.close()

    def test_module_and_global_attempts_both_succeed(self, orchestrator, db, sign_payment):
        module_attempt = orchestrator.start("u1", Scope.MODULE, "Graphs")
        global_attempt = orchestrator.start("u1", Scope.GLOBAL)
        _pay(orchestrator, global_attempt, sign_payment, payment_id="pay_g")
        _pay(orchestrator, module_attempt, sign_payment, payment_id="pay_m")
        user = _user(db, "u1")
        assert user.global_access is True
        assert user.purchased_modules == {"graphs": True}


class TestComplete:
    def test_missing_fields_fail_verification(self, orchestrator, db):
        attempt = orchestrator.start("u1", Scope.MODULE, "Graphs")
        orchestrator.complete(attempt, attempt.order_id, None, None)
        assert attempt.state == CheckoutState.VERIFICATION_FAILED
        assert _user(db, "u1") is None

    def test_signature_for_other_order_rejected(self, orchestrator, db, sign_payment):
        attempt = orchestrator.start("u1", Scope.MODULE, "Graphs")
        orchestrator.complete(attempt, "order_other", "pay_1", sign_payment("order_other", "pay_1"))
        assert attempt.state == CheckoutState.VERIFICATION_FAILED
        assert _user(db, "u1") is None

    def test_store_down_after_verification(self, orchestrator, entitlements, reconciled, monkeypatch, sign_payment):
        def store_down(*args, **kwargs):
            raise OperationalError("UPDATE users", {}, Exception("unavailable"))

        monkeypatch.setattr(entitlements, "_apply_module_grant", store_down)
        attempt = orchestrator.start("u1", Scope.MODULE, "Graphs")
        _pay(orchestrator, attempt, sign_payment, payment_id="pay_7")

        assert attempt.state == CheckoutState.RECONCILIATION_PENDING
        assert attempt.terminal
        assert [r["payment_id"] for r in reconciled] == ["pay_7"]

    def test_no_events_after_terminal(self, orchestrator, sign_payment):
        attempt = orchestrator.start("u1", Scope.MODULE, "Graphs")
        _pay(orchestrator, attempt, sign_payment)
        with pytest.raises(InvalidTransition):
            orchestrator.abandon(attempt)
        with pytest.raises(InvalidTransition):
            _pay(orchestrator, attempt, sign_payment)


class TestToken:
    def test_round_trip_through_token(self, orchestrator, db, sign_payment):
        attempt = orchestrator.start("u1", Scope.MODULE, "SQL Basics")
        token = orchestrator.issue_token(attempt)

        restored = orchestrator.restore(token, "u1", attempt.order_id)
        assert isinstance(restored, CheckoutAttempt)
        assert restored.state == CheckoutState.GATEWAY_UI_OPEN
        assert (restored.scope, restored.module_key, restored.order_id, restored.order_amount) == (
            Scope.MODULE,
            "sql_basics",
            attempt.order_id,
            49900,
        )
        _pay(orchestrator, restored, sign_payment)
        assert _user(db, "u1").purchased_modules == {"sql_basics": True}

    def test_token_bound_to_user(self, orchestrator):
        token = orchestrator.issue_token(orchestrator.start("u1", Scope.GLOBAL))
        with pytest.raises(CheckoutTokenInvalid):
            orchestrator.restore(token, "u2")

    def test_token_bound_to_order(self, orchestrator):
        token = orchestrator.issue_token(orchestrator.start("u1", Scope.GLOBAL))
        with pytest.raises(CheckoutTokenInvalid):
            orchestrator.restore(token, "u1", "order_other")

    def test_no_token_before_order(self, orchestrator):
        attempt = orchestrator.start(None, Scope.GLOBAL)
        with pytest.raises(InvalidTransition):
            orchestrator.issue_token(attempt)
