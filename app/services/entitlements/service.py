"""
EntitlementService — durable per-user entitlement facts.

Responsibilities:
- Exactly-once-in-effect grant of a verified payment (module or global scope)
- Merge-writes only: a grant touches its own column/key and nothing else, so
  concurrent grants for different scopes on one user never clobber each other
- Replay anomaly logging (same order id applied more than once)
- Bounded write retry; exhausted retries go to reconciliation
- Access read path used by content pages
"""
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable

from sqlalchemy import String, cast, func, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.entitlement_grant import GrantRecord
from app.models.user import User
from app.paywall.access import decide_access
from app.paywall.models import AccessContext, AccessDecision, Scope, Tier
from app.services.audit.service import AuditService
from app.services.entitlements.reconciliation import record_for_reconciliation
from app.services.errors import EntitlementWriteFailed, ValidationError
from app.utils.metrics import entitlement_grants_total

logger = logging.getLogger(__name__)


class EntitlementService:
    def __init__(
        self,
        db: Session,
        *,
        max_attempts: int | None = None,
        backoff_seconds: float | None = None,
        reconcile: Callable[..., None] | None = record_for_reconciliation,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.db = db
        self.max_attempts = max_attempts or settings.entitlement_write_max_attempts
        self.backoff_seconds = (
            backoff_seconds if backoff_seconds is not None else settings.entitlement_write_backoff_seconds
        )
        self._reconcile = reconcile
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def get_user(self, user_id: str) -> User | None:
        return self.db.query(User).filter(User.id == user_id).one_or_none()

    def ensure_user(
        self,
        user_id: str,
        email: str | None = None,
        display_name: str | None = None,
    ) -> User:
        """Create the user record with default entitlement facts, or refresh profile fields."""
        user = self.get_user(user_id)
        if user:
            changed = False
            if email is not None and user.email != email:
                user.email = email
                changed = True
            if display_name is not None and user.display_name != display_name:
                user.display_name = display_name
                changed = True
            if changed:
                self.db.add(user)
                self.db.commit()
                self.db.refresh(user)
            return user
        self._create_user_row(user_id, email=email, display_name=display_name)
        self.db.commit()
        return self.get_user(user_id)

    def _create_user_row(self, user_id: str, **profile: Any) -> None:
        """Insert a blank user if missing. A concurrent insert of the same id is fine."""
        if self.db.query(User.id).filter(User.id == user_id).first() is not None:
            return
        try:
            self.db.add(
                User(
                    id=user_id,
                    global_access=False,
                    is_paid=False,
                    purchased_modules={},
                    **profile,
                )
            )
            self.db.flush()
        except IntegrityError:
            # Nothing else has been written in this transaction yet
            self.db.rollback()
            logger.info("user_created_concurrently", extra={"user_id": user_id})

    # ------------------------------------------------------------------
    # Grants
    # ------------------------------------------------------------------

    def _merge_module_value(self, key: str):
        """SQL expression setting purchased_modules[key] = true without rewriting other keys."""
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            current = func.coalesce(User.purchased_modules, func.jsonb_build_object())
            return current.op("||")(func.jsonb_build_object(cast(key, String), True))
        if dialect == "sqlite":
            # key is percent-encoded, so it cannot break out of the quoted JSON path
            current = func.coalesce(User.purchased_modules, func.json_object())
            return func.json_set(current, f'$."{key}"', func.json("true"))
        return None

    def _apply_module_grant(self, user_id: str, key: str, now: datetime) -> None:
        merged = self._merge_module_value(key)
        if merged is not None:
            self.db.execute(
                update(User)
                .where(User.id == user_id)
                .values(purchased_modules=merged, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            return
        # Dialects without a JSON merge operator: row lock, then update the map
        user = self.db.query(User).filter(User.id == user_id).with_for_update().one()
        modules = dict(user.purchased_modules or {})
        modules[key] = True
        user.purchased_modules = modules
        user.updated_at = now
        self.db.add(user)

    def _apply_global_grant(self, user_id: str, now: datetime) -> None:
        self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(global_access=True, is_paid=True, updated_at=now)
            .execution_options(synchronize_session=False)
        )

    def _record_application(
        self,
        order_id: str | None,
        payment_id: str | None,
        user_id: str,
        scope: Scope,
        key: str | None,
    ) -> bool:
        """True if this is the first application of order_id (or no order id given)."""
        if not order_id:
            return True
        previous = (
            self.db.query(GrantRecord)
            .filter(GrantRecord.order_id == order_id)
            .order_by(GrantRecord.created_at)
            .first()
        )
        if previous is not None:
            logger.warning(
                "entitlement_grant_replayed",
                extra={
                    "order_id": order_id,
                    "payment_id": payment_id,
                    "user_id": user_id,
                    "scope": scope.value,
                    "module_key": key,
                },
            )
            if previous.user_id != user_id or previous.scope != scope.value:
                logger.error(
                    "entitlement_grant_replay_mismatch",
                    extra={
                        "order_id": order_id,
                        "user_id": user_id,
                        "reason": f"first applied to {previous.user_id}/{previous.scope}",
                    },
                )
            return False
        self.db.add(
            GrantRecord(
                order_id=order_id,
                payment_id=payment_id,
                user_id=user_id,
                scope=scope.value,
                module_key=key,
            )
        )
        return True

    def grant(
        self,
        user_id: str,
        scope: Scope,
        key: str | None = None,
        *,
        order_id: str | None = None,
        payment_id: str | None = None,
    ) -> bool:
        """
        Apply an entitlement grant. Idempotent: re-granting an existing true is a no-op.
        Returns True on first application of order_id, False on a replay.
        Raises EntitlementWriteFailed if the store rejects the write.
        """
        if not user_id:
            raise ValidationError("user_id is required")
        if scope == Scope.MODULE and not key:
            raise ValidationError("module key is required for a module grant")

        now = datetime.now(timezone.utc)
        try:
            self._create_user_row(user_id)
            first = self._record_application(order_id, payment_id, user_id, scope, key)
            if scope == Scope.GLOBAL:
                self._apply_global_grant(user_id, now)
            else:
                self._apply_module_grant(user_id, key, now)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            entitlement_grants_total.labels(scope=scope.value, outcome="failed").inc()
            raise EntitlementWriteFailed(
                "Entitlement store unavailable",
                {"error": type(e).__name__},
            ) from e

        entitlement_grants_total.labels(
            scope=scope.value, outcome="applied" if first else "replayed"
        ).inc()
        logger.info(
            "entitlement_granted",
            extra={
                "user_id": user_id,
                "scope": scope.value,
                "module_key": key,
                "order_id": order_id,
                "payment_id": payment_id,
            },
        )
        return first

    def grant_with_retry(
        self,
        user_id: str,
        scope: Scope,
        key: str | None = None,
        *,
        order_id: str | None = None,
        payment_id: str | None = None,
    ) -> bool:
        """
        grant() with exponential backoff. After the last failed attempt the grant is
        handed to reconciliation (durable log + deferred retry) and the error re-raised.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                return self.grant(user_id, scope, key, order_id=order_id, payment_id=payment_id)
            except EntitlementWriteFailed as e:
                logger.warning(
                    "entitlement_write_failed",
                    extra={
                        "user_id": user_id,
                        "scope": scope.value,
                        "module_key": key,
                        "order_id": order_id,
                        "attempt": attempt,
                        "error": e.detail.get("error"),
                    },
                )
                if attempt >= self.max_attempts:
                    entitlement_grants_total.labels(scope=scope.value, outcome="reconciliation").inc()
                    if self._reconcile is not None:
                        self._reconcile(
                            user_id=user_id,
                            scope=scope,
                            module_key=key,
                            order_id=order_id,
                            payment_id=payment_id,
                            error=e.detail.get("error") or e.message,
                        )
                    raise
                self._sleep(self.backoff_seconds * (2 ** (attempt - 1)))

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    def access_context(self, user: User | None, tier: Tier, module_key: str) -> AccessContext:
        if user is None:
            return AccessContext(tier=tier, module_key=module_key)
        return AccessContext(
            user_id=user.id,
            tier=tier,
            module_key=module_key,
            global_access=bool(user.global_access),
            is_paid=bool(user.is_paid),
            purchased_modules=dict(user.purchased_modules or {}),
        )

    def decide(self, user_id: str | None, tier: Tier, module_key: str) -> AccessDecision:
        user = self.get_user(user_id) if user_id else None
        return decide_access(self.access_context(user, tier, module_key))

    def has_access(self, user_id: str | None, tier: Tier, module_key: str) -> bool:
        return self.decide(user_id, tier, module_key).allowed

    def get_entitlements(self, user_id: str) -> dict[str, Any]:
        user = self.get_user(user_id)
        if user is None:
            return {"userId": user_id, "globalAccess": False, "isPaid": False, "purchasedModules": {}}
        return self.as_dict(user)

    @staticmethod
    def as_dict(user: User) -> dict[str, Any]:
        return {
            "userId": user.id,
            "globalAccess": bool(user.global_access),
            "isPaid": bool(user.is_paid),
            "purchasedModules": {k: v for k, v in (user.purchased_modules or {}).items() if v is True},
        }

    # ------------------------------------------------------------------
    # Administrative override
    # ------------------------------------------------------------------

    def set_paid_status(self, user_id: str, is_paid: bool, actor_id: str | None = None) -> User:
        """Admin override of the legacy paid flag. Audited; not part of the payment flow."""
        self._create_user_row(user_id)
        self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(is_paid=bool(is_paid), updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        AuditService(self.db).log(
            actor_type="admin",
            actor_id=actor_id,
            action="set_paid_status",
            entity_type="user",
            entity_id=user_id,
            payload={"is_paid": bool(is_paid)},
            commit=False,
        )
        self.db.commit()
        user = self.get_user(user_id)
        logger.info("user_paid_status_set", extra={"user_id": user_id, "reason": f"is_paid={bool(is_paid)}"})
        return user
