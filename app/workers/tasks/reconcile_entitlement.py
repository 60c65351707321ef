"""
Celery task: apply a verified payment's entitlement after the API's own retries ran out.
"""
import logging

from app.core.celery_app import celery_app
from app.core.config import settings
from app.db.session import SessionLocal
from app.paywall.models import Scope
from app.services.entitlements.reconciliation import reconciliation_logger
from app.services.entitlements.service import EntitlementService
from app.services.errors import EntitlementWriteFailed

logger = logging.getLogger(__name__)


def apply_deferred_grant(
    db,
    user_id: str,
    scope: str,
    module_key: str | None,
    order_id: str | None,
    payment_id: str | None,
) -> bool:
    """One grant attempt, no in-process retry and no re-enqueue (the task owns retries)."""
    svc = EntitlementService(db, max_attempts=1, reconcile=None)
    return svc.grant(
        user_id,
        Scope(scope),
        module_key,
        order_id=order_id,
        payment_id=payment_id,
    )


@celery_app.task(
    name="app.workers.tasks.reconcile_entitlement.retry_entitlement_grant",
    bind=True,
    max_retries=settings.celery_task_max_retries,
    default_retry_delay=settings.celery_task_retry_delay,
    acks_late=True,
)
def retry_entitlement_grant(
    self,
    user_id: str,
    scope: str,
    module_key: str | None = None,
    order_id: str | None = None,
    payment_id: str | None = None,
) -> dict:
    """Retry the grant with backoff; on exhaustion leave a final reconciliation record."""
    fields = {
        "user_id": user_id,
        "scope": scope,
        "module_key": module_key,
        "order_id": order_id,
        "payment_id": payment_id,
    }
    db = SessionLocal()
    try:
        apply_deferred_grant(db, user_id, scope, module_key, order_id, payment_id)
        reconciliation_logger.info("entitlement_reconciled", extra=fields)
        return {"ok": True}
    except EntitlementWriteFailed as e:
        if self.request.retries >= self.max_retries:
            reconciliation_logger.error(
                "entitlement_reconciliation_abandoned",
                extra={**fields, "attempt": self.request.retries + 1, "error": e.message},
            )
            return {"ok": False, "error": "retries_exhausted"}
        logger.warning(
            "entitlement_reconcile_retry",
            extra={**fields, "attempt": self.request.retries + 1},
        )
        raise self.retry(exc=e, countdown=settings.celery_task_retry_delay * (2 ** self.request.retries))
    finally:
        db.close()
