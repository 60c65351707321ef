"""
Reconciliation for verified payments whose entitlement write kept failing.

Never silently dropped: every case is written to the dedicated `reconciliation`
logger (rotating file, see app.core.logging) and a deferred grant is enqueued.
"""
import logging

from kombu.exceptions import OperationalError

from app.core.config import settings
from app.core.logging import RECONCILIATION_LOGGER
from app.paywall.models import Scope

reconciliation_logger = logging.getLogger(RECONCILIATION_LOGGER)


def record_for_reconciliation(
    *,
    user_id: str,
    scope: Scope,
    module_key: str | None,
    order_id: str | None,
    payment_id: str | None,
    error: str | None = None,
    defer: bool = True,
) -> None:
    fields = {
        "user_id": user_id,
        "scope": scope.value,
        "module_key": module_key,
        "order_id": order_id,
        "payment_id": payment_id,
        "error": error,
    }
    reconciliation_logger.error("entitlement_reconciliation_required", extra=fields)
    if not defer:
        return

    from app.workers.tasks.reconcile_entitlement import retry_entitlement_grant

    try:
        retry_entitlement_grant.apply_async(
            kwargs={
                "user_id": user_id,
                "scope": scope.value,
                "module_key": module_key,
                "order_id": order_id,
                "payment_id": payment_id,
            },
            countdown=settings.celery_task_retry_delay,
        )
    except (OperationalError, OSError) as e:
        reconciliation_logger.error(
            "entitlement_reconciliation_enqueue_failed",
            extra={**fields, "error": f"{type(e).__name__}: {e}"},
        )
