"""
Celery application: broker and result backend from settings.
Tasks are in app.workers.tasks (deferred entitlement grants).
"""
from celery import Celery

from app.core.config import settings

celery_app = Celery(
    "app",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "app.workers.tasks.reconcile_entitlement",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_track_started=True,
    task_time_limit=300,
    result_expires=86400,
    # Broker outages must fail fast inside the API request, not hang it
    broker_connection_timeout=3,
    broker_transport_options={"max_retries": 1},
)

celery_app.conf.task_routes = {
    "app.workers.tasks.reconcile_entitlement.retry_entitlement_grant": {"queue": "reconciliation"},
}
