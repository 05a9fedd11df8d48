"""Celery configuration."""

from celery import Celery

from wallet_ledger.core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "wallet_ledger_tasks",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "wallet_ledger.tasks.reconciliation",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    result_expires=3600,
    task_routes={
        "wallet.*": {"queue": "wallet"},
    },
    beat_schedule={
        "reconcile-wallet-balances": {
            "task": "wallet.reconcile_balances",
            "schedule": settings.reconcile_interval_seconds,
        },
    },
)
