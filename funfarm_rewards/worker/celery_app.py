"""
Celery Application Configuration
"""
from celery import Celery
from funfarm_rewards.config import settings

# Create Celery app
celery_app = Celery(
    "funfarm_rewards_worker",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=[
        "funfarm_rewards.worker.tasks"
    ]
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=3600,  # population runs can be long
    task_soft_time_limit=3300,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    result_expires=86400,  # Results expire after 1 day
)

# Task routing
celery_app.conf.task_routes = {
    "funfarm_rewards.worker.tasks.reconcile_population_task": {"queue": "reconciliation"},
    "funfarm_rewards.worker.tasks.*": {"queue": "default"},
}
