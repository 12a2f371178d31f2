"""
Celery Tasks for long-running reward reports
"""
import logging
from typing import List, Optional

import redis
from celery import shared_task

from funfarm_rewards.config import settings
from funfarm_rewards.db.database import SessionLocal
from funfarm_rewards.errors import DataUnavailable

logger = logging.getLogger(__name__)


def get_db_session():
    """Get database session for tasks"""
    return SessionLocal()


def cancel_key(task_id: str) -> str:
    return f"reconcile:cancel:{task_id}"


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def reconcile_population_task(
    self,
    user_ids: Optional[List[str]] = None,
    batch_size: Optional[int] = None
):
    """
    Reconcile many users and return the report.

    - Publishes PROGRESS with processed/total after every batch
    - Stops between batches once the cancel key is set in Redis
    - Retries only when the user list itself could not be read
      because of a transient store failure
    """
    from funfarm_rewards.services.reconciliation_service import reconciliation_service

    r = redis.from_url(settings.REDIS_URL)
    task_id = self.request.id

    def on_progress(processed: int, total: int):
        self.update_state(state="PROGRESS", meta={"processed": processed, "total": total})

    def should_cancel() -> bool:
        return bool(task_id and r.exists(cancel_key(task_id)))

    try:
        report = reconciliation_service.reconcile_population(
            get_db_session,
            user_ids=user_ids,
            batch_size=batch_size,
            on_progress=on_progress,
            should_cancel=should_cancel
        )
    except DataUnavailable as e:
        logger.error(f"Reconciliation run {task_id} could not start: {e}")
        if e.retryable:
            raise self.retry(exc=e)
        raise

    if report.cancelled and task_id:
        r.delete(cancel_key(task_id))

    logger.info(
        f"Reconciliation run {task_id} completed: {len(report.results)} ok, "
        f"{len(report.failures)} failed, cancelled={report.cancelled}"
    )
    return report.model_dump(mode="json")


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def scan_abuse_task(self):
    """Run the abuse scan and return the report"""
    from funfarm_rewards.services.abuse_service import abuse_service

    db = get_db_session()
    try:
        return abuse_service.run_scan(db).model_dump(mode="json")
    except DataUnavailable as e:
        logger.error(f"Abuse scan failed: {e}")
        if e.retryable:
            raise self.retry(exc=e)
        raise
    finally:
        db.close()
