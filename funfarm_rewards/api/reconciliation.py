"""
Reconciliation Router - persisted vs recomputed balances, resets and bulk runs
"""
import logging
from datetime import datetime
from typing import List, Optional

import redis
from celery.result import AsyncResult
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from funfarm_rewards.config import settings
from funfarm_rewards.db.database import SessionLocal
from funfarm_rewards.dependencies import get_actor_id, get_db, verify_api_key
from funfarm_rewards.schemas import ReconciliationReport, ReconciliationResult, ResetOutcome
from funfarm_rewards.services.reconciliation_service import reconciliation_service
from funfarm_rewards.worker.celery_app import celery_app
from funfarm_rewards.worker.tasks import cancel_key, reconcile_population_task

logger = logging.getLogger(__name__)
router = APIRouter(dependencies=[Depends(verify_api_key)])


class ResetRequest(BaseModel):
    """Request model for a pending reward reset"""
    value: Optional[int] = Field(
        None, ge=0, description="New pending_reward; omit to reset to the recomputed target"
    )
    expected_pending: Optional[int] = Field(
        None, description="pending_reward the caller last saw; the reset fails with 409 if it changed"
    )
    reason: Optional[str] = None


class RunRequest(BaseModel):
    """Request model for a population reconciliation"""
    user_ids: Optional[List[str]] = Field(None, description="Users to reconcile; all non-banned users if omitted")
    batch_size: Optional[int] = Field(None, ge=1, description="Users processed in parallel per batch")


# ============================================================
# BULK RUNS
# ============================================================

@router.post("/runs")
async def start_run(request: RunRequest):
    """Start a background reconciliation of many users"""
    task = reconcile_population_task.delay(request.user_ids, request.batch_size)
    logger.info(f"Queued reconciliation run {task.id}")
    return {"task_id": task.id, "status": "queued"}


@router.get("/runs/{task_id}")
async def get_run(task_id: str):
    """
    Status of a background run.

    While running, `progress` holds processed/total. When finished,
    `report` holds results and per-user failures.
    """
    result = AsyncResult(task_id, app=celery_app)
    response = {"task_id": task_id, "status": result.state}
    if result.state == "PROGRESS":
        response["progress"] = result.info
    elif result.successful():
        response["report"] = result.result
    elif result.failed():
        response["error"] = str(result.result)
    return response


@router.delete("/runs/{task_id}")
async def cancel_run(task_id: str):
    """Ask a running reconciliation to stop after its current batch"""
    r = redis.from_url(settings.REDIS_URL)
    r.set(cancel_key(task_id), "1", ex=settings.RECONCILE_CANCEL_KEY_TTL_SEC)
    logger.info(f"Cancellation requested for reconciliation run {task_id}")
    return {"task_id": task_id, "status": "cancelling"}


@router.post("/batch", response_model=ReconciliationReport)
def reconcile_batch(request: RunRequest):
    """
    Reconcile a list of users synchronously.

    Responds 207 with the partial report when some users failed.
    """
    report = reconciliation_service.reconcile_population(
        SessionLocal,
        user_ids=request.user_ids,
        batch_size=request.batch_size,
        cutoff=datetime.utcnow()
    )
    report.raise_for_failures()
    return report


# ============================================================
# SINGLE USER
# ============================================================

@router.get("/{user_id}", response_model=ReconciliationResult)
async def reconcile_user(user_id: str, db: Session = Depends(get_db)):
    """
    Compare a user's stored balance with the recomputed lifetime reward.

    delta = pending + approved + claimed - recomputed; positive is an
    over-credit. |delta| > 100,000 is flagged as a large discrepancy.
    """
    return reconciliation_service.reconcile_user(db, user_id)


@router.post("/{user_id}/reset", response_model=ResetOutcome)
async def reset_pending_reward(
    user_id: str,
    request: ResetRequest,
    db: Session = Depends(get_db),
    actor_id: Optional[str] = Depends(get_actor_id)
):
    """
    Set pending_reward, either to an explicit value or to the recomputed
    target. approved_reward and camly_balance are never changed.
    """
    if request.value is None:
        return reconciliation_service.reset_to_recomputed(
            db,
            user_id,
            expected_pending=request.expected_pending,
            reason=request.reason,
            actor_id=actor_id
        )
    return reconciliation_service.reset_pending_reward(
        db,
        user_id,
        request.value,
        expected_pending=request.expected_pending,
        reason=request.reason,
        actor_id=actor_id
    )
