"""
Abuse Router - suspicion scores, shared wallets and ban recommendations
"""
from celery.result import AsyncResult
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from funfarm_rewards.dependencies import get_db, verify_api_key
from funfarm_rewards.schemas import AbuseReport, SuspicionRecord
from funfarm_rewards.services.abuse_service import abuse_service
from funfarm_rewards.worker.celery_app import celery_app
from funfarm_rewards.worker.tasks import scan_abuse_task

router = APIRouter(dependencies=[Depends(verify_api_key)])


@router.get("/report", response_model=AbuseReport)
async def get_abuse_report(db: Session = Depends(get_db)):
    """
    Full abuse scan of the population.

    Returns:
    - suspicious: users scoring >= 30 or sharing a wallet, highest score first
    - wallet_groups: accounts sharing one wallet (critical when > 2 accounts
      or any member already banned)
    - fake_identities / incomplete_profiles: separate review buckets
    - recommendations: users to pass to the external ban operation
    """
    return abuse_service.run_scan(db)


@router.get("/users/{user_id}", response_model=SuspicionRecord)
async def get_user_suspicion(user_id: str, db: Session = Depends(get_db)):
    """Suspicion score and reasons of one user"""
    return abuse_service.evaluate_user(db, user_id)


@router.post("/scans")
async def start_scan():
    """Queue a background abuse scan; poll /abuse/scans/{task_id} for the report"""
    task = scan_abuse_task.delay()
    return {"task_id": task.id, "status": "queued"}


@router.get("/scans/{task_id}")
async def get_scan(task_id: str):
    """Status of a background abuse scan"""
    result = AsyncResult(task_id, app=celery_app)
    response = {"task_id": task_id, "status": result.state}
    if result.successful():
        response["report"] = result.result
    elif result.failed():
        response["error"] = str(result.result)
    return response
