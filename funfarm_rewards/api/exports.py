"""
Exports Router - CSV downloads for the admin tools
"""
from datetime import datetime

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.orm import Session

from funfarm_rewards.db.database import SessionLocal
from funfarm_rewards.dependencies import get_db, verify_api_key
from funfarm_rewards.services import export_service
from funfarm_rewards.services.abuse_service import abuse_service
from funfarm_rewards.services.activity_service import activity_service
from funfarm_rewards.services.reconciliation_service import balance_state, reconciliation_service
from funfarm_rewards.services.reward_engine import reward_engine

router = APIRouter(dependencies=[Depends(verify_api_key)])


def _csv_response(content: str, filename: str) -> Response:
    return Response(
        content=content.encode("utf-8"),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )


def _stamp() -> str:
    return datetime.utcnow().strftime("%Y%m%d")


@router.get("/reconciliation.csv")
def export_reconciliation():
    """
    Reconciliation of every non-banned user. Users that could not be
    reconciled are listed as rows with their error and retryable flag,
    and counted in the X-Failed-Count header.
    """
    report = reconciliation_service.reconcile_population(SessionLocal)
    response = _csv_response(export_service.reconciliation_csv(report), f"reconciliation_{_stamp()}.csv")
    response.headers["X-Failed-Count"] = str(len(report.failures))
    if report.failures:
        response.headers["X-Failed-Users"] = ",".join(f.user_id for f in report.failures)
    return response


@router.get("/suspicious.csv")
def export_suspicious(db: Session = Depends(get_db)):
    """Users surfaced for review by the abuse scan"""
    report = abuse_service.run_scan(db)
    return _csv_response(export_service.suspicion_csv(report.suspicious), f"suspicious_users_{_stamp()}.csv")


@router.get("/{user_id}/daily.csv")
def export_daily(user_id: str, db: Session = Depends(get_db)):
    """Per-day reward breakdown of one user with bonus and total rows"""
    profile = reconciliation_service.load_profile(db, user_id)
    days = activity_service.aggregate(db, user_id)
    lifetime = reward_engine.compute_lifetime(user_id, days.values(), balance_state(profile))
    return _csv_response(export_service.daily_breakdown_csv(lifetime), f"daily_rewards_{user_id}_{_stamp()}.csv")
