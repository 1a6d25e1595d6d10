from fastapi import APIRouter, Depends

from app.api.admin_auth import require_admin_key
from app.api.deps import AppSettings, DbSession, Enrollments, Notifier
from app.schemas.membership import SweepResponse
from app.services.expiry_sweep import run_expiry_sweep

router = APIRouter(prefix="/v1/admin", tags=["admin"], dependencies=[Depends(require_admin_key)])


@router.post("/expiry-sweep", response_model=SweepResponse)
def expiry_sweep(db: DbSession, settings: AppSettings, enrollment: Enrollments, notifier: Notifier) -> SweepResponse:
    """Run the daily membership sweep now (for cron jobs that prefer HTTP)."""
    report = run_expiry_sweep(db, settings, enrollment, notifier)
    return SweepResponse(
        notices_sent=report.notices_sent,
        expired=report.expired,
        skipped=report.skipped,
        failed_user_ids=report.failed_user_ids,
    )
