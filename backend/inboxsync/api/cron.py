"""Scheduler-facing reconciliation endpoint."""
from fastapi import APIRouter, Depends, HTTPException, status

from inboxsync.api.deps import verify_cron_secret
from inboxsync.schemas.notification import CronRunResponse
from inboxsync.services.batch_runner import run_reconciliation_cron
from inboxsync.services.timeutils import utcnow_iso

router = APIRouter(prefix="/internal/cron", tags=["cron"])


def get_cron_runner():
    """Dependency returning the batch entrypoint (overridden in tests)."""
    return run_reconciliation_cron


@router.get("/notifications", response_model=CronRunResponse, dependencies=[Depends(verify_cron_secret)])
def run_notification_cron(
    store_id: str | None = None,
    limit_per_store: str | None = None,
    runner=Depends(get_cron_runner),
):
    """Reconcile notification inboxes for one store or all stores."""
    try:
        summary = runner(store_id=store_id, limit_per_store=limit_per_store)
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"notification cron failed: {e}",
        ) from e
    return CronRunResponse(summary=summary, ran_at=utcnow_iso())
