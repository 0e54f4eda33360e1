"""API endpoints for triggering reconciliation runs."""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from ..auth import GENERIC_ERROR, RUN_RATE_LIMIT, get_settings, limiter, verify_api_key
from ..config import Settings
from .models import RunStatus
from .report import RUN_FAILED_TITLE, failure_fields
from .service import ReconciliationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reconciliation", tags=["reconciliation"])


class RunSummaryResponse(BaseModel):
    """Summary response for a finished run."""
    id: str
    status: str
    date_from: Optional[str] = None
    date_to: Optional[str] = None
    started_at: datetime
    completed_at: Optional[datetime] = None
    total_postings: int = 0
    total_eligible: int = 0
    total_recorded: int = 0
    total_already_settled: int = 0
    total_failed: int = 0


def get_reconciliation_service(
    settings: Settings = Depends(get_settings),
) -> ReconciliationService:
    """Build a fresh service per request from the request's settings."""
    return ReconciliationService.from_settings(settings)


@router.post("/run", response_model=RunSummaryResponse)
@limiter.limit(RUN_RATE_LIMIT)
async def run_matcher(
    request: Request,
    api_key: str = Depends(verify_api_key),
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """
    Run the matcher job once.

    Returns 200 with the run summary when the ledger window was processed,
    even if individual postings could not be reconciled. Returns 500 when the
    run was aborted or crashed.
    """
    try:
        report = await service.run_reconciliation()
    except Exception as e:
        logger.exception(f"Matcher run crashed: {e}")
        await service.notifier.send(RUN_FAILED_TITLE, failure_fields(str(e)))
        raise HTTPException(status_code=500, detail=GENERIC_ERROR) from e

    if report.status != RunStatus.COMPLETED:
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)

    summary = report.to_summary_dict()
    return RunSummaryResponse(
        id=summary["id"],
        status=summary["status"],
        date_from=summary["date_from"],
        date_to=summary["date_to"],
        started_at=report.started_at,
        completed_at=report.completed_at,
        **summary["statistics"],
    )


@router.get("/health")
async def reconciliation_health():
    """Health check endpoint for the matcher."""
    return {"status": "healthy", "service": "reconciliation"}
