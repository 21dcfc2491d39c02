import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..schemas.report_schema import ReportCreate, ReportListResponse, ReportResponse
from ..services.caller_identity import get_user_id
from ..services.report_service import (
    create_report,
    get_report,
    list_reports,
    to_response,
    to_summary,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/reports",
    tags=["Reports"],
)


@router.post(
    "",
    response_model=ReportResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Save an Analysis Report",
    response_description="The stored report with its ID",
)
def save_report(
    payload: ReportCreate,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_user_id),
) -> ReportResponse:
    """Store a previously generated report for the caller."""
    try:
        row = create_report(db, payload.report, user_id)
    except Exception as exc:
        logger.exception("Failed to store report for %s", user_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to store report: {exc}",
        ) from exc

    print(f"💾 [REPORTS] Stored report {row.id} (verdict={row.verdict})")
    return to_response(row)


@router.get(
    "",
    response_model=ReportListResponse,
    summary="List Saved Reports",
    response_description="The caller's reports, newest first",
)
def get_reports(
    db: Session = Depends(get_db),
    user_id: str = Depends(get_user_id),
) -> ReportListResponse:
    rows, total = list_reports(db, user_id)
    return ReportListResponse(reports=[to_summary(r) for r in rows], total=total)


@router.get(
    "/{report_id}",
    response_model=ReportResponse,
    summary="Get a Saved Report",
    response_description="One stored report",
)
def get_one_report(
    report_id: UUID,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_user_id),
) -> ReportResponse:
    """Return a stored report. 404 when it does not exist or is not the caller's."""
    row = get_report(db, report_id, user_id)
    if row is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Report {report_id} not found",
        )

    try:
        return to_response(row)
    except Exception as exc:
        logger.error("Failed to parse stored report %s: %s", report_id, exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Stored report is corrupted",
        ) from exc
