import json
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from ..models.report import Report
from ..schemas.report_schema import ReportResponse, ReportSummary, VehicleReport


def create_report(db: Session, report: VehicleReport, user_id: str) -> Report:
    """Persist an analysis result for *user_id* and return the ORM row."""
    info = report.vehicle_info
    row = Report(
        user_id=user_id,
        vehicle_info=json.dumps(info.model_dump(), default=str),
        report_data=json.dumps(report.model_dump(), default=str),
        verdict=report.verdict,
        asking_price=info.asking_price,
        estimated_value=info.estimated_value,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def list_reports(db: Session, user_id: str) -> Tuple[List[Report], int]:
    """The caller's reports, newest first, and their count."""
    query = db.query(Report).filter(Report.user_id == user_id)
    rows = query.order_by(Report.created_at.desc()).all()
    return rows, len(rows)


def get_report(db: Session, report_id: UUID, user_id: str) -> Optional[Report]:
    """One report, or None when it does not exist or belongs to someone else."""
    return (
        db.query(Report)
        .filter(Report.id == report_id, Report.user_id == user_id)
        .first()
    )


def to_summary(row: Report) -> ReportSummary:
    return ReportSummary(
        id=row.id,
        verdict=row.verdict,
        vehicle_info=json.loads(row.vehicle_info),
        asking_price=row.asking_price,
        estimated_value=row.estimated_value,
        created_at=row.created_at,
    )


def to_response(row: Report) -> ReportResponse:
    return ReportResponse(
        **to_summary(row).model_dump(),
        report=VehicleReport(**json.loads(row.report_data)),
        updated_at=row.updated_at,
    )
