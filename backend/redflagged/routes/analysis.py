"""Vehicle Analysis Route.

Thin wrapper around the analysis pipeline; all logic lives in
``services.vehicle_analysis``.
"""

from __future__ import annotations

import logging
import time

from fastapi import APIRouter, HTTPException, status

from ..schemas.report_schema import VehicleReport
from ..schemas.vehicle_schema import AnalysisRequest
from ..services.vehicle_analysis import analyze_vehicle
from ..services.vehicle_history import InvalidVINError

logger = logging.getLogger(__name__)

router = APIRouter(
    tags=["Analysis"],
)


@router.post(
    "/analyze",
    response_model=VehicleReport,
    summary="Analyze a Used-Car Listing",
    response_description="Verdict, red flags and supporting data for the listing",
)
async def analyze(payload: AnalysisRequest) -> VehicleReport:
    """Run the full analysis for a listing and return the report.

    Nothing is stored; use ``POST /reports`` to save the result.
    """
    label = payload.vin or f"{payload.year or '?'} {payload.make or '?'} {payload.model or '?'}"
    print(f"➡️  [ANALYSIS] Pipeline START for {label} (tier={payload.tier})")
    t_start = time.perf_counter()

    try:
        report = await analyze_vehicle(payload)
    except InvalidVINError as exc:
        print(f"⚠️  [ANALYSIS] Invalid VIN rejected: {payload.vin}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except HTTPException:
        raise
    except Exception as exc:
        print(f"❌ [ANALYSIS] Pipeline CRASHED for {label}: {exc}")
        logger.exception("Analysis pipeline failed for %s", label)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Analysis failed: {exc}",
        ) from exc

    elapsed = time.perf_counter() - t_start
    print(
        f"✅ [ANALYSIS] Completed in {elapsed:.2f}s "
        f"(verdict={report.verdict}, confidence={report.confidence_score}, flags={len(report.red_flags)})"
    )
    return report
