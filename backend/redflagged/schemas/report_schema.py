from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from .data_quality_schema import DataQualityAssessment
from .red_flag_schema import RedFlag
from .vehicle_schema import (
    AnalysisTier,
    DisasterData,
    DisasterRiskAnalysis,
    EnvironmentalRisk,
    MaintenanceRiskAssessment,
    MarketListingsData,
    MarketPricingAnalysis,
    SellerAnalysis,
    SellerSignals,
    VehicleHistory,
    VehicleInfo,
    VehicleRecall,
)
from .verdict_schema import Verdict, VerdictReasoning


class SourceData(BaseModel):
    """Raw and derived data collected from every upstream source.

    A field left as None means the source was not queried or failed.
    ``recalls`` is an empty list when NHTSA was checked and found nothing.
    """

    vehicle_history: Optional[VehicleHistory] = None
    history_summary: Optional[str] = None
    market_data: Optional[MarketListingsData] = None
    disaster_data: Optional[DisasterData] = None
    disaster_risk: Optional[DisasterRiskAnalysis] = None
    environmental_risk: Optional[EnvironmentalRisk] = None
    seller_signals: Optional[SellerSignals] = None
    seller_analysis: Optional[SellerAnalysis] = None
    recalls: Optional[List[VehicleRecall]] = None
    maintenance_risk_assessment: Optional[MaintenanceRiskAssessment] = None
    market_pricing_analysis: Optional[MarketPricingAnalysis] = None


class VehicleReport(BaseModel):
    """Complete output of one analysis run."""

    tier: AnalysisTier
    verdict: Verdict
    confidence_score: int = Field(..., ge=0, le=100)
    summary: str
    red_flags: List[RedFlag] = Field(default_factory=list)
    questions_to_ask: List[str] = Field(default_factory=list)
    known_data: List[str] = Field(default_factory=list)
    unknown_data: List[str] = Field(default_factory=list)
    vehicle_info: VehicleInfo
    sources: SourceData = Field(default_factory=SourceData)
    data_quality: Optional[DataQualityAssessment] = None
    verdict_reasoning: Optional[VerdictReasoning] = None


# ── Stored reports ──────────────────────────────────────────────────────

class ReportCreate(BaseModel):
    report: VehicleReport


class ReportSummary(BaseModel):
    """One row of the caller's report history."""

    id: UUID
    verdict: Verdict
    vehicle_info: VehicleInfo
    asking_price: float
    estimated_value: Optional[float] = None
    created_at: datetime


class ReportResponse(ReportSummary):
    report: VehicleReport
    updated_at: Optional[datetime] = None


class ReportListResponse(BaseModel):
    reports: List[ReportSummary] = Field(default_factory=list)
    total: int = 0
