# Schemas package
from .vehicle_schema import AnalysisRequest, VehicleInfo
from .red_flag_schema import RedFlag
from .data_quality_schema import DataQualityAssessment, DataQualityFactor
from .verdict_schema import ContributingFactors, VerdictReasoning
from .report_schema import (
    ReportCreate,
    ReportListResponse,
    ReportResponse,
    ReportSummary,
    SourceData,
    VehicleReport,
)

__all__ = [
    "AnalysisRequest",
    "VehicleInfo",
    "RedFlag",
    "DataQualityAssessment",
    "DataQualityFactor",
    "ContributingFactors",
    "VerdictReasoning",
    "SourceData",
    "VehicleReport",
    "ReportCreate",
    "ReportSummary",
    "ReportResponse",
    "ReportListResponse",
]
