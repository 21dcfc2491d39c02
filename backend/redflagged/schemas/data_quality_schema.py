from typing import List, Literal

from pydantic import BaseModel, Field

ConfidenceLevel = Literal["high", "medium", "low"]


class DataQualityFactor(BaseModel):
    """One dimension of data completeness (VIN, market, location, ...)."""

    id: str
    name: str
    status: Literal["complete", "partial", "missing", "unavailable"]
    impact: Literal["high", "medium", "low"]
    explanation: str


class DataQualityAssessment(BaseModel):
    """How complete and reliable the inputs of an analysis were.

    Produced by the Data Quality service. The Verdict Assembly engine uses
    ``overall_confidence`` and ``confidence_score`` to soften or block a
    favorable verdict.
    """

    overall_confidence: ConfidenceLevel
    confidence_score: int = Field(..., ge=0, le=100)
    factors: List[DataQualityFactor] = Field(default_factory=list)
    summary: str = ""
    recommendations: List[str] = Field(default_factory=list)
