from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from .red_flag_schema import RedFlag

Verdict = Literal["deal", "caution", "disaster"]
DataQualityImpact = Literal["none", "softening", "preventing-deal"]


class ContributingFactors(BaseModel):
    """Premium signals that shaped the verdict beyond the red flags."""

    maintenance_risk: Optional[Literal["low", "medium", "elevated"]] = None
    market_position: Optional[Literal["favorable", "neutral", "unfavorable"]] = None
    environmental_risk: Optional[Literal["low", "medium", "high"]] = None


class VerdictReasoning(BaseModel):
    """Output of the Verdict Assembly engine."""

    verdict: Verdict
    confidence: int = Field(..., ge=0, le=100)
    explanation: str
    structural_risks: List[RedFlag] = Field(default_factory=list)
    market_risks: List[RedFlag] = Field(default_factory=list)
    seller_behavior_risks: List[RedFlag] = Field(default_factory=list)
    data_quality_impact: DataQualityImpact = "none"
    contributing_factors: Optional[ContributingFactors] = None
