"""Data Quality and Confidence Assessment.

Evaluates how complete and reliable the inputs of an analysis were, so the
report can communicate confidence and the verdict engine can avoid
over-certainty when inputs are sparse.

Rules
-----
- NO API calls
- Six factors, each weighted by impact and scored by status
- A missing high-impact factor caps the level at "medium" (score <= 70)
"""

from __future__ import annotations

from typing import List, Optional, Tuple

from ..constants import (
    FACTOR_IMPACT_WEIGHTS,
    FACTOR_STATUS_SCORES,
    HIGH_CONFIDENCE_THRESHOLD,
    MEDIUM_CONFIDENCE_THRESHOLD,
    MISSING_HIGH_IMPACT_SCORE_CAP,
)
from ..schemas.data_quality_schema import (
    ConfidenceLevel,
    DataQualityAssessment,
    DataQualityFactor,
)
from ..schemas.report_schema import SourceData
from ..schemas.vehicle_schema import (
    AnalysisRequest,
    AnalysisTier,
    DisasterData,
    EnvironmentalRisk,
    MarketListingsData,
    SellerSignals,
    VehicleHistory,
    VehicleInfo,
    VehicleRecall,
)

# Listing behavior and pricing behavior
_SELLER_SIGNAL_TYPES = 2


# ===================================================================== #
#  Factor assessors                                                       #
# ===================================================================== #

def _assess_vin(
    request: AnalysisRequest,
    history: Optional[VehicleHistory],
    vehicle_info: Optional[VehicleInfo],
) -> DataQualityFactor:
    has_year = bool((vehicle_info and vehicle_info.year) or request.year)
    has_make = bool((vehicle_info and vehicle_info.make) or request.make)
    has_model = bool((vehicle_info and vehicle_info.model) or request.model)

    if not request.vin:
        return DataQualityFactor(
            id="vin-missing",
            name="VIN Information",
            status="missing",
            impact="high",
            explanation="No VIN provided. Vehicle history, title records, and theft data cannot be verified.",
        )
    if not (has_year and has_make and has_model):
        return DataQualityFactor(
            id="vin-incomplete",
            name="VIN Information",
            status="partial",
            impact="high",
            explanation=(
                "VIN provided but some vehicle details (year, make, or model) are missing. "
                "This limits our ability to fetch recalls and accurate market data."
            ),
        )
    if history is None or history.nmvtis is None:
        return DataQualityFactor(
            id="vin-no-history",
            name="VIN History Data",
            status="unavailable",
            impact="medium",
            explanation=(
                "VIN provided but no vehicle history data was found. Title brands, "
                "theft records, and odometer readings are unavailable."
            ),
        )
    return DataQualityFactor(
        id="vin-complete",
        name="VIN Information",
        status="complete",
        impact="high",
        explanation="VIN and vehicle details are available. Vehicle history data was successfully retrieved.",
    )


def _assess_market(
    market: Optional[MarketListingsData],
    estimated_value: Optional[float],
) -> DataQualityFactor:
    if market is None:
        return DataQualityFactor(
            id="market-missing",
            name="Market Comparables",
            status="missing",
            impact="high",
            explanation=(
                "No market pricing data available. Price analysis is based on "
                "estimates only, which may be inaccurate."
            ),
        )

    sources = [s for s in (market.auto_dev, market.market_check) if s is not None]

    if not sources:
        return DataQualityFactor(
            id="market-no-sources",
            name="Market Comparables",
            status="unavailable",
            impact="high",
            explanation=(
                "Market data sources are unavailable. This may be due to API "
                "configuration issues or no listings found for this vehicle. "
                "Price comparison may be unreliable."
            ),
        )
    if len(sources) == 1:
        return DataQualityFactor(
            id="market-limited",
            name="Market Comparables",
            status="partial",
            impact="medium",
            explanation="Only 1 market data source available. More sources would improve price accuracy.",
        )
    if not estimated_value:
        return DataQualityFactor(
            id="market-no-estimate",
            name="Market Value Estimate",
            status="partial",
            impact="medium",
            explanation="Market data available but unable to calculate reliable value estimate.",
        )
    return DataQualityFactor(
        id="market-complete",
        name="Market Comparables",
        status="complete",
        impact="high",
        explanation=(
            f"{len(sources)} market data sources available. Price analysis is "
            "based on multiple reliable sources."
        ),
    )


def _assess_seller(signals: Optional[SellerSignals], tier: AnalysisTier) -> DataQualityFactor:
    if tier == "free":
        return DataQualityFactor(
            id="seller-signals-premium",
            name="Seller Behavior History",
            status="unavailable",
            impact="medium",
            explanation=(
                "Seller behavior analysis requires premium tier. Relisting "
                "detection and price volatility analysis are unavailable."
            ),
        )
    if signals is None:
        return DataQualityFactor(
            id="seller-signals-missing",
            name="Seller Behavior History",
            status="missing",
            impact="medium",
            explanation=(
                "No seller behavior data available. Cannot assess relisting "
                "patterns, price changes, or seller credibility."
            ),
        )

    available = sum(
        1 for part in (signals.listing_behavior, signals.pricing_behavior) if part is not None
    )
    if available == 0:
        return DataQualityFactor(
            id="seller-signals-none",
            name="Seller Behavior History",
            status="unavailable",
            impact="medium",
            explanation=(
                "Seller behavior data unavailable. This may be a new listing or "
                "the vehicle is not listed on tracked platforms."
            ),
        )
    if available < _SELLER_SIGNAL_TYPES:
        return DataQualityFactor(
            id="seller-signals-partial",
            name="Seller Behavior History",
            status="partial",
            impact="medium",
            explanation=(
                f"Limited seller behavior data ({available} of {_SELLER_SIGNAL_TYPES} "
                "signal types available). Analysis may miss some risk patterns."
            ),
        )
    return DataQualityFactor(
        id="seller-signals-complete",
        name="Seller Behavior History",
        status="complete",
        impact="medium",
        explanation=(
            "Comprehensive seller behavior data available. Relisting patterns "
            "and price changes have been analyzed."
        ),
    )


def _assess_location(
    request: AnalysisRequest,
    environmental: Optional[EnvironmentalRisk],
    disaster: Optional[DisasterData],
) -> DataQualityFactor:
    if not request.location:
        return DataQualityFactor(
            id="location-missing",
            name="Location Information",
            status="missing",
            impact="medium",
            explanation=(
                "No location provided. Environmental risk assessment (flood zones, "
                "disaster history) cannot be performed."
            ),
        )
    if environmental is None and disaster is None:
        return DataQualityFactor(
            id="location-no-data",
            name="Location Data",
            status="unavailable",
            impact="low",
            explanation=(
                "Location provided but no environmental or disaster data found. "
                "This may indicate low risk or data unavailability."
            ),
        )
    if environmental is not None and environmental.confidence < 50:
        return DataQualityFactor(
            id="location-low-confidence",
            name="Location Data",
            status="partial",
            impact="low",
            explanation=(
                "Location data available but confidence is low. Environmental "
                "risk assessment may be incomplete."
            ),
        )
    return DataQualityFactor(
        id="location-complete",
        name="Location Information",
        status="complete",
        impact="low",
        explanation=(
            "Location provided and environmental risk data retrieved. Disaster "
            "and flood risk have been assessed."
        ),
    )


def _assess_external_sources(
    recalls: Optional[List[VehicleRecall]],
    history: Optional[VehicleHistory],
) -> DataQualityFactor:
    # An empty recall list still means NHTSA was checked
    has_recalls = recalls is not None
    has_history = history is not None and history.nmvtis is not None

    if not has_recalls and not has_history:
        return DataQualityFactor(
            id="external-sources-none",
            name="External Data Sources",
            status="unavailable",
            impact="medium",
            explanation=(
                "Unable to access external data sources (recalls, vehicle history). "
                "Some risk factors may be undetected."
            ),
        )
    if has_recalls and has_history:
        return DataQualityFactor(
            id="external-sources-complete",
            name="External Data Sources",
            status="complete",
            impact="medium",
            explanation="External data sources accessible. Recalls and vehicle history have been checked.",
        )
    available = "recalls" if has_recalls else "vehicle history"
    return DataQualityFactor(
        id="external-sources-partial",
        name="External Data Sources",
        status="partial",
        impact="medium",
        explanation=f"Only {available} data available. Some external sources are unavailable.",
    )


def _assess_mileage(request: AnalysisRequest, history: Optional[VehicleHistory]) -> DataQualityFactor:
    if not request.mileage:
        return DataQualityFactor(
            id="mileage-missing",
            name="Mileage Information",
            status="missing",
            impact="low",
            explanation="No mileage provided. Value estimates and wear assessment may be less accurate.",
        )

    has_odometer = bool(history and history.nmvtis and history.nmvtis.odometer)
    if not has_odometer:
        return DataQualityFactor(
            id="mileage-no-history",
            name="Mileage Information",
            status="partial",
            impact="low",
            explanation="Mileage provided but no historical odometer records available for verification.",
        )
    return DataQualityFactor(
        id="mileage-complete",
        name="Mileage Information",
        status="complete",
        impact="low",
        explanation="Mileage provided and historical odometer records available for verification.",
    )


# ===================================================================== #
#  Scoring                                                                #
# ===================================================================== #

def calculate_confidence(factors: List[DataQualityFactor]) -> Tuple[ConfidenceLevel, int]:
    """Weighted mean of factor scores mapped onto high / medium / low."""
    total_weight = 0
    weighted = 0
    for factor in factors:
        weight = FACTOR_IMPACT_WEIGHTS.get(factor.impact, 1)
        total_weight += weight
        weighted += FACTOR_STATUS_SCORES.get(factor.status, 0) * weight

    score = round(weighted / total_weight) if total_weight else 0

    if score >= HIGH_CONFIDENCE_THRESHOLD:
        level: ConfidenceLevel = "high"
    elif score >= MEDIUM_CONFIDENCE_THRESHOLD:
        level = "medium"
    else:
        level = "low"

    missing_high_impact = any(f.impact == "high" and f.status == "missing" for f in factors)
    if missing_high_impact and level == "high":
        return "medium", min(score, MISSING_HIGH_IMPACT_SCORE_CAP)

    return level, score


def _summary(level: ConfidenceLevel, factors: List[DataQualityFactor]) -> str:
    high_impact_issues = [f for f in factors if f.impact == "high" and f.status != "complete"]
    missing_critical = [f for f in factors if f.impact == "high" and f.status == "missing"]

    if level == "high":
        if not high_impact_issues:
            return (
                "We have comprehensive data for this vehicle. Our analysis is based on "
                "multiple reliable sources and should be highly accurate."
            )
        return (
            "We have good data coverage for this vehicle, though some information is "
            "incomplete. Our analysis should be reasonably reliable."
        )

    if level == "medium":
        if missing_critical:
            return (
                "Some critical information is missing, which limits the accuracy of our "
                "analysis. Important data gaps may affect the reliability of our assessment."
            )
        return (
            "We have partial data for this vehicle. While we can provide an analysis, "
            "some important information is unavailable or incomplete."
        )

    if missing_critical:
        return (
            "Significant data gaps limit our ability to provide a reliable analysis. "
            "Critical information is missing, and our assessment should be treated with caution."
        )
    return (
        "Limited data is available for this vehicle. Our analysis is based on incomplete "
        "information and may not capture all relevant risk factors."
    )


_RECOMMENDATIONS = (
    (("vin-missing",), "Provide the VIN to access vehicle history, title records, and recall information."),
    (("vin-incomplete",), "Ensure all vehicle details (year, make, model) are provided for accurate analysis."),
    (
        ("market-missing", "market-no-sources"),
        "Market pricing data is unavailable. Consider verifying the asking price against similar listings manually.",
    ),
    (("location-missing",), "Provide the vehicle location to assess environmental risks (flood zones, disaster history)."),
    (("mileage-missing",), "Provide the vehicle mileage for more accurate value estimation."),
    (
        ("seller-signals-premium",),
        "Upgrade to premium to access seller behavior analysis (relisting detection, price volatility).",
    ),
)


def _recommendations(factors: List[DataQualityFactor]) -> List[str]:
    ids = {f.id for f in factors}
    return [text for wanted, text in _RECOMMENDATIONS if ids.intersection(wanted)]


# ===================================================================== #
#  Public API                                                             #
# ===================================================================== #

def assess_data_quality(
    request: AnalysisRequest,
    vehicle_info: VehicleInfo,
    sources: SourceData,
    tier: AnalysisTier,
) -> DataQualityAssessment:
    """Evaluate the completeness of one analysis run.

    Parameters
    ----------
    request : AnalysisRequest
        What the buyer supplied.
    vehicle_info : VehicleInfo
        Vehicle details after VIN decoding, including the estimated value.
    sources : SourceData
        Everything the collectors returned.
    tier : "free" | "paid"

    Returns
    -------
    DataQualityAssessment
    """
    factors = [
        _assess_vin(request, sources.vehicle_history, vehicle_info),
        _assess_market(sources.market_data, vehicle_info.estimated_value),
        _assess_seller(sources.seller_signals, tier),
        _assess_location(request, sources.environmental_risk, sources.disaster_data),
        _assess_external_sources(sources.recalls, sources.vehicle_history),
        _assess_mileage(request, sources.vehicle_history),
    ]

    level, score = calculate_confidence(factors)

    return DataQualityAssessment(
        overall_confidence=level,
        confidence_score=score,
        factors=factors,
        summary=_summary(level, factors),
        recommendations=_recommendations(factors),
    )
