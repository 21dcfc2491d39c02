import re
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

AnalysisTier = Literal["free", "paid"]

# 17 characters, no I, O or Q
_VIN_PATTERN = re.compile(r"^[A-HJ-NPR-Z0-9]{17}$")


class AnalysisRequest(BaseModel):
    """Buyer-supplied description of the listing to analyse."""

    vin: Optional[str] = Field(default=None, description="17-character VIN")
    year: Optional[int] = Field(default=None, ge=1980, le=2100)
    make: Optional[str] = Field(default=None, max_length=100)
    model: Optional[str] = Field(default=None, max_length=100)
    mileage: Optional[int] = Field(default=None, ge=0)
    asking_price: float = Field(..., gt=0)
    tier: AnalysisTier = "free"
    location: Optional[str] = Field(
        default=None,
        max_length=200,
        description="City/state or ZIP, used for disaster geography",
    )

    @field_validator("vin")
    @classmethod
    def vin_format(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        cleaned = v.strip().upper()
        if not cleaned:
            return None
        if not _VIN_PATTERN.match(cleaned):
            raise ValueError(
                "VIN must be exactly 17 characters and contain only letters "
                "and digits (no I, O, or Q)."
            )
        return cleaned


class VehicleInfo(BaseModel):
    vin: Optional[str] = None
    year: Optional[int] = None
    make: Optional[str] = None
    model: Optional[str] = None
    trim: Optional[str] = None
    mileage: Optional[int] = None
    asking_price: float
    estimated_value: Optional[float] = None
    price_difference: Optional[float] = None
    price_difference_percent: Optional[int] = None


# ── Vehicle history ─────────────────────────────────────────────────────

class OdometerReading(BaseModel):
    reading: int
    date: str


class VehicleDetails(BaseModel):
    year: Optional[int] = None
    make: Optional[str] = None
    model: Optional[str] = None
    trim: Optional[str] = None


class TitleHistory(BaseModel):
    """Title and theft records decoded from the VIN."""

    title_brands: List[str] = Field(default_factory=list)
    salvage_record: bool = False
    theft_records: bool = False
    state_title: Optional[str] = None
    odometer: List[OdometerReading] = Field(default_factory=list)
    vehicle_details: Optional[VehicleDetails] = None


class MileageSnapshot(BaseModel):
    mileage: int
    date: str


class AccidentHistory(BaseModel):
    """Carfax/AutoCheck style history (paid tier)."""

    accident_indicators: bool = False
    service_history: List[str] = Field(default_factory=list)
    ownership_changes: Optional[int] = None
    mileage_snapshots: List[MileageSnapshot] = Field(default_factory=list)


class VehicleHistory(BaseModel):
    nmvtis: Optional[TitleHistory] = None
    carfax: Optional[AccidentHistory] = None


# ── Market listings ─────────────────────────────────────────────────────

class RawListing(BaseModel):
    price: float
    mileage: Optional[int] = None
    city: Optional[str] = None
    state: Optional[str] = None
    dealer: Optional[str] = None
    listing_type: Optional[Literal["dealer", "private-party"]] = None


class AutoDevMarketData(BaseModel):
    market_average: float
    price_min: float
    price_max: float
    raw_listings: List[RawListing] = Field(default_factory=list)


class MarketCheckData(BaseModel):
    """Sales statistics for the year/make/model from MarketCheck."""

    competitive_price: float
    average_price: Optional[float] = None
    price_min: Optional[float] = None
    price_max: Optional[float] = None
    sales_count: int = 0


class MarketListingsData(BaseModel):
    auto_dev: Optional[AutoDevMarketData] = None
    market_check: Optional[MarketCheckData] = None


# ── Disaster geography ──────────────────────────────────────────────────

class DisasterDeclaration(BaseModel):
    disaster_type: str
    declaration_date: str
    affected_counties: List[str] = Field(default_factory=list)


class DisasterData(BaseModel):
    fema_declarations: List[DisasterDeclaration] = Field(default_factory=list)


class DisasterRiskAnalysis(BaseModel):
    has_risk: bool
    risk_level: Literal["low", "medium", "high"]
    details: List[str] = Field(default_factory=list)


class DatedDisaster(BaseModel):
    disaster_type: str
    declaration_date: str
    days_ago: int


class EnvironmentalRisk(BaseModel):
    disaster_presence: bool
    disaster_types: List[str] = Field(default_factory=list)
    recency: Literal["recent", "historical", "none"]
    flood_zone_risk: Literal["low", "medium", "high", "unknown"]
    confidence: int = Field(..., ge=0, le=100)
    affected_counties: List[str] = Field(default_factory=list)
    recent_disasters: List[DatedDisaster] = Field(default_factory=list)
    historical_disasters: List[DatedDisaster] = Field(default_factory=list)


# ── Seller signals ──────────────────────────────────────────────────────

class RelistingDetection(BaseModel):
    detected: bool
    times_seen: int
    confidence: Optional[int] = None
    weighted_score: float = 0.0
    listing_history: List[str] = Field(default_factory=list)


class ListingLongevity(BaseModel):
    days_listed: int
    is_stale: bool
    selling_without_correction: bool = False


class ListingBehaviorSignals(BaseModel):
    relisting_detection: Optional[RelistingDetection] = None
    listing_longevity: Optional[ListingLongevity] = None


class PricePoint(BaseModel):
    price: float
    date: str


class PriceDrop(BaseModel):
    from_price: float
    to_price: float
    drop_percent: float
    days_ago: int


class PriceVolatility(BaseModel):
    detected: bool
    volatility_level: Literal["low", "medium", "high"]
    price_changes: int
    significant_drops: List[PriceDrop] = Field(default_factory=list)
    oscillations: int = 0
    time_window: int = 90


class UnusuallyLowPrice(BaseModel):
    detected: bool
    below_market_percent: float
    market_median: Optional[float] = None
    asking_price: float
    confidence: int = Field(..., ge=0, le=100)
    threshold_used: float


class TooGoodForTooLong(BaseModel):
    detected: bool
    days_listed: int
    threshold_days: int
    confidence: int = Field(..., ge=0, le=100)
    requires_low_price: bool = True


class PricingBehaviorSignals(BaseModel):
    price_volatility: Optional[PriceVolatility] = None
    unusually_low_price: Optional[UnusuallyLowPrice] = None
    too_good_for_too_long: Optional[TooGoodForTooLong] = None


class SellerSignals(BaseModel):
    listing_behavior: Optional[ListingBehaviorSignals] = None
    pricing_behavior: Optional[PricingBehaviorSignals] = None


class SellerAnalysis(BaseModel):
    credibility_score: int = Field(..., ge=0, le=100)
    insights: List[str] = Field(default_factory=list)


# ── Recalls ─────────────────────────────────────────────────────────────

class VehicleRecall(BaseModel):
    recall_number: str
    component: str
    summary: str
    consequence: str
    remedy: str
    report_received_date: Optional[str] = None


# ── Premium analyses ────────────────────────────────────────────────────

VehicleClass = Literal["economy", "mid-range", "luxury", "sports", "truck", "unknown"]


class MaintenanceRiskFactor(BaseModel):
    component: str
    risk_level: Literal["low", "medium", "high"]
    description: str
    typical_mileage_range: Optional[str] = None
    typical_age_range: Optional[str] = None


class InspectionItem(BaseModel):
    component: str
    priority: Literal["high", "medium", "low"]
    reason: str
    what_to_check: str


class MaintenanceRiskAssessment(BaseModel):
    """Forward-looking maintenance outlook (paid tier)."""

    overall_risk: Literal["low", "medium", "elevated"]
    classification: str
    risk_factors: List[MaintenanceRiskFactor] = Field(default_factory=list)
    inspection_focus: List[InspectionItem] = Field(default_factory=list)
    buyer_checklist: List[str] = Field(default_factory=list)
    confidence: Literal["high", "medium", "low"] = "medium"
    confidence_note: Optional[str] = None


class PriceRanges(BaseModel):
    low: float
    median: float
    high: float
    percentile_25: float
    percentile_75: float


class AskingPricePosition(BaseModel):
    percentile: float = Field(..., ge=0, le=100)
    position: Literal["below", "at", "above"]
    difference_percent: float


class NegotiationLeverage(BaseModel):
    level: Literal["strong", "moderate", "limited", "none"]
    explanation: str
    suggested_approach: str = ""


class PricingDataQuality(BaseModel):
    has_enough_data: bool
    data_sparsity: Literal["sparse", "moderate", "adequate"]
    regional_variance: bool


class MarketPricingAnalysis(BaseModel):
    """Where the asking price sits among comparable listings (paid tier)."""

    price_ranges: PriceRanges
    asking_price_position: AskingPricePosition
    comparable_count: int
    geographic_scope: str = "National"
    listing_type: Literal["dealer", "private-party", "mixed", "unknown"] = "unknown"
    market_comparison: str = ""
    negotiation_leverage: NegotiationLeverage
    confidence: Literal["high", "medium", "low"]
    limitations: List[str] = Field(default_factory=list)
    data_quality: Optional[PricingDataQuality] = None
