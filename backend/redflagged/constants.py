"""Centralized constants shared across services and routes.

This module is the SINGLE SOURCE OF TRUTH for red-flag identifiers,
severity ordering, verdict confidence defaults and the fallback vehicle
valuation tables. Reused by:
  - Red Flag generator
  - Verdict Assembly engine
  - Data Quality assessment
  - Stored reports (flag ids are persisted)
"""

from __future__ import annotations

# ── Red flag identifiers ────────────────────────────────────────────────
# LOCKED: flag ids are persisted inside stored reports.

STRUCTURAL_FLAG_IDS: frozenset[str] = frozenset({
    "title-brands",
    "theft-record",
    "odometer-rollback",
    "accident-history",
    "environmental-risk",
    "disaster-risk",
})

# Subset of structural ids that make a high-severity flag "strong"
STRONG_STRUCTURAL_FLAG_IDS: frozenset[str] = frozenset({
    "title-brands",
    "theft-record",
    "odometer-rollback",
    "accident-history",
})

MARKET_FLAG_IDS: frozenset[str] = frozenset({
    "overpriced",
    "underpriced",
    "unusually-low-price",
    "too-good-for-too-long",
})

# "too-good-too-be-long" is the id historically emitted by the listing
# service. Kept verbatim so old reports still classify.
SELLER_BEHAVIOR_FLAG_IDS: frozenset[str] = frozenset({
    "relisting-detected",
    "price-volatility",
    "stale-listing",
    "too-good-too-be-long",
})

SELLER_BEHAVIOR_CATEGORIES: frozenset[str] = frozenset({"listing", "seller"})

LOW_PRICE_FLAG_IDS: frozenset[str] = frozenset({
    "unusually-low-price",
    "too-good-for-too-long",
})

ENVIRONMENTAL_FLAG_ID = "environmental-risk"

# ── Severity ordering ───────────────────────────────────────────────────
SEVERITY_ORDER: dict[str, int] = {
    "critical": 0,
    "high": 1,
    "medium": 2,
    "low": 3,
}

# ── Verdict confidence defaults ─────────────────────────────────────────
# Used when no data-quality score is available. One name per rule so the
# cascade never drifts from these values.
DEAL_DEFAULT_CONFIDENCE: int = 85
LOW_QUALITY_NO_RISK_DEFAULT: int = 75
UNCLEAR_QUALITY_NO_RISK_DEFAULT: int = 70
DISASTER_DEFAULT_CONFIDENCE: int = 75
ENVIRONMENTAL_ONLY_DEFAULT: int = 75
LOW_PRICE_DEFAULT: int = 75
STACKED_SIGNALS_SOFTENED_DEFAULT: int = 75
STACKED_SIGNALS_DEFAULT: int = 70
MODERATE_STRUCTURAL_DEFAULT: int = 75
STRONG_STRUCTURAL_ALONE_DEFAULT: int = 75
SINGLE_RISK_DEFAULT: int = 75
FALLBACK_DEFAULT: int = 70
ELEVATED_MAINTENANCE_DEFAULT: int = 75
UNFAVORABLE_POSITION_DEFAULT: int = 75

# ── Data quality weighting ──────────────────────────────────────────────
FACTOR_IMPACT_WEIGHTS: dict[str, int] = {
    "high": 3,
    "medium": 2,
    "low": 1,
}

FACTOR_STATUS_SCORES: dict[str, int] = {
    "complete": 100,
    "partial": 50,
    "unavailable": 25,
    "missing": 0,
}

HIGH_CONFIDENCE_THRESHOLD: int = 75
MEDIUM_CONFIDENCE_THRESHOLD: int = 50
MISSING_HIGH_IMPACT_SCORE_CAP: int = 70

# ── Vehicle valuation fallback ──────────────────────────────────────────
# Used only when no market data source returned a usable value.

BASE_VALUES: dict[str, dict[str, float]] = {
    "Honda": {"Civic": 18000, "Accord": 22000, "CR-V": 25000, "Pilot": 32000},
    "Toyota": {"Camry": 21000, "Corolla": 17000, "RAV4": 28000, "Highlander": 35000},
    "Ford": {"F-150": 35000, "Mustang": 28000, "Escape": 22000, "Explorer": 32000},
    "Chevrolet": {"Silverado": 33000, "Camaro": 30000, "Equinox": 24000, "Corvette": 55000},
    "BMW": {"3 Series": 32000, "5 Series": 40000, "X3": 38000, "X5": 48000},
    "Mercedes-Benz": {"C-Class": 35000, "E-Class": 45000, "GLC": 42000, "GLE": 52000},
    "Tesla": {"Model 3": 38000, "Model Y": 45000, "Model S": 70000, "Model X": 80000},
    "Dodge": {"Challenger": 30000, "Charger": 28000, "Durango": 35000, "Ram 1500": 38000},
    "Volkswagen": {"Jetta": 18000, "Passat": 22000, "Tiguan": 25000, "Atlas": 32000},
}
DEFAULT_BASE_VALUE: float = 20000.0

AVG_MILES_PER_YEAR: int = 12000

LUXURY_MAKES: frozenset[str] = frozenset({
    "BMW", "Mercedes-Benz", "Audi", "Lexus", "Porsche", "Tesla", "Jaguar",
    "Land Rover", "Bentley", "Rolls-Royce", "Maserati", "Ferrari", "Lamborghini",
})
EXOTIC_VALUE_THRESHOLD: float = 100000.0

# Days an unusually cheap listing may stay up before it looks rejected
TOO_GOOD_FOR_TOO_LONG_THRESHOLDS: dict[str, int] = {
    "common": 21,
    "luxury": 30,
    "exotic": 45,
}

STALE_LISTING_DAYS: int = 45
