"""Vehicle Analysis pipeline.

Runs every collector for one ``AnalysisRequest`` and assembles the
``VehicleReport``:

1. Build vehicle info (model year decoded from the VIN when missing)
2. Vehicle history first; it supplies year / make / model / trim
3. Market, disaster, seller and recall collectors in parallel
4. Value estimate, price difference and pricing risk signals
5. Paid analyses (maintenance risk, market pricing, seller credibility)
6. Red flags, questions, data quality, verdict and summary

A collector that raises is logged and replaced by an empty result; only an
``InvalidVINError`` from the history provider aborts the run.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..schemas.data_quality_schema import DataQualityAssessment
from ..schemas.red_flag_schema import RedFlag
from ..schemas.report_schema import SourceData, VehicleReport
from ..schemas.vehicle_schema import (
    AnalysisRequest,
    AnalysisTier,
    ListingBehaviorSignals,
    MarketListingsData,
    MarketPricingAnalysis,
    PricingBehaviorSignals,
    SellerSignals,
    VehicleHistory,
    VehicleInfo,
)
from .data_quality import assess_data_quality
from .disaster_geography import DisasterGeography, collect_disaster_geography
from .maintenance_risk import assess_maintenance_risk, estimate_vehicle_class
from .market_listings import (
    calculate_average_market_value,
    estimate_fallback_value,
    fetch_market_data,
)
from .market_pricing import analyze_market_pricing
from .red_flags import PricingBasics, generate_red_flags
from .seller_signals import (
    analyze_too_good_for_too_long,
    analyze_unusually_low_price,
    calculate_seller_credibility,
    collect_seller_signals,
    pricing_vehicle_class,
)
from .vehicle_history import InvalidVINError, fetch_vehicle_history, generate_history_summary
from .vehicle_recalls import fetch_vehicle_recalls
from .verdict_assembly import assess_environmental_risk_contribution, assemble_verdict

logger = logging.getLogger(__name__)

# 10th VIN character; letters repeat every 30 years (A = 1980 or 2010)
_VIN_YEAR_CODES = {
    "A": 1980, "B": 1981, "C": 1982, "D": 1983, "E": 1984, "F": 1985, "G": 1986,
    "H": 1987, "J": 1988, "K": 1989, "L": 1990, "M": 1991, "N": 1992, "P": 1993,
    "R": 1994, "S": 1995, "T": 1996, "V": 1997, "W": 1998, "X": 1999, "Y": 2000,
    "1": 2001, "2": 2002, "3": 2003, "4": 2004, "5": 2005, "6": 2006, "7": 2007,
    "8": 2008, "9": 2009,
}

_TITLE_QUESTION = "Can I see the title? Is it clean, or does it have any brands (salvage, rebuilt, lemon)?"
_ACCIDENT_QUESTION = "Has this vehicle ever been in an accident or had any insurance claims?"
_LOW_PRICE_QUESTION = (
    "This price seems lower than market value. Is there anything wrong with the vehicle I should know about?"
)
_WHY_SELLING_QUESTION = "Why are you selling the vehicle?"


def extract_year_from_vin(vin: Optional[str], current_year: Optional[int] = None) -> Optional[int]:
    """Model year from the VIN's 10th character, preferring the newer cycle."""
    if not vin or len(vin) < 10:
        return None
    if current_year is None:
        current_year = datetime.now().year

    year = _VIN_YEAR_CODES.get(vin[9].upper())
    if year is None:
        return None
    if year < 2000 and year + 30 <= current_year + 1:
        return year + 30
    return year


# ===================================================================== #
#  Questions, known / unknown data, summary                               #
# ===================================================================== #

def _overpriced_question(price_diff: float) -> str:
    return (
        f"I've seen similar vehicles listed for ${abs(price_diff):,.0f} less. "
        "What justifies your price?"
    )


def generate_questions(flags: List[RedFlag], price_diff: float, tier: AnalysisTier = "free") -> List[str]:
    """Questions for the seller. Free reports get the two most important."""
    ids = {flag.id for flag in flags}

    if tier == "free":
        if "title-brands" in ids or "theft-record" in ids:
            second = _ACCIDENT_QUESTION
        elif "overpriced" in ids or price_diff > 0:
            second = _overpriced_question(price_diff)
        elif "underpriced" in ids:
            second = _LOW_PRICE_QUESTION
        elif "environmental-risk" in ids:
            second = "Has this vehicle ever been exposed to flooding or water damage?"
        else:
            second = _WHY_SELLING_QUESTION
        return [_TITLE_QUESTION, second]

    questions = [_TITLE_QUESTION, _WHY_SELLING_QUESTION]
    if "overpriced" in ids or price_diff > 0:
        questions.append(_overpriced_question(price_diff))
    if "underpriced" in ids:
        questions.append(_LOW_PRICE_QUESTION)
    if "high-mileage" in ids:
        questions.append("Has the timing belt/chain been replaced? When was the last major service?")
    if "suspicious-low-mileage" in ids:
        questions.append("Why does this vehicle have such low mileage? Has it been in storage?")
    if "high-age" in ids:
        questions.append("Do you have maintenance records? Has the vehicle had any major repairs?")
    if "relisting-detected" in ids:
        questions.append(
            "Has anyone else looked at or made offers on this vehicle? "
            "If so, why didn't those sales go through?"
        )
    if "no-vin" in ids:
        questions.append(_ACCIDENT_QUESTION)
    questions.append("Are there any current mechanical issues or warning lights on the dashboard?")
    questions.append("Can I have the vehicle inspected by my mechanic before purchasing?")
    return questions


def build_known_unknown(
    info: VehicleInfo,
    sources: SourceData,
    tier: AnalysisTier,
    location: Optional[str],
) -> tuple[List[str], List[str]]:
    known: List[str] = []
    unknown: List[str] = []
    history = sources.vehicle_history

    if info.vin:
        known.append("VIN verified")
        if history and history.nmvtis:
            known.append("NMVTIS title check completed")
        if tier == "paid" and history and history.carfax:
            known.append("Full vehicle history report")
    else:
        unknown.append("VIN not provided")

    if info.year:
        known.append(f"Year: {info.year}")
    if info.make:
        known.append(f"Make: {info.make}")
    if info.model:
        known.append(f"Model: {info.model}")
    if info.mileage:
        known.append(f"Mileage: {info.mileage:,}")

    market = sources.market_data
    if market and market.auto_dev:
        known.append("Auto.dev market listings")
    if market and market.market_check:
        known.append("MarketCheck competitive pricing")

    if location and sources.disaster_data is not None:
        known.append("FEMA disaster history checked")

    if sources.recalls:
        count = len(sources.recalls)
        known.append(f"{count} open recall{'' if count == 1 else 's'} found (NHTSA)")
    elif sources.recalls is not None:
        known.append("NHTSA recall check completed (no open recalls)")

    if tier == "free":
        unknown.extend([
            "Detailed accident history",
            "Complete service records",
            "Seller credibility analysis",
        ])
    elif not (history and history.carfax):
        unknown.append("Some service records may be incomplete")

    unknown.append("Physical inspection results")
    if not info.vin:
        unknown.append("Theft records")

    return known, unknown


def _ordinal(n: int) -> str:
    if 10 <= n % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"


def _price_context(verdict: str, percent: int, decimals: int, above_label: str) -> Optional[str]:
    if verdict == "deal" and percent < 0:
        return f"This appears to be a solid deal. The asking price is {abs(percent):.{decimals}f}% below market value."
    if verdict == "deal" and 0 < percent < 15:
        return "This vehicle is priced reasonably."
    if verdict == "caution" and percent > 15:
        return f"Priced {percent:.{decimals}f}% above {above_label}."
    return None


def _pricing_analysis_context(verdict: str, pricing: MarketPricingAnalysis) -> Optional[str]:
    position = pricing.asking_price_position
    percentile = _ordinal(round(position.percentile))
    if verdict == "deal" and position.position == "below" and position.difference_percent <= -10:
        return (
            "This appears to be a solid deal. Market pricing analysis shows the asking price is "
            f"significantly below comparable listings ({percentile} percentile)."
        )
    if verdict == "deal" and position.position in ("below", "at"):
        return (
            "This vehicle is priced reasonably. Market pricing analysis indicates the asking "
            "price is at or below the median of comparable listings."
        )
    if verdict == "caution" and position.position == "above" and position.difference_percent >= 15:
        return (
            "Market pricing analysis shows the asking price is significantly above comparable "
            f"listings ({percentile} percentile)."
        )
    return None


def build_summary(
    explanation: str,
    verdict: str,
    price_diff_percent: int,
    tier: AnalysisTier,
    sources: SourceData,
    data_quality: Optional[DataQualityAssessment],
) -> str:
    """Verdict explanation with price context prepended (and paid-tier notes appended)."""
    if tier == "free":
        lead = _price_context(verdict, price_diff_percent, 0, "market")
        return f"{lead} {explanation}" if lead else explanation

    pricing = sources.market_pricing_analysis
    if pricing is not None:
        lead = _pricing_analysis_context(verdict, pricing)
    else:
        lead = _price_context(verdict, price_diff_percent, 1, "market value")
    summary = f"{lead} {explanation}" if lead else explanation

    maintenance = sources.maintenance_risk_assessment
    if (
        maintenance is not None
        and maintenance.overall_risk == "elevated"
        and "maintenance risk" not in summary
        and "maintenance concerns" not in summary
    ):
        summary += " Maintenance risk assessment indicates elevated forward-looking maintenance concerns."

    if (
        assess_environmental_risk_contribution(sources.environmental_risk) == "high"
        and "environmental" not in summary
        and "water damage" not in summary
    ):
        summary += " Environmental risk assessment indicates high exposure to disaster events."

    if data_quality is not None and data_quality.overall_confidence == "low":
        summary += " Note: Limited data quality may affect confidence in this assessment."

    return summary


# ===================================================================== #
#  Pipeline                                                               #
# ===================================================================== #

async def _skipped() -> None:
    return None


def _market_median(market: Optional[MarketListingsData]) -> Optional[float]:
    if market is None:
        return None
    values = []
    if market.auto_dev and market.auto_dev.market_average:
        values.append(market.auto_dev.market_average)
    if market.market_check:
        values.append(market.market_check.competitive_price)
    if not values:
        return None
    values.sort()
    mid = len(values) // 2
    if len(values) % 2 == 0:
        return (values[mid - 1] + values[mid]) / 2
    return values[mid]


def _merge_pricing_signals(
    signals: Optional[SellerSignals],
    updates: Dict[str, Any],
) -> Optional[SellerSignals]:
    if not updates:
        return signals
    if signals is None:
        signals = SellerSignals(
            listing_behavior=ListingBehaviorSignals(),
            pricing_behavior=PricingBehaviorSignals(),
        )
    pricing = signals.pricing_behavior or PricingBehaviorSignals()
    return signals.model_copy(update={"pricing_behavior": pricing.model_copy(update=updates)})


async def analyze_vehicle(request: AnalysisRequest, now: Optional[datetime] = None) -> VehicleReport:
    """Run the full analysis for one request.

    Raises
    ------
    InvalidVINError
        When the history provider rejects the VIN.
    """
    now = now or datetime.utcnow()
    current_year = now.year
    tier = request.tier

    logger.info(
        "Analysis start: vin=%s year=%s make=%s model=%s tier=%s",
        "provided" if request.vin else "missing",
        request.year,
        request.make,
        request.model,
        tier,
    )

    # ── 1. Vehicle info ──────────────────────────────────────────────────
    info = VehicleInfo(
        vin=request.vin,
        year=request.year,
        make=request.make,
        model=request.model,
        mileage=request.mileage,
        asking_price=request.asking_price,
    )
    if not info.year and request.vin:
        info.year = extract_year_from_vin(request.vin, current_year)
        if info.year:
            logger.info("Decoded model year %d from VIN", info.year)

    # ── 2. Vehicle history ───────────────────────────────────────────────
    history: Optional[VehicleHistory] = None
    if request.vin:
        try:
            history = await fetch_vehicle_history(request.vin, tier)
        except InvalidVINError:
            raise
        except Exception as exc:
            logger.warning("Vehicle history failed: %s; continuing without history", exc)

    details = history.nmvtis.vehicle_details if history and history.nmvtis else None
    if details is not None:
        info.year = details.year or info.year
        info.make = details.make or info.make
        info.model = details.model or info.model
        info.trim = details.trim or info.trim

    # ── 3. Parallel collectors ───────────────────────────────────────────
    has_vehicle = bool(info.year and info.make and info.model)
    if not has_vehicle:
        logger.warning("Skipping market data and recalls: year/make/model incomplete")

    tasks = {
        "market": (
            fetch_market_data(info.year, info.make, info.model, info.mileage, tier, info.trim)
            if has_vehicle else _skipped()
        ),
        "disaster": collect_disaster_geography(request.location, now),
        "seller": collect_seller_signals(request.vin, now) if request.vin else _skipped(),
        "recalls": fetch_vehicle_recalls(info.make, info.model, info.year) if has_vehicle else _skipped(),
    }

    t_start = time.perf_counter()
    results = await asyncio.gather(*tasks.values(), return_exceptions=True)
    logger.info("Parallel collection completed in %.2fs", time.perf_counter() - t_start)

    collected: Dict[str, Any] = {}
    for name, result in zip(tasks, results):
        if isinstance(result, Exception):
            logger.warning("%s collector failed: %s; using empty result", name, result)
            result = None
        collected[name] = result

    market: Optional[MarketListingsData] = collected["market"]
    geography: Optional[DisasterGeography] = collected["disaster"]
    seller_signals: Optional[SellerSignals] = collected["seller"]

    # ── 4. Value estimate and pricing signals ────────────────────────────
    estimated = calculate_average_market_value(market) if market else 0
    if not estimated:
        if info.year and info.make and info.model:
            estimated = estimate_fallback_value(info.make, info.model, info.year, info.mileage, current_year)
        else:
            estimated = request.asking_price * 0.95
        logger.info("No market value available; fallback estimate %.0f", estimated)

    price_diff = request.asking_price - estimated
    price_diff_percent = round(price_diff / estimated * 100)
    info.estimated_value = estimated
    info.price_difference = price_diff
    info.price_difference_percent = price_diff_percent

    low_price = analyze_unusually_low_price(request.asking_price, estimated, _market_median(market))
    longevity = (
        seller_signals.listing_behavior.listing_longevity
        if seller_signals and seller_signals.listing_behavior
        else None
    )
    too_long = analyze_too_good_for_too_long(
        longevity.days_listed if longevity else 0,
        low_price is not None and low_price.detected,
        pricing_vehicle_class(info.make, estimated),
    )
    updates = {}
    if low_price:
        updates["unusually_low_price"] = low_price
    if too_long:
        updates["too_good_for_too_long"] = too_long
    seller_signals = _merge_pricing_signals(seller_signals, updates)

    sources = SourceData(
        vehicle_history=history,
        market_data=market,
        disaster_data=geography.disaster_data if geography else None,
        disaster_risk=geography.disaster_risk if geography else None,
        environmental_risk=geography.environmental_risk if geography else None,
        seller_signals=seller_signals,
        recalls=collected["recalls"],
    )

    # ── 5. Paid analyses ─────────────────────────────────────────────────
    if tier == "paid":
        owners = history.carfax.ownership_changes if history and history.carfax else None
        sources.maintenance_risk_assessment = assess_maintenance_risk(
            info.year,
            info.mileage,
            owners,
            estimate_vehicle_class(info.make, info.model),
            current_year,
        )
        sources.market_pricing_analysis = analyze_market_pricing(market, request.asking_price, request.location)
        sources.history_summary = generate_history_summary(history)
        if seller_signals is not None:
            sources.seller_analysis = calculate_seller_credibility(seller_signals)

    # ── 6. Flags, data quality, verdict ──────────────────────────────────
    basics = PricingBasics(
        price_diff=price_diff,
        price_diff_percent=price_diff_percent,
        has_vin=bool(request.vin),
        year=info.year or current_year - 5,
        mileage=info.mileage,
    )
    flags = generate_red_flags(basics, sources, tier, current_year)
    questions = generate_questions(flags, price_diff, tier)
    known, unknown = build_known_unknown(info, sources, tier, request.location)

    data_quality = assess_data_quality(request, info, sources, tier)

    if tier == "paid":
        reasoning = assemble_verdict(
            flags,
            data_quality,
            sources.maintenance_risk_assessment,
            sources.market_pricing_analysis,
            sources.environmental_risk,
        )
    else:
        reasoning = assemble_verdict(flags, data_quality)

    summary = build_summary(
        reasoning.explanation,
        reasoning.verdict,
        price_diff_percent,
        tier,
        sources,
        data_quality,
    )

    logger.info(
        "Analysis complete: verdict=%s confidence=%d flags=%d data_quality=%s",
        reasoning.verdict,
        reasoning.confidence,
        len(flags),
        data_quality.overall_confidence,
    )

    return VehicleReport(
        tier=tier,
        verdict=reasoning.verdict,
        confidence_score=reasoning.confidence,
        summary=summary,
        red_flags=flags,
        questions_to_ask=questions,
        known_data=known,
        unknown_data=unknown,
        vehicle_info=info,
        sources=sources,
        data_quality=data_quality,
        verdict_reasoning=reasoning,
    )
