"""Red Flag generator.

Turns collected source data into a list of ``RedFlag`` findings, sorted
critical -> high -> medium -> low. Free reports get shortened titles and
descriptions; paid reports carry expanded details, methodology and the
seller-behavior flags.

Rules
-----
- NO API calls
- Environmental exposure is reported as a probabilistic signal only
- Every generated id is one of the ids listed in ``constants``
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from ..constants import AVG_MILES_PER_YEAR, SEVERITY_ORDER
from ..schemas.red_flag_schema import RedFlag, Severity
from ..schemas.report_schema import SourceData
from ..schemas.vehicle_schema import (
    AnalysisTier,
    DisasterRiskAnalysis,
    EnvironmentalRisk,
    PricingBehaviorSignals,
    SellerSignals,
    VehicleHistory,
    VehicleRecall,
)

_MARKET_SOURCE = "Market Listings Data (Auto.dev, MarketCheck)"


@dataclass(frozen=True)
class PricingBasics:
    """Vehicle facts the flag rules need besides the collected sources."""

    price_diff: float
    price_diff_percent: int
    has_vin: bool
    year: int
    mileage: Optional[int] = None


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def _money(amount: float) -> str:
    return f"${amount:,.0f}"


# ===================================================================== #
#  Pricing                                                                #
# ===================================================================== #

def _pricing_flags(basics: PricingBasics, tier: AnalysisTier) -> List[RedFlag]:
    pct = basics.price_diff_percent
    paid = tier == "paid"

    if pct > 15:
        severity: Severity = "critical" if pct > 30 else "high" if pct > 20 else "medium"
        return [
            RedFlag(
                id="overpriced",
                title=f"Overpriced by {pct}%" if paid else "Overpriced",
                description=(
                    "This vehicle is listed significantly above market value. The asking "
                    f"price is {_money(abs(basics.price_diff))} more than comparable vehicles."
                    if paid
                    else "This vehicle appears to be listed above market value."
                ),
                severity=severity,
                category="pricing",
                expanded_details=(
                    "Based on current market data from Auto.dev listings and MarketCheck, "
                    "similar vehicles in comparable condition typically sell for 15-20% "
                    "less than this asking price."
                    if paid
                    else None
                ),
                methodology=(
                    "Compared against average retail prices from multiple market data sources."
                    if paid
                    else None
                ),
                data_source=_MARKET_SOURCE if paid else None,
            )
        ]

    if pct < -20:
        return [
            RedFlag(
                id="underpriced",
                title=f"Priced {abs(pct)}% Below Market" if paid else "Below Market Price",
                description=(
                    "This price seems suspiciously low. While it could be a great deal, "
                    "significant underpricing often indicates hidden problems."
                    if paid
                    else "This price seems lower than expected."
                ),
                severity="high" if pct < -35 else "medium",
                category="pricing",
                expanded_details=(
                    "Vehicles priced this far below market often have undisclosed issues "
                    "like salvage titles, flood damage, or major mechanical problems. "
                    "Proceed with extra caution."
                    if paid
                    else None
                ),
                methodology=(
                    "Compared against average retail prices from multiple market data sources."
                    if paid
                    else None
                ),
                data_source="Market Listings Data" if paid else None,
            )
        ]

    return []


def _pricing_behavior_flags(pricing: Optional[PricingBehaviorSignals]) -> List[RedFlag]:
    if pricing is None:
        return []

    flags: List[RedFlag] = []

    low = pricing.unusually_low_price
    if low is not None and low.detected:
        below = abs(low.below_market_percent)
        if below >= 30:
            severity: Severity = "high"
        elif below >= 20:
            severity = "medium"
        else:
            severity = "low"
        anchor_name = "median" if low.market_median else "estimated value"
        anchor_value = low.asking_price / (1 + low.below_market_percent / 100)
        flags.append(
            RedFlag(
                id="unusually-low-price",
                title=f"Unusually Low Price ({below:.1f}% below market)",
                description=(
                    "This vehicle's asking price is meaningfully below expected valuation "
                    "anchors or market medians for similar vehicles. This pricing anomaly "
                    "warrants extra scrutiny but does not imply a defect."
                ),
                severity=severity,
                category="pricing",
                expanded_details=(
                    f"The asking price of {_money(low.asking_price)} is {below:.1f}% below "
                    f"the market {anchor_name} of {_money(anchor_value)}. This is a "
                    "probabilistic pricing behavior signal, not proof of seller intent or "
                    "vehicle damage. When combined with other risk signals (seller "
                    "behavior, flood exposure, data gaps), it may indicate elevated risk. "
                    f"Confidence: {low.confidence}%."
                ),
                methodology=(
                    "Compared asking price against market median and estimated value from "
                    f"multiple data sources. Threshold: {low.threshold_used:g}% below market."
                ),
                data_source=_MARKET_SOURCE,
            )
        )

    too_long = pricing.too_good_for_too_long
    if too_long is not None and too_long.detected:
        days_over = too_long.days_listed - too_long.threshold_days
        if days_over >= 30:
            severity = "high"
        elif days_over >= 14:
            severity = "medium"
        else:
            severity = "low"
        flags.append(
            RedFlag(
                id="too-good-for-too-long",
                title=f"Too Good for Too Long ({too_long.days_listed} days listed)",
                description=(
                    "This unusually low-priced vehicle has remained actively listed for "
                    f"{too_long.days_listed} days, exceeding the reasonable time threshold "
                    f"of {too_long.threshold_days} days for this vehicle class. This may "
                    "indicate possible market rejection."
                ),
                severity=severity,
                category="pricing",
                expanded_details=(
                    "An unusually low-priced vehicle that remains listed for "
                    f"{too_long.days_listed} days ({days_over} days beyond the "
                    f"{too_long.threshold_days}-day threshold) may indicate market "
                    "rejection. This is a probabilistic pricing behavior signal, not proof "
                    "of seller intent or vehicle damage. When combined with other risk "
                    f"signals, it may indicate elevated risk. Confidence: {too_long.confidence}%."
                ),
                methodology=(
                    "Evaluated listing duration against vehicle class-specific thresholds. "
                    'This signal only triggers when "Unusually Low Price" is also detected.'
                ),
                data_source="Auto.dev Listings API + Market Analysis",
            )
        )

    return flags


# ===================================================================== #
#  Vehicle history                                                        #
# ===================================================================== #

def _history_flags(history: Optional[VehicleHistory], tier: AnalysisTier) -> List[RedFlag]:
    if history is None:
        return []

    paid = tier == "paid"
    flags: List[RedFlag] = []

    title = history.nmvtis
    if title is not None:
        if title.title_brands:
            flags.append(
                RedFlag(
                    id="title-brands",
                    title="Title Brands Detected",
                    description=(
                        "This vehicle has the following title brands: "
                        f"{', '.join(title.title_brands)}. This significantly impacts "
                        "value and insurability."
                        if paid
                        else "Vehicle has title brands on record."
                    ),
                    severity="critical",
                    category="title",
                    expanded_details=(
                        "Title brands indicate the vehicle has been damaged, salvaged, or "
                        "otherwise compromised. Insurance may be difficult to obtain, and "
                        "resale value is permanently affected."
                        if paid
                        else None
                    ),
                    data_source="NMVTIS Database",
                )
            )
        if title.theft_records:
            flags.append(
                RedFlag(
                    id="theft-record",
                    title="Theft Record Found",
                    description="This vehicle has been reported stolen in the past.",
                    severity="critical",
                    category="history",
                    expanded_details=(
                        "Even if recovered, vehicles with theft history may have hidden "
                        "damage or tampering. Verify the vehicle was properly recovered "
                        "and cleared by law enforcement."
                        if paid
                        else None
                    ),
                    data_source="NMVTIS Database",
                )
            )

    accidents = history.carfax
    if paid and accidents is not None:
        if accidents.accident_indicators:
            flags.append(
                RedFlag(
                    id="accident-history",
                    title="Accident History Detected",
                    description="Vehicle history shows accident indicators.",
                    severity="high",
                    category="history",
                    expanded_details=(
                        "History records show this vehicle has been involved in at least "
                        "one accident. Request detailed body shop records and have a "
                        "mechanic inspect for frame damage."
                    ),
                    data_source="Vehicle History Report",
                )
            )

        snapshots = sorted(accidents.mileage_snapshots, key=lambda s: s.date)
        for previous, current in zip(snapshots, snapshots[1:]):
            if current.mileage < previous.mileage:
                flags.append(
                    RedFlag(
                        id="odometer-rollback",
                        title="Possible Odometer Rollback",
                        description=(
                            "Mileage records show inconsistencies that may indicate "
                            "odometer tampering."
                        ),
                        severity="critical",
                        category="history",
                        expanded_details=(
                            f"Service records show mileage decreased from "
                            f"{previous.mileage:,} to {current.mileage:,}. This is a "
                            "serious red flag."
                        ),
                        data_source="Vehicle History Report",
                    )
                )
                break

    return flags


# ===================================================================== #
#  Environment and disasters                                              #
# ===================================================================== #

def _environmental_flags(environmental: Optional[EnvironmentalRisk]) -> List[RedFlag]:
    if environmental is None or not environmental.disaster_presence:
        return []

    recent = environmental.recency == "recent"
    flood = environmental.flood_zone_risk == "high" or any(
        "flood" in kind.lower() or "hurricane" in kind.lower()
        for kind in environmental.disaster_types
    )
    if not (recent or flood):
        return []

    count = len(environmental.recent_disasters) + len(environmental.historical_disasters)
    flood_note = "Area has high flood risk or flood-related disaster history. " if flood else ""
    return [
        RedFlag(
            id="environmental-risk",
            title="Potential Environmental Exposure",
            description=(
                "Vehicle appears to be located in an area with "
                f"{'recent' if recent else 'historical'} disaster history."
            ),
            severity="high" if recent and flood else "medium",
            category="disaster",
            expanded_details=(
                f"This vehicle appears exposed to {_plural(count, 'disaster declaration')} "
                f"in the area. {flood_note}This is a probabilistic signal based on location "
                "data, not proof of actual damage. Inspect carefully for water damage, "
                "corrosion, or other environmental issues."
            ),
            data_source="FEMA Disaster Declarations",
        )
    ]


def _disaster_flags(risk: Optional[DisasterRiskAnalysis], tier: AnalysisTier) -> List[RedFlag]:
    if risk is None or not risk.has_risk or risk.risk_level == "low":
        return []

    paid = tier == "paid"
    if paid:
        title = f"{'High' if risk.risk_level == 'high' else 'Moderate'} Disaster Risk Detected"
        description = (
            risk.details[0]
            if risk.details
            else "This vehicle is registered in an area with natural disaster history."
        )
    else:
        title = "Disaster Area History"
        description = "Vehicle may be from an area with disaster history."

    return [
        RedFlag(
            id="disaster-risk",
            title=title,
            description=description,
            severity="high" if risk.risk_level == "high" else "medium",
            category="disaster",
            expanded_details=" ".join(risk.details) if paid else None,
            data_source="FEMA",
        )
    ]


# ===================================================================== #
#  Seller behavior (paid only)                                            #
# ===================================================================== #

def _seller_flags(signals: Optional[SellerSignals]) -> List[RedFlag]:
    if signals is None:
        return []

    flags: List[RedFlag] = []
    listing = signals.listing_behavior

    relisting = listing.relisting_detection if listing else None
    if relisting is not None and relisting.detected:
        flags.append(
            RedFlag(
                id="relisting-detected",
                title="Relisting Pattern Detected",
                description=(
                    f"This vehicle has been listed {_plural(relisting.times_seen, 'time')} "
                    "in recent months."
                ),
                severity="high" if relisting.times_seen > 2 else "medium",
                category="listing",
                expanded_details=(
                    "Frequent relisting often indicates issues discovered during buyer "
                    "inspections. Ask the seller why previous sales fell through."
                ),
                data_source="Listing Behavior Analysis",
            )
        )

    longevity = listing.listing_longevity if listing else None
    if longevity is not None and longevity.is_stale:
        flags.append(
            RedFlag(
                id="stale-listing",
                title="Listing Longevity Concern",
                description=f"Vehicle has been listed for {longevity.days_listed} days without selling.",
                severity="medium",
                category="listing",
                expanded_details=(
                    "Extended listing period suggests the vehicle is overpriced or has "
                    "issues that deter buyers. This gives you strong negotiating leverage."
                ),
                data_source="Listing Behavior Analysis",
            )
        )

    pricing = signals.pricing_behavior
    volatility = pricing.price_volatility if pricing else None
    if volatility is not None and volatility.detected:
        changes = _plural(volatility.price_changes, "price change")
        drops = len(volatility.significant_drops)
        oscillations = volatility.oscillations
        if drops and oscillations:
            description = (
                f"{changes} with {_plural(drops, 'significant drop')} and "
                f"{_plural(oscillations, 'oscillation')}."
            )
        elif drops:
            description = f"{changes} with {_plural(drops, 'significant drop')} (5%+)."
        elif oscillations:
            description = (
                f"{changes} with {_plural(oscillations, 'oscillation')} (price dropped "
                "then increased, or multiple drops)."
            )
        else:
            description = f"{changes} detected within {volatility.time_window} days."

        flags.append(
            RedFlag(
                id="price-volatility",
                title="Price Volatility Detected",
                description=description,
                severity=volatility.volatility_level,
                category="listing",
                expanded_details=(
                    "Price volatility may indicate issues discovered during inspections or "
                    "failed deals. This is a behavioral risk signal, not proof of a "
                    "problem. Multiple price drops or oscillations suggest the seller may "
                    "be adjusting price in response to buyer concerns."
                ),
                data_source="Price Behavior Analysis",
            )
        )

    return flags


# ===================================================================== #
#  Data gaps, ownership and recalls                                       #
# ===================================================================== #

def _ownership_flags(basics: PricingBasics, tier: AnalysisTier, current_year: int) -> List[RedFlag]:
    paid = tier == "paid"
    age = current_year - basics.year
    flags: List[RedFlag] = []

    if not basics.has_vin:
        flags.append(
            RedFlag(
                id="no-vin",
                title="VIN Not Verified",
                description=(
                    "Without a VIN, we cannot verify vehicle history, recalls, or title "
                    "status. This significantly limits our analysis."
                    if paid
                    else "Without a VIN, we cannot verify vehicle history."
                ),
                severity="high",
                category="data-gap",
                expanded_details=(
                    "The Vehicle Identification Number (VIN) is essential for accessing "
                    "NMVTIS data, recall information, and verifying the vehicle is not "
                    "stolen. Always obtain the VIN before proceeding."
                    if paid
                    else None
                ),
            )
        )

    if age > 10:
        flags.append(
            RedFlag(
                id="high-age",
                title="Vehicle Over 10 Years Old",
                description=f"At {age} years old, this vehicle may require more maintenance.",
                severity="low",
                category="ownership",
                expanded_details=(
                    "Older vehicles often have worn seals, aging electrical systems, and "
                    "may be more expensive to insure. Request maintenance records to "
                    "verify proper care."
                    if paid
                    else None
                ),
            )
        )

    mileage = basics.mileage
    if mileage:
        expected = age * AVG_MILES_PER_YEAR
        if mileage > expected * 1.5:
            above = round((mileage / expected - 1) * 100) if expected else None
            paid_text = f"This vehicle has {mileage:,} miles"
            paid_text += (
                f", which is {above}% higher than average for its age."
                if above is not None
                else ", which is high for a vehicle of this age."
            )
            flags.append(
                RedFlag(
                    id="high-mileage",
                    title="Higher Than Average Mileage",
                    description=paid_text if paid else f"This vehicle has {mileage:,} miles.",
                    severity="high" if mileage > expected * 2 else "medium",
                    category="ownership",
                    expanded_details=(
                        "High mileage vehicles may have more wear on critical components. "
                        "Ensure timing belt/chain service has been performed if applicable, "
                        "and check for oil leaks."
                        if paid
                        else None
                    ),
                )
            )
        elif mileage < expected * 0.4 and age > 3:
            flags.append(
                RedFlag(
                    id="suspicious-low-mileage",
                    title="Unusually Low Mileage",
                    description=(
                        f"Only {mileage:,} miles on a {age}-year-old vehicle is suspicious. "
                        "This could indicate odometer tampering or extended storage."
                        if paid
                        else f"Only {mileage:,} miles on a {age}-year-old vehicle."
                    ),
                    severity="medium",
                    category="history",
                    expanded_details=(
                        "While genuinely low-mileage vehicles exist, be cautious. Vehicles "
                        "that sat unused can develop issues like dried seals, degraded "
                        "fluids, and battery problems. Verify the odometer reading matches "
                        "service records."
                        if paid
                        else None
                    ),
                )
            )

    flags.append(
        RedFlag(
            id="private-sale",
            title="Private Party Sale",
            description="Private sales offer no warranty protection.",
            severity="low",
            category="ownership",
            expanded_details=(
                "Unlike dealer sales, private party transactions typically do not include "
                "warranty coverage. Consider getting a pre-purchase inspection from an "
                "independent mechanic."
                if paid
                else None
            ),
        )
    )
    return flags


def _recall_flags(recalls: Optional[List[VehicleRecall]]) -> List[RedFlag]:
    if not recalls:
        return []
    count = len(recalls)
    return [
        RedFlag(
            id="open-recalls",
            title=f"{count} Open Recall{'' if count == 1 else 's'} Found",
            description=(
                f"This vehicle has {_plural(count, 'open safety recall')} from NHTSA that "
                "need to be addressed."
            ),
            severity="high",
            category="history",
            expanded_details=(
                "Open recalls indicate safety issues that the manufacturer must fix at no "
                "cost. Verify with the seller that these recalls have been addressed, or "
                "factor in the cost and time to have them fixed before purchase."
            ),
            data_source="NHTSA Recalls Database",
        )
    ]


# ===================================================================== #
#  Public API                                                             #
# ===================================================================== #

def sort_by_severity(flags: List[RedFlag]) -> List[RedFlag]:
    """Stable sort, most severe first."""
    return sorted(flags, key=lambda flag: SEVERITY_ORDER.get(flag.severity, len(SEVERITY_ORDER)))


def generate_red_flags(
    basics: PricingBasics,
    sources: SourceData,
    tier: AnalysisTier = "free",
    current_year: Optional[int] = None,
) -> List[RedFlag]:
    """Build every red flag supported by the collected data.

    Parameters
    ----------
    basics : PricingBasics
        Price difference against the estimate, VIN presence, year, mileage.
    sources : SourceData
        Collector output for this run.
    tier : "free" | "paid"
        Seller-behavior and accident flags are paid-only.
    current_year : int, optional
        Reference year for age calculations; defaults to today.

    Returns
    -------
    list[RedFlag]
        Sorted critical -> high -> medium -> low.
    """
    if current_year is None:
        current_year = datetime.now().year

    seller_pricing = (
        sources.seller_signals.pricing_behavior if sources.seller_signals is not None else None
    )

    flags: List[RedFlag] = []
    flags.extend(_pricing_flags(basics, tier))
    flags.extend(_pricing_behavior_flags(seller_pricing))
    flags.extend(_history_flags(sources.vehicle_history, tier))
    flags.extend(_environmental_flags(sources.environmental_risk))
    flags.extend(_disaster_flags(sources.disaster_risk, tier))
    if tier == "paid":
        flags.extend(_seller_flags(sources.seller_signals))
    flags.extend(_ownership_flags(basics, tier, current_year))
    flags.extend(_recall_flags(sources.recalls))

    return sort_by_severity(flags)
