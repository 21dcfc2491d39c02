"""Market Pricing Analysis (paid reports).

Places the asking price among comparable listings: price bands, percentile
position, negotiation leverage and the caveats of the underlying data.

Prices come from Auto.dev raw listings when present. Otherwise five
approximate quantiles are derived from the aggregated Auto.dev range or the
MarketCheck median.

Rules
-----
- NO authoritative valuation; observed listings only
- Deterministic and side-effect free
"""

from __future__ import annotations

import logging
from typing import List, Optional

from ..schemas.vehicle_schema import (
    AskingPricePosition,
    MarketListingsData,
    MarketPricingAnalysis,
    NegotiationLeverage,
    PriceRanges,
    PricingDataQuality,
    RawListing,
)
from .disaster_geography import extract_state

logger = logging.getLogger(__name__)

ESTIMATED_AUTO_DEV_COUNT = 10


def _listing_type(listings: List[RawListing]) -> str:
    dealers = sum(1 for l in listings if l.listing_type == "dealer" or l.dealer)
    private = sum(1 for l in listings if l.listing_type == "private-party")
    if dealers > private * 2:
        return "dealer"
    if private > dealers * 2:
        return "private-party"
    if dealers and private:
        return "mixed"
    return "dealer"


def _listing_scope(listings: List[RawListing]) -> str:
    states = sorted({l.state for l in listings if l.state})
    if len(states) == 1:
        return states[0]
    if 1 < len(states) <= 3:
        return f"{', '.join(states)} region"
    if states:
        return "Multi-regional"
    return "National"


def calculate_percentile(value: float, sorted_prices: List[float]) -> int:
    """Share of prices strictly below *value*, as a whole percentage."""
    if not sorted_prices:
        return 50
    below = sum(1 for p in sorted_prices if p < value)
    return round(below / len(sorted_prices) * 100)


def _market_comparison(position: str, diff: float) -> str:
    gap = abs(diff)
    if position == "at":
        return (
            "The asking price aligns closely with the median market price, indicating a "
            "market-rate valuation that reflects typical pricing for similar vehicles."
        )
    if position == "below":
        if gap >= 15:
            return (
                f"The asking price is {gap:.0f}% below the median market price, placing it in "
                "the lower range of comparable listings. This suggests the vehicle may be priced "
                "competitively or below market value."
            )
        if gap >= 5:
            return (
                f"The asking price is {gap:.0f}% below the median market price, indicating a "
                "competitive position in the lower-mid range of the market."
            )
        return (
            "The asking price is slightly below the median market price, positioning it in the "
            "lower portion of the typical price range."
        )
    if gap >= 15:
        return (
            f"The asking price is {gap:.0f}% above the median market price, placing it in the "
            "upper range of comparable listings. This may indicate premium pricing or additional "
            "features/condition factors."
        )
    if gap >= 5:
        return (
            f"The asking price is {gap:.0f}% above the median market price, positioning it in "
            "the upper-mid range of the market."
        )
    return (
        "The asking price is slightly above the median market price, positioning it in the "
        "upper portion of the typical price range."
    )


def negotiation_leverage(position: str, diff: float) -> NegotiationLeverage:
    gap = abs(diff)

    if position == "below" and gap >= 10:
        return NegotiationLeverage(
            level="limited",
            explanation=(
                f"With the asking price already {gap:.0f}% below median, there may be limited "
                "room for negotiation unless the seller is motivated. The price appears "
                "competitive relative to the market."
            ),
            suggested_approach=(
                "Focus negotiation on vehicle condition, maintenance records, or included "
                "features rather than price reduction. If the vehicle checks out well, the "
                "current price may represent fair value."
            ),
        )
    if position == "below" and gap >= 5:
        return NegotiationLeverage(
            level="moderate",
            explanation=(
                f"The asking price is {gap:.0f}% below median, suggesting some negotiation room "
                "may exist, though the starting position is already favorable."
            ),
            suggested_approach=(
                "A modest negotiation (2-5%) may be reasonable, but be prepared that the seller "
                "may be firm given the competitive pricing. Emphasize your readiness to move "
                "quickly if terms are agreeable."
            ),
        )
    if position == "at":
        return NegotiationLeverage(
            level="moderate",
            explanation=(
                "The asking price aligns with market median, providing a neutral starting point "
                "for negotiation."
            ),
            suggested_approach=(
                "Standard negotiation approaches apply. Consider factors like vehicle condition, "
                "mileage, included features, and seller motivation when determining your offer "
                "strategy."
            ),
        )
    if position == "above" and gap >= 15:
        return NegotiationLeverage(
            level="strong",
            explanation=(
                f"The asking price is {gap:.0f}% above median, providing significant potential "
                "for negotiation. The price appears elevated relative to comparable listings."
            ),
            suggested_approach=(
                "You have strong leverage for negotiation. Reference comparable listings and "
                "market data to support a lower offer. Consider starting 10-15% below asking and "
                "negotiating toward a price closer to median market value."
            ),
        )
    if position == "above" and gap >= 5:
        return NegotiationLeverage(
            level="moderate",
            explanation=f"The asking price is {gap:.0f}% above median, providing some negotiation room.",
            suggested_approach=(
                "Moderate negotiation leverage exists. Consider starting 5-8% below asking and "
                "working toward a price closer to median. Be prepared to justify your offer with "
                "market data."
            ),
        )
    return NegotiationLeverage(
        level="limited",
        explanation="The asking price is slightly above median, with limited negotiation leverage.",
        suggested_approach=(
            "Focus on value factors like condition, maintenance history, and included features. "
            "A modest negotiation (2-4%) may be reasonable, but the price is relatively close to "
            "market median."
        ),
    )


def _pricing_data_quality(count: int, prices: List[float]) -> PricingDataQuality:
    if count >= 15:
        sparsity = "adequate"
    elif count >= 5:
        sparsity = "moderate"
    else:
        sparsity = "sparse"

    median = prices[len(prices) // 2]
    spread = (max(prices) - min(prices)) / median * 100 if median else 0
    return PricingDataQuality(
        has_enough_data=count >= 5,
        data_sparsity=sparsity,
        regional_variance=spread > 30,
    )


def _limitations(quality: PricingDataQuality, count: int, scope: str) -> List[str]:
    notes: List[str] = []
    if quality.data_sparsity == "sparse":
        notes.append(
            f"Limited comparable listings ({count} found) may reduce pricing precision. "
            "Market analysis should be considered approximate."
        )
    if quality.regional_variance:
        notes.append(
            "Significant price variation observed across listings, which may reflect regional "
            "differences, condition variations, or feature differences not captured in this "
            "analysis."
        )
    if count < 10:
        notes.append(
            "Small sample size limits statistical confidence. Consider this analysis as "
            "directional guidance rather than definitive valuation."
        )
    if scope == "National":
        notes.append(
            "Analysis reflects national market trends. Local market conditions may vary "
            "significantly, and regional pricing differences are not accounted for in this "
            "assessment."
        )
    notes.append(
        "Pricing reflects observed listings and market data, not authoritative valuations. "
        "Actual transaction prices may differ based on negotiation, condition, timing, and "
        "other factors not captured here."
    )
    return notes


def analyze_market_pricing(
    market_data: Optional[MarketListingsData],
    asking_price: float,
    location: Optional[str] = None,
) -> Optional[MarketPricingAnalysis]:
    """Pricing context for the asking price; None without usable market data."""
    if market_data is None:
        return None

    prices: List[float] = []
    count = 0
    scope = "National"
    listing_type = "unknown"

    auto_dev = market_data.auto_dev
    market_check = market_data.market_check

    if auto_dev and auto_dev.raw_listings:
        listings = auto_dev.raw_listings
        prices = [l.price for l in listings if l.price > 0]
        count = len(listings)
        listing_type = _listing_type(listings)
        scope = _listing_scope(listings)
    else:
        if auto_dev:
            spread = auto_dev.price_max - auto_dev.price_min
            prices = [
                auto_dev.price_min,
                auto_dev.price_min + spread * 0.25,
                auto_dev.market_average,
                auto_dev.price_min + spread * 0.75,
                auto_dev.price_max,
            ]
            count = ESTIMATED_AUTO_DEV_COUNT
            listing_type = "dealer"
        if market_check:
            median = market_check.competitive_price
            if not prices:
                prices = [
                    market_check.price_min or median * 0.8,
                    median * 0.9,
                    median,
                    median * 1.1,
                    market_check.price_max or median * 1.2,
                ]
            count = max(count, market_check.sales_count)

    if not prices or count == 0:
        logger.warning("Market pricing analysis skipped: %d prices, %d comparables", len(prices), count)
        return None

    prices = sorted(prices)
    low, high = prices[0], prices[-1]
    median = prices[len(prices) // 2]
    p25 = prices[int(len(prices) * 0.25)]
    p75 = prices[int(len(prices) * 0.75)]

    diff = (asking_price - median) / median * 100
    if abs(diff) < 2:
        position = "at"
    elif diff < 0:
        position = "below"
    else:
        position = "above"

    if location:
        state = extract_state(location)
        scope = f"{state} and surrounding region" if state else "Regional"

    if listing_type == "unknown":
        listing_type = "dealer"

    quality = _pricing_data_quality(count, prices)

    if count >= 20 and quality.data_sparsity == "adequate":
        confidence = "high"
    elif count < 5 or quality.data_sparsity == "sparse":
        confidence = "low"
    else:
        confidence = "medium"

    return MarketPricingAnalysis(
        price_ranges=PriceRanges(low=low, median=median, high=high, percentile_25=p25, percentile_75=p75),
        asking_price_position=AskingPricePosition(
            percentile=calculate_percentile(asking_price, prices),
            position=position,
            difference_percent=round(diff, 1),
        ),
        comparable_count=count,
        geographic_scope=scope,
        listing_type=listing_type,
        market_comparison=_market_comparison(position, diff),
        negotiation_leverage=negotiation_leverage(position, diff),
        confidence=confidence,
        limitations=_limitations(quality, count, scope),
        data_quality=quality,
    )
