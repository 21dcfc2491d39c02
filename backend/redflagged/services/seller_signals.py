"""Seller Signals collector.

Looks up the active listing for a VIN on Auto.dev and derives listing and
pricing behaviour signals from it:

- relisting detection (recency-weighted score of listing dates)
- listing longevity (stale after 45 days)
- price volatility (drops, oscillations and change count over 90 days)

Two pricing risk signals need the market estimate and are evaluated by the
analysis pipeline once it is known: *unusually low price* and *too good for
too long*. The seller credibility score is computed from the merged signals.

Rules
-----
- Signals describe behaviour only; nothing here judges the seller's intent
- Every upstream failure degrades to empty signals and is logged
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Literal, Optional

import httpx

from ..constants import (
    EXOTIC_VALUE_THRESHOLD,
    LUXURY_MAKES,
    STALE_LISTING_DAYS,
    TOO_GOOD_FOR_TOO_LONG_THRESHOLDS,
)
from ..schemas.vehicle_schema import (
    ListingBehaviorSignals,
    ListingLongevity,
    PricePoint,
    PriceDrop,
    PriceVolatility,
    PricingBehaviorSignals,
    RelistingDetection,
    SellerAnalysis,
    SellerSignals,
    TooGoodForTooLong,
    UnusuallyLowPrice,
)
from .http_client import get_with_retry
from .vehicle_history import auto_dev_config, auto_dev_headers

logger = logging.getLogger(__name__)

RELISTING_WINDOW_DAYS = 90
MIN_RELISTING_CONFIDENCE = 25
VOLATILITY_WINDOW_DAYS = 90
DROP_WINDOW_DAYS = 45
SIGNIFICANT_DROP_PERCENT = 5

PricingClass = Literal["common", "luxury", "exotic"]


@dataclass
class RelistingScore:
    count: int = 0
    weighted_score: float = 0.0
    confidence: int = 0
    days_since_latest: int = 0
    recent: bool = False
    dates: List[datetime] = field(default_factory=list)


def _parse_datetime(value: Any) -> Optional[datetime]:
    if not value:
        return None
    text = str(value).strip().replace("Z", "+00:00")
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        try:
            parsed = datetime.strptime(text[:19], "%Y-%m-%d %H:%M:%S")
        except ValueError:
            return None
    return parsed.replace(tzinfo=None)


def _format_date(value: datetime) -> str:
    return f"{value:%b} {value.day}, {value.year}"


# ===================================================================== #
#  Auto.dev listing lookup                                                #
# ===================================================================== #

async def fetch_listing_by_vin(vin: str) -> Optional[Dict[str, Any]]:
    """The ``data`` object of Auto.dev's ``/listings/{vin}`` response.

    Returns None when the key is missing, no listing exists or the request
    fails.
    """
    api_key, api_url = auto_dev_config()
    if not api_key:
        logger.warning("AUTO_DEV_API_KEY not configured; skipping seller signals")
        return None

    try:
        response = await get_with_retry(
            f"{api_url}/listings/{vin}",
            "auto_dev",
            headers=auto_dev_headers(api_key),
        )
    except httpx.HTTPError as exc:
        logger.warning("Auto.dev listing lookup failed for %s: %s", vin, exc)
        return None

    if response.status_code == 404:
        logger.info("No active listing found for %s", vin)
        return None
    if response.status_code != 200:
        logger.warning("Auto.dev listing lookup returned HTTP %d for %s", response.status_code, vin)
        return None

    try:
        payload = response.json()
    except ValueError as exc:
        logger.warning("Auto.dev listing returned invalid JSON: %s", exc)
        return None

    data = payload.get("data") if isinstance(payload, dict) else None
    return data if isinstance(data, dict) else None


# ===================================================================== #
#  Listing behaviour                                                      #
# ===================================================================== #

def _relisting_weight(days: int) -> float:
    if days <= 7:
        return 3.0
    if days <= 30:
        return 2.5
    if days <= 60:
        return 2.0
    return 1.0


def _relisting_base_confidence(days: int) -> float:
    if days <= 7:
        return 85 + (7 - days) * 1.4
    if days <= 30:
        return 60 + ((30 - days) / 30) * 20
    if days <= 60:
        return 40 + ((60 - days) / 30) * 15
    return 30 + ((90 - days) / 30) * 10


def calculate_relisting_score(
    listing_dates: List[datetime],
    now: Optional[datetime] = None,
) -> RelistingScore:
    """Recency-weighted relisting score over the last 90 days.

    Each listing date inside the window contributes a weight (3 within a
    week, 2.5 within 30 days, 2 within 60, 1 otherwise). Confidence follows
    the most recent listing and gains 8 points per extra listing, up to 20.
    """
    now = now or datetime.utcnow()

    in_window = []
    for listed in listing_dates:
        days = (now - listed).days
        if 0 <= days <= RELISTING_WINDOW_DAYS:
            in_window.append((days, listed))

    if not in_window:
        return RelistingScore(dates=list(listing_dates))

    latest = min(days for days, _ in in_window)
    bonus = min(20, (len(in_window) - 1) * 8)
    confidence = round(_relisting_base_confidence(latest) + bonus)

    return RelistingScore(
        count=len(in_window),
        weighted_score=sum(_relisting_weight(days) for days, _ in in_window),
        confidence=max(0, min(100, confidence)),
        days_since_latest=latest,
        recent=latest <= 30,
        dates=[listed for _, listed in sorted(in_window)],
    )


def _listing_location(listing: Dict[str, Any]) -> Optional[str]:
    retail = listing.get("retailListing")
    if not isinstance(retail, dict):
        return None
    parts = [str(p) for p in (retail.get("city"), retail.get("state")) if p]
    return ", ".join(parts) or None


def analyze_listing_behavior(
    listing: Optional[Dict[str, Any]],
    now: Optional[datetime] = None,
) -> ListingBehaviorSignals:
    """Relisting detection and listing longevity for one Auto.dev listing."""
    now = now or datetime.utcnow()

    created = _parse_datetime(listing.get("createdAt")) if listing else None
    if created is None:
        return ListingBehaviorSignals()

    days_listed = max(0, (now - created).days)
    longevity = ListingLongevity(
        days_listed=days_listed,
        is_stale=days_listed > STALE_LISTING_DAYS,
    )

    score = calculate_relisting_score([created], now)
    if score.count == 0 or score.confidence < MIN_RELISTING_CONFIDENCE:
        logger.info("Listing too old or confidence too low for relisting detection")
        return ListingBehaviorSignals(listing_longevity=longevity)

    location = _listing_location(listing)
    history = [
        f"Listed on {_format_date(listed)}" + (f" - {location}" if location else "")
        for listed in score.dates
    ]

    return ListingBehaviorSignals(
        relisting_detection=RelistingDetection(
            detected=True,
            times_seen=score.count,
            confidence=score.confidence,
            weighted_score=score.weighted_score,
            listing_history=history,
        ),
        listing_longevity=longevity,
    )


# ===================================================================== #
#  Pricing behaviour                                                      #
# ===================================================================== #

def extract_price_history(listing: Optional[Dict[str, Any]]) -> List[PricePoint]:
    """Price points from the listing's ``priceHistory``, when it carries one."""
    if not listing:
        return []
    points: List[PricePoint] = []
    for entry in listing.get("priceHistory") or []:
        if not isinstance(entry, dict):
            continue
        price = entry.get("price")
        date = entry.get("date")
        if isinstance(price, (int, float)) and price > 0 and date:
            points.append(PricePoint(price=float(price), date=str(date)))
    return points


def calculate_price_volatility(
    history: List[PricePoint],
    now: Optional[datetime] = None,
) -> PriceVolatility:
    """Price drops, oscillations and change count over the last 90 days.

    A drop is significant at 5% or more when both prices were seen within
    the last 45 days.
    """
    now = now or datetime.utcnow()

    if len(history) < 2:
        return PriceVolatility(detected=False, volatility_level="low", price_changes=0, time_window=0)

    dated = []
    for point in history:
        when = _parse_datetime(point.date)
        if when is not None:
            dated.append((when, point))
    dated.sort(key=lambda item: item[0], reverse=True)

    window_start = now - timedelta(days=VOLATILITY_WINDOW_DAYS)
    drop_start = now - timedelta(days=DROP_WINDOW_DAYS)
    recent = [(when, point) for when, point in dated if when >= window_start]

    if len(recent) < 2:
        return PriceVolatility(detected=False, volatility_level="low", price_changes=0)

    changes = len(recent) - 1

    drops: List[PriceDrop] = []
    for (newer_date, newer), (older_date, older) in zip(recent, recent[1:]):
        if newer_date < drop_start or older_date < drop_start:
            continue
        drop_percent = (older.price - newer.price) / older.price * 100
        if drop_percent >= SIGNIFICANT_DROP_PERCENT:
            drops.append(
                PriceDrop(
                    from_price=older.price,
                    to_price=newer.price,
                    drop_percent=round(drop_percent, 1),
                    days_ago=(now - newer_date).days,
                )
            )

    # Walks newest to oldest, counting direction reversals
    oscillations = 0
    consecutive_drops = 0
    last_direction: Optional[str] = None
    for (_, newer), (_, older) in zip(recent, recent[1:]):
        if newer.price < older.price:
            if last_direction == "up":
                oscillations += 1
            consecutive_drops += 1
            last_direction = "down"
        elif newer.price > older.price:
            if last_direction == "down" and consecutive_drops > 0:
                oscillations += 1
            consecutive_drops = 0
            last_direction = "up"

    if len(drops) >= 2 or oscillations >= 2 or changes >= 4:
        level, detected = "high", True
    elif drops or oscillations >= 1 or changes >= 2:
        level, detected = "medium", True
    else:
        level, detected = "low", changes >= 1

    return PriceVolatility(
        detected=detected,
        volatility_level=level,
        price_changes=changes,
        significant_drops=drops,
        oscillations=oscillations,
        time_window=VOLATILITY_WINDOW_DAYS,
    )


def analyze_unusually_low_price(
    asking_price: float,
    estimated_value: float,
    market_median: Optional[float] = None,
    threshold: float = -15,
    high_confidence_threshold: float = -25,
) -> Optional[UnusuallyLowPrice]:
    """Flag an asking price meaningfully below the market anchor.

    The anchor is the market median when known, else the estimated value.
    Returns None when the price is not below *threshold* percent.
    """
    anchor = market_median or estimated_value
    if not anchor or anchor <= 0:
        return None

    below_market = (asking_price - anchor) / anchor * 100
    if below_market >= threshold:
        return None

    if below_market <= high_confidence_threshold:
        confidence = 85
    elif below_market <= threshold * 1.5:
        confidence = 70
    else:
        confidence = 50
    if market_median:
        confidence = min(95, confidence + 10)

    logger.info("Unusually low price: %.1f%% below market anchor %.0f", below_market, anchor)
    return UnusuallyLowPrice(
        detected=True,
        below_market_percent=round(below_market, 1),
        market_median=market_median,
        asking_price=asking_price,
        confidence=confidence,
        threshold_used=threshold,
    )


def analyze_too_good_for_too_long(
    days_listed: int,
    has_unusually_low_price: bool,
    vehicle_class: PricingClass = "common",
) -> Optional[TooGoodForTooLong]:
    """Flag an unusually low price that has stayed listed past its class threshold."""
    if not has_unusually_low_price:
        return None

    threshold = TOO_GOOD_FOR_TOO_LONG_THRESHOLDS[vehicle_class]
    if days_listed <= threshold:
        return None

    over = days_listed - threshold
    if over >= 30:
        confidence = 85
    elif over >= 14:
        confidence = 70
    else:
        confidence = 60

    return TooGoodForTooLong(
        detected=True,
        days_listed=days_listed,
        threshold_days=threshold,
        confidence=confidence,
    )


def pricing_vehicle_class(make: Optional[str], estimated_value: float) -> PricingClass:
    """Class used to pick the too-good-for-too-long threshold."""
    if estimated_value > EXOTIC_VALUE_THRESHOLD:
        return "exotic"
    if make and make in LUXURY_MAKES:
        return "luxury"
    return "common"


# ===================================================================== #
#  Collection and scoring                                                 #
# ===================================================================== #

async def collect_seller_signals(vin: str, now: Optional[datetime] = None) -> SellerSignals:
    """Listing and pricing behaviour for *vin*; empty signals when unavailable."""
    listing = await fetch_listing_by_vin(vin)
    listing_behavior = analyze_listing_behavior(listing, now)

    history = extract_price_history(listing)
    volatility = calculate_price_volatility(history, now) if history else None

    longevity = listing_behavior.listing_longevity
    if longevity and longevity.is_stale and volatility is not None:
        longevity.selling_without_correction = not volatility.significant_drops

    return SellerSignals(
        listing_behavior=listing_behavior,
        pricing_behavior=PricingBehaviorSignals(
            price_volatility=volatility if volatility and volatility.detected else None,
        ),
    )


def calculate_seller_credibility(signals: Optional[SellerSignals]) -> SellerAnalysis:
    """Start at 70 and subtract for each concerning behaviour, clamped to 0..100."""
    score = 70
    insights: List[str] = []

    listing = signals.listing_behavior if signals else None
    pricing = signals.pricing_behavior if signals else None

    relisting = listing.relisting_detection if listing else None
    if relisting and relisting.detected:
        times = relisting.times_seen
        score -= times * 5
        insights.append(
            f"Vehicle has been relisted {times} time{'' if times == 1 else 's'} - "
            "may indicate issues discovered during previous inspections"
        )

    longevity = listing.listing_longevity if listing else None
    if longevity and longevity.is_stale:
        score -= 10
        insights.append("Listing has been active for an extended period without selling")
        if longevity.selling_without_correction:
            score -= 5
            insights.append("Seller has not adjusted price despite extended listing time")

    volatility = pricing.price_volatility if pricing else None
    if volatility and volatility.detected and volatility.oscillations > 0:
        swings = volatility.oscillations
        score -= swings * 3
        insights.append(
            f"Price has reversed direction {swings} time{'' if swings == 1 else 's'} - "
            "unusual for private sales"
        )

    too_long = pricing.too_good_for_too_long if pricing else None
    if too_long and too_long.detected:
        score -= 15
        insights.append("Price is suspiciously low and vehicle remains unsold - investigate thoroughly")

    return SellerAnalysis(credibility_score=max(0, min(100, round(score))), insights=insights)
