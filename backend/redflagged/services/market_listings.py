"""Market Listings collector.

Sources
-------
- Auto.dev ``/listings`` (paid reports): active retail listings for the
  year/make/model, reduced to an average, a price range and raw listings
- MarketCheck ``sales_stats`` (when ``MARKETCHECK_API_KEY`` is set):
  median / average sale prices and sales count

Also owns the market value estimate: a weighted blend of the sources, or a
depreciation curve over a base-value table when no source answered.
"""

from __future__ import annotations

import asyncio
import logging
import os
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from ..constants import AVG_MILES_PER_YEAR, BASE_VALUES, DEFAULT_BASE_VALUE
from ..schemas.vehicle_schema import (
    AnalysisTier,
    AutoDevMarketData,
    MarketCheckData,
    MarketListingsData,
    RawListing,
)
from .http_client import get_with_retry
from .vehicle_history import auto_dev_config, auto_dev_headers

logger = logging.getLogger(__name__)

DEFAULT_MARKETCHECK_API_URL = "https://marketcheck-prod.apigee.net/v1"


# ===================================================================== #
#  Auto.dev listings                                                      #
# ===================================================================== #

def _listing_price(listing: Dict[str, Any]) -> Optional[float]:
    retail = listing.get("retailListing") or {}
    price = retail.get("price") or listing.get("price")
    if isinstance(price, (int, float)) and price > 0:
        return float(price)
    return None


def _raw_listing(listing: Dict[str, Any]) -> Optional[RawListing]:
    price = _listing_price(listing)
    if price is None:
        return None

    retail = listing.get("retailListing") or {}
    dealer = retail.get("dealer") or listing.get("dealer")
    if isinstance(dealer, dict):
        dealer = dealer.get("name")

    if dealer:
        listing_type = "dealer"
    elif listing.get("privateParty") or retail.get("privateParty"):
        listing_type = "private-party"
    else:
        listing_type = None

    miles = retail.get("miles")
    return RawListing(
        price=price,
        mileage=int(miles) if isinstance(miles, (int, float)) else None,
        city=retail.get("city"),
        state=retail.get("state"),
        dealer=str(dealer) if dealer else None,
        listing_type=listing_type,
    )


def summarize_listings(listings: List[Dict[str, Any]]) -> Optional[AutoDevMarketData]:
    """Average, range and raw listings; None when no listing has a price."""
    raw = [r for r in (_raw_listing(item) for item in listings if isinstance(item, dict)) if r]
    if not raw:
        return None

    prices = [r.price for r in raw]
    return AutoDevMarketData(
        market_average=round(sum(prices) / len(prices)),
        price_min=min(prices),
        price_max=max(prices),
        raw_listings=raw,
    )


async def fetch_auto_dev_listings(
    year: int,
    make: str,
    model: str,
    trim: Optional[str] = None,
    mileage: Optional[int] = None,
) -> Optional[AutoDevMarketData]:
    api_key, api_url = auto_dev_config()
    if not api_key:
        logger.warning("AUTO_DEV_API_KEY not configured; skipping Auto.dev listings")
        return None

    params: Dict[str, Any] = {
        "vehicle.year": year,
        "vehicle.make": make,
        "vehicle.model": model,
    }
    if trim:
        params["vehicle.trim"] = trim
    if mileage:
        params["retailListing.miles"] = mileage

    try:
        response = await get_with_retry(
            f"{api_url}/listings",
            "auto_dev",
            params=params,
            headers=auto_dev_headers(api_key),
        )
    except httpx.HTTPError as exc:
        logger.warning("Auto.dev listings request failed: %s", exc)
        return None

    if response.status_code != 200:
        logger.warning("Auto.dev listings returned HTTP %d", response.status_code)
        return None

    try:
        data = response.json()
    except ValueError as exc:
        logger.warning("Auto.dev listings returned invalid JSON: %s", exc)
        return None

    listings = data.get("listings") or data.get("results") or data.get("data") or []
    if not isinstance(listings, list) or not listings:
        logger.info("Auto.dev listings: no listings for %s %s %s", year, make, model)
        return None

    return summarize_listings(listings)


# ===================================================================== #
#  MarketCheck                                                            #
# ===================================================================== #

async def fetch_marketcheck_stats(year: int, make: str, model: str) -> Optional[MarketCheckData]:
    api_key = os.getenv("MARKETCHECK_API_KEY")
    if not api_key:
        return None
    api_url = (os.getenv("MARKETCHECK_API_URL") or DEFAULT_MARKETCHECK_API_URL).rstrip("/")

    try:
        response = await get_with_retry(
            f"{api_url}/stats/cars/sales_stats",
            "marketcheck",
            params={"year": year, "make": make, "model": model, "api_key": api_key},
            headers={"Accept": "application/json"},
        )
    except httpx.HTTPError as exc:
        logger.warning("MarketCheck request failed: %s", exc)
        return None

    if response.status_code != 200:
        logger.warning("MarketCheck returned HTTP %d", response.status_code)
        return None

    try:
        stats = (response.json() or {}).get("sales_stats") or {}
    except ValueError as exc:
        logger.warning("MarketCheck returned invalid JSON: %s", exc)
        return None

    median = stats.get("median_price") or stats.get("avg_price")
    if not median:
        return None

    return MarketCheckData(
        competitive_price=float(median),
        average_price=stats.get("avg_price"),
        price_min=stats.get("min_price"),
        price_max=stats.get("max_price"),
        sales_count=int(stats.get("sales_count") or 0),
    )


async def fetch_market_data(
    year: int,
    make: str,
    model: str,
    mileage: Optional[int] = None,
    tier: AnalysisTier = "free",
    trim: Optional[str] = None,
) -> MarketListingsData:
    """Query every market source the tier allows, in parallel.

    A source that fails or is not configured is left as None.
    """
    if tier == "paid":
        auto_dev, market_check = await asyncio.gather(
            fetch_auto_dev_listings(year, make, model, trim, mileage),
            fetch_marketcheck_stats(year, make, model),
        )
    else:
        auto_dev = None
        market_check = await fetch_marketcheck_stats(year, make, model)

    return MarketListingsData(auto_dev=auto_dev, market_check=market_check)


# ===================================================================== #
#  Value estimation                                                       #
# ===================================================================== #

def calculate_average_market_value(data: MarketListingsData) -> float:
    """Blend of all sources; Auto.dev carries half the weight when present.

    Returns 0 when no source produced a price.
    """
    auto_dev = data.auto_dev.market_average if data.auto_dev else None
    others = [data.market_check.competitive_price] if data.market_check else []

    if auto_dev and others:
        return round(auto_dev * 0.5 + (sum(others) / len(others)) * 0.5)
    values = ([auto_dev] if auto_dev else []) + others
    if not values:
        return 0
    return round(sum(values) / len(values))


def calculate_depreciation(
    base_value: float,
    year: int,
    mileage: Optional[int] = None,
    current_year: Optional[int] = None,
) -> float:
    """~15% in the first year, ~10% a year after that (up to 10 years)."""
    if current_year is None:
        current_year = datetime.now().year
    age = current_year - year

    value = base_value
    if age >= 1:
        value *= 0.85
    for _ in range(1, min(age, 10)):
        value *= 0.90

    if mileage:
        mileage_diff = mileage - age * AVG_MILES_PER_YEAR
        if mileage_diff > 20000:
            value *= 0.90
        elif mileage_diff < -20000:
            value *= 1.05

    return round(value)


def estimate_fallback_value(
    make: Optional[str],
    model: Optional[str],
    year: int,
    mileage: Optional[int] = None,
    current_year: Optional[int] = None,
) -> float:
    """Depreciated base value when no market source answered."""
    models = BASE_VALUES.get(make or "")
    if not models:
        base = DEFAULT_BASE_VALUE
    elif model in models:
        base = models[model]
    else:
        base = sum(models.values()) / len(models)
    return calculate_depreciation(base, year, mileage, current_year)
