"""Vehicle History collector.

Decodes a VIN through the Auto.dev VIN endpoint and maps the response onto
title history (brands, salvage, theft, odometer, decoded year/make/model)
and, for paid reports, accident and ownership history.

Rules
-----
- An invalid VIN reported by the provider raises ``InvalidVINError``
- Every other failure degrades to ``None`` and is logged
- Development mock when ``AUTO_DEV_API_KEY`` is not configured
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional

import httpx

from ..schemas.vehicle_schema import (
    AccidentHistory,
    AnalysisTier,
    MileageSnapshot,
    OdometerReading,
    TitleHistory,
    VehicleDetails,
    VehicleHistory,
)
from .http_client import get_with_retry

logger = logging.getLogger(__name__)

DEFAULT_AUTO_DEV_API_URL = "https://api.auto.dev"

# Auth, not-found and rate-limit responses let the analysis continue
_DEGRADE_CODES = {401, 403, 404, 429}


class InvalidVINError(ValueError):
    """The history provider rejected the VIN as malformed."""


def auto_dev_config() -> tuple[Optional[str], str]:
    """(api_key, api_url) read from the environment at call time."""
    api_key = os.getenv("AUTO_DEV_API_KEY") or None
    api_url = (os.getenv("AUTO_DEV_API_URL") or DEFAULT_AUTO_DEV_API_URL).rstrip("/")
    return api_key, api_url


def auto_dev_headers(api_key: str) -> Dict[str, str]:
    return {
        "Authorization": f"Bearer {api_key}",
        "Accept": "application/json",
    }


# ===================================================================== #
#  Response mapping                                                       #
# ===================================================================== #

def _vehicle_details(data: Dict[str, Any]) -> Optional[VehicleDetails]:
    nested = data.get("vehicle") or {}
    details = VehicleDetails(
        year=data.get("year") or nested.get("year"),
        make=data.get("make") or nested.get("make"),
        model=data.get("model") or nested.get("model"),
        trim=data.get("trim"),
    )
    if not any((details.year, details.make, details.model, details.trim)):
        return None
    return details


def _odometer(history: Dict[str, Any]) -> List[OdometerReading]:
    readings: List[OdometerReading] = []
    for entry in history.get("odometer") or []:
        if not isinstance(entry, dict):
            continue
        mileage = entry.get("reading") or entry.get("mileage")
        date = entry.get("date")
        if mileage and date:
            readings.append(OdometerReading(reading=int(mileage), date=str(date)))
    return readings


def map_title_history(data: Dict[str, Any]) -> TitleHistory:
    """Map an Auto.dev VIN response onto ``TitleHistory``."""
    title = data.get("title") or {}
    history = data.get("history") or {}

    brands = title.get("brands")
    if isinstance(brands, list):
        title_brands = [str(b) for b in brands if b]
    elif title.get("brand"):
        title_brands = [str(title["brand"])]
    else:
        title_brands = []

    salvage = history.get("salvage")
    if salvage is None:
        salvage = history.get("totalLoss", False)

    return TitleHistory(
        title_brands=title_brands,
        salvage_record=bool(salvage),
        theft_records=bool(history.get("theft", False)),
        state_title=title.get("state") or title.get("status") or "Unknown",
        odometer=_odometer(history),
        vehicle_details=_vehicle_details(data),
    )


def map_accident_history(data: Dict[str, Any]) -> Optional[AccidentHistory]:
    """Accident, ownership and mileage history from the same VIN response.

    Returns None when the response carries none of it.
    """
    history = data.get("history") or {}
    if not history:
        return None

    accident_count = history.get("accidentCount") or 0
    accidents = bool(history.get("accidents")) or accident_count > 0

    owners: Optional[int] = None
    for entry in history.get("ownershipHistory") or []:
        if isinstance(entry, dict) and entry.get("ownerCount") is not None:
            owners = max(owners or 0, int(entry["ownerCount"]))

    snapshots = [
        MileageSnapshot(mileage=reading.reading, date=reading.date)
        for reading in _odometer(history)
    ]

    services = [str(item) for item in history.get("serviceHistory") or [] if item]

    return AccidentHistory(
        accident_indicators=accidents,
        service_history=services,
        ownership_changes=owners,
        mileage_snapshots=snapshots,
    )


def _mock_history(tier: AnalysisTier) -> VehicleHistory:
    title = TitleHistory(
        title_brands=[],
        salvage_record=False,
        theft_records=False,
        state_title="Clean",
        odometer=[
            OdometerReading(reading=50000, date="2023-01-15"),
            OdometerReading(reading=45000, date="2022-01-10"),
        ],
    )
    accidents = None
    if tier == "paid":
        accidents = AccidentHistory(
            accident_indicators=False,
            service_history=[
                "Oil change - 2023-06-15",
                "Tire rotation - 2023-03-20",
                "Brake inspection - 2022-12-10",
            ],
            ownership_changes=2,
            mileage_snapshots=[
                MileageSnapshot(mileage=52000, date="2023-06-15"),
                MileageSnapshot(mileage=48000, date="2023-01-10"),
                MileageSnapshot(mileage=42000, date="2022-06-15"),
            ],
        )
    return VehicleHistory(nmvtis=title, carfax=accidents)


# ===================================================================== #
#  Public API                                                             #
# ===================================================================== #

async def fetch_vehicle_history(vin: Optional[str], tier: AnalysisTier = "free") -> Optional[VehicleHistory]:
    """Fetch title (and, for paid reports, accident) history for *vin*.

    Raises
    ------
    InvalidVINError
        When Auto.dev answers 400 for the VIN.
    """
    if not vin or len(vin) != 17:
        logger.warning("Skipping vehicle history: invalid VIN %r", vin)
        return None

    api_key, api_url = auto_dev_config()
    if not api_key:
        logger.warning("AUTO_DEV_API_KEY not configured; using mock vehicle history")
        return _mock_history(tier)

    try:
        response = await get_with_retry(
            f"{api_url}/vin/{vin}",
            "auto_dev",
            headers=auto_dev_headers(api_key),
        )
    except httpx.HTTPError as exc:
        logger.warning("Auto.dev VIN decode failed for %s: %s", vin, exc)
        return None

    if response.status_code == 400:
        try:
            message = response.json().get("error") or "Invalid VIN format"
        except ValueError:
            message = response.text or "Invalid VIN format"
        raise InvalidVINError(
            f"Invalid VIN: {message}. Please check that your VIN is exactly 17 "
            "characters and contains only valid characters (no I, O, or Q)."
        )

    if response.status_code in _DEGRADE_CODES:
        logger.warning(
            "Auto.dev VIN decode returned %d for %s; continuing without history",
            response.status_code,
            vin,
        )
        return None

    if response.status_code != 200:
        logger.warning("Auto.dev VIN decode error %d for %s", response.status_code, vin)
        return None

    try:
        data = response.json()
    except ValueError as exc:
        logger.warning("Auto.dev VIN decode returned invalid JSON: %s", exc)
        return None

    if not isinstance(data, dict):
        return None

    logger.info("Auto.dev VIN decode succeeded for %s", vin)
    return VehicleHistory(
        nmvtis=map_title_history(data),
        carfax=map_accident_history(data) if tier == "paid" else None,
    )


def generate_history_summary(history: Optional[VehicleHistory]) -> Optional[str]:
    """One-line plain-English digest of the vehicle history."""
    if history is None:
        return None

    parts: List[str] = []

    accidents = history.carfax
    if accidents is not None:
        parts.append(
            "Accident history detected"
            if accidents.accident_indicators
            else "No major accidents reported"
        )
        if accidents.ownership_changes is not None:
            owners = accidents.ownership_changes
            parts.append(f"{owners} previous owner{'' if owners == 1 else 's'}")
        if accidents.service_history:
            parts.append("Regular maintenance records available")

    title = history.nmvtis
    if title is not None:
        if title.title_brands:
            parts.append(f"Title brands: {', '.join(title.title_brands)}")
        else:
            parts.append("Clean title history")
        if title.theft_records:
            parts.append("Theft record found")

    if not parts:
        return None
    return ". ".join(parts) + "."
