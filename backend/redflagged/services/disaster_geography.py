"""Disaster Geography collector.

Looks up FEMA disaster declarations for the state (and county, when the
location names one) the vehicle is listed in, then derives:

- ``DisasterData``: declarations grouped by disaster
- ``DisasterRiskAnalysis``: a points-based low / medium / high rating
- ``EnvironmentalRisk``: recency, disaster types and a confidence score

Environmental exposure is probabilistic. Nothing here claims the vehicle
itself was damaged.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta
from typing import Any, Dict, List, NamedTuple, Optional

import httpx

from ..schemas.vehicle_schema import (
    DatedDisaster,
    DisasterData,
    DisasterDeclaration,
    DisasterRiskAnalysis,
    EnvironmentalRisk,
)
from .http_client import get_with_retry

logger = logging.getLogger(__name__)

FEMA_DECLARATIONS_URL = "https://www.fema.gov/api/open/v1/DisasterDeclarationsSummaries"
LOOKBACK_YEARS = 5
RECENT_YEARS = 3

STATE_NAMES: Dict[str, str] = {
    "ALABAMA": "AL", "ALASKA": "AK", "ARIZONA": "AZ", "ARKANSAS": "AR",
    "CALIFORNIA": "CA", "COLORADO": "CO", "CONNECTICUT": "CT", "DELAWARE": "DE",
    "FLORIDA": "FL", "GEORGIA": "GA", "HAWAII": "HI", "IDAHO": "ID",
    "ILLINOIS": "IL", "INDIANA": "IN", "IOWA": "IA", "KANSAS": "KS",
    "KENTUCKY": "KY", "LOUISIANA": "LA", "MAINE": "ME", "MARYLAND": "MD",
    "MASSACHUSETTS": "MA", "MICHIGAN": "MI", "MINNESOTA": "MN", "MISSISSIPPI": "MS",
    "MISSOURI": "MO", "MONTANA": "MT", "NEBRASKA": "NE", "NEVADA": "NV",
    "NEW HAMPSHIRE": "NH", "NEW JERSEY": "NJ", "NEW MEXICO": "NM", "NEW YORK": "NY",
    "NORTH CAROLINA": "NC", "NORTH DAKOTA": "ND", "OHIO": "OH", "OKLAHOMA": "OK",
    "OREGON": "OR", "PENNSYLVANIA": "PA", "RHODE ISLAND": "RI", "SOUTH CAROLINA": "SC",
    "SOUTH DAKOTA": "SD", "TENNESSEE": "TN", "TEXAS": "TX", "UTAH": "UT",
    "VERMONT": "VT", "VIRGINIA": "VA", "WASHINGTON": "WA", "WEST VIRGINIA": "WV",
    "WISCONSIN": "WI", "WYOMING": "WY",
}
STATE_CODES = frozenset(STATE_NAMES.values())

# Longest names first so "West Virginia" wins over "Virginia"
_STATE_NAME_PATTERN = re.compile(
    r"\b(" + "|".join(sorted(STATE_NAMES, key=len, reverse=True)) + r")\b",
    re.IGNORECASE,
)
# Codes must be written in capitals, so "in" or "or" never match
_STATE_CODE_PATTERN = re.compile(r"\b(" + "|".join(sorted(STATE_CODES)) + r")\b")
_COUNTY_PATTERN = re.compile(r"(\w+\s+County)", re.IGNORECASE)


class DisasterGeography(NamedTuple):
    disaster_data: DisasterData
    disaster_risk: DisasterRiskAnalysis
    environmental_risk: EnvironmentalRisk


# ===================================================================== #
#  Location parsing                                                       #
# ===================================================================== #

def extract_state(location: Optional[str]) -> Optional[str]:
    """Two-letter state code named in *location*, if any."""
    if not location:
        return None
    name = _STATE_NAME_PATTERN.search(location)
    if name:
        return STATE_NAMES[name.group(1).upper()]
    code = _STATE_CODE_PATTERN.search(location)
    if code:
        return code.group(1)
    return None


def extract_county(location: Optional[str]) -> Optional[str]:
    if not location:
        return None
    match = _COUNTY_PATTERN.search(location)
    return match.group(1) if match else None


def _parse_date(value: str) -> Optional[datetime]:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).replace(tzinfo=None)
    except (TypeError, ValueError):
        return None


def _declared_after(declaration: DisasterDeclaration, cutoff: datetime) -> bool:
    declared = _parse_date(declaration.declaration_date)
    return declared is not None and declared > cutoff


# ===================================================================== #
#  OpenFEMA                                                               #
# ===================================================================== #

async def fetch_fema_declarations(
    state: str,
    county: Optional[str] = None,
    years: int = LOOKBACK_YEARS,
    now: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    """Raw declaration summaries for *state* over the last *years* years.

    Filtered to *county* on ``designatedArea`` when given. Returns an empty
    list on any failure.
    """
    now = now or datetime.utcnow()
    start = now - timedelta(days=365 * years)

    params = {
        "$filter": (
            f"state eq '{state}' and declarationDate ge '{start.date().isoformat()}' "
            f"and declarationDate le '{now.date().isoformat()}'"
        ),
        "$orderby": "declarationDate desc",
        "$top": 100,
    }

    try:
        response = await get_with_retry(
            FEMA_DECLARATIONS_URL,
            "fema",
            params=params,
            headers={"Accept": "application/json"},
        )
    except httpx.HTTPError as exc:
        logger.warning("FEMA request failed for %s: %s", state, exc)
        return []

    if response.status_code != 200:
        logger.warning("FEMA returned HTTP %d for %s", response.status_code, state)
        return []

    try:
        payload = response.json()
    except ValueError as exc:
        logger.warning("FEMA returned invalid JSON: %s", exc)
        return []

    records = payload.get("DisasterDeclarationsSummaries") if isinstance(payload, dict) else payload
    if not isinstance(records, list):
        return []

    if county:
        wanted = county.lower()
        records = [
            r for r in records
            if wanted in str(r.get("designatedArea") or "").lower()
        ]

    logger.info("FEMA declarations for %s%s: %d", state, f" ({county})" if county else "", len(records))
    return records


def group_declarations(records: List[Dict[str, Any]]) -> DisasterData:
    """Collapse per-area summaries into one declaration per disaster."""
    grouped: Dict[str, DisasterDeclaration] = {}
    for record in records:
        declared = record.get("declarationDate") or record.get("incidentBeginDate")
        if not declared:
            continue
        kind = record.get("incidentType") or record.get("title") or "Unknown"
        key = str(record.get("disasterNumber") or f"{kind}|{declared}")

        entry = grouped.get(key)
        if entry is None:
            entry = DisasterDeclaration(
                disaster_type=kind,
                declaration_date=str(declared)[:10],
                affected_counties=[],
            )
            grouped[key] = entry

        area = record.get("designatedArea")
        if area and area not in entry.affected_counties:
            entry.affected_counties.append(area)

    return DisasterData(fema_declarations=list(grouped.values()))


# ===================================================================== #
#  Analysis                                                               #
# ===================================================================== #

def analyze_disaster_risk(data: DisasterData, now: Optional[datetime] = None) -> DisasterRiskAnalysis:
    """2 points per declaration, 3 more for flooding in the last 3 years.

    high >= 7, medium >= 4, otherwise low.
    """
    now = now or datetime.utcnow()
    cutoff = now - timedelta(days=365 * RECENT_YEARS)

    details: List[str] = []
    score = 0

    declarations = data.fema_declarations
    if declarations:
        score += len(declarations) * 2

        recent = [d for d in declarations if _declared_after(d, cutoff)]
        if recent:
            details.append(f"{len(recent)} FEMA disaster declaration(s) in the past 3 years")
            if any("flood" in d.disaster_type.lower() for d in recent):
                details.append("Flooding history detected - inspect for water damage")
                score += 3

    if score >= 7:
        level = "high"
    elif score >= 4:
        level = "medium"
    else:
        level = "low"

    return DisasterRiskAnalysis(has_risk=score > 0, risk_level=level, details=details)


def _no_environmental_risk() -> EnvironmentalRisk:
    return EnvironmentalRisk(
        disaster_presence=False,
        disaster_types=[],
        recency="none",
        flood_zone_risk="unknown",
        confidence=0,
    )


def analyze_environmental_risk(
    data: DisasterData,
    state: Optional[str],
    county: Optional[str],
    now: Optional[datetime] = None,
) -> EnvironmentalRisk:
    """Recency and confidence profile of the declarations for a location."""
    now = now or datetime.utcnow()
    cutoff = now - timedelta(days=365 * RECENT_YEARS)

    recent: List[DatedDisaster] = []
    historical: List[DatedDisaster] = []
    kinds: List[str] = []
    counties: List[str] = []

    for declaration in data.fema_declarations:
        declared = _parse_date(declaration.declaration_date)
        if declared is None:
            continue
        if declaration.disaster_type not in kinds:
            kinds.append(declaration.disaster_type)
        for area in declaration.affected_counties:
            if area not in counties:
                counties.append(area)

        entry = DatedDisaster(
            disaster_type=declaration.disaster_type,
            declaration_date=declaration.declaration_date,
            days_ago=(now - declared).days,
        )
        (recent if declared >= cutoff else historical).append(entry)

    if recent:
        recency = "recent"
    elif historical:
        recency = "historical"
    else:
        recency = "none"

    # Flood zone lookup needs the National Flood Hazard Layer; not wired yet
    flood_zone_risk = "unknown"

    confidence = 0
    if state:
        confidence += 30
    if county:
        confidence += 20
    if recent or historical:
        confidence += 30
    if flood_zone_risk != "unknown":
        confidence += 20

    return EnvironmentalRisk(
        disaster_presence=bool(recent or historical),
        disaster_types=kinds,
        recency=recency,
        flood_zone_risk=flood_zone_risk,
        confidence=min(100, confidence),
        affected_counties=counties,
        recent_disasters=recent,
        historical_disasters=historical,
    )


async def collect_disaster_geography(
    location: Optional[str],
    now: Optional[datetime] = None,
) -> DisasterGeography:
    """Fetch FEMA declarations for *location* and derive both risk views."""
    if not location:
        empty = DisasterData()
        return DisasterGeography(empty, analyze_disaster_risk(empty, now), _no_environmental_risk())

    state = extract_state(location)
    county = extract_county(location)

    if state is None:
        logger.warning("No US state recognised in location %r; skipping FEMA lookup", location)
        records: List[Dict[str, Any]] = []
    else:
        records = await fetch_fema_declarations(state, county, now=now)

    data = group_declarations(records)
    return DisasterGeography(
        disaster_data=data,
        disaster_risk=analyze_disaster_risk(data, now),
        environmental_risk=analyze_environmental_risk(data, state, county, now),
    )
