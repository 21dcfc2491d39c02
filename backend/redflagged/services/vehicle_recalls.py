"""NHTSA recalls lookup by make, model and model year."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..schemas.vehicle_schema import VehicleRecall
from .http_client import get_with_retry

logger = logging.getLogger(__name__)

NHTSA_RECALLS_URL = "https://api.nhtsa.gov/recalls/recallsByVehicle"


def map_recall(record: Dict[str, Any]) -> VehicleRecall:
    return VehicleRecall(
        recall_number=record.get("NHTSACampaignNumber") or "N/A",
        component=record.get("Component") or "Unknown Component",
        summary=record.get("Summary") or "No summary available",
        consequence=record.get("Consequence") or record.get("Notes") or "No consequence details available",
        remedy=record.get("Remedy") or "Contact manufacturer for remedy information",
        report_received_date=record.get("ReportReceivedDate"),
    )


async def fetch_vehicle_recalls(
    make: Optional[str],
    model: Optional[str],
    model_year: Optional[int],
) -> Optional[List[VehicleRecall]]:
    """Open recalls for the vehicle.

    Returns an empty list when NHTSA has none (including HTTP 404) and None
    when the lookup could not be made.
    """
    if not make or not model or not model_year:
        logger.warning("Skipping recalls: make=%s model=%s year=%s", make, model, model_year)
        return None

    try:
        response = await get_with_retry(
            NHTSA_RECALLS_URL,
            "nhtsa",
            params={"make": make, "model": model, "modelYear": model_year},
            headers={"Accept": "application/json"},
        )
    except httpx.HTTPError as exc:
        logger.warning("NHTSA recalls request failed: %s", exc)
        return None

    if response.status_code == 404:
        return []
    if response.status_code != 200:
        logger.warning("NHTSA recalls returned HTTP %d", response.status_code)
        return None

    try:
        data = response.json()
    except ValueError as exc:
        logger.warning("NHTSA recalls returned invalid JSON: %s", exc)
        return None

    if not isinstance(data, dict) or data.get("Count") is None:
        logger.warning("NHTSA recalls: unexpected response format")
        return None

    records = data.get("results") or data.get("Results") or []
    recalls = [map_recall(r) for r in records if isinstance(r, dict)]
    logger.info("NHTSA recalls for %s %s %s: %d", model_year, make, model, len(recalls))
    return recalls
