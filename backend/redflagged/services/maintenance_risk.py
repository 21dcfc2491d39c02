"""Maintenance Risk Assessment (paid reports).

Forward-looking estimate of how maintenance-heavy the vehicle is likely to
be, driven by age, mileage, ownership changes and vehicle class.

Rules
-----
- NO claims about the vehicle's actual condition; risk is probabilistic
- Deterministic: same inputs always give the same assessment
- Returns None when the model year is missing or implausible
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import List, Optional

from ..schemas.vehicle_schema import (
    InspectionItem,
    MaintenanceRiskAssessment,
    MaintenanceRiskFactor,
    VehicleClass,
)

logger = logging.getLogger(__name__)

_PRIORITY_RANK = {"high": 3, "medium": 2, "low": 1}

_LUXURY_BRANDS = (
    "mercedes-benz", "mercedes", "bmw", "audi", "lexus", "acura", "infiniti",
    "cadillac", "lincoln", "porsche", "jaguar", "land rover", "tesla", "genesis",
)
_SPORTS_KEYWORDS = (
    "corvette", "mustang", "camaro", "challenger", "charger", "gt", "gtr",
    "m3", "m4", "amg", "srt", "type r", "si",
)
_TRUCK_KEYWORDS = (
    "f-150", "f-250", "f-350", "silverado", "sierra", "ram", "tundra", "titan",
    "tacoma", "ranger", "colorado", "canyon",
)
_ECONOMY_BRANDS = ("kia", "hyundai", "nissan", "mitsubishi", "suzuki")

_STANDARD_CHECKLIST = (
    "Review maintenance records for completeness and consistency",
    "Have a pre-purchase inspection performed by an independent mechanic",
    "Test drive the vehicle in various conditions (city, highway, parking)",
    "Check for any warning lights on the dashboard",
    "Verify tire condition and age (check DOT date codes)",
)


def _has_keyword(text: str, keywords) -> bool:
    # Whole words only, so "si" does not match "Silverado"
    return any(re.search(rf"(?<![\w-]){re.escape(k)}(?![\w-])", text) for k in keywords)


def estimate_vehicle_class(make: Optional[str], model: Optional[str] = None) -> VehicleClass:
    """Rough class from make and model names."""
    if not make:
        return "unknown"

    make_lower = make.lower()
    model_lower = (model or "").lower()

    if any(brand in make_lower for brand in _LUXURY_BRANDS):
        return "luxury"
    if _has_keyword(make_lower, _SPORTS_KEYWORDS) or _has_keyword(model_lower, _SPORTS_KEYWORDS):
        return "sports"
    if _has_keyword(model_lower, _TRUCK_KEYWORDS):
        return "truck"
    if any(brand in make_lower for brand in _ECONOMY_BRANDS):
        return "economy"
    return "mid-range"


def assess_maintenance_risk(
    year: Optional[int],
    mileage: Optional[int] = None,
    owner_count: Optional[int] = None,
    vehicle_class: VehicleClass = "unknown",
    current_year: Optional[int] = None,
) -> Optional[MaintenanceRiskAssessment]:
    """Build the maintenance risk assessment.

    Parameters
    ----------
    year : int
        Model year; required.
    mileage : int, optional
        Odometer reading. Missing mileage lowers confidence.
    owner_count : int, optional
        Owners from the accident/ownership history. ``None`` means no
        ownership data was available at all.
    vehicle_class : str
        Output of :func:`estimate_vehicle_class`.
    current_year : int, optional
        Defaults to the current calendar year.
    """
    if current_year is None:
        current_year = datetime.now().year
    if not year or year < 1980 or year > current_year + 1:
        logger.warning("Maintenance risk skipped: invalid or missing year %r", year)
        return None

    age = current_year - year
    has_mileage = bool(mileage and mileage > 0)
    annual = round(mileage / age) if has_mileage and age > 0 else None

    factors: List[MaintenanceRiskFactor] = []
    focus: List[InspectionItem] = []
    checklist: List[str] = []

    # ── Age ──────────────────────────────────────────────────────────────
    if age >= 15:
        factors.append(MaintenanceRiskFactor(
            component="Overall Vehicle Systems",
            risk_level="high",
            description=(
                "Vehicles over 15 years old typically require more frequent maintenance as "
                "components reach end-of-life. Rubber seals, hoses, and electrical systems "
                "are particularly vulnerable."
            ),
            typical_age_range="15+ years",
        ))
        focus.append(InspectionItem(
            component="Rubber Components & Seals",
            priority="high",
            reason="Age-related deterioration",
            what_to_check="Check for dry rot, cracks, or leaks in hoses, belts, door seals, and weatherstripping",
        ))
        focus.append(InspectionItem(
            component="Electrical System",
            priority="high",
            reason="Wiring and connectors degrade with age",
            what_to_check=(
                "Test all electrical functions: lights, power windows, locks, dashboard "
                "displays, and charging system"
            ),
        ))
    elif age >= 10:
        factors.append(MaintenanceRiskFactor(
            component="Wear Components",
            risk_level="medium",
            description=(
                "Vehicles in the 10-15 year range often need replacement of original wear "
                "components like suspension, brakes, and drivetrain parts."
            ),
            typical_age_range="10-15 years",
        ))

    # ── Mileage ──────────────────────────────────────────────────────────
    if has_mileage:
        if mileage >= 150000:
            factors.append(MaintenanceRiskFactor(
                component="Major Drivetrain Components",
                risk_level="high",
                description=(
                    "Vehicles with 150,000+ miles are approaching or past typical service life "
                    "for transmissions, timing chains/belts, and engine internals. Major "
                    "component replacement may be needed."
                ),
                typical_mileage_range="150,000+ miles",
            ))
            focus.append(InspectionItem(
                component="Transmission",
                priority="high",
                reason="High mileage increases failure risk",
                what_to_check=(
                    "Test all gears, check for slipping, rough shifting, or transmission "
                    "fluid condition and level"
                ),
            ))
            focus.append(InspectionItem(
                component="Engine Compression & Timing",
                priority="high",
                reason="Wear on internal components",
                what_to_check=(
                    "Consider compression test, check for timing chain/belt replacement "
                    "history, listen for unusual engine noises"
                ),
            ))
            checklist.append("Verify transmission service history and test drive thoroughly")
            checklist.append("Ask about timing belt/chain replacement (critical maintenance item)")
        elif mileage >= 100000:
            factors.append(MaintenanceRiskFactor(
                component="Scheduled Maintenance Items",
                risk_level="medium",
                description=(
                    "Vehicles with 100,000+ miles typically require major scheduled maintenance "
                    "including timing belt/chain, water pump, and suspension component replacement."
                ),
                typical_mileage_range="100,000-150,000 miles",
            ))
            focus.append(InspectionItem(
                component="Timing Belt/Chain",
                priority="high",
                reason="Critical maintenance milestone",
                what_to_check="Verify replacement history - failure can cause catastrophic engine damage",
            ))
            focus.append(InspectionItem(
                component="Suspension & Steering",
                priority="medium",
                reason="Wear components at replacement age",
                what_to_check="Check for worn shocks/struts, ball joints, tie rods, and steering play",
            ))
            checklist.append("Confirm timing belt/chain replacement has been performed")
            checklist.append("Inspect suspension for wear and test ride quality")
        elif mileage >= 60000:
            factors.append(MaintenanceRiskFactor(
                component="Preventive Maintenance",
                risk_level="low",
                description=(
                    "Vehicles in the 60,000-100,000 mile range typically need routine "
                    "maintenance and may require first-time replacement of original components."
                ),
                typical_mileage_range="60,000-100,000 miles",
            ))
            focus.append(InspectionItem(
                component="Brake System",
                priority="medium",
                reason="Typical replacement interval",
                what_to_check="Check brake pad thickness, rotor condition, and brake fluid quality",
            ))

        if annual and annual >= 20000:
            factors.append(MaintenanceRiskFactor(
                component="High-Use Vehicle",
                risk_level="medium",
                description=(
                    f"Average annual mileage of {annual:,} miles indicates heavy use, which "
                    "accelerates wear on all components, especially engine, transmission, "
                    "and suspension."
                ),
                typical_mileage_range="20,000+ miles/year",
            ))
            focus.append(InspectionItem(
                component="Engine & Transmission",
                priority="high",
                reason="Heavy use accelerates wear",
                what_to_check=(
                    "Pay extra attention to engine performance, transmission shifting, and "
                    "any signs of excessive wear"
                ),
            ))
        elif annual and annual <= 8000:
            factors.append(MaintenanceRiskFactor(
                component="Low-Use Vehicle",
                risk_level="low",
                description=(
                    f"Average annual mileage of {annual:,} miles suggests light use, which may "
                    "reduce wear but can also indicate short-trip driving that's hard on engines."
                ),
                typical_mileage_range="Under 8,000 miles/year",
            ))
            focus.append(InspectionItem(
                component="Battery & Charging System",
                priority="medium",
                reason="Short trips can strain electrical system",
                what_to_check="Test battery voltage and alternator output, check for corrosion",
            ))

    # ── Ownership ────────────────────────────────────────────────────────
    if owner_count is not None:
        if owner_count >= 4:
            factors.append(MaintenanceRiskFactor(
                component="Multiple Ownership",
                risk_level="medium",
                description=(
                    f"Vehicle has had {owner_count} or more owners, which may indicate "
                    "maintenance inconsistency or underlying issues that prompted frequent sales."
                ),
            ))
            checklist.append("Request complete maintenance records from all owners if possible")
            checklist.append("Be extra thorough in inspection due to potential maintenance gaps")
        elif owner_count >= 2 and age >= 10:
            factors.append(MaintenanceRiskFactor(
                component="Ownership Changes",
                risk_level="low",
                description=(
                    "Multiple owners on an older vehicle is common, but verify maintenance "
                    "continuity between owners."
                ),
            ))

    # ── Vehicle class ────────────────────────────────────────────────────
    if vehicle_class in ("luxury", "sports"):
        factors.append(MaintenanceRiskFactor(
            component="Premium Vehicle Maintenance",
            risk_level="medium",
            description=(
                "Luxury and sports vehicles typically have higher maintenance costs and may "
                "require specialized service. Parts and labor costs are generally 30-50% higher "
                "than economy vehicles."
            ),
        ))
        checklist.append("Budget for higher maintenance costs typical of premium vehicles")
        checklist.append("Verify access to qualified service facilities familiar with this make/model")
    elif vehicle_class == "truck" and has_mileage and mileage >= 100000:
        focus.append(InspectionItem(
            component="4WD/Transfer Case",
            priority="medium",
            reason="High-mileage trucks often have 4WD system wear",
            what_to_check="Test 4WD engagement, check for leaks, verify transfer case service history",
        ))

    if age >= 5 or (has_mileage and mileage >= 50000):
        focus.append(InspectionItem(
            component="Cooling System",
            priority="medium",
            reason="Age and mileage increase failure risk",
            what_to_check=(
                "Check coolant condition, test for leaks, verify radiator and hoses are in "
                "good condition"
            ),
        ))
        focus.append(InspectionItem(
            component="Fluid Levels & Quality",
            priority="medium",
            reason="Indicators of maintenance history",
            what_to_check=(
                "Check all fluid levels (oil, transmission, brake, power steering, coolant) "
                "and their condition/color"
            ),
        ))

    checklist.extend(_STANDARD_CHECKLIST)

    # ── Overall rating ───────────────────────────────────────────────────
    high = sum(1 for f in factors if f.risk_level == "high")
    medium = sum(1 for f in factors if f.risk_level == "medium")

    if high >= 2 or (high >= 1 and medium >= 2) or age >= 15:
        overall = "elevated"
        classification = (
            "This vehicle is entering a phase where maintenance needs and costs typically "
            "increase. Several components may be approaching replacement age, and proactive "
            "inspection is recommended."
        )
    elif high >= 1 or medium >= 2 or age >= 10 or (has_mileage and mileage >= 100000):
        overall = "medium"
        classification = (
            "This vehicle is at a stage where some maintenance items may be due. Regular "
            "inspection and preventive maintenance can help avoid larger issues."
        )
    else:
        overall = "low"
        classification = (
            "This vehicle appears to be in a relatively low-maintenance phase of its "
            "lifecycle. Standard preventive maintenance should be sufficient."
        )

    confidence_note = None
    if not has_mileage:
        confidence = "low"
        confidence_note = (
            "Mileage information is missing, which limits our ability to assess maintenance "
            "risk accurately. Actual maintenance needs may vary significantly."
        )
    elif owner_count is None:
        confidence = "medium"
        confidence_note = (
            "Limited ownership history information available. Maintenance continuity "
            "between owners is uncertain."
        )
    elif age > 0:
        confidence = "high"
    else:
        confidence = "medium"

    return MaintenanceRiskAssessment(
        overall_risk=overall,
        classification=classification,
        risk_factors=factors,
        inspection_focus=sorted(focus, key=lambda item: -_PRIORITY_RANK[item.priority]),
        buyer_checklist=list(dict.fromkeys(checklist)),
        confidence=confidence,
        confidence_note=confidence_note,
    )
