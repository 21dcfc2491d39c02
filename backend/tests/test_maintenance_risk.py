"""Maintenance risk tests: vehicle class estimate, risk factors, overall rating, confidence."""

import os
import sys

# Ensure the backend package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest

from redflagged.services.maintenance_risk import (
    assess_maintenance_risk,
    estimate_vehicle_class,
)

CURRENT_YEAR = 2024


class TestEstimateVehicleClass:
    @pytest.mark.parametrize(
        "make, model, expected",
        [
            ("BMW", "X5", "luxury"),
            ("Mercedes-Benz", "C-Class", "luxury"),
            ("Chevrolet", "Silverado 1500", "truck"),
            ("Honda", "Civic Si", "sports"),
            ("Ford", "Mustang GT", "sports"),
            ("Kia", "Soul", "economy"),
            ("Toyota", "Camry", "mid-range"),
        ],
    )
    def test_classes(self, make, model, expected):
        assert estimate_vehicle_class(make, model) == expected

    def test_missing_make(self):
        assert estimate_vehicle_class(None, "Civic") == "unknown"


class TestAssessMaintenanceRisk:
    def test_invalid_year(self):
        assert assess_maintenance_risk(None, current_year=CURRENT_YEAR) is None
        assert assess_maintenance_risk(1975, current_year=CURRENT_YEAR) is None
        assert assess_maintenance_risk(2030, current_year=CURRENT_YEAR) is None

    def test_young_low_mileage_car(self):
        result = assess_maintenance_risk(2022, 20000, 1, "mid-range", CURRENT_YEAR)
        assert result.overall_risk == "low"
        assert result.risk_factors == []
        assert result.inspection_focus == []
        assert result.confidence == "high"
        assert result.confidence_note is None
        assert len(result.buyer_checklist) == 5

    def test_old_high_mileage_car_is_elevated(self):
        result = assess_maintenance_risk(2005, 160000, 2, "mid-range", CURRENT_YEAR)
        assert result.overall_risk == "elevated"
        components = [f.component for f in result.risk_factors]
        assert "Overall Vehicle Systems" in components
        assert "Major Drivetrain Components" in components
        assert "Ownership Changes" in components

    def test_heavy_use_is_medium(self):
        result = assess_maintenance_risk(2019, 110000, None, "mid-range", CURRENT_YEAR)
        assert result.overall_risk == "medium"
        assert [f.component for f in result.risk_factors] == [
            "Scheduled Maintenance Items",
            "High-Use Vehicle",
        ]
        assert result.confidence == "medium"
        assert result.confidence_note is not None

    def test_inspection_focus_is_sorted_by_priority(self):
        result = assess_maintenance_risk(2019, 110000, 1, "truck", CURRENT_YEAR)
        priorities = [item.priority for item in result.inspection_focus]
        assert priorities == sorted(priorities, key=lambda p: {"high": 0, "medium": 1, "low": 2}[p])
        assert "4WD/Transfer Case" in [item.component for item in result.inspection_focus]

    def test_missing_mileage_lowers_confidence(self):
        result = assess_maintenance_risk(2015, None, 2, "mid-range", CURRENT_YEAR)
        assert result.confidence == "low"
        assert "Mileage" in result.confidence_note

    def test_many_owners(self):
        result = assess_maintenance_risk(2018, 70000, 5, "mid-range", CURRENT_YEAR)
        assert "Multiple Ownership" in [f.component for f in result.risk_factors]
        assert result.buyer_checklist[0] == "Request complete maintenance records from all owners if possible"

    def test_premium_class_adds_factor_and_checklist(self):
        result = assess_maintenance_risk(2020, 40000, 1, "luxury", CURRENT_YEAR)
        assert "Premium Vehicle Maintenance" in [f.component for f in result.risk_factors]
        assert "Budget for higher maintenance costs typical of premium vehicles" in result.buyer_checklist

    def test_checklist_has_no_duplicates(self):
        result = assess_maintenance_risk(2005, 160000, 5, "sports", CURRENT_YEAR)
        assert len(result.buyer_checklist) == len(set(result.buyer_checklist))
