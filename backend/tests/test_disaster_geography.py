"""Disaster geography tests: location parsing, FEMA grouping, risk scoring."""

import asyncio
import os
import sys
from datetime import datetime
from unittest.mock import AsyncMock, patch

# Ensure the backend package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import httpx
import pytest

from redflagged.schemas.vehicle_schema import DisasterData, DisasterDeclaration
from redflagged.services.disaster_geography import (
    analyze_disaster_risk,
    analyze_environmental_risk,
    collect_disaster_geography,
    extract_county,
    extract_state,
    fetch_fema_declarations,
    group_declarations,
)

NOW = datetime(2024, 6, 1)


def _declaration(kind, date, counties=None):
    return DisasterDeclaration(
        disaster_type=kind,
        declaration_date=date,
        affected_counties=counties or [],
    )


# ===================================================================== #
#  Location parsing                                                       #
# ===================================================================== #

class TestExtractState:
    @pytest.mark.parametrize(
        "location, expected",
        [
            ("Austin, TX", "TX"),
            ("Charleston, West Virginia", "WV"),
            ("Richmond, Virginia", "VA"),
            ("somewhere in florida", "FL"),
            ("Portland, OR 97201", "OR"),
        ],
    )
    def test_recognised(self, location, expected):
        assert extract_state(location) == expected

    def test_lowercase_words_are_not_codes(self):
        assert extract_state("parked in the garage or driveway") is None

    def test_empty(self):
        assert extract_state(None) is None
        assert extract_state("") is None

    def test_county(self):
        assert extract_county("Harris County, TX") == "Harris County"
        assert extract_county("Houston, TX") is None


# ===================================================================== #
#  FEMA records                                                           #
# ===================================================================== #

class TestGroupDeclarations:
    def test_groups_by_disaster_number(self):
        records = [
            {"disasterNumber": 4332, "incidentType": "Hurricane", "declarationDate": "2023-08-25T00:00:00.000Z", "designatedArea": "Harris (County)"},
            {"disasterNumber": 4332, "incidentType": "Hurricane", "declarationDate": "2023-08-25T00:00:00.000Z", "designatedArea": "Galveston (County)"},
            {"disasterNumber": 4400, "incidentType": "Fire", "declarationDate": "2022-02-01T00:00:00.000Z", "designatedArea": "Travis (County)"},
        ]
        data = group_declarations(records)
        assert len(data.fema_declarations) == 2
        hurricane = data.fema_declarations[0]
        assert hurricane.disaster_type == "Hurricane"
        assert hurricane.declaration_date == "2023-08-25"
        assert hurricane.affected_counties == ["Harris (County)", "Galveston (County)"]

    def test_records_without_date_are_skipped(self):
        data = group_declarations([{"disasterNumber": 1, "incidentType": "Flood"}])
        assert data.fema_declarations == []

    def test_fetch_filters_by_county(self):
        payload = {
            "DisasterDeclarationsSummaries": [
                {"disasterNumber": 1, "designatedArea": "Harris (County)"},
                {"disasterNumber": 2, "designatedArea": "Travis (County)"},
            ]
        }
        with patch(
            "redflagged.services.disaster_geography.get_with_retry",
            new=AsyncMock(return_value=httpx.Response(200, json=payload)),
        ):
            records = asyncio.run(fetch_fema_declarations("TX", "Harris", now=NOW))
        assert [r["disasterNumber"] for r in records] == [1]

    def test_fetch_failure_returns_empty(self):
        with patch(
            "redflagged.services.disaster_geography.get_with_retry",
            new=AsyncMock(side_effect=httpx.ConnectError("down")),
        ):
            assert asyncio.run(fetch_fema_declarations("TX", now=NOW)) == []


# ===================================================================== #
#  Risk scoring                                                           #
# ===================================================================== #

class TestDisasterRisk:
    def test_no_declarations(self):
        result = analyze_disaster_risk(DisasterData(), NOW)
        assert result.has_risk is False
        assert result.risk_level == "low"

    def test_recent_flood_is_high(self):
        data = DisasterData(
            fema_declarations=[
                _declaration("Flood", "2023-04-01"),
                _declaration("Severe Storm", "2020-01-01"),
            ]
        )
        result = analyze_disaster_risk(data, NOW)
        assert result.risk_level == "high"
        assert "1 FEMA disaster declaration(s) in the past 3 years" in result.details

    def test_two_old_declarations_are_medium(self):
        data = DisasterData(
            fema_declarations=[
                _declaration("Fire", "2020-01-01"),
                _declaration("Severe Storm", "2019-09-01"),
            ]
        )
        result = analyze_disaster_risk(data, NOW)
        assert result.risk_level == "medium"
        assert result.details == []


class TestEnvironmentalRisk:
    def test_recent_exposure(self):
        data = DisasterData(
            fema_declarations=[_declaration("Hurricane", "2023-08-25", ["Harris (County)"])]
        )
        result = analyze_environmental_risk(data, "TX", "Harris County", NOW)
        assert result.disaster_presence is True
        assert result.recency == "recent"
        assert result.flood_zone_risk == "unknown"
        assert result.confidence == 80
        assert result.affected_counties == ["Harris (County)"]
        assert result.recent_disasters[0].days_ago == (NOW - datetime(2023, 8, 25)).days

    def test_historical_only(self):
        data = DisasterData(fema_declarations=[_declaration("Fire", "2019-09-01")])
        result = analyze_environmental_risk(data, "CA", None, NOW)
        assert result.recency == "historical"
        assert result.confidence == 60

    def test_nothing_found(self):
        result = analyze_environmental_risk(DisasterData(), "CA", None, NOW)
        assert result.disaster_presence is False
        assert result.recency == "none"
        assert result.confidence == 30


class TestCollectDisasterGeography:
    def test_no_location(self):
        result = asyncio.run(collect_disaster_geography(None, NOW))
        assert result.disaster_data.fema_declarations == []
        assert result.environmental_risk.confidence == 0

    def test_unknown_state_skips_fema(self):
        mocked = AsyncMock(return_value=[])
        with patch("redflagged.services.disaster_geography.fetch_fema_declarations", new=mocked):
            asyncio.run(collect_disaster_geography("somewhere nice", NOW))
        mocked.assert_not_called()

    def test_full_collection(self):
        records = [
            {"disasterNumber": 9, "incidentType": "Flood", "declarationDate": "2024-03-01T00:00:00.000Z", "designatedArea": "Orleans (Parish)"},
        ]
        with patch(
            "redflagged.services.disaster_geography.fetch_fema_declarations",
            new=AsyncMock(return_value=records),
        ):
            result = asyncio.run(collect_disaster_geography("New Orleans, LA", NOW))
        assert result.disaster_risk.has_risk is True
        assert result.environmental_risk.recency == "recent"
        assert result.environmental_risk.disaster_types == ["Flood"]
