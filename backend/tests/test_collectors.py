"""Collector tests: VIN history, market listings and valuation, NHTSA recalls, HTTP retry, helpers."""

import asyncio
import os
import sys
from unittest.mock import AsyncMock, MagicMock, patch

# Ensure the backend package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import httpx
import pytest

from redflagged.schemas.red_flag_schema import RedFlag
from redflagged.schemas.vehicle_schema import (
    AccidentHistory,
    AutoDevMarketData,
    MarketCheckData,
    MarketListingsData,
    TitleHistory,
    VehicleHistory,
)
from redflagged.services.http_client import RetryConfig, get_with_retry
from redflagged.services.market_listings import (
    calculate_average_market_value,
    calculate_depreciation,
    estimate_fallback_value,
    fetch_market_data,
    summarize_listings,
)
from redflagged.services.vehicle_analysis import extract_year_from_vin, generate_questions
from redflagged.services.vehicle_history import (
    InvalidVINError,
    fetch_vehicle_history,
    generate_history_summary,
    map_accident_history,
    map_title_history,
)
from redflagged.services.vehicle_recalls import fetch_vehicle_recalls

VIN = "1HGCM82633A004352"


# ===================================================================== #
#  Vehicle history                                                        #
# ===================================================================== #

class TestVehicleHistory:
    def test_mock_history_without_key(self, monkeypatch):
        monkeypatch.delenv("AUTO_DEV_API_KEY", raising=False)
        free = asyncio.run(fetch_vehicle_history(VIN, "free"))
        paid = asyncio.run(fetch_vehicle_history(VIN, "paid"))
        assert free.nmvtis.state_title == "Clean"
        assert free.carfax is None
        assert paid.carfax.ownership_changes == 2

    def test_short_vin_is_skipped(self):
        assert asyncio.run(fetch_vehicle_history("ABC123")) is None

    def test_provider_rejects_vin(self, monkeypatch):
        monkeypatch.setenv("AUTO_DEV_API_KEY", "test-key")
        response = httpx.Response(400, json={"error": "check digit mismatch"})
        with patch(
            "redflagged.services.vehicle_history.get_with_retry",
            new=AsyncMock(return_value=response),
        ):
            with pytest.raises(InvalidVINError, match="check digit mismatch"):
                asyncio.run(fetch_vehicle_history(VIN))

    @pytest.mark.parametrize("code", [401, 404, 429, 500])
    def test_other_errors_degrade(self, monkeypatch, code):
        monkeypatch.setenv("AUTO_DEV_API_KEY", "test-key")
        with patch(
            "redflagged.services.vehicle_history.get_with_retry",
            new=AsyncMock(return_value=httpx.Response(code)),
        ):
            assert asyncio.run(fetch_vehicle_history(VIN)) is None

    def test_maps_vin_response(self, monkeypatch):
        monkeypatch.setenv("AUTO_DEV_API_KEY", "test-key")
        payload = {
            "vin": VIN,
            "year": 2018,
            "make": "Honda",
            "model": "Accord",
            "title": {"brands": ["Rebuilt"], "state": "TX"},
            "history": {
                "theft": True,
                "accidentCount": 1,
                "ownershipHistory": [{"ownerCount": 2}, {"ownerCount": 3}],
                "odometer": [{"reading": 40000, "date": "2022-01-01"}],
            },
        }
        with patch(
            "redflagged.services.vehicle_history.get_with_retry",
            new=AsyncMock(return_value=httpx.Response(200, json=payload)),
        ):
            history = asyncio.run(fetch_vehicle_history(VIN, "paid"))

        assert history.nmvtis.title_brands == ["Rebuilt"]
        assert history.nmvtis.theft_records is True
        assert history.nmvtis.vehicle_details.model == "Accord"
        assert history.carfax.accident_indicators is True
        assert history.carfax.ownership_changes == 3
        assert history.carfax.mileage_snapshots[0].mileage == 40000

    def test_single_brand_and_total_loss(self):
        title = map_title_history({"title": {"brand": "Salvage"}, "history": {"totalLoss": True}})
        assert title.title_brands == ["Salvage"]
        assert title.salvage_record is True
        assert title.vehicle_details is None

    def test_no_history_block(self):
        assert map_accident_history({"title": {}}) is None

    def test_history_summary(self):
        history = VehicleHistory(
            nmvtis=TitleHistory(),
            carfax=AccidentHistory(ownership_changes=1, service_history=["Oil change"]),
        )
        assert generate_history_summary(history) == (
            "No major accidents reported. 1 previous owner. Regular maintenance records "
            "available. Clean title history."
        )
        assert generate_history_summary(None) is None


# ===================================================================== #
#  Market listings and valuation                                          #
# ===================================================================== #

class TestMarketListings:
    def test_summarize_listings(self):
        listings = [
            {"retailListing": {"price": 20000, "state": "TX", "dealer": {"name": "Lot A"}, "miles": 30000}},
            {"retailListing": {"price": 22000, "state": "TX"}, "privateParty": True},
            {"retailListing": {"price": 0}},
        ]
        summary = summarize_listings(listings)
        assert summary.market_average == 21000
        assert summary.price_min == 20000
        assert [r.listing_type for r in summary.raw_listings] == ["dealer", "private-party"]

    def test_free_tier_uses_marketcheck_only(self):
        auto_dev = AsyncMock(return_value=None)
        market_check = AsyncMock(return_value=MarketCheckData(competitive_price=18000))
        with patch("redflagged.services.market_listings.fetch_auto_dev_listings", new=auto_dev), patch(
            "redflagged.services.market_listings.fetch_marketcheck_stats", new=market_check
        ):
            data = asyncio.run(fetch_market_data(2018, "Honda", "Civic", tier="free"))
        auto_dev.assert_not_called()
        assert data.market_check.competitive_price == 18000

    def test_average_market_value(self):
        both = MarketListingsData(
            auto_dev=AutoDevMarketData(market_average=20000, price_min=18000, price_max=22000),
            market_check=MarketCheckData(competitive_price=18000),
        )
        assert calculate_average_market_value(both) == 19000
        assert calculate_average_market_value(MarketListingsData()) == 0

    def test_depreciation(self):
        # 0.85 * 0.9 * 0.9 over three years
        assert calculate_depreciation(20000, 2021, current_year=2024) == 13770
        assert calculate_depreciation(20000, 2024, current_year=2024) == 20000

    def test_mileage_adjustment(self):
        base = calculate_depreciation(20000, 2021, current_year=2024)
        assert calculate_depreciation(20000, 2021, 70000, current_year=2024) == round(base * 0.9)

    def test_fallback_value_tables(self):
        assert estimate_fallback_value("Honda", "Civic", 2024, current_year=2024) == 18000
        assert estimate_fallback_value("Honda", "Fit", 2024, current_year=2024) == 24250
        assert estimate_fallback_value("Saab", "9-3", 2024, current_year=2024) == 20000


# ===================================================================== #
#  Recalls                                                                #
# ===================================================================== #

class TestRecalls:
    def test_missing_vehicle(self):
        assert asyncio.run(fetch_vehicle_recalls(None, "Civic", 2018)) is None

    def test_maps_records(self):
        payload = {
            "Count": 1,
            "results": [
                {
                    "NHTSACampaignNumber": "18V123000",
                    "Component": "AIR BAGS",
                    "Summary": "Inflator may rupture.",
                    "Consequence": "Injury risk.",
                    "Remedy": "Replace inflator.",
                }
            ],
        }
        with patch(
            "redflagged.services.vehicle_recalls.get_with_retry",
            new=AsyncMock(return_value=httpx.Response(200, json=payload)),
        ):
            recalls = asyncio.run(fetch_vehicle_recalls("Honda", "Civic", 2018))
        assert len(recalls) == 1
        assert recalls[0].recall_number == "18V123000"

    def test_not_found_means_no_recalls(self):
        with patch(
            "redflagged.services.vehicle_recalls.get_with_retry",
            new=AsyncMock(return_value=httpx.Response(404)),
        ):
            assert asyncio.run(fetch_vehicle_recalls("Honda", "Civic", 2018)) == []

    def test_unexpected_format(self):
        with patch(
            "redflagged.services.vehicle_recalls.get_with_retry",
            new=AsyncMock(return_value=httpx.Response(200, json={"message": "ok"})),
        ):
            assert asyncio.run(fetch_vehicle_recalls("Honda", "Civic", 2018)) is None


# ===================================================================== #
#  Pipeline helpers                                                       #
# ===================================================================== #

class TestPipelineHelpers:
    def test_year_from_vin(self):
        assert extract_year_from_vin(VIN, 2024) == 2003
        assert extract_year_from_vin("1HGCM8263JA004352", 2024) == 2018
        assert extract_year_from_vin("SHORT", 2024) is None

    def test_free_questions(self):
        flags = [RedFlag(id="title-brands", title="t", severity="critical", category="title")]
        questions = generate_questions(flags, -500, "free")
        assert len(questions) == 2
        assert "accident" in questions[1]

    def test_paid_questions(self):
        flags = [RedFlag(id="relisting-detected", title="t", severity="high", category="seller")]
        questions = generate_questions(flags, 1200, "paid")
        assert any("$1,200 less" in q for q in questions)
        assert any("offers on this vehicle" in q for q in questions)
        assert questions[-1] == "Can I have the vehicle inspected by my mechanic before purchasing?"


# ===================================================================== #
#  Shared HTTP client                                                     #
# ===================================================================== #

def _client_returning(*responses):
    client = MagicMock()
    client.get = AsyncMock(side_effect=list(responses))
    return client


class TestGetWithRetry:
    def test_client_error_returns_without_retry(self):
        client = _client_returning(httpx.Response(404))
        with patch(
            "redflagged.services.http_client.get_client", new=AsyncMock(return_value=client)
        ), patch.object(RetryConfig, "INITIAL_BACKOFF", 0):
            response = asyncio.run(get_with_retry("https://example.test", "nhtsa"))
        assert response.status_code == 404
        assert client.get.await_count == 1

    def test_server_error_is_retried(self):
        client = _client_returning(httpx.Response(503), httpx.Response(200, json={"ok": True}))
        with patch(
            "redflagged.services.http_client.get_client", new=AsyncMock(return_value=client)
        ), patch.object(RetryConfig, "INITIAL_BACKOFF", 0):
            response = asyncio.run(get_with_retry("https://example.test", "fema"))
        assert response.status_code == 200
        assert client.get.await_count == 2

    def test_last_retryable_response_is_returned(self):
        client = _client_returning(*[httpx.Response(429) for _ in range(3)])
        with patch(
            "redflagged.services.http_client.get_client", new=AsyncMock(return_value=client)
        ), patch.object(RetryConfig, "INITIAL_BACKOFF", 0):
            response = asyncio.run(get_with_retry("https://example.test", "auto_dev"))
        assert response.status_code == 429
        assert client.get.await_count == 3
