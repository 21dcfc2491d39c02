"""API tests: health, /analyze (pipeline with collectors mocked), saved reports."""

import os
import sys
import uuid
from datetime import datetime
from unittest.mock import AsyncMock, patch

# Ensure the backend package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from redflagged.database import Base, get_db
from redflagged.main import app
from redflagged.models.report import Report
from redflagged.schemas.report_schema import VehicleReport
from redflagged.schemas.vehicle_schema import (
    AccidentHistory,
    MarketCheckData,
    MarketListingsData,
    SellerSignals,
    TitleHistory,
    VehicleDetails,
    VehicleHistory,
    VehicleInfo,
)
from redflagged.services.vehicle_history import InvalidVINError

# ---------------------------------------------------------------------------
# Test database setup (file-based SQLite for compatibility)
# ---------------------------------------------------------------------------
TEST_DATABASE_URL = "sqlite:///./test_api.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

VIN = "1HGCM82633A004352"
USER = {"X-User-Id": "user-1"}
OTHER_USER = {"X-User-Id": "user-2"}


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


client = TestClient(app)


@pytest.fixture(autouse=True)
def setup_db():
    """Create tables before each test, drop after."""
    app.dependency_overrides[get_db] = override_get_db
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    app.dependency_overrides.pop(get_db, None)


def _sample_report(verdict="caution", asking=15000.0):
    return VehicleReport(
        tier="free",
        verdict=verdict,
        confidence_score=60,
        summary="Sample summary.",
        vehicle_info=VehicleInfo(
            year=2018,
            make="Honda",
            model="Civic",
            asking_price=asking,
            estimated_value=16000,
        ),
    )


def _save(report, headers=USER):
    return client.post(
        "/reports",
        json={"report": report.model_dump(mode="json")},
        headers=headers,
    )


def _market():
    return MarketListingsData(
        market_check=MarketCheckData(competitive_price=16000, sales_count=12)
    )


# Patch every network-bound collector the pipeline awaits
def _mock_collectors(history=None, market=None, seller=None, recalls=None):
    base = "redflagged.services.vehicle_analysis"
    return (
        patch(f"{base}.fetch_vehicle_history", new=AsyncMock(return_value=history)),
        patch(f"{base}.fetch_market_data", new=AsyncMock(return_value=market)),
        patch(f"{base}.collect_seller_signals", new=AsyncMock(return_value=seller)),
        patch(f"{base}.fetch_vehicle_recalls", new=AsyncMock(return_value=recalls)),
    )


# ===================================================================== #
#  General                                                                #
# ===================================================================== #

class TestGeneral:
    def test_health(self):
        res = client.get("/health")
        assert res.status_code == 200
        assert res.json() == {"status": "healthy", "service": "redflagged", "version": "0.1.0"}

    def test_root(self):
        res = client.get("/")
        assert res.status_code == 200
        assert res.json()["name"] == "RedFlagged"


# ===================================================================== #
#  /analyze                                                               #
# ===================================================================== #

class TestAnalyzeRoute:
    def test_invalid_vin_format_is_422(self):
        res = client.post("/analyze", json={"vin": "1HGCM82633O004352", "asking_price": 15000})
        assert res.status_code == 422

    def test_missing_price_is_422(self):
        res = client.post("/analyze", json={"year": 2018, "make": "Honda", "model": "Civic"})
        assert res.status_code == 422

    def test_provider_rejected_vin_is_400(self):
        with patch(
            "redflagged.routes.analysis.analyze_vehicle",
            new=AsyncMock(side_effect=InvalidVINError("Invalid VIN: check digit mismatch")),
        ):
            res = client.post("/analyze", json={"vin": VIN, "asking_price": 15000})
        assert res.status_code == 400
        assert res.json()["detail"] == "Invalid VIN: check digit mismatch"

    def test_pipeline_crash_is_500(self):
        with patch(
            "redflagged.routes.analysis.analyze_vehicle",
            new=AsyncMock(side_effect=RuntimeError("boom")),
        ):
            res = client.post("/analyze", json={"vin": VIN, "asking_price": 15000})
        assert res.status_code == 500
        assert res.json()["detail"] == "Analysis failed: boom"

    def test_free_analysis_without_vin(self):
        p1, p2, p3, p4 = _mock_collectors(market=_market(), recalls=[])
        with p1 as history, p2, p3 as seller, p4:
            res = client.post(
                "/analyze",
                json={
                    "year": 2018,
                    "make": "Honda",
                    "model": "Civic",
                    "mileage": 60000,
                    "asking_price": 15000,
                },
            )

        assert res.status_code == 200, res.text
        data = res.json()
        history.assert_not_called()
        seller.assert_not_called()

        assert data["tier"] == "free"
        assert data["verdict"] in ("deal", "caution", "disaster")
        assert data["vehicle_info"]["estimated_value"] == 16000
        assert data["vehicle_info"]["price_difference_percent"] == -6
        flag_ids = [f["id"] for f in data["red_flags"]]
        assert "no-vin" in flag_ids
        assert flag_ids[-1] == "private-sale"
        assert len(data["questions_to_ask"]) == 2
        assert data["data_quality"]["overall_confidence"] == "low"
        assert data["verdict_reasoning"]["contributing_factors"] is None
        assert data["sources"]["maintenance_risk_assessment"] is None

    def test_paid_analysis_with_history(self):
        history = VehicleHistory(
            nmvtis=TitleHistory(
                title_brands=["Salvage"],
                vehicle_details=VehicleDetails(year=2018, make="Honda", model="Civic"),
            ),
            carfax=AccidentHistory(accident_indicators=True, ownership_changes=3),
        )
        p1, p2, p3, p4 = _mock_collectors(
            history=history, market=_market(), seller=SellerSignals(), recalls=[]
        )
        with p1, p2, p3, p4:
            res = client.post(
                "/analyze",
                json={"vin": VIN, "mileage": 60000, "asking_price": 12000, "tier": "paid"},
            )

        assert res.status_code == 200, res.text
        data = res.json()
        assert data["vehicle_info"]["make"] == "Honda"
        assert data["verdict"] == "disaster"
        flag_ids = [f["id"] for f in data["red_flags"]]
        assert flag_ids[0] == "title-brands"
        assert "accident-history" in flag_ids
        assert "unusually-low-price" in flag_ids
        assert data["sources"]["maintenance_risk_assessment"] is not None
        assert data["sources"]["market_pricing_analysis"] is not None
        assert data["sources"]["seller_analysis"]["credibility_score"] == 70
        assert data["sources"]["history_summary"].startswith("Accident history detected")
        assert data["verdict_reasoning"]["contributing_factors"] is not None

    def test_history_invalid_vin_propagates_as_400(self):
        with patch(
            "redflagged.services.vehicle_analysis.fetch_vehicle_history",
            new=AsyncMock(side_effect=InvalidVINError("Invalid VIN: rejected")),
        ):
            res = client.post("/analyze", json={"vin": VIN, "asking_price": 15000})
        assert res.status_code == 400

    def test_failed_collector_degrades(self):
        p1, p2, p3, p4 = _mock_collectors(recalls=[])
        with p1, patch(
            "redflagged.services.vehicle_analysis.fetch_market_data",
            new=AsyncMock(side_effect=RuntimeError("marketcheck down")),
        ), p3, p4:
            res = client.post(
                "/analyze",
                json={"vin": VIN, "year": 2018, "make": "Honda", "model": "Civic", "asking_price": 15000},
            )
        assert res.status_code == 200, res.text
        data = res.json()
        assert data["sources"]["market_data"] is None
        assert data["vehicle_info"]["estimated_value"] > 0


# ===================================================================== #
#  /reports                                                               #
# ===================================================================== #

class TestReports:
    def test_requires_caller_id(self):
        assert _save(_sample_report(), headers={}).status_code == 401
        assert _save(_sample_report(), headers={"X-User-Id": "  "}).status_code == 401
        assert client.get("/reports").status_code == 401

    def test_save_and_fetch(self):
        res = _save(_sample_report())
        assert res.status_code == 201, res.text
        data = res.json()
        assert data["verdict"] == "caution"
        assert data["asking_price"] == 15000
        assert data["report"]["summary"] == "Sample summary."

        res = client.get(f"/reports/{data['id']}", headers=USER)
        assert res.status_code == 200
        assert res.json()["report"]["vehicle_info"]["make"] == "Honda"

    def test_other_users_report_is_404(self):
        report_id = _save(_sample_report()).json()["id"]
        res = client.get(f"/reports/{report_id}", headers=OTHER_USER)
        assert res.status_code == 404
        assert res.json()["detail"] == f"Report {report_id} not found"

    def test_unknown_report_is_404(self):
        res = client.get(f"/reports/{uuid.uuid4()}", headers=USER)
        assert res.status_code == 404

    def test_list_is_newest_first_and_scoped(self):
        db = TestingSessionLocal()
        try:
            for verdict, created in (("caution", datetime(2024, 1, 1)), ("deal", datetime(2024, 3, 1))):
                report = _sample_report(verdict=verdict)
                db.add(Report(
                    user_id="user-1",
                    vehicle_info=report.vehicle_info.model_dump_json(),
                    report_data=report.model_dump_json(),
                    verdict=verdict,
                    asking_price=15000,
                    created_at=created,
                ))
            db.commit()
        finally:
            db.close()
        _save(_sample_report(), headers=OTHER_USER)

        res = client.get("/reports", headers=USER)
        assert res.status_code == 200
        data = res.json()
        assert data["total"] == 2
        assert [r["verdict"] for r in data["reports"]] == ["deal", "caution"]

    def test_corrupted_report_is_500(self):
        db = TestingSessionLocal()
        try:
            row = Report(
                user_id="user-1",
                vehicle_info=_sample_report().vehicle_info.model_dump_json(),
                report_data="{not json",
                verdict="caution",
                asking_price=15000,
            )
            db.add(row)
            db.commit()
            report_id = row.id
        finally:
            db.close()

        res = client.get(f"/reports/{report_id}", headers=USER)
        assert res.status_code == 500
        assert res.json()["detail"] == "Stored report is corrupted"
