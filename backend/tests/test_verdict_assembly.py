"""Verdict assembly tests: categorization, rule cascade, confidence, premium context."""

import os
import random
import sys

# Ensure the backend package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest

from redflagged.schemas.data_quality_schema import DataQualityAssessment
from redflagged.schemas.red_flag_schema import RedFlag
from redflagged.schemas.vehicle_schema import (
    AskingPricePosition,
    EnvironmentalRisk,
    MaintenanceRiskAssessment,
    MarketPricingAnalysis,
    NegotiationLeverage,
    PriceRanges,
)
from redflagged.services.verdict_assembly import (
    assemble_verdict,
    assess_data_quality_impact,
    assess_environmental_risk_contribution,
    assess_market_position_contribution,
    build_context,
    categorize_flags,
    count_meaningful_risks,
    has_strong_structural_risk,
    resolve_rule,
)


def _flag(flag_id, severity="medium", category="pricing"):
    return RedFlag(id=flag_id, title=flag_id, severity=severity, category=category)


def _dq(level, score):
    return DataQualityAssessment(overall_confidence=level, confidence_score=score)


def _pricing(percentile, position, diff, leverage):
    return MarketPricingAnalysis(
        price_ranges=PriceRanges(
            low=18000, median=20000, high=22000, percentile_25=19000, percentile_75=21000
        ),
        asking_price_position=AskingPricePosition(
            percentile=percentile, position=position, difference_percent=diff
        ),
        comparable_count=12,
        negotiation_leverage=NegotiationLeverage(level=leverage, explanation="x"),
        confidence="medium",
    )


TITLE = _flag("title-brands", "critical", "title")
ACCIDENT = _flag("accident-history", "high", "history")
OVERPRICED = _flag("overpriced", "medium", "pricing")
LOW_PRICE = _flag("unusually-low-price", "medium", "pricing")
STALE = _flag("stale-listing", "medium", "listing")
ENVIRONMENTAL = _flag("environmental-risk", "high", "disaster")
MEDIUM_ENVIRONMENTAL = _flag("environmental-risk", "medium", "disaster")
PRIVATE_SALE = _flag("private-sale", "low", "ownership")


# ===================================================================== #
#  Categorization                                                         #
# ===================================================================== #

class TestCategorizeFlags:
    def test_buckets(self):
        structural, market, seller = categorize_flags([TITLE, OVERPRICED, STALE])
        assert structural == [TITLE]
        assert market == [OVERPRICED]
        assert seller == [STALE]

    def test_critical_flag_of_any_category_is_structural(self):
        odd = _flag("overpriced", "critical", "pricing")
        structural, market, _ = categorize_flags([odd])
        assert structural == [odd]
        assert market == []

    def test_high_disaster_category_is_structural(self):
        flag = _flag("something-new", "high", "disaster")
        structural, _, _ = categorize_flags([flag])
        assert structural == [flag]

    def test_unclassified_falls_back_on_severity(self):
        high = _flag("mystery", "high", "data-gap")
        low = _flag("mystery-low", "low", "data-gap")
        structural, market, _ = categorize_flags([high, low])
        assert structural == [high]
        assert market == [low]

    def test_every_flag_lands_once_and_order_is_kept(self):
        flags = [PRIVATE_SALE, TITLE, LOW_PRICE, OVERPRICED, STALE, ACCIDENT]
        structural, market, seller = categorize_flags(flags)
        assert len(structural) + len(market) + len(seller) == len(flags)
        assert structural == [TITLE, ACCIDENT]
        assert market == [PRIVATE_SALE, LOW_PRICE, OVERPRICED]

    def test_legacy_seller_id(self):
        legacy = _flag("too-good-too-be-long", "medium", "data-gap")
        _, _, seller = categorize_flags([legacy])
        assert seller == [legacy]


class TestStrongStructural:
    def test_critical_is_strong(self):
        assert has_strong_structural_risk([TITLE]) is True

    def test_high_strong_id_is_strong(self):
        assert has_strong_structural_risk([ACCIDENT]) is True

    def test_high_environmental_is_not_strong(self):
        assert has_strong_structural_risk([ENVIRONMENTAL]) is False

    def test_low_flags_do_not_count(self):
        assert count_meaningful_risks([PRIVATE_SALE, OVERPRICED]) == 1


# ===================================================================== #
#  Rule cascade                                                           #
# ===================================================================== #

class TestNoRisk:
    def test_empty_flags_is_deal(self):
        result = assemble_verdict([])
        assert result.verdict == "deal"
        assert result.confidence == 85
        assert result.data_quality_impact == "none"
        assert result.contributing_factors is None

    def test_only_low_flags_is_deal(self):
        result = assemble_verdict([PRIVATE_SALE])
        assert result.verdict == "deal"
        assert result.market_risks == [PRIVATE_SALE]

    def test_deal_uses_assessment_score(self):
        result = assemble_verdict([], _dq("high", 90))
        assert result.verdict == "deal"
        assert result.confidence == 90

    def test_low_quality_prevents_deal(self):
        result = assemble_verdict([], _dq("low", 30))
        assert result.verdict == "caution"
        assert result.confidence == 40
        assert result.data_quality_impact == "preventing-deal"

    def test_low_quality_floor(self):
        result = assemble_verdict([], _dq("low", 0))
        assert result.confidence == 40


class TestDisaster:
    def test_strong_structural_with_market_signal(self):
        result = assemble_verdict([TITLE, OVERPRICED])
        assert result.verdict == "disaster"
        assert result.confidence == 75
        assert result.data_quality_impact == "none"

    def test_strong_structural_with_seller_signal(self):
        assert assemble_verdict([ACCIDENT, STALE]).verdict == "disaster"

    def test_disaster_beats_low_price_signal(self):
        result = assemble_verdict([ACCIDENT, LOW_PRICE])
        assert result.verdict == "disaster"

    def test_medium_quality_softens_disaster(self):
        result = assemble_verdict([TITLE, OVERPRICED], _dq("medium", 60))
        assert result.verdict == "disaster"
        assert result.confidence == 55
        assert result.data_quality_impact == "softening"

    def test_high_quality_uses_score(self):
        result = assemble_verdict([TITLE, OVERPRICED], _dq("high", 88))
        assert result.confidence == 88

    def test_strong_structural_alone_is_caution(self):
        result = assemble_verdict([TITLE])
        assert result.verdict == "caution"
        assert result.confidence == 65
        assert resolve_rule(build_context([TITLE])).name == "unconfirmed-structural"


class TestCaution:
    def test_environmental_only(self):
        result = assemble_verdict([ENVIRONMENTAL])
        assert result.verdict == "caution"
        assert result.confidence == 65
        assert resolve_rule(build_context([ENVIRONMENTAL])).name == "environmental-only"

    def test_environmental_with_market_signal_is_not_disaster(self):
        result = assemble_verdict([ENVIRONMENTAL, OVERPRICED])
        assert result.verdict == "caution"

    @pytest.mark.parametrize("level", ["low", "medium", "high"])
    @pytest.mark.parametrize("score", [0, 50, 100])
    def test_medium_environmental_is_caution_at_any_quality(self, level, score):
        dq = _dq(level, score)
        assert resolve_rule(build_context([MEDIUM_ENVIRONMENTAL], dq)).name == "environmental-only"
        result = assemble_verdict([MEDIUM_ENVIRONMENTAL], dq)
        assert result.verdict == "caution"
        assert result.confidence == max(50, score - 10)
        assert result.structural_risks == [MEDIUM_ENVIRONMENTAL]

    def test_unconfirmed_low_price(self):
        result = assemble_verdict([LOW_PRICE])
        assert result.verdict == "caution"
        assert result.confidence == 70
        assert result.data_quality_impact == "softening"

    def test_stacked_signals(self):
        ctx = build_context([OVERPRICED, STALE])
        assert resolve_rule(ctx).name == "stacked-signals"
        result = assemble_verdict([OVERPRICED, STALE])
        assert result.verdict == "caution"
        assert result.confidence == 70
        assert result.data_quality_impact == "none"

    def test_stacked_signals_softened(self):
        result = assemble_verdict([OVERPRICED, STALE], _dq("medium", 52))
        assert result.confidence == 50
        assert result.data_quality_impact == "softening"

    def test_moderate_structural(self):
        moderate = _flag("disaster-risk", "medium", "disaster")
        ctx = build_context([moderate])
        assert resolve_rule(ctx).name == "moderate-structural"
        assert assemble_verdict([moderate]).confidence == 70

    def test_single_risk(self):
        result = assemble_verdict([OVERPRICED])
        assert result.verdict == "caution"
        assert result.confidence == 70
        assert resolve_rule(build_context([OVERPRICED])).name == "single-risk"

    def test_single_risk_floor(self):
        result = assemble_verdict([OVERPRICED], _dq("low", 20))
        assert result.confidence == 60

    def test_explanation_is_never_empty(self):
        for flags in ([], [TITLE], [TITLE, OVERPRICED], [LOW_PRICE], [OVERPRICED, STALE]):
            assert assemble_verdict(flags).explanation


# ===================================================================== #
#  Data quality impact                                                    #
# ===================================================================== #

class TestDataQualityImpact:
    def test_absent(self):
        assert assess_data_quality_impact(None, "deal") == "none"

    def test_low_blocks_deal(self):
        assert assess_data_quality_impact(_dq("low", 30), "deal") == "preventing-deal"

    def test_low_softens_caution(self):
        assert assess_data_quality_impact(_dq("low", 30), "caution") == "softening"

    def test_high(self):
        assert assess_data_quality_impact(_dq("high", 90), "disaster") == "none"


# ===================================================================== #
#  Premium context                                                        #
# ===================================================================== #

class TestPremiumContext:
    def test_market_position_mapping(self):
        assert assess_market_position_contribution(_pricing(80, "above", 5, "limited")) == "unfavorable"
        assert assess_market_position_contribution(_pricing(10, "below", -5, "strong")) == "favorable"
        assert assess_market_position_contribution(_pricing(60, "above", 12, "moderate")) == "unfavorable"
        assert assess_market_position_contribution(_pricing(50, "at", 1, "none")) == "neutral"

    def test_environmental_mapping(self):
        recent = EnvironmentalRisk(
            disaster_presence=True, recency="recent", flood_zone_risk="unknown", confidence=80
        )
        historical = EnvironmentalRisk(
            disaster_presence=True, recency="historical", flood_zone_risk="unknown", confidence=60
        )
        none = EnvironmentalRisk(
            disaster_presence=False, recency="none", flood_zone_risk="unknown", confidence=50
        )
        assert assess_environmental_risk_contribution(recent) == "high"
        assert assess_environmental_risk_contribution(historical) == "medium"
        assert assess_environmental_risk_contribution(none) == "low"

    def test_unfavorable_position_only(self):
        result = assemble_verdict([], pricing=_pricing(80, "above", 5, "limited"))
        assert result.verdict == "caution"
        assert result.confidence == 70
        assert result.contributing_factors.market_position == "unfavorable"

    def test_elevated_maintenance_counts_as_a_signal(self):
        maintenance = MaintenanceRiskAssessment(overall_risk="elevated", classification="economy")
        result = assemble_verdict([], maintenance=maintenance)
        assert result.verdict == "caution"
        assert result.contributing_factors.maintenance_risk == "elevated"

    def test_premium_signal_confirms_structural(self):
        maintenance = MaintenanceRiskAssessment(overall_risk="elevated", classification="economy")
        result = assemble_verdict([TITLE], maintenance=maintenance)
        assert result.verdict == "disaster"

    def test_contributing_factors_absent_without_premium_context(self):
        assert assemble_verdict([OVERPRICED]).contributing_factors is None

    def test_low_maintenance_does_not_change_deal(self):
        maintenance = MaintenanceRiskAssessment(overall_risk="low", classification="economy")
        result = assemble_verdict([], maintenance=maintenance)
        assert result.verdict == "deal"
        assert result.contributing_factors.maintenance_risk == "low"


# ===================================================================== #
#  Invariants over generated inputs                                       #
# ===================================================================== #

FLAG_IDS = [
    "title-brands", "theft-record", "odometer-rollback", "accident-history",
    "environmental-risk", "disaster-risk", "overpriced", "underpriced",
    "unusually-low-price", "too-good-too-be-long", "relisting-detected",
    "price-volatility", "stale-listing", "private-sale", "no-vin", "mystery",
]
SEVERITIES = ["low", "medium", "high", "critical"]
CATEGORIES = [
    "pricing", "history", "title", "data-gap", "listing", "ownership", "disaster", "seller",
]


def _random_case(rng):
    flags = [
        RedFlag(
            id=rng.choice(FLAG_IDS),
            title="generated",
            severity=rng.choice(SEVERITIES),
            category=rng.choice(CATEGORIES),
        )
        for _ in range(rng.randint(0, 6))
    ]
    dq = None
    if rng.random() < 0.8:
        dq = _dq(rng.choice(["low", "medium", "high"]), rng.randint(0, 100))
    return flags, dq


def _cases(count=500, seed=20240601):
    rng = random.Random(seed)
    return [_random_case(rng) for _ in range(count)]


class TestInvariants:
    def test_every_flag_lands_in_exactly_one_bucket(self):
        for flags, _ in _cases():
            buckets = categorize_flags(flags)
            assert sum(len(b) for b in buckets) == len(flags)
            for flag in flags:
                assert sum(1 for b in buckets for f in b if f is flag) == 1

    def test_confidence_stays_in_range(self):
        for flags, dq in _cases():
            result = assemble_verdict(flags, dq)
            assert 0 <= result.confidence <= 100

    def test_deal_only_without_risk_and_low_confidence(self):
        for flags, dq in _cases():
            result = assemble_verdict(flags, dq)
            if result.verdict == "deal":
                assert build_context(flags, dq).total == 0
                assert dq is None or dq.overall_confidence != "low"

    def test_same_input_gives_identical_output(self):
        flags = [TITLE, OVERPRICED, STALE, PRIVATE_SALE, MEDIUM_ENVIRONMENTAL]
        dq = _dq("medium", 64)
        first = assemble_verdict(flags, dq).model_dump_json()
        second = assemble_verdict(flags, dq).model_dump_json()
        assert first == second

    def test_generated_inputs_are_repeatable(self):
        for flags, dq in _cases(count=100):
            assert (
                assemble_verdict(flags, dq).model_dump_json()
                == assemble_verdict(list(flags), dq).model_dump_json()
            )
