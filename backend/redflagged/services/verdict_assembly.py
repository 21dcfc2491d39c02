"""Verdict Assembly Engine.

Combines categorized red flags and an optional data-quality assessment
into one outcome: Deal, Caution or Disaster.

Signals are grouped into three buckets:
- Structural risks (title, theft, odometer, accidents, flood/disaster)
- Market risks (pricing anomalies)
- Seller behavior risks (relisting, volatility, stale listings)

The resolver is an ordered list of ``VerdictRule`` objects. The first rule
whose predicate matches decides the verdict, confidence and data-quality
impact. Explanation text lives in ``verdict_narrative`` so the cascade can
be tested without caring about wording.

Rules
-----
- NO API calls
- NO DB access
- NO shared state
- Disaster only when strong structural risk is confirmed by a second signal
- Deal only when nothing meaningful is flagged and confidence is not low
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from ..constants import (
    DEAL_DEFAULT_CONFIDENCE,
    DISASTER_DEFAULT_CONFIDENCE,
    ELEVATED_MAINTENANCE_DEFAULT,
    ENVIRONMENTAL_FLAG_ID,
    ENVIRONMENTAL_ONLY_DEFAULT,
    FALLBACK_DEFAULT,
    LOW_PRICE_DEFAULT,
    LOW_PRICE_FLAG_IDS,
    LOW_QUALITY_NO_RISK_DEFAULT,
    MARKET_FLAG_IDS,
    MODERATE_STRUCTURAL_DEFAULT,
    SELLER_BEHAVIOR_CATEGORIES,
    SELLER_BEHAVIOR_FLAG_IDS,
    SINGLE_RISK_DEFAULT,
    STACKED_SIGNALS_DEFAULT,
    STACKED_SIGNALS_SOFTENED_DEFAULT,
    STRONG_STRUCTURAL_ALONE_DEFAULT,
    STRONG_STRUCTURAL_FLAG_IDS,
    STRUCTURAL_FLAG_IDS,
    UNCLEAR_QUALITY_NO_RISK_DEFAULT,
    UNFAVORABLE_POSITION_DEFAULT,
)
from ..schemas.data_quality_schema import DataQualityAssessment
from ..schemas.red_flag_schema import RedFlag
from ..schemas.vehicle_schema import (
    EnvironmentalRisk,
    MaintenanceRiskAssessment,
    MarketPricingAnalysis,
)
from ..schemas.verdict_schema import (
    ContributingFactors,
    DataQualityImpact,
    Verdict,
    VerdictReasoning,
)
from . import verdict_narrative


# ── Categorization ──────────────────────────────────────────────────────

def _is_structural(flag: RedFlag) -> bool:
    # Ambiguous grouping: "disaster AND high OR critical" reads either as
    # (disaster and high) or critical, or as disaster and (high or critical).
    # The first reading is kept: a critical flag of ANY category is
    # structural. The second would also require category == "disaster" for
    # critical flags. Changing this re-buckets stored reports.
    return (
        flag.id in STRUCTURAL_FLAG_IDS
        or (flag.category == "disaster" and flag.severity == "high")
        or flag.severity == "critical"
    )


def _is_market(flag: RedFlag) -> bool:
    return flag.id in MARKET_FLAG_IDS or flag.category == "pricing"


def _is_seller_behavior(flag: RedFlag) -> bool:
    return (
        flag.id in SELLER_BEHAVIOR_FLAG_IDS
        or flag.category in SELLER_BEHAVIOR_CATEGORIES
    )


def categorize_flags(
    flags: Sequence[RedFlag],
) -> Tuple[List[RedFlag], List[RedFlag], List[RedFlag]]:
    """Partition *flags* into (structural, market, seller_behavior).

    Every flag lands in exactly one bucket and input order is preserved
    inside each bucket. Unclassified flags fall back on severity.
    """
    structural: List[RedFlag] = []
    market: List[RedFlag] = []
    seller_behavior: List[RedFlag] = []

    for flag in flags:
        if _is_structural(flag):
            structural.append(flag)
        elif _is_market(flag):
            market.append(flag)
        elif _is_seller_behavior(flag):
            seller_behavior.append(flag)
        elif flag.severity in ("critical", "high"):
            structural.append(flag)
        else:
            market.append(flag)

    return structural, market, seller_behavior


def has_strong_structural_risk(structural: Sequence[RedFlag]) -> bool:
    return any(
        flag.severity == "critical"
        or (flag.severity == "high" and flag.id in STRONG_STRUCTURAL_FLAG_IDS)
        for flag in structural
    )


def has_only_environmental_risk(structural: Sequence[RedFlag]) -> bool:
    return len(structural) == 1 and structural[0].id == ENVIRONMENTAL_FLAG_ID


def count_meaningful_risks(risks: Sequence[RedFlag]) -> int:
    """Number of flags whose severity is not ``low``."""
    return sum(1 for flag in risks if flag.severity != "low")


def assess_data_quality_impact(
    data_quality: Optional[DataQualityAssessment],
    proposed_verdict: Verdict,
) -> DataQualityImpact:
    if data_quality is None:
        return "none"
    if data_quality.overall_confidence == "low" and proposed_verdict == "deal":
        return "preventing-deal"
    if data_quality.overall_confidence in ("low", "medium"):
        return "softening"
    return "none"


# ── Premium context ─────────────────────────────────────────────────────

def assess_maintenance_risk_contribution(
    maintenance: Optional[MaintenanceRiskAssessment],
) -> Optional[str]:
    if maintenance is None:
        return None
    return maintenance.overall_risk


def assess_market_position_contribution(
    pricing: Optional[MarketPricingAnalysis],
) -> Optional[str]:
    """Map a pricing analysis onto favorable / neutral / unfavorable."""
    if pricing is None:
        return None

    position = pricing.asking_price_position
    leverage = pricing.negotiation_leverage.level

    if position.percentile >= 75 and leverage == "limited":
        return "unfavorable"
    if position.percentile <= 25 and leverage == "strong":
        return "favorable"

    if position.position == "above" and position.difference_percent > 10:
        return "unfavorable"
    if position.position == "below" and position.difference_percent < -10:
        return "favorable"
    return "neutral"


def assess_environmental_risk_contribution(
    environmental: Optional[EnvironmentalRisk],
) -> Optional[str]:
    if environmental is None:
        return None
    if environmental.flood_zone_risk == "high" or (
        environmental.disaster_presence and environmental.recency == "recent"
    ):
        return "high"
    if environmental.flood_zone_risk == "medium" or (
        environmental.disaster_presence and environmental.recency == "historical"
    ):
        return "medium"
    return "low"


# ── Rule cascade ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class VerdictContext:
    """Everything a rule predicate or narrative may look at."""

    structural: List[RedFlag]
    market: List[RedFlag]
    seller_behavior: List[RedFlag]
    structural_count: int
    market_count: int
    seller_behavior_count: int
    total: int
    strong: bool
    only_environmental: bool
    data_quality: Optional[DataQualityAssessment] = None
    maintenance_risk: Optional[str] = None
    market_position: Optional[str] = None
    environmental_risk: Optional[str] = None

    @property
    def confidence_level(self) -> Optional[str]:
        if self.data_quality is None:
            return None
        return self.data_quality.overall_confidence

    @property
    def elevated_maintenance(self) -> bool:
        return self.maintenance_risk == "elevated"

    @property
    def unfavorable_position(self) -> bool:
        return self.market_position == "unfavorable"

    @property
    def premium_signal(self) -> bool:
        return self.elevated_maintenance or self.unfavorable_position

    @property
    def has_low_price_signal(self) -> bool:
        return any(flag.id in LOW_PRICE_FLAG_IDS for flag in self.market)

    def score_or(self, default: int) -> int:
        """Assessment score when an assessment is present, else *default*.

        A present score of 0 is honoured.
        """
        if self.data_quality is None:
            return default
        return self.data_quality.confidence_score


@dataclass(frozen=True)
class RuleOutcome:
    verdict: Verdict
    confidence: int
    data_quality_impact: DataQualityImpact


@dataclass(frozen=True)
class VerdictRule:
    name: str
    applies: Callable[[VerdictContext], bool]
    decide: Callable[[VerdictContext], RuleOutcome]


def _softened(ctx: VerdictContext, floor: int, default: int, penalty: int) -> int:
    return max(floor, ctx.score_or(default) - penalty)


def _decide_disaster(ctx: VerdictContext) -> RuleOutcome:
    impact = assess_data_quality_impact(ctx.data_quality, "disaster")
    if impact == "softening":
        confidence = _softened(ctx, 50, DISASTER_DEFAULT_CONFIDENCE, 5)
    else:
        confidence = ctx.score_or(DISASTER_DEFAULT_CONFIDENCE)
    return RuleOutcome("disaster", confidence, impact)


def _decide_stacked(ctx: VerdictContext) -> RuleOutcome:
    impact = assess_data_quality_impact(ctx.data_quality, "caution")
    if impact == "softening":
        confidence = _softened(ctx, 50, STACKED_SIGNALS_SOFTENED_DEFAULT, 5)
    else:
        confidence = ctx.score_or(STACKED_SIGNALS_DEFAULT)
    return RuleOutcome("caution", confidence, impact)


def _decide_fallback(ctx: VerdictContext) -> RuleOutcome:
    impact = assess_data_quality_impact(ctx.data_quality, "caution")
    return RuleOutcome("caution", _softened(ctx, 50, FALLBACK_DEFAULT, 5), impact)


def _no_risk(ctx: VerdictContext) -> bool:
    return ctx.total == 0 and not ctx.premium_signal


VERDICT_RULES: Tuple[VerdictRule, ...] = (
    # 1. nothing meaningful flagged
    VerdictRule(
        "no-risk-low-quality",
        lambda c: _no_risk(c) and c.confidence_level == "low",
        lambda c: RuleOutcome(
            "caution", _softened(c, 40, LOW_QUALITY_NO_RISK_DEFAULT, 10), "preventing-deal"
        ),
    ),
    VerdictRule(
        "no-risk-deal",
        lambda c: _no_risk(c) and c.confidence_level in (None, "medium", "high"),
        lambda c: RuleOutcome("deal", c.score_or(DEAL_DEFAULT_CONFIDENCE), "none"),
    ),
    # Only reachable with a confidence level outside the known set.
    VerdictRule(
        "no-risk-unclear-quality",
        _no_risk,
        lambda c: RuleOutcome(
            "caution", _softened(c, 50, UNCLEAR_QUALITY_NO_RISK_DEFAULT, 5), "softening"
        ),
    ),
    VerdictRule(
        "elevated-maintenance-only",
        lambda c: c.total == 0 and c.elevated_maintenance,
        lambda c: RuleOutcome(
            "caution", _softened(c, 55, ELEVATED_MAINTENANCE_DEFAULT, 5), "softening"
        ),
    ),
    VerdictRule(
        "unfavorable-position-only",
        lambda c: c.total == 0 and c.unfavorable_position,
        lambda c: RuleOutcome(
            "caution", _softened(c, 60, UNFAVORABLE_POSITION_DEFAULT, 5), "softening"
        ),
    ),
    # 2. strong structural risk confirmed by a second signal
    VerdictRule(
        "confirmed-structural",
        lambda c: c.strong
        and not c.only_environmental
        and (c.market_count > 0 or c.seller_behavior_count > 0 or c.premium_signal),
        _decide_disaster,
    ),
    # 3. environmental exposure alone
    VerdictRule(
        "environmental-only",
        lambda c: c.only_environmental,
        lambda c: RuleOutcome(
            "caution", _softened(c, 50, ENVIRONMENTAL_ONLY_DEFAULT, 10), "softening"
        ),
    ),
    # 4. suspiciously cheap, nothing structural behind it
    VerdictRule(
        "unconfirmed-low-price",
        lambda c: c.has_low_price_signal and not c.strong,
        lambda c: RuleOutcome(
            "caution", _softened(c, 50, LOW_PRICE_DEFAULT, 5), "softening"
        ),
    ),
    # 5. several weaker signals stacking up
    VerdictRule(
        "stacked-signals",
        lambda c: c.total >= 2 and not c.strong,
        _decide_stacked,
    ),
    # 6. moderate structural risk alone
    VerdictRule(
        "moderate-structural",
        lambda c: c.structural_count > 0
        and not c.strong
        and c.market_count == 0
        and c.seller_behavior_count == 0
        and not c.premium_signal,
        lambda c: RuleOutcome(
            "caution", _softened(c, 55, MODERATE_STRUCTURAL_DEFAULT, 5), "softening"
        ),
    ),
    # 7. strong structural risk alone is never a disaster
    VerdictRule(
        "unconfirmed-structural",
        lambda c: c.strong
        and c.market_count == 0
        and c.seller_behavior_count == 0
        and not c.premium_signal,
        lambda c: RuleOutcome(
            "caution", _softened(c, 50, STRONG_STRUCTURAL_ALONE_DEFAULT, 10), "softening"
        ),
    ),
    # 8. exactly one meaningful signal
    VerdictRule(
        "single-risk",
        lambda c: c.total == 1 and not c.premium_signal,
        lambda c: RuleOutcome(
            "caution", _softened(c, 60, SINGLE_RISK_DEFAULT, 5), "softening"
        ),
    ),
    # 9. fallback
    VerdictRule("fallback", lambda c: True, _decide_fallback),
)


def build_context(
    flags: Sequence[RedFlag],
    data_quality: Optional[DataQualityAssessment] = None,
    maintenance: Optional[MaintenanceRiskAssessment] = None,
    pricing: Optional[MarketPricingAnalysis] = None,
    environmental: Optional[EnvironmentalRisk] = None,
) -> VerdictContext:
    structural, market, seller_behavior = categorize_flags(flags)

    maintenance_risk = assess_maintenance_risk_contribution(maintenance)
    market_position = assess_market_position_contribution(pricing)
    environmental_risk = assess_environmental_risk_contribution(environmental)

    only_environmental = has_only_environmental_risk(structural)
    structural_count = count_meaningful_risks(structural)
    market_count = count_meaningful_risks(market)
    seller_behavior_count = count_meaningful_risks(seller_behavior)

    # Premium signals count at partial weight; only whole signals reach T.
    premium_weight = 0.0
    if maintenance_risk == "elevated":
        premium_weight += 1
    if market_position == "unfavorable":
        premium_weight += 0.5
    if environmental_risk == "high" and not only_environmental:
        premium_weight += 0.5

    return VerdictContext(
        structural=structural,
        market=market,
        seller_behavior=seller_behavior,
        structural_count=structural_count,
        market_count=market_count,
        seller_behavior_count=seller_behavior_count,
        total=structural_count + market_count + seller_behavior_count + math.floor(premium_weight),
        strong=has_strong_structural_risk(structural),
        only_environmental=only_environmental,
        data_quality=data_quality,
        maintenance_risk=maintenance_risk,
        market_position=market_position,
        environmental_risk=environmental_risk,
    )


def resolve_rule(ctx: VerdictContext) -> VerdictRule:
    """Return the first rule of the cascade whose predicate holds."""
    for rule in VERDICT_RULES:
        if rule.applies(ctx):
            return rule
    # The fallback always applies; kept for type checkers.
    return VERDICT_RULES[-1]


def assemble_verdict(
    flags: Sequence[RedFlag],
    data_quality: Optional[DataQualityAssessment] = None,
    maintenance: Optional[MaintenanceRiskAssessment] = None,
    pricing: Optional[MarketPricingAnalysis] = None,
    environmental: Optional[EnvironmentalRisk] = None,
) -> VerdictReasoning:
    """Assemble a verdict from red flags and optional premium context.

    Parameters
    ----------
    flags : Sequence[RedFlag]
        May be empty.
    data_quality : DataQualityAssessment, optional
        Absent means "no modifier".
    maintenance, pricing, environmental : optional
        Paid-tier analyses. When none is supplied the cascade behaves
        exactly as for free reports and ``contributing_factors`` is None.

    Returns
    -------
    VerdictReasoning
        Verdict, clamped confidence, explanation and the three buckets.
    """
    ctx = build_context(flags, data_quality, maintenance, pricing, environmental)
    rule = resolve_rule(ctx)
    outcome = rule.decide(ctx)

    contributing: Optional[ContributingFactors] = None
    if maintenance is not None or pricing is not None or environmental is not None:
        contributing = ContributingFactors(
            maintenance_risk=ctx.maintenance_risk,
            market_position=ctx.market_position,
            environmental_risk=ctx.environmental_risk,
        )

    return VerdictReasoning(
        verdict=outcome.verdict,
        confidence=max(0, min(100, int(outcome.confidence))),
        explanation=verdict_narrative.explain(rule.name, ctx),
        structural_risks=list(ctx.structural),
        market_risks=list(ctx.market),
        seller_behavior_risks=list(ctx.seller_behavior),
        data_quality_impact=outcome.data_quality_impact,
        contributing_factors=contributing,
    )
