"""Plain-English explanations for each verdict rule.

Kept apart from the rule cascade: the cascade picks a rule name, this
module turns that name and the verdict context into text.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Dict, List

if TYPE_CHECKING:
    from .verdict_assembly import VerdictContext


MEDIUM_MAINTENANCE_NOTE = (
    " Maintenance risk assessment indicates moderate forward-looking concerns."
)
ELEVATED_MAINTENANCE_NOTE = (
    " Elevated maintenance risk suggests budgeting for potential repairs."
)
WEAK_LEVERAGE_NOTE = " Market pricing analysis indicates weak negotiation leverage."


def _severe_structural_titles(ctx: "VerdictContext") -> str:
    return ", ".join(
        flag.title for flag in ctx.structural if flag.severity in ("critical", "high")
    )


def _premium_notes(ctx: "VerdictContext") -> str:
    notes = ""
    if ctx.elevated_maintenance:
        notes += ELEVATED_MAINTENANCE_NOTE
    if ctx.unfavorable_position:
        notes += WEAK_LEVERAGE_NOTE
    return notes


def _medium_maintenance_note(ctx: "VerdictContext") -> str:
    return MEDIUM_MAINTENANCE_NOTE if ctx.maintenance_risk == "medium" else ""


def _no_risk_low_quality(ctx: "VerdictContext") -> str:
    return (
        "No significant risk signals detected, but limited data quality "
        'prevents a confident "Deal" assessment. Proceed with standard due '
        "diligence."
    )


def _no_risk_deal(ctx: "VerdictContext") -> str:
    text = (
        "No meaningful risk signals detected. This appears to be a reasonable "
        "deal with standard due diligence recommended."
    )
    if ctx.maintenance_risk == "medium":
        text += (
            " Note: Maintenance risk assessment indicates moderate "
            "forward-looking maintenance concerns."
        )
    if ctx.market_position == "favorable":
        text += " Market pricing analysis suggests favorable negotiation position."
    return text


def _no_risk_unclear_quality(ctx: "VerdictContext") -> str:
    return (
        "No significant risk signals detected, but data quality assessment is "
        "incomplete. Proceed with standard due diligence."
    )


def _elevated_maintenance_only(ctx: "VerdictContext") -> str:
    return (
        "No red flag signals detected, but maintenance risk assessment "
        "indicates elevated forward-looking maintenance concerns. Budget for "
        "potential repairs and factor maintenance costs into your decision."
    )


def _unfavorable_position_only(ctx: "VerdictContext") -> str:
    return (
        "No red flag signals detected, but market pricing analysis indicates "
        "the asking price is positioned unfavorably compared to comparable "
        "listings. Negotiation leverage appears weak."
    )


def _confirmed_structural(ctx: "VerdictContext") -> str:
    secondary: List[str] = []
    if ctx.market_count > 0:
        secondary.append("market risk signals")
    if ctx.seller_behavior_count > 0:
        secondary.append("seller behavior concerns")
    if ctx.elevated_maintenance:
        secondary.append("elevated maintenance risk")
    if ctx.unfavorable_position:
        secondary.append("unfavorable market pricing")
    return (
        f"Strong structural risk ({_severe_structural_titles(ctx)}) combined "
        f"with {', '.join(secondary)}. This combination indicates significant "
        "concerns."
    )


def _environmental_only(ctx: "VerdictContext") -> str:
    text = (
        "Environmental exposure detected, but this is a probabilistic signal "
        "and not proof of damage. Inspect carefully for water damage or "
        "corrosion."
    )
    if ctx.elevated_maintenance:
        text += (
            " Combined with elevated maintenance risk, this suggests increased "
            "inspection priority."
        )
    return text


def _unconfirmed_low_price(ctx: "VerdictContext") -> str:
    return (
        "Unusually low pricing detected without structural risk confirmation. "
        "This pricing anomaly warrants extra scrutiny but does not imply a "
        "defect. Inspect carefully and verify vehicle condition."
    )


def _stacked_signals(ctx: "VerdictContext") -> str:
    categories: List[str] = []
    if ctx.structural_count > 0:
        categories.append("structural")
    if ctx.market_count > 0:
        categories.append("market")
    if ctx.seller_behavior_count > 0:
        categories.append("seller behavior")
    if ctx.elevated_maintenance:
        categories.append("maintenance")
    if ctx.unfavorable_position:
        categories.append("pricing")
    return (
        f"Multiple risk signals detected across {', '.join(categories)} "
        "categories. While no single signal is critical, the combination "
        "warrants careful investigation." + _premium_notes(ctx)
    )


def _moderate_structural(ctx: "VerdictContext") -> str:
    titles = ", ".join(flag.title for flag in ctx.structural)
    return (
        f"Moderate structural risk detected ({titles}). Investigate thoroughly "
        "before proceeding." + _medium_maintenance_note(ctx)
    )


def _unconfirmed_structural(ctx: "VerdictContext") -> str:
    return (
        f"Strong structural risk detected ({_severe_structural_titles(ctx)}), "
        "but no additional confirming signals from market or seller behavior. "
        "Proceed with extreme caution and thorough inspection."
    )


def _single_risk(ctx: "VerdictContext") -> str:
    flagged = ctx.structural + ctx.market + ctx.seller_behavior
    single = next((flag for flag in flagged if flag.severity != "low"), None)
    title = single.title if single is not None else "risk identified"
    return (
        f"One moderate risk signal detected: {title}. Investigate this concern "
        "before proceeding." + _medium_maintenance_note(ctx)
    )


def _fallback(ctx: "VerdictContext") -> str:
    return (
        "Risk signals detected that warrant investigation. Review all concerns "
        "carefully before making a decision." + _premium_notes(ctx)
    )


NARRATIVES: Dict[str, Callable[["VerdictContext"], str]] = {
    "no-risk-low-quality": _no_risk_low_quality,
    "no-risk-deal": _no_risk_deal,
    "no-risk-unclear-quality": _no_risk_unclear_quality,
    "elevated-maintenance-only": _elevated_maintenance_only,
    "unfavorable-position-only": _unfavorable_position_only,
    "confirmed-structural": _confirmed_structural,
    "environmental-only": _environmental_only,
    "unconfirmed-low-price": _unconfirmed_low_price,
    "stacked-signals": _stacked_signals,
    "moderate-structural": _moderate_structural,
    "unconfirmed-structural": _unconfirmed_structural,
    "single-risk": _single_risk,
    "fallback": _fallback,
}


def explain(rule_name: str, ctx: "VerdictContext") -> str:
    """Build the explanation for the rule that decided the verdict."""
    builder = NARRATIVES.get(rule_name, _fallback)
    return builder(ctx)
