"""Risk and urgency scoring engine - core business logic for client prioritisation

Both the batch recalculation job and the observer-side replica call into this
module, so a given (facts, weights, now) always yields the same scores.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional, Tuple

from portfolio_risk.domain.models import (
    BreakdownComponent,
    ClientFinancialFacts,
    ClientScores,
    FeedbackComponents,
    UrgencyBreakdown,
    UrgencyClassification,
    WeightConfiguration,
)
from portfolio_risk.infrastructure.observability.logging import log_weight_fallback
from portfolio_risk.utils.date_utils import as_utc, whole_days_between

RISK_SCORE_FLOOR = 1
RISK_SCORE_CEILING = 99

SIGMOID_STEEPNESS = 6.0

# Recency assumed for clients never visited or called
NEW_CLIENT_DAYS_SINCE_INTERACTION = 30
DAYS_SINCE_INTERACTION_CAP = 180

NEUTRAL_FEEDBACK_SCORE = 3.0

# (risk, days since interaction, feedback) used when the urgency family sums to <= 0
URGENCY_FALLBACK_WEIGHTS = (25.0, 50.0, 25.0)

EXTREMELY_URGENT_THRESHOLD = 60
URGENT_THRESHOLD = 40
MODERATELY_URGENT_THRESHOLD = 20


@dataclass(frozen=True)
class RiskFactor:
    """Definition of one risk indicator"""

    name: str
    value: Callable[[ClientFinancialFacts], Any]
    weight: Callable[[WeightConfiguration], float]
    max_threshold: float
    inverse: bool = False
    # Normalized value substituted when the raw value is zero on an active loan
    active_loan_floor: Optional[float] = None


RISK_FACTORS: Tuple[RiskFactor, ...] = (
    RiskFactor(
        name="late_days",
        value=lambda f: f.late_days,
        weight=lambda w: w.risk_late_days_weight,
        max_threshold=90,
        active_loan_floor=0.10,
    ),
    RiskFactor(
        name="outstanding_at_risk",
        value=lambda f: f.outstanding_at_risk,
        weight=lambda w: w.risk_outstanding_at_risk_weight,
        max_threshold=10_000,
        active_loan_floor=0.05,
    ),
    RiskFactor(
        name="par_per_loan",
        value=lambda f: f.par_per_loan,
        weight=lambda w: w.risk_par_per_loan_weight,
        max_threshold=1.0,
        active_loan_floor=0.02,
    ),
    RiskFactor(
        name="reschedules",
        value=lambda f: f.count_reschedule,
        weight=lambda w: w.risk_reschedules_weight,
        max_threshold=5,
    ),
    RiskFactor(
        name="payment_consistency",
        value=lambda f: f.paid_instalments,
        weight=lambda w: w.risk_payment_consistency_weight,
        max_threshold=50,
        inverse=True,  # fewer paid instalments = higher risk
    ),
    RiskFactor(
        name="delayed_instalments",
        value=lambda f: f.total_delayed_instalments,
        weight=lambda w: w.risk_delayed_instalments_weight,
        max_threshold=20,
    ),
)


def as_number(value: Any) -> float:
    """Coerce missing or malformed numeric input (None, NaN, infinities, junk) to 0.0"""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def round_half_up(value: float, digits: int = 0) -> float:
    """Round halves away from zero for positives, identically on every call site"""
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def sigmoid(normalized: float) -> float:
    exponent = -SIGMOID_STEEPNESS * (normalized - 0.5)
    if exponent > 700:  # math.exp overflows past ~709
        return 0.0
    return 1 / (1 + math.exp(exponent))


def normalize_factor(factor: RiskFactor, raw_value: float, has_outstanding: bool) -> float:
    """Map a raw indicator into 0-1 (1 = riskiest), applying the active-loan floor"""
    normalized = min(raw_value, factor.max_threshold) / factor.max_threshold
    if factor.inverse:
        normalized = 1 - normalized

    if factor.active_loan_floor is not None and raw_value == 0 and has_outstanding:
        normalized = max(normalized, factor.active_loan_floor)

    return normalized


def calculate_risk_score(facts: ClientFinancialFacts, weights: WeightConfiguration) -> int:
    """
    Calculate risk score from 1 (lowest risk) to 99 (highest risk).

    Each factor is normalized against its threshold, passed through a logistic
    curve, scaled to 0-100 and multiplied by its weight as a fraction of 100.
    Risk weights are NOT renormalized against each other: a family totalling
    less than 100 lowers every score, and an all-zero family yields the floor.
    """
    has_outstanding = as_number(facts.outstanding) > 0

    total = 0.0
    for factor in RISK_FACTORS:
        raw_value = as_number(factor.value(facts))
        normalized = normalize_factor(factor, raw_value, has_outstanding)
        weight_fraction = as_number(factor.weight(weights)) / 100
        total += sigmoid(normalized) * 100 * weight_fraction

    return int(max(RISK_SCORE_FLOOR, min(RISK_SCORE_CEILING, round_half_up(total))))


def days_since_last_interaction(facts: ClientFinancialFacts, now: Optional[datetime] = None) -> int:
    """Whole days since the latest visit or phone call; new clients count as 30"""
    interactions = [d for d in (facts.last_visit_date, facts.last_phone_call_date) if d is not None]
    if not interactions:
        return NEW_CLIENT_DAYS_SINCE_INTERACTION

    most_recent = max(interactions, key=as_utc)
    return whole_days_between(most_recent, now)


def compose_feedback_score(components: FeedbackComponents, weights: WeightConfiguration) -> Optional[float]:
    """
    Weighted 1-5 feedback score from the detailed visit components.

    Weights are normalized by the feedback family's actual total; components that
    were not captured are left out along with their weight. A family totalling
    zero falls back to a plain average. Returns None when no component is present.
    """
    pairs = [
        (components.payment_willingness, weights.feedback_payment_willingness_weight),
        (components.financial_situation, weights.feedback_financial_situation_weight),
        (components.communication_quality, weights.feedback_communication_quality_weight),
        (components.compliance_cooperation, weights.feedback_compliance_cooperation_weight),
        (components.future_outlook, weights.feedback_future_outlook_weight),
    ]
    present = [(as_number(value), max(0.0, as_number(weight))) for value, weight in pairs if value is not None]
    if not present:
        return None

    total_weight = sum(weight for _, weight in present)
    if total_weight <= 0:
        score = sum(value for value, _ in present) / len(present)
    else:
        score = sum(value * weight for value, weight in present) / total_weight

    return round_half_up(max(1.0, min(5.0, score)), 1)


def resolve_feedback_score(facts: ClientFinancialFacts, weights: WeightConfiguration) -> float:
    """Stored feedback score, else composed components, else neutral 3"""
    stored = as_number(facts.feedback_score)
    if stored:
        return stored

    if facts.feedback_components is not None:
        composed = compose_feedback_score(facts.feedback_components, weights)
        if composed is not None:
            return composed

    return NEUTRAL_FEEDBACK_SCORE


def compose_urgency(
    facts: ClientFinancialFacts,
    weights: WeightConfiguration,
    now: Optional[datetime] = None,
) -> Tuple[float, UrgencyBreakdown]:
    """
    Calculate composite urgency (0-100, one decimal) and its breakdown.

    Risk is always recomputed from the current weights. Each signal is scaled so
    100 means most urgent:
    - risk score as-is
    - days since interaction, linear up to 180 days
    - feedback (1-5, lower is worse) as (5 - feedback) * 25
    Urgency weights are clamped to non-negative and renormalized to sum to 1.
    """
    risk_score = calculate_risk_score(facts, weights)
    days = days_since_last_interaction(facts, now)
    feedback = resolve_feedback_score(facts, weights)

    configured = (
        max(0.0, as_number(weights.urgency_risk_score_weight)),
        max(0.0, as_number(weights.urgency_days_since_visit_weight)),
        max(0.0, as_number(weights.urgency_feedback_score_weight)),
    )

    effective = configured
    fallback_applied = sum(configured) <= 0
    if fallback_applied:
        effective = URGENCY_FALLBACK_WEIGHTS
        log_weight_fallback(
            facts.client_id,
            configured_weights=dict(zip(("risk", "days", "feedback"), configured)),
            fallback_weights=dict(zip(("risk", "days", "feedback"), effective)),
        )

    corrected_total = sum(effective)
    normalized = tuple(weight / corrected_total for weight in effective)

    scaled = (
        max(0.0, min(100.0, float(risk_score))),
        min(100.0, days / DAYS_SINCE_INTERACTION_CAP * 100),
        max(0.0, min(100.0, (5 - feedback) * 25)),
    )

    contributions = tuple(s * w for s, w in zip(scaled, normalized))
    score = max(0.0, min(100.0, round_half_up(sum(contributions), 1)))

    components = [
        BreakdownComponent(
            value=value,
            scaled_value=scaled_value,
            weight=configured_weight,
            normalized_weight=normalized_weight * 100,
            contribution=contribution,
        )
        for value, scaled_value, configured_weight, normalized_weight, contribution in zip(
            (risk_score, days, feedback), scaled, configured, normalized, contributions
        )
    ]

    breakdown = UrgencyBreakdown(
        risk_score=components[0],
        days_since_interaction=components[1],
        feedback_score=components[2],
        final_urgency_score=score,
        fallback_applied=fallback_applied,
    )
    return score, breakdown


def classify_urgency(urgency_score: float) -> UrgencyClassification:
    """
    Map composite urgency to a tier using fixed thresholds, top-down:
    >=60 Extremely Urgent, >=40 Urgent, >=20 Moderately Urgent, else Low Urgency.
    """
    if urgency_score >= EXTREMELY_URGENT_THRESHOLD:
        return UrgencyClassification.EXTREMELY_URGENT
    elif urgency_score >= URGENT_THRESHOLD:
        return UrgencyClassification.URGENT
    elif urgency_score >= MODERATELY_URGENT_THRESHOLD:
        return UrgencyClassification.MODERATELY_URGENT
    else:
        return UrgencyClassification.LOW_URGENCY


def score_client(
    facts: ClientFinancialFacts,
    weights: WeightConfiguration,
    now: Optional[datetime] = None,
) -> ClientScores:
    """
    Main entry point: risk, urgency, breakdown and tier for one client.

    Returns complete ClientScores ready to persist or display.
    """
    urgency_score, breakdown = compose_urgency(facts, weights, now)

    return ClientScores(
        client_id=facts.client_id,
        risk_score=int(breakdown.risk_score.value),
        urgency_score=urgency_score,
        breakdown=breakdown,
        classification=classify_urgency(urgency_score),
    )
