"""Domain models - pure Python dataclasses representing portfolio scoring entities"""

from dataclasses import dataclass, field, asdict, fields
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional


RISK_WEIGHT_FIELDS = (
    "risk_late_days_weight",
    "risk_outstanding_at_risk_weight",
    "risk_par_per_loan_weight",
    "risk_reschedules_weight",
    "risk_payment_consistency_weight",
    "risk_delayed_instalments_weight",
)

URGENCY_WEIGHT_FIELDS = (
    "urgency_risk_score_weight",
    "urgency_days_since_visit_weight",
    "urgency_feedback_score_weight",
)

FEEDBACK_WEIGHT_FIELDS = (
    "feedback_payment_willingness_weight",
    "feedback_financial_situation_weight",
    "feedback_communication_quality_weight",
    "feedback_compliance_cooperation_weight",
    "feedback_future_outlook_weight",
)

WEIGHT_FAMILIES = {
    "risk": RISK_WEIGHT_FIELDS,
    "urgency": URGENCY_WEIGHT_FIELDS,
    "feedback": FEEDBACK_WEIGHT_FIELDS,
}


@dataclass
class WeightConfiguration:
    """The fourteen model weights. Each family is expected, not required, to total 100."""

    # Risk factor weights
    risk_late_days_weight: float = 25.0
    risk_outstanding_at_risk_weight: float = 20.0
    risk_par_per_loan_weight: float = 20.0
    risk_reschedules_weight: float = 15.0
    risk_payment_consistency_weight: float = 10.0
    risk_delayed_instalments_weight: float = 10.0

    # Urgency component weights
    urgency_risk_score_weight: float = 50.0
    urgency_days_since_visit_weight: float = 40.0
    urgency_feedback_score_weight: float = 10.0

    # Feedback component weights
    feedback_payment_willingness_weight: float = 30.0
    feedback_financial_situation_weight: float = 25.0
    feedback_communication_quality_weight: float = 15.0
    feedback_compliance_cooperation_weight: float = 20.0
    feedback_future_outlook_weight: float = 10.0

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "WeightConfiguration":
        """Build from any mapping carrying the fourteen field names; extra keys are ignored"""
        return cls(**{f.name: float(data[f.name]) for f in fields(cls)})


def family_totals(weights: WeightConfiguration) -> Dict[str, float]:
    """Actual sum of each weight family"""
    return {
        family: sum(getattr(weights, name) for name in names)
        for family, names in WEIGHT_FAMILIES.items()
    }


def family_warnings(weights: WeightConfiguration, tolerance: float = 0.01) -> List[str]:
    """Human-readable warnings for families whose total deviates from 100"""
    return [
        f"{family} weights total {total:g}, expected 100"
        for family, total in family_totals(weights).items()
        if abs(total - 100) > tolerance
    ]


@dataclass
class FeedbackComponents:
    """Detailed visit feedback, each on a 1-5 scale (lower is worse)"""

    payment_willingness: Optional[float] = None
    financial_situation: Optional[float] = None
    communication_quality: Optional[float] = None
    compliance_cooperation: Optional[float] = None
    future_outlook: Optional[float] = None

    @classmethod
    def from_mapping(cls, data: Any) -> Optional["FeedbackComponents"]:
        """Known components from a stored or received object; None when nothing usable is present"""
        if not isinstance(data, Mapping):
            return None
        known = {f.name: data[f.name] for f in fields(cls) if f.name in data}
        return cls(**known) if known else None


@dataclass
class ClientFinancialFacts:
    """Read-only snapshot of one client's loan state at scoring time"""

    client_id: str
    late_days: Optional[float] = 0
    outstanding: Optional[float] = 0
    outstanding_at_risk: Optional[float] = 0
    par_per_loan: Optional[float] = 0
    count_reschedule: Optional[float] = 0
    paid_instalments: Optional[float] = 0
    total_delayed_instalments: Optional[float] = 0
    last_visit_date: Optional[datetime] = None
    last_phone_call_date: Optional[datetime] = None
    feedback_score: Optional[float] = None
    feedback_components: Optional[FeedbackComponents] = None


class UrgencyClassification(str, Enum):
    """Urgency tiers, ordered by rank"""

    LOW_URGENCY = "Low Urgency"
    MODERATELY_URGENT = "Moderately Urgent"
    URGENT = "Urgent"
    EXTREMELY_URGENT = "Extremely Urgent"

    @property
    def rank(self) -> int:
        return _CLASSIFICATION_RANK[self]


_CLASSIFICATION_RANK = {
    UrgencyClassification.LOW_URGENCY: 0,
    UrgencyClassification.MODERATELY_URGENT: 1,
    UrgencyClassification.URGENT: 2,
    UrgencyClassification.EXTREMELY_URGENT: 3,
}


@dataclass
class BreakdownComponent:
    """One signal's share of the composite urgency score"""

    value: float
    scaled_value: float
    weight: float
    normalized_weight: float  # percent of the corrected family total
    contribution: float


@dataclass
class UrgencyBreakdown:
    """Explains a composite urgency score; never feeds back into it"""

    risk_score: BreakdownComponent
    days_since_interaction: BreakdownComponent
    feedback_score: BreakdownComponent
    final_urgency_score: float
    fallback_applied: bool = False

    @property
    def total_contribution(self) -> float:
        return (
            self.risk_score.contribution
            + self.days_since_interaction.contribution
            + self.feedback_score.contribution
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ClientScores:
    """Output of scoring one client"""

    client_id: str
    risk_score: int
    urgency_score: float
    breakdown: UrgencyBreakdown
    classification: UrgencyClassification


@dataclass
class RecalculationError:
    """A client the batch job could not score or persist"""

    client_id: str
    reason: str


@dataclass
class RecalculationResult:
    """Summary of one batch recalculation run"""

    scope: str
    total: int
    processed: int = 0
    succeeded: int = 0
    cancelled: bool = False
    errors: List[RecalculationError] = field(default_factory=list)
    tier_counts: Dict[str, int] = field(default_factory=dict)

    @property
    def failed(self) -> int:
        return len(self.errors)
