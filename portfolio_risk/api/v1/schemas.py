"""Pydantic schemas for API request/response validation"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

WEIGHT = dict(ge=0, le=100)


class WeightConfigurationSchema(BaseModel):
    """Full weight configuration; every field is required on update"""

    risk_late_days_weight: float = Field(..., **WEIGHT)
    risk_outstanding_at_risk_weight: float = Field(..., **WEIGHT)
    risk_par_per_loan_weight: float = Field(..., **WEIGHT)
    risk_reschedules_weight: float = Field(..., **WEIGHT)
    risk_payment_consistency_weight: float = Field(..., **WEIGHT)
    risk_delayed_instalments_weight: float = Field(..., **WEIGHT)

    urgency_risk_score_weight: float = Field(..., **WEIGHT)
    urgency_days_since_visit_weight: float = Field(..., **WEIGHT)
    urgency_feedback_score_weight: float = Field(..., **WEIGHT)

    feedback_payment_willingness_weight: float = Field(..., **WEIGHT)
    feedback_financial_situation_weight: float = Field(..., **WEIGHT)
    feedback_communication_quality_weight: float = Field(..., **WEIGHT)
    feedback_compliance_cooperation_weight: float = Field(..., **WEIGHT)
    feedback_future_outlook_weight: float = Field(..., **WEIGHT)


class SettingsUpdateResponse(BaseModel):
    """Response for PUT /v1/settings"""

    scope: str
    weights: WeightConfigurationSchema
    family_totals: Dict[str, float]
    warnings: List[str]
    observers_notified: int
    recalculation_scheduled: bool


class ProgressResponse(BaseModel):
    """Response for GET /v1/settings/progress"""

    is_running: bool
    progress: int
    total: int
    current_step: str
    start_time: Optional[datetime] = None
    failed: int = 0
    cancelled: bool = False


class RecalculationResponse(BaseModel):
    """Response for POST /v1/recalculate and /v1/recalculate/cancel"""

    scope: Optional[str] = None
    status: str


class ClientScoreItem(BaseModel):
    """One client's facts and last persisted scores"""

    client_id: str
    reference: str
    name: Optional[str] = None

    late_days: int
    outstanding: float
    outstanding_at_risk: float
    par_per_loan: float
    count_reschedule: int
    paid_instalments: int
    total_delayed_instalments: int
    last_visit_date: Optional[datetime] = None
    last_phone_call_date: Optional[datetime] = None
    feedback_score: Optional[float] = None
    feedback_components: Optional[Dict[str, Optional[float]]] = None

    risk_score: int
    composite_urgency: float
    urgency_classification: str
    urgency_breakdown: Optional[Dict[str, Any]] = None
    scored_at: Optional[datetime] = None


class ClientListResponse(BaseModel):
    """Response for GET /v1/clients"""

    scope: str
    clients: List[ClientScoreItem]
