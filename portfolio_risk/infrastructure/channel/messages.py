"""weight_update wire message shared by the broadcaster and observers"""

import json
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, ValidationError

from portfolio_risk.domain.exceptions import MessageParseError
from portfolio_risk.domain.models import WeightConfiguration

WEIGHT_UPDATE = "weight_update"


class WeightPayload(BaseModel):
    """All fourteen weights; the channel never carries partial configurations"""

    model_config = ConfigDict(extra="ignore")

    risk_late_days_weight: float
    risk_outstanding_at_risk_weight: float
    risk_par_per_loan_weight: float
    risk_reschedules_weight: float
    risk_payment_consistency_weight: float
    risk_delayed_instalments_weight: float
    urgency_risk_score_weight: float
    urgency_days_since_visit_weight: float
    urgency_feedback_score_weight: float
    feedback_payment_willingness_weight: float
    feedback_financial_situation_weight: float
    feedback_communication_quality_weight: float
    feedback_compliance_cooperation_weight: float
    feedback_future_outlook_weight: float


class WeightUpdateMessage(BaseModel):
    type: Literal["weight_update"] = WEIGHT_UPDATE
    data: WeightPayload


def encode_weight_update(weights: WeightConfiguration) -> str:
    message = WeightUpdateMessage(data=WeightPayload(**weights.to_dict()))
    return message.model_dump_json()


def parse_message(raw: Union[str, bytes]) -> Optional[WeightConfiguration]:
    """
    Decode one channel message.

    Returns the weights for a weight_update, None for any other message type.

    Raises:
        MessageParseError: On invalid JSON or a malformed weight_update payload
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise MessageParseError(f"Invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise MessageParseError("Message is not a JSON object")

    if data.get("type") != WEIGHT_UPDATE:
        return None

    try:
        message = WeightUpdateMessage.model_validate(data)
    except ValidationError as e:
        raise MessageParseError(f"Malformed weight_update payload: {e}") from e

    return WeightConfiguration.from_mapping(message.data.model_dump())
