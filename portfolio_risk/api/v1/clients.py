"""GET /v1/clients - client facts and persisted scores for observer caches"""

from dataclasses import asdict
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from portfolio_risk.api.v1.schemas import ClientListResponse, ClientScoreItem
from portfolio_risk.config import settings
from portfolio_risk.infrastructure.database.repositories import ClientRepository, to_feedback_components
from portfolio_risk.infrastructure.database.session import get_db

router = APIRouter()


@router.get("/clients", response_model=ClientListResponse)
def list_clients(
    scope: str = Query(default=settings.default_scope),
    db: Session = Depends(get_db),
):
    """
    Retrieve every client in scope with the scores last written by recalculation.

    Observers load this once and then keep their replica current from the
    weight channel.
    """
    records = ClientRepository(db).get_client_records(scope)

    def components(record):
        parsed = to_feedback_components(record.feedback_components, record.id)
        return asdict(parsed) if parsed else None

    clients = [
        ClientScoreItem(
            client_id=r.id,
            reference=r.reference,
            name=r.name,
            late_days=r.late_days,
            outstanding=r.outstanding,
            outstanding_at_risk=r.outstanding_at_risk,
            par_per_loan=r.par_per_loan,
            count_reschedule=r.count_reschedule,
            paid_instalments=r.paid_instalments,
            total_delayed_instalments=r.total_delayed_instalments,
            last_visit_date=r.last_visit_date,
            last_phone_call_date=r.last_phone_call_date,
            feedback_score=r.feedback_score,
            feedback_components=components(r),
            risk_score=r.risk_score,
            composite_urgency=r.composite_urgency,
            urgency_classification=r.urgency_classification,
            urgency_breakdown=r.urgency_breakdown,
            scored_at=r.scored_at,
        )
        for r in records
    ]

    return ClientListResponse(scope=scope, clients=clients)
