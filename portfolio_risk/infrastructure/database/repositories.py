"""Data access layer: the storage collaborator for clients, scores and weights"""

import logging
import uuid
from dataclasses import asdict
from typing import Any, List, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from portfolio_risk.infrastructure.database.models import ClientRecord, WeightSettingsRecord
from portfolio_risk.domain.models import (
    ClientFinancialFacts,
    ClientScores,
    FeedbackComponents,
    WeightConfiguration,
)
from portfolio_risk.utils.date_utils import utc_now

FACT_COLUMNS = (
    "late_days",
    "outstanding",
    "outstanding_at_risk",
    "par_per_loan",
    "count_reschedule",
    "paid_instalments",
    "total_delayed_instalments",
    "last_visit_date",
    "last_phone_call_date",
    "feedback_score",
)


def to_feedback_components(raw: Any, client_id: Optional[str] = None) -> Optional[FeedbackComponents]:
    """Stored feedback components, written by external ingestion; unknown keys are ignored"""
    if not raw:
        return None

    components = FeedbackComponents.from_mapping(raw)
    if components is None:
        logging.warning(
            "Ignoring malformed feedback components",
            extra={"client_id": client_id, "type": type(raw).__name__},
        )
    return components


def to_facts(record: ClientRecord) -> ClientFinancialFacts:
    """Snapshot a stored client for scoring; the record's id is the scoring key"""
    return ClientFinancialFacts(
        client_id=record.id,
        feedback_components=to_feedback_components(record.feedback_components, record.id),
        **{column: getattr(record, column) for column in FACT_COLUMNS},
    )


class ClientRepository:
    """Repository for clients and their persisted scores"""

    def __init__(self, db: Session):
        self.db = db

    def get_client_records(self, scope: str) -> List[ClientRecord]:
        return (
            self.db.query(ClientRecord)
            .filter(ClientRecord.scope == scope)
            .order_by(ClientRecord.reference)
            .all()
        )

    def get_all_clients(self, scope: str) -> List[ClientFinancialFacts]:
        """Fact snapshots for every client in scope"""
        return [to_facts(record) for record in self.get_client_records(scope)]

    def upsert_client(
        self,
        scope: str,
        reference: str,
        facts: ClientFinancialFacts,
        name: str | None = None,
    ) -> ClientRecord:
        """Insert or update a client's loan facts, keyed by (scope, reference)"""
        record = (
            self.db.query(ClientRecord)
            .filter(ClientRecord.scope == scope, ClientRecord.reference == reference)
            .first()
        )
        if record is None:
            record = ClientRecord(id=facts.client_id or str(uuid.uuid4()), scope=scope, reference=reference)
            self.db.add(record)

        record.name = name
        for column in FACT_COLUMNS:
            setattr(record, column, getattr(facts, column))
        record.feedback_components = asdict(facts.feedback_components) if facts.feedback_components else None

        self.db.flush()
        return record

    def save_client_scores(self, client_id: str, scores: ClientScores) -> bool:
        """
        Persist one client's scores in its own transaction.

        Committing per client keeps one bad write from discarding the rest
        of a batch. Returns False on a missing client or database error.
        """
        try:
            record = self.db.get(ClientRecord, client_id)
            if record is None:
                return False

            record.risk_score = scores.risk_score
            record.composite_urgency = scores.urgency_score
            record.urgency_classification = scores.classification.value
            record.urgency_breakdown = scores.breakdown.to_dict()
            record.scored_at = utc_now()
            self.db.commit()
            return True

        except SQLAlchemyError as e:
            self.db.rollback()
            logging.error(f"Failed to save client scores: {e}", extra={"client_id": client_id})
            return False


class WeightRepository:
    """Repository for per-scope weight configurations"""

    def __init__(self, db: Session):
        self.db = db

    def get_weight_configuration(self, scope: str) -> Optional[WeightConfiguration]:
        record = self.db.get(WeightSettingsRecord, scope)
        if record is None:
            return None
        return WeightConfiguration.from_mapping(
            {name: getattr(record, name) for name in WeightConfiguration().to_dict()}
        )

    def get_or_create(self, scope: str) -> WeightConfiguration:
        """Current weights, creating the default configuration on first read"""
        weights = self.get_weight_configuration(scope)
        if weights is None:
            weights = WeightConfiguration()
            self.save_weight_configuration(scope, weights)
        return weights

    def save_weight_configuration(self, scope: str, weights: WeightConfiguration) -> bool:
        """Upsert the full configuration; the caller commits"""
        try:
            record = self.db.get(WeightSettingsRecord, scope)
            if record is None:
                record = WeightSettingsRecord(scope=scope)
                self.db.add(record)

            for name, value in weights.to_dict().items():
                setattr(record, name, value)

            self.db.flush()
            return True

        except SQLAlchemyError as e:
            self.db.rollback()
            logging.error(f"Failed to save weight settings: {e}", extra={"scope": scope})
            return False
