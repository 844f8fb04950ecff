"""SQLAlchemy ORM models for clients, their scores, and weight settings"""

import uuid
from sqlalchemy import Column, String, Float, Integer, DateTime, Text, JSON, UniqueConstraint
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class ClientRecord(Base):
    """Client loan facts plus the scores last persisted for them"""

    __tablename__ = "client"
    __table_args__ = (UniqueConstraint("scope", "reference", name="uq_client_scope_reference"),)

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    scope = Column(Text, nullable=False, index=True)
    reference = Column(Text, nullable=False)  # portfolio client number
    name = Column(Text, nullable=True)

    # Loan facts (owned by ingestion)
    outstanding = Column(Float, nullable=False, default=0)
    outstanding_at_risk = Column(Float, nullable=False, default=0)
    par_per_loan = Column(Float, nullable=False, default=0)
    late_days = Column(Integer, nullable=False, default=0)
    total_delayed_instalments = Column(Integer, nullable=False, default=0)
    paid_instalments = Column(Integer, nullable=False, default=0)
    count_reschedule = Column(Integer, nullable=False, default=0)
    last_visit_date = Column(DateTime(timezone=True), nullable=True)
    last_phone_call_date = Column(DateTime(timezone=True), nullable=True)
    feedback_score = Column(Float, nullable=True)
    feedback_components = Column(JSON, nullable=True)

    # Scores (owned by recalculation)
    risk_score = Column(Integer, nullable=False, default=0)
    composite_urgency = Column(Float, nullable=False, default=0)
    urgency_classification = Column(Text, nullable=False, default="Low Urgency")
    urgency_breakdown = Column(JSON, nullable=True)
    scored_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class WeightSettingsRecord(Base):
    """One weight configuration per scope"""

    __tablename__ = "weight_settings"

    scope = Column(Text, primary_key=True)

    risk_late_days_weight = Column(Float, nullable=False, default=25)
    risk_outstanding_at_risk_weight = Column(Float, nullable=False, default=20)
    risk_par_per_loan_weight = Column(Float, nullable=False, default=20)
    risk_reschedules_weight = Column(Float, nullable=False, default=15)
    risk_payment_consistency_weight = Column(Float, nullable=False, default=10)
    risk_delayed_instalments_weight = Column(Float, nullable=False, default=10)

    urgency_risk_score_weight = Column(Float, nullable=False, default=50)
    urgency_days_since_visit_weight = Column(Float, nullable=False, default=40)
    urgency_feedback_score_weight = Column(Float, nullable=False, default=10)

    feedback_payment_willingness_weight = Column(Float, nullable=False, default=30)
    feedback_financial_situation_weight = Column(Float, nullable=False, default=25)
    feedback_communication_quality_weight = Column(Float, nullable=False, default=15)
    feedback_compliance_cooperation_weight = Column(Float, nullable=False, default=20)
    feedback_future_outlook_weight = Column(Float, nullable=False, default=10)

    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
