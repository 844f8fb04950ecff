"""Pytest fixtures for testing"""

import pytest
from datetime import datetime, timedelta, timezone
from typing import Generator
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker, Session
from portfolio_risk.api.main import create_app
from portfolio_risk.infrastructure.database.models import Base
from portfolio_risk.infrastructure.database.session import build_engine, get_db, get_session_factory
from portfolio_risk.domain.models import ClientFinancialFacts, FeedbackComponents, WeightConfiguration


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = build_engine(TEST_DATABASE_URL)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db: Session) -> Generator[TestClient, None, None]:
    """Create FastAPI test client with test database"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: TestingSessionLocal

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def default_weights() -> WeightConfiguration:
    return WeightConfiguration()


@pytest.fixture
def sample_clients() -> list[ClientFinancialFacts]:
    """A small portfolio spanning the risk range"""
    return [
        # Active loan, no delinquency signals yet
        ClientFinancialFacts(
            client_id="c-quiet",
            outstanding=5000,
            paid_instalments=12,
            last_visit_date=NOW - timedelta(days=10),
            feedback_score=4.5,
        ),
        # Seriously delinquent, not seen for months
        ClientFinancialFacts(
            client_id="c-delinquent",
            late_days=75,
            outstanding=8000,
            outstanding_at_risk=6500,
            par_per_loan=0.8,
            count_reschedule=3,
            paid_instalments=4,
            total_delayed_instalments=14,
            last_visit_date=NOW - timedelta(days=150),
            last_phone_call_date=NOW - timedelta(days=120),
            feedback_score=1.5,
        ),
        # Never contacted, detailed feedback only
        ClientFinancialFacts(
            client_id="c-new",
            late_days=10,
            outstanding=2000,
            outstanding_at_risk=500,
            par_per_loan=0.1,
            paid_instalments=1,
            feedback_components=FeedbackComponents(
                payment_willingness=2,
                financial_situation=2,
                communication_quality=4,
                compliance_cooperation=2,
                future_outlook=4,
            ),
        ),
        # Closed loan, nothing owed
        ClientFinancialFacts(client_id="c-closed", paid_instalments=50),
    ]
