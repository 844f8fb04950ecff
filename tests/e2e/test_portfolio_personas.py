"""
E2E tests for client personas, from weight change to observer display.

Client personas:
- steady_payer: active loan, paid up, recently visited, good feedback
- chronic_arrears: maxed-out delinquency, not seen for months, poor feedback
- fresh_loan: active loan with no indicators yet, never contacted
- lapsed_contact: moderate risk, last contact almost a year ago
"""

import pytest
from datetime import timedelta
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session
from portfolio_risk.domain.models import ClientFinancialFacts, WeightConfiguration
from portfolio_risk.domain.replica import ClientSideReplica
from portfolio_risk.infrastructure.channel.messages import parse_message
from portfolio_risk.infrastructure.database.repositories import ClientRepository, to_facts
from portfolio_risk.utils.date_utils import utc_now

RECENCY_FOCUSED = WeightConfiguration(
    urgency_risk_score_weight=20,
    urgency_days_since_visit_weight=70,
    urgency_feedback_score_weight=10,
)


@pytest.fixture
def personas(db: Session) -> dict[str, str]:
    # Half a day past each boundary so runs seconds apart agree on whole days
    now = utc_now() - timedelta(hours=12)
    repository = ClientRepository(db)
    facts = {
        "steady_payer": ClientFinancialFacts(
            client_id="p-steady",
            outstanding=3000,
            paid_instalments=40,
            last_visit_date=now - timedelta(days=7),
            feedback_score=5,
        ),
        "chronic_arrears": ClientFinancialFacts(
            client_id="p-arrears",
            late_days=120,
            outstanding=12_000,
            outstanding_at_risk=12_000,
            par_per_loan=1.0,
            count_reschedule=6,
            paid_instalments=2,
            total_delayed_instalments=25,
            last_visit_date=now - timedelta(days=200),
            feedback_score=1,
        ),
        "fresh_loan": ClientFinancialFacts(client_id="p-fresh", outstanding=2500),
        "lapsed_contact": ClientFinancialFacts(
            client_id="p-lapsed",
            late_days=20,
            outstanding=4000,
            outstanding_at_risk=1000,
            par_per_loan=0.2,
            paid_instalments=15,
            total_delayed_instalments=3,
            last_phone_call_date=now - timedelta(days=330),
        ),
    }
    for reference, persona in facts.items():
        repository.upsert_client("default", reference, persona)
    db.commit()
    return {reference: persona.client_id for reference, persona in facts.items()}


def classifications(client: TestClient) -> dict[str, dict]:
    return {c["reference"]: c for c in client.get("/v1/clients").json()["clients"]}


def test_steady_payer_low_urgency(client: TestClient, personas):
    """
    steady_payer: nothing overdue, seen last week
    Expected: Low Urgency
    """
    client.post("/v1/recalculate")

    steady = classifications(client)["steady_payer"]
    assert steady["urgency_classification"] == "Low Urgency"
    assert steady["risk_score"] < 20


def test_chronic_arrears_extremely_urgent(client: TestClient, personas):
    """
    chronic_arrears: every indicator beyond its threshold
    Expected: risk near the ceiling, Extremely Urgent
    """
    client.post("/v1/recalculate")

    arrears = classifications(client)["chronic_arrears"]
    assert arrears["risk_score"] == 95
    assert arrears["urgency_classification"] == "Extremely Urgent"
    assert arrears["urgency_breakdown"]["days_since_interaction"]["scaled_value"] == 100


def test_fresh_loan_is_not_scored_riskless(client: TestClient, personas):
    """
    fresh_loan: active balance but no indicators recorded yet
    Expected: floors keep risk above the minimum
    """
    client.post("/v1/recalculate")

    fresh = classifications(client)["fresh_loan"]
    assert fresh["risk_score"] > 1
    assert fresh["urgency_breakdown"]["days_since_interaction"]["value"] == 30


def test_recency_weights_promote_lapsed_contact(client: TestClient, personas):
    """
    lapsed_contact: moderate risk, not contacted for most of a year
    Expected: shifting urgency weight onto recency moves the client up a tier
    """
    client.post("/v1/recalculate")
    before = classifications(client)["lapsed_contact"]

    client.put("/v1/settings", json=RECENCY_FOCUSED.to_dict())
    after = classifications(client)["lapsed_contact"]

    assert after["risk_score"] == before["risk_score"]
    assert after["composite_urgency"] > before["composite_urgency"]
    assert after["urgency_classification"] == "Extremely Urgent"
    assert before["urgency_classification"] != after["urgency_classification"]


def test_observer_replica_agrees_with_persisted_scores(client: TestClient, db: Session, personas):
    """
    An observer holding cached clients receives the broadcast and rescores locally.
    Expected: every displayed tier matches what the batch job persisted.
    """
    db.expire_all()
    replica = ClientSideReplica(ClientRepository(db).get_all_clients("default"), WeightConfiguration())

    with client.websocket_connect("/v1/ws/weights") as observer:
        client.put("/v1/settings", json=RECENCY_FOCUSED.to_dict())
        replica.apply_weight_update(parse_message(observer.receive_text()))

    db.expire_all()
    for record in ClientRepository(db).get_client_records("default"):
        assert replica.classification_for(record.id).value == record.urgency_classification
        assert replica.scores[record.id].urgency_score == record.composite_urgency
        assert to_facts(record).client_id == personas[record.reference]
