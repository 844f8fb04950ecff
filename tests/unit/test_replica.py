"""Unit tests for the observer-side client replica"""

import threading
from datetime import datetime, timezone
from portfolio_risk.domain.models import UrgencyClassification, WeightConfiguration
from portfolio_risk.domain.recalculation import BatchRecalculationJob, ProgressTracker
from portfolio_risk.domain.replica import ClientSideReplica

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)

RISK_HEAVY = WeightConfiguration(
    urgency_risk_score_weight=100,
    urgency_days_since_visit_weight=0,
    urgency_feedback_score_weight=0,
)


class CollectingStorage:
    def __init__(self, clients):
        self.clients = list(clients)
        self.saved = {}

    def get_all_clients(self, scope):
        return list(self.clients)

    def save_client_scores(self, client_id, scores):
        self.saved[client_id] = scores
        return True


def test_replica_without_weights_has_no_scores(sample_clients):
    replica = ClientSideReplica(sample_clients, now=lambda: NOW)

    assert replica.weights is None
    assert replica.scores == {}
    assert replica.classification_for("c-quiet") is None


def test_replica_matches_batch_job(default_weights, sample_clients):
    """Replica and batch job agree for the same facts, weights and clock"""
    storage = CollectingStorage(sample_clients)
    BatchRecalculationJob(storage, ProgressTracker(), now=lambda: NOW).run("default", RISK_HEAVY)

    replica = ClientSideReplica(sample_clients, default_weights, now=lambda: NOW)
    replica.apply_weight_update(RISK_HEAVY)

    assert replica.scores == storage.saved


def test_weight_update_changes_displayed_tier(default_weights, sample_clients):
    replica = ClientSideReplica(sample_clients, default_weights, now=lambda: NOW)
    before = replica.classification_for("c-delinquent")

    # Urgency driven by risk alone: risk 80 is still Extremely Urgent,
    # quiet client moves from 10.5 to its risk score 14
    replica.apply_weight_update(RISK_HEAVY)

    assert before == UrgencyClassification.EXTREMELY_URGENT
    assert replica.classification_for("c-delinquent") == UrgencyClassification.EXTREMELY_URGENT
    assert replica.scores["c-quiet"].urgency_score == 14.0
    assert replica.weights == RISK_HEAVY


def test_listeners_receive_full_score_map(default_weights, sample_clients):
    replica = ClientSideReplica(sample_clients, now=lambda: NOW)
    received = []
    replica.subscribe(received.append)

    replica.apply_weight_update(default_weights)

    assert len(received) == 1
    assert set(received[0]) == {facts.client_id for facts in sample_clients}


def test_failing_listener_does_not_block_others(default_weights, sample_clients):
    replica = ClientSideReplica(sample_clients, now=lambda: NOW)
    received = []

    def broken(scores):
        raise RuntimeError("render failed")

    replica.subscribe(broken)
    replica.subscribe(received.append)

    assert replica.apply_weight_update(default_weights) is True
    assert len(received) == 1


def test_superseded_update_is_discarded(default_weights, sample_clients):
    """When a newer update lands mid-recalculation, the older result is dropped"""
    replica = ClientSideReplica(sample_clients, now=lambda: NOW)
    nested_results = []

    def clock():
        # First recalculation reads the clock, then a newer update arrives
        if not nested_results:
            replica.now = lambda: NOW
            nested_results.append(replica.apply_weight_update(RISK_HEAVY))
        return NOW

    replica.now = clock
    stale = replica.apply_weight_update(default_weights)

    assert nested_results == [True]
    assert stale is False
    assert replica.weights == RISK_HEAVY
    assert replica.scores["c-quiet"].urgency_score == 14.0


def test_replace_clients_rescores(default_weights, sample_clients):
    replica = ClientSideReplica(sample_clients[:1], default_weights, now=lambda: NOW)
    assert set(replica.scores) == {"c-quiet"}

    replica.replace_clients(sample_clients)

    assert set(replica.scores) == {facts.client_id for facts in sample_clients}


async def test_attach_registers_on_channel(default_weights, sample_clients):
    class FakeChannel:
        def __init__(self):
            self.handlers = []

        def on_message(self, handler):
            self.handlers.append(handler)

    channel = FakeChannel()
    replica = ClientSideReplica(sample_clients, now=lambda: NOW)
    replica.attach(channel)

    channel.handlers[0](default_weights)
    await replica.wait_idle()

    assert replica.weights == default_weights
    assert len(replica.scores) == len(sample_clients)


async def test_apply_weight_update_async_scores_off_the_loop(default_weights, sample_clients):
    replica = ClientSideReplica(sample_clients, now=lambda: NOW)
    threads = []
    replica.subscribe(lambda scores: threads.append(threading.get_ident()))

    assert await replica.apply_weight_update_async(default_weights) is True

    assert threads and threads[0] != threading.get_ident()
    assert len(replica.scores) == len(sample_clients)


async def test_burst_of_channel_updates_keeps_newest(default_weights, sample_clients):
    """Updates overlap while the channel keeps reading; the last one received is displayed"""
    replica = ClientSideReplica(sample_clients, now=lambda: NOW)
    committed = []
    replica.subscribe(lambda scores: committed.append(scores["c-quiet"].urgency_score))

    replica._schedule_update(default_weights)
    replica._schedule_update(RISK_HEAVY)
    await replica.wait_idle()

    assert replica.weights == RISK_HEAVY
    assert replica.scores["c-quiet"].urgency_score == 14.0
    assert committed[-1] == 14.0
