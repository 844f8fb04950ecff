"""Observer-side replica: recompute cached client scores as soon as new weights arrive"""

import asyncio
import logging
import threading
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Set

from portfolio_risk.domain.models import (
    ClientFinancialFacts,
    ClientScores,
    UrgencyClassification,
    WeightConfiguration,
)
from portfolio_risk.domain.scoring import score_client
from portfolio_risk.utils.date_utils import utc_now


class ClientSideReplica:
    """
    Locally cached clients plus the last known weights.

    Scores come from the same scoring module the batch job uses, so for the
    same facts, weights and clock they match what the batch job persists.
    Each update carries the full configuration, so when recomputations
    overlap the most recent update wins and stale results are discarded.
    """

    def __init__(
        self,
        clients: Iterable[ClientFinancialFacts] = (),
        weights: Optional[WeightConfiguration] = None,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.now = now or utc_now
        self._lock = threading.Lock()
        self._generation = 0
        self._clients: Dict[str, ClientFinancialFacts] = {c.client_id: c for c in clients}
        self._weights = weights
        self._scores: Dict[str, ClientScores] = {}
        self._listeners: List[Callable[[Dict[str, ClientScores]], None]] = []
        self._pending: Set[asyncio.Task] = set()

        if weights is not None:
            self.apply_weight_update(weights)

    @property
    def weights(self) -> Optional[WeightConfiguration]:
        return self._weights

    @property
    def scores(self) -> Dict[str, ClientScores]:
        with self._lock:
            return dict(self._scores)

    def classification_for(self, client_id: str) -> Optional[UrgencyClassification]:
        scores = self.scores.get(client_id)
        return scores.classification if scores else None

    def subscribe(self, listener: Callable[[Dict[str, ClientScores]], None]) -> None:
        """Register a callback fired with the full score map after each committed update"""
        self._listeners.append(listener)

    def replace_clients(self, clients: Iterable[ClientFinancialFacts]) -> None:
        """Swap the cached client set (e.g. after a full fetch) and rescore with the current weights"""
        with self._lock:
            self._clients = {c.client_id: c for c in clients}
        if self._weights is not None:
            self.apply_weight_update(self._weights)

    def apply_weight_update(self, weights: WeightConfiguration) -> bool:
        """
        Rescore every cached client with the given weights.

        Returns False when a newer update superseded this one before it
        finished; its results are then dropped.
        """
        return self._rescore(weights, *self._begin_update(weights))

    def _begin_update(self, weights: WeightConfiguration):
        with self._lock:
            self._generation += 1
            self._weights = weights
            return self._generation, list(self._clients.values())

    def _rescore(self, weights: WeightConfiguration, generation: int, clients: List[ClientFinancialFacts]) -> bool:
        scored_at = self.now()
        fresh = {facts.client_id: score_client(facts, weights, scored_at) for facts in clients}

        with self._lock:
            if generation != self._generation:
                logging.debug(
                    "Discarding superseded replica recalculation",
                    extra={"generation": generation, "latest_generation": self._generation},
                )
                return False
            self._scores = fresh
            snapshot = dict(fresh)

        logging.info(
            "Replica recalculated client scores",
            extra={"step": "replica_recalculation", "clients": len(snapshot)},
        )
        for listener in self._listeners:
            try:
                listener(snapshot)
            except Exception as e:
                logging.error(f"Replica listener failed: {e}")
        return True

    async def apply_weight_update_async(self, weights: WeightConfiguration) -> bool:
        """
        apply_weight_update with the scoring done in a worker thread.

        The update takes its place in line before yielding, so updates win in
        the order they were received. Listeners fire on the worker thread.
        """
        generation, clients = self._begin_update(weights)
        return await asyncio.to_thread(self._rescore, weights, generation, clients)

    def attach(self, channel) -> None:
        """
        Recompute on every weight_update received by a ConfigurationChannelClient.

        Each recompute runs off the event loop and the channel keeps reading
        meanwhile, so a burst of updates overlaps and only the newest result
        is committed.
        """
        channel.on_message(self._schedule_update)

    async def wait_idle(self) -> None:
        """Wait for recomputes started from the channel to finish"""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    def _schedule_update(self, weights: WeightConfiguration) -> None:
        task = asyncio.get_running_loop().create_task(self.apply_weight_update_async(weights))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
