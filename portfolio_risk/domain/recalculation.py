"""Portfolio-wide score recalculation with pollable progress"""

import logging
import threading
import time
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, List, Optional, Protocol

from portfolio_risk.domain.exceptions import RecalculationInProgressError
from portfolio_risk.domain.models import (
    ClientFinancialFacts,
    ClientScores,
    RecalculationError,
    RecalculationResult,
    UrgencyClassification,
    WeightConfiguration,
)
from portfolio_risk.domain.scoring import score_client
from portfolio_risk.infrastructure.observability.logging import log_recalculation_complete
from portfolio_risk.infrastructure.observability.metrics import (
    record_recalculation,
    urgency_weight_fallback_counter,
)
from portfolio_risk.utils.date_utils import utc_now

COMPLETED_STEP = "Urgency recalculation completed"
STARTING_STEP = "Starting urgency recalculation"


class ScoreStorage(Protocol):
    """Storage collaborator the batch job reads clients from and writes scores to"""

    def get_all_clients(self, scope: str) -> List[ClientFinancialFacts]:
        ...

    def save_client_scores(self, client_id: str, scores: ClientScores) -> bool:
        ...


@dataclass(frozen=True)
class ProgressStatus:
    """Snapshot of the running (or last) recalculation, as served to pollers"""

    is_running: bool = False
    progress: int = 0
    total: int = 0
    current_step: str = ""
    start_time: Optional[datetime] = None
    failed: int = 0
    cancelled: bool = False


class ProgressTracker:
    """
    Single-writer, multi-reader progress record.

    The job is the only writer; pollers call snapshot() and may observe a
    status up to one polling interval stale. Before any run the default
    (not running, 0 of 0) record is returned.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._status = ProgressStatus()

    def snapshot(self) -> ProgressStatus:
        with self._lock:
            return self._status

    def start(self, total: int, step: str = STARTING_STEP, start_time: Optional[datetime] = None) -> None:
        with self._lock:
            self._status = ProgressStatus(
                is_running=True,
                progress=0,
                total=total,
                current_step=step,
                start_time=start_time or utc_now(),
            )

    def advance(self, progress: int, step: Optional[str] = None, failed: Optional[int] = None) -> None:
        with self._lock:
            # Progress never moves backwards
            self._status = replace(
                self._status,
                progress=max(self._status.progress, min(progress, self._status.total)),
                current_step=step if step is not None else self._status.current_step,
                failed=failed if failed is not None else self._status.failed,
            )

    def complete(self, step: str = COMPLETED_STEP, cancelled: bool = False) -> None:
        with self._lock:
            self._status = replace(self._status, is_running=False, current_step=step, cancelled=cancelled)

    def clear(self) -> None:
        with self._lock:
            self._status = ProgressStatus()


class BatchRecalculationJob:
    """
    Recompute risk, urgency, breakdown and tier for every client of a scope.

    Runs as one sequential pass. A client that fails to score or persist is
    recorded and skipped; it never aborts the batch. Cancellation is
    cooperative and checked between clients.
    """

    def __init__(
        self,
        storage: ScoreStorage,
        tracker: ProgressTracker,
        batch_size: int = 100,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.storage = storage
        self.tracker = tracker
        self.batch_size = max(1, batch_size)
        self.now = now or utc_now

    def run(
        self,
        scope: str,
        weights: WeightConfiguration,
        cancel_event: Optional[threading.Event] = None,
    ) -> RecalculationResult:
        start_time = time.time()
        clients = self.storage.get_all_clients(scope)
        total = len(clients)
        result = RecalculationResult(
            scope=scope,
            total=total,
            tier_counts={tier.value: 0 for tier in UrgencyClassification},
        )

        self.tracker.start(total, STARTING_STEP)
        logging.info(
            "Recalculation started",
            extra={"scope": scope, "step": "recalculation_start", "total": total},
        )

        # Pin "now" once so every client in the run sees the same clock
        scored_at = self.now()

        for batch_start in range(0, total, self.batch_size):
            batch = clients[batch_start:batch_start + self.batch_size]
            step = f"Processing clients {batch_start + 1} to {batch_start + len(batch)} of {total}"
            self.tracker.advance(result.processed, step)

            for facts in batch:
                if cancel_event is not None and cancel_event.is_set():
                    result.cancelled = True
                    break

                self._process_client(facts, weights, scored_at, result)
                result.processed += 1
                self.tracker.advance(result.processed, failed=result.failed)

            if result.cancelled:
                break

        if result.cancelled:
            self.tracker.complete(f"Cancelled after {result.processed} of {total} clients", cancelled=True)
        else:
            self.tracker.complete(COMPLETED_STEP)

        duration = time.time() - start_time
        record_recalculation(result.cancelled, result.failed, result.tier_counts, duration)
        log_recalculation_complete(
            scope=scope,
            total=total,
            succeeded=result.succeeded,
            failed=result.failed,
            cancelled=result.cancelled,
            tier_counts=result.tier_counts,
            duration_ms=duration * 1000,
        )
        return result

    def _process_client(
        self,
        facts: ClientFinancialFacts,
        weights: WeightConfiguration,
        scored_at: datetime,
        result: RecalculationResult,
    ) -> None:
        try:
            scores = score_client(facts, weights, scored_at)
            saved = self.storage.save_client_scores(facts.client_id, scores)
        except Exception as e:
            logging.error(
                f"Failed to recalculate client: {e}",
                extra={"scope": result.scope, "client_id": facts.client_id},
            )
            result.errors.append(RecalculationError(client_id=facts.client_id, reason=str(e)))
            return

        if scores.breakdown.fallback_applied:
            urgency_weight_fallback_counter.inc()

        if not saved:
            logging.warning(
                "Client scores were not persisted",
                extra={"scope": result.scope, "client_id": facts.client_id},
            )
            result.errors.append(RecalculationError(client_id=facts.client_id, reason="save failed"))
            return

        result.succeeded += 1
        result.tier_counts[scores.classification.value] += 1


class RecalculationRunner:
    """
    Serializes recalculations within the process and owns the cancel flag.

    run_exclusive() refuses to start while another run is active;
    run_queued() waits for it instead, so a weight change made mid-run is
    still applied once the current run finishes.
    """

    def __init__(self, tracker: Optional[ProgressTracker] = None):
        self.tracker = tracker or ProgressTracker()
        self._lock = threading.Lock()
        self._cancel_event = threading.Event()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    def cancel(self) -> bool:
        """Request cooperative cancellation; returns False when nothing is running"""
        if not self.is_running:
            return False
        self._cancel_event.set()
        return True

    def run_exclusive(self, job: BatchRecalculationJob, scope: str, weights: WeightConfiguration) -> RecalculationResult:
        if not self._lock.acquire(blocking=False):
            raise RecalculationInProgressError("A recalculation is already running")
        return self._run_locked(job, scope, weights)

    def run_queued(self, job: BatchRecalculationJob, scope: str, weights: WeightConfiguration) -> RecalculationResult:
        self._lock.acquire()
        return self._run_locked(job, scope, weights)

    def _run_locked(self, job: BatchRecalculationJob, scope: str, weights: WeightConfiguration) -> RecalculationResult:
        try:
            self._cancel_event.clear()
            return job.run(scope, weights, cancel_event=self._cancel_event)
        finally:
            self._cancel_event.clear()
            self._lock.release()
