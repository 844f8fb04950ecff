"""POST /v1/recalculate - portfolio-wide score recalculation"""

import logging
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session, sessionmaker

from portfolio_risk.api.dependencies import get_request_id, get_runner
from portfolio_risk.api.v1.schemas import RecalculationResponse
from portfolio_risk.config import settings
from portfolio_risk.domain.exceptions import RecalculationInProgressError
from portfolio_risk.domain.models import WeightConfiguration
from portfolio_risk.domain.recalculation import BatchRecalculationJob, RecalculationRunner
from portfolio_risk.infrastructure.database.repositories import ClientRepository, WeightRepository
from portfolio_risk.infrastructure.database.session import get_db, get_session_factory

router = APIRouter()


def run_recalculation(
    session_factory: sessionmaker,
    runner: RecalculationRunner,
    scope: str,
    weights: WeightConfiguration,
    exclusive: bool = False,
) -> None:
    """
    Background entry point for the batch job.

    Opens its own session because the request session is closed by the time
    background tasks run. Queued runs wait for an active run to finish;
    exclusive runs give up if one is active.
    """
    db: Session = session_factory()
    try:
        job = BatchRecalculationJob(
            ClientRepository(db),
            runner.tracker,
            batch_size=settings.recalculation_batch_size,
        )
        if exclusive:
            runner.run_exclusive(job, scope, weights)
        else:
            runner.run_queued(job, scope, weights)

    except RecalculationInProgressError as e:
        logging.warning(f"Recalculation skipped: {e}", extra={"scope": scope})

    finally:
        db.close()


@router.post("/recalculate", response_model=RecalculationResponse, status_code=202)
def start_recalculation(
    background_tasks: BackgroundTasks,
    request: Request,
    scope: str = Query(default=settings.default_scope),
    db: Session = Depends(get_db),
    session_factory: sessionmaker = Depends(get_session_factory),
    runner: RecalculationRunner = Depends(get_runner),
):
    """
    Recompute every client in scope with the stored weights.

    Progress is reported through GET /v1/settings/progress.
    """
    if runner.is_running:
        raise HTTPException(status_code=409, detail="A recalculation is already running")

    weights = WeightRepository(db).get_or_create(scope)
    db.commit()

    background_tasks.add_task(run_recalculation, session_factory, runner, scope, weights, True)
    logging.info(
        "Recalculation requested",
        extra={"request_id": get_request_id(request), "scope": scope},
    )
    return RecalculationResponse(scope=scope, status="scheduled")


@router.post("/recalculate/cancel", response_model=RecalculationResponse)
def cancel_recalculation(runner: RecalculationRunner = Depends(get_runner)):
    """Ask the running job to stop before its next client"""
    if not runner.cancel():
        raise HTTPException(status_code=409, detail="No recalculation is running")
    return RecalculationResponse(status="cancelling")
