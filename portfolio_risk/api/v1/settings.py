"""GET/PUT /v1/settings - weight configuration, GET /v1/settings/progress - recalculation status"""

import logging
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session, sessionmaker

from portfolio_risk.api.dependencies import get_broadcaster, get_request_id, get_runner
from portfolio_risk.api.v1.recalculation import run_recalculation
from portfolio_risk.api.v1.schemas import ProgressResponse, SettingsUpdateResponse, WeightConfigurationSchema
from portfolio_risk.config import settings
from portfolio_risk.domain.models import WeightConfiguration, family_totals, family_warnings
from portfolio_risk.domain.recalculation import RecalculationRunner
from portfolio_risk.infrastructure.channel.broadcaster import WeightUpdateBroadcaster
from portfolio_risk.infrastructure.database.repositories import WeightRepository
from portfolio_risk.infrastructure.database.session import get_db, get_session_factory

router = APIRouter()


@router.get("/settings", response_model=WeightConfigurationSchema)
def get_settings(
    scope: str = Query(default=settings.default_scope),
    db: Session = Depends(get_db),
):
    """Current weights for scope; defaults are created on first read"""
    weights = WeightRepository(db).get_or_create(scope)
    db.commit()
    return WeightConfigurationSchema(**weights.to_dict())


@router.put("/settings", response_model=SettingsUpdateResponse)
async def update_settings(
    payload: WeightConfigurationSchema,
    background_tasks: BackgroundTasks,
    request: Request,
    scope: str = Query(default=settings.default_scope),
    db: Session = Depends(get_db),
    session_factory: sessionmaker = Depends(get_session_factory),
    runner: RecalculationRunner = Depends(get_runner),
    broadcaster: WeightUpdateBroadcaster = Depends(get_broadcaster),
):
    """
    Replace the weight configuration for scope.

    Flow:
    1. Persist the full configuration
    2. Push it to every connected observer (their replicas rescore at once)
    3. Schedule the authoritative batch recalculation

    Families that do not total 100 are accepted and reported as warnings.
    """
    request_id = get_request_id(request)
    weights = WeightConfiguration.from_mapping(payload.model_dump())

    if not WeightRepository(db).save_weight_configuration(scope, weights):
        raise HTTPException(status_code=500, detail="Failed to save weight settings")
    db.commit()

    warnings = family_warnings(weights)
    if warnings:
        logging.warning(
            "Weight families deviate from 100",
            extra={"request_id": request_id, "scope": scope, "warnings": warnings},
        )

    observers_notified = await broadcaster.broadcast(scope, weights)

    background_tasks.add_task(run_recalculation, session_factory, runner, scope, weights)
    logging.info(
        "Weight settings updated",
        extra={"request_id": request_id, "scope": scope, "observers_notified": observers_notified},
    )

    return SettingsUpdateResponse(
        scope=scope,
        weights=payload,
        family_totals=family_totals(weights),
        warnings=warnings,
        observers_notified=observers_notified,
        recalculation_scheduled=True,
    )


@router.get("/settings/progress", response_model=ProgressResponse)
def get_progress(runner: RecalculationRunner = Depends(get_runner)):
    """Poll target for recalculation UIs (expected cadence: 500 ms)"""
    status = runner.tracker.snapshot()
    return ProgressResponse(
        is_running=status.is_running,
        progress=status.progress,
        total=status.total,
        current_step=status.current_step,
        start_time=status.start_time,
        failed=status.failed,
        cancelled=status.cancelled,
    )
