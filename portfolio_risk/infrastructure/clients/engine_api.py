"""Observer-side HTTP client for the scoring engine's REST surface"""

import asyncio
import time
from datetime import datetime
from typing import List

import httpx

from portfolio_risk.config import settings
from portfolio_risk.domain.exceptions import EngineAPIError
from portfolio_risk.domain.models import ClientFinancialFacts, FeedbackComponents, WeightConfiguration
from portfolio_risk.domain.recalculation import ProgressStatus
from portfolio_risk.utils.date_utils import as_utc


def _parse_datetime(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class EngineAPIClient:
    """Fetches weights, cached clients and recalculation progress"""

    def __init__(self, base_url: str | None = None, timeout: float | None = None, transport: httpx.AsyncBaseTransport | None = None):
        self.base_url = base_url or settings.engine_api_base
        self.timeout = timeout or settings.http_timeout_seconds
        self.transport = transport

    async def _get(self, path: str, **params) -> httpx.Response:
        async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.get(path, params=params or None)
                response.raise_for_status()
                return response
            except httpx.TimeoutException as e:
                raise EngineAPIError(f"Engine API timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                raise EngineAPIError(f"Engine API error: {e.response.status_code}") from e
            except httpx.RequestError as e:
                raise EngineAPIError(f"Engine API unreachable: {e}") from e

    async def get_weights(self, scope: str) -> WeightConfiguration:
        """
        Full fetch of the current weight configuration.

        Raises:
            EngineAPIError: On timeout, HTTP errors, or invalid response
        """
        response = await self._get("/v1/settings", scope=scope)
        try:
            return WeightConfiguration.from_mapping(response.json())
        except (KeyError, ValueError, TypeError) as e:
            raise EngineAPIError(f"Invalid weight data from engine: {e}") from e

    async def get_clients(self, scope: str) -> List[ClientFinancialFacts]:
        """Fetch the client facts an observer caches for its replica"""
        response = await self._get("/v1/clients", scope=scope)
        try:
            return [
                ClientFinancialFacts(
                    client_id=item["client_id"],
                    late_days=item["late_days"],
                    outstanding=item["outstanding"],
                    outstanding_at_risk=item["outstanding_at_risk"],
                    par_per_loan=item["par_per_loan"],
                    count_reschedule=item["count_reschedule"],
                    paid_instalments=item["paid_instalments"],
                    total_delayed_instalments=item["total_delayed_instalments"],
                    last_visit_date=_parse_datetime(item.get("last_visit_date")),
                    last_phone_call_date=_parse_datetime(item.get("last_phone_call_date")),
                    feedback_score=item.get("feedback_score"),
                    feedback_components=FeedbackComponents.from_mapping(item.get("feedback_components")),
                )
                for item in response.json().get("clients", [])
            ]
        except (KeyError, ValueError, TypeError) as e:
            raise EngineAPIError(f"Invalid client data from engine: {e}") from e

    async def get_progress(self) -> ProgressStatus:
        response = await self._get("/v1/settings/progress")
        try:
            data = response.json()
            return ProgressStatus(
                is_running=data["is_running"],
                progress=data["progress"],
                total=data["total"],
                current_step=data["current_step"],
                start_time=_parse_datetime(data.get("start_time")),
                failed=data.get("failed", 0),
                cancelled=data.get("cancelled", False),
            )
        except (KeyError, ValueError, TypeError) as e:
            raise EngineAPIError(f"Invalid progress data from engine: {e}") from e

    @staticmethod
    def _started_since(status: ProgressStatus, baseline: datetime | None) -> bool:
        if baseline is None or status.start_time is None:
            return False
        return as_utc(status.start_time) > as_utc(baseline)

    async def wait_for_recalculation(
        self,
        interval: float | None = None,
        timeout: float = 300.0,
        started_after: datetime | None = None,
    ) -> ProgressStatus:
        """
        Poll progress at a fixed cadence until a run seen as running stops.

        The record of an earlier, finished run is never taken as completion.
        Pass started_after (the start_time polled before triggering the run, or
        any earlier moment when none was recorded) to also accept a run that
        started and finished between two polls.

        Raises:
            EngineAPIError: On timeout, or when the engine is unreachable
        """
        interval = interval if interval is not None else settings.progress_poll_interval_seconds
        deadline = time.monotonic() + timeout
        seen_running = False

        while True:
            status = await self.get_progress()
            if status.is_running:
                seen_running = True
            elif seen_running or self._started_since(status, started_after):
                return status

            if time.monotonic() >= deadline:
                raise EngineAPIError(f"Recalculation did not finish within {timeout}s")
            await asyncio.sleep(interval)
