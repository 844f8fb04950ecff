"""Dependency injection for FastAPI endpoints"""

from fastapi import Request
from fastapi.requests import HTTPConnection
from portfolio_risk.domain.recalculation import RecalculationRunner
from portfolio_risk.infrastructure.channel.broadcaster import WeightUpdateBroadcaster


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_runner(connection: HTTPConnection) -> RecalculationRunner:
    """Provide the app's recalculation runner (owns the progress tracker)"""
    return connection.app.state.runner


def get_broadcaster(connection: HTTPConnection) -> WeightUpdateBroadcaster:
    """Provide the app's weight channel broadcaster"""
    return connection.app.state.broadcaster
