"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Mapping
from pythonjsonlogger import jsonlogger


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = "portfolio-risk-engine"


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_weight_fallback(
    client_id: str,
    configured_weights: Mapping[str, float],
    fallback_weights: Mapping[str, float],
) -> None:
    """Flag a degenerate urgency weight family so operators can spot misconfiguration"""
    logging.warning(
        "Urgency weights sum to zero, using fallback weights",
        extra={
            "client_id": client_id,
            "step": "urgency_weight_fallback",
            "configured_weights": dict(configured_weights),
            "fallback_weights": dict(fallback_weights),
        },
    )


def log_recalculation_complete(
    scope: str,
    total: int,
    succeeded: int,
    failed: int,
    cancelled: bool,
    tier_counts: Mapping[str, int],
    duration_ms: float,
) -> None:
    """Log structured recalculation outcome for analysis"""
    logging.info(
        "Recalculation completed" if not cancelled else "Recalculation cancelled",
        extra={
            "scope": scope,
            "step": "recalculation_complete",
            "total": total,
            "succeeded": succeeded,
            "failed": failed,
            "cancelled": cancelled,
            "tier_counts": dict(tier_counts),
            "duration_ms": duration_ms,
        },
    )


def log_weight_broadcast(scope: str, observers: int, delivered: int) -> None:
    """Log a weight_update fan-out"""
    logging.info(
        "Weight update broadcast",
        extra={
            "scope": scope,
            "step": "weight_broadcast",
            "observers": observers,
            "delivered": delivered,
        },
    )
