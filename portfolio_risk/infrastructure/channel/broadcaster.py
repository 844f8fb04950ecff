"""Authoritative side of the weight channel: fan weight_update out to connected observers"""

import logging
from typing import Dict, Set

from fastapi import WebSocket

from portfolio_risk.domain.models import WeightConfiguration
from portfolio_risk.infrastructure.channel.messages import encode_weight_update
from portfolio_risk.infrastructure.observability.logging import log_weight_broadcast
from portfolio_risk.infrastructure.observability.metrics import connected_observers_gauge, record_broadcast


class WeightUpdateBroadcaster:
    """
    Scope -> open observer connections.

    Delivery is best-effort and at most once per connection: no acks and no
    replay, so an observer that is offline during a broadcast misses it.
    A connection whose send fails is dropped from the registry.
    """

    def __init__(self) -> None:
        self._connections: Dict[str, Set[WebSocket]] = {}

    def observer_count(self, scope: str) -> int:
        return len(self._connections.get(scope, ()))

    async def connect(self, websocket: WebSocket, scope: str) -> None:
        await websocket.accept()
        self._connections.setdefault(scope, set()).add(websocket)
        connected_observers_gauge.inc()
        logging.info("Observer connected", extra={"scope": scope, "observers": self.observer_count(scope)})

    async def disconnect(self, websocket: WebSocket, scope: str) -> None:
        removed = self._discard(websocket, scope)
        if removed:
            connected_observers_gauge.dec()
            logging.info("Observer disconnected", extra={"scope": scope, "observers": self.observer_count(scope)})

    async def broadcast(self, scope: str, weights: WeightConfiguration) -> int:
        """Send the full configuration to every observer of scope; returns deliveries"""
        message = encode_weight_update(weights)
        targets = list(self._connections.get(scope, ()))

        if not targets:
            logging.info("No observers connected for scope", extra={"scope": scope})
            return 0

        delivered = 0
        dead = []
        for websocket in targets:
            try:
                await websocket.send_text(message)
                delivered += 1
            except Exception as e:
                logging.warning(f"Dropping observer after send failure: {e}", extra={"scope": scope})
                dead.append(websocket)

        if dead:
            dropped = sum(1 for websocket in dead if self._discard(websocket, scope))
            connected_observers_gauge.dec(dropped)

        record_broadcast(delivered, len(dead))
        log_weight_broadcast(scope, observers=len(targets), delivered=delivered)
        return delivered

    def _discard(self, websocket: WebSocket, scope: str) -> bool:
        connections = self._connections.get(scope)
        if not connections or websocket not in connections:
            return False
        connections.discard(websocket)
        if not connections:
            del self._connections[scope]
        return True
