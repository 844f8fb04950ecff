"""Observer side of the weight channel with bounded exponential-backoff reconnection"""

import asyncio
import inspect
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Union

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from portfolio_risk.config import settings
from portfolio_risk.domain.exceptions import MessageParseError
from portfolio_risk.domain.models import WeightConfiguration
from portfolio_risk.infrastructure.channel.messages import parse_message

WeightHandler = Callable[[WeightConfiguration], Union[None, Awaitable[None], Any]]


class ChannelState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    GAVE_UP = "gave_up"
    CLOSED = "closed"


class ConfigurationChannelClient:
    """
    Long-lived subscription to weight_update broadcasts.

    Messages are handled one at a time in arrival order. While disconnected
    the observer keeps its last known weights. Reconnect strategy:
    - Exponential backoff: 1s, 2s, 4s, 8s, 16s (base * 2^(attempt-1))
    - Gives up after max_attempts consecutive failures (state GAVE_UP)
    - open() resets the attempt counter
    """

    def __init__(
        self,
        url: str | None = None,
        max_attempts: int | None = None,
        backoff_base: float | None = None,
        connect: Callable[[str], Awaitable[Any]] | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ):
        self.url = url or settings.channel_url
        self.max_attempts = max_attempts if max_attempts is not None else settings.channel_max_reconnect_attempts
        self.backoff_base = backoff_base if backoff_base is not None else settings.channel_backoff_base
        self._connect = connect or websockets.connect
        self._sleep = sleep or asyncio.sleep

        self.state = ChannelState.DISCONNECTED
        self.attempts = 0
        self.last_weights: Optional[WeightConfiguration] = None

        self._handlers: List[WeightHandler] = []
        self._websocket: Any = None
        self._task: Optional[asyncio.Task] = None
        self._closing = False

    @property
    def is_connected(self) -> bool:
        return self.state == ChannelState.CONNECTED

    def on_message(self, handler: WeightHandler) -> None:
        """Register a handler called with each received WeightConfiguration"""
        self._handlers.append(handler)

    async def open(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._closing = False
        self.attempts = 0
        self._task = asyncio.create_task(self._run())

    async def close(self) -> None:
        self._closing = True
        if self._websocket is not None:
            try:
                await self._websocket.close()
            except Exception as e:
                logging.warning(f"Error closing weight channel: {e}")
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._websocket = None
        self.state = ChannelState.CLOSED

    async def wait_stopped(self) -> None:
        """Wait until the connection loop ends (closed or gave up)"""
        if self._task is not None:
            await self._task

    async def _run(self) -> None:
        while not self._closing:
            self.state = ChannelState.CONNECTING if self.attempts == 0 else ChannelState.RECONNECTING
            try:
                self._websocket = await self._connect(self.url)
            except (OSError, WebSocketException, asyncio.TimeoutError) as e:
                logging.warning(f"Weight channel connection failed: {e}", extra={"attempt": self.attempts})
                if not await self._backoff():
                    return
                continue

            self.state = ChannelState.CONNECTED
            self.attempts = 0
            logging.info("Weight channel connected", extra={"url": self.url})

            try:
                async for raw in self._websocket:
                    await self._handle(raw)
            except ConnectionClosed as e:
                logging.warning(f"Weight channel closed: {e}")
            finally:
                self._websocket = None

            if self._closing:
                break
            self.state = ChannelState.DISCONNECTED
            if not await self._backoff():
                return

    async def _backoff(self) -> bool:
        if self.attempts >= self.max_attempts:
            self.state = ChannelState.GAVE_UP
            logging.error(
                "Weight channel reconnection abandoned, keeping last known weights",
                extra={"attempts": self.attempts},
            )
            return False

        self.attempts += 1
        delay = self.backoff_base * (2 ** (self.attempts - 1))
        logging.info(f"Reconnecting weight channel in {delay}s", extra={"attempt": self.attempts})
        await self._sleep(delay)
        return True

    async def _handle(self, raw: Union[str, bytes]) -> None:
        try:
            weights = parse_message(raw)
        except MessageParseError as e:
            # Drop the message, keep the connection
            logging.warning(f"Dropping malformed channel message: {e}")
            return

        if weights is None:
            return

        self.last_weights = weights
        for handler in self._handlers:
            try:
                result = handler(weights)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logging.error(f"Weight update handler failed: {e}")
