"""
Ticker streaming over one shared push connection.

Every streamed symbol and subscriber rides the same websocket. A symbol is
subscribed upstream exactly while at least one callback wants it, and the
connection itself only exists while any symbol is wanted. Reconnection runs
as explicit state transitions with a pure backoff computation; the connect
factory and the sleep function are injectable so the state machine can be
driven without a network or real timers.
"""
from __future__ import annotations

import asyncio
import itertools
import json
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable

from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from pricefeed.config.settings import settings
from pricefeed.errors import ConnectionLost, MalformedMessage, ReconnectExhausted
from pricefeed.schemas.quote import PriceQuote
from pricefeed.services.polling import QuoteCallback, deliver
from pricefeed.utils.symbol_normalizer import from_product_id, to_hyphenated
from pricefeed.utils.validators import normalize_timestamp, parse_price

logger = logging.getLogger(__name__)

Unsubscribe = Callable[[], Awaitable[None]]


class ConnectionState(str, Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    OPEN = "OPEN"
    RECONNECTING = "RECONNECTING"


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    return min(base_delay * (2 ** attempt), max_delay)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def control_frame(kind: str, symbols: Iterable[str]) -> dict[str, Any]:
    return {
        "type": kind,
        "product_ids": [to_hyphenated(symbol) for symbol in symbols],
        "channels": ["ticker"],
    }


def parse_ticker(raw: str | bytes, now: Callable[[], datetime] = _utcnow) -> PriceQuote | None:
    """Decode one push message; ``None`` for messages that carry no price."""
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise MalformedMessage(f"undecodable payload: {exc}") from exc
    if not isinstance(data, dict):
        raise MalformedMessage("payload is not an object")

    kind = data.get("type")
    if kind == "error":
        logger.warning("stream_provider_error", extra={"error_message": data.get("message"), "reason": data.get("reason")})
        return None
    if kind != "ticker":
        return None

    try:
        symbol = from_product_id(str(data["product_id"]))
        price = parse_price(data["price"])
        observed_at = normalize_timestamp(data["time"]) if data.get("time") else now()
        return PriceQuote(symbol=symbol, price=price, observed_at=observed_at)
    except (KeyError, TypeError, ValueError) as exc:
        raise MalformedMessage(f"bad ticker message: {exc}") from exc


class StreamingRegistry:
    def __init__(
        self,
        connect_factory: Callable[[], Awaitable[Any]] | None = None,
        *,
        url: str = settings.coinbase_ws_url,
        base_delay: float = settings.ws_reconnect_base_delay_seconds,
        max_delay: float = settings.ws_reconnect_max_delay_seconds,
        max_attempts: int = settings.ws_reconnect_max_attempts,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        now: Callable[[], datetime] = _utcnow,
    ):
        self._url = url
        self._connect = connect_factory or self._open_websocket
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._max_attempts = max_attempts
        self._sleep = sleep
        self._now = now

        self._subscribers: dict[str, dict[int, QuoteCallback]] = {}
        self._ids = itertools.count(1)
        self._state = ConnectionState.DISCONNECTED
        self._attempt = 0
        self._ws: Any = None
        self._task: asyncio.Task | None = None
        self._stats = {"messages": 0, "malformed": 0, "reconnects": 0, "exhausted": 0, "failures": 0}

    def _open_websocket(self):
        return connect(
            self._url,
            ping_interval=settings.ws_ping_interval_seconds,
            ping_timeout=settings.ws_ping_interval_seconds,
            open_timeout=settings.ws_open_timeout_seconds,
        )

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def attempt(self) -> int:
        return self._attempt

    def symbols(self) -> list[str]:
        return sorted(self._subscribers)

    def status(self) -> dict[str, Any]:
        return {
            "state": self._state.value,
            "attempt": self._attempt,
            "symbols": {symbol: len(callbacks) for symbol, callbacks in sorted(self._subscribers.items())},
            **self._stats,
        }

    async def subscribe(self, symbols: Iterable[str], callback: QuoteCallback) -> Unsubscribe:
        wanted = sorted(set(symbols))
        if not wanted:
            raise ValueError("at least one symbol is required")

        token = next(self._ids)
        added = []
        for symbol in wanted:
            interested = self._subscribers.setdefault(symbol, {})
            if not interested:
                added.append(symbol)
            interested[token] = callback

        if self._task is None or self._task.done():
            self._attempt = 0
            self._state = ConnectionState.CONNECTING
            self._task = asyncio.create_task(self._run(), name="ticker-stream")
        elif self._state == ConnectionState.OPEN and added:
            await self._send_control("subscribe", added)

        released = False

        async def unsubscribe() -> None:
            nonlocal released
            if released:
                return
            released = True
            await self._release(token, wanted)

        return unsubscribe

    async def stop(self) -> None:
        self._subscribers.clear()
        await self._teardown()

    async def _release(self, token: int, symbols: list[str]) -> None:
        removed = []
        for symbol in symbols:
            interested = self._subscribers.get(symbol)
            if interested is None or interested.pop(token, None) is None:
                continue
            if not interested:
                del self._subscribers[symbol]
                removed.append(symbol)

        if not self._subscribers:
            await self._teardown()
        elif removed and self._state == ConnectionState.OPEN:
            await self._send_control("unsubscribe", removed)

    async def _teardown(self) -> None:
        task, self._task = self._task, None
        ws, self._ws = self._ws, None
        self._state = ConnectionState.DISCONNECTED
        self._attempt = 0
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        if ws is not None:
            await self._close(ws)
        logger.info("stream_disconnected")

    async def _send_control(self, kind: str, symbols: list[str]) -> None:
        ws = self._ws
        if ws is None:
            return
        try:
            await ws.send(json.dumps(control_frame(kind, symbols)))
        except (OSError, WebSocketException) as exc:
            logger.warning("stream_control_send_failed", extra={"kind": kind, "symbols": symbols, "error": str(exc)})

    async def _close(self, ws: Any) -> None:
        try:
            await ws.close()
        except (OSError, WebSocketException) as exc:
            logger.debug("stream_close_failed", extra={"error": str(exc)})

    async def _run(self) -> None:
        me = asyncio.current_task()
        try:
            while self._subscribers and self._task is me:
                self._state = ConnectionState.CONNECTING
                lost = await self._session()
                if self._task is not me:
                    return
                if not self._subscribers:
                    break

                if self._attempt >= self._max_attempts:
                    exhausted = ReconnectExhausted(self._attempt)
                    self._stats["exhausted"] += 1
                    logger.error("stream_reconnect_exhausted", extra={"error": str(exhausted), "last_failure": str(lost)})
                    break

                delay = backoff_delay(self._attempt, self._base_delay, self._max_delay)
                self._attempt += 1
                self._stats["reconnects"] += 1
                self._state = ConnectionState.RECONNECTING
                logger.warning(
                    "stream_reconnecting",
                    extra={"attempt": self._attempt, "delay_seconds": delay, "error": str(lost)},
                )
                await self._sleep(delay)
        except Exception:
            self._stats["failures"] += 1
            logger.error("stream_task_failed", extra={"symbols": self.symbols()}, exc_info=True)
        finally:
            if self._task is me:
                self._task = None
                self._ws = None
                self._state = ConnectionState.DISCONNECTED

    async def _session(self) -> ConnectionLost:
        try:
            ws = await self._connect()
        except (OSError, WebSocketException, asyncio.TimeoutError) as exc:
            return ConnectionLost(f"connect failed: {exc!r}")

        self._ws = ws
        self._state = ConnectionState.OPEN
        self._attempt = 0
        logger.info("stream_open", extra={"symbols": self.symbols()})
        try:
            await self._send_control("subscribe", self.symbols())
            await self._listen(ws)
            return ConnectionLost("closed by peer")
        except ConnectionClosed as exc:
            return ConnectionLost(f"closed: {exc}")
        except OSError as exc:
            return ConnectionLost(f"socket error: {exc!r}")
        finally:
            if self._ws is ws:
                self._ws = None
            await self._close(ws)

    async def _listen(self, ws: Any) -> None:
        async for raw in ws:
            self._stats["messages"] += 1
            try:
                quote = parse_ticker(raw, self._now)
            except MalformedMessage as exc:
                self._stats["malformed"] += 1
                logger.warning("stream_message_dropped", extra={"error": str(exc)})
                continue
            if quote is None:
                continue
            interested = self._subscribers.get(quote.symbol)
            if not interested:
                continue
            for callback in list(interested.values()):
                await deliver(callback, quote)
