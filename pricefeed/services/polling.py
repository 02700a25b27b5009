"""
Periodic quote polling shared across subscribers.

Subscribers are grouped by ``(symbol, interval_ms)``; each group owns one
timer task that lives exactly as long as the group has callbacks.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from pricefeed.errors import QuoteUnavailable
from pricefeed.schemas.quote import PriceQuote

logger = logging.getLogger(__name__)

QuoteCallback = Callable[[PriceQuote], Any]


async def deliver(callback: QuoteCallback, quote: PriceQuote) -> None:
    """Invoke a subscriber; sync or async callbacks, failures stay local."""
    try:
        result = callback(quote)
        if inspect.isawaitable(result):
            await result
    except Exception:
        logger.exception("subscriber_callback_failed", extra={"symbol": quote.symbol})


@dataclass(frozen=True)
class SubscriptionHandle:
    token: str
    symbol: str
    interval_ms: int


@dataclass
class PollingGroup:
    symbol: str
    interval_ms: int
    callbacks: dict[str, QuoteCallback] = field(default_factory=dict)
    task: asyncio.Task | None = None


class PollingRegistry:
    def __init__(
        self,
        fetch_quote: Callable[[str], Awaitable[PriceQuote]],
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._fetch_quote = fetch_quote
        self._sleep = sleep
        self._groups: dict[tuple[str, int], PollingGroup] = {}
        self._first_paints: set[asyncio.Task] = set()

    def subscribe(self, symbol: str, callback: QuoteCallback, interval_ms: int) -> SubscriptionHandle:
        if interval_ms <= 0:
            raise ValueError("interval_ms must be > 0")

        key = (symbol, interval_ms)
        handle = SubscriptionHandle(token=uuid.uuid4().hex, symbol=symbol, interval_ms=interval_ms)
        group = self._groups.get(key)
        if group is None:
            group = PollingGroup(symbol=symbol, interval_ms=interval_ms)
            self._groups[key] = group
            group.task = asyncio.create_task(self._run(group), name=f"poll:{symbol}:{interval_ms}")
            logger.info("polling_group_started", extra={"symbol": symbol, "interval_ms": interval_ms})
        group.callbacks[handle.token] = callback

        first_paint = asyncio.create_task(self._first_paint(group, handle.token))
        self._first_paints.add(first_paint)
        first_paint.add_done_callback(self._first_paints.discard)
        return handle

    def unsubscribe(self, handle: SubscriptionHandle) -> None:
        key = (handle.symbol, handle.interval_ms)
        group = self._groups.get(key)
        if group is None or group.callbacks.pop(handle.token, None) is None:
            return
        if group.callbacks:
            return

        del self._groups[key]
        if group.task is not None:
            group.task.cancel()
        logger.info("polling_group_stopped", extra={"symbol": handle.symbol, "interval_ms": handle.interval_ms})

    def active_groups(self) -> dict[str, int]:
        return {f"{symbol}@{interval_ms}ms": len(group.callbacks) for (symbol, interval_ms), group in self._groups.items()}

    async def stop(self) -> None:
        tasks = [group.task for group in self._groups.values() if group.task is not None]
        tasks.extend(self._first_paints)
        self._groups.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _first_paint(self, group: PollingGroup, token: str) -> None:
        try:
            quote = await self._fetch_quote(group.symbol)
        except QuoteUnavailable as exc:
            logger.warning("polling_first_fetch_failed", extra={"symbol": group.symbol, "error": str(exc)})
            return
        except Exception:
            logger.error("polling_first_fetch_error", extra={"symbol": group.symbol}, exc_info=True)
            return
        callback = group.callbacks.get(token)
        if callback is not None:
            await deliver(callback, quote)

    async def _run(self, group: PollingGroup) -> None:
        while group.callbacks:
            await self._sleep(group.interval_ms / 1000)
            if not group.callbacks:
                break
            try:
                quote = await self._fetch_quote(group.symbol)
            except QuoteUnavailable as exc:
                logger.warning("polling_tick_failed", extra={"symbol": group.symbol, "error": str(exc)})
                continue
            except Exception:
                logger.error("polling_tick_error", extra={"symbol": group.symbol}, exc_info=True)
                continue
            for callback in list(group.callbacks.values()):
                await deliver(callback, quote)
