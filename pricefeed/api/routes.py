from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, FastAPI, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from pricefeed.config.settings import settings
from pricefeed.errors import ProviderRequestFailed, QuoteUnavailable
from pricefeed.feed import PriceFeed
from pricefeed.schemas.candle import CandleResponseSchema
from pricefeed.schemas.quote import PriceQuote, QuoteSchema
from pricefeed.utils.symbol_normalizer import canonicalize
from pricefeed.utils.validators import interval_to_ms

logger = logging.getLogger(__name__)
router = APIRouter()

# Close code for a websocket request rejected on policy grounds (bad query).
WS_POLICY_VIOLATION = 1008


def error_response(error_code: str, message: str, status_code: int = 400):
    payload = {
        "schema_version": settings.schema_version,
        "status": "error",
        "error_code": error_code,
        "message": message,
    }
    return JSONResponse(payload, status_code=status_code, headers={"x-error-code": error_code})


def get_feed(request: Request) -> PriceFeed:
    return request.app.state.feed


def create_app(feed: PriceFeed | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        service = feed or PriceFeed()
        app.state.feed = service
        await service.start()
        try:
            yield
        finally:
            await service.stop()

    app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        request_id = request.headers.get("x-request-id", str(uuid.uuid4()))
        response = None
        start = time.perf_counter()
        try:
            response = await call_next(request)
            return response
        finally:
            logger.info(
                "request_complete",
                extra={
                    "request_id": request_id,
                    "path": request.url.path,
                    "symbol": request.query_params.get("symbol", ""),
                    "latency_ms": round((time.perf_counter() - start) * 1000, 2),
                    "status_code": response.status_code if response else None,
                    "error_code": response.headers.get("x-error-code") if response else None,
                },
            )

    app.include_router(router)
    return app


@router.get("/health")
def health():
    return {"schema_version": settings.schema_version, "status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@router.get("/readiness")
def readiness(feed: PriceFeed = Depends(get_feed)):
    return {"schema_version": settings.schema_version, "status": "ready", "cache": feed.cache.metrics()}


@router.get("/metrics")
def all_metrics(feed: PriceFeed = Depends(get_feed)):
    output = feed.metrics.global_metrics()
    output["schema_version"] = settings.schema_version
    output["feed"] = feed.status()
    return output


@router.get("/providers/status")
def providers_status(feed: PriceFeed = Depends(get_feed)):
    return {"schema_version": settings.schema_version, **feed.provider_status()}


@router.get("/quote", response_model=QuoteSchema)
async def quote(symbol: str = Query(...), feed: PriceFeed = Depends(get_feed)):
    try:
        clean_symbol = canonicalize(symbol)
    except ValueError:
        return error_response("INVALID_INPUT", "Invalid symbol")

    try:
        data = await feed.get_quote(clean_symbol)
    except QuoteUnavailable as exc:
        return error_response("QUOTE_UNAVAILABLE", str(exc), status_code=503)
    return QuoteSchema(schema_version=settings.schema_version, **data.model_dump())


@router.get("/candles", response_model=CandleResponseSchema)
async def candles(
    symbol: str = Query(...),
    points: int = Query(settings.default_point_budget, ge=2, le=5000),
    feed: PriceFeed = Depends(get_feed),
):
    try:
        clean_symbol = canonicalize(symbol)
    except ValueError:
        return error_response("INVALID_INPUT", "Invalid symbol")

    series = await feed.get_candles(clean_symbol, points)
    return CandleResponseSchema(
        schema_version=settings.schema_version,
        symbol=clean_symbol,
        interval=feed.config.candle_interval,
        count=len(series),
        candles=series,
        data_source="live" if series else "unavailable",
    )


@router.get("/klines", response_model=CandleResponseSchema)
async def klines(
    symbol: str = Query(...),
    interval: str = "1m",
    limit: int = Query(100, ge=1, le=1000),
    feed: PriceFeed = Depends(get_feed),
):
    try:
        clean_symbol = canonicalize(symbol)
        interval_to_ms(interval)
    except ValueError:
        return error_response("INVALID_INPUT", "Invalid symbol or interval")

    try:
        series = await feed.get_klines(clean_symbol, interval, limit)
    except ProviderRequestFailed as exc:
        logger.warning("klines_unavailable", extra={"symbol": clean_symbol, "reason": exc.reason})
        return error_response("PROVIDER_UNAVAILABLE", "Kline provider temporarily unavailable", status_code=503)
    return CandleResponseSchema(
        schema_version=settings.schema_version,
        symbol=clean_symbol,
        interval=interval,
        count=len(series),
        candles=series,
    )


async def _relay_until_disconnect(websocket: WebSocket) -> None:
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass


def _quote_sender(websocket: WebSocket):
    async def send(quote: PriceQuote) -> None:
        await websocket.send_json(quote.model_dump(mode="json"))

    return send


@router.websocket("/ws/stream")
async def stream(websocket: WebSocket, symbols: str = ""):
    try:
        clean_symbols = {canonicalize(raw) for raw in symbols.split(",") if raw.strip()}
    except ValueError:
        clean_symbols = set()
    if not clean_symbols:
        await websocket.close(code=WS_POLICY_VIOLATION)
        return

    await websocket.accept()
    feed: PriceFeed = websocket.app.state.feed
    unsubscribe = await feed.subscribe_stream(clean_symbols, _quote_sender(websocket))
    try:
        await _relay_until_disconnect(websocket)
    finally:
        await unsubscribe()


@router.websocket("/ws/poll")
async def poll(websocket: WebSocket, symbol: str = "", interval_ms: int | None = None):
    try:
        clean_symbol = canonicalize(symbol)
    except ValueError:
        await websocket.close(code=WS_POLICY_VIOLATION)
        return

    await websocket.accept()
    feed: PriceFeed = websocket.app.state.feed
    handle = feed.subscribe_polling(clean_symbol, _quote_sender(websocket), interval_ms)
    try:
        await _relay_until_disconnect(websocket)
    finally:
        feed.unsubscribe_polling(handle)
