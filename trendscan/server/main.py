"""
trendscan Server - FastAPI control and live-stream surface.

Provides:
- Configuration (/api/config), snapshot (/api/state)
- Start / stop (/api/start, /api/stop), both idempotent
- Server-Sent Events stream (/api/stream), one JSON event per data line
- WebSocket event stream (/ws/events)
- USDT contract listing (/api/contracts)
- Health check (/health)

Authentication is expected to be handled in front of this service.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()

import httpx
from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from trendscan.broker.mexc_market import MarketDataError, MarketDataProvider, MexcMarketClient
from trendscan.core.config import TrendscanConfig, get_config
from trendscan.core.events import hello_event
from trendscan.services.broadcaster import EventBroadcaster, Subscription
from trendscan.services.scan_config import ConfigurationError
from trendscan.services.scheduler import ScanScheduler

logger = logging.getLogger("trendscan.server")


# ============================================================================
# Pydantic Models for API
# ============================================================================


class ConfigRequest(BaseModel):
    """Replace symbol list and/or merge settings."""
    symbols: list[Any] | None = None
    settings: dict[str, Any] | None = None


class ConfigResponse(BaseModel):
    ok: bool
    symbolsCount: int
    settings: dict[str, Any]


class StateResponse(BaseModel):
    ok: bool
    running: bool
    symbolsCount: int
    settings: dict[str, Any]


class RunResponse(BaseModel):
    ok: bool
    running: bool


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    env: str
    running: bool
    subscribers: int
    scheduler: dict[str, Any]


# ============================================================================
# Server
# ============================================================================


class TrendscanServer:
    """
    Coordinates the scheduler, the broadcaster and the market data client.

    The HTTP client is created on start and closed on stop; a provider can
    be injected instead (tests, alternative data sources).
    """

    def __init__(
        self,
        config: TrendscanConfig | None = None,
        provider: MarketDataProvider | None = None,
    ):
        self.config = config or get_config()
        self.broadcaster = EventBroadcaster()
        self._http_client: httpx.AsyncClient | None = None
        self._provider = provider
        self._contracts: MexcMarketClient | None = None

        if provider is None:
            self._http_client = httpx.AsyncClient(timeout=self.config.mexc.http_timeout_sec)
            self._contracts = MexcMarketClient(self._http_client, self.config.mexc.proxy_base)
            self._provider = self._contracts

        runtime = self.config.runtime
        self.scheduler = ScanScheduler(
            provider=self._provider,
            broadcaster=self.broadcaster,
            symbols=runtime.initial_symbols,
            tick_interval=runtime.tick_interval_sec,
            idle_interval=runtime.idle_interval_sec,
        )

    async def start(self) -> None:
        if self.config.runtime.autostart:
            self.scheduler.start()
        logger.info(f"TrendscanServer started (env={self.config.runtime.env})")

    async def stop(self) -> None:
        await self.scheduler.aclose()
        if self._http_client is not None:
            await self._http_client.aclose()
        logger.info("TrendscanServer stopped")

    def subscribe(self) -> Subscription:
        """New viewer subscription, primed with a hello snapshot."""
        return self.broadcaster.subscribe(hello_event(self.scheduler.snapshot()))

    async def sse_lines(self, request: Request, subscription: Subscription) -> AsyncIterator[str]:
        try:
            async for line in subscription:
                if await request.is_disconnected():
                    break
                yield f"data: {line}\n\n"
        finally:
            self.broadcaster.unsubscribe(subscription)


async def _pump(websocket: WebSocket, subscription: Subscription) -> None:
    """Drain a viewer queue into its WebSocket until the socket fails."""
    try:
        async for line in subscription:
            await websocket.send_text(line)
    except Exception as e:
        logger.debug(f"WebSocket send stopped: {e!r}")


# ============================================================================
# FastAPI Application
# ============================================================================


def create_app(
    config: TrendscanConfig | None = None,
    provider: MarketDataProvider | None = None,
) -> FastAPI:
    """Create and configure FastAPI application."""

    server = TrendscanServer(config=config, provider=provider)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        await server.start()
        yield
        await server.stop()

    app = FastAPI(
        title="trendscan",
        description="MA30 band trend-turn scanner",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.server = server

    # ========================================================================
    # Routes
    # ========================================================================

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        """Health check endpoint."""
        return HealthResponse(
            status="healthy",
            env=server.config.runtime.env,
            running=server.scheduler.is_running,
            subscribers=server.broadcaster.subscriber_count,
            scheduler=server.scheduler.get_stats(),
        )

    @app.post("/api/config", response_model=ConfigResponse)
    async def set_config(request: ConfigRequest):
        try:
            snapshot = server.scheduler.configure(
                symbols=request.symbols,
                settings=request.settings,
            )
        except ConfigurationError as e:
            raise HTTPException(status_code=422, detail=str(e))
        return ConfigResponse(
            ok=True,
            symbolsCount=snapshot["symbolsCount"],
            settings=snapshot["settings"],
        )

    @app.get("/api/state", response_model=StateResponse)
    async def get_state():
        return StateResponse(ok=True, **server.scheduler.snapshot())

    @app.post("/api/start", response_model=RunResponse)
    async def start_scanner():
        server.scheduler.start()
        return RunResponse(ok=True, running=server.scheduler.is_running)

    @app.post("/api/stop", response_model=RunResponse)
    async def stop_scanner():
        server.scheduler.stop()
        return RunResponse(ok=True, running=server.scheduler.is_running)

    @app.get("/api/contracts")
    async def list_contracts():
        """USDT perpetual contracts, for populating the scan list."""
        if server._contracts is None:
            raise HTTPException(status_code=503, detail="Contract listing not available")
        try:
            symbols = await server._contracts.fetch_contract_symbols()
        except MarketDataError as e:
            raise HTTPException(status_code=502, detail=str(e))
        return {"ok": True, "count": len(symbols), "symbols": symbols}

    @app.get("/api/stream")
    async def event_stream(request: Request):
        """Server-Sent Events stream: hello first, then live events."""
        subscription = server.subscribe()
        return StreamingResponse(
            server.sse_lines(request, subscription),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )

    @app.websocket("/ws/events")
    async def websocket_endpoint(websocket: WebSocket):
        """WebSocket endpoint for event streaming."""
        await websocket.accept()
        subscription = server.subscribe()
        sender = asyncio.create_task(_pump(websocket, subscription))
        try:
            while True:
                # Incoming messages are ignored; receiving detects disconnects
                data = await websocket.receive_text()
                logger.debug(f"WS received: {data}")
        except WebSocketDisconnect:
            pass
        finally:
            server.broadcaster.unsubscribe(subscription)
            sender.cancel()
            try:
                await sender
            except asyncio.CancelledError:
                pass

    return app


# ============================================================================
# Main Entry Point
# ============================================================================


def main():
    """Run the server."""
    import uvicorn

    config = get_config()
    logging.basicConfig(
        level=getattr(logging, config.runtime.log_level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    logger.info("=" * 60)
    logger.info("TRENDSCAN")
    logger.info(f"  Environment: {config.runtime.env}")
    logger.info(f"  Proxy: {config.mexc.proxy_base}")
    logger.info(f"  Tick interval: {config.runtime.tick_interval_sec}s")
    logger.info(f"  Initial symbols: {len(config.runtime.initial_symbols)}")
    logger.info("=" * 60)

    uvicorn.run(
        "trendscan.server.main:create_app",
        factory=True,
        host=config.server.host,
        port=config.server.port,
        log_level=config.runtime.log_level.lower(),
        reload=False,
    )


if __name__ == "__main__":
    main()
