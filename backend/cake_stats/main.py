import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.routes import router
from .api.sse import sse_router
from .config import Settings, get_settings
from .services.history import HistoryStore
from .services.metrics_collector import StatsCollector, probe_json_support
from .services.poller import StatsPoller
from .utils.tc_exec import TcExecutor

logger = logging.getLogger(__name__)


async def build_poller(settings: Settings) -> StatsPoller:
    """Wire executor, collector and history store from settings"""
    executor = TcExecutor(
        binary=settings.tc_binary,
        container=settings.container,
        timeout=settings.tc_timeout,
    )
    if settings.tc_json == "auto":
        use_json = await probe_json_support(executor)
        logger.info(f"tc JSON output {'supported' if use_json else 'not supported'}")
    else:
        use_json = settings.tc_json == "on"

    collector = StatsCollector(executor, use_json=use_json)
    history = HistoryStore(capacity=settings.history_size)
    return StatsPoller(collector, history, interval=settings.poll_interval)


def create_app(settings: Optional[Settings] = None, poller: Optional[StatsPoller] = None) -> FastAPI:
    """
    Build the API application

    A ready-made poller may be passed in; otherwise one is built from settings
    when the application starts.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        active = poller or await build_poller(settings)
        app.state.poller = active
        active.start()
        try:
            yield
        finally:
            await active.stop()
            active.collector.close()

    # Create FastAPI application
    app = FastAPI(
        title="CAKE Stats API",
        description="Live statistics for Linux CAKE queueing disciplines",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(router, prefix="/api", tags=["api"])
    app.include_router(sse_router, prefix="/api", tags=["sse"])

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "service": "CAKE Stats Backend",
            "version": "0.1.0",
            "endpoints": {
                "docs": "/docs",
                "health": "/api/health",
                "stats": "/api/stats",
                "history": "/api/history",
                "stream": "/api/stats/stream",
            }
        }

    return app


def run():
    """Entry point: serve the API with uvicorn"""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)
