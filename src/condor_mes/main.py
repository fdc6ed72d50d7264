"""FastAPI application factory.

Learn: create_app() builds the app and the two pieces of process-wide
state — the session RevocationRegistry and the WebSocket
ConnectionRegistry — and hangs them on app.state. Handlers reach them
through dependencies, never through module globals, so tests can build
as many isolated apps as they like.
"""

import asyncio
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from condor_mes import __version__
from condor_mes.api import api_router
from condor_mes.auth.revocation import RevocationRegistry, run_cleanup_loop
from condor_mes.config import settings
from condor_mes.realtime.registry import ConnectionRegistry

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` at
    shutdown. The revocation sweeper is the only recurring task and is
    cancelled here so no timer outlives the app.
    """
    logger.info(
        "condor.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    app.state.connections.attach()
    sweeper = asyncio.create_task(
        run_cleanup_loop(
            app.state.revocations, settings.revocation_sweep_interval_seconds
        )
    )

    yield

    logger.info("condor.shutdown")

    sweeper.cancel()
    try:
        await sweeper
    except asyncio.CancelledError:
        pass

    await app.state.connections.close()

    from condor_mes.db.engine import engine
    await engine.dispose()


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(
        title="Condor MES",
        description="Manufacturing execution backend — sessions and real-time shop-floor events",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.revocations = RevocationRegistry()
    app.state.connections = ConnectionRegistry()

    # Starlette runs middleware in reverse order of registration.
    # Request flow: RequestId → Security → CORS → handler
    from condor_mes.middleware.request_id import RequestIdMiddleware
    from condor_mes.middleware.security import SecurityHeadersMiddleware

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestIdMiddleware)

    app.include_router(api_router)

    from condor_mes.realtime.websocket import router as ws_router
    app.include_router(ws_router)

    return app


# Default app instance (used by uvicorn: condor_mes.main:app)
app = create_app()
