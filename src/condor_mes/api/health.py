"""Health check endpoint.

Learn: Reports whether Postgres is reachable plus the in-memory state
that only this process knows about: open WebSocket connections and the
size of the revocation maps.
"""

from fastapi import APIRouter, Request
from sqlalchemy import text

from condor_mes import __version__
from condor_mes.db.engine import engine

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    checks = {"server": "ok", "version": __version__}

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["postgres"] = "ok"
    except Exception as e:
        checks["postgres"] = f"error: {e}"

    status = "healthy" if checks["postgres"] == "ok" else "degraded"

    return {
        "status": status,
        **checks,
        "realtime_connections": request.app.state.connections.connection_count,
        "revocations": request.app.state.revocations.get_stats(),
    }
