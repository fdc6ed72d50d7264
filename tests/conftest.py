"""Test fixtures — a fresh app per test, fake sockets and a scripted DB session.

Learn: The registries live on app.state, so each test builds its own app
with create_app() and gets clean revocation maps and connection sets.
ASGITransport does not run the lifespan, so the client fixture attaches
the connection registry to the test's event loop itself.

Database access is replaced through app.dependency_overrides[get_db]
with a FakeSession that replays scripted results in order.
"""

import asyncio
import json
import time
import uuid

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from starlette.websockets import WebSocketState

from condor_mes.config import settings
from condor_mes.db.engine import get_db
from condor_mes.main import create_app


# ─── Fakes ────────────────────────────────────────────────


class FakeClock:
    """Manually advanced replacement for time.time()."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeWebSocket:
    """Just enough of starlette's WebSocket for the connection registry."""

    def __init__(self, fail: bool = False, delay: float = 0.0):
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.fail = fail
        self.delay = delay
        self.sent: list = []
        self.close_code = None

    async def send_text(self, text: str) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("connection reset by peer")
        self.sent.append(json.loads(text))

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.close_code = code
        self.application_state = WebSocketState.DISCONNECTED

    def disconnect(self) -> None:
        self.client_state = WebSocketState.DISCONNECTED


class FakeMappings:
    def __init__(self, rows: list[dict]):
        self._rows = rows

    def first(self):
        return self._rows[0] if self._rows else None

    def one(self):
        assert len(self._rows) == 1, f"expected one row, got {len(self._rows)}"
        return self._rows[0]


class FakeResult:
    def __init__(self, rows: list[dict]):
        self._rows = rows

    def mappings(self) -> FakeMappings:
        return FakeMappings(self._rows)


class FakeSession:
    """AsyncSession stand-in: each execute() consumes the next scripted item.

    A script item is a list of row dicts, or an exception instance to raise.
    """

    def __init__(self, script: list):
        self.script = list(script)
        self.statements: list[tuple[str, dict]] = []
        self.committed = False
        self.rolled_back = False

    async def execute(self, statement, params=None):
        self.statements.append((str(statement), params or {}))
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        return FakeResult(item)

    async def commit(self):
        self.committed = True

    async def rollback(self):
        self.rolled_back = True


# ─── Tokens ───────────────────────────────────────────────


def make_token(user_id: int | str, issued_ago: int = 0, ttl: int = 3600, role: str = "Admin") -> str:
    """Sign a token whose iat lies ``issued_ago`` seconds in the past."""
    now = int(time.time())
    payload = {
        "sub": str(user_id),
        "jti": uuid.uuid4().hex,
        "iat": now - issued_ago,
        "exp": now + ttl,
        "role": role,
        "name": f"user-{user_id}",
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


# ─── Fixtures ─────────────────────────────────────────────


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def app():
    return create_app()


@pytest_asyncio.fixture()
async def client(app):
    """HTTP client against a fresh app with an attached connection registry."""
    app.state.connections.attach()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await app.state.connections.close()
    app.dependency_overrides.clear()


@pytest.fixture()
def use_db(app):
    """Install a FakeSession with the given script; returns the session."""

    def install(script: list) -> FakeSession:
        session = FakeSession(script)

        async def override_get_db():
            yield session

        app.dependency_overrides[get_db] = override_get_db
        return session

    return install


@pytest.fixture()
def admin_headers():
    return bearer(make_token(1, issued_ago=5, role="SuperAdmin"))
