"""Session revocation registry — logout and force-logout for stateless JWTs.

A signed token stays cryptographically valid until ``exp``, so revoking
it needs server-side state. Two kinds are kept in memory:

- Token revocations: ``jti -> expires_at_ms``. An entry only has to
  outlive the token itself, so callers pass the token's remaining
  lifetime as the TTL. Expired entries are ignored by
  ``is_token_revoked`` and physically removed by ``cleanup()``.
- User revocations: ``user_id -> revoked_at_ms``. Every token of that
  user issued before the cutoff is rejected until the entry is cleared.
  These never expire on their own.

Units: registry timestamps are milliseconds, while a JWT ``iat`` claim
is seconds. ``is_token_revoked`` compares ``revoked_at_ms > iat * 1000``;
keep both sides in those units when touching this code.
"""

import asyncio
import threading
import time
from typing import Callable

import structlog

logger = structlog.get_logger()


class RevocationRegistry:
    """In-memory authority for revoked tokens and users.

    Safe to call from the event loop and from FastAPI's threadpool.
    ``clock`` returns seconds since the epoch and exists for tests.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._lock = threading.Lock()
        self._revoked_tokens: dict[str, int] = {}
        self._revoked_users: dict[str, int] = {}

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def revoke_token(self, token_id: str, expires_in_seconds: float) -> None:
        """Revoke one token for ``expires_in_seconds`` (overwrites any previous entry)."""
        expires_at = self._now_ms() + int(expires_in_seconds * 1000)
        with self._lock:
            self._revoked_tokens[str(token_id)] = expires_at
        logger.info("revocation.token_revoked", jti=str(token_id), ttl=expires_in_seconds)

    def revoke_all_user_tokens(self, user_id: int | str) -> None:
        """Reject every token of ``user_id`` issued before now."""
        revoked_at = self._now_ms()
        with self._lock:
            self._revoked_users[str(user_id)] = revoked_at
        logger.info("revocation.user_revoked", user_id=str(user_id), revoked_at=revoked_at)

    def clear_user_revocation(self, user_id: int | str) -> None:
        with self._lock:
            removed = self._revoked_users.pop(str(user_id), None)
        if removed is not None:
            logger.info("revocation.user_cleared", user_id=str(user_id))

    def is_token_revoked(
        self, token_id: str, user_id: int | str, issued_at: float
    ) -> bool:
        """Check a verified token against both revocation maps.

        ``issued_at`` is the JWT ``iat`` claim in seconds.
        """
        now = self._now_ms()
        with self._lock:
            expires_at = self._revoked_tokens.get(str(token_id))
            revoked_at = self._revoked_users.get(str(user_id))

        if expires_at is not None and now < expires_at:
            return True
        if revoked_at is not None and revoked_at > issued_at * 1000:
            return True
        return False

    def cleanup(self) -> int:
        """Drop token revocations whose TTL has elapsed. Returns the count removed."""
        now = self._now_ms()
        with self._lock:
            expired = [jti for jti, exp in self._revoked_tokens.items() if now >= exp]
            for jti in expired:
                del self._revoked_tokens[jti]

        if expired:
            logger.info("revocation.cleanup", removed=len(expired))
        return len(expired)

    def get_stats(self) -> dict[str, int]:
        with self._lock:
            return {
                "revoked_tokens": len(self._revoked_tokens),
                "revoked_users": len(self._revoked_users),
            }


async def run_cleanup_loop(registry: RevocationRegistry, interval: float) -> None:
    """Periodically sweep expired token revocations until cancelled.

    Started from the app lifespan; cancel the task at shutdown.
    """
    logger.info("revocation.sweeper_started", interval=interval)
    while True:
        await asyncio.sleep(interval)
        try:
            registry.cleanup()
        except Exception:
            logger.exception("revocation.sweeper_error")
