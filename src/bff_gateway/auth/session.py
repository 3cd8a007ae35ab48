"""Single-use login session storage for the PKCE round-trip."""

import asyncio
import logging
import threading
from abc import ABC, abstractmethod

from bff_gateway.config import Settings
from bff_gateway.auth.errors import SessionNotFoundError
from bff_gateway.auth.models import LoginSession, utcnow
from bff_gateway.auth.pkce import generate_code_verifier, generate_session_id, generate_state

logger = logging.getLogger(__name__)


class LoginSessionStore(ABC):
    """Abstract base class for login session storage."""

    @abstractmethod
    async def save(self, session: LoginSession, ttl_seconds: int) -> None:
        pass

    @abstractmethod
    async def pop(self, session_id: str) -> LoginSession | None:
        """Atomically remove and return a live session, or None."""

    async def purge_expired(self) -> int:
        return 0

    async def close(self) -> None:
        return None


class InMemoryLoginSessionStore(LoginSessionStore):
    """In-process store. Only correct when login and callback hit the same instance."""

    def __init__(self):
        self._sessions: dict[str, LoginSession] = {}
        self._lock = threading.Lock()

    async def save(self, session: LoginSession, ttl_seconds: int) -> None:
        with self._lock:
            if session.session_id in self._sessions:
                raise ValueError("Login session id already in use")
            self._sessions[session.session_id] = session

    async def pop(self, session_id: str) -> LoginSession | None:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None or session.is_expired():
            return None
        return session

    async def purge_expired(self) -> int:
        now = utcnow()
        with self._lock:
            expired = [sid for sid, s in self._sessions.items() if s.is_expired(now)]
            for sid in expired:
                del self._sessions[sid]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


class RedisLoginSessionStore(LoginSessionStore):
    """Redis-backed store for deployments with more than one instance."""

    def __init__(self, redis_url: str | None = None, client=None):
        if client is None:
            import redis.asyncio as redis
            client = redis.from_url(redis_url, decode_responses=True)
        self._redis = client
        self._prefix = "bff:login_session:"

    async def save(self, session: LoginSession, ttl_seconds: int) -> None:
        key = f"{self._prefix}{session.session_id}"
        await self._redis.setex(key, ttl_seconds, session.model_dump_json())

    async def pop(self, session_id: str) -> LoginSession | None:
        key = f"{self._prefix}{session_id}"
        data = await self._redis.getdel(key)
        if not data:
            return None
        session = LoginSession.model_validate_json(data)
        if session.is_expired():
            return None
        return session

    async def close(self) -> None:
        await self._redis.aclose()


class LoginSessionManager:
    """Creates and consumes login sessions."""

    def __init__(self, store: LoginSessionStore, ttl_seconds: int = 600):
        self._store = store
        self.ttl_seconds = ttl_seconds

    @property
    def store(self) -> LoginSessionStore:
        return self._store

    async def begin(self) -> LoginSession:
        """Create and persist a fresh login session."""
        session = LoginSession.create(
            session_id=generate_session_id(),
            code_verifier=generate_code_verifier(),
            state=generate_state(),
            ttl_seconds=self.ttl_seconds,
        )
        await self._store.save(session, self.ttl_seconds)
        logger.debug(f"Started login session expiring at {session.expires_at.isoformat()}")
        return session

    async def consume(self, session_id: str | None) -> LoginSession:
        """Retrieve and delete a login session; a second call always fails."""
        if not session_id:
            raise SessionNotFoundError("No login session reference on callback")

        session = await self._store.pop(session_id)
        if session is None:
            raise SessionNotFoundError("Login session missing, expired or already used")
        return session

    async def discard(self, session_id: str | None) -> None:
        if session_id:
            await self._store.pop(session_id)

    async def purge_expired(self) -> int:
        return await self._store.purge_expired()


def create_login_session_store(settings: Settings) -> LoginSessionStore:
    """Use Redis when configured, in-memory otherwise."""
    if settings.redis_url:
        return RedisLoginSessionStore(settings.redis_url)

    if settings.is_production:
        logger.warning("Using in-memory login session store - requires sticky sessions")
    return InMemoryLoginSessionStore()


async def sweep_expired_sessions(manager: LoginSessionManager, interval_seconds: float) -> None:
    """Periodically purge expired login sessions until cancelled."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            purged = await manager.purge_expired()
        except Exception as e:
            logger.error(f"Login session sweep failed: {e}")
            continue
        if purged:
            logger.info(f"Purged {purged} expired login sessions")
