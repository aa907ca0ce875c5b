"""Redis repository for sessions, step logs, players, leaderboards and locks."""
import asyncio
import hashlib
import json
import logging
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import redis.asyncio as redis

from climb.config import settings
from climb.errors import ErrorCode, GameError
from climb.logic.models import GameSession, LeaderboardEntry, PlayerProfile, StepLogEntry

logger = logging.getLogger(__name__)


@dataclass
class LockMetrics:
    """Metrics from lock acquisition for telemetry."""

    acquire_ms: float
    wait_retries: int


def daily_window(now: datetime) -> str:
    return now.strftime("%Y-%m-%d")


def weekly_window(now: datetime) -> str:
    year, week, _ = now.isocalendar()
    return f"{year}-W{week:02d}"


class RedisService:
    """Redis client acting as the game repository."""

    # Key prefixes
    IDEMPOTENCY_PREFIX = "idem:"
    SESSION_LOCK_PREFIX = "lock:session:"
    PLAYER_LOCK_PREFIX = "lock:player:"
    SESSION_PREFIX = "session:"
    STEPS_PREFIX = "steps:session:"
    PLAYER_SESSIONS_PREFIX = "sessions:player:"
    USER_PREFIX = "user:"
    DAILY_PREFIX = "lb:daily:"
    WEEKLY_PREFIX = "lb:weekly:"

    # TTLs in seconds
    IDEMPOTENCY_TTL = settings.idempotency_ttl_seconds
    LOCK_TTL = settings.lock_ttl_seconds

    # Lua script for token-safe lock release (compare-and-delete)
    # Only deletes if current value matches token; prevents releasing another's lock
    RELEASE_LOCK_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    def __init__(self, redis_url: str | None = None):
        self._url = redis_url or settings.redis_url
        self._client: redis.Redis | None = None
        self.lock_wait_retries = settings.lock_wait_retries
        self.lock_retry_delay = settings.lock_retry_delay_ms / 1000

    async def connect(self) -> None:
        """Connect to Redis."""
        if self._client is None:
            self._client = redis.from_url(self._url, decode_responses=True)

    async def close(self) -> None:
        """Close Redis connection."""
        if self._client:
            await self._client.close()
            self._client = None

    @property
    def client(self) -> redis.Redis:
        """Get Redis client, raise if not connected."""
        if self._client is None:
            raise RuntimeError("Redis not connected")
        return self._client

    # === Idempotency ===

    def _payload_hash(self, payload: dict[str, Any]) -> str:
        """Create deterministic hash of payload for conflict detection."""
        canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode()).hexdigest()[:16]

    async def check_idempotency(
        self, request_id: str, payload: dict[str, Any]
    ) -> dict[str, Any] | None:
        """
        Check idempotency cache.

        Returns cached response if request_id was seen before with same payload.
        Raises IDEMPOTENCY_CONFLICT if same request_id with different payload.
        Returns None if request_id not seen before.
        """
        key = f"{self.IDEMPOTENCY_PREFIX}{request_id}"
        cached = await self.client.get(key)

        if cached is None:
            return None

        data = json.loads(cached)
        if data.get("payload_hash") != self._payload_hash(payload):
            raise GameError(ErrorCode.IDEMPOTENCY_CONFLICT)

        return data.get("response")

    async def store_idempotency(
        self, request_id: str, payload: dict[str, Any], response: dict[str, Any]
    ) -> None:
        """Store response in idempotency cache."""
        key = f"{self.IDEMPOTENCY_PREFIX}{request_id}"
        data = {
            "payload_hash": self._payload_hash(payload),
            "response": response,
        }
        await self.client.setex(key, self.IDEMPOTENCY_TTL, json.dumps(data))

    # === Locks ===

    async def acquire_lock(self, key: str) -> str | None:
        """
        Attempt to acquire a lock with a unique token.

        Returns token string if lock acquired, None if already locked.
        Token is required for release (token-safe).
        """
        token = str(uuid.uuid4())
        acquired = await self.client.set(key, token, nx=True, ex=self.LOCK_TTL)
        return token if acquired is True else None

    async def release_lock(self, key: str, token: str) -> bool:
        """
        Release a lock only if token matches (token-safe).

        Uses Lua script for atomic compare-and-delete.
        """
        result = await self.client.eval(self.RELEASE_LOCK_SCRIPT, 1, key, token)
        return result == 1

    @asynccontextmanager
    async def _lock(self, key: str, busy_message: str):
        t0 = time.monotonic()
        retries = 0
        token = await self.acquire_lock(key)
        while token is None and retries < self.lock_wait_retries:
            retries += 1
            await asyncio.sleep(self.lock_retry_delay)
            token = await self.acquire_lock(key)
        if token is None:
            raise GameError(ErrorCode.ROUND_IN_PROGRESS, busy_message)
        metrics = LockMetrics(acquire_ms=(time.monotonic() - t0) * 1000, wait_retries=retries)
        try:
            yield metrics
        finally:
            released = await self.release_lock(key, token)
            if not released:
                logger.warning("Lock %s expired before release", key)

    def session_lock(self, session_id: str):
        """
        Single-writer lock for one game session.

        Waits up to lock_wait_retries * lock_retry_delay, then raises
        ROUND_IN_PROGRESS. Yields LockMetrics.
        """
        return self._lock(
            f"{self.SESSION_LOCK_PREFIX}{session_id}",
            "Another operation is in progress for this game.",
        )

    def player_lock(self, wallet: str):
        """Lock guarding a player's profile statistics and leaderboard rows."""
        return self._lock(
            f"{self.PLAYER_LOCK_PREFIX}{wallet}",
            "Player statistics are being updated.",
        )

    # === Players ===

    async def get_user(self, wallet: str) -> PlayerProfile | None:
        cached = await self.client.get(f"{self.USER_PREFIX}{wallet}")
        if cached is None:
            return None
        return PlayerProfile.model_validate_json(cached)

    async def save_user(self, profile: PlayerProfile) -> None:
        await self.client.set(f"{self.USER_PREFIX}{profile.wallet}", profile.model_dump_json())

    async def create_user(self, profile: PlayerProfile) -> bool:
        """Insert a profile; returns False if the wallet is already registered."""
        created = await self.client.set(
            f"{self.USER_PREFIX}{profile.wallet}", profile.model_dump_json(), nx=True
        )
        return created is True

    # === Sessions ===

    async def create_session(self, session: GameSession) -> None:
        """Insert a new session and index it under its owner."""
        created = await self.client.set(
            f"{self.SESSION_PREFIX}{session.id}", session.model_dump_json(), nx=True
        )
        if created is not True:
            raise GameError(ErrorCode.INTERNAL_ERROR, "Session id collision.")
        await self.client.lpush(f"{self.PLAYER_SESSIONS_PREFIX}{session.owner_id}", session.id)

    async def get_session(self, session_id: str) -> GameSession | None:
        cached = await self.client.get(f"{self.SESSION_PREFIX}{session_id}")
        if cached is None:
            return None
        return GameSession.model_validate_json(cached)

    async def save_session(self, session: GameSession) -> None:
        """Overwrite a session. Callers must hold its session lock."""
        await self.client.set(f"{self.SESSION_PREFIX}{session.id}", session.model_dump_json())

    async def list_player_session_ids(self, wallet: str, limit: int) -> list[str]:
        """Most recent session ids first."""
        return await self.client.lrange(
            f"{self.PLAYER_SESSIONS_PREFIX}{wallet}", 0, max(limit, 1) - 1
        )

    # === Step log ===

    async def append_steps(self, session_id: str, entries: list[StepLogEntry]) -> None:
        """Append-only insert of landing records."""
        if not entries:
            return
        await self.client.rpush(
            f"{self.STEPS_PREFIX}{session_id}",
            *[entry.model_dump_json() for entry in entries],
        )

    async def get_steps(self, session_id: str) -> list[StepLogEntry]:
        raw = await self.client.lrange(f"{self.STEPS_PREFIX}{session_id}", 0, -1)
        return [StepLogEntry.model_validate_json(item) for item in raw]

    # === Leaderboards ===

    async def upsert_leaderboard(
        self, key: str, wallet: str, username: str, winnings, multiplier
    ) -> LeaderboardEntry:
        """
        Add one settled game to a leaderboard window.

        Winnings are summed, games counted and the best multiplier kept.
        Callers must hold the player's lock.
        """
        cached = await self.client.hget(key, wallet)
        if cached is None:
            entry = LeaderboardEntry(wallet=wallet, username=username)
        else:
            entry = LeaderboardEntry.model_validate_json(cached)
        entry.username = username
        entry.total_winnings += winnings
        entry.games_played += 1
        entry.best_multiplier = max(entry.best_multiplier, multiplier)
        await self.client.hset(key, wallet, entry.model_dump_json())
        return entry

    async def get_leaderboard(self, key: str, limit: int) -> list[LeaderboardEntry]:
        raw = await self.client.hgetall(key)
        entries = [LeaderboardEntry.model_validate_json(value) for value in raw.values()]
        entries.sort(key=lambda e: (e.total_winnings, e.best_multiplier), reverse=True)
        return entries[:limit]

    def daily_key(self, now: datetime) -> str:
        return f"{self.DAILY_PREFIX}{daily_window(now)}"

    def weekly_key(self, now: datetime) -> str:
        return f"{self.WEEKLY_PREFIX}{weekly_window(now)}"


# Global instance
redis_service = RedisService()
