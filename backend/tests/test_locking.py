"""Locking tests: token-safe locks and the per-session single writer."""
import asyncio

import pytest

from climb.config import settings
from climb.errors import ErrorCode, GameError
from climb.redis_service import RedisService
from climb.service import GameService
from climb.telemetry import TelemetryService
from tests.conftest import FixedBoardEngine, MockRedis, RecordingSink


def make_repo() -> RedisService:
    service = RedisService()
    service._client = MockRedis()
    return service


class TestLockingUnit:
    """Unit tests for locking behavior."""

    @pytest.mark.asyncio
    async def test_acquire_lock_succeeds_when_free(self):
        """Lock acquisition succeeds when no lock exists (returns token)."""
        service = make_repo()
        token = await service.acquire_lock("lock:session:s1")
        assert token is not None

    @pytest.mark.asyncio
    async def test_acquire_lock_fails_when_held(self):
        """Lock acquisition fails when lock is already held (returns None)."""
        service = make_repo()
        assert await service.acquire_lock("lock:session:s1") is not None
        assert await service.acquire_lock("lock:session:s1") is None

    @pytest.mark.asyncio
    async def test_lock_uses_configured_ttl(self):
        """Locks expire on their own if the holder crashes."""
        service = make_repo()
        await service.acquire_lock("lock:session:s1")
        assert service.client._last_set_ex == settings.lock_ttl_seconds

    @pytest.mark.asyncio
    async def test_release_lock_allows_reacquisition(self):
        """After releasing lock with correct token, another can acquire it."""
        service = make_repo()
        token = await service.acquire_lock("lock:session:s1")
        assert await service.release_lock("lock:session:s1", token) is True
        assert await service.acquire_lock("lock:session:s1") is not None

    @pytest.mark.asyncio
    async def test_release_with_wrong_token_keeps_lock(self):
        """A stale holder cannot release someone else's lock."""
        service = make_repo()
        await service.acquire_lock("lock:session:s1")
        assert await service.release_lock("lock:session:s1", "not-the-token") is False
        assert await service.acquire_lock("lock:session:s1") is None

    @pytest.mark.asyncio
    async def test_session_lock_context_manager_releases(self):
        """Context manager releases the lock on normal exit."""
        service = make_repo()
        async with service.session_lock("s1") as metrics:
            assert metrics.wait_retries == 0
        assert await service.acquire_lock("lock:session:s1") is not None

    @pytest.mark.asyncio
    async def test_session_lock_releases_on_error(self):
        """Context manager releases the lock when the body raises."""
        service = make_repo()
        with pytest.raises(RuntimeError):
            async with service.session_lock("s1"):
                raise RuntimeError("boom")
        assert await service.acquire_lock("lock:session:s1") is not None

    @pytest.mark.asyncio
    async def test_busy_lock_raises_round_in_progress(self):
        """A lock held past the retry budget yields ROUND_IN_PROGRESS."""
        service = make_repo()
        service.lock_wait_retries = 2
        service.lock_retry_delay = 0.001
        await service.acquire_lock("lock:session:s1")

        with pytest.raises(GameError) as exc_info:
            async with service.session_lock("s1"):
                pass
        assert exc_info.value.code == ErrorCode.ROUND_IN_PROGRESS
        assert exc_info.value.recoverable is True

    @pytest.mark.asyncio
    async def test_waiter_acquires_after_release(self):
        """A waiting writer gets the lock once the holder releases it."""
        service = make_repo()
        service.lock_retry_delay = 0.001
        token = await service.acquire_lock("lock:session:s1")

        async def release_later():
            await asyncio.sleep(0.01)
            await service.release_lock("lock:session:s1", token)

        async def wait_for_lock():
            async with service.session_lock("s1") as metrics:
                return metrics.wait_retries

        _, retries = await asyncio.gather(release_later(), wait_for_lock())
        assert retries > 0

    @pytest.mark.asyncio
    async def test_different_sessions_not_blocked(self):
        """Locks are per session."""
        service = make_repo()
        service.lock_wait_retries = 0
        async with service.session_lock("s1"):
            async with service.session_lock("s2"):
                pass


class TestSingleWriter:
    """Concurrent operations on one session never lose updates."""

    @pytest.mark.asyncio
    async def test_concurrent_moves_are_serialized(
        self, redis_service_with_mock, player_wallet
    ):
        """Five simultaneous one-step moves all apply, in some order."""
        redis_service_with_mock.lock_retry_delay = 0.001
        sink = RecordingSink()
        service = GameService(
            redis_service_with_mock, FixedBoardEngine(), TelemetryService(sink=sink)
        )
        await service.connect(player_wallet)
        session, _ = await service.start(player_wallet, "10")

        await asyncio.gather(*[service.move(session.id, player_wallet, 1) for _ in range(5)])

        stored, steps = await service.get_session(session.id)
        assert stored.position == 5
        assert stored.move_count == 5
        assert [entry.sequence for entry in steps] == [1, 2, 3, 4, 5]
        assert [entry.position for entry in steps] == [1, 2, 3, 4, 5]

    @pytest.mark.asyncio
    async def test_concurrent_cash_outs_settle_once(
        self, redis_service_with_mock, player_wallet
    ):
        """Only one of two racing cash-outs succeeds."""
        redis_service_with_mock.lock_retry_delay = 0.001
        sink = RecordingSink()
        service = GameService(
            redis_service_with_mock, FixedBoardEngine(), TelemetryService(sink=sink)
        )
        await service.connect(player_wallet)
        session, _ = await service.start(player_wallet, "10")

        results = await asyncio.gather(
            service.cash_out(session.id, player_wallet),
            service.cash_out(session.id, player_wallet),
            return_exceptions=True,
        )
        errors = [r for r in results if isinstance(r, GameError)]
        assert len(errors) == 1
        assert errors[0].code == ErrorCode.INVALID_STATE
        assert len(sink.of("session_settled")) == 1
        profile = await service.get_user(player_wallet)
        assert profile.games_won == 1
