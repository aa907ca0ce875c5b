"""Pytest fixtures for backend tests."""
import asyncio
from decimal import Decimal
from typing import Any, Generator

import pytest
from eth_account import Account
from eth_account.messages import encode_defunct
from fastapi.testclient import TestClient

from climb.claims import ClaimService
from climb.logic.engine import GameEngine
from climb.logic.models import BoardCell, CellKind
from climb.main import app
from climb.redis_service import RedisService
from climb.service import GameService
from climb.telemetry import TelemetryService

# Deterministic test keys; never fund these.
PLAYER_KEY = "0x" + "11" * 32
OTHER_KEY = "0x" + "22" * 32


class MockRedis:
    """Mock Redis client for testing."""

    def __init__(self):
        self._store: dict[str, str] = {}
        self._lists: dict[str, list[str]] = {}
        self._hashes: dict[str, dict[str, str]] = {}
        self._last_set_ex: int | None = None  # Track last SET EX value for TTL tests

    async def get(self, key: str) -> str | None:
        # Yield so concurrent tasks interleave like real network round trips
        await asyncio.sleep(0)
        return self._store.get(key)

    async def set(
        self, key: str, value: str, nx: bool = False, ex: int | None = None
    ) -> bool | None:
        if nx and key in self._store:
            return None
        self._store[key] = value
        self._last_set_ex = ex
        return True

    async def setex(self, key: str, ttl: int, value: str) -> bool:
        self._store[key] = value
        return True

    async def delete(self, key: str) -> int:
        if key in self._store:
            del self._store[key]
            return 1
        return 0

    async def eval(self, script: str, numkeys: int, *args) -> int:
        """
        Execute Lua script (simplified mock for compare-and-delete).

        Supports the RELEASE_LOCK_SCRIPT pattern:
        - KEYS[1] = args[0] (key)
        - ARGV[1] = args[1] (expected value)
        Returns 1 if deleted, 0 if value didn't match.
        """
        key = args[0]
        expected_value = args[1]
        current_value = self._store.get(key)
        if current_value == expected_value:
            del self._store[key]
            return 1
        return 0

    async def lpush(self, key: str, *values: str) -> int:
        items = self._lists.setdefault(key, [])
        for value in values:
            items.insert(0, value)
        return len(items)

    async def rpush(self, key: str, *values: str) -> int:
        items = self._lists.setdefault(key, [])
        items.extend(values)
        return len(items)

    async def lrange(self, key: str, start: int, end: int) -> list[str]:
        items = self._lists.get(key, [])
        if end == -1:
            return list(items[start:])
        return list(items[start:end + 1])

    async def hget(self, key: str, field: str) -> str | None:
        return self._hashes.get(key, {}).get(field)

    async def hset(self, key: str, field: str, value: str) -> int:
        fields = self._hashes.setdefault(key, {})
        is_new = field not in fields
        fields[field] = value
        return 1 if is_new else 0

    async def hgetall(self, key: str) -> dict[str, str]:
        return dict(self._hashes.get(key, {}))

    async def close(self) -> None:
        pass

    def clear(self) -> None:
        self._store.clear()
        self._lists.clear()
        self._hashes.clear()
        self._last_set_ex = None


class RecordingSink:
    """Telemetry sink that keeps every event for assertions."""

    def __init__(self):
        self.events: list[tuple[str, dict[str, Any]]] = []

    def emit(self, event_name: str, data: dict[str, Any]) -> None:
        self.events.append((event_name, data))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]

    def of(self, event_name: str) -> list[dict[str, Any]]:
        return [data for name, data in self.events if name == event_name]


def make_board(cells: dict[int, BoardCell] | None = None) -> list[BoardCell]:
    """All-safe 101-cell board with the given cells overridden."""
    board = [BoardCell(position=p, kind=CellKind.SAFE) for p in range(100)]
    board.append(BoardCell(position=100, kind=CellKind.FINISH, multiplier=Decimal("20")))
    for position, cell in (cells or {}).items():
        board[position] = cell
    return board


class FixedBoardEngine(GameEngine):
    """Engine that plays every session on one handcrafted board."""

    def __init__(self, board: list[BoardCell] | None = None, **kwargs):
        super().__init__(**kwargs)
        self.board = board if board is not None else make_board()

    def board_for(self, session):
        return self.board


def wallet_address(private_key: str) -> str:
    """Lower-cased address for a private key, as the server stores it."""
    return Account.from_key(private_key).address.lower()


def sign_text(message: str, private_key: str = PLAYER_KEY) -> str:
    """EIP-191 personal_sign signature as a 0x-prefixed hex string."""
    signed = Account.sign_message(encode_defunct(text=message), private_key=private_key)
    return "0x" + bytes(signed.signature).hex()


@pytest.fixture
def mock_redis() -> MockRedis:
    """Create a fresh mock Redis for each test."""
    return MockRedis()


@pytest.fixture
def redis_service_with_mock(mock_redis: MockRedis) -> Generator[RedisService, None, None]:
    """Create RedisService with mock client."""
    service = RedisService()
    service._client = mock_redis
    yield service
    mock_redis.clear()


@pytest.fixture
def recording_sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def game_service(
    redis_service_with_mock: RedisService, recording_sink: RecordingSink
) -> GameService:
    """GameService over the mock repository with recorded telemetry."""
    return GameService(
        redis_service_with_mock, GameEngine(), TelemetryService(sink=recording_sink)
    )


@pytest.fixture
def claim_service(
    redis_service_with_mock: RedisService, recording_sink: RecordingSink
) -> ClaimService:
    return ClaimService(redis_service_with_mock, TelemetryService(sink=recording_sink))


@pytest.fixture
def player_wallet() -> str:
    return wallet_address(PLAYER_KEY)


@pytest.fixture
def other_wallet() -> str:
    return wallet_address(OTHER_KEY)


@pytest.fixture
def client_with_mock_redis(mock_redis: MockRedis) -> Generator[TestClient, None, None]:
    """Create TestClient with mocked Redis."""
    from climb.redis_service import redis_service

    # Patch the global redis_service client
    original_client = redis_service._client
    redis_service._client = mock_redis

    with TestClient(app) as client:
        yield client

    # Restore original
    redis_service._client = original_client
    mock_redis.clear()


@pytest.fixture
def test_client() -> TestClient:
    """Create basic TestClient (for tests that don't need Redis)."""
    return TestClient(app)
