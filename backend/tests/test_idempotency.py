"""Move idempotency tests."""
import uuid

import pytest

from climb.errors import ErrorCode, GameError
from climb.logic.models import PowerUp
from climb.service import GameService
from climb.telemetry import TelemetryService
from tests.conftest import FixedBoardEngine, RecordingSink


@pytest.fixture
def safe_service(redis_service_with_mock) -> GameService:
    return GameService(
        redis_service_with_mock, FixedBoardEngine(), TelemetryService(sink=RecordingSink())
    )


async def started_session(service: GameService, wallet: str) -> str:
    await service.connect(wallet)
    session, _ = await service.start(wallet, "10")
    return session.id


class TestIdempotency:
    """clientRequestId replays."""

    @pytest.mark.asyncio
    async def test_same_request_id_returns_identical_response(
        self, safe_service: GameService, player_wallet
    ):
        """A replayed move returns the cached body and is applied once."""
        session_id = await started_session(safe_service, player_wallet)
        request_id = str(uuid.uuid4())

        first = await safe_service.move(session_id, player_wallet, 3, client_request_id=request_id)
        second = await safe_service.move(session_id, player_wallet, 3, client_request_id=request_id)

        assert first == second
        stored, steps = await safe_service.get_session(session_id)
        assert stored.position == 3
        assert stored.move_count == 1
        assert len(steps) == 1

    @pytest.mark.asyncio
    async def test_same_request_id_different_payload_conflicts(
        self, safe_service: GameService, player_wallet
    ):
        """Reusing a clientRequestId for another move is IDEMPOTENCY_CONFLICT."""
        session_id = await started_session(safe_service, player_wallet)
        request_id = str(uuid.uuid4())
        await safe_service.move(session_id, player_wallet, 3, client_request_id=request_id)

        with pytest.raises(GameError) as exc_info:
            await safe_service.move(session_id, player_wallet, 4, client_request_id=request_id)
        assert exc_info.value.code == ErrorCode.IDEMPOTENCY_CONFLICT

    @pytest.mark.asyncio
    async def test_powerup_order_does_not_change_payload(
        self, safe_service: GameService, player_wallet, redis_service_with_mock
    ):
        """Power-ups are compared as a set."""
        session_id = await started_session(safe_service, player_wallet)
        session = await redis_service_with_mock.get_session(session_id)
        session.inventory = [PowerUp.SHIELD, PowerUp.SKIP]
        await redis_service_with_mock.save_session(session)
        request_id = str(uuid.uuid4())

        first = await safe_service.move(
            session_id, player_wallet, 2, ["shield", "skip"], client_request_id=request_id
        )
        second = await safe_service.move(
            session_id, player_wallet, 2, ["skip", "shield"], client_request_id=request_id
        )
        assert first == second

    @pytest.mark.asyncio
    async def test_without_request_id_moves_apply_each_time(
        self, safe_service: GameService, player_wallet
    ):
        session_id = await started_session(safe_service, player_wallet)
        await safe_service.move(session_id, player_wallet, 3)
        await safe_service.move(session_id, player_wallet, 3)
        stored, _ = await safe_service.get_session(session_id)
        assert stored.position == 6

    @pytest.mark.asyncio
    async def test_unknown_powerup_rejected(self, safe_service: GameService, player_wallet):
        session_id = await started_session(safe_service, player_wallet)
        with pytest.raises(GameError) as exc_info:
            await safe_service.move(session_id, player_wallet, 1, ["teleport"])
        assert exc_info.value.code == ErrorCode.INVALID_INPUT
