"""Game orchestration: locking, persistence and settlement side effects."""
import logging
from contextlib import nullcontext
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Iterable

from climb.config_hash import get_board_config_hash
from climb.errors import ErrorCode, GameError
from climb.logic.engine import GameEngine
from climb.logic.models import (
    BoardCell,
    GameSession,
    LeaderboardEntry,
    PlayerProfile,
    PowerUp,
    SessionStatus,
    StepLogEntry,
    utcnow,
)
from climb.protocol import PlayerStats, build_move_response
from climb.redis_service import RedisService
from climb.telemetry import (
    MoveProcessedEvent,
    SessionSettledEvent,
    SessionStartedEvent,
    TelemetryService,
)
from climb.validators import normalize_identity

logger = logging.getLogger(__name__)

RECENT_GAMES_FOR_STATS = 100


class GameService:
    """
    Runs game operations as single-writer transactions.

    Every state-mutating operation on a session holds that session's lock
    from load to save. Player statistics and leaderboard rows are updated
    under the player's lock, exactly once per terminal transition.
    """

    def __init__(
        self,
        repo: RedisService,
        engine: GameEngine,
        telemetry: TelemetryService,
        now: Callable[[], datetime] = utcnow,
    ):
        self.repo = repo
        self.engine = engine
        self.telemetry = telemetry
        self.now = now

    # === Players ===

    async def connect(self, wallet: str, username: str | None = None) -> PlayerProfile:
        """Return the player's profile, creating it on first contact."""
        wallet = normalize_identity(wallet)
        existing = await self.repo.get_user(wallet)
        if existing is not None:
            return existing
        profile = PlayerProfile(wallet=wallet, username=username or f"Player_{wallet[:6]}")
        if not await self.repo.create_user(profile):
            # Lost a race with a concurrent connect; the stored profile wins.
            return await self.get_user(wallet)
        logger.info("Registered player %s", wallet)
        return profile

    async def get_user(self, wallet: str) -> PlayerProfile:
        profile = await self.repo.get_user(normalize_identity(wallet))
        if profile is None:
            raise GameError(ErrorCode.NOT_FOUND, "User not found.")
        return profile

    async def update_profile(
        self,
        caller: str,
        wallet: str,
        username: str | None = None,
        avatar_url: str | None = None,
    ) -> PlayerProfile:
        wallet = normalize_identity(wallet)
        if normalize_identity(caller) != wallet:
            raise GameError(ErrorCode.UNAUTHORIZED, "Cannot edit another player's profile.")
        async with self.repo.player_lock(wallet):
            profile = await self.get_user(wallet)
            if username:
                profile.username = username
            if avatar_url:
                profile.avatar_url = avatar_url
            profile.updated_at = self.now()
            await self.repo.save_user(profile)
        return profile

    async def list_sessions(self, wallet: str, limit: int = 20) -> list[GameSession]:
        profile = await self.get_user(wallet)
        ids = await self.repo.list_player_session_ids(profile.wallet, limit)
        sessions = []
        for session_id in ids:
            session = await self.repo.get_session(session_id)
            if session is not None:
                sessions.append(session)
        return sessions

    async def get_stats(self, wallet: str) -> PlayerStats:
        """Lifetime counters plus figures derived from recent games."""
        profile = await self.get_user(wallet)
        recent = await self.list_sessions(profile.wallet, RECENT_GAMES_FOR_STATS)

        played = profile.total_games_played
        win_rate = f"{profile.games_won / played * 100:.1f}" if played > 0 else "0"
        average_wager = (
            f"{sum(s.wager for s in recent) / len(recent):.2f}" if recent else "0"
        )
        payouts = [s.payout for s in recent if s.payout is not None]
        return PlayerStats(
            totalGamesPlayed=played,
            gamesWon=profile.games_won,
            gamesLost=profile.games_lost,
            totalWon=profile.total_won,
            totalLost=profile.total_lost,
            highestMultiplier=profile.highest_multiplier,
            winRate=win_rate,
            netProfit=profile.total_won - profile.total_lost,
            averageWager=average_wager,
            biggestWin=max(payouts, default=Decimal("0")),
        )

    # === Sessions ===

    async def start(self, caller: str, wager: Any) -> tuple[GameSession, list[BoardCell]]:
        """Create a session, publish its seed hash, return the board view."""
        wallet = normalize_identity(caller)
        await self.get_user(wallet)

        config_hash = get_board_config_hash(self.engine.board_config)
        session, board = self.engine.start(wallet, wager, config_hash=config_hash)

        async with self.repo.player_lock(wallet):
            await self.repo.create_session(session)
            profile = await self.get_user(wallet)
            profile.total_games_played += 1
            profile.updated_at = self.now()
            await self.repo.save_user(profile)

        self.telemetry.emit_session_started(
            SessionStartedEvent(
                session_id=session.id,
                player_id=wallet,
                wager=str(session.wager),
                seed_hash=session.seed_hash,
                config_hash=config_hash,
            )
        )
        return session, board

    async def get_session(self, session_id: str) -> tuple[GameSession, list[StepLogEntry]]:
        session = await self._load(session_id)
        steps = await self.repo.get_steps(session_id)
        return session, steps

    async def move(
        self,
        session_id: str,
        caller: str,
        steps: int,
        powerups: Iterable[PowerUp] = (),
        client_request_id: str | None = None,
    ) -> dict[str, Any]:
        """
        Apply one move and return the rendered response.

        With a client_request_id the response is cached: replays return the
        cached body, a different payload raises IDEMPOTENCY_CONFLICT.
        """
        wallet = normalize_identity(caller)
        try:
            presented = sorted({PowerUp(p) for p in powerups}, key=lambda p: p.value)
        except ValueError:
            raise GameError(ErrorCode.INVALID_INPUT, "Unknown power-up.")
        payload = {
            "sessionId": session_id,
            "steps": steps,
            "powerups": [p.value for p in presented],
        }

        # Fast path outside the lock
        if client_request_id:
            cached = await self.repo.check_idempotency(client_request_id, payload)
            if cached is not None:
                return cached

        async with self.repo.session_lock(session_id) as lock_metrics:
            # Re-check inside the lock for correctness
            if client_request_id:
                cached = await self.repo.check_idempotency(client_request_id, payload)
                if cached is not None:
                    return cached

            session = await self._load(session_id)
            self._authorize(session, wallet)

            result = self.engine.move(session, steps, presented)

            # A finishing move holds the player lock before anything is written
            settle_lock = (
                self.repo.player_lock(wallet) if result.became_terminal else nullcontext()
            )
            async with settle_lock:
                await self.repo.save_session(result.session)
                await self.repo.append_steps(session_id, result.steps)
                if result.became_terminal:
                    await self._apply_settlement(result.session)

                response = build_move_response(result).model_dump(mode="json")
                if client_request_id:
                    await self.repo.store_idempotency(client_request_id, payload, response)

            if result.became_terminal:
                self._emit_settled(result.session)

            self.telemetry.emit_move_processed(
                MoveProcessedEvent(
                    session_id=session_id,
                    player_id=wallet,
                    steps=steps,
                    landed_position=result.landed_cell.position,
                    landed_kind=result.landed_cell.kind.value,
                    landings=len(result.steps),
                    used_powerups=[p.value for p in result.used_powerups],
                    status=result.session.status.value,
                    multiplier=str(result.session.accumulated_multiplier),
                    lock_acquire_ms=lock_metrics.acquire_ms,
                    lock_wait_retries=lock_metrics.wait_retries,
                )
            )
            return response

    async def cash_out(self, session_id: str, caller: str) -> GameSession:
        wallet = normalize_identity(caller)
        async with self.repo.session_lock(session_id):
            session = await self._load(session_id)
            self._authorize(session, wallet)
            settled = self.engine.cash_out(session)
            async with self.repo.player_lock(wallet):
                await self.repo.save_session(settled)
                await self._apply_settlement(settled)
        self._emit_settled(settled)
        return settled

    # === Leaderboards ===

    async def leaderboard(self, window: str, limit: int = 10) -> tuple[str, list[LeaderboardEntry]]:
        now = self.now()
        if window == "daily":
            key = self.repo.daily_key(now)
        elif window == "weekly":
            key = self.repo.weekly_key(now)
        else:
            raise GameError(ErrorCode.INVALID_INPUT, f"Unknown leaderboard window: {window}")
        entries = await self.repo.get_leaderboard(key, max(1, min(limit, 100)))
        return key.rsplit(":", 1)[-1], entries

    # === Internals ===

    async def _load(self, session_id: str) -> GameSession:
        session = await self.repo.get_session(session_id)
        if session is None:
            raise GameError(ErrorCode.NOT_FOUND, "Game not found.")
        return session

    def _authorize(self, session: GameSession, wallet: str) -> None:
        if session.owner_id != wallet:
            raise GameError(ErrorCode.UNAUTHORIZED)

    async def _apply_settlement(self, session: GameSession) -> None:
        """
        Apply terminal side effects. Called once, by the transition that ended
        the game, with the owner's player lock already held.
        """
        multiplier = session.accumulated_multiplier
        payout = session.payout or Decimal("0")

        profile = await self.repo.get_user(session.owner_id)
        if profile is None:
            logger.warning(
                "Settled session %s for unknown player %s", session.id, session.owner_id
            )
            return

        if session.status == SessionStatus.LOST:
            profile.games_lost += 1
            profile.total_lost += session.wager
        else:
            profile.games_won += 1
            profile.total_won += payout
            profile.highest_multiplier = max(profile.highest_multiplier, multiplier)
        profile.updated_at = self.now()
        await self.repo.save_user(profile)

        if session.status != SessionStatus.LOST:
            now = self.now()
            for key in (self.repo.daily_key(now), self.repo.weekly_key(now)):
                await self.repo.upsert_leaderboard(
                    key, profile.wallet, profile.username, payout, multiplier
                )

    def _emit_settled(self, session: GameSession) -> None:
        self.telemetry.emit_session_settled(
            SessionSettledEvent(
                session_id=session.id,
                player_id=session.owner_id,
                status=session.status.value,
                payout=str(session.payout or Decimal("0")),
                multiplier=str(session.accumulated_multiplier),
                position=session.position,
            )
        )
