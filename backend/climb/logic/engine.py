"""Game session state machine: start, move, cash out."""
import uuid
from decimal import Decimal
from typing import Iterable, Sequence

from climb.config import settings
from climb.errors import ErrorCode, GameError
from climb.logic.board import BoardConfig, generate_board
from climb.logic.fairness import generate_seed, hash_seed
from climb.logic.models import (
    BoardCell,
    CellKind,
    GameSession,
    MoveResult,
    PowerUp,
    SessionStatus,
    StepLogEntry,
    utcnow,
)
from climb.validators import (
    normalize_identity,
    validate_presented_powerups,
    validate_steps,
    validate_wager,
)


class GameEngine:
    """
    Pure game logic for one session at a time.

    Implements:
    - Session creation with a fresh seed and its hash commitment
    - Move resolution against the regenerated board, including the single
      skip cascade past a reset trap
    - Power-up consumption (only when actually needed)
    - Multiplier cap, finish and cash-out settlement

    The engine never touches storage; callers persist the returned session
    and step log under the per-session lock.
    """

    def __init__(
        self,
        board_config: BoardConfig | None = None,
        max_multiplier: Decimal | None = None,
        bonus_chest_rate: Decimal | None = None,
        allow_cashout_at_base: bool | None = None,
    ):
        self.board_config = board_config or BoardConfig.from_settings()
        self.max_multiplier = (
            max_multiplier if max_multiplier is not None else settings.max_multiplier
        )
        self.bonus_chest_rate = (
            bonus_chest_rate if bonus_chest_rate is not None else settings.bonus_chest_rate
        )
        self.allow_cashout_at_base = (
            allow_cashout_at_base
            if allow_cashout_at_base is not None
            else settings.allow_cashout_at_base_multiplier
        )

    @property
    def total_steps(self) -> int:
        return self.board_config.total_steps

    def board_for(self, session: GameSession) -> list[BoardCell]:
        """Regenerate the session's board from its seed."""
        return generate_board(session.seed, self.board_config)

    def start(
        self,
        owner_id: str,
        wager,
        seed: str | None = None,
        session_id: str | None = None,
        config_hash: str = "",
    ) -> tuple[GameSession, list[BoardCell]]:
        """Create an active session and materialize its board."""
        owner = normalize_identity(owner_id)
        amount = validate_wager(wager)
        seed = seed or generate_seed()
        session = GameSession(
            id=session_id or uuid.uuid4().hex,
            seed=seed,
            seed_hash=hash_seed(seed),
            owner_id=owner,
            wager=amount,
            board_config_hash=config_hash,
        )
        return session, self.board_for(session)

    def move(
        self,
        session: GameSession,
        steps: int,
        powerups: Iterable[PowerUp] = (),
        board: Sequence[BoardCell] | None = None,
    ) -> MoveResult:
        """
        Advance the player and resolve the landing cell.

        Args:
            session: Current session (not mutated)
            steps: Positive number of cells to advance
            powerups: Power-ups the player offers for this move
            board: Pre-generated board (regenerated from the seed if omitted)

        Returns:
            MoveResult with the next session state and every landing logged
        """
        self._ensure_active(session)
        validate_steps(steps)
        available = validate_presented_powerups(powerups, session.inventory)
        board = board if board is not None else self.board_for(session)

        next_session = session.model_copy(deep=True)
        landing = min(session.position + steps, self.total_steps)
        result = MoveResult(session=next_session, landed_cell=board[landing])

        self._resolve(next_session, board, landing, available, result, cascaded=False)
        next_session.move_count += 1
        return result

    def cash_out(self, session: GameSession) -> GameSession:
        """Settle an active session at its current multiplier."""
        self._ensure_active(session)
        if session.accumulated_multiplier <= 1 and not self.allow_cashout_at_base:
            raise GameError(
                ErrorCode.INVALID_STATE,
                "Cash out requires a multiplier above 1x.",
            )
        next_session = session.model_copy(deep=True)
        next_session.status = SessionStatus.CASHED_OUT
        next_session.payout = (
            next_session.wager * next_session.accumulated_multiplier
            + next_session.bonus_currency
        )
        next_session.ended_at = utcnow()
        return next_session

    # === Internals ===

    def _ensure_active(self, session: GameSession) -> None:
        if session.status != SessionStatus.ACTIVE:
            raise GameError(
                ErrorCode.INVALID_STATE,
                f"Game is not active (status={session.status.value}).",
            )

    def _consume(
        self,
        session: GameSession,
        powerup: PowerUp,
        available: set[PowerUp],
        result: MoveResult,
    ) -> PowerUp:
        session.inventory.remove(powerup)
        available.discard(powerup)
        result.used_powerups.append(powerup)
        return powerup

    def _resolve(
        self,
        session: GameSession,
        board: Sequence[BoardCell],
        position: int,
        available: set[PowerUp],
        result: MoveResult,
        cascaded: bool,
    ) -> None:
        cell = board[position]
        result.landed_cell = cell
        used: PowerUp | None = None
        session.position = position

        if cell.kind == CellKind.HAZARD:
            if PowerUp.SHIELD in available:
                used = self._consume(session, PowerUp.SHIELD, available, result)
            else:
                self._settle_lost(session)

        elif cell.kind == CellKind.RESET_TRAP:
            if not cascaded and PowerUp.SKIP in available:
                used = self._consume(session, PowerUp.SKIP, available, result)
                self._log(session, cell, result, used, cascaded)
                next_position = min(position + 1, self.total_steps)
                self._resolve(session, board, next_position, available, result, cascaded=True)
                return
            if PowerUp.SHIELD in available:
                used = self._consume(session, PowerUp.SHIELD, available, result)
            else:
                session.position = 0
                result.was_reset = True

        elif cell.kind == CellKind.MULTIPLIER:
            gain = cell.multiplier or Decimal("0")
            current = session.accumulated_multiplier
            plain = min(max(current, gain), self.max_multiplier)
            doubled = min(max(current, gain * 2), self.max_multiplier)
            # Double is spent only when it raises the result
            if PowerUp.DOUBLE in available and doubled > plain:
                used = self._consume(session, PowerUp.DOUBLE, available, result)
                session.accumulated_multiplier = doubled
            else:
                session.accumulated_multiplier = plain

        elif cell.kind == CellKind.POWERUP:
            if cell.powerup is not None:
                session.inventory.append(cell.powerup)
                result.collected_powerup = cell.powerup

        elif cell.kind == CellKind.BONUS_CHEST:
            grant = session.wager * (cell.bonus or Decimal("0")) * self.bonus_chest_rate
            session.bonus_currency += grant
            result.bonus_granted += grant

        elif cell.kind == CellKind.FINISH:
            session.status = SessionStatus.WON
            session.accumulated_multiplier = cell.multiplier or self.board_config.finish_multiplier
            session.payout = (
                session.wager * session.accumulated_multiplier + session.bonus_currency
            )
            session.ended_at = utcnow()

        self._log(session, cell, result, used, cascaded)

    def _settle_lost(self, session: GameSession) -> None:
        session.status = SessionStatus.LOST
        session.payout = Decimal("0")
        session.accumulated_multiplier = Decimal("0")
        session.ended_at = utcnow()

    def _log(
        self,
        session: GameSession,
        cell: BoardCell,
        result: MoveResult,
        used: PowerUp | None,
        cascaded: bool,
    ) -> None:
        session.step_count += 1
        result.steps.append(
            StepLogEntry(
                session_id=session.id,
                sequence=session.step_count,
                position=cell.position,
                kind=cell.kind,
                cell_multiplier=cell.multiplier,
                multiplier_at_landing=session.accumulated_multiplier,
                powerup_used=used,
                cascaded=cascaded,
            )
        )
