"""Board, session and player models."""
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CellKind(str, Enum):
    """What a board cell does when landed on."""
    SAFE = "safe"
    HAZARD = "hazard"
    RESET_TRAP = "reset_trap"
    MULTIPLIER = "multiplier"
    POWERUP = "powerup"
    BONUS_CHEST = "bonus_chest"
    FINISH = "finish"


class PowerUp(str, Enum):
    """Collectible power-ups."""
    SHIELD = "shield"
    DOUBLE = "double"
    SKIP = "skip"


class SessionStatus(str, Enum):
    """Game session lifecycle status."""
    ACTIVE = "active"
    WON = "won"
    LOST = "lost"
    CASHED_OUT = "cashed_out"


TERMINAL_STATUSES = frozenset(
    {SessionStatus.WON, SessionStatus.LOST, SessionStatus.CASHED_OUT}
)
CLAIMABLE_STATUSES = frozenset({SessionStatus.WON, SessionStatus.CASHED_OUT})


class ClaimStatus(str, Enum):
    """Claim progress of a terminal session."""
    PENDING = "pending"
    CLAIMED = "claimed"


class BoardCell(BaseModel):
    """One cell of the 101-cell path."""
    position: int
    kind: CellKind
    multiplier: Decimal | None = None
    powerup: PowerUp | None = None
    bonus: Decimal | None = None  # bonus units, scaled by wager at landing


class GameSession(BaseModel):
    """
    Persistent state of one game.

    Created active at position 0 with multiplier 1. Only the engine's
    move/cash-out operations mutate it while active; once terminal only
    the claim fields change.
    """
    id: str
    seed: str
    seed_hash: str
    owner_id: str
    wager: Decimal
    board_config_hash: str = ""

    position: int = 0
    accumulated_multiplier: Decimal = Decimal("1")
    bonus_currency: Decimal = Decimal("0")
    inventory: list[PowerUp] = Field(default_factory=list)
    status: SessionStatus = SessionStatus.ACTIVE
    payout: Decimal | None = None
    move_count: int = 0
    step_count: int = 0

    claim_status: ClaimStatus = ClaimStatus.PENDING
    claim_nonce: str | None = None
    claim_nonce_expires_at: datetime | None = None
    claim_tx_ref: str | None = None

    started_at: datetime = Field(default_factory=utcnow)
    ended_at: datetime | None = None
    claimed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def potential_payout(self) -> Decimal:
        """Payout the player would receive right now (or did receive)."""
        if self.payout is not None:
            return self.payout
        return self.wager * self.accumulated_multiplier + self.bonus_currency


class StepLogEntry(BaseModel):
    """Immutable record of a single landing, including cascaded ones."""
    session_id: str
    sequence: int
    position: int
    kind: CellKind
    cell_multiplier: Decimal | None = None
    multiplier_at_landing: Decimal
    powerup_used: PowerUp | None = None
    cascaded: bool = False
    created_at: datetime = Field(default_factory=utcnow)


class MoveResult(BaseModel):
    """Result of resolving one move against the board."""
    session: GameSession
    landed_cell: BoardCell
    steps: list[StepLogEntry] = Field(default_factory=list)
    used_powerups: list[PowerUp] = Field(default_factory=list)
    collected_powerup: PowerUp | None = None
    bonus_granted: Decimal = Decimal("0")
    was_reset: bool = False

    @property
    def became_terminal(self) -> bool:
        return self.session.is_terminal


class ClaimGrant(BaseModel):
    """A single-use authorization to claim a session's payout."""
    session_id: str
    nonce: str
    amount: Decimal
    message: str
    issued_at: datetime
    expires_at: datetime


class PlayerProfile(BaseModel):
    """Player profile with lifetime statistics."""
    wallet: str
    username: str
    avatar_url: str | None = None
    total_games_played: int = 0
    games_won: int = 0
    games_lost: int = 0
    total_won: Decimal = Decimal("0")
    total_lost: Decimal = Decimal("0")
    highest_multiplier: Decimal = Decimal("0")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class LeaderboardEntry(BaseModel):
    """Per-player aggregate within one leaderboard window."""
    wallet: str
    username: str = ""
    total_winnings: Decimal = Decimal("0")
    games_played: int = 0
    best_multiplier: Decimal = Decimal("0")
