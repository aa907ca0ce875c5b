"""HTTP request and response models."""
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from climb.config import settings
from climb.logic.models import (
    BoardCell,
    CellKind,
    ClaimStatus,
    GameSession,
    LeaderboardEntry,
    MoveResult,
    PlayerProfile,
    PowerUp,
    SessionStatus,
    StepLogEntry,
)


# === Request Models ===


class ConnectRequest(BaseModel):
    """POST /api/auth/connect body. The wallet comes from X-Player-Id."""

    username: str | None = Field(default=None, max_length=32)


class UpdateProfileRequest(BaseModel):
    """PUT /api/user/{wallet} body."""

    username: str | None = Field(default=None, max_length=32)
    avatarUrl: str | None = None


class StartRequest(BaseModel):
    """POST /api/game/start body."""

    wager: Decimal = Field(..., description="Positive token amount")


class MoveRequest(BaseModel):
    """POST /api/game/{id}/move body."""

    steps: int = Field(..., description="Cells to advance, positive integer")
    powerups: list[PowerUp] = Field(default_factory=list)
    clientRequestId: str | None = Field(default=None, description="Optional idempotency key")


class ClaimRequest(BaseModel):
    """POST /api/claim body."""

    gameId: str
    amount: Decimal
    nonce: str
    signature: str


# === Response Models ===


class SessionView(BaseModel):
    """Client view of a session. The seed is present only once terminal."""

    id: str
    ownerId: str
    wager: Decimal
    position: int
    multiplier: Decimal
    bonusCurrency: Decimal
    potentialPayout: Decimal
    status: SessionStatus
    payout: Decimal | None = None
    inventory: list[PowerUp] = Field(default_factory=list)
    claimStatus: ClaimStatus
    seedHash: str
    seed: str | None = None
    configHash: str
    moveCount: int
    startedAt: datetime
    endedAt: datetime | None = None

    @classmethod
    def from_session(cls, session: GameSession) -> "SessionView":
        return cls(
            id=session.id,
            ownerId=session.owner_id,
            wager=session.wager,
            position=session.position,
            multiplier=session.accumulated_multiplier,
            bonusCurrency=session.bonus_currency,
            potentialPayout=session.potential_payout(),
            status=session.status,
            payout=session.payout,
            inventory=list(session.inventory),
            claimStatus=session.claim_status,
            seedHash=session.seed_hash,
            seed=session.seed if session.is_terminal else None,
            configHash=session.board_config_hash,
            moveCount=session.move_count,
            startedAt=session.started_at,
            endedAt=session.ended_at,
        )


class StepView(BaseModel):
    """One landing from the step log."""

    sequence: int
    position: int
    kind: CellKind
    cellMultiplier: Decimal | None = None
    multiplierAtLanding: Decimal
    powerupUsed: PowerUp | None = None
    cascaded: bool = False
    createdAt: datetime

    @classmethod
    def from_entry(cls, entry: StepLogEntry) -> "StepView":
        return cls(
            sequence=entry.sequence,
            position=entry.position,
            kind=entry.kind,
            cellMultiplier=entry.cell_multiplier,
            multiplierAtLanding=entry.multiplier_at_landing,
            powerupUsed=entry.powerup_used,
            cascaded=entry.cascaded,
            createdAt=entry.created_at,
        )


class StartResponse(BaseModel):
    """POST /api/game/start response."""

    protocolVersion: str = settings.protocol_version
    session: SessionView
    seedHash: str
    configHash: str
    board: list[BoardCell] = Field(default_factory=list)


class MoveResponse(BaseModel):
    """POST /api/game/{id}/move response."""

    protocolVersion: str = settings.protocol_version
    session: SessionView
    landedCell: BoardCell
    landings: list[StepView] = Field(default_factory=list)
    usedPowerups: list[PowerUp] = Field(default_factory=list)
    collectedPowerup: PowerUp | None = None
    bonusGranted: Decimal = Decimal("0")
    wasReset: bool = False
    multiplier: Decimal
    potentialPayout: Decimal


class CashOutResponse(BaseModel):
    """POST /api/game/{id}/cashout response."""

    protocolVersion: str = settings.protocol_version
    session: SessionView
    payout: Decimal
    multiplier: Decimal


class GameDetailResponse(BaseModel):
    """GET /api/game/{id} response."""

    protocolVersion: str = settings.protocol_version
    session: SessionView
    steps: list[StepView] = Field(default_factory=list)


class ClaimNonceResponse(BaseModel):
    """POST /api/game/{id}/claim-nonce response."""

    protocolVersion: str = settings.protocol_version
    gameId: str
    nonce: str
    amount: str
    message: str
    expiresAt: datetime


class ClaimResponse(BaseModel):
    """POST /api/claim response."""

    protocolVersion: str = settings.protocol_version
    success: bool = True
    message: str
    amount: str
    txHash: str | None = None


class PlayerView(BaseModel):
    """Public player profile."""

    walletAddress: str
    username: str
    avatarUrl: str | None = None
    totalGamesPlayed: int
    gamesWon: int
    gamesLost: int
    totalWon: Decimal
    totalLost: Decimal
    highestMultiplier: Decimal

    @classmethod
    def from_profile(cls, profile: PlayerProfile) -> "PlayerView":
        return cls(
            walletAddress=profile.wallet,
            username=profile.username,
            avatarUrl=profile.avatar_url,
            totalGamesPlayed=profile.total_games_played,
            gamesWon=profile.games_won,
            gamesLost=profile.games_lost,
            totalWon=profile.total_won,
            totalLost=profile.total_lost,
            highestMultiplier=profile.highest_multiplier,
        )


class UserResponse(BaseModel):
    protocolVersion: str = settings.protocol_version
    user: PlayerView


class PlayerStats(BaseModel):
    """Derived statistics over a player's lifetime and recent games."""

    totalGamesPlayed: int
    gamesWon: int
    gamesLost: int
    totalWon: Decimal
    totalLost: Decimal
    highestMultiplier: Decimal
    winRate: str
    netProfit: Decimal
    averageWager: str
    biggestWin: Decimal


class StatsResponse(BaseModel):
    protocolVersion: str = settings.protocol_version
    stats: PlayerStats


class GamesResponse(BaseModel):
    protocolVersion: str = settings.protocol_version
    games: list[SessionView] = Field(default_factory=list)


class LeaderboardRow(BaseModel):
    rank: int
    walletAddress: str
    username: str
    totalWinnings: Decimal
    gamesPlayed: int
    bestMultiplier: Decimal

    @classmethod
    def from_entry(cls, rank: int, entry: LeaderboardEntry) -> "LeaderboardRow":
        return cls(
            rank=rank,
            walletAddress=entry.wallet,
            username=entry.username,
            totalWinnings=entry.total_winnings,
            gamesPlayed=entry.games_played,
            bestMultiplier=entry.best_multiplier,
        )


class LeaderboardResponse(BaseModel):
    protocolVersion: str = settings.protocol_version
    window: str
    leaderboard: list[LeaderboardRow] = Field(default_factory=list)


def build_move_response(result: MoveResult) -> MoveResponse:
    """Render an engine MoveResult for the client."""
    session = result.session
    return MoveResponse(
        session=SessionView.from_session(session),
        landedCell=result.landed_cell,
        landings=[StepView.from_entry(entry) for entry in result.steps],
        usedPowerups=list(result.used_powerups),
        collectedPowerup=result.collected_powerup,
        bonusGranted=result.bonus_granted,
        wasReset=result.was_reset,
        multiplier=session.accumulated_multiplier,
        potentialPayout=session.potential_payout(),
    )
