"""Kicks Climb FastAPI application."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from climb.claims import ClaimService
from climb.config import settings
from climb.logic.engine import GameEngine
from climb.middleware import ErrorHandlerMiddleware, PlayerIdMiddleware
from climb.protocol import (
    CashOutResponse,
    ClaimNonceResponse,
    ClaimRequest,
    ClaimResponse,
    ConnectRequest,
    GameDetailResponse,
    GamesResponse,
    LeaderboardResponse,
    LeaderboardRow,
    MoveRequest,
    PlayerView,
    SessionView,
    StartRequest,
    StartResponse,
    StatsResponse,
    StepView,
    UpdateProfileRequest,
    UserResponse,
)
from climb.redis_service import redis_service
from climb.service import GameService
from climb.signatures import format_amount
from climb.telemetry import telemetry_service

logging.basicConfig(level=logging.DEBUG if settings.debug else logging.INFO)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage Redis connection lifecycle."""
    await redis_service.connect()
    yield
    await redis_service.close()


app = FastAPI(
    title="Kicks Climb Game Server",
    version="0.1.0",
    description="Provably fair board-climb wagering game server",
    lifespan=lifespan,
)

app.add_middleware(ErrorHandlerMiddleware)
app.add_middleware(PlayerIdMiddleware)

engine = GameEngine()
game_service = GameService(redis_service, engine, telemetry_service)
claim_service = ClaimService(redis_service, telemetry_service)


@app.get("/health")
async def health() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}


# === Players ===


@app.post("/api/auth/connect")
async def connect(request: Request, body: ConnectRequest) -> dict:
    """Register the calling wallet on first contact and return its profile."""
    profile = await game_service.connect(request.state.player_id, body.username)
    return UserResponse(user=PlayerView.from_profile(profile)).model_dump(mode="json")


@app.get("/api/user/{wallet}")
async def get_user(wallet: str) -> dict:
    profile = await game_service.get_user(wallet)
    return UserResponse(user=PlayerView.from_profile(profile)).model_dump(mode="json")


@app.put("/api/user/{wallet}")
async def update_user(request: Request, wallet: str, body: UpdateProfileRequest) -> dict:
    profile = await game_service.update_profile(
        request.state.player_id, wallet, body.username, body.avatarUrl
    )
    return UserResponse(user=PlayerView.from_profile(profile)).model_dump(mode="json")


@app.get("/api/user/{wallet}/stats")
async def get_user_stats(wallet: str) -> dict:
    stats = await game_service.get_stats(wallet)
    return StatsResponse(stats=stats).model_dump(mode="json")


@app.get("/api/user/{wallet}/games")
async def get_user_games(wallet: str, limit: int = 20) -> dict:
    sessions = await game_service.list_sessions(wallet, max(1, min(limit, 100)))
    return GamesResponse(
        games=[SessionView.from_session(s) for s in sessions]
    ).model_dump(mode="json")


# === Game ===


@app.post("/api/game/start")
async def start_game(request: Request, body: StartRequest) -> dict:
    """
    Start a session.

    The seed hash is published immediately as the fairness commitment; the
    seed itself is revealed only once the game is over.
    """
    session, board = await game_service.start(request.state.player_id, body.wager)
    return StartResponse(
        session=SessionView.from_session(session),
        seedHash=session.seed_hash,
        configHash=session.board_config_hash,
        board=board,
    ).model_dump(mode="json")


@app.post("/api/game/{game_id}/move")
async def move(request: Request, game_id: str, body: MoveRequest) -> dict:
    """Advance the player; replays with the same clientRequestId are served from cache."""
    return await game_service.move(
        game_id,
        request.state.player_id,
        body.steps,
        body.powerups,
        client_request_id=body.clientRequestId,
    )


@app.post("/api/game/{game_id}/cashout")
async def cash_out(request: Request, game_id: str) -> dict:
    session = await game_service.cash_out(game_id, request.state.player_id)
    return CashOutResponse(
        session=SessionView.from_session(session),
        payout=session.payout,
        multiplier=session.accumulated_multiplier,
    ).model_dump(mode="json")


@app.get("/api/game/{game_id}")
async def get_game(game_id: str) -> dict:
    session, steps = await game_service.get_session(game_id)
    return GameDetailResponse(
        session=SessionView.from_session(session),
        steps=[StepView.from_entry(entry) for entry in steps],
    ).model_dump(mode="json")


# === Claims ===


@app.post("/api/game/{game_id}/claim-nonce")
async def claim_nonce(request: Request, game_id: str) -> dict:
    grant = await claim_service.issue_nonce(game_id, request.state.player_id)
    return ClaimNonceResponse(
        gameId=grant.session_id,
        nonce=grant.nonce,
        amount=format_amount(grant.amount),
        message=grant.message,
        expiresAt=grant.expires_at,
    ).model_dump(mode="json")


@app.post("/api/claim")
async def claim(request: Request, body: ClaimRequest) -> dict:
    session, transfer_ref = await claim_service.verify_and_claim(
        body.gameId,
        request.state.player_id,
        body.amount,
        body.nonce,
        body.signature,
    )
    return ClaimResponse(
        message="Claim verified successfully. The house will process your payout.",
        amount=format_amount(session.payout),
        txHash=transfer_ref,
    ).model_dump(mode="json")


# === Leaderboards ===


@app.get("/api/leaderboard/{window}")
async def leaderboard(window: str, limit: int = 10) -> dict:
    """Daily or weekly leaderboard, ranked by total winnings."""
    window_id, entries = await game_service.leaderboard(window, limit)
    return LeaderboardResponse(
        window=window_id,
        leaderboard=[
            LeaderboardRow.from_entry(rank, entry)
            for rank, entry in enumerate(entries, start=1)
        ],
    ).model_dump(mode="json")
