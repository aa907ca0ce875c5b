"""Middleware for caller identity and error handling."""
import logging

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from climb.errors import ErrorCode, GameError

logger = logging.getLogger(__name__)


class PlayerIdMiddleware(BaseHTTPMiddleware):
    """Require the X-Player-Id header (caller wallet) on player-scoped routes."""

    # Path prefixes that require X-Player-Id
    PROTECTED_PREFIXES = ("/api/auth", "/api/game", "/api/claim", "/api/user")
    # Reads are public; a session's seed stays hidden until it is terminal.
    PUBLIC_METHODS = {"GET"}

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if path.startswith(self.PROTECTED_PREFIXES) and request.method not in self.PUBLIC_METHODS:
            player_id = request.headers.get("X-Player-Id", "").strip()
            if not player_id:
                error = GameError(
                    ErrorCode.INVALID_REQUEST,
                    "Missing required header: X-Player-Id",
                )
                return error.to_response()
            # Store player_id in request state for handlers
            request.state.player_id = player_id

        return await call_next(request)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Convert GameError exceptions to protocol-compliant responses."""

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except GameError as e:
            return e.to_response()
        except Exception as e:
            logger.exception("Unhandled error on %s %s", request.method, request.url.path)
            error = GameError(ErrorCode.INTERNAL_ERROR, str(e))
            return error.to_response()
