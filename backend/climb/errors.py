"""Error codes and exceptions for the climb protocol."""
from enum import Enum

from fastapi.responses import JSONResponse
from pydantic import BaseModel

from climb.config import settings


class ErrorCode(str, Enum):
    """Stable error codes a client can branch on."""

    INVALID_REQUEST = "INVALID_REQUEST"
    INVALID_INPUT = "INVALID_INPUT"
    NOT_FOUND = "NOT_FOUND"
    INVALID_STATE = "INVALID_STATE"
    UNAUTHORIZED = "UNAUTHORIZED"
    NONCE_MISMATCH = "NONCE_MISMATCH"
    AMOUNT_MISMATCH = "AMOUNT_MISMATCH"
    SIGNATURE_INVALID = "SIGNATURE_INVALID"
    NO_PAYOUT = "NO_PAYOUT"
    EXTERNAL_TRANSFER_FAILED = "EXTERNAL_TRANSFER_FAILED"
    ROUND_IN_PROGRESS = "ROUND_IN_PROGRESS"
    IDEMPOTENCY_CONFLICT = "IDEMPOTENCY_CONFLICT"
    INTERNAL_ERROR = "INTERNAL_ERROR"


ERROR_HTTP_STATUS: dict[ErrorCode, int] = {
    ErrorCode.INVALID_REQUEST: 400,
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.INVALID_STATE: 409,
    ErrorCode.UNAUTHORIZED: 403,
    ErrorCode.NONCE_MISMATCH: 400,
    ErrorCode.AMOUNT_MISMATCH: 400,
    ErrorCode.SIGNATURE_INVALID: 400,
    ErrorCode.NO_PAYOUT: 400,
    ErrorCode.EXTERNAL_TRANSFER_FAILED: 502,
    ErrorCode.ROUND_IN_PROGRESS: 409,
    ErrorCode.IDEMPOTENCY_CONFLICT: 409,
    ErrorCode.INTERNAL_ERROR: 500,
}

# Recoverable means the same request may succeed if retried later.
ERROR_RECOVERABLE: dict[ErrorCode, bool] = {
    ErrorCode.INVALID_REQUEST: False,
    ErrorCode.INVALID_INPUT: False,
    ErrorCode.NOT_FOUND: False,
    ErrorCode.INVALID_STATE: False,
    ErrorCode.UNAUTHORIZED: False,
    ErrorCode.NONCE_MISMATCH: False,
    ErrorCode.AMOUNT_MISMATCH: False,
    ErrorCode.SIGNATURE_INVALID: False,
    ErrorCode.NO_PAYOUT: False,
    ErrorCode.EXTERNAL_TRANSFER_FAILED: False,
    ErrorCode.ROUND_IN_PROGRESS: True,
    ErrorCode.IDEMPOTENCY_CONFLICT: False,
    ErrorCode.INTERNAL_ERROR: True,
}

ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.INVALID_REQUEST: "Malformed request.",
    ErrorCode.INVALID_INPUT: "Invalid input parameters.",
    ErrorCode.NOT_FOUND: "Resource not found.",
    ErrorCode.INVALID_STATE: "Operation not allowed in the current game state.",
    ErrorCode.UNAUTHORIZED: "Caller is not the owner of this game.",
    ErrorCode.NONCE_MISMATCH: "Invalid or expired nonce.",
    ErrorCode.AMOUNT_MISMATCH: "Claimed amount does not match the payout.",
    ErrorCode.SIGNATURE_INVALID: "Signature verification failed.",
    ErrorCode.NO_PAYOUT: "No payout available for this game.",
    ErrorCode.EXTERNAL_TRANSFER_FAILED: "Claim recorded but the payout transfer failed.",
    ErrorCode.ROUND_IN_PROGRESS: "Another operation is in progress for this game.",
    ErrorCode.IDEMPOTENCY_CONFLICT: "Same clientRequestId used with different payload.",
    ErrorCode.INTERNAL_ERROR: "Internal server error.",
}


class ErrorBody(BaseModel):
    """Error body shape."""

    code: str
    message: str
    recoverable: bool


class ErrorResponse(BaseModel):
    """Full error response."""

    protocolVersion: str = settings.protocol_version
    error: ErrorBody


class GameError(Exception):
    """Base game error that maps to a protocol error response."""

    def __init__(self, code: ErrorCode, message: str | None = None):
        self.code = code
        self.message = message or ERROR_MESSAGES[code]
        self.status_code = ERROR_HTTP_STATUS[code]
        self.recoverable = ERROR_RECOVERABLE[code]
        super().__init__(self.message)

    def to_response(self) -> JSONResponse:
        """Convert to JSONResponse."""
        return JSONResponse(
            status_code=self.status_code,
            content=ErrorResponse(
                error=ErrorBody(
                    code=self.code.value,
                    message=self.message,
                    recoverable=self.recoverable,
                )
            ).model_dump(),
        )
