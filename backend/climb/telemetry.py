"""Server-side telemetry for game and claim events."""
import logging
from dataclasses import asdict, dataclass
from typing import Any, Protocol


logger = logging.getLogger(__name__)


class TelemetrySink(Protocol):
    """Protocol for telemetry sinks."""

    def emit(self, event_name: str, data: dict[str, Any]) -> None:
        """Emit a telemetry event."""
        ...


class LoggingTelemetrySink:
    """Default sink that logs telemetry events."""

    def emit(self, event_name: str, data: dict[str, Any]) -> None:
        """Log telemetry event."""
        logger.info("TELEMETRY %s: %s", event_name, data)


@dataclass
class SessionStartedEvent:
    """session_started: emitted once the session and its commitment are stored."""

    session_id: str
    player_id: str
    wager: str
    seed_hash: str
    config_hash: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class MoveProcessedEvent:
    """move_processed: one per fresh (non-replayed) move."""

    session_id: str
    player_id: str
    steps: int
    landed_position: int
    landed_kind: str
    landings: int  # >1 when a skip cascaded
    used_powerups: list[str]
    status: str
    multiplier: str
    lock_acquire_ms: float
    lock_wait_retries: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class SessionSettledEvent:
    """session_settled: exactly one per terminal transition."""

    session_id: str
    player_id: str
    status: str  # "won" | "lost" | "cashed_out"
    payout: str
    multiplier: str
    position: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ClaimEvent:
    """claim_nonce_issued / claim_processed / claim_rejected."""

    session_id: str
    player_id: str
    amount: str | None = None
    reason: str | None = None
    transfer_ref: str | None = None
    transfer_failed: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}


class TelemetryService:
    """Service for emitting server telemetry events."""

    def __init__(self, sink: TelemetrySink | None = None):
        self._sink = sink or LoggingTelemetrySink()
        self._sink_errors = 0  # Counter for sink failures

    def set_sink(self, sink: TelemetrySink) -> None:
        """Set the telemetry sink (useful for testing)."""
        self._sink = sink

    def _safe_emit(self, event_name: str, data: dict[str, Any]) -> None:
        """
        Emit event with exception safety.

        Sink failures MUST NOT break HTTP requests.
        """
        try:
            self._sink.emit(event_name, data)
        except Exception as e:
            self._sink_errors += 1
            logger.warning(
                "Telemetry sink error (count=%d): %s - %s",
                self._sink_errors,
                event_name,
                str(e),
            )

    def emit_session_started(self, event: SessionStartedEvent) -> None:
        self._safe_emit("session_started", event.to_dict())

    def emit_move_processed(self, event: MoveProcessedEvent) -> None:
        self._safe_emit("move_processed", event.to_dict())

    def emit_session_settled(self, event: SessionSettledEvent) -> None:
        self._safe_emit("session_settled", event.to_dict())

    def emit_claim_nonce_issued(self, event: ClaimEvent) -> None:
        self._safe_emit("claim_nonce_issued", event.to_dict())

    def emit_claim_processed(self, event: ClaimEvent) -> None:
        self._safe_emit("claim_processed", event.to_dict())

    def emit_claim_rejected(self, event: ClaimEvent) -> None:
        self._safe_emit("claim_rejected", event.to_dict())


# Global instance
telemetry_service = TelemetryService()
