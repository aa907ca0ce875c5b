"""Claim protocol: nonce issuance, signature verification, exactly-once payout."""
import logging
import secrets
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Callable

from climb.config import settings
from climb.errors import ErrorCode, GameError
from climb.logic.models import (
    CLAIMABLE_STATUSES,
    ClaimGrant,
    ClaimStatus,
    GameSession,
    utcnow,
)
from climb.payout import LoggingPayoutExecutor, PayoutExecutor
from climb.redis_service import RedisService
from climb.signatures import build_claim_message, format_amount, verify_signature
from climb.telemetry import ClaimEvent, TelemetryService
from climb.validators import normalize_identity

logger = logging.getLogger(__name__)

NONCE_BYTES = 24


def _as_decimal(value) -> Decimal | None:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


class ClaimService:
    """
    Turns a settled session's payout into an authorized transfer, once.

    Nonce issuance and claim verification share the session lock used by
    moves, so a new nonce always invalidates whatever a concurrent claim
    was verifying against.
    """

    def __init__(
        self,
        repo: RedisService,
        telemetry: TelemetryService,
        payout_executor: PayoutExecutor | None = None,
        now: Callable[[], datetime] = utcnow,
        nonce_ttl_seconds: int | None = None,
    ):
        self.repo = repo
        self.telemetry = telemetry
        self.payout_executor = payout_executor or LoggingPayoutExecutor()
        self.now = now
        self.nonce_ttl = timedelta(
            seconds=nonce_ttl_seconds
            if nonce_ttl_seconds is not None
            else settings.claim_nonce_ttl_seconds
        )

    async def issue_nonce(self, session_id: str, caller: str) -> ClaimGrant:
        """
        Issue a fresh single-use claim nonce, replacing any earlier one.

        The amount is always the stored server-side payout.
        """
        wallet = normalize_identity(caller)
        try:
            async with self.repo.session_lock(session_id):
                session = await self._load(session_id)
                self._check_claimable(session, wallet)

                issued_at = self.now()
                nonce = secrets.token_urlsafe(NONCE_BYTES)
                session.claim_nonce = nonce
                session.claim_nonce_expires_at = issued_at + self.nonce_ttl
                await self.repo.save_session(session)
        except GameError as e:
            self._reject(session_id, wallet, e)
            raise

        grant = ClaimGrant(
            session_id=session.id,
            nonce=nonce,
            amount=session.payout,
            message=build_claim_message(session.payout, session.id, session.owner_id, nonce),
            issued_at=issued_at,
            expires_at=session.claim_nonce_expires_at,
        )
        self.telemetry.emit_claim_nonce_issued(
            ClaimEvent(session_id=session.id, player_id=wallet, amount=format_amount(grant.amount))
        )
        return grant

    async def verify_and_claim(
        self,
        session_id: str,
        caller: str,
        claimed_amount: Decimal,
        nonce: str,
        signature: str,
    ) -> tuple[GameSession, str | None]:
        """
        Verify a signed claim and mark the session claimed.

        The session is durably marked claimed (and the nonce cleared) before
        the payout executor runs. A transfer failure after that point raises
        EXTERNAL_TRANSFER_FAILED but never reopens the claim.

        Returns:
            (claimed session, transfer reference or None)
        """
        wallet = normalize_identity(caller)
        transfer_error: GameError | None = None
        try:
            async with self.repo.session_lock(session_id):
                session = await self._load(session_id)
                self._check_claimable(session, wallet)

                if not nonce or session.claim_nonce != nonce:
                    raise GameError(ErrorCode.NONCE_MISMATCH)
                expires_at = session.claim_nonce_expires_at
                if expires_at is None or self.now() >= expires_at:
                    raise GameError(ErrorCode.NONCE_MISMATCH, "Claim nonce has expired.")
                if _as_decimal(claimed_amount) != session.payout:
                    raise GameError(ErrorCode.AMOUNT_MISMATCH)

                message = build_claim_message(session.payout, session.id, session.owner_id, nonce)
                verify_signature(message, signature, session.owner_id)

                session.claim_status = ClaimStatus.CLAIMED
                session.claim_nonce = None
                session.claim_nonce_expires_at = None
                session.claimed_at = self.now()
                await self.repo.save_session(session)

                try:
                    transfer_ref = await self._execute_transfer(session)
                except GameError as e:
                    # The claim stands; only the transfer is left to reconcile
                    transfer_ref, transfer_error = None, e
        except GameError as e:
            self._reject(session_id, wallet, e)
            raise

        self.telemetry.emit_claim_processed(
            ClaimEvent(
                session_id=session.id,
                player_id=wallet,
                amount=format_amount(session.payout),
                transfer_ref=transfer_ref,
                transfer_failed=True if transfer_error is not None else None,
            )
        )
        if transfer_error is not None:
            raise transfer_error
        return session, transfer_ref

    async def _execute_transfer(self, session: GameSession) -> str | None:
        try:
            transfer_ref = await self.payout_executor.transfer(
                session.id, session.owner_id, session.payout
            )
        except Exception as exc:
            logger.exception(
                "Payout transfer failed for claimed session %s; needs reconciliation",
                session.id,
            )
            raise GameError(ErrorCode.EXTERNAL_TRANSFER_FAILED) from exc

        if transfer_ref:
            session.claim_tx_ref = transfer_ref
            await self.repo.save_session(session)
        return transfer_ref

    async def _load(self, session_id: str) -> GameSession:
        session = await self.repo.get_session(session_id)
        if session is None:
            raise GameError(ErrorCode.NOT_FOUND, "Game not found.")
        return session

    def _check_claimable(self, session: GameSession, wallet: str) -> None:
        if session.owner_id != wallet:
            raise GameError(ErrorCode.UNAUTHORIZED)
        if session.status not in CLAIMABLE_STATUSES:
            raise GameError(
                ErrorCode.INVALID_STATE,
                "Game must be won or cashed out to claim.",
            )
        if session.claim_status == ClaimStatus.CLAIMED:
            raise GameError(ErrorCode.INVALID_STATE, "Game already claimed.")
        if session.payout is None or session.payout <= 0:
            raise GameError(ErrorCode.NO_PAYOUT)

    def _reject(self, session_id: str, wallet: str, error: GameError) -> None:
        self.telemetry.emit_claim_rejected(
            ClaimEvent(session_id=session_id, player_id=wallet, reason=error.code.value)
        )
