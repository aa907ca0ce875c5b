"""Payout executor boundary."""
import logging
from decimal import Decimal
from typing import Protocol


logger = logging.getLogger(__name__)


class PayoutExecutor(Protocol):
    """Performs the external value transfer for a verified claim."""

    async def transfer(self, session_id: str, recipient: str, amount: Decimal) -> str | None:
        """
        Send `amount` to `recipient`.

        Returns a transfer reference (e.g. a transaction hash) or None when
        the transfer is queued for manual processing. Raises on failure.
        """
        ...


class LoggingPayoutExecutor:
    """Default executor: records the claim for the house to pay out manually."""

    async def transfer(self, session_id: str, recipient: str, amount: Decimal) -> str | None:
        logger.info(
            "Payout queued for manual processing: session=%s recipient=%s amount=%s",
            session_id,
            recipient,
            amount,
        )
        return None
