"""Input validators shared by the HTTP layer and the game engine."""
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable

from climb.config import settings
from climb.errors import ErrorCode, GameError
from climb.logic.models import PowerUp


def normalize_identity(identity: str | None) -> str:
    """
    Canonical form of a caller identity (wallet address).

    Raises INVALID_REQUEST if the identity is missing or blank.
    """
    if not identity or not identity.strip():
        raise GameError(ErrorCode.INVALID_REQUEST, "Missing caller identity.")
    return identity.strip().lower()


def validate_wager(wager: Any) -> Decimal:
    """
    Validate a wager amount.

    Raises INVALID_INPUT unless it is a finite decimal within
    [min_wager, max_wager].
    """
    if isinstance(wager, bool):
        raise GameError(ErrorCode.INVALID_INPUT, "Wager must be a decimal amount.")
    try:
        amount = Decimal(str(wager))
    except (InvalidOperation, ValueError):
        raise GameError(ErrorCode.INVALID_INPUT, "Wager must be a decimal amount.")
    if not amount.is_finite() or amount <= 0:
        raise GameError(ErrorCode.INVALID_INPUT, "Wager must be positive.")
    if amount < settings.min_wager or amount > settings.max_wager:
        raise GameError(
            ErrorCode.INVALID_INPUT,
            f"Wager {amount} outside allowed range "
            f"[{settings.min_wager}, {settings.max_wager}].",
        )
    return amount


def validate_steps(steps: Any) -> int:
    """Steps must be an integer in [1, max_steps_per_move]."""
    if isinstance(steps, bool) or not isinstance(steps, int):
        raise GameError(ErrorCode.INVALID_INPUT, "Steps must be a positive integer.")
    if steps <= 0:
        raise GameError(ErrorCode.INVALID_INPUT, "Steps must be a positive integer.")
    if steps > settings.max_steps_per_move:
        raise GameError(
            ErrorCode.INVALID_INPUT,
            f"Steps may not exceed {settings.max_steps_per_move}.",
        )
    return steps


def validate_presented_powerups(
    presented: Iterable[PowerUp], inventory: list[PowerUp]
) -> set[PowerUp]:
    """Every presented power-up must be held in the inventory."""
    wanted = set(presented)
    missing = sorted(p.value for p in wanted if p not in inventory)
    if missing:
        raise GameError(
            ErrorCode.INVALID_INPUT,
            f"Power-ups not in inventory: {', '.join(missing)}",
        )
    return wanted
