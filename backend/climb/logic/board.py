"""
Deterministic board generation.

A board is a pure function of the seed: the same seed always yields the
same 101 cells, so the server regenerates it on demand instead of storing
it. Draw order on the hash-chain RNG is part of the contract:

1. Fisher-Yates shuffle of the hazard candidates (one draw per swap).
2. For every non-hazard cell 1..99 in position order: one kind roll, then
   at most one sub-roll (multiplier tier, power-up type or bonus size).
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Sequence, TypeVar

from climb.config import settings
from climb.logic.models import BoardCell, CellKind, PowerUp
from climb.logic.rng import HashChainRNG, RNGBase

T = TypeVar("T")

# === Region tables ===
# Regions are coarse position bands; later bands are riskier and richer.
REGION_BOUNDS = (25, 50, 75)

# Kind weights per region; SAFE takes the remaining probability mass.
REGION_KIND_WEIGHTS: tuple[tuple[tuple[CellKind, float], ...], ...] = (
    (
        (CellKind.RESET_TRAP, 0.03),
        (CellKind.MULTIPLIER, 0.20),
        (CellKind.POWERUP, 0.08),
        (CellKind.BONUS_CHEST, 0.02),
    ),
    (
        (CellKind.RESET_TRAP, 0.04),
        (CellKind.MULTIPLIER, 0.18),
        (CellKind.POWERUP, 0.06),
        (CellKind.BONUS_CHEST, 0.02),
    ),
    (
        (CellKind.RESET_TRAP, 0.05),
        (CellKind.MULTIPLIER, 0.15),
        (CellKind.POWERUP, 0.04),
        (CellKind.BONUS_CHEST, 0.03),
    ),
    (
        (CellKind.RESET_TRAP, 0.06),
        (CellKind.MULTIPLIER, 0.12),
        (CellKind.POWERUP, 0.03),
        (CellKind.BONUS_CHEST, 0.04),
    ),
)

REGION_MULTIPLIER_WEIGHTS: tuple[tuple[tuple[Decimal, float], ...], ...] = (
    (
        (Decimal("1"), 0.35),
        (Decimal("1.5"), 0.30),
        (Decimal("2"), 0.25),
        (Decimal("2.5"), 0.10),
    ),
    (
        (Decimal("1.5"), 0.25),
        (Decimal("2"), 0.25),
        (Decimal("2.5"), 0.25),
        (Decimal("3"), 0.25),
    ),
    (
        (Decimal("2"), 0.20),
        (Decimal("2.5"), 0.20),
        (Decimal("3"), 0.20),
        (Decimal("5"), 0.20),
        (Decimal("8"), 0.20),
    ),
    (
        (Decimal("3"), 0.15),
        (Decimal("5"), 0.20),
        (Decimal("8"), 0.20),
        (Decimal("10"), 0.20),
        (Decimal("11"), 0.25),
    ),
)

POWERUP_WEIGHTS: tuple[tuple[PowerUp, float], ...] = (
    (PowerUp.SHIELD, 0.40),
    (PowerUp.DOUBLE, 0.30),
    (PowerUp.SKIP, 0.30),
)

BONUS_MIN_UNITS = 2
BONUS_MAX_UNITS = 4


@dataclass(frozen=True)
class BoardConfig:
    """Parameters that shape a board. Part of the fairness commitment."""

    total_steps: int = 100
    columns: int = 10
    finish_multiplier: Decimal = Decimal("20")
    hazard_count: int = 18
    hazard_min_position: int = 5
    hazard_max_position: int = 95
    min_path_gap: int = 3
    min_visual_gap: int = 2
    relaxed_path_gap: int = 2

    @classmethod
    def from_settings(cls) -> "BoardConfig":
        return cls(
            total_steps=settings.total_steps,
            columns=settings.board_columns,
            finish_multiplier=settings.finish_multiplier,
            hazard_count=settings.hazard_count,
            hazard_min_position=settings.hazard_min_position,
            hazard_max_position=settings.hazard_max_position,
            min_path_gap=settings.hazard_min_path_gap,
            min_visual_gap=settings.hazard_min_visual_gap,
            relaxed_path_gap=settings.hazard_relaxed_path_gap,
        )


@dataclass(frozen=True)
class HazardPlacement:
    """Accepted hazard positions and whether the relaxed pass was needed."""

    positions: tuple[int, ...]
    relaxed: bool


def weighted_pick(
    options: Sequence[tuple[T, float]],
    roll: float,
    exclude: T | None = None,
) -> T:
    """
    Pick an option by cumulative weight.

    Returns the first option whose cumulative weight meets or exceeds
    roll * total weight. Options equal to `exclude` are filtered out first;
    if that leaves nothing the unfiltered table is used.
    """
    if not options:
        raise ValueError("weighted_pick needs at least one option")
    candidates = [opt for opt in options if exclude is None or opt[0] != exclude]
    if not candidates:
        candidates = list(options)

    total = sum(weight for _, weight in candidates)
    threshold = roll * total
    cumulative = 0.0
    for value, weight in candidates:
        cumulative += weight
        if cumulative >= threshold:
            return value
    # Float rounding can leave the last bucket a hair short of a 1.0 roll.
    return candidates[-1][0]


def region_index(position: int) -> int:
    """Map a position to its region band (0-3)."""
    for idx, bound in enumerate(REGION_BOUNDS):
        if position <= bound:
            return idx
    return len(REGION_BOUNDS)


def grid_coordinates(position: int, columns: int) -> tuple[int, int]:
    """
    Serpentine grid layout: (row, column).

    Even rows run left to right, odd rows right to left.
    """
    row, col = divmod(position, columns)
    if row % 2 == 1:
        col = columns - 1 - col
    return row, col


def visual_distance(a: int, b: int, columns: int) -> int:
    """Manhattan distance between two positions on the serpentine grid."""
    row_a, col_a = grid_coordinates(a, columns)
    row_b, col_b = grid_coordinates(b, columns)
    return abs(row_a - row_b) + abs(col_a - col_b)


def _fits(
    candidate: int,
    accepted: list[int],
    path_gap: int,
    visual_gap: int | None,
    columns: int,
) -> bool:
    for other in accepted:
        if abs(candidate - other) < path_gap:
            return False
        if visual_gap is not None and visual_distance(candidate, other, columns) < visual_gap:
            return False
    return True


def place_hazards(rng: RNGBase, config: BoardConfig) -> HazardPlacement:
    """
    Choose hazard positions with a seeded shuffle and greedy spacing.

    The strict pass enforces both the path gap and the serpentine visual
    gap. If it falls short of the target count a second pass over the same
    shuffled order tops up using only the relaxed path gap.
    """
    candidates = list(range(config.hazard_min_position, config.hazard_max_position + 1))
    for i in range(len(candidates) - 1, 0, -1):
        j = min(int(rng.random() * (i + 1)), i)
        candidates[i], candidates[j] = candidates[j], candidates[i]

    target = min(config.hazard_count, len(candidates))
    accepted: list[int] = []
    for candidate in candidates:
        if len(accepted) >= target:
            break
        if _fits(candidate, accepted, config.min_path_gap, config.min_visual_gap, config.columns):
            accepted.append(candidate)

    relaxed = False
    if len(accepted) < target:
        relaxed = True
        for candidate in candidates:
            if len(accepted) >= target:
                break
            if candidate in accepted:
                continue
            if _fits(candidate, accepted, config.relaxed_path_gap, None, config.columns):
                accepted.append(candidate)

    return HazardPlacement(positions=tuple(sorted(accepted)), relaxed=relaxed)


def _kind_options(position: int) -> list[tuple[CellKind, float]]:
    weights = list(REGION_KIND_WEIGHTS[region_index(position)])
    plain = max(0.0, 1.0 - sum(weight for _, weight in weights))
    weights.append((CellKind.SAFE, plain))
    return weights


def generate_board(seed: str, config: BoardConfig | None = None) -> list[BoardCell]:
    """Materialize the full board for a seed, in position order."""
    config = config or BoardConfig.from_settings()
    rng = HashChainRNG(seed)
    hazards = set(place_hazards(rng, config).positions)

    board: list[BoardCell] = [BoardCell(position=0, kind=CellKind.SAFE)]
    last_multiplier: Decimal | None = None

    for position in range(1, config.total_steps):
        if position in hazards:
            board.append(BoardCell(position=position, kind=CellKind.HAZARD))
            continue

        kind = weighted_pick(_kind_options(position), rng.random())

        if kind == CellKind.MULTIPLIER:
            table = REGION_MULTIPLIER_WEIGHTS[region_index(position)]
            value = weighted_pick(table, rng.random(), exclude=last_multiplier)
            last_multiplier = value
            board.append(BoardCell(position=position, kind=kind, multiplier=value))
        elif kind == CellKind.POWERUP:
            powerup = weighted_pick(POWERUP_WEIGHTS, rng.random())
            board.append(BoardCell(position=position, kind=kind, powerup=powerup))
        elif kind == CellKind.BONUS_CHEST:
            units = rng.randint(BONUS_MIN_UNITS, BONUS_MAX_UNITS)
            board.append(BoardCell(position=position, kind=kind, bonus=Decimal(units)))
        else:
            board.append(BoardCell(position=position, kind=kind))

    board.append(
        BoardCell(
            position=config.total_steps,
            kind=CellKind.FINISH,
            multiplier=config.finish_multiplier,
        )
    )
    return board


def hazard_positions(board: Sequence[BoardCell]) -> list[int]:
    return [cell.position for cell in board if cell.kind == CellKind.HAZARD]
