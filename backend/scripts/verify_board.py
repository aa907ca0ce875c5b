#!/usr/bin/env python3
"""
Verify a revealed game seed and print the board it produces.

Players receive the seed hash when a game starts and the seed once it
ends. This script checks the commitment and regenerates the board so the
hazard layout can be compared with what was played.

Usage:
    python -m scripts.verify_board --seed <seed> --seed-hash <sha256 hex>
    python -m scripts.verify_board --seed <seed> --json
"""
import argparse
import json
import sys
from pathlib import Path
from typing import Any

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from climb.config_hash import get_board_config_hash
from climb.logic.board import BoardConfig, generate_board, hazard_positions
from climb.logic.fairness import hash_seed, verify_commitment
from climb.logic.models import BoardCell, CellKind


def describe_board(seed: str, config: BoardConfig | None = None) -> dict[str, Any]:
    """Summarize the regenerated board for a seed."""
    config = config or BoardConfig.from_settings()
    board = generate_board(seed, config)
    return {
        "seed": seed,
        "seed_hash": hash_seed(seed),
        "config_hash": get_board_config_hash(config),
        "hazards": hazard_positions(board),
        "reset_traps": [c.position for c in board if c.kind == CellKind.RESET_TRAP],
        "multipliers": {
            str(c.position): str(c.multiplier)
            for c in board
            if c.kind == CellKind.MULTIPLIER
        },
        "powerups": {
            str(c.position): c.powerup.value
            for c in board
            if c.kind == CellKind.POWERUP and c.powerup is not None
        },
        "bonus_chests": {
            str(c.position): str(c.bonus)
            for c in board
            if c.kind == CellKind.BONUS_CHEST
        },
    }


def render_cell(cell: BoardCell) -> str:
    if cell.kind == CellKind.MULTIPLIER:
        return f"{cell.position:>3}  multiplier x{cell.multiplier}"
    if cell.kind == CellKind.POWERUP and cell.powerup is not None:
        return f"{cell.position:>3}  powerup {cell.powerup.value}"
    if cell.kind == CellKind.BONUS_CHEST:
        return f"{cell.position:>3}  bonus_chest {cell.bonus} units"
    if cell.kind == CellKind.FINISH:
        return f"{cell.position:>3}  finish x{cell.multiplier}"
    return f"{cell.position:>3}  {cell.kind.value}"


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Verify a revealed seed and print its board")
    parser.add_argument("--seed", type=str, required=True, help="Revealed game seed")
    parser.add_argument(
        "--seed-hash",
        type=str,
        default=None,
        help="Seed hash published at game start (checked if given)",
    )
    parser.add_argument("--json", action="store_true", help="Print a JSON summary instead")
    args = parser.parse_args()

    if args.seed_hash is not None and not verify_commitment(args.seed, args.seed_hash):
        print(
            f"MISMATCH: sha256(seed)={hash_seed(args.seed)} != {args.seed_hash.lower()}",
            file=sys.stderr,
        )
        return 1

    if args.json:
        print(json.dumps(describe_board(args.seed), indent=2))
        return 0

    config = BoardConfig.from_settings()
    board = generate_board(args.seed, config)
    if args.seed_hash is not None:
        print("Commitment OK")
    print(f"Seed hash:   {hash_seed(args.seed)}")
    print(f"Config hash: {get_board_config_hash(config)}")
    print(f"Hazards:     {hazard_positions(board)}")
    print()
    for cell in board:
        if cell.kind not in (CellKind.SAFE, CellKind.HAZARD):
            print(render_cell(cell))
    return 0


if __name__ == "__main__":
    sys.exit(main())
