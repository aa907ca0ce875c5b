#!/usr/bin/env python3
"""
Board generation audit.

Generates many boards from derived seeds and reports how hazard placement
and cell kinds actually came out: hazard counts, how often the relaxed
pass was needed, spacing violations, and kind/multiplier distribution per
region.

Usage:
    python -m scripts.board_audit --boards 2000 --seed-prefix AUDIT
    python -m scripts.board_audit --boards 500 --out ../out/board_audit.json
"""
import argparse
import json
import sys
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from climb.config_hash import get_board_config_hash
from climb.logic.board import (
    REGION_BOUNDS,
    BoardConfig,
    generate_board,
    place_hazards,
    region_index,
    visual_distance,
)
from climb.logic.models import CellKind
from climb.logic.rng import HashChainRNG

DEFAULT_BOARDS = 1000
DEFAULT_SEED_PREFIX = "AUDIT"


def derive_seed(prefix: str, index: int) -> str:
    return f"{prefix}_{index}"


def spacing_violations(positions: list[int], config: BoardConfig) -> dict[str, int]:
    """Count adjacent hazard pairs closer than the strict gaps."""
    ordered = sorted(positions)
    path = 0
    visual = 0
    for i, a in enumerate(ordered):
        for b in ordered[i + 1:]:
            if b - a < config.min_path_gap:
                path += 1
            if visual_distance(a, b, config.columns) < config.min_visual_gap:
                visual += 1
    return {"path": path, "visual": visual}


def region_label(idx: int) -> str:
    lower = 1 if idx == 0 else REGION_BOUNDS[idx - 1] + 1
    upper = REGION_BOUNDS[idx] if idx < len(REGION_BOUNDS) else None
    return f"{lower}-{upper}" if upper is not None else f"{lower}+"


def run_audit(boards: int, seed_prefix: str, config: BoardConfig | None = None) -> dict[str, Any]:
    """Generate `boards` boards and aggregate their statistics."""
    config = config or BoardConfig.from_settings()
    hazard_counts: Counter[int] = Counter()
    relaxed = 0
    path_violations = 0
    visual_violations = 0
    kinds: dict[str, Counter[str]] = {}
    multipliers: dict[str, Counter[str]] = {}

    for index in range(boards):
        seed = derive_seed(seed_prefix, index)
        placement = place_hazards(HashChainRNG(seed), config)
        if placement.relaxed:
            relaxed += 1
        hazard_counts[len(placement.positions)] += 1
        violations = spacing_violations(list(placement.positions), config)
        path_violations += violations["path"]
        visual_violations += violations["visual"]

        for cell in generate_board(seed, config)[1:-1]:
            label = region_label(region_index(cell.position))
            kinds.setdefault(label, Counter())[cell.kind.value] += 1
            if cell.kind == CellKind.MULTIPLIER:
                multipliers.setdefault(label, Counter())[str(cell.multiplier)] += 1

    return {
        "generated_at": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        "config_hash": get_board_config_hash(config),
        "boards": boards,
        "seed_prefix": seed_prefix,
        "hazard_count_distribution": {str(k): v for k, v in sorted(hazard_counts.items())},
        "relaxed_pass_rate": round(relaxed / boards, 6) if boards else 0.0,
        "spacing_violations": {"path": path_violations, "visual": visual_violations},
        "kinds_by_region": {label: dict(counter) for label, counter in sorted(kinds.items())},
        "multipliers_by_region": {
            label: dict(counter) for label, counter in sorted(multipliers.items())
        },
    }


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Audit board generation statistics")
    parser.add_argument(
        "--boards",
        type=int,
        default=DEFAULT_BOARDS,
        help=f"Number of boards to generate (default: {DEFAULT_BOARDS})",
    )
    parser.add_argument(
        "--seed-prefix",
        type=str,
        default=DEFAULT_SEED_PREFIX,
        help=f"Prefix for derived seeds (default: {DEFAULT_SEED_PREFIX})",
    )
    parser.add_argument(
        "--out",
        type=str,
        default=None,
        help="Write the JSON report to this path instead of stdout",
    )
    args = parser.parse_args()

    if args.boards <= 0:
        print("ERROR: --boards must be positive", file=sys.stderr)
        return 1

    report = run_audit(args.boards, args.seed_prefix)
    text = json.dumps(report, indent=2)
    if args.out:
        out_path = Path(args.out)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(text + "\n")
        print(f"Report written to {out_path}")
    else:
        print(text)
    return 0


if __name__ == "__main__":
    sys.exit(main())
