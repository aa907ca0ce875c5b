"""Board configuration hash.

Shared by session start (stored on the session), telemetry and the
operator scripts. A seed only reproduces a board under the same
parameters, so auditors compare this hash before replaying a seed.

The hash MUST be computed identically in all locations.
"""
import hashlib
import json
from dataclasses import asdict

from climb.logic.board import BoardConfig


def get_board_config_hash(config: BoardConfig | None = None) -> str:
    """
    Return a 16-char hex hash of the board parameters.

    Decimal values are serialized as strings so the hash does not depend
    on float formatting.
    """
    config = config or BoardConfig.from_settings()
    snapshot = {key: str(value) for key, value in asdict(config).items()}
    canonical = json.dumps(snapshot, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode()).hexdigest()[:16]
