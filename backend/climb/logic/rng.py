"""Random number sources for board generation and secrets."""
import hashlib
import secrets
from abc import ABC, abstractmethod

# One output unit: 4 bytes rendered as 8 hex characters.
HEX_CHARS_PER_DRAW = 8
NORMALIZER = 0xFFFFFFFF


class RNGBase(ABC):
    """Abstract RNG interface."""

    @abstractmethod
    def random(self) -> float:
        """Return random float in [0, 1)."""
        pass

    def randint(self, a: int, b: int) -> int:
        """Return random int in [a, b] inclusive."""
        return a + min(int(self.random() * (b - a + 1)), b - a)


class ProductionRNG(RNGBase):
    """
    Cryptographically secure RNG.

    Not reproducible; never use it for anything that has to be replayed
    from a seed.
    """

    def random(self) -> float:
        return secrets.randbelow(2**32) / (2**32)

    def randint(self, a: int, b: int) -> int:
        return secrets.randbelow(b - a + 1) + a


class HashChainRNG(RNGBase):
    """
    Deterministic RNG driven by a sha256 hash chain over the game seed.

    The state starts as the seed string. Whenever fewer than 8 unused hex
    characters remain in the current digest, the next digest is computed as
    sha256(state + rehash_count), becomes the new state and the cursor
    resets. Each draw reads 8 hex characters as an unsigned 32-bit integer
    and divides by 0xFFFFFFFF (an all-ones chunk yields exactly 1.0, which
    every consumer clamps to its last bucket).

    Every instance owns its own state, so generating boards for different
    sessions concurrently cannot interfere. Board layout depends on the
    exact order of draws.
    """

    def __init__(self, seed: str):
        self.seed = seed
        self._state = seed
        self._buffer = ""
        self._cursor = 0
        self._rehash_count = 0
        self.draws = 0

    def _refill(self) -> None:
        material = f"{self._state}{self._rehash_count}"
        self._buffer = hashlib.sha256(material.encode("utf-8")).hexdigest()
        self._state = self._buffer
        self._cursor = 0
        self._rehash_count += 1

    def next(self) -> float:
        """Return the next float of the stream."""
        if len(self._buffer) - self._cursor < HEX_CHARS_PER_DRAW:
            self._refill()
        chunk = self._buffer[self._cursor:self._cursor + HEX_CHARS_PER_DRAW]
        self._cursor += HEX_CHARS_PER_DRAW
        self.draws += 1
        return int(chunk, 16) / NORMALIZER

    def random(self) -> float:
        return self.next()
