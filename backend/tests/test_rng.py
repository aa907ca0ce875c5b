"""Hash-chain RNG determinism tests."""
import hashlib

from climb.logic.rng import NORMALIZER, HashChainRNG, ProductionRNG, RNGBase


class ConstantRNG(RNGBase):
    def __init__(self, value: float):
        self.value = value

    def random(self) -> float:
        return self.value


class TestHashChain:
    """The stream is a pure function of the seed."""

    def test_same_seed_same_stream(self):
        """Two generators with one seed produce identical sequences."""
        a = HashChainRNG("abc123")
        b = HashChainRNG("abc123")
        assert [a.next() for _ in range(50)] == [b.next() for _ in range(50)]

    def test_different_seeds_diverge(self):
        """Different seeds produce different sequences."""
        a = HashChainRNG("seed-a")
        b = HashChainRNG("seed-b")
        assert [a.next() for _ in range(10)] != [b.next() for _ in range(10)]

    def test_first_draw_reads_first_digest(self):
        """The first draw is the first 8 hex chars of sha256(seed + "0")."""
        digest = hashlib.sha256(b"abc1230").hexdigest()
        rng = HashChainRNG("abc123")
        assert rng.next() == int(digest[:8], 16) / NORMALIZER

    def test_rehash_after_digest_exhausted(self):
        """After 8 draws the chain re-hashes the previous digest with the rehash count."""
        first = hashlib.sha256(b"abc1230").hexdigest()
        second = hashlib.sha256(f"{first}1".encode()).hexdigest()
        rng = HashChainRNG("abc123")
        draws = [rng.next() for _ in range(9)]
        assert draws[7] == int(first[56:64], 16) / NORMALIZER
        assert draws[8] == int(second[:8], 16) / NORMALIZER
        assert rng.draws == 9

    def test_values_in_unit_interval(self):
        """Every draw lies in [0, 1]."""
        rng = HashChainRNG("range-check")
        for _ in range(1000):
            value = rng.next()
            assert 0.0 <= value <= 1.0

    def test_instances_do_not_share_state(self):
        """Interleaving two generators does not change either stream."""
        solo = HashChainRNG("x")
        expected = [solo.next() for _ in range(20)]

        a = HashChainRNG("x")
        b = HashChainRNG("y")
        interleaved = []
        for _ in range(20):
            interleaved.append(a.next())
            b.next()
        assert interleaved == expected


class TestRandint:
    def test_randint_clamps_roll_of_one(self):
        """A roll of exactly 1.0 maps to the upper bound, not past it."""
        assert ConstantRNG(1.0).randint(2, 4) == 4

    def test_randint_zero_roll_is_lower_bound(self):
        assert ConstantRNG(0.0).randint(2, 4) == 2

    def test_production_rng_in_range(self):
        """ProductionRNG stays within bounds."""
        rng = ProductionRNG()
        for _ in range(200):
            assert 0.0 <= rng.random() < 1.0
            assert 2 <= rng.randint(2, 4) <= 4
