"""Seed generation and hash commitment."""
import hashlib
import hmac
import secrets

SEED_BYTES = 24


def generate_seed() -> str:
    """Return a fresh high-entropy seed (32 url-safe characters)."""
    return secrets.token_urlsafe(SEED_BYTES)


def hash_seed(seed: str) -> str:
    """Return the sha256 hex commitment published at session start."""
    return hashlib.sha256(seed.encode("utf-8")).hexdigest()


def verify_commitment(seed: str, seed_hash: str) -> bool:
    """Check a revealed seed against its published commitment."""
    return hmac.compare_digest(hash_seed(seed), seed_hash.lower())
