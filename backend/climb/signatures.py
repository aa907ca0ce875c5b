"""Canonical claim message and wallet signature recovery."""
from decimal import Decimal

from eth_account import Account
from eth_account.messages import encode_defunct

from climb.config import settings
from climb.errors import ErrorCode, GameError


def format_amount(amount: Decimal) -> str:
    """Plain decimal string: no exponent, no trailing zeros ("250", "12.5")."""
    normalized = amount.normalize()
    text = format(normalized, "f")
    return text if text != "-0" else "0"


def build_claim_message(amount: Decimal, session_id: str, wallet: str, nonce: str) -> str:
    """
    Build the exact text a player signs to claim a payout.

    Client and server must produce this byte for byte; the field order is
    fixed.
    """
    return (
        f"{settings.game_label} Claim\n"
        f"Amount: {format_amount(amount)} {settings.token_symbol}\n"
        f"Game ID: {session_id}\n"
        f"Wallet: {wallet}\n"
        f"Nonce: {nonce}"
    )


def recover_signer(message: str, signature: str) -> str:
    """
    Recover the address that produced an EIP-191 personal_sign signature.

    Returns the lower-cased address. Raises SIGNATURE_INVALID if the
    signature cannot be decoded.
    """
    try:
        address = Account.recover_message(encode_defunct(text=message), signature=signature)
    except Exception as exc:
        raise GameError(ErrorCode.SIGNATURE_INVALID, "Invalid signature format.") from exc
    return address.lower()


def verify_signature(message: str, signature: str, expected_identity: str) -> None:
    """Raise SIGNATURE_INVALID unless `signature` over `message` came from the expected wallet."""
    if recover_signer(message, signature) != expected_identity.lower():
        raise GameError(ErrorCode.SIGNATURE_INVALID)
