"""Keypair derivation from social-login key material, plus address helpers.

The login provider hands the browser a hex-encoded 32-byte seed. A Solana
keypair is derived from it deterministically; no wallet extension is needed.
"""

from __future__ import annotations

import base64

from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.transaction import Transaction

from walletless_checkout.errors import ValidationError


def is_valid_address(address: str) -> bool:
    """True if ``address`` is a base58-encoded 32-byte public key."""
    try:
        Pubkey.from_string(address)
    except (ValueError, TypeError):
        return False
    return True


def parse_address(address: object, field: str = "account") -> Pubkey:
    """Validate and parse a wallet address from a request body.

    Raises ValidationError (400) describing what was wrong.
    """
    if not isinstance(address, str):
        raise ValidationError(
            f"Invalid {field} parameter type",
            details={"details": f"{field} must be a string representing a Solana wallet address"},
        )
    trimmed = address.strip()
    if not trimmed:
        raise ValidationError(
            f"Empty {field} parameter",
            details={"details": f"{field} cannot be empty or whitespace only"},
        )
    if not is_valid_address(trimmed):
        raise ValidationError(
            "Invalid Solana address format",
            details={
                "details": f"{field} must be a valid base58-encoded Solana public key",
                "providedAddress": trimmed,
            },
        )
    return Pubkey.from_string(trimmed)


def derive_keypair(private_key_hex: str) -> Keypair:
    """Build a keypair from the provider's hex key material.

    Accepts a 32-byte seed or a full 64-byte secret key, with or without a
    ``0x`` prefix.
    """
    cleaned = private_key_hex.strip()
    if cleaned.lower().startswith("0x"):
        cleaned = cleaned[2:]
    try:
        raw = bytes.fromhex(cleaned)
    except ValueError as exc:
        raise ValidationError("Private key must be hex encoded") from exc

    if len(raw) == 32:
        return Keypair.from_seed(raw)
    if len(raw) == 64:
        return Keypair.from_bytes(raw)
    raise ValidationError(f"Private key must be 32 or 64 bytes, got {len(raw)}")


def secret_key_hex(keypair: Keypair) -> str:
    """Full 64-byte secret key (seed + public key) as hex."""
    return bytes(keypair).hex()


def sign_serialized_transaction(transaction_b64: str, keypair: Keypair) -> str:
    """Sign an unsigned base64 transaction and return it re-encoded."""
    try:
        tx = Transaction.from_bytes(base64.b64decode(transaction_b64))
    except ValueError as exc:
        raise ValidationError("Could not decode transaction") from exc
    tx.sign([keypair], tx.message.recent_blockhash)
    return base64.b64encode(bytes(tx)).decode()
