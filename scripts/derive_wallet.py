#!/usr/bin/env python3
"""Derive the Solana wallet for a social-login private key.

The login provider exposes the user's key material as a hex string. This
prints the address the checkout will use for that user, plus the full
64-byte secret key expected by Solana signing providers.

Usage:
  python scripts/derive_wallet.py <hex-private-key>
"""

from __future__ import annotations

import sys

from walletless_checkout.errors import ValidationError
from walletless_checkout.wallet import derive_keypair, secret_key_hex


def main() -> None:
    if len(sys.argv) != 2:
        print("Usage: derive_wallet.py <hex-private-key>", file=sys.stderr)
        sys.exit(2)

    try:
        keypair = derive_keypair(sys.argv[1])
    except ValidationError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    print("=== Derived Solana Wallet ===")
    print()
    print("address (public key - share freely):")
    print(f"  {keypair.pubkey()}")
    print()
    print("secret key (PRIVATE - never commit to git):")
    print(f"  {secret_key_hex(keypair)}")


if __name__ == "__main__":
    main()
