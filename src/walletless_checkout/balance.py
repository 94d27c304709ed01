"""Stablecoin balance and mint discovery for a buyer address.

The resolver runs an ordered list of strategies and stops at the first one
that finds a nonzero token balance:

1. ``known_mints`` - the owner's associated token account for each known mint.
2. ``owner_scan`` - every token account the owner holds under the token program.
3. ``program_filter`` - a server-side filtered ``getProgramAccounts`` query.

Individual account lookups are best-effort. A failed lookup is logged and
folded into ``None`` so the scan moves on to the next account.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Sequence

from solana.rpc.async_api import AsyncClient
from solana.rpc.types import MemcmpOpts, TokenAccountOpts
from solders.pubkey import Pubkey
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import get_associated_token_address

from walletless_checkout.constants import (
    TOKEN_ACCOUNT_MINT_OFFSET,
    TOKEN_ACCOUNT_OWNER_OFFSET,
    TOKEN_ACCOUNT_SIZE,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenBalance:
    """A nonzero token holding found for an owner."""

    quantity: float
    mint: str
    token_account: str
    strategy: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "balance": self.quantity,
            "mint": self.mint,
            "tokenAccount": self.token_account,
            "strategy": self.strategy,
        }


Strategy = Callable[[Pubkey, AsyncClient], Awaitable[TokenBalance | None]]


# ---------------------------------------------------------------------------
# Per-account lookups (never raise)
# ---------------------------------------------------------------------------


async def _read_ui_amount(connection: AsyncClient, token_account: Pubkey) -> float | None:
    """Return the account's human-readable balance, or None on failure."""
    try:
        resp = await connection.get_token_account_balance(token_account)
    except Exception as exc:
        logger.warning("Error getting balance for %s: %s", token_account, exc)
        return None
    return resp.value.ui_amount


async def _account_exists(connection: AsyncClient, address: Pubkey) -> bool | None:
    """True/False for existence, None if the lookup itself failed."""
    try:
        resp = await connection.get_account_info(address)
    except Exception as exc:
        logger.warning("Error fetching account info for %s: %s", address, exc)
        return None
    return resp.value is not None and bool(resp.value.data)


def mint_from_account_data(data: bytes) -> str | None:
    """Decode the mint address stored in the first 32 bytes of a token account."""
    end = TOKEN_ACCOUNT_MINT_OFFSET + 32
    if len(data) < end:
        return None
    return str(Pubkey.from_bytes(bytes(data[TOKEN_ACCOUNT_MINT_OFFSET:end])))


async def _first_nonzero(
    connection: AsyncClient,
    keyed_accounts: Sequence[Any],
    strategy: str,
) -> TokenBalance | None:
    """Walk keyed accounts in enumeration order; first nonzero balance wins."""
    for keyed in keyed_accounts:
        ui_amount = await _read_ui_amount(connection, keyed.pubkey)
        if not ui_amount or ui_amount <= 0:
            continue
        mint = mint_from_account_data(keyed.account.data)
        if mint is None:
            logger.warning("Could not decode mint for token account %s.", keyed.pubkey)
            continue
        return TokenBalance(
            quantity=ui_amount,
            mint=mint,
            token_account=str(keyed.pubkey),
            strategy=strategy,
        )
    return None


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


def known_mints_strategy(mints: Sequence[str]) -> Strategy:
    """Check the owner's associated token account for each mint, in order."""

    async def known_mints(owner: Pubkey, connection: AsyncClient) -> TokenBalance | None:
        for mint_address in mints:
            try:
                mint = Pubkey.from_string(mint_address)
            except ValueError:
                logger.warning("Skipping malformed mint address %r.", mint_address)
                continue
            ata = get_associated_token_address(owner, mint)
            exists = await _account_exists(connection, ata)
            if not exists:
                logger.debug("No token account %s for mint %s.", ata, mint_address)
                continue
            ui_amount = await _read_ui_amount(connection, ata)
            if ui_amount and ui_amount > 0:
                logger.info("Found balance %s for mint %s.", ui_amount, mint_address)
                return TokenBalance(
                    quantity=ui_amount,
                    mint=mint_address,
                    token_account=str(ata),
                    strategy="known_mints",
                )
        return None

    return known_mints


async def owner_scan_strategy(owner: Pubkey, connection: AsyncClient) -> TokenBalance | None:
    """Scan every token account owned by ``owner`` under the token program."""
    resp = await connection.get_token_accounts_by_owner(
        owner, TokenAccountOpts(program_id=TOKEN_PROGRAM_ID)
    )
    logger.info("Found %d token accounts for %s.", len(resp.value), owner)
    return await _first_nonzero(connection, resp.value, "owner_scan")


async def program_filter_strategy(owner: Pubkey, connection: AsyncClient) -> TokenBalance | None:
    """Query token-program accounts whose owner field and size match."""
    resp = await connection.get_program_accounts(
        TOKEN_PROGRAM_ID,
        filters=[
            MemcmpOpts(offset=TOKEN_ACCOUNT_OWNER_OFFSET, bytes=str(owner)),
            TOKEN_ACCOUNT_SIZE,
        ],
    )
    logger.info("Found %d program accounts for %s.", len(resp.value), owner)
    return await _first_nonzero(connection, resp.value, "program_filter")


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


class BalanceResolver:
    """Runs strategies in order, short-circuiting on the first hit.

    ``resolve()`` returns None when nothing nonzero is found; that means a
    zero balance, not an error.
    """

    def __init__(self, strategies: Sequence[Strategy]) -> None:
        self._strategies = list(strategies)

    @classmethod
    def default(cls, mints: Sequence[str]) -> BalanceResolver:
        return cls([
            known_mints_strategy(mints),
            owner_scan_strategy,
            program_filter_strategy,
        ])

    async def resolve(self, owner: Pubkey, connection: AsyncClient) -> TokenBalance | None:
        for strategy in self._strategies:
            name = getattr(strategy, "__name__", repr(strategy))
            try:
                found = await strategy(owner, connection)
            except Exception as exc:
                logger.warning("Balance strategy %s failed for %s: %s", name, owner, exc)
                continue
            if found is not None:
                return found
        logger.info("No stablecoin balance found for %s.", owner)
        return None
