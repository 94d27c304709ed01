"""Payment tools: initiate_payment, payment_health, check_balance."""

from __future__ import annotations

import base64
import logging
import time
from datetime import datetime, timezone
from decimal import ROUND_DOWN, Decimal
from typing import Any

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment
from solders.message import Message
from solders.pubkey import Pubkey
from solders.transaction import Transaction
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import (
    TransferParams,
    create_associated_token_account,
    get_associated_token_address,
    transfer,
)

from walletless_checkout.balance import BalanceResolver
from walletless_checkout.config import CheckoutConfig
from walletless_checkout.errors import CheckoutError, NetworkError, ValidationError
from walletless_checkout.products import parse_product
from walletless_checkout.rpc_pool import EndpointSelector
from walletless_checkout.wallet import is_valid_address, parse_address

logger = logging.getLogger(__name__)


def to_base_units(price: float, decimals: int) -> int:
    """Convert a human-readable token amount to integer base units (truncating)."""
    scaled = Decimal(str(price)).scaleb(decimals)
    return int(scaled.to_integral_value(rounding=ROUND_DOWN))


def select_mint(config: CheckoutConfig, provided_mint: Any = None) -> Pubkey:
    """The caller's mint if it is a valid address, otherwise the first configured one."""
    if isinstance(provided_mint, str) and is_valid_address(provided_mint.strip()):
        logger.info("Using provided USDC mint: %s", provided_mint)
        return Pubkey.from_string(provided_mint.strip())
    logger.info("Using default USDC mint: %s", config.usdc_mints[0])
    return Pubkey.from_string(config.usdc_mints[0])


async def token_account_exists(connection: AsyncClient, address: Pubkey) -> bool:
    """True if ``address`` is an initialized account owned by the token program.

    Lookup errors propagate; a missing or foreign-owned account is False.
    """
    resp = await connection.get_account_info(address)
    if resp.value is None:
        return False
    return resp.value.owner == TOKEN_PROGRAM_ID


async def _check_exists(connection: AsyncClient, address: Pubkey, role: str) -> bool:
    try:
        exists = await token_account_exists(connection, address)
    except Exception as exc:
        logger.error("Error checking %s token account %s: %s", role, address, exc)
        raise CheckoutError(
            f"Error checking {role} token account",
            status_code=500,
            details={
                "details": f"Failed to verify {role} USDC account status",
                f"{role}UsdcAddress": str(address),
            },
        ) from exc
    logger.info("%s USDC account %s %s.", role.capitalize(), address, "exists" if exists else "does not exist")
    return exists


async def initiate_payment_tool(
    selector: EndpointSelector,
    config: CheckoutConfig,
    body: Any,
) -> dict[str, Any]:
    """Build an unsigned USDC transfer from the buyer to the merchant.

    The returned ``transaction`` is base64 and must be signed by the buyer,
    who is also the fee payer. Token accounts missing on either side are
    created in the same transaction at the buyer's expense.

    Raises:
        ValidationError: missing fields, bad address, non-positive price.
        NoEndpointAvailableError: no RPC endpoint reachable.
        NetworkError: latest blockhash could not be fetched.
    """
    started = time.monotonic()

    if not isinstance(body, dict) or not body.get("account") or not body.get("product"):
        received = sorted(body.keys()) if isinstance(body, dict) else []
        raise ValidationError(
            "Missing account or product parameter",
            details={
                "details": 'Request must include "account" and "product" fields.',
                "receivedFields": received,
            },
        )

    product = parse_product(body["product"])
    buyer = parse_address(body["account"])
    mint = select_mint(config, body.get("usdcMint"))
    merchant = Pubkey.from_string(config.merchant_wallet)

    logger.info("Processing payment for %s (%s, %s USDC).", buyer, product.name, product.price)

    connection = await selector.acquire()

    buyer_ata = get_associated_token_address(buyer, mint)
    merchant_ata = get_associated_token_address(merchant, mint)

    buyer_exists = await _check_exists(connection, buyer_ata, "user")
    merchant_exists = await _check_exists(connection, merchant_ata, "merchant")

    instructions = []
    if not buyer_exists:
        instructions.append(create_associated_token_account(payer=buyer, owner=buyer, mint=mint))
    if not merchant_exists:
        # buyer pays rent for the merchant's account too
        instructions.append(create_associated_token_account(payer=buyer, owner=merchant, mint=mint))

    amount = to_base_units(product.price, config.token_decimals)
    instructions.append(
        transfer(
            TransferParams(
                program_id=TOKEN_PROGRAM_ID,
                source=buyer_ata,
                dest=merchant_ata,
                owner=buyer,
                amount=amount,
            )
        )
    )

    try:
        latest = await connection.get_latest_blockhash(Commitment(config.commitment))
    except Exception as exc:
        logger.error("Failed to get latest blockhash: %s", exc)
        raise NetworkError(
            "Failed to get latest blockhash",
            details={"details": "Could not retrieve current blockchain state"},
        ) from exc

    blockhash = latest.value.blockhash
    last_valid_block_height = latest.value.last_valid_block_height
    message = Message.new_with_blockhash(instructions, buyer, blockhash)
    serialized = bytes(Transaction.new_unsigned(message))

    processing_ms = int((time.monotonic() - started) * 1000)
    logger.info(
        "Transaction prepared (%d bytes, %d instructions, %d ms).",
        len(serialized), len(instructions), processing_ms,
    )

    return {
        "transaction": base64.b64encode(serialized).decode(),
        "message": "Transaction created successfully",
        "details": {
            "userAccount": str(buyer_ata),
            "merchantAccount": str(merchant_ata),
            "amount": amount,
            "humanReadableAmount": f"{product.price} USDC",
            "userAccountExists": buyer_exists,
            "merchantAccountExists": merchant_exists,
            "blockhash": str(blockhash)[:12] + "...",
            "lastValidBlockHeight": last_valid_block_height,
            "instructionCount": len(instructions),
            "processingTimeMs": processing_ms,
            "usdcMint": str(mint),
            "rpcEndpoint": selector.current_endpoint,
        },
    }


async def payment_health_tool(
    selector: EndpointSelector,
    config: CheckoutConfig,
) -> dict[str, Any]:
    """Report network reachability for the payment route."""
    try:
        connection = await selector.acquire()
        slot = await connection.get_slot()
    except Exception as exc:
        logger.error("Health check failed: %s", exc)
        raise CheckoutError(
            "Cannot connect to Solana network",
            status_code=503,
            details={
                "status": "ERROR",
                "service": "Solana Pay API",
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "details": str(exc),
                "triedEndpoints": list(selector.endpoints),
            },
        ) from exc

    return {
        "status": "OK",
        "service": "Solana Pay API",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "currentSlot": slot.value,
        "merchantWallet": config.merchant_wallet,
        "availableUsdcMints": list(config.usdc_mints),
        "rpcEndpoint": selector.current_endpoint,
    }


async def check_balance_tool(
    selector: EndpointSelector,
    resolver: BalanceResolver,
    body: Any,
) -> dict[str, Any]:
    """Find the buyer's stablecoin balance and mint.

    A wallet with no holdings yields ``balance == 0`` and ``mint is None``.
    """
    account = body.get("account") if isinstance(body, dict) else None
    owner = parse_address(account)
    connection = await selector.acquire()

    found = await resolver.resolve(owner, connection)
    result: dict[str, Any] = (
        found.to_dict()
        if found is not None
        else {"balance": 0, "mint": None, "tokenAccount": None, "strategy": None}
    )
    result["account"] = str(owner)
    result["rpcEndpoint"] = selector.current_endpoint
    return result
