"""Receipt tools: confirm_payment, get_transaction, dashboard, generate_image."""

from __future__ import annotations

import logging
import time
from typing import Any

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment
from solders.signature import Signature

from walletless_checkout.config import CheckoutConfig
from walletless_checkout.constants import TransactionSource
from walletless_checkout.errors import (
    CheckoutError,
    ConfirmationMismatchError,
    NoEndpointAvailableError,
    TransactionNotFoundError,
    ValidationError,
)
from walletless_checkout.image_client import ImageClient, ImageGenerationError
from walletless_checkout.ledger import ReceiptRecord, SalesLedger
from walletless_checkout.products import parse_product
from walletless_checkout.rpc_pool import EndpointSelector

logger = logging.getLogger(__name__)


def _short(signature: str) -> str:
    return signature[:12] + "..."


def _now_ms() -> int:
    return int(time.time() * 1000)


def is_valid_signature(signature: str) -> bool:
    try:
        Signature.from_string(signature)
    except ValueError:
        return False
    return True


def account_keys(tx: Any) -> list[str]:
    """Base58 account keys of a fetched transaction, in message order."""
    message = tx.transaction.transaction.message
    # jsonParsed keys are ParsedAccount objects; raw keys are Pubkeys
    return [str(getattr(key, "pubkey", key)) for key in message.account_keys]


async def fetch_transaction(
    selector: EndpointSelector,
    connection: AsyncClient,
    signature: str,
    *,
    commitment: str = "confirmed",
    attempts: int = 3,
) -> Any | None:
    """Fetch a parsed transaction with bounded retries.

    A not-found result is retried on the same connection. An RPC error
    invalidates the cached connection and re-acquires one before the next
    attempt; if no endpoint is left, the loop stops early. Returns None when
    the transaction was not found.
    """
    if not is_valid_signature(signature):
        logger.warning("Signature %s is not a valid transaction signature.", _short(signature))
        return None
    sig = Signature.from_string(signature)

    for attempt in range(1, attempts + 1):
        try:
            logger.info(
                "Fetching transaction %s (attempt %d/%d) via %s.",
                _short(signature), attempt, attempts, selector.current_endpoint,
            )
            resp = await connection.get_transaction(
                sig,
                encoding="jsonParsed",
                commitment=Commitment(commitment),
                max_supported_transaction_version=0,
            )
            if resp.value is not None:
                logger.info("Transaction %s found at slot %s.", _short(signature), resp.value.slot)
                return resp.value
            logger.warning(
                "Transaction %s not found (attempt %d/%d).", _short(signature), attempt, attempts,
            )
        except Exception as exc:
            logger.error(
                "Error fetching transaction %s (attempt %d/%d): %s",
                _short(signature), attempt, attempts, exc,
            )
            if attempt < attempts:
                await selector.invalidate(connection)
                try:
                    connection = await selector.acquire()
                except NoEndpointAvailableError:
                    logger.error("No more RPC endpoints to try.")
                    break
    return None


async def _render_receipt_image(image_client: ImageClient | None, product_name: str) -> str | None:
    if image_client is None or not image_client.configured:
        return None
    try:
        image = await image_client.generate_image(product_name)
    except Exception as exc:
        # the sale is recorded regardless
        logger.error("AI image generation failed for %s: %s", product_name, exc)
        return None
    logger.info("AI image generation successful for %s.", product_name)
    return image.data_url


async def confirm_payment_tool(
    selector: EndpointSelector,
    ledger: SalesLedger,
    config: CheckoutConfig,
    body: Any,
    image_client: ImageClient | None = None,
) -> dict[str, Any]:
    """Verify a submitted payment and record the sale.

    The transaction must list the merchant wallet among its account keys;
    otherwise the confirmation is rejected even if it succeeded on-chain.
    Image generation is best-effort and never blocks recording.
    """
    started = time.monotonic()

    signature = body.get("signature") if isinstance(body, dict) else None
    raw_product = body.get("product") if isinstance(body, dict) else None
    if not signature or not raw_product or not isinstance(signature, str):
        raise ValidationError("Missing signature or product")
    product = parse_product(raw_product)

    logger.info("Verifying transaction %s for %s (%s).", _short(signature), product.name, product.price)

    connection = await selector.acquire()
    tx = await fetch_transaction(
        selector,
        connection,
        signature,
        commitment=config.commitment,
        attempts=config.max_fetch_attempts,
    )

    if tx is None:
        logger.error("Transaction %s not found after all retries.", _short(signature))
        raise ConfirmationMismatchError("Transaction not valid")

    keys = account_keys(tx)
    if config.merchant_wallet not in keys:
        logger.warning(
            "Transaction %s does not include merchant wallet %s.",
            _short(signature), config.merchant_wallet,
        )
        raise ConfirmationMismatchError("Transaction not valid")

    image_url = await _render_receipt_image(image_client, product.name)

    ledger.record_sale(
        ReceiptRecord(
            buyer=keys[0],
            product=product.name,
            amount=product.price,
            signature=signature,
            timestamp=tx.block_time * 1000 if tx.block_time else _now_ms(),
            image_url=image_url,
        )
    )

    return {
        "status": "ok",
        "details": {
            "processingTimeMs": int((time.monotonic() - started) * 1000),
            "rpcEndpoint": selector.current_endpoint,
            "imageGenerated": image_url is not None,
        },
    }


async def get_transaction_tool(
    selector: EndpointSelector,
    ledger: SalesLedger,
    config: CheckoutConfig,
    signature: Any,
) -> dict[str, Any]:
    """Look a signature up in the local ledger, then on the network.

    Network hits are simplified: the amount is not decoded from the
    instructions and is reported as 0.
    """
    started = time.monotonic()

    if not isinstance(signature, str) or not signature.strip():
        raise ValidationError(
            "Invalid signature parameter",
            details={"details": "Signature must be a non-empty string"},
        )
    signature = signature.strip()

    local = ledger.find(signature)
    if local is not None:
        logger.info("Transaction %s found in local database.", _short(signature))
        return {
            **local.to_dict(),
            "source": TransactionSource.LOCAL_DATABASE.value,
            "processingTimeMs": int((time.monotonic() - started) * 1000),
        }

    tx = None
    if is_valid_signature(signature):
        logger.info("Transaction %s not found locally, checking Solana network.", _short(signature))
        connection = await selector.acquire()
        tx = await fetch_transaction(
            selector,
            connection,
            signature,
            commitment=config.commitment,
            attempts=config.max_fetch_attempts,
        )
    else:
        logger.warning("Signature %s is malformed; skipping network lookup.", _short(signature))

    if tx is not None:
        keys = account_keys(tx)
        meta = tx.transaction.meta
        return {
            "signature": signature,
            "buyer": keys[0] if keys else "Unknown",
            "amount": 0,
            "timestamp": tx.block_time * 1000 if tx.block_time else _now_ms(),
            "blockHeight": tx.slot,
            "source": TransactionSource.SOLANA_NETWORK.value,
            "status": "failed" if meta is not None and meta.err is not None else "confirmed",
            "processingTimeMs": int((time.monotonic() - started) * 1000),
            "rpcEndpoint": selector.current_endpoint,
        }

    logger.warning(
        "Transaction %s not found in local database or Solana network (%d local).",
        _short(signature), len(ledger),
    )
    raise TransactionNotFoundError(
        "Transaction not found",
        details={
            "details": "Transaction was not found in local database or on Solana network",
            "signature": _short(signature),
            "searchedLocations": [
                TransactionSource.LOCAL_DATABASE.value,
                TransactionSource.SOLANA_NETWORK.value,
            ],
            "processingTimeMs": int((time.monotonic() - started) * 1000),
            "rpcEndpoint": selector.current_endpoint,
        },
    )


def dashboard_tool(ledger: SalesLedger) -> dict[str, Any]:
    """Ledger snapshot for the merchant dashboard."""
    return ledger.snapshot()


async def generate_image_tool(
    image_client: ImageClient | None,
    body: Any,
) -> dict[str, Any]:
    """Render a receipt image on demand."""
    started = time.monotonic()

    if image_client is None or not image_client.configured:
        raise CheckoutError("Stability AI API key not configured", status_code=500)

    product_name = body.get("productName") if isinstance(body, dict) else None
    if not product_name:
        raise ValidationError("Product name is required")

    style = body.get("style") or "futuristic"
    mood = body.get("mood") or "dark"

    try:
        image = await image_client.generate_image(product_name, style=style, mood=mood)
    except ImageGenerationError as exc:
        logger.error("Image generation failed for %s: %s", product_name, exc)
        raise CheckoutError(
            "Failed to generate image",
            status_code=500,
            details={
                "message": str(exc),
                "processingTimeMs": int((time.monotonic() - started) * 1000),
            },
        ) from exc

    return {
        "success": True,
        "image": image.to_dict(),
        "processingTimeMs": int((time.monotonic() - started) * 1000),
        "metadata": {
            "productName": product_name,
            "style": style,
            "mood": mood,
            "signature": body.get("signature"),
        },
    }
