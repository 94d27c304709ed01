"""Walletless Checkout - social-login stablecoin checkout on Solana.

Buyers pay in USDC from a keypair derived from their social login; the
merchant dashboard reads an in-memory receipt ledger.
"""

__version__ = "2.1.0"

from walletless_checkout.balance import BalanceResolver, TokenBalance
from walletless_checkout.config import CheckoutConfig
from walletless_checkout.constants import TransactionSource, POTENTIAL_USDC_MINTS
from walletless_checkout.errors import (
    CheckoutError,
    ConfirmationMismatchError,
    NetworkError,
    NoEndpointAvailableError,
    TransactionNotFoundError,
    ValidationError,
)
from walletless_checkout.image_client import ImageClient, ImageGenerationError
from walletless_checkout.ledger import ReceiptRecord, SalesLedger
from walletless_checkout.rpc_pool import ConnectionCache, EndpointSelector

__all__ = [
    "BalanceResolver",
    "TokenBalance",
    "CheckoutConfig",
    "TransactionSource",
    "POTENTIAL_USDC_MINTS",
    "CheckoutError",
    "ConfirmationMismatchError",
    "NetworkError",
    "NoEndpointAvailableError",
    "TransactionNotFoundError",
    "ValidationError",
    "ImageClient",
    "ImageGenerationError",
    "ReceiptRecord",
    "SalesLedger",
    "ConnectionCache",
    "EndpointSelector",
]
