"""Constants for the walletless checkout backend."""

from enum import Enum


DEFAULT_RPC_ENDPOINTS: tuple[str, ...] = (
    "https://api.devnet.solana.com",
    "https://rpc.ankr.com/solana_devnet",
    "https://devnet.helius-rpc.com/?api-key=your-api-key",
)

DEFAULT_MERCHANT_WALLET = "86xCnPeV69n6t3DnyGkfpPEX4kuT3t6eJ5iAbPGYATcp"

# Tried in order before falling back to a full token-account scan.
POTENTIAL_USDC_MINTS: tuple[str, ...] = (
    "4zMMC9srt5Ri5X14GAgXhaHii3GnPAEERYPJgZJDncDU",  # Circle USDC devnet
    "Gh9ZwEmdLJ8DscKNTkTqPbNwLNNBjuSzaG9Vp2KGtKJr",  # alternative devnet USDC
    "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v",  # mainnet USDC
)

USDC_DECIMALS = 6

# SPL token account layout: mint (32) | owner (32) | amount (8) | ...
TOKEN_ACCOUNT_SIZE = 165
TOKEN_ACCOUNT_MINT_OFFSET = 0
TOKEN_ACCOUNT_OWNER_OFFSET = 32

MAX_FETCH_ATTEMPTS = 3

DEFAULT_USER_AGENT = "Frictionless-Checkout/1.0"

DEFAULT_IMAGE_API_HOST = "https://api.stability.ai"


class TransactionSource(str, Enum):
    """Where a transaction record was found."""

    LOCAL_DATABASE = "local_database"
    SOLANA_NETWORK = "solana_network"
