"""Checkout configuration - plain frozen dataclass, no pydantic.

The host application constructs this from its own settings (env vars,
.env files, etc.) and passes it to the checkout components.
"""

from dataclasses import dataclass

from walletless_checkout.constants import (
    DEFAULT_IMAGE_API_HOST,
    DEFAULT_MERCHANT_WALLET,
    DEFAULT_RPC_ENDPOINTS,
    DEFAULT_USER_AGENT,
    MAX_FETCH_ATTEMPTS,
    POTENTIAL_USDC_MINTS,
    USDC_DECIMALS,
)


@dataclass(frozen=True)
class CheckoutConfig:
    rpc_endpoints: tuple[str, ...] = DEFAULT_RPC_ENDPOINTS
    merchant_wallet: str = DEFAULT_MERCHANT_WALLET
    usdc_mints: tuple[str, ...] = POTENTIAL_USDC_MINTS
    token_decimals: int = USDC_DECIMALS
    commitment: str = "confirmed"
    max_fetch_attempts: int = MAX_FETCH_ATTEMPTS
    user_agent: str = DEFAULT_USER_AGENT
    image_api_key: str | None = None
    image_api_host: str = DEFAULT_IMAGE_API_HOST
    environment: str = "development"

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() == "production"
