"""FastAPI application exposing the checkout routes.

All state (connection cache, ledger, image client) hangs off ``app.state``;
nothing is kept in module globals.
"""

from __future__ import annotations

import json
import logging
import os
import traceback
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from walletless_checkout.balance import BalanceResolver
from walletless_checkout.config import CheckoutConfig
from walletless_checkout.constants import (
    DEFAULT_IMAGE_API_HOST,
    DEFAULT_MERCHANT_WALLET,
    DEFAULT_RPC_ENDPOINTS,
    POTENTIAL_USDC_MINTS,
)
from walletless_checkout.errors import CheckoutError, ValidationError
from walletless_checkout.image_client import ImageClient
from walletless_checkout.ledger import SalesLedger
from walletless_checkout.products import CATALOG
from walletless_checkout.rpc_pool import EndpointSelector
from walletless_checkout.tools.payments import (
    check_balance_tool,
    initiate_payment_tool,
    payment_health_tool,
)
from walletless_checkout.tools.receipts import (
    confirm_payment_tool,
    dashboard_tool,
    generate_image_tool,
    get_transaction_tool,
)

logger = logging.getLogger(__name__)


def _split_env(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name, "")
    values = tuple(v.strip() for v in raw.split(",") if v.strip())
    return values or default


def config_from_env() -> CheckoutConfig:
    """Build a CheckoutConfig from the environment (and a local .env, if any)."""
    load_dotenv()
    return CheckoutConfig(
        rpc_endpoints=_split_env("RPC_ENDPOINTS", DEFAULT_RPC_ENDPOINTS),
        merchant_wallet=os.getenv("MERCHANT_WALLET", DEFAULT_MERCHANT_WALLET).strip(),
        usdc_mints=_split_env("USDC_MINTS", POTENTIAL_USDC_MINTS),
        image_api_key=os.getenv("STABILITY_API_KEY") or None,
        image_api_host=os.getenv("STABILITY_API_HOST", DEFAULT_IMAGE_API_HOST),
        environment=os.getenv("APP_ENV", "development"),
    )


async def _json_body(request: Request) -> Any:
    raw = await request.body()
    if not raw.strip():
        raise ValidationError(
            "Empty request body",
            details={"details": "Request body must contain JSON"},
        )
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValidationError(
            "Invalid JSON in request body",
            details={"details": "Please ensure request body contains valid JSON"},
        ) from exc


def create_app(
    config: CheckoutConfig | None = None,
    *,
    selector: EndpointSelector | None = None,
    ledger: SalesLedger | None = None,
    image_client: ImageClient | None = None,
    resolver: BalanceResolver | None = None,
) -> FastAPI:
    """App factory. Collaborators may be injected; defaults come from ``config``."""
    config = config or config_from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await app.state.selector.close()
        if app.state.image_client is not None:
            await app.state.image_client.close()

    app = FastAPI(title="Walletless Checkout API", version="2.1.0", lifespan=lifespan)
    app.state.config = config
    app.state.selector = selector or EndpointSelector.from_config(config)
    app.state.ledger = ledger if ledger is not None else SalesLedger()
    app.state.resolver = resolver or BalanceResolver.default(config.usdc_mints)
    if image_client is None and config.image_api_key:
        image_client = ImageClient(config.image_api_key, config.image_api_host)
    app.state.image_client = image_client

    @app.exception_handler(CheckoutError)
    async def _checkout_error(request: Request, exc: CheckoutError) -> JSONResponse:
        return JSONResponse(exc.to_dict(), status_code=exc.status_code)

    @app.exception_handler(Exception)
    async def _unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unexpected error handling %s %s", request.method, request.url.path)
        payload: dict[str, Any] = {
            "error": "Internal Server Error",
            "message": str(exc) or "Unknown error occurred",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if not config.is_production:
            payload["details"] = {
                "name": type(exc).__name__,
                "stack": traceback.format_exception(exc)[-10:],
            }
        return JSONResponse(payload, status_code=500)

    # -- payment routes -------------------------------------------------------

    @app.post("/api/solana-pay")
    async def solana_pay(request: Request) -> dict[str, Any]:
        body = await _json_body(request)
        return await initiate_payment_tool(app.state.selector, config, body)

    @app.get("/api/solana-pay")
    async def solana_pay_health() -> dict[str, Any]:
        return await payment_health_tool(app.state.selector, config)

    @app.post("/api/balance")
    async def balance(request: Request) -> dict[str, Any]:
        body = await _json_body(request)
        return await check_balance_tool(app.state.selector, app.state.resolver, body)

    # -- receipt routes -------------------------------------------------------

    @app.post("/api/confirm-payment")
    async def confirm_payment(request: Request) -> dict[str, Any]:
        body = await _json_body(request)
        return await confirm_payment_tool(
            app.state.selector, app.state.ledger, config, body, app.state.image_client,
        )

    @app.get("/api/get-transaction/{signature}")
    async def get_transaction(signature: str) -> dict[str, Any]:
        return await get_transaction_tool(app.state.selector, app.state.ledger, config, signature)

    @app.get("/api/dashboard")
    async def dashboard() -> dict[str, Any]:
        return dashboard_tool(app.state.ledger)

    @app.post("/api/generate-nft-image")
    async def generate_nft_image(request: Request) -> dict[str, Any]:
        body = await _json_body(request)
        return await generate_image_tool(app.state.image_client, body)

    @app.get("/api/products")
    async def products() -> list[dict[str, Any]]:
        return [p.to_dict() for p in CATALOG]

    return app


def main() -> None:
    import uvicorn

    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO"),
        format="%(asctime)s [%(name)s] %(levelname)s %(message)s",
    )
    uvicorn.run(
        create_app(),
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
    )


if __name__ == "__main__":
    main()
