"""End-to-end tests for the HTTP routes with a mocked RPC layer."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient
from solders.hash import Hash
from solders.keypair import Keypair

from walletless_checkout.app import config_from_env, create_app
from walletless_checkout.config import CheckoutConfig
from walletless_checkout.constants import DEFAULT_RPC_ENDPOINTS
from walletless_checkout.errors import NoEndpointAvailableError
from walletless_checkout.ledger import ReceiptRecord, SalesLedger

CONFIG = CheckoutConfig(rpc_endpoints=("https://rpc.test",))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _parsed_tx(keys, block_time=1_700_000_000, slot=77) -> SimpleNamespace:
    return SimpleNamespace(
        slot=slot,
        block_time=block_time,
        transaction=SimpleNamespace(
            transaction=SimpleNamespace(
                message=SimpleNamespace(account_keys=[SimpleNamespace(pubkey=k) for k in keys])
            ),
            meta=SimpleNamespace(err=None),
        ),
    )


def _connection(tx=None) -> AsyncMock:
    conn = AsyncMock()
    conn.get_transaction = AsyncMock(return_value=SimpleNamespace(value=tx))
    conn.get_account_info = AsyncMock(return_value=SimpleNamespace(value=None))
    conn.get_latest_blockhash = AsyncMock(
        return_value=SimpleNamespace(
            value=SimpleNamespace(blockhash=Hash.default(), last_valid_block_height=10)
        )
    )
    conn.get_slot = AsyncMock(return_value=SimpleNamespace(value=321))
    return conn


def _selector(connection=None, acquire_error: Exception | None = None) -> MagicMock:
    selector = MagicMock()
    if acquire_error is not None:
        selector.acquire = AsyncMock(side_effect=acquire_error)
    else:
        selector.acquire = AsyncMock(return_value=connection)
    selector.invalidate = AsyncMock()
    selector.close = AsyncMock()
    selector.current_endpoint = "https://rpc.test"
    selector.endpoints = ("https://rpc.test",)
    return selector


def _client(selector, ledger=None, config=CONFIG, lenient=False, **kwargs) -> TestClient:
    app = create_app(config, selector=selector, ledger=ledger or SalesLedger(), **kwargs)
    # lenient: render the 500 handler instead of re-raising
    return TestClient(app, raise_server_exceptions=not lenient)


def _signature() -> str:
    return str(Keypair().sign_message(b"order"))


# ---------------------------------------------------------------------------
# Confirmation flow
# ---------------------------------------------------------------------------


class TestConfirmFlow:
    def test_confirm_updates_dashboard(self) -> None:
        sig = _signature()
        buyer = str(Keypair().pubkey())
        selector = _selector(_connection(_parsed_tx([buyer, CONFIG.merchant_wallet])))
        client = _client(selector)

        resp = client.post(
            "/api/confirm-payment",
            json={"signature": sig, "product": {"name": "Widget", "price": 12}},
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

        dashboard = client.get("/api/dashboard").json()
        assert dashboard["totalSales"] == 12
        assert dashboard["nftReceiptsIssued"] == 1
        assert dashboard["transactions"][0]["signature"] == sig
        assert dashboard["transactions"][0]["buyer"] == buyer

    def test_confirm_without_merchant_is_400(self) -> None:
        keys = [str(Keypair().pubkey()), str(Keypair().pubkey())]
        client = _client(_selector(_connection(_parsed_tx(keys))))

        resp = client.post(
            "/api/confirm-payment",
            json={"signature": _signature(), "product": {"name": "Widget", "price": 12}},
        )

        assert resp.status_code == 400
        assert resp.json()["error"] == "Transaction not valid"
        assert client.get("/api/dashboard").json()["nftReceiptsIssued"] == 0

    def test_confirm_missing_fields(self) -> None:
        client = _client(_selector(_connection()))
        resp = client.post("/api/confirm-payment", json={"signature": _signature()})
        assert resp.status_code == 400


# ---------------------------------------------------------------------------
# Transaction lookup
# ---------------------------------------------------------------------------


class TestGetTransaction:
    def test_local_record_returned_verbatim(self) -> None:
        sig = _signature()
        ledger = SalesLedger()
        record = ReceiptRecord(
            buyer=str(Keypair().pubkey()), product="Dev Tee", amount=15,
            signature=sig, timestamp=1_700_000_000_000,
        )
        ledger.record_sale(record)
        selector = _selector(_connection())
        client = _client(selector, ledger)

        body = client.get(f"/api/get-transaction/{sig}").json()

        assert body["source"] == "local_database"
        for key, value in record.to_dict().items():
            assert body[key] == value
        selector.acquire.assert_not_awaited()

    def test_unknown_signature_is_404(self) -> None:
        client = _client(_selector(_connection(None)))
        resp = client.get(f"/api/get-transaction/{_signature()}")
        assert resp.status_code == 404
        body = resp.json()
        assert body["error"] == "Transaction not found"
        assert body["searchedLocations"] == ["local_database", "solana_network"]

    def test_network_record(self) -> None:
        buyer = str(Keypair().pubkey())
        client = _client(_selector(_connection(_parsed_tx([buyer]))))
        body = client.get(f"/api/get-transaction/{_signature()}").json()
        assert body["source"] == "solana_network"
        assert body["buyer"] == buyer
        assert body["blockHeight"] == 77

    def test_malformed_signature_is_404_during_outage(self) -> None:
        selector = _selector(acquire_error=NoEndpointAvailableError("All RPC endpoints failed"))
        resp = _client(selector).get("/api/get-transaction/garbage")
        assert resp.status_code == 404
        assert resp.json()["error"] == "Transaction not found"
        selector.acquire.assert_not_awaited()


# ---------------------------------------------------------------------------
# Payment routes
# ---------------------------------------------------------------------------


class TestSolanaPay:
    def test_builds_transaction(self) -> None:
        client = _client(_selector(_connection()))
        resp = client.post(
            "/api/solana-pay",
            json={"account": str(Keypair().pubkey()), "product": {"name": "Widget", "price": 12}},
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["transaction"]
        assert body["details"]["amount"] == 12_000_000

    def test_no_endpoint_is_503(self) -> None:
        selector = _selector(acquire_error=NoEndpointAvailableError(
            "All RPC endpoints failed",
            details={"triedEndpoints": ["https://rpc.test"]},
        ))
        client = _client(selector)
        resp = client.post(
            "/api/solana-pay",
            json={"account": str(Keypair().pubkey()), "product": {"name": "Widget", "price": 12}},
        )
        assert resp.status_code == 503
        assert resp.json()["triedEndpoints"] == ["https://rpc.test"]

    def test_empty_body(self) -> None:
        client = _client(_selector(_connection()))
        resp = client.post("/api/solana-pay", content=b"")
        assert resp.status_code == 400
        assert resp.json()["error"] == "Empty request body"

    def test_invalid_json(self) -> None:
        client = _client(_selector(_connection()))
        resp = client.post(
            "/api/solana-pay", content=b"{not json", headers={"content-type": "application/json"}
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "Invalid JSON in request body"

    def test_health(self) -> None:
        client = _client(_selector(_connection()))
        body = client.get("/api/solana-pay").json()
        assert body["status"] == "OK"
        assert body["currentSlot"] == 321

    def test_health_unreachable(self) -> None:
        client = _client(_selector(acquire_error=NoEndpointAvailableError("down")))
        resp = client.get("/api/solana-pay")
        assert resp.status_code == 503
        assert resp.json()["error"] == "Cannot connect to Solana network"


class TestBalanceRoute:
    def test_zero_balance(self) -> None:
        resolver = MagicMock()
        resolver.resolve = AsyncMock(return_value=None)
        client = _client(_selector(_connection()), resolver=resolver)
        body = client.post("/api/balance", json={"account": str(Keypair().pubkey())}).json()
        assert body["balance"] == 0
        assert body["mint"] is None


class TestMiscRoutes:
    def test_products(self) -> None:
        body = _client(_selector(_connection())).get("/api/products").json()
        assert [p["name"] for p in body] == ["Hackathon Hoodie", "Dev Tee", "WAGMI Cap"]

    def test_generate_image_without_key(self) -> None:
        resp = _client(_selector(_connection())).post(
            "/api/generate-nft-image", json={"productName": "Dev Tee"}
        )
        assert resp.status_code == 500
        assert resp.json()["error"] == "Stability AI API key not configured"


# ---------------------------------------------------------------------------
# Unexpected errors
# ---------------------------------------------------------------------------


def _exploding_resolver() -> MagicMock:
    resolver = MagicMock()
    resolver.resolve = AsyncMock(side_effect=RuntimeError("kaboom"))
    return resolver


class TestUnexpectedErrors:
    def test_details_outside_production(self) -> None:
        client = _client(_selector(_connection()), resolver=_exploding_resolver(), lenient=True)
        resp = client.post("/api/balance", json={"account": str(Keypair().pubkey())})
        assert resp.status_code == 500
        body = resp.json()
        assert body["error"] == "Internal Server Error"
        assert body["message"] == "kaboom"
        assert body["details"]["name"] == "RuntimeError"

    def test_no_details_in_production(self) -> None:
        client = _client(
            _selector(_connection()),
            config=CheckoutConfig(rpc_endpoints=("https://rpc.test",), environment="production"),
            resolver=_exploding_resolver(),
            lenient=True,
        )
        resp = client.post("/api/balance", json={"account": str(Keypair().pubkey())})
        assert resp.status_code == 500
        assert "details" not in resp.json()


# ---------------------------------------------------------------------------
# Environment config
# ---------------------------------------------------------------------------


class TestConfigFromEnv:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in ("RPC_ENDPOINTS", "MERCHANT_WALLET", "USDC_MINTS", "STABILITY_API_KEY", "APP_ENV"):
            monkeypatch.delenv(name, raising=False)
        monkeypatch.setattr("walletless_checkout.app.load_dotenv", lambda: False)
        config = config_from_env()
        assert config.rpc_endpoints == DEFAULT_RPC_ENDPOINTS
        assert config.image_api_key is None

    def test_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("walletless_checkout.app.load_dotenv", lambda: False)
        monkeypatch.setenv("RPC_ENDPOINTS", "https://one, https://two ,")
        monkeypatch.setenv("STABILITY_API_KEY", "sk-1")
        monkeypatch.setenv("APP_ENV", "production")
        config = config_from_env()
        assert config.rpc_endpoints == ("https://one", "https://two")
        assert config.image_api_key == "sk-1"
        assert config.is_production is True
