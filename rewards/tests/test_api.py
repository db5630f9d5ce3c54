import pytest
from fastapi.testclient import TestClient

from rewards import api
from rewards.api import create_app
from rewards.config import Settings
from rewards.errors import ChainUnavailableError, InsufficientTokenBalanceError


CUSTOMER = "0xABCDEF0123456789ABCDEF0123456789ABCDEF01"
UNREGISTERED = "0x1111111111111111111111111111111111111111"


@pytest.fixture
def client(service):
    return TestClient(create_app(service))


def register(client, wallet=CUSTOMER, **extra):
    return client.post("/api/register-wallet", json={"walletAddress": wallet, **extra})


class TestRegisterWallet:

    def test_register(self, client):
        response = register(client, name="Ana", email="ana@example.com")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["walletAddress"] == CUSTOMER

    def test_invalid_address(self, client):
        response = register(client, wallet="0x1234")

        assert response.status_code == 400
        assert response.json() == {
            "success": False, "error": "Invalid wallet address", "code": "InvalidAddress",
        }

    def test_missing_address(self, client):
        response = client.post("/api/register-wallet", json={"name": "Ana"})

        assert response.status_code == 400
        assert response.json()["code"] == "InvalidInput"

    def test_already_registered(self, client):
        register(client)
        response = register(client, wallet=CUSTOMER.lower())

        assert response.status_code == 409
        assert response.json()["code"] == "AlreadyRegistered"


class TestSendReward:

    def test_scenario(self, client):
        register(client)

        first = client.post("/api/send-reward", json={"walletAddress": CUSTOMER, "purchaseId": 42})
        assert first.status_code == 200
        body = first.json()
        assert body["success"] is True
        assert body["transaction"]["sequenceId"] == 1
        assert body["transaction"]["purchaseId"] == 42
        assert body["customerStats"]["totalPurchases"] == 1
        assert body["reward"]["amount"] == "5 ARY"
        assert body["reward"]["explorerUrl"].endswith(body["reward"]["txHash"])

        second = client.post("/api/send-reward", json={"walletAddress": CUSTOMER})
        assert second.json()["transaction"]["sequenceId"] == 2
        assert second.json()["customerStats"]["totalPurchases"] == 2

    def test_unregistered(self, client, service):
        response = client.post("/api/send-reward", json={"walletAddress": UNREGISTERED})

        assert response.status_code == 404
        assert response.json()["code"] == "CustomerNotRegistered"
        assert len(service.transactions) == 0

    def test_invalid_address(self, client):
        response = client.post("/api/send-reward", json={"walletAddress": "nope"})
        assert response.status_code == 400

    def test_negative_purchase_amount(self, client):
        register(client)
        response = client.post(
            "/api/send-reward", json={"walletAddress": CUSTOMER, "purchaseAmount": -3},
        )
        assert response.status_code == 400
        assert response.json()["code"] == "InvalidInput"

    def test_insufficient_tokens(self, client, ledger, service):
        register(client)
        ledger.submit_error = InsufficientTokenBalanceError()

        response = client.post("/api/send-reward", json={"walletAddress": CUSTOMER})

        assert response.status_code == 500
        body = response.json()
        assert body["success"] is False
        assert body["code"] == "InsufficientTokenBalance"
        assert "reward tokens" in body["error"]
        assert len(service.transactions) == 0
        assert service.registry.get(CUSTOMER).purchase_count == 0

    def test_unrecognized_chain_error_passes_message_through(self, client, ledger):
        register(client)
        ledger.submit_error = ChainUnavailableError("header not found")

        response = client.post("/api/send-reward", json={"walletAddress": CUSTOMER})

        assert response.status_code == 500
        assert response.json()["error"] == "header not found"


class TestQueries:

    def test_business_balance(self, client, ledger):
        register(client)

        body = client.get("/api/business-balance").json()

        assert body["success"] is True
        assert body["businessWallet"] == ledger.address
        assert body["balances"] == {"token": "1000 ARY", "native": "0.5 ETH"}
        assert body["totalCustomers"] == 1
        assert body["totalTransactions"] == 0

    def test_business_balance_chain_down(self, client, ledger, monkeypatch):
        def fail(address):
            raise ChainUnavailableError("connection refused")
        monkeypatch.setattr(ledger, "get_native_balance", fail)

        response = client.get("/api/business-balance")

        assert response.status_code == 500
        assert response.json()["code"] == "ChainUnavailable"

    def test_customer(self, client):
        register(client, name="Ana")
        client.post("/api/send-reward", json={"walletAddress": CUSTOMER})

        response = client.get(f"/api/customer/{CUSTOMER}")

        assert response.status_code == 200
        body = response.json()
        assert body["customer"]["walletAddress"] == CUSTOMER.lower()
        assert body["customer"]["displayName"] == "Ana"
        assert body["customer"]["purchaseCount"] == 1
        assert len(body["transactions"]) == 1

    def test_customer_not_found(self, client):
        response = client.get(f"/api/customer/{UNREGISTERED}")
        assert response.status_code == 404
        assert response.json()["success"] is False

    @pytest.mark.parametrize("query,expected", [
        ("", 3), ("?limit=2", 2), ("?limit=abc", 3), ("?limit=0", 3), ("?limit=100", 3),
    ])
    def test_transactions(self, client, query, expected):
        register(client)
        for _ in range(3):
            client.post("/api/send-reward", json={"walletAddress": CUSTOMER})

        body = client.get(f"/api/transactions{query}").json()

        assert body["total"] == 3
        assert len(body["transactions"]) == expected
        assert body["transactions"][0]["sequenceId"] == 3

    def test_health(self, client, ledger):
        body = client.get("/health").json()

        assert body["status"] == "ok"
        assert body["wallet"] == ledger.address
        assert "timestamp" in body

    def test_unknown_route(self, client):
        response = client.get("/api/nothing")
        assert response.status_code == 404
        assert response.json() == {"success": False, "error": "Not Found"}

    def test_unexpected_error_returns_json(self, service, monkeypatch):
        def broken(limit):
            raise RuntimeError("history store unavailable")

        monkeypatch.setattr(service, "list_transactions", broken)
        client = TestClient(create_app(service), raise_server_exceptions=False)

        response = client.get("/api/transactions")

        assert response.status_code == 500
        assert response.json() == {"success": False, "error": "history store unavailable"}


class TestServerStartup:
    """Tests for the rewards-server entry point."""

    def test_missing_credentials_exit_before_serving(self, monkeypatch, caplog):
        def serve(*args, **kwargs):
            pytest.fail("server started without chain credentials")

        monkeypatch.setattr(
            api, "get_settings",
            lambda: Settings(_env_file=None, rpc_url=None, business_private_key=None),
        )
        monkeypatch.setattr(api, "setup_logging", lambda level, json_format: None)
        monkeypatch.setattr("uvicorn.run", serve)

        with caplog.at_level("CRITICAL", logger="rewards.api"):
            with pytest.raises(SystemExit) as exc_info:
                api.main()

        assert exc_info.value.code == 1
        critical = [r for r in caplog.records if r.levelname == "CRITICAL"]
        assert critical
        assert "RPC_URL" in critical[0].getMessage()
        assert "BUSINESS_PRIVATE_KEY" in critical[0].getMessage()
