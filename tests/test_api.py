"""
HTTP API 테스트 (FastAPI TestClient / httpx)
"""

import asyncio
from decimal import Decimal

import httpx
import pytest
from fastapi.testclient import TestClient

from bankapi.main import create_app
from bankapi.storage.memory import InMemoryAccountRepository


def create_account(client, name, balance):
    return client.post(
        "/api/accounts",
        json={"account_holder_name": name, "initial_balance": balance}
    )


def transfer(client, source, destination, amount):
    return client.post(
        "/api/accounts/transfer",
        json={
            "source_account_number": source,
            "destination_account_number": destination,
            "amount": amount
        }
    )


def test_root_and_health(client):
    assert client.get("/health").json() == {"status": "healthy"}
    assert client.get("/").json()["docs"] == "/docs"


def test_create_account(client):
    response = create_account(client, "Test User", "1000.00")

    assert response.status_code == 200
    body = response.json()
    assert body["account_holder_name"] == "Test User"
    assert Decimal(body["balance"]) == Decimal("1000.00")
    assert body["transaction_ids"] == []
    assert body["version"] == 0


def test_create_account_with_negative_balance(client, repository):
    response = create_account(client, "Test User 2", "-100.00")

    assert response.status_code == 400
    assert response.json() == {
        "error": "InvalidInput",
        "message": "Initial balance cannot be negative"
    }
    assert repository._accounts == {}


@pytest.mark.parametrize("payload", [
    {"account_holder_name": "   ", "initial_balance": "10"},
    {"account_holder_name": "Kim"},
    {"initial_balance": "10"},
])
def test_create_account_request_validation(client, payload):
    assert client.post("/api/accounts", json=payload).status_code == 422


def test_get_account(client):
    created = create_account(client, "Test User", "1000.00").json()

    response = client.get(f"/api/accounts/{created['account_number']}")
    assert response.status_code == 200
    assert response.json() == created

    not_found = client.get("/api/accounts/non-existent")
    assert not_found.status_code == 400
    assert not_found.json()["error"] == "AccountNotFound"


def test_transfer(client):
    source = create_account(client, "Source User", "1000.00").json()["account_number"]
    destination = create_account(client, "Dest User", "500.00").json()["account_number"]

    response = transfer(client, source, destination, "100.00")
    assert response.status_code == 200
    body = response.json()
    assert body["type"] == "TRANSFER"
    assert Decimal(body["amount"]) == Decimal("100.00")
    assert body["source_account_number"] == source
    assert body["destination_account_number"] == destination

    assert Decimal(client.get(f"/api/accounts/{source}").json()["balance"]) == Decimal("900.00")
    assert Decimal(client.get(f"/api/accounts/{destination}").json()["balance"]) == Decimal("600.00")

    insufficient = transfer(client, source, destination, "1000.00")
    assert insufficient.status_code == 400
    assert insufficient.json()["error"] == "InsufficientFunds"
    assert Decimal(client.get(f"/api/accounts/{source}").json()["balance"]) == Decimal("900.00")
    assert Decimal(client.get(f"/api/accounts/{destination}").json()["balance"]) == Decimal("600.00")


def test_transfer_rejections(client):
    source = create_account(client, "A", "10").json()["account_number"]
    destination = create_account(client, "B", "10").json()["account_number"]

    same = transfer(client, source, source, "1")
    assert same.status_code == 400
    assert same.json()["message"] == "Cannot transfer to the same account"

    zero = transfer(client, source, destination, "0")
    assert zero.status_code == 400
    assert zero.json()["error"] == "InvalidInput"

    missing = transfer(client, "missing", destination, "1")
    assert missing.status_code == 400
    assert missing.json()["error"] == "AccountNotFound"

    no_amount = client.post(
        "/api/accounts/transfer",
        json={"source_account_number": source, "destination_account_number": destination}
    )
    assert no_amount.status_code == 422


def test_transaction_history(client):
    source = create_account(client, "Source User", "1000.00").json()["account_number"]
    destination = create_account(client, "Dest User", "500.00").json()["account_number"]
    transfer(client, source, destination, "100.00")

    response = client.get(f"/api/accounts/{source}/transactions")
    assert response.status_code == 200
    history = response.json()
    assert len(history) == 1
    assert Decimal(history[0]["amount"]) == Decimal("100.00")
    assert history[0]["source_account_number"] == source
    assert history[0]["destination_account_number"] == destination

    assert client.get(f"/api/accounts/{destination}/transactions").json() == history
    assert client.get("/api/accounts/missing/transactions").status_code == 400


def test_transaction_history_pagination(client):
    source = create_account(client, "A", "100").json()["account_number"]
    destination = create_account(client, "B", "0").json()["account_number"]
    ids = [transfer(client, source, destination, str(n)).json()["id"] for n in range(1, 6)]

    page = client.get(f"/api/accounts/{source}/transactions", params={"limit": 2, "offset": 1})
    assert [t["id"] for t in page.json()] == ids[1:3]

    assert client.get(f"/api/accounts/{source}/transactions", params={"limit": 0}).status_code == 422
    assert client.get(f"/api/accounts/{source}/transactions", params={"offset": -1}).status_code == 422


class BrokenRepository(InMemoryAccountRepository):
    async def find_by_account_number(self, account_number):
        raise RuntimeError("storage is down")


def test_unexpected_error_is_a_server_error():
    app = create_app(BrokenRepository(), retry_backoff=0)
    with TestClient(app, raise_server_exceptions=False) as client:
        response = client.get("/api/accounts/anything")

    assert response.status_code == 500
    assert response.json()["error"] == "InternalServerError"


@pytest.mark.asyncio
async def test_concurrent_transfer_requests():
    """10개의 동시 이체 요청 (각각 10.00) -> 출금 계좌 0.00, 입금 계좌 100.00"""
    app = create_app(InMemoryAccountRepository(), max_retries=50, retry_backoff=0)
    transport = httpx.ASGITransport(app=app)

    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        source = (await client.post(
            "/api/accounts", json={"account_holder_name": "A", "initial_balance": "100.00"}
        )).json()["account_number"]
        destination = (await client.post(
            "/api/accounts", json={"account_holder_name": "B", "initial_balance": "0"}
        )).json()["account_number"]

        responses = await asyncio.gather(*[
            client.post("/api/accounts/transfer", json={
                "source_account_number": source,
                "destination_account_number": destination,
                "amount": "10.00"
            })
            for _ in range(10)
        ])
        assert all(r.status_code == 200 for r in responses)

        final_source = (await client.get(f"/api/accounts/{source}")).json()
        final_destination = (await client.get(f"/api/accounts/{destination}")).json()

    assert Decimal(final_source["balance"]) == Decimal("0.00")
    assert Decimal(final_destination["balance"]) == Decimal("100.00")
    assert final_source["version"] == 10
    assert final_destination["version"] == 10


def test_out_of_range_amounts_are_client_errors(client):
    source = create_account(client, "A", "10").json()["account_number"]
    destination = create_account(client, "B", "0").json()["account_number"]

    huge_transfer = transfer(client, source, destination, "1e30")
    assert huge_transfer.status_code == 400
    assert huge_transfer.json()["error"] == "InsufficientFunds"

    huge_account = create_account(client, "C", "1e30")
    assert huge_account.status_code == 400
    assert huge_account.json()["error"] == "InvalidInput"


def test_tiny_negative_initial_balance(client, repository):
    response = create_account(client, "A", "-0.004")

    assert response.status_code == 400
    assert response.json()["error"] == "InvalidInput"
    assert repository._accounts == {}


def test_main_entry_point(monkeypatch):
    from bankapi import main as main_module

    calls = {}
    monkeypatch.setattr(main_module, "setup_logging", lambda: calls.setdefault("logging", True))
    monkeypatch.setattr(
        main_module.uvicorn, "run",
        lambda app, host, port: calls.update(app=app, host=host, port=port)
    )

    main_module.main()

    assert calls["logging"] is True
    assert calls["app"].title == "은행계좌 API"
    assert calls["port"] == main_module.config.PORT
    # import 시점에는 앱/로깅 설정이 만들어지지 않는다
    assert "app" not in vars(main_module)
