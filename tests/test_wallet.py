import pytest

from tests.conftest import auth_headers


async def test_balance_creates_wallet(client, make_user):
    user = await make_user()
    response = await client.get("/api/wallet/balance", headers=auth_headers(user))
    assert response.status_code == 200
    assert response.json()["balance"] == 0
    assert response.json()["currency"] == "XOF"


async def test_balance_requires_auth(client):
    response = await client.get("/api/wallet/balance")
    assert response.status_code == 401


async def test_add_money(client, make_user, balance_of):
    user = await make_user()
    response = await client.post(
        "/api/wallet/add-money", json={"amount": 5000, "paymentMethod": "wave"}, headers=auth_headers(user)
    )
    assert response.status_code == 200
    transaction = response.json()["transaction"]
    assert transaction["type"] == "credit"
    assert transaction["category"] == "Bonus"
    assert transaction["referenceId"].startswith("TOPUP-")
    assert transaction["metadata"]["paymentMethod"] == "wave"
    assert await balance_of(user) == 5000


@pytest.mark.parametrize("amount", [99, 10_000_001])
async def test_add_money_bounds(client, make_user, balance_of, amount):
    user = await make_user()
    response = await client.post("/api/wallet/add-money", json={"amount": amount}, headers=auth_headers(user))
    assert response.status_code == 400
    assert await balance_of(user) == 0


async def test_debit_insufficient(client, make_user):
    user = await make_user(balance=1000)
    response = await client.post(
        "/api/wallet/debit", json={"amount": 1500, "description": "Test"}, headers=auth_headers(user)
    )
    assert response.status_code == 400
    assert response.json()["shortfall"] == 500


async def test_credit_reserved_to_admins(client, make_user, balance_of):
    user = await make_user()
    admin = await make_user(role="admin")
    body = {"amount": 1000, "description": "Ajuste"}

    assert (await client.post("/api/wallet/credit", json=body, headers=auth_headers(user))).status_code == 403
    assert (await client.post("/api/wallet/credit", json=body, headers=auth_headers(admin))).status_code == 200
    assert await balance_of(admin) == 1000


async def test_record_transaction_keeps_balance(client, make_user, balance_of):
    user = await make_user(balance=2000)
    response = await client.post(
        "/api/wallet/record-transaction",
        json={"type": "debit", "amount": 5000, "description": "Pago en efectivo"},
        headers=auth_headers(user),
    )
    assert response.status_code == 200
    assert await balance_of(user) == 2000


async def test_withdraw_holds_amount(client, make_user, balance_of):
    user = await make_user(balance=8000)
    response = await client.post(
        "/api/wallet/withdraw", json={"amount": 3000, "phoneNumber": "+221770000000"}, headers=auth_headers(user)
    )
    assert response.status_code == 200
    transaction = response.json()["transaction"]
    assert transaction["status"] == "pending"
    assert transaction["category"] == "Withdrawal"
    assert transaction["metadata"]["phoneNumber"] == "+221770000000"
    assert await balance_of(user) == 5000


async def test_withdraw_requires_phone_and_balance(client, make_user):
    user = await make_user(balance=1000)
    no_phone = await client.post("/api/wallet/withdraw", json={"amount": 500}, headers=auth_headers(user))
    assert no_phone.status_code == 400

    too_much = await client.post(
        "/api/wallet/withdraw", json={"amount": 5000, "phoneNumber": "770000000"}, headers=auth_headers(user)
    )
    assert too_much.json()["code"] == "INSUFFICIENT_BALANCE"


async def test_suspended_user_cannot_move_money(client, make_user):
    user = await make_user(balance=5000, is_active=False)
    response = await client.post(
        "/api/wallet/withdraw", json={"amount": 500, "phoneNumber": "770000000"}, headers=auth_headers(user)
    )
    assert response.status_code == 403
    assert response.json()["code"] == "ACCOUNT_SUSPENDED"

    # Las consultas siguen disponibles
    assert (await client.get("/api/wallet/balance", headers=auth_headers(user))).status_code == 200


async def test_transactions_create_notifications(client, make_user):
    user = await make_user()
    await client.post("/api/wallet/add-money", json={"amount": 1500}, headers=auth_headers(user))

    response = await client.get("/api/notifications/unread-count", headers=auth_headers(user))
    assert response.json()["count"] == 1
