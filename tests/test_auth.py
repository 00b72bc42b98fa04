from tests.conftest import auth_headers


async def test_register_and_login_by_email(client):
    response = await client.post(
        "/api/auth/register",
        json={"name": "Awa Diop", "email": "Awa@Example.com", "password": "secreto123"},
    )
    assert response.status_code == 201
    assert response.json()["user"]["email"] == "awa@example.com"

    login = await client.post("/api/auth/login", json={"contact": "awa@example.com", "password": "secreto123"})
    assert login.status_code == 200
    token = login.json()["accessToken"]

    me = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.json()["user"]["name"] == "Awa Diop"

    wallet = await client.get("/api/wallet/balance", headers={"Authorization": f"Bearer {token}"})
    assert wallet.json()["balance"] == 0


async def test_register_requires_email_or_phone(client):
    response = await client.post("/api/auth/register", json={"name": "X", "password": "secreto123"})
    assert response.status_code == 422


async def test_duplicate_email_conflicts(client, make_user):
    await make_user(email="taken@example.com")
    response = await client.post(
        "/api/auth/register", json={"name": "Y", "email": "taken@example.com", "password": "secreto123"}
    )
    assert response.status_code == 409


async def test_login_with_country_code_and_phone(client, make_user):
    await make_user(email=None, phone="699000000", country_code="+237", password="motdepasse")

    by_phone = await client.post("/api/auth/login", json={"contact": "699000000", "password": "motdepasse"})
    assert by_phone.status_code == 200

    full = await client.post("/api/auth/login", json={"contact": "+237699000000", "password": "motdepasse"})
    assert full.status_code == 200

    wrong = await client.post("/api/auth/login", json={"contact": "+237699000000", "password": "nope"})
    assert wrong.status_code == 401


async def test_change_password(client, make_user):
    user = await make_user(email="pw@example.com", password="viejo123")
    bad = await client.post(
        "/api/user/change-password",
        json={"currentPassword": "otro", "newPassword": "nuevo123"},
        headers=auth_headers(user),
    )
    assert bad.status_code == 400

    ok = await client.post(
        "/api/user/change-password",
        json={"currentPassword": "viejo123", "newPassword": "nuevo123"},
        headers=auth_headers(user),
    )
    assert ok.status_code == 200
    login = await client.post("/api/auth/login", json={"contact": "pw@example.com", "password": "nuevo123"})
    assert login.status_code == 200


async def test_invalid_token_rejected(client):
    response = await client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401
    assert response.json()["code"] == "UNAUTHORIZED"
