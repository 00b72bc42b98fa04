from tests.conftest import auth_headers


async def test_create_request(client, make_user):
    user = await make_user()
    response = await client.post(
        "/api/deliveries",
        json={
            "postType": "delivery",
            "itemType": "Documents",
            "description": "Sobre A4",
            "notes": "Fragile",
            "price": 15000,
            "fromCountry": "Senegal",
            "fromCity": "Dakar",
            "toCountry": "France",
            "toCity": "Paris",
            "arrivalDate": "2026-12-01T00:00:00Z",
        },
        headers=auth_headers(user),
    )
    assert response.status_code == 201
    delivery = response.json()["delivery"]
    assert delivery["type"] == "request"
    assert delivery["title"] == "Space request: Documents delivery"
    assert delivery["description"] == "Sobre A4\n\nAdditional Notes:\nFragile"
    assert delivery["departureDate"] is not None
    assert delivery["status"] == "PENDING"


async def test_create_travel_offer(client, make_user):
    user = await make_user()
    response = await client.post(
        "/api/deliveries",
        json={
            "postType": "travel",
            "weight": 10,
            "price": 5000,
            "fromCountry": "Cameroon",
            "fromCity": "Douala",
            "toCountry": "Belgium",
            "toCity": "Brussels",
            "departureDate": "2026-11-20T08:00:00Z",
        },
        headers=auth_headers(user),
    )
    assert response.status_code == 201
    assert response.json()["delivery"]["title"] == "Space offer: Douala, Cameroon to Brussels, Belgium"


async def test_request_requires_item_and_arrival(client, make_user):
    user = await make_user()
    response = await client.post(
        "/api/deliveries",
        json={"postType": "delivery", "fromCountry": "A", "fromCity": "B", "toCountry": "C", "toCity": "D"},
        headers=auth_headers(user),
    )
    assert response.status_code == 422


async def test_status_toggle(client, make_user, make_delivery):
    owner = await make_user()
    delivery = await make_delivery(owner)

    response = await client.patch(
        f"/api/deliveries/{delivery.id}", json={"status": "INACTIVE"}, headers=auth_headers(owner)
    )
    assert response.json()["delivery"]["status"] == "INACTIVE"
    assert delivery.id not in [d["id"] for d in (await client.get("/api/deliveries")).json()["deliveries"]]

    invalid = await client.patch(
        f"/api/deliveries/{delivery.id}", json={"status": "DELIVERED"}, headers=auth_headers(owner)
    )
    assert invalid.status_code == 422


async def test_detail_includes_sender_rating(client, make_user, make_delivery):
    owner = await make_user(name="Awa")
    reviewer = await make_user()
    delivery = await make_delivery(owner)

    review = await client.post(
        "/api/reviews",
        json={"deliveryId": delivery.id, "revieweeId": owner.id, "rating": 4, "comment": "Bien"},
        headers=auth_headers(reviewer),
    )
    assert review.status_code == 201

    detail = (await client.get(f"/api/deliveries/{delivery.id}")).json()["delivery"]
    assert detail["sender"]["averageRating"] == 4.0
    assert detail["sender"]["reviewCount"] == 1
    assert detail["sender"]["isVerified"] is False
