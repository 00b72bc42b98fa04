from bagami.models import Delivery
from bagami.services import deletion_service
from tests.conftest import auth_headers

PAYMENT = {"type": "payment", "amount": 10000, "deliveryCode": "123456"}
CONFIRMATION = {"type": "deliveryConfirmation", "grossAmount": 10000}


def test_classify_pools_conversations():
    assert deletion_service.classify({}) == {"canDelete": True, "reason": None}
    assert deletion_service.classify({"c1": {"text", "offer"}})["canDelete"] is True
    assert deletion_service.classify({"c1": {"payment", "deliveryConfirmation"}})["canDelete"] is True
    assert deletion_service.classify({"c1": {"payment"}}) == {"canDelete": False, "reason": "paymentPending"}

    # Una confirmación en cualquier conversación libera el pago
    mixed = deletion_service.classify({
        "c1": {"payment"},
        "c2": {"text", "deliveryConfirmation"},
    })
    assert mixed == {"canDelete": True, "reason": None}


async def test_can_delete_without_conversations(client, make_user, make_delivery, fetch):
    owner = await make_user()
    delivery = await make_delivery(owner)

    response = await client.get(
        f"/api/deliveries/{delivery.id}/deletion-eligibility", headers=auth_headers(owner)
    )
    assert response.json() == {"canDelete": True, "reason": None}

    response = await client.delete(f"/api/deliveries/{delivery.id}", headers=auth_headers(owner))
    assert response.status_code == 200
    assert (await fetch(Delivery, delivery.id)).deleted_at is not None


async def test_pending_payment_blocks_delete(client, make_user, make_delivery, make_conversation, fetch):
    owner = await make_user()
    traveler = await make_user()
    delivery = await make_delivery(owner)
    await make_conversation(delivery, traveler, owner, messages=[
        (traveler, "text", "Bonjour"),
        (owner, "payment", PAYMENT),
    ])

    response = await client.get(
        f"/api/deliveries/{delivery.id}/deletion-eligibility", headers=auth_headers(owner)
    )
    assert response.json() == {"canDelete": False, "reason": "paymentPending"}

    response = await client.delete(f"/api/deliveries/{delivery.id}", headers=auth_headers(owner))
    assert response.status_code == 409
    assert response.json()["reason"] == "paymentPending"
    assert (await fetch(Delivery, delivery.id)).deleted_at is None


async def test_confirmed_payment_allows_delete(client, make_user, make_delivery, make_conversation):
    owner = await make_user()
    traveler = await make_user()
    delivery = await make_delivery(owner)
    await make_conversation(delivery, traveler, owner, messages=[
        (owner, "payment", PAYMENT),
        (traveler, "deliveryConfirmation", CONFIRMATION),
    ])

    response = await client.delete(f"/api/deliveries/{delivery.id}", headers=auth_headers(owner))
    assert response.status_code == 200


async def test_confirmation_in_another_conversation_unblocks(client, make_user, make_delivery, make_conversation):
    owner = await make_user()
    first = await make_user()
    second = await make_user()
    delivery = await make_delivery(owner)
    await make_conversation(delivery, first, owner, messages=[(owner, "payment", PAYMENT)])
    await make_conversation(delivery, second, owner, messages=[
        (second, "deliveryConfirmation", CONFIRMATION),
    ])

    response = await client.get(
        f"/api/deliveries/{delivery.id}/deletion-eligibility", headers=auth_headers(owner)
    )
    assert response.json() == {"canDelete": True, "reason": None}


async def test_payment_in_any_conversation_blocks(client, make_user, make_delivery, make_conversation):
    owner = await make_user()
    first = await make_user()
    second = await make_user()
    delivery = await make_delivery(owner)
    await make_conversation(delivery, first, owner, messages=[(first, "text", "Bonjour")])
    await make_conversation(delivery, second, owner, messages=[(owner, "payment", PAYMENT)])

    response = await client.get(
        f"/api/deliveries/{delivery.id}/deletion-eligibility", headers=auth_headers(owner)
    )
    assert response.json() == {"canDelete": False, "reason": "paymentPending"}


async def test_lookup_failure_fails_closed(client, make_user, make_delivery, monkeypatch, fetch):
    owner = await make_user()
    delivery = await make_delivery(owner)

    async def broken(*args, **kwargs):
        raise RuntimeError("connection lost")

    monkeypatch.setattr(deletion_service, "_load_conversation_message_types", broken)

    response = await client.get(
        f"/api/deliveries/{delivery.id}/deletion-eligibility", headers=auth_headers(owner)
    )
    assert response.json() == {"canDelete": False, "reason": "verificationError"}

    response = await client.delete(f"/api/deliveries/{delivery.id}", headers=auth_headers(owner))
    assert response.status_code == 409
    assert response.json()["reason"] == "verificationError"
    assert (await fetch(Delivery, delivery.id)).deleted_at is None


async def test_only_owner_can_delete(client, make_user, make_delivery):
    owner = await make_user()
    other = await make_user()
    delivery = await make_delivery(owner)

    response = await client.delete(f"/api/deliveries/{delivery.id}", headers=auth_headers(other))
    assert response.status_code == 403


async def test_deleted_delivery_disappears_from_search(client, make_user, make_delivery):
    owner = await make_user()
    delivery = await make_delivery(owner)
    await client.delete(f"/api/deliveries/{delivery.id}", headers=auth_headers(owner))

    response = await client.get("/api/deliveries")
    assert delivery.id not in [d["id"] for d in response.json()["deliveries"]]
    assert (await client.get(f"/api/deliveries/{delivery.id}")).status_code == 404
