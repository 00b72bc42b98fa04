import json
import math
from datetime import datetime, timedelta

import pytest

from bagami.models import Conversation, Delivery
from bagami.services import settlement_service
from bagami.services.message_payloads import load_payload
from tests.conftest import auth_headers




@pytest.fixture
def deal(make_user, make_delivery, make_conversation):
    """Solicitud de envío entre un remitente (paga) y un viajero (entrega)."""
    async def _deal(balance: int = 50000, price: float = 10000):
        sender = await make_user(name="Awa", balance=balance)
        traveler = await make_user(name="Moussa")
        delivery = await make_delivery(sender, price=price)
        conversation = await make_conversation(delivery, traveler, sender)
        return sender, traveler, delivery, conversation

    return _deal


async def _pay(client, conversation, user, **body):
    return await client.post(
        f"/api/conversations/{conversation.id}/payment", json=body, headers=auth_headers(user)
    )


async def _code(client, conversation, user):
    response = await client.get(f"/api/conversations/{conversation.id}/messages", headers=auth_headers(user))
    payments = [m for m in response.json()["messages"] if m["messageType"] == "payment"]
    return load_payload(payments[-1]["content"])["deliveryCode"]


def test_delivery_code_is_six_digits():
    for _ in range(50):
        code = settlement_service.generate_delivery_code()
        assert len(code) == 6 and code.isdigit()
        assert 100000 <= int(code) <= 999999


def test_cooldown_alternates():
    assert settlement_service.cooldown_minutes_for(5) == 30
    assert settlement_service.cooldown_minutes_for(10) == 60
    assert settlement_service.cooldown_minutes_for(15) == 30


# =============================================================================
# PAGO
# =============================================================================

async def test_full_wallet_payment(client, deal, balance_of):
    sender, traveler, delivery, conversation = await deal()

    response = await _pay(client, conversation, sender)
    assert response.status_code == 200
    body = response.json()

    fee = math.floor(10000 * 0.175)
    payment = body["payment"]
    assert payment["amount"] == 10000
    assert payment["platformFee"] == fee
    assert payment["netAmount"] == 10000 - fee
    assert payment["paidById"] == sender.id
    assert len(payment["deliveryCode"]) == 6
    assert payment["transactionId"]
    assert body["message"]["messageType"] == "payment"
    assert json.loads(body["message"]["content"])["deliveryCode"] == payment["deliveryCode"]

    assert await balance_of(sender) == 40000

    transactions = (await client.get("/api/wallet/transactions", headers=auth_headers(sender))).json()
    debit = transactions["transactions"][0]
    assert debit["type"] == "debit"
    assert debit["category"] == "Delivery Payment"
    assert debit["referenceId"] == f"DELIVERY-{delivery.id}"


async def test_accepted_offer_sets_price(client, deal):
    sender, traveler, delivery, conversation = await deal()

    offer = await client.post(
        f"/api/conversations/{conversation.id}/offers",
        json={"price": 7500, "currency": "XOF"},
        headers=auth_headers(traveler),
    )
    await client.post(
        "/api/offers/respond",
        json={"messageId": offer.json()["message"]["id"], "action": "accept"},
        headers=auth_headers(sender),
    )

    response = await _pay(client, conversation, sender)
    assert response.json()["payment"]["amount"] == 7500


async def test_insufficient_balance_reports_shortfall(client, deal, balance_of):
    sender, traveler, delivery, conversation = await deal(balance=3000)

    response = await _pay(client, conversation, sender)
    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "INSUFFICIENT_BALANCE"
    assert body["balance"] == 3000
    assert body["required"] == 10000
    assert body["shortfall"] == 7000

    # Nada se debitó ni se publicó
    assert await balance_of(sender) == 3000
    messages = (await client.get(f"/api/conversations/{conversation.id}/messages", headers=auth_headers(sender))).json()
    assert not [m for m in messages["messages"] if m["messageType"] == "payment"]


async def test_direct_payment_covers_shortfall(client, deal, balance_of):
    sender, traveler, delivery, conversation = await deal(balance=3000)

    response = await _pay(
        client, conversation, sender, directPaymentAmount=7000, directPaymentMethod="orange_money"
    )
    assert response.status_code == 200
    breakdown = response.json()["payment"]["paymentBreakdown"]
    assert breakdown == {
        "totalAmount": 10000,
        "walletAmount": 3000,
        "directPaymentAmount": 7000,
        "directPaymentMethod": "orange_money",
    }
    assert await balance_of(sender) == 0

    transactions = (await client.get("/api/wallet/transactions", headers=auth_headers(sender))).json()
    payment_types = sorted(t["metadata"]["paymentType"] for t in transactions["transactions"]
                           if t["category"] == "Delivery Payment")
    assert payment_types == ["direct_payment", "partial_wallet"]


async def test_direct_payment_too_low(client, deal):
    sender, traveler, delivery, conversation = await deal(balance=3000)

    response = await _pay(client, conversation, sender, directPaymentAmount=1000)
    assert response.status_code == 400
    assert response.json()["code"] == "DIRECT_PAYMENT_TOO_LOW"


async def test_second_payment_conflicts(client, deal, balance_of):
    sender, traveler, delivery, conversation = await deal()

    assert (await _pay(client, conversation, sender)).status_code == 200
    response = await _pay(client, conversation, sender)
    assert response.status_code == 409
    assert response.json()["code"] == "PAYMENT_EXISTS"
    assert await balance_of(sender) == 40000


async def test_payment_on_deleted_delivery_forbidden(client, deal, session_maker):
    sender, traveler, delivery, conversation = await deal()
    async with session_maker() as session:
        row = await session.get(Delivery, delivery.id)
        row.deleted_at = datetime.utcnow()
        await session.commit()

    response = await _pay(client, conversation, sender)
    assert response.status_code == 403
    assert response.json()["code"] == "DELIVERY_DELETED"


async def test_non_participant_cannot_pay(client, deal, make_user):
    sender, traveler, delivery, conversation = await deal()
    stranger = await make_user(balance=50000)

    response = await _pay(client, conversation, stranger)
    assert response.status_code == 403


# =============================================================================
# CONFIRMACIÓN
# =============================================================================

async def test_confirm_delivery_credits_net_amount(client, deal, balance_of, fetch):
    sender, traveler, delivery, conversation = await deal()
    await _pay(client, conversation, sender)
    code = await _code(client, conversation, traveler)

    response = await client.post(
        f"/api/conversations/{conversation.id}/confirm-delivery",
        json={"code": code},
        headers=auth_headers(traveler),
    )
    assert response.status_code == 200
    body = response.json()

    net = 10000 - math.floor(10000 * 0.175)
    assert body["confirmation"]["paymentAmount"] == net
    assert body["message"]["messageType"] == "deliveryConfirmation"
    assert await balance_of(traveler) == net

    updated = await fetch(Delivery, delivery.id)
    assert updated.status == "DELIVERED"
    assert updated.receiver_id == traveler.id

    # Con el pago confirmado la publicación se puede eliminar
    eligibility = await client.get(
        f"/api/deliveries/{delivery.id}/deletion-eligibility", headers=auth_headers(sender)
    )
    assert eligibility.json()["canDelete"] is True


async def test_payer_cannot_confirm(client, deal):
    sender, traveler, delivery, conversation = await deal()
    await _pay(client, conversation, sender)
    code = await _code(client, conversation, sender)

    response = await client.post(
        f"/api/conversations/{conversation.id}/confirm-delivery",
        json={"code": code},
        headers=auth_headers(sender),
    )
    assert response.status_code == 403


async def test_confirm_without_payment(client, deal):
    sender, traveler, delivery, conversation = await deal()
    response = await client.post(
        f"/api/conversations/{conversation.id}/confirm-delivery",
        json={"code": "123456"},
        headers=auth_headers(traveler),
    )
    assert response.status_code == 400
    assert response.json()["code"] == "NO_PAYMENT"


async def test_confirm_ignores_payment_message_without_settlement(
    client, make_user, make_delivery, make_conversation, balance_of
):
    owner = await make_user()
    traveler = await make_user()
    delivery = await make_delivery(owner)
    conversation = await make_conversation(delivery, traveler, owner, messages=[
        (traveler, "payment", {
            "type": "payment",
            "amount": 1000000,
            "netAmount": 1000000,
            "deliveryCode": "111111",
            "paidById": owner.id,
        }),
    ])

    response = await client.post(
        f"/api/conversations/{conversation.id}/confirm-delivery",
        json={"code": "111111"},
        headers=auth_headers(traveler),
    )
    assert response.status_code == 400
    assert response.json()["code"] == "NO_PAYMENT"
    assert await balance_of(traveler) == 0


async def test_settlement_record_drives_confirmation(client, deal, fetch):
    sender, traveler, delivery, conversation = await deal()
    payment = (await _pay(client, conversation, sender)).json()["payment"]

    stored = await fetch(Conversation, conversation.id)
    record = stored.extra_data[settlement_service.PAYMENT_KEY]
    assert record["deliveryCode"] == payment["deliveryCode"]
    assert record["netAmount"] == payment["netAmount"]
    assert record["paidById"] == sender.id


async def test_confirm_twice_conflicts(client, deal):
    sender, traveler, delivery, conversation = await deal()
    await _pay(client, conversation, sender)
    code = await _code(client, conversation, traveler)
    url = f"/api/conversations/{conversation.id}/confirm-delivery"

    assert (await client.post(url, json={"code": code}, headers=auth_headers(traveler))).status_code == 200
    response = await client.post(url, json={"code": code}, headers=auth_headers(traveler))
    assert response.status_code == 409
    assert response.json()["code"] == "ALREADY_CONFIRMED"


async def test_wrong_codes_trigger_cooldown(client, deal, fetch):
    sender, traveler, delivery, conversation = await deal()
    await _pay(client, conversation, sender)
    code = await _code(client, conversation, traveler)
    wrong = "000000" if code != "000000" else "111111"
    url = f"/api/conversations/{conversation.id}/confirm-delivery"

    for attempt in range(1, 5):
        response = await client.post(url, json={"code": wrong}, headers=auth_headers(traveler))
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_DELIVERY_CODE"
        assert response.json()["attemptsRemaining"] == 5 - attempt

    # El contador persiste aunque la request falle
    stored = await fetch(Conversation, conversation.id)
    assert stored.extra_data["deliveryCodeAttempts"] == 4

    response = await client.post(url, json={"code": wrong}, headers=auth_headers(traveler))
    assert response.status_code == 429
    assert response.json()["cooldownMinutes"] == 30

    # Durante el cooldown ni el código correcto pasa
    response = await client.post(url, json={"code": code}, headers=auth_headers(traveler))
    assert response.status_code == 429


async def test_second_cycle_uses_long_cooldown(client, deal, session_maker):
    sender, traveler, delivery, conversation = await deal()
    await _pay(client, conversation, sender)
    code = await _code(client, conversation, traveler)
    wrong = "000000" if code != "000000" else "111111"

    async with session_maker() as session:
        row = await session.get(Conversation, conversation.id)
        row.extra_data = {
            **row.extra_data,
            "deliveryCodeAttempts": 9,
            "deliveryCodeCooldownUntil": (datetime.utcnow() - timedelta(minutes=1)).isoformat(),
        }
        await session.commit()

    response = await client.post(
        f"/api/conversations/{conversation.id}/confirm-delivery",
        json={"code": wrong},
        headers=auth_headers(traveler),
    )
    assert response.status_code == 429
    assert response.json()["cooldownMinutes"] == 60


async def test_successful_code_resets_attempts(client, deal, fetch):
    sender, traveler, delivery, conversation = await deal()
    await _pay(client, conversation, sender)
    code = await _code(client, conversation, traveler)
    wrong = "000000" if code != "000000" else "111111"
    url = f"/api/conversations/{conversation.id}/confirm-delivery"

    await client.post(url, json={"code": wrong}, headers=auth_headers(traveler))
    response = await client.post(url, json={"code": code}, headers=auth_headers(traveler))
    assert response.status_code == 200

    stored = await fetch(Conversation, conversation.id)
    assert "deliveryCodeAttempts" not in stored.extra_data
