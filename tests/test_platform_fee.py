import math

import pytest

from bagami.models import PlatformSetting
from bagami.services.platform_fee_service import compute_platform_fee


@pytest.mark.parametrize("amount", [1, 7, 999, 10000, 123457, 2500000])
def test_fee_plus_net_equals_amount(amount):
    result = compute_platform_fee(amount, 0.175, min_fee=0, max_fee=None)
    assert result["feeAmount"] + result["netAmount"] == amount
    assert result["feeAmount"] == math.floor(amount * 0.175)


def test_fee_is_clamped():
    assert compute_platform_fee(10000, 0.25, min_fee=0, max_fee=1000)["feeAmount"] == 1000
    assert compute_platform_fee(100, 0.25, min_fee=50, max_fee=None)["feeAmount"] == 50

    clamped = compute_platform_fee(10000, 0.25, min_fee=0, max_fee=1000)
    assert clamped["netAmount"] == 9000


def test_fee_percentage_label():
    assert compute_platform_fee(1000, 0.175, min_fee=0)["feePercentage"] == "17.5%"
    assert compute_platform_fee(1000, 0.1, min_fee=0)["feePercentage"] == "10.0%"


async def test_calculate_uses_default_rate(client):
    response = await client.post("/api/platform-fee/calculate", json={"amount": 10000})
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["feeRate"] == 0.175
    assert body["feeAmount"] == math.floor(10000 * 0.175)
    assert body["feeAmount"] + body["netAmount"] == 10000


async def test_calculate_uses_stored_rate(client, session_maker):
    async with session_maker() as session:
        session.add(PlatformSetting(key="commission_rate", value="0.25"))
        await session.commit()

    response = await client.post("/api/platform-fee/calculate", json={"amount": 8000})
    body = response.json()
    assert body["feeAmount"] == 2000
    assert body["netAmount"] == 6000
    assert body["feePercentage"] == "25.0%"


@pytest.mark.parametrize("stored", ["abc", "1.5", "-0.1"])
async def test_invalid_stored_rate_falls_back(client, session_maker, stored):
    async with session_maker() as session:
        session.add(PlatformSetting(key="commission_rate", value=stored))
        await session.commit()

    response = await client.post("/api/platform-fee/calculate", json={"amount": 1000})
    assert response.json()["feeRate"] == 0.175


@pytest.mark.parametrize("payload", [{}, {"amount": "100"}, {"amount": 0}, {"amount": True}, [1, 2]])
async def test_calculate_rejects_bad_amount(client, payload):
    response = await client.post("/api/platform-fee/calculate", json=payload)
    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"


@pytest.mark.parametrize("raw", ['{"amount": NaN}', '{"amount": Infinity}', '{"amount": -Infinity}'])
async def test_calculate_rejects_non_finite_amount(client, raw):
    response = await client.post(
        "/api/platform-fee/calculate", content=raw, headers={"Content-Type": "application/json"}
    )
    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"
