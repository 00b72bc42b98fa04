"""
Payloads de los mensajes tipados.

Los mensajes offer, payment, deliveryConfirmation y system guardan un
objeto JSON en Message.content; los de tipo text guardan texto plano.
"""

import json
from datetime import datetime
from typing import Optional

TYPED_MESSAGES = ("offer", "payment", "deliveryConfirmation")
# Solo los escribe el servicio de liquidación
SETTLEMENT_MESSAGES = ("payment", "deliveryConfirmation")


def dump_payload(payload: dict) -> str:
    return json.dumps(payload, ensure_ascii=False)


def load_payload(content: Optional[str]) -> Optional[dict]:
    """Retorna el objeto JSON del mensaje o None si es texto plano."""
    if not content:
        return None
    try:
        payload = json.loads(content)
    except ValueError:
        return None
    return payload if isinstance(payload, dict) else None


def isoformat(value: datetime) -> str:
    return value.isoformat(timespec="milliseconds") + "Z"


def offer_payload(delivery, price, currency: str, message: Optional[str]) -> dict:
    return {
        "type": "offer",
        "price": price,
        "currency": currency,
        "message": message or "",
        "deliveryId": delivery.id,
        "deliveryTitle": delivery.title,
        "originalPrice": delivery.price,
        "status": "pending",
    }


def offer_response_payload(offer: dict, accepted: bool) -> dict:
    return {
        "type": "offerAccepted" if accepted else "offerDeclined",
        "price": offer.get("price"),
        "currency": offer.get("currency"),
    }


def personalized_payload(delivery, poster, current_user) -> dict:
    """
    Mensaje de sistema inicial de una conversación.
    Cada participante ve la plantilla que le corresponde.
    """
    poster_name = poster.name or "Unknown User"
    current_name = current_user.name or "Unknown User"

    if delivery.type == "request":
        return {
            "type": "personalized",
            "deliveryType": "request",
            "acceptorId": current_user.id,
            "acceptorName": current_name,
            "requesterId": delivery.sender_id,
            "requesterName": poster_name,
            "acceptorMessage": f"You accepted {poster_name}'s delivery request",
            "requesterMessage": f"{current_name} accepted your delivery request",
        }

    route = f"{delivery.from_city}, {delivery.from_country} to {delivery.to_city}, {delivery.to_country}"
    return {
        "type": "personalized",
        "deliveryType": "offer",
        "requesterId": current_user.id,
        "requesterName": current_name,
        "offerId": delivery.sender_id,
        "offerName": poster_name,
        "requesterMessage": f"You are requesting {poster_name}'s approval for delivery offer from {route}",
        "offerMessage": f"{current_name} is requesting your approval for delivery offer",
    }


def payment_payload(
    payer,
    delivery,
    amount: int,
    currency: str,
    fee: dict,
    delivery_code: str,
    new_balance: int,
    paid_at: datetime,
    transaction_id: Optional[str] = None,
    breakdown: Optional[dict] = None
) -> dict:
    payload = {
        "type": "payment",
        "amount": amount,
        "currency": currency,
        "paidBy": payer.name,
        "paidById": payer.id,
        "deliveryId": delivery.id,
        "deliveryTitle": delivery.title,
        "deliveryType": delivery.type,
        "paidAt": isoformat(paid_at),
        "status": "completed",
        "deliveryCode": delivery_code,
        "newBalance": new_balance,
        "platformFee": fee["feeAmount"],
        "netAmount": fee["netAmount"],
        "feeRate": fee["feeRate"],
        "feePercentage": fee["feePercentage"],
    }
    if breakdown:
        payload["paymentBreakdown"] = breakdown
    else:
        payload["transactionId"] = transaction_id
    return payload


def confirmation_payload(
    confirmer,
    payment: dict,
    confirmed_at: datetime,
    credit_transaction_id: str,
    new_balance: int
) -> dict:
    return {
        "type": "deliveryConfirmation",
        "confirmedBy": confirmer.name,
        "confirmedById": confirmer.id,
        "confirmedAt": isoformat(confirmed_at),
        "grossAmount": payment.get("amount"),
        "platformFee": payment.get("platformFee"),
        "paymentAmount": payment.get("netAmount"),
        "paymentCurrency": payment.get("currency"),
        "paidBy": payment.get("paidBy"),
        "deliveredBy": confirmer.name,
        "creditTransactionId": credit_transaction_id,
        "newBalance": new_balance,
    }
