"""
Servicio de Liquidación - Pago de una entrega y liberación de fondos.

Flujo de pago (una sola transacción de base de datos):
    1. Comisión de la plataforma sobre el precio acordado
    2. Verificación del saldo del pagador (fila del wallet bloqueada)
    3. Sin saldo suficiente y sin pago directo: se informa el faltante
    4. Débito del wallet (total, o saldo disponible + pago directo del faltante)
    5. Mensaje payment en el chat con el código de entrega

Flujo de confirmación: el transportista ingresa el código de 6 dígitos,
recibe el monto neto en su wallet y la entrega queda DELIVERED.
"""

import secrets
from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from bagami.core.config import settings
from bagami.core.exceptions import (
    ConflictError,
    CooldownError,
    ForbiddenError,
    InsufficientBalanceError,
    ValidationError,
)
from bagami.models import Delivery, Message, User
from bagami.services import conversation_service, platform_fee_service, wallet_service
from bagami.services.message_payloads import (
    confirmation_payload,
    dump_payload,
    payment_payload,
)

logger = structlog.get_logger()

ATTEMPTS_KEY = "deliveryCodeAttempts"
COOLDOWN_KEY = "deliveryCodeCooldownUntil"
PAYMENT_KEY = "settledPayment"


def generate_delivery_code() -> str:
    """Código numérico de 6 dígitos (100000-999999)."""
    return str(100000 + secrets.randbelow(900000))


async def _count_messages(db: AsyncSession, conversation_id: str, message_type: str) -> int:
    result = await db.execute(
        select(func.count(Message.id)).where(
            Message.conversation_id == conversation_id,
            Message.message_type == message_type,
        )
    )
    return result.scalar_one()


# ===========================================
# PAGO
# ===========================================

async def settle_payment(
    db: AsyncSession,
    conversation_id: str,
    payer: User,
    direct_payment_amount: Optional[int] = None,
    direct_payment_method: Optional[str] = None
) -> dict:
    conversation = await conversation_service.get_conversation(db, conversation_id, payer.id, lock=True)
    delivery = await conversation_service.get_open_delivery(db, conversation.delivery_id)

    if await _count_messages(db, conversation.id, "payment"):
        raise ConflictError("Esta conversación ya tiene un pago", code="PAYMENT_EXISTS")

    agreed_price = await conversation_service.get_agreed_price(db, conversation, delivery)
    if agreed_price is None or agreed_price <= 0:
        raise ValidationError("No hay un precio acordado para esta entrega", code="NO_AGREED_PRICE")
    amount = int(round(float(agreed_price)))
    currency = delivery.currency or settings.default_currency

    # 1. Comisión
    fee = await platform_fee_service.calculate_platform_fee(db, amount)

    # 2. Saldo
    wallet = await wallet_service.get_or_create_wallet(db, payer.id, lock=True)
    base_metadata = {
        "conversationId": conversation.id,
        "deliveryId": delivery.id,
        "deliveryType": delivery.type,
        "fromCity": delivery.from_city,
        "toCity": delivery.to_city,
    }
    reference = f"DELIVERY-{delivery.id}"
    breakdown = None
    transaction_id = None

    if wallet.balance >= amount:
        # 4a. Débito total
        transaction, wallet = await wallet_service.debit_wallet(
            db, payer.id, amount,
            description=f"Wallet payment for delivery: {delivery.title}",
            category="Delivery Payment",
            reference_id=reference,
            metadata={
                **base_metadata,
                "grossAmount": fee["grossAmount"],
                "platformFee": fee["feeAmount"],
                "netAmount": fee["netAmount"],
            },
        )
        transaction_id = transaction.id
    else:
        shortfall = amount - wallet.balance

        # 3. Sin pago directo no se puede continuar
        if not direct_payment_amount:
            logger.info("payment_insufficient_balance", user_id=payer.id, balance=wallet.balance, required=amount)
            raise InsufficientBalanceError(wallet.balance, amount, wallet.currency)
        if direct_payment_amount < shortfall:
            raise ValidationError(
                "El pago directo no cubre el faltante",
                code="DIRECT_PAYMENT_TOO_LOW",
                extra={"shortfall": shortfall},
            )

        # 4b. Todo el saldo disponible + registro del pago directo
        wallet_amount = wallet.balance
        split_metadata = {
            **base_metadata,
            "totalAmount": amount,
            "walletAmount": wallet_amount,
            "directPaymentAmount": shortfall,
        }
        if wallet_amount > 0:
            await wallet_service.debit_wallet(
                db, payer.id, wallet_amount,
                description=f"Wallet payment for delivery: {delivery.title}",
                category="Delivery Payment",
                reference_id=reference,
                metadata={**split_metadata, "paymentType": "partial_wallet"},
            )
        await wallet_service.record_transaction(
            db, payer.id, "debit", shortfall,
            description=f"Direct payment for delivery: {delivery.title}",
            category="Delivery Payment",
            reference_id=reference,
            metadata={
                **split_metadata,
                "paymentType": "direct_payment",
                "paymentMethod": direct_payment_method,
            },
        )
        breakdown = {
            "totalAmount": amount,
            "walletAmount": wallet_amount,
            "directPaymentAmount": shortfall,
            "directPaymentMethod": direct_payment_method,
        }

    # 5. Mensaje de pago
    payload = payment_payload(
        payer,
        delivery,
        amount,
        currency,
        fee,
        delivery_code=generate_delivery_code(),
        new_balance=wallet.balance,
        paid_at=datetime.utcnow(),
        transaction_id=transaction_id,
        breakdown=breakdown,
    )
    message = await conversation_service.add_message(
        db, conversation, payer.id, dump_payload(payload), "payment"
    )

    # confirm_delivery valida contra esta copia, nunca contra el contenido del mensaje
    state = dict(conversation.extra_data or {})
    state[PAYMENT_KEY] = {**payload, "messageId": message.id}
    conversation.extra_data = state

    logger.info(
        "payment_settled",
        conversation_id=conversation.id,
        delivery_id=delivery.id,
        amount=amount,
        platform_fee=fee["feeAmount"],
        direct_payment=breakdown is not None,
    )
    return {
        "success": True,
        "message": conversation_service.serialize_message(message),
        "payment": payload,
        "fee": fee,
        "wallet": wallet_service.serialize_wallet(wallet),
    }


# ===========================================
# CONFIRMACIÓN DE ENTREGA
# ===========================================

def cooldown_minutes_for(attempts: int) -> int:
    """Ciclos impares: cooldown corto; ciclos pares: cooldown largo."""
    cycle = attempts // settings.delivery_code_max_attempts
    if cycle % 2 == 1:
        return settings.delivery_code_short_cooldown_minutes
    return settings.delivery_code_long_cooldown_minutes


async def _register_failed_attempt(db: AsyncSession, conversation) -> None:
    state = dict(conversation.extra_data or {})
    attempts = int(state.get(ATTEMPTS_KEY, 0)) + 1
    state[ATTEMPTS_KEY] = attempts
    max_attempts = settings.delivery_code_max_attempts

    cooldown = None
    if attempts % max_attempts == 0:
        minutes = cooldown_minutes_for(attempts)
        cooldown = datetime.utcnow() + timedelta(minutes=minutes)
        state[COOLDOWN_KEY] = cooldown.isoformat()
    conversation.extra_data = state

    # El contador debe persistir aunque la request termine en error
    await db.commit()

    logger.warning("delivery_code_invalid", conversation_id=conversation.id, attempts=attempts)
    if cooldown:
        raise CooldownError(
            f"Demasiados intentos. Intenta de nuevo en {minutes} minutos",
            extra={"cooldownMinutes": minutes, "cooldownUntil": cooldown.isoformat()},
        )
    raise ValidationError(
        "Código de entrega incorrecto",
        code="INVALID_DELIVERY_CODE",
        extra={"attemptsRemaining": max_attempts - attempts % max_attempts},
    )


async def confirm_delivery(db: AsyncSession, conversation_id: str, user: User, code: str) -> dict:
    conversation = await conversation_service.get_conversation(db, conversation_id, user.id, lock=True)

    state = dict(conversation.extra_data or {})
    payment = state.get(PAYMENT_KEY)
    if not payment:
        raise ValidationError("Esta conversación no tiene un pago", code="NO_PAYMENT")

    if payment.get("paidById") == user.id:
        raise ForbiddenError("No puedes confirmar tu propio pago")
    if await _count_messages(db, conversation.id, "deliveryConfirmation"):
        raise ConflictError("La entrega ya fue confirmada", code="ALREADY_CONFIRMED")

    cooldown_until = state.get(COOLDOWN_KEY)
    now = datetime.utcnow()
    if cooldown_until and now < datetime.fromisoformat(cooldown_until):
        remaining = datetime.fromisoformat(cooldown_until) - now
        raise CooldownError(
            "Debes esperar antes de volver a intentar",
            extra={
                "remainingMinutes": int(remaining.total_seconds() // 60) + 1,
                "cooldownUntil": cooldown_until,
            },
        )

    if str(code).strip() != str(payment.get("deliveryCode")):
        await _register_failed_attempt(db, conversation)

    state.pop(ATTEMPTS_KEY, None)
    state.pop(COOLDOWN_KEY, None)
    conversation.extra_data = state

    gross = payment["amount"]
    net = payment["netAmount"]

    delivery = await db.get(Delivery, conversation.delivery_id)
    title = payment.get("deliveryTitle") or (delivery.title if delivery else "")

    transaction, wallet = await wallet_service.credit_wallet(
        db, user.id, net,
        description=f"Payment received for delivery: {title}",
        category="Delivery Income",
        reference_id=f"DELIVERY-CONFIRM-{conversation.delivery_id}",
        metadata={
            "conversationId": conversation.id,
            "deliveryId": conversation.delivery_id,
            "grossAmount": gross,
            "platformFee": payment.get("platformFee"),
            "netAmount": net,
            "paidById": payment.get("paidById"),
            "originalTransactionId": payment.get("transactionId"),
        },
    )

    if delivery:
        delivery.status = "DELIVERED"
        delivery.receiver_id = user.id

    confirmed_at = datetime.utcnow()
    payload = confirmation_payload(user, payment, confirmed_at, transaction.id, wallet.balance)
    message = await conversation_service.add_message(
        db, conversation, user.id, dump_payload(payload), "deliveryConfirmation"
    )

    logger.info(
        "delivery_confirmed",
        conversation_id=conversation.id,
        delivery_id=conversation.delivery_id,
        net_amount=net,
    )
    return {
        "success": True,
        "message": conversation_service.serialize_message(message),
        "confirmation": payload,
        "wallet": wallet_service.serialize_wallet(wallet),
    }
