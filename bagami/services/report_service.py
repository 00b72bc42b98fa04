"""
Servicio de Reportes - Listados, detalles y estadísticas del backoffice.
"""

import csv
import io
from datetime import datetime, timedelta
from typing import Optional, Tuple
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from bagami.core.exceptions import NotFoundError
from bagami.models import Conversation, Delivery, IdDocument, Transaction, User, Wallet
from bagami.models.user import ADMIN_ROLES
from bagami.services import delivery_service, identity_service, review_service, wallet_service
from bagami.services.audit_service import pagination


def _order(column, sort_order: str):
    return column.asc() if sort_order == "asc" else column.desc()


def _date_range(column, date_from: Optional[datetime], date_to: Optional[datetime]) -> list:
    conditions = []
    if date_from:
        conditions.append(column >= date_from)
    if date_to:
        # date_to incluye todo el día
        if date_to.hour == 0 and date_to.minute == 0 and date_to.second == 0:
            date_to = date_to + timedelta(days=1) - timedelta(microseconds=1)
        conditions.append(column <= date_to)
    return conditions


# ===========================================
# DASHBOARD
# ===========================================

async def total_revenue(db: AsyncSession) -> int:
    """Suma de platformFee en los Delivery Income completados."""
    result = await db.execute(
        select(Transaction.extra_data).where(
            Transaction.category == "Delivery Income",
            Transaction.status == "completed",
        )
    )
    total = 0
    for metadata in result.scalars().all():
        fee = (metadata or {}).get("platformFee")
        if isinstance(fee, (int, float)):
            total += fee
    return int(total)


async def dashboard_stats(db: AsyncSession) -> dict:
    week_ago = datetime.utcnow() - timedelta(days=7)

    async def count(model, *conditions) -> int:
        return (await db.execute(select(func.count(model.id)).where(*conditions))).scalar_one()

    return {
        "totalUsers": await count(User),
        "activeUsers": await count(User, User.is_active.is_(True)),
        "recentUsers": await count(User, User.created_at >= week_ago),
        "totalDeliveries": await count(Delivery, Delivery.deleted_at.is_(None)),
        "activeDeliveries": await count(
            Delivery, Delivery.deleted_at.is_(None), Delivery.status.in_(("PENDING", "IN_PROGRESS"))
        ),
        "recentDeliveries": await count(Delivery, Delivery.created_at >= week_ago),
        "totalTransactions": await count(Transaction),
        "totalRevenue": await total_revenue(db),
    }


# ===========================================
# USUARIOS
# ===========================================

USER_SORT_FIELDS = {
    "name": User.name,
    "role": User.role,
    "isActive": User.is_active,
    "createdAt": User.created_at,
}


async def list_users(
    db: AsyncSession,
    search: Optional[str] = None,
    role: str = "all",
    status: str = "all",
    verification: str = "all",
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    sort_field: str = "createdAt",
    sort_order: str = "desc",
    page: int = 1,
    limit: int = 20
) -> dict:
    conditions = _date_range(User.created_at, date_from, date_to)
    if search:
        pattern = f"%{search}%"
        conditions.append(or_(User.name.ilike(pattern), User.email.ilike(pattern), User.phone.ilike(pattern)))
    if role != "all":
        conditions.append(User.role == role)
    if status == "active":
        conditions.append(User.is_active.is_(True))
    elif status == "suspended":
        conditions.append(User.is_active.is_(False))

    query = select(User).where(*conditions).order_by(
        _order(USER_SORT_FIELDS.get(sort_field, User.created_at), sort_order)
    )
    users = (await db.execute(query)).scalars().all()

    rows = []
    for user in users:
        documents = await identity_service.list_user_documents(db, user.id)
        status_value = identity_service.verification_status(documents)
        if verification != "all" and status_value != verification:
            continue
        wallet = (await db.execute(select(Wallet).where(Wallet.user_id == user.id))).scalar_one_or_none()
        rows.append({
            "id": user.id,
            "name": user.name,
            "email": user.email,
            "phone": user.phone,
            "countryCode": user.country_code,
            "country": user.country,
            "role": user.role,
            "isActive": user.is_active,
            "createdAt": user.created_at.isoformat() if user.created_at else None,
            "idVerificationStatus": status_value,
            "walletBalance": wallet.balance if wallet else 0,
        })

    # El filtro de verificación se aplica después de la consulta
    page = max(page, 1)
    total = len(rows)
    start = (page - 1) * limit
    return {"users": rows[start:start + limit], "pagination": pagination(page, limit, total)}


EXPORT_HEADERS = [
    "ID", "Name", "Email", "Phone", "Role", "Status", "Country", "Deliveries", "Transactions", "Created At",
]


async def export_users_csv(
    db: AsyncSession,
    search: Optional[str] = None,
    role: str = "all",
    status: str = "all"
) -> Tuple[str, int]:
    """CSV con todas las celdas entre comillas. Retorna (csv, cantidad de usuarios)."""
    conditions = []
    if search:
        pattern = f"%{search}%"
        conditions.append(or_(User.name.ilike(pattern), User.email.ilike(pattern), User.phone.ilike(pattern)))
    if role != "all":
        conditions.append(User.role == role)
    if status == "active":
        conditions.append(User.is_active.is_(True))
    elif status == "suspended":
        conditions.append(User.is_active.is_(False))

    deliveries = (
        select(func.count(Delivery.id)).where(Delivery.sender_id == User.id).correlate(User).scalar_subquery()
    )
    transactions = (
        select(func.count(Transaction.id)).where(Transaction.user_id == User.id).correlate(User).scalar_subquery()
    )
    result = await db.execute(
        select(User, deliveries, transactions).where(*conditions).order_by(User.created_at.desc())
    )
    rows = result.all()

    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(EXPORT_HEADERS)
    for user, delivery_count, transaction_count in rows:
        writer.writerow([
            user.id,
            user.name or "",
            user.email or "",
            user.full_phone or "",
            user.role,
            "Active" if user.is_active else "Suspended",
            user.country or "",
            delivery_count,
            transaction_count,
            user.created_at.isoformat() if user.created_at else "",
        ])
    return buf.getvalue(), len(rows)


async def user_detail(db: AsyncSession, user_id: str) -> dict:
    user = await db.get(User, user_id)
    if not user:
        raise NotFoundError("Usuario no encontrado")

    documents = await identity_service.list_user_documents(db, user.id)
    wallet = await wallet_service.get_or_create_wallet(db, user.id)
    transactions, tx_total = await wallet_service.get_user_transactions(db, user.id, limit=20)
    deliveries = await delivery_service.list_user_deliveries(db, user.id)
    average, review_count = await review_service.get_user_rating(db, user.id)
    conversations = (await db.execute(
        select(func.count(Conversation.id)).where(
            or_(Conversation.participant1_id == user.id, Conversation.participant2_id == user.id)
        )
    )).scalar_one()

    return {
        "user": {
            "id": user.id,
            "name": user.name,
            "email": user.email,
            "phone": user.phone,
            "countryCode": user.country_code,
            "country": user.country,
            "role": user.role,
            "isActive": user.is_active,
            "language": user.language,
            "createdAt": user.created_at.isoformat() if user.created_at else None,
            "idVerificationStatus": identity_service.verification_status(documents),
        },
        "idDocuments": [identity_service.serialize_document(d) for d in documents],
        "wallet": wallet_service.serialize_wallet(wallet),
        "transactions": [wallet_service.serialize_transaction(t) for t in transactions],
        "transactionCount": tx_total,
        "deliveries": [delivery_service.serialize_delivery(d) for d in deliveries],
        "conversationCount": conversations,
        "averageRating": average,
        "reviewCount": review_count,
    }


async def user_stats(db: AsyncSession) -> dict:
    async def count(*conditions) -> int:
        return (await db.execute(select(func.count(User.id)).where(*conditions))).scalar_one()

    pending = (await db.execute(
        select(func.count(func.distinct(IdDocument.user_id))).where(IdDocument.verification_status == "pending")
    )).scalar_one()

    return {
        "total": await count(),
        "active": await count(User.is_active.is_(True)),
        "suspended": await count(User.is_active.is_(False)),
        "admins": await count(User.role.in_(ADMIN_ROLES)),
        "pendingVerifications": pending,
    }


# ===========================================
# PUBLICACIONES
# ===========================================

DELIVERY_SORT_FIELDS = {
    "createdAt": Delivery.created_at,
    "price": Delivery.price,
    "title": Delivery.title,
    "status": Delivery.status,
    "departureDate": Delivery.departure_date,
}


async def list_deliveries(
    db: AsyncSession,
    search: Optional[str] = None,
    type: str = "all",
    status: str = "all",
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    sort_field: str = "createdAt",
    sort_order: str = "desc",
    page: int = 1,
    limit: int = 20
) -> dict:
    conditions = _date_range(Delivery.created_at, date_from, date_to)
    if search:
        pattern = f"%{search}%"
        conditions.append(or_(
            Delivery.title.ilike(pattern),
            Delivery.description.ilike(pattern),
            Delivery.from_city.ilike(pattern),
            Delivery.to_city.ilike(pattern),
            Delivery.from_country.ilike(pattern),
            Delivery.to_country.ilike(pattern),
        ))
    if type != "all":
        conditions.append(Delivery.type == type)
    if status != "all":
        conditions.append(Delivery.status == status)
    if min_price is not None:
        conditions.append(Delivery.price >= min_price)
    if max_price is not None:
        conditions.append(Delivery.price <= max_price)

    page = max(page, 1)
    total = (await db.execute(select(func.count(Delivery.id)).where(*conditions))).scalar_one()
    result = await db.execute(
        select(Delivery, User)
        .join(User, User.id == Delivery.sender_id)
        .where(*conditions)
        .order_by(_order(DELIVERY_SORT_FIELDS.get(sort_field, Delivery.created_at), sort_order))
        .limit(limit)
        .offset((page - 1) * limit)
    )

    items = []
    for delivery, sender in result.all():
        item = delivery_service.serialize_delivery(delivery)
        item["sender"] = {"id": sender.id, "name": sender.name, "email": sender.email}
        items.append(item)
    return {"deliveries": items, "pagination": pagination(page, limit, total)}


async def delivery_detail(db: AsyncSession, delivery_id: str) -> dict:
    delivery = await delivery_service.get_delivery(db, delivery_id, include_deleted=True)
    sender = await db.get(User, delivery.sender_id)
    receiver = await db.get(User, delivery.receiver_id) if delivery.receiver_id else None
    conversations = (await db.execute(
        select(Conversation).where(Conversation.delivery_id == delivery.id)
    )).scalars().all()

    data = delivery_service.serialize_delivery(delivery)
    data.update({
        "sender": {"id": sender.id, "name": sender.name, "email": sender.email, "phone": sender.phone},
        "receiver": {"id": receiver.id, "name": receiver.name, "email": receiver.email} if receiver else None,
        "conversations": [
            {
                "id": c.id,
                "participant1Id": c.participant1_id,
                "participant2Id": c.participant2_id,
                "lastMessageAt": c.last_message_at.isoformat() if c.last_message_at else None,
            }
            for c in conversations
        ],
    })
    return data


async def delivery_stats(db: AsyncSession) -> dict:
    async def count(*conditions) -> int:
        return (await db.execute(select(func.count(Delivery.id)).where(*conditions))).scalar_one()

    stats = {
        "total": await count(),
        "requests": await count(Delivery.type == "request"),
        "offers": await count(Delivery.type == "offer"),
        "deleted": await count(Delivery.deleted_at.is_not(None)),
    }
    by_status = await db.execute(select(Delivery.status, func.count(Delivery.id)).group_by(Delivery.status))
    counts = dict(by_status.all())
    for status in ("PENDING", "INACTIVE", "IN_PROGRESS", "DELIVERED", "CANCELLED"):
        stats[status.lower()] = counts.get(status, 0)
    return stats


# ===========================================
# TRANSACCIONES
# ===========================================

TRANSACTION_SORT_FIELDS = {
    "createdAt": Transaction.created_at,
    "amount": Transaction.amount,
    "status": Transaction.status,
    "type": Transaction.type,
}


async def list_transactions(
    db: AsyncSession,
    search: Optional[str] = None,
    type: str = "all",
    status: str = "all",
    category: str = "all",
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    sort_field: str = "createdAt",
    sort_order: str = "desc",
    page: int = 1,
    limit: int = 20
) -> dict:
    conditions = _date_range(Transaction.created_at, date_from, date_to)
    if search:
        pattern = f"%{search}%"
        conditions.append(or_(
            Transaction.description.ilike(pattern),
            Transaction.reference_id.ilike(pattern),
            User.name.ilike(pattern),
            User.email.ilike(pattern),
        ))
    if type != "all":
        conditions.append(Transaction.type == type)
    if status != "all":
        conditions.append(Transaction.status == status)
    if category != "all":
        conditions.append(Transaction.category == category)

    page = max(page, 1)
    base = select(Transaction, User).join(User, User.id == Transaction.user_id).where(*conditions)
    total = (await db.execute(
        select(func.count(Transaction.id)).join(User, User.id == Transaction.user_id).where(*conditions)
    )).scalar_one()
    result = await db.execute(
        base.order_by(_order(TRANSACTION_SORT_FIELDS.get(sort_field, Transaction.created_at), sort_order))
        .limit(limit)
        .offset((page - 1) * limit)
    )

    items = []
    for transaction, user in result.all():
        item = wallet_service.serialize_transaction(transaction)
        item["user"] = {"id": user.id, "name": user.name, "email": user.email}
        items.append(item)
    return {"transactions": items, "pagination": pagination(page, limit, total)}


async def transaction_detail(db: AsyncSession, transaction_id: str) -> dict:
    transaction = await db.get(Transaction, transaction_id)
    if not transaction:
        raise NotFoundError("Transacción no encontrada")
    user = await db.get(User, transaction.user_id)
    wallet = await wallet_service.get_or_create_wallet(db, user.id)

    data = wallet_service.serialize_transaction(transaction)
    data["user"] = {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "phone": user.phone,
        "walletBalance": wallet.balance,
    }
    return data


async def transaction_stats(db: AsyncSession) -> dict:
    async def aggregate(*conditions):
        result = await db.execute(
            select(func.count(Transaction.id), func.coalesce(func.sum(Transaction.amount), 0)).where(*conditions)
        )
        count, amount = result.one()
        return count, int(amount)

    total, total_amount = await aggregate()
    completed, _ = await aggregate(Transaction.status == "completed")
    pending, _ = await aggregate(Transaction.status == "pending")
    failed, _ = await aggregate(Transaction.status == "failed")
    credits, credit_amount = await aggregate(Transaction.type == "credit", Transaction.status == "completed")
    debits, debit_amount = await aggregate(Transaction.type == "debit", Transaction.status == "completed")

    return {
        "total": total,
        "totalAmount": total_amount,
        "completed": completed,
        "pending": pending,
        "failed": failed,
        "credits": credits,
        "creditAmount": credit_amount,
        "debits": debits,
        "debitAmount": debit_amount,
        "totalFees": await total_revenue(db),
    }
