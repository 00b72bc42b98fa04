"""
Servicio del Backoffice - Acceso de operadores y acciones de moderación.

Todas las acciones que cambian estado dejan un registro en admin_actions.
"""

from datetime import datetime
from typing import Optional, List
from fastapi import Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from bagami.core.config import settings
from bagami.core.exceptions import (
    AuthenticationError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from bagami.core.security import (
    BackofficeContext,
    create_access_token,
    create_subadmin_token,
    get_password_hash,
    verify_password,
)
from bagami.models import IdDocument, Notification, PlatformSetting, Subadmin, User
from bagami.models.admin import PERMISSIONS
from bagami.models.user import ADMIN_ROLES
from bagami.services import audit_service, notification_service, platform_fee_service, wallet_service

logger = structlog.get_logger()


# ===========================================
# ACCESO
# ===========================================

async def admin_login(db: AsyncSession, email: str, password: str) -> dict:
    result = await db.execute(select(User).where(User.email == email.strip().lower()))
    user = result.scalar_one_or_none()
    if not user or not verify_password(password, user.password_hash):
        raise AuthenticationError("Credenciales inválidas")
    if not user.is_admin:
        raise ForbiddenError("Acceso reservado a administradores")

    logger.info("backoffice_login", admin_id=user.id)
    return {
        "token": create_access_token(user.id, extra_claims={"role": user.role}),
        "user": {"id": user.id, "email": user.email, "name": user.name, "role": user.role},
        "permissions": list(PERMISSIONS),
    }


async def subadmin_login(db: AsyncSession, email: str, password: str) -> dict:
    result = await db.execute(select(Subadmin).where(Subadmin.email == email.strip().lower()))
    subadmin = result.scalar_one_or_none()
    if not subadmin or not verify_password(password, subadmin.password_hash):
        raise AuthenticationError("Credenciales inválidas")
    if not subadmin.is_active:
        raise ForbiddenError("Cuenta de subadmin desactivada")

    permissions = subadmin.permissions or []
    logger.info("subadmin_login", subadmin_id=subadmin.id)
    return {
        "token": create_subadmin_token(subadmin.id, subadmin.email, permissions),
        "subadmin": serialize_subadmin(subadmin),
    }


# ===========================================
# SUBADMINS
# ===========================================

def _validate_permissions(permissions: List[str]) -> List[str]:
    unknown = [p for p in permissions if p not in PERMISSIONS]
    if unknown:
        raise ValidationError(f"Permisos desconocidos: {', '.join(unknown)}")
    return list(dict.fromkeys(permissions))


async def list_subadmins(db: AsyncSession) -> list:
    result = await db.execute(select(Subadmin).order_by(Subadmin.created_at.desc()))
    return [serialize_subadmin(s) for s in result.scalars().all()]


async def create_subadmin(
    db: AsyncSession,
    ctx: BackofficeContext,
    email: str,
    password: str,
    permissions: List[str],
    name: Optional[str] = None,
    role_title: Optional[str] = None,
    request: Optional[Request] = None
) -> Subadmin:
    if not permissions:
        raise ValidationError("Se requiere al menos un permiso")
    permissions = _validate_permissions(permissions)
    email = email.strip().lower()

    existing = await db.execute(select(Subadmin.id).where(Subadmin.email == email))
    if existing.scalar_one_or_none():
        raise ConflictError("Ya existe un subadmin con este email", code="EMAIL_TAKEN")

    subadmin = Subadmin(
        email=email,
        password_hash=get_password_hash(password),
        name=name,
        role_title=role_title,
        permissions=permissions,
        is_active=True,
        created_by_id=ctx.actor_id,
    )
    db.add(subadmin)
    await db.flush()

    await audit_service.log_action(
        db, ctx, "CREATE_SUBADMIN", "Subadmin", subadmin.id,
        {"email": email, "permissions": permissions}, request,
    )
    return subadmin


async def update_subadmin(
    db: AsyncSession,
    ctx: BackofficeContext,
    subadmin_id: str,
    changes: dict,
    request: Optional[Request] = None
) -> Subadmin:
    subadmin = await db.get(Subadmin, subadmin_id)
    if not subadmin:
        raise NotFoundError("Subadmin no encontrado")

    if "permissions" in changes and changes["permissions"] is not None:
        if not changes["permissions"]:
            raise ValidationError("Se requiere al menos un permiso")
        subadmin.permissions = _validate_permissions(changes["permissions"])
    if changes.get("password"):
        subadmin.password_hash = get_password_hash(changes["password"])
    for field in ("name", "role_title", "is_active"):
        if field in changes and changes[field] is not None:
            setattr(subadmin, field, changes[field])
    await db.flush()

    logged = {k: v for k, v in changes.items() if k != "password"}
    await audit_service.log_action(db, ctx, "UPDATE_SUBADMIN", "Subadmin", subadmin.id, logged, request)
    return subadmin


async def delete_subadmin(
    db: AsyncSession,
    ctx: BackofficeContext,
    subadmin_id: str,
    request: Optional[Request] = None
) -> None:
    subadmin = await db.get(Subadmin, subadmin_id)
    if not subadmin:
        raise NotFoundError("Subadmin no encontrado")
    email = subadmin.email
    await db.delete(subadmin)
    await db.flush()
    await audit_service.log_action(db, ctx, "DELETE_SUBADMIN", "Subadmin", subadmin_id, {"email": email}, request)


def serialize_subadmin(subadmin: Subadmin) -> dict:
    return {
        "id": subadmin.id,
        "email": subadmin.email,
        "name": subadmin.name,
        "roleTitle": subadmin.role_title,
        "permissions": subadmin.permissions or [],
        "isActive": subadmin.is_active,
        "createdById": subadmin.created_by_id,
        "createdAt": subadmin.created_at.isoformat() if subadmin.created_at else None,
    }


# ===========================================
# PARÁMETROS DE LA PLATAFORMA
# ===========================================

async def get_platform_settings(db: AsyncSession) -> dict:
    rate = await platform_fee_service.get_commission_rate(db)
    result = await db.execute(select(PlatformSetting).order_by(PlatformSetting.key))
    return {
        "commissionRate": rate,
        "commissionPercentage": f"{rate * 100:.1f}%",
        "settings": [
            {
                "key": s.key,
                "value": s.value,
                "description": s.description,
                "updatedBy": s.updated_by,
                "updatedAt": s.updated_at.isoformat() if s.updated_at else None,
            }
            for s in result.scalars().all()
        ],
    }


async def update_commission_rate(
    db: AsyncSession,
    ctx: BackofficeContext,
    rate: float,
    request: Optional[Request] = None
) -> dict:
    if rate < 0 or rate > 1:
        raise ValidationError("commission_rate debe estar entre 0 y 1")

    result = await db.execute(
        select(PlatformSetting).where(PlatformSetting.key == platform_fee_service.COMMISSION_RATE_KEY)
    )
    setting = result.scalar_one_or_none()
    old_value = setting.value if setting else None

    if setting:
        setting.value = str(rate)
        setting.updated_by = ctx.actor_id
    else:
        setting = PlatformSetting(
            key=platform_fee_service.COMMISSION_RATE_KEY,
            value=str(rate),
            description="Platform commission rate (decimal)",
            updated_by=ctx.actor_id,
        )
        db.add(setting)
    await db.flush()

    await audit_service.log_action(
        db, ctx, "UPDATE_PLATFORM_SETTINGS", "PlatformSettings", setting.id,
        {"key": setting.key, "oldValue": old_value, "newValue": setting.value}, request,
    )
    return await get_platform_settings(db)


# ===========================================
# USUARIOS
# ===========================================

async def set_user_status(
    db: AsyncSession,
    ctx: BackofficeContext,
    user_id: str,
    is_active: bool,
    request: Optional[Request] = None
) -> User:
    user = await db.get(User, user_id)
    if not user:
        raise NotFoundError("Usuario no encontrado")
    if user.is_admin:
        raise ForbiddenError("No se puede suspender a un administrador")

    previous = user.is_active
    user.is_active = is_active
    await db.flush()

    await audit_service.log_action(
        db, ctx, "user_activate" if is_active else "user_suspend", "User", user.id,
        {"email": user.email, "previousStatus": previous, "newStatus": is_active}, request,
    )
    return user


async def verify_id_document(
    db: AsyncSession,
    ctx: BackofficeContext,
    user_id: str,
    document_id: str,
    status: str,
    request: Optional[Request] = None
) -> IdDocument:
    if status not in ("approved", "rejected"):
        raise ValidationError("status debe ser approved o rejected")

    result = await db.execute(
        select(IdDocument).where(IdDocument.id == document_id, IdDocument.user_id == user_id)
    )
    document = result.scalar_one_or_none()
    if not document:
        raise NotFoundError("Documento no encontrado")

    document.verification_status = status
    await db.flush()

    await audit_service.log_action(
        db, ctx, f"id_verification_{status}", "IdDocument", document.id,
        {"userId": user_id, "documentType": document.document_type, "status": status}, request,
    )
    await notification_service.notify_id_verification(db, document)
    return document


# ===========================================
# RECARGAS
# ===========================================

async def topup_wallets(
    db: AsyncSession,
    ctx: BackofficeContext,
    user_ids: List[str],
    amount: int,
    reason: str,
    request: Optional[Request] = None
) -> dict:
    """
    Acredita el mismo monto a varios usuarios. Retorna el resultado por usuario;
    un usuario inexistente no detiene a los demás.
    """
    if amount <= 0 or amount > settings.max_topup_amount:
        raise ValidationError(f"El monto debe estar entre 1 y {settings.max_topup_amount}")
    if not reason or not reason.strip():
        raise ValidationError("Se requiere un motivo")
    if not user_ids:
        raise ValidationError("Se requiere al menos un usuario")

    results = []
    for user_id in dict.fromkeys(user_ids):
        user = await db.get(User, user_id)
        if not user:
            results.append({"userId": user_id, "success": False, "error": "User not found"})
            continue

        transaction, wallet = await wallet_service.credit_wallet(
            db, user_id, amount,
            description=f"Wallet top-up from Bagami: {reason}",
            category="Bonus",
            reference_id=f"TOPUP-ADMIN-{transaction_suffix(user_id)}",
            metadata={"topupBy": ctx.actor_id, "reason": reason},
        )
        results.append({
            "userId": user_id,
            "userName": user.name,
            "success": True,
            "transactionId": transaction.id,
            "newBalance": wallet.balance,
        })

    succeeded = [r for r in results if r["success"]]
    await audit_service.log_action(
        db, ctx, "wallet_topup", "Wallet", None,
        {"amount": amount, "reason": reason, "userIds": [r["userId"] for r in succeeded]}, request,
    )
    logger.info("wallet_topup", count=len(succeeded), amount=amount)
    return {
        "success": True,
        "totalUsers": len(results),
        "successCount": len(succeeded),
        "failedCount": len(results) - len(succeeded),
        "results": results,
    }


def transaction_suffix(user_id: str) -> str:
    return f"{int(datetime.utcnow().timestamp() * 1000)}-{user_id[:8]}"


# ===========================================
# NOTIFICACIONES
# ===========================================

async def send_admin_notification(
    db: AsyncSession,
    ctx: BackofficeContext,
    title: str,
    message: str,
    link: Optional[str] = None,
    send_to_all: bool = False,
    user_ids: Optional[List[str]] = None,
    request: Optional[Request] = None
) -> dict:
    """
    Envía la misma notificación a varios usuarios.

    send_to_all apunta a los usuarios activos que no son administradores;
    con user_ids se ignoran los ids que no existen.
    """
    title = (title or "").strip()
    message = (message or "").strip()
    if not title:
        raise ValidationError("Se requiere un título")
    if not message:
        raise ValidationError("Se requiere un mensaje")
    if not send_to_all and not user_ids:
        raise ValidationError("Selecciona al menos un usuario o envía a todos")

    if send_to_all:
        query = select(User.id).where(User.is_active.is_(True), User.role.not_in(ADMIN_ROLES))
    else:
        query = select(User.id).where(User.id.in_(list(dict.fromkeys(user_ids))))
    target_ids = (await db.execute(query)).scalars().all()
    if not target_ids:
        raise ValidationError("No se encontraron usuarios para notificar")

    related_id = link.strip() if link and link.strip() else None
    db.add_all([
        Notification(
            user_id=user_id,
            type="admin_notification",
            title=title,
            message=message,
            related_id=related_id,
            is_read=False,
        )
        for user_id in target_ids
    ])
    await db.flush()

    await audit_service.log_action(
        db, ctx, "notification_sent", "Notification", None,
        {
            "title": title,
            "message": message[:100],
            "link": related_id,
            "sendToAll": send_to_all,
            "recipientCount": len(target_ids),
            "userIds": "all_users" if send_to_all else list(target_ids),
        },
        request,
    )
    logger.info("admin_notification_sent", count=len(target_ids), send_to_all=send_to_all)
    plural = "" if len(target_ids) == 1 else "s"
    return {
        "success": True,
        "count": len(target_ids),
        "message": f"Notification sent successfully to {len(target_ids)} user{plural}",
    }
