"""
Backoffice: dashboard, recargas, parámetros, auditoría y subadmins.
"""

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from bagami.core.database import get_db
from bagami.core.security import BackofficeContext, require_admin, require_permission
from bagami.schemas.backoffice import (
    AdminNotificationSend,
    AuditEntryCreate,
    PlatformSettingsUpdate,
    SubadminCreate,
    SubadminUpdate,
    TopupRequest,
)
from bagami.services import audit_service, backoffice_service, report_service

router = APIRouter()


@router.get("/stats")
async def dashboard_stats(
    ctx: BackofficeContext = Depends(require_permission("dashboard")),
    db: AsyncSession = Depends(get_db)
):
    return await report_service.dashboard_stats(db)


@router.post("/topup")
async def topup(
    data: TopupRequest,
    request: Request,
    ctx: BackofficeContext = Depends(require_permission("topup")),
    db: AsyncSession = Depends(get_db)
):
    return await backoffice_service.topup_wallets(
        db, ctx, data.user_ids, data.amount, data.reason, request
    )


@router.post("/notifications/send")
async def send_notification(
    data: AdminNotificationSend,
    request: Request,
    ctx: BackofficeContext = Depends(require_permission("notifications")),
    db: AsyncSession = Depends(get_db)
):
    return await backoffice_service.send_admin_notification(
        db, ctx, data.title, data.message, data.link, data.send_to_all, data.user_ids, request
    )


# ===========================================
# PARÁMETROS
# ===========================================

@router.get("/platform-settings")
async def get_platform_settings(
    ctx: BackofficeContext = Depends(require_permission("platform-settings")),
    db: AsyncSession = Depends(get_db)
):
    return await backoffice_service.get_platform_settings(db)


@router.put("/platform-settings")
async def update_platform_settings(
    data: PlatformSettingsUpdate,
    request: Request,
    ctx: BackofficeContext = Depends(require_permission("platform-settings")),
    db: AsyncSession = Depends(get_db)
):
    result = await backoffice_service.update_commission_rate(db, ctx, data.commission_rate, request)
    return {"success": True, **result}


# ===========================================
# AUDITORÍA
# ===========================================

@router.get("/audit")
async def list_audit(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    ctx: BackofficeContext = Depends(require_permission("audit")),
    db: AsyncSession = Depends(get_db)
):
    return await audit_service.list_actions(db, page, limit)


@router.post("/audit", status_code=status.HTTP_201_CREATED)
async def create_audit_entry(
    data: AuditEntryCreate,
    request: Request,
    ctx: BackofficeContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    entry = await audit_service.log_action(
        db, ctx, data.action, data.target_type, data.target_id, data.details, request
    )
    return {"success": True, "action": audit_service.serialize_action(entry)}


# ===========================================
# SUBADMINS
# ===========================================

@router.get("/subadmins")
async def list_subadmins(
    ctx: BackofficeContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return {"subadmins": await backoffice_service.list_subadmins(db)}


@router.post("/subadmins", status_code=status.HTTP_201_CREATED)
async def create_subadmin(
    data: SubadminCreate,
    request: Request,
    ctx: BackofficeContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    subadmin = await backoffice_service.create_subadmin(
        db, ctx, data.email, data.password, data.permissions,
        name=data.name, role_title=data.role_title, request=request,
    )
    return {"success": True, "subadmin": backoffice_service.serialize_subadmin(subadmin)}


@router.patch("/subadmins/{subadmin_id}")
async def update_subadmin(
    subadmin_id: str,
    data: SubadminUpdate,
    request: Request,
    ctx: BackofficeContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    subadmin = await backoffice_service.update_subadmin(
        db, ctx, subadmin_id, data.model_dump(exclude_unset=True), request
    )
    return {"success": True, "subadmin": backoffice_service.serialize_subadmin(subadmin)}


@router.delete("/subadmins/{subadmin_id}")
async def delete_subadmin(
    subadmin_id: str,
    request: Request,
    ctx: BackofficeContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    await backoffice_service.delete_subadmin(db, ctx, subadmin_id, request)
    return {"success": True}
