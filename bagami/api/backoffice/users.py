"""
Backoffice: usuarios y verificación de identidad.
"""

from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from bagami.core.database import get_db
from bagami.core.security import BackofficeContext, require_permission
from bagami.schemas.backoffice import IdVerificationUpdate, UserStatusUpdate
from bagami.services import audit_service, auth_service, backoffice_service, identity_service, report_service

router = APIRouter()


@router.get("")
async def list_users(
    search: Optional[str] = None,
    role: str = "all",
    status: str = Query("all", pattern="^(all|active|suspended)$"),
    verification: str = Query("all", pattern="^(all|not_verified|pending|verified|rejected)$"),
    date_from: Optional[datetime] = Query(None, alias="dateFrom"),
    date_to: Optional[datetime] = Query(None, alias="dateTo"),
    sort_field: str = Query("createdAt", alias="sortField"),
    sort_order: str = Query("desc", alias="sortOrder", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    ctx: BackofficeContext = Depends(require_permission("users")),
    db: AsyncSession = Depends(get_db)
):
    return await report_service.list_users(
        db, search=search, role=role, status=status, verification=verification,
        date_from=date_from, date_to=date_to, sort_field=sort_field, sort_order=sort_order,
        page=page, limit=limit,
    )


@router.get("/stats")
async def user_stats(
    ctx: BackofficeContext = Depends(require_permission("users")),
    db: AsyncSession = Depends(get_db)
):
    return await report_service.user_stats(db)


@router.get("/export")
async def export_users(
    request: Request,
    search: Optional[str] = None,
    role: str = "all",
    status: str = Query("all", pattern="^(all|active|suspended)$"),
    ctx: BackofficeContext = Depends(require_permission("users")),
    db: AsyncSession = Depends(get_db)
):
    content, count = await report_service.export_users_csv(db, search=search, role=role, status=status)
    await audit_service.log_action(
        db, ctx, "users_export", None, None,
        {"count": count, "filters": {"search": search or "", "role": role, "status": status}},
        request,
    )
    filename = f"users-export-{datetime.utcnow().date().isoformat()}.csv"
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/{user_id}")
async def user_detail(
    user_id: str,
    ctx: BackofficeContext = Depends(require_permission("users")),
    db: AsyncSession = Depends(get_db)
):
    return await report_service.user_detail(db, user_id)


@router.patch("/{user_id}/status")
async def update_status(
    user_id: str,
    data: UserStatusUpdate,
    request: Request,
    ctx: BackofficeContext = Depends(require_permission("users")),
    db: AsyncSession = Depends(get_db)
):
    user = await backoffice_service.set_user_status(db, ctx, user_id, data.is_active, request)
    return {"success": True, "user": auth_service.serialize_user(user)}


@router.patch("/{user_id}/verify-id")
async def verify_id(
    user_id: str,
    data: IdVerificationUpdate,
    request: Request,
    ctx: BackofficeContext = Depends(require_permission("users")),
    db: AsyncSession = Depends(get_db)
):
    document = await backoffice_service.verify_id_document(
        db, ctx, user_id, data.document_id, data.status, request
    )
    return {"success": True, "document": identity_service.serialize_document(document)}
