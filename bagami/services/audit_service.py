"""
Servicio de Auditoría - Registro de las acciones del backoffice.
"""

import json
from typing import Optional, Union
from fastapi import Request
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from bagami.core.security import BackofficeContext
from bagami.models import AdminAction

logger = structlog.get_logger()


async def log_action(
    db: AsyncSession,
    ctx: BackofficeContext,
    action: str,
    target_type: Optional[str] = None,
    target_id: Optional[str] = None,
    details: Union[str, dict, None] = None,
    request: Optional[Request] = None
) -> AdminAction:
    if isinstance(details, dict):
        details = json.dumps(details, ensure_ascii=False, default=str)

    entry = AdminAction(
        admin_id=ctx.actor_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        details=details,
        ip_address=(request.headers.get("x-forwarded-for") or (request.client.host if request.client else None)) if request else None,
        user_agent=request.headers.get("user-agent") if request else None,
    )
    db.add(entry)
    await db.flush()

    logger.info("admin_action", admin_id=ctx.actor_id, action=action, target_type=target_type, target_id=target_id)
    return entry


async def list_actions(db: AsyncSession, page: int = 1, limit: int = 50) -> dict:
    page = max(page, 1)
    total = (await db.execute(select(func.count(AdminAction.id)))).scalar_one()
    result = await db.execute(
        select(AdminAction)
        .order_by(AdminAction.created_at.desc())
        .limit(limit)
        .offset((page - 1) * limit)
    )
    return {
        "actions": [serialize_action(a) for a in result.scalars().all()],
        "pagination": pagination(page, limit, total),
    }


def pagination(page: int, limit: int, total: int) -> dict:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "totalPages": (total + limit - 1) // limit if limit else 0,
    }


def serialize_action(action: AdminAction) -> dict:
    return {
        "id": action.id,
        "adminId": action.admin_id,
        "action": action.action,
        "targetType": action.target_type,
        "targetId": action.target_id,
        "details": action.details,
        "ipAddress": action.ip_address,
        "userAgent": action.user_agent,
        "createdAt": action.created_at.isoformat() if action.created_at else None,
    }
