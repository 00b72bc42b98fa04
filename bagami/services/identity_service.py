"""
Servicio de Identidad - Documentos de identidad y su verificación.
"""

import uuid
from pathlib import Path
from typing import Optional
from fastapi import UploadFile
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from bagami.core.config import settings
from bagami.core.exceptions import ValidationError
from bagami.models import IdDocument

logger = structlog.get_logger()

DOCUMENT_TYPES = ("national_id", "passport")
MAX_IMAGE_BYTES = 5 * 1024 * 1024


async def is_user_verified(db: AsyncSession, user_id: str) -> bool:
    """Un usuario está verificado si tiene al menos un documento aprobado."""
    result = await db.execute(
        select(IdDocument.id).where(
            IdDocument.user_id == user_id,
            IdDocument.verification_status == "approved",
        ).limit(1)
    )
    return result.scalar_one_or_none() is not None


def verification_status(documents: list) -> str:
    """
    Estado agregado para el backoffice:
    verified > pending > rejected > not_verified
    """
    statuses = {doc.verification_status for doc in documents}
    if "approved" in statuses:
        return "verified"
    if "pending" in statuses:
        return "pending"
    if "rejected" in statuses:
        return "rejected"
    return "not_verified"


async def _store_image(user_id: str, document_type: str, side: str, upload: UploadFile) -> str:
    content = await upload.read()
    if not content:
        raise ValidationError(f"La imagen {side} está vacía")
    if len(content) > MAX_IMAGE_BYTES:
        raise ValidationError("La imagen supera el tamaño máximo de 5 MB")

    suffix = Path(upload.filename or "").suffix.lower() or ".jpg"
    relative = Path("id-documents") / f"{user_id}_{document_type}_{side}_{uuid.uuid4().hex}{suffix}"
    target = Path(settings.upload_dir) / relative
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(content)
    return relative.as_posix()


def _remove_file(relative_path: Optional[str]) -> None:
    if not relative_path:
        return
    path = Path(settings.upload_dir) / relative_path
    try:
        path.unlink()
    except FileNotFoundError:
        pass


async def upload_id_document(
    db: AsyncSession,
    user_id: str,
    document_type: str,
    front_image: Optional[UploadFile],
    back_image: Optional[UploadFile] = None
) -> IdDocument:
    """
    Guarda un documento de identidad. Un nuevo envío reemplaza al anterior
    del mismo tipo.
    """
    if document_type not in DOCUMENT_TYPES:
        raise ValidationError("Tipo de documento inválido")
    if document_type == "national_id" and (not front_image or not back_image):
        raise ValidationError("La cédula requiere imagen frontal y trasera")
    if document_type == "passport" and not front_image:
        raise ValidationError("El pasaporte requiere la página de información")

    front_path = await _store_image(user_id, document_type, "front", front_image)
    back_path = None
    if document_type == "national_id":
        back_path = await _store_image(user_id, document_type, "back", back_image)

    existing = await db.execute(
        select(IdDocument).where(
            IdDocument.user_id == user_id, IdDocument.document_type == document_type
        )
    )
    for previous in existing.scalars().all():
        _remove_file(previous.front_image_path)
        _remove_file(previous.back_image_path)
    await db.execute(
        delete(IdDocument).where(
            IdDocument.user_id == user_id, IdDocument.document_type == document_type
        )
    )

    document = IdDocument(
        user_id=user_id,
        document_type=document_type,
        front_image_path=front_path,
        back_image_path=back_path,
        verification_status="pending",
    )
    db.add(document)
    await db.flush()

    logger.info("id_document_uploaded", user_id=user_id, document_type=document_type)
    return document


async def list_user_documents(db: AsyncSession, user_id: str) -> list:
    result = await db.execute(
        select(IdDocument).where(IdDocument.user_id == user_id).order_by(IdDocument.uploaded_at.desc())
    )
    return list(result.scalars().all())


def serialize_document(document: IdDocument) -> dict:
    return {
        "id": document.id,
        "documentType": document.document_type,
        "frontImagePath": document.front_image_path,
        "backImagePath": document.back_image_path,
        "verificationStatus": document.verification_status,
        "uploadedAt": document.uploaded_at.isoformat() if document.uploaded_at else None,
    }
