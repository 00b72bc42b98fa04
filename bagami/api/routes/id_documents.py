"""
Endpoints de documentos de identidad (multipart/form-data).
"""

from typing import Optional
from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from bagami.core.database import get_db
from bagami.core.security import get_active_user, get_current_user
from bagami.services import identity_service

router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def upload_document(
    document_type: str = Form(..., alias="documentType"),
    front_image: Optional[UploadFile] = File(None, alias="frontImage"),
    back_image: Optional[UploadFile] = File(None, alias="backImage"),
    user=Depends(get_active_user),
    db: AsyncSession = Depends(get_db)
):
    document = await identity_service.upload_id_document(
        db, user.id, document_type, front_image, back_image
    )
    return {
        "success": True,
        "message": "Document uploaded successfully",
        "document": identity_service.serialize_document(document),
    }


@router.get("")
async def list_documents(user=Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    documents = await identity_service.list_user_documents(db, user.id)
    return {
        "documents": [identity_service.serialize_document(d) for d in documents],
        "isVerified": any(d.verification_status == "approved" for d in documents),
    }
