"""
Template endpoints.

POST   /upload                 — upload a firm template (admin/lawyer)
GET    /global                 — list global templates
GET    /firm/{firm_id}         — list a firm's templates
GET    /{template_id}          — template details (global or own firm)
DELETE /{template_id}          — delete a firm template (admin/lawyer)
GET    /{template_id}/download — signed download URL (1 hour)
"""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lawmint.config import settings
from lawmint.database import get_db
from lawmint.dependencies.auth import get_current_user, require_permission
from lawmint.models.database_models import Template, TemplateScope, User
from lawmint.models.schemas import DownloadUrlResponse, TemplateListResponse, TemplateResponse
from lawmint.services.document_parser import DocumentParser
from lawmint.services.sources import UploadRejected, extract_text, read_upload
from lawmint.services.storage import BlobStorage, StorageError, get_storage
from lawmint.services.templates import create_template, get_accessible_template

logger = logging.getLogger(__name__)

router = APIRouter()


def _listing(templates) -> TemplateListResponse:
    items = [TemplateResponse.model_validate(t) for t in templates]
    return TemplateListResponse(count=len(items), templates=items)


# ---------------------------------------------------------------------------
# Upload
# ---------------------------------------------------------------------------

@router.post("/upload", response_model=TemplateResponse, status_code=status.HTTP_201_CREATED)
async def upload_template(
    name: str = Form(...),
    file: UploadFile = File(...),
    current_user: User = Depends(require_permission("upload_templates")),
    db: AsyncSession = Depends(get_db),
    storage: BlobStorage = Depends(get_storage),
) -> TemplateResponse:
    """
    Upload a PDF or DOCX template for the caller's firm.

    - Max file size: 50 MB (configurable via MAX_FILE_SIZE)
    - Text is extracted at upload time and stored on the template
    """
    if not name.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Template name is required")

    try:
        upload = await read_upload(file)
        parsed = await extract_text(DocumentParser(), upload)
    except UploadRejected as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)

    if parsed.is_empty:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="No text could be extracted from the template file",
        )

    try:
        template = await create_template(
            db,
            storage,
            name=name.strip(),
            file_name=upload.file_name,
            file_type=upload.file_type,
            data=upload.data,
            content=parsed.full_text,
            uploaded_by=current_user.id,
            firm_id=current_user.firm_id,
        )
    except StorageError as e:
        logger.error("Template upload failed to store %s: %s", upload.file_name, e)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Could not store template file")

    logger.info(
        "Template %s uploaded to firm %s by %s (%d words)",
        template.id,
        current_user.firm_id,
        current_user.id,
        parsed.metadata.get("word_count", 0),
    )
    return TemplateResponse.model_validate(template)


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------

@router.get("/global", response_model=TemplateListResponse)
async def list_global_templates(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> TemplateListResponse:
    result = await db.execute(
        select(Template)
        .where(Template.scope == TemplateScope.GLOBAL.value)
        .order_by(Template.created_at.desc())
    )
    return _listing(result.scalars().all())


@router.get("/firm/{firm_id}", response_model=TemplateListResponse)
async def list_firm_templates(
    firm_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> TemplateListResponse:
    if current_user.firm_id != firm_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User does not belong to this firm")
    result = await db.execute(
        select(Template)
        .where(Template.scope == TemplateScope.FIRM.value, Template.firm_id == firm_id)
        .order_by(Template.created_at.desc())
    )
    return _listing(result.scalars().all())


# ---------------------------------------------------------------------------
# Single template
# ---------------------------------------------------------------------------

@router.get("/{template_id}", response_model=TemplateResponse)
async def get_template(
    template_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> TemplateResponse:
    template = await get_accessible_template(db, template_id, current_user.firm_id)
    if template is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Template not found")
    return TemplateResponse.model_validate(template)


@router.delete("/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_template(
    template_id: str,
    current_user: User = Depends(require_permission("upload_templates")),
    db: AsyncSession = Depends(get_db),
    storage: BlobStorage = Depends(get_storage),
) -> None:
    """Delete one of the caller's firm templates.  Global templates cannot be deleted here."""
    result = await db.execute(
        select(Template).where(
            Template.id == template_id,
            Template.scope == TemplateScope.FIRM.value,
            Template.firm_id == current_user.firm_id,
        )
    )
    template = result.scalar_one_or_none()
    if template is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Template not found")

    blob_path = template.storage_path
    await db.delete(template)
    await db.flush()
    await storage.delete_quietly(blob_path)
    logger.info("Template %s deleted by %s", template_id, current_user.id)


@router.get("/{template_id}/download", response_model=DownloadUrlResponse)
async def get_template_download_url(
    template_id: str,
    firm_id: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    storage: BlobStorage = Depends(get_storage),
) -> DownloadUrlResponse:
    """Signed URL valid for SIGNED_URL_EXPIRES_SECONDS (1 hour by default)."""
    if firm_id is not None and firm_id != current_user.firm_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User does not belong to this firm")

    template = await get_accessible_template(db, template_id, current_user.firm_id)
    if template is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Template not found")

    url, expires_at = storage.signed_url(
        template.storage_path,
        expires_in=settings.SIGNED_URL_EXPIRES_SECONDS,
        file_name=template.original_file_name,
    )
    return DownloadUrlResponse(
        download_url=url,
        file_name=template.original_file_name,
        expires_at=expires_at,
    )
