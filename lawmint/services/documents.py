"""
Document lookups shared by the documents, export, AI and collaboration routers.
"""
from __future__ import annotations

from typing import Callable, Optional

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lawmint.models.database_models import Document, User
from lawmint.models.schemas import DocumentResponse, ShareInfo, SourceDocumentResponse
from lawmint.services.permissions import can_edit_document, can_view_document


async def get_document_or_404(db: AsyncSession, document_id: str) -> Document:
    result = await db.execute(select(Document).where(Document.id == document_id))
    document = result.scalar_one_or_none()
    if document is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")
    return document


async def _load_checked(
    db: AsyncSession,
    document_id: str,
    user: User,
    check: Callable[[Document, str, Optional[str]], bool],
    detail: str,
) -> Document:
    document = await get_document_or_404(db, document_id)
    if not check(document, user.id, user.firm_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)
    return document


async def get_viewable_document(db: AsyncSession, document_id: str, user: User) -> Document:
    """404 when missing, 403 when *user* may not view it."""
    return await _load_checked(
        db, document_id, user, can_view_document, "You do not have access to this document"
    )


async def get_editable_document(db: AsyncSession, document_id: str, user: User) -> Document:
    """404 when missing, 403 when *user* may not edit it."""
    return await _load_checked(
        db, document_id, user, can_edit_document, "You do not have permission to edit this document"
    )


def to_response(document: Document) -> DocumentResponse:
    """Build the API view; ``shared_with`` comes from the share rows."""
    return DocumentResponse(
        id=document.id,
        firm_id=document.firm_id,
        owner_id=document.owner_id,
        title=document.title,
        content=document.content,
        template_id=document.template_id,
        visibility=document.visibility,
        status=document.status,
        last_edited_by=document.last_edited_by,
        word_count=document.word_count,
        version=document.version,
        notes=document.notes or "",
        shared_with=[ShareInfo.model_validate(s) for s in document.shares],
        source_documents=[SourceDocumentResponse.model_validate(s) for s in document.source_documents],
        created_at=document.created_at,
        updated_at=document.updated_at,
    )
