"""
Demand-letter document endpoints.

POST   /                 — create a document
POST   /upload-sources   — upload and extract source files
POST   /generate         — upload sources, generate with the LLM and save, in one call
GET    /user/{uid}       — documents visible to the caller
GET    /firm/{firm_id}   — firm-wide documents of a firm
GET    /shared/{uid}     — documents explicitly shared with the caller
GET    /{id}             — document details
PUT    /{id}             — edit title / content / status / notes
DELETE /{id}             — delete (owner only)
POST   /{id}/share       — change visibility and sharing (owner only)
"""
from __future__ import annotations

import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lawmint.config import settings
from lawmint.database import get_db
from lawmint.dependencies.auth import get_current_user, require_permission
from lawmint.models.database_models import (
    Document,
    DocumentShare,
    DocumentStatus,
    Firm,
    SourceDocument,
    User,
    Visibility,
)
from lawmint.models.schemas import (
    DocumentCreateRequest,
    DocumentCreateResponse,
    DocumentEnvelope,
    DocumentListResponse,
    DocumentUpdateRequest,
    GenerateDocumentResponse,
    GenerationStep,
    ShareRequest,
    SourceDocumentResponse,
    SourceUploadResponse,
)
from lawmint.services import collaboration
from lawmint.services.document_parser import DocumentParser
from lawmint.services.documents import (
    get_document_or_404,
    get_editable_document,
    get_viewable_document,
    to_response,
)
from lawmint.services.generation import GenerationError, generate_document
from lawmint.services.llm_client import client_for_firm
from lawmint.services.permissions import can_manage_document, has_permission
from lawmint.services.sources import UploadRejected, store_source_files
from lawmint.services.storage import BlobStorage, get_storage
from lawmint.utils.helpers import utcnow, word_count

logger = logging.getLogger(__name__)

router = APIRouter()


def _require_self(uid: str, current_user: User) -> None:
    if uid != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only list your own documents",
        )


def _listing(documents: List[Document]) -> DocumentListResponse:
    items = [to_response(d) for d in documents]
    return DocumentListResponse(count=len(items), documents=items)


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------

@router.post("/", response_model=DocumentCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_document(
    body: DocumentCreateRequest,
    current_user: User = Depends(require_permission("create_documents")),
    db: AsyncSession = Depends(get_db),
) -> DocumentCreateResponse:
    """Create a draft in the caller's firm, claiming any listed unattached same-firm sources."""
    if current_user.firm_id != body.firm_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User does not belong to this firm")

    sources: List[SourceDocument] = []
    if body.source_document_ids:
        requested = set(body.source_document_ids)
        result = await db.execute(
            select(SourceDocument).where(
                SourceDocument.id.in_(body.source_document_ids),
                SourceDocument.firm_id == body.firm_id,
                SourceDocument.document_id.is_(None),
            )
        )
        sources = list(result.scalars().all())
        missing = requested - {source.id for source in sources}
        if missing:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Source documents not found or already attached: {', '.join(sorted(missing))}",
            )

    document = Document(
        firm_id=body.firm_id,
        owner_id=current_user.id,
        title=body.title.strip() or "Untitled Document",
        content=body.content,
        template_id=body.template_id,
        visibility=body.visibility.value,
        status=DocumentStatus.DRAFT.value,
        last_edited_by=current_user.id,
        word_count=word_count(body.content),
        version=1,
        notes="",
        shares=[],
        source_documents=[],
    )
    db.add(document)
    await db.flush()

    for source in sources:
        source.document_id = document.id
        document.source_documents.append(source)
    if sources:
        await db.flush()

    logger.info("Document %s created by %s in firm %s", document.id, current_user.id, body.firm_id)
    response = to_response(document)
    return DocumentCreateResponse(document_id=document.id, document=response)


# ---------------------------------------------------------------------------
# Source uploads and one-shot generation
# ---------------------------------------------------------------------------

@router.post("/upload-sources", response_model=SourceUploadResponse)
async def upload_sources(
    files: List[UploadFile] = File(...),
    document_id: Optional[str] = Form(None),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    storage: BlobStorage = Depends(get_storage),
) -> SourceUploadResponse:
    """
    Extract text from uploaded PDF/DOCX files and store them.

    With *document_id* the sources are attached to that document, which must
    belong to the caller's firm.  Without it they stay unattached until a
    document is created with their ids.
    """
    if not current_user.firm_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User is not a member of any firm")

    document = None
    if document_id:
        document = await get_document_or_404(db, document_id)
        if document.firm_id != current_user.firm_id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="User does not have access to this document",
            )

    try:
        sources = await store_source_files(
            db,
            storage,
            DocumentParser(),
            files,
            current_user.firm_id,
            current_user.id,
            document_id=document_id,
        )
    except UploadRejected as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)

    if document is not None:
        document.source_documents.extend(sources)
        await db.flush()

    return SourceUploadResponse(
        extracted_texts=[s.extracted_text for s in sources],
        source_documents=[SourceDocumentResponse.model_validate(s) for s in sources],
    )


@router.post("/generate", response_model=GenerateDocumentResponse, status_code=status.HTTP_201_CREATED)
async def generate(
    title: str = Form(...),
    firm_id: str = Form(...),
    files: List[UploadFile] = File(...),
    template_id: Optional[str] = Form(None),
    template_content: Optional[str] = Form(None),
    custom_instructions: Optional[str] = Form(None),
    current_user: User = Depends(require_permission("create_documents")),
    db: AsyncSession = Depends(get_db),
    storage: BlobStorage = Depends(get_storage),
) -> GenerateDocumentResponse:
    """Upload sources, generate a draft and save it as a private document."""
    if current_user.firm_id != firm_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User does not belong to this firm")
    if not title.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Title is required")

    firm = (await db.execute(select(Firm).where(Firm.id == firm_id))).scalar_one_or_none()
    llm = client_for_firm(firm.llm_api_key if firm else None)

    try:
        result = await generate_document(
            db,
            storage,
            llm,
            current_user,
            title=title.strip(),
            files=files,
            template_id=template_id or None,
            template_content=template_content or None,
            custom_instructions=custom_instructions or None,
        )
    except GenerationError as e:
        raise HTTPException(status_code=e.status_code, detail=f"Step '{e.step}' failed: {e.detail}")

    return GenerateDocumentResponse(
        document_id=result.document.id,
        content=result.content,
        model=result.model,
        steps=[GenerationStep(name=s.name, status=s.status, detail=s.detail) for s in result.steps],
    )


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------

@router.get("/user/{uid}", response_model=DocumentListResponse)
async def list_user_documents(
    uid: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> DocumentListResponse:
    """Owned, shared-with-me and firm-wide documents, each newest first, de-duplicated."""
    _require_self(uid, current_user)
    limit = settings.DOCUMENT_LIST_LIMIT

    owned = await db.execute(
        select(Document)
        .where(Document.owner_id == uid)
        .order_by(Document.created_at.desc())
        .limit(limit)
    )
    shared = await db.execute(
        select(Document)
        .join(DocumentShare, DocumentShare.document_id == Document.id)
        .where(
            DocumentShare.user_id == uid,
            DocumentShare.can_view.is_(True),
            Document.visibility == Visibility.SHARED.value,
        )
        .order_by(Document.created_at.desc())
        .limit(limit)
    )
    groups = [owned.scalars().all(), shared.scalars().all()]

    if current_user.firm_id:
        firm_wide = await db.execute(
            select(Document)
            .where(
                Document.firm_id == current_user.firm_id,
                Document.visibility == Visibility.FIRM_WIDE.value,
                Document.owner_id != uid,
            )
            .order_by(Document.created_at.desc())
            .limit(limit)
        )
        groups.append(firm_wide.scalars().all())

    seen: Dict[str, Document] = {}
    for group in groups:
        for document in group:
            seen.setdefault(document.id, document)
    return _listing(list(seen.values()))


@router.get("/firm/{firm_id}", response_model=DocumentListResponse)
async def list_firm_documents(
    firm_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> DocumentListResponse:
    if current_user.firm_id != firm_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User does not belong to this firm")
    result = await db.execute(
        select(Document)
        .where(Document.firm_id == firm_id, Document.visibility == Visibility.FIRM_WIDE.value)
        .order_by(Document.created_at.desc())
        .limit(settings.DOCUMENT_LIST_LIMIT)
    )
    return _listing(list(result.scalars().all()))


@router.get("/shared/{uid}", response_model=DocumentListResponse)
async def list_shared_documents(
    uid: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> DocumentListResponse:
    _require_self(uid, current_user)
    result = await db.execute(
        select(Document)
        .join(DocumentShare, DocumentShare.document_id == Document.id)
        .where(
            DocumentShare.user_id == uid,
            DocumentShare.can_view.is_(True),
            Document.visibility == Visibility.SHARED.value,
        )
        .order_by(Document.created_at.desc())
        .limit(settings.DOCUMENT_LIST_LIMIT)
    )
    return _listing(list(result.scalars().all()))


# ---------------------------------------------------------------------------
# Single document
# ---------------------------------------------------------------------------

@router.get("/{document_id}", response_model=DocumentEnvelope)
async def get_document(
    document_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> DocumentEnvelope:
    document = await get_viewable_document(db, document_id, current_user)
    return DocumentEnvelope(document=to_response(document))


@router.put("/{document_id}", response_model=DocumentEnvelope)
async def update_document(
    document_id: str,
    body: DocumentUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> DocumentEnvelope:
    """
    Partial update.  Blank titles are ignored; a content change recomputes
    the word count and bumps the version.
    """
    document = await get_editable_document(db, document_id, current_user)

    if body.title is not None and body.title.strip():
        document.title = body.title.strip()
    if body.content is not None and body.content != document.content:
        document.content = body.content
        document.word_count = word_count(body.content)
        document.version = (document.version or 1) + 1
    if body.status is not None:
        document.status = body.status.value
    if body.notes is not None:
        document.notes = body.notes

    document.last_edited_by = current_user.id
    document.updated_at = utcnow()
    await db.flush()
    return DocumentEnvelope(document=to_response(document))


@router.delete("/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_document(
    document_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    storage: BlobStorage = Depends(get_storage),
) -> None:
    """
    Owner only, and only while their role still grants delete_documents.

    Shares, sources, collaboration history and presence go with it.
    """
    document = await get_document_or_404(db, document_id)
    if not can_manage_document(document, current_user.id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the document owner can delete it",
        )
    if not has_permission(current_user.role, "delete_documents"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Role '{current_user.role}' is not allowed to delete documents",
        )

    blob_paths = [source.storage_path for source in document.source_documents]
    await collaboration.purge_document(db, document_id)
    await db.delete(document)
    await db.flush()

    # blobs go only once the rows are gone
    for path in blob_paths:
        await storage.delete_quietly(path)
    logger.info("Document %s deleted by %s", document_id, current_user.id)


@router.post("/{document_id}/share", response_model=DocumentEnvelope)
async def share_document(
    document_id: str,
    body: ShareRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> DocumentEnvelope:
    """
    Change visibility.  Share rows are kept only for ``shared`` visibility and
    every listed user must belong to the document's firm.
    """
    document = await get_document_or_404(db, document_id)
    if not can_manage_document(document, current_user.id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the document owner can change sharing",
        )

    targets: List[str] = []
    if body.visibility == Visibility.SHARED:
        targets = [uid for uid in dict.fromkeys(body.shared_with) if uid != document.owner_id]
        if targets:
            result = await db.execute(
                select(User.id).where(User.id.in_(targets), User.firm_id == document.firm_id)
            )
            members = set(result.scalars().all())
            outsiders = [uid for uid in targets if uid not in members]
            if outsiders:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Users are not members of this firm: {', '.join(outsiders)}",
                )

    document.visibility = body.visibility.value
    document.shares.clear()
    await db.flush()
    for uid in targets:
        document.shares.append(
            DocumentShare(user_id=uid, can_view=True, can_edit=body.can_edit)
        )
    document.updated_at = utcnow()
    await db.flush()

    logger.info(
        "Document %s visibility set to %s (%d share(s)) by %s",
        document_id,
        document.visibility,
        len(targets),
        current_user.id,
    )
    return DocumentEnvelope(document=to_response(document))
