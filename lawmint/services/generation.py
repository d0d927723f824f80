"""
One-shot demand-letter generation.

Runs the three steps the editor otherwise drives one request at a time:

1. ``upload`` — extract and store the source files
2. ``generate`` — ask the LLM for a draft
3. ``create`` — persist a private draft document and link the sources

If any step fails, the blobs written in step 1 are removed and a
``GenerationError`` naming the failing step is raised.  The caller's session
is rolled back by ``get_db`` when the error propagates.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from fastapi import UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from lawmint.models.database_models import (
    Document,
    DocumentStatus,
    SourceDocument,
    User,
    Visibility,
)
from lawmint.services.document_parser import DocumentParser
from lawmint.services.llm_client import LLMClient, LLMServiceError
from lawmint.services.sources import UploadRejected, store_source_files
from lawmint.services.storage import BlobStorage
from lawmint.services.templates import get_accessible_template
from lawmint.utils.helpers import word_count

logger = logging.getLogger(__name__)

STEP_UPLOAD = "upload"
STEP_GENERATE = "generate"
STEP_CREATE = "create"


@dataclass
class StepResult:
    name: str
    status: str = "pending"  # pending | completed | failed
    detail: Optional[str] = None


@dataclass
class GenerationResult:
    document: Document
    content: str
    model: str
    steps: List[StepResult] = field(default_factory=list)


class GenerationError(Exception):
    """A generation step failed; ``status_code`` is the HTTP status to answer with."""

    def __init__(self, status_code: int, step: str, detail: str, steps: List[StepResult]) -> None:
        super().__init__(detail)
        self.status_code = status_code
        self.step = step
        self.detail = detail
        self.steps = steps


async def generate_document(
    db: AsyncSession,
    storage: BlobStorage,
    llm: LLMClient,
    user: User,
    *,
    title: str,
    files: List[UploadFile],
    template_id: Optional[str] = None,
    template_content: Optional[str] = None,
    custom_instructions: Optional[str] = None,
    parser: Optional[DocumentParser] = None,
) -> GenerationResult:
    """Run upload → generate → create for *user*'s firm."""
    steps = [StepResult(STEP_UPLOAD), StepResult(STEP_GENERATE), StepResult(STEP_CREATE)]
    sources: List[SourceDocument] = []

    async def _fail(index: int, status_code: int, detail: str) -> GenerationError:
        steps[index].status = "failed"
        steps[index].detail = detail
        for source in sources:
            await storage.delete_quietly(source.storage_path)
        logger.warning(
            "Generation failed at step '%s' for user %s: %s",
            steps[index].name,
            user.id,
            detail,
        )
        return GenerationError(status_code, steps[index].name, detail, steps)

    # ---- Step 1: upload and extract sources ----
    try:
        sources = await store_source_files(
            db, storage, parser or DocumentParser(), files, user.firm_id, user.id
        )
    except UploadRejected as e:
        raise await _fail(0, e.status_code, e.detail)

    source_texts = [s.extracted_text for s in sources if s.extracted_text.strip()]
    if not source_texts:
        raise await _fail(0, status.HTTP_400_BAD_REQUEST, "No text could be extracted from the source documents")
    steps[0].status = "completed"
    steps[0].detail = f"{len(sources)} file(s) extracted"

    # ---- Step 2: generate ----
    if template_id and not template_content:
        template = await get_accessible_template(db, template_id, user.firm_id)
        if template is None or not template.content.strip():
            raise await _fail(1, status.HTTP_400_BAD_REQUEST, "Template not found or has no content")
        template_content = template.content

    try:
        content = await llm.generate_demand_letter(source_texts, template_content, custom_instructions)
    except LLMServiceError as e:
        raise await _fail(1, e.status_code, e.message)
    steps[1].status = "completed"

    # ---- Step 3: create the draft ----
    document = Document(
        firm_id=user.firm_id,
        owner_id=user.id,
        title=title,
        content=content,
        template_id=template_id,
        visibility=Visibility.PRIVATE.value,
        status=DocumentStatus.DRAFT.value,
        last_edited_by=user.id,
        word_count=word_count(content),
        version=1,
        notes="",
    )
    document.shares = []
    document.source_documents = []
    db.add(document)
    await db.flush()

    for source in sources:
        source.document_id = document.id
        document.source_documents.append(source)
    await db.flush()

    steps[2].status = "completed"
    steps[2].detail = document.id

    logger.info(
        "Generated document %s for user %s (model=%s, template=%s, sources=%d)",
        document.id,
        user.id,
        llm.model,
        template_id or "custom",
        len(sources),
    )
    return GenerationResult(document=document, content=content, model=llm.model, steps=steps)
