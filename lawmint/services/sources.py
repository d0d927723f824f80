"""
Shared upload handling for templates and source documents.

Reads an ``UploadFile`` with the size limit applied, extracts its text and
stores the blob.  Both ``POST /api/documents/upload-sources`` and the
one-shot ``POST /api/documents/generate`` go through ``store_source_files``.
"""
from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from typing import List, Optional

from fastapi import UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from lawmint.config import settings
from lawmint.models.database_models import SourceDocument
from lawmint.services.document_parser import (
    DocumentParseError,
    DocumentParser,
    ParsedDocument,
    file_type_for,
)
from lawmint.services.storage import BlobStorage, StorageError
from lawmint.utils.helpers import sanitize_filename

logger = logging.getLogger(__name__)


class UploadRejected(Exception):
    """An uploaded file failed validation or extraction."""

    def __init__(self, status_code: int, detail: str) -> None:
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail


@dataclass
class ReadUpload:
    file_name: str
    file_type: str
    data: bytes


async def read_upload(file: UploadFile) -> ReadUpload:
    """
    Read an upload, enforcing the name, type and size rules.

    Raises:
        UploadRejected: 400 missing name / unsupported type, 413 too large
    """
    if not file.filename:
        raise UploadRejected(status.HTTP_400_BAD_REQUEST, "Upload must include a filename.")

    file_name = sanitize_filename(file.filename)
    file_type = file_type_for(file_name)
    if file_type is None:
        raise UploadRejected(
            status.HTTP_400_BAD_REQUEST,
            f"Unsupported file type for '{file_name}'. "
            f"Accepted: {', '.join(settings.SUPPORTED_FILE_TYPES)}",
        )

    data = await file.read()
    if len(data) > settings.MAX_FILE_SIZE:
        raise UploadRejected(
            status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            f"File '{file_name}' exceeds the {settings.MAX_FILE_SIZE // (1024 * 1024)} MB limit.",
        )
    return ReadUpload(file_name=file_name, file_type=file_type, data=data)


async def extract_text(parser: DocumentParser, upload: ReadUpload) -> ParsedDocument:
    """Parse an upload; unreadable files become 422."""
    try:
        return await parser.parse_bytes(upload.data, upload.file_name)
    except ValueError as e:
        raise UploadRejected(status.HTTP_400_BAD_REQUEST, str(e)) from e
    except DocumentParseError as e:
        raise UploadRejected(
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            f"Could not read '{upload.file_name}': {e}",
        ) from e


async def store_source_files(
    db: AsyncSession,
    storage: BlobStorage,
    parser: DocumentParser,
    files: List[UploadFile],
    firm_id: str,
    user_id: str,
    document_id: Optional[str] = None,
) -> List[SourceDocument]:
    """
    Extract and store each file as a SourceDocument.

    Each file gets its own folder keyed by the new row id, so repeated file
    names never share a blob.  The first failing file aborts the batch with
    a 400 naming it; blobs already written for the batch are removed.

    Returns:
        The created SourceDocument rows (flushed, not committed)
    """
    if not files:
        raise UploadRejected(status.HTTP_400_BAD_REQUEST, "No files provided")

    folder = document_id or f"temp_{int(time.time() * 1000)}"
    created: List[SourceDocument] = []
    written: List[str] = []

    for file in files:
        name = file.filename or "upload"
        try:
            upload = await read_upload(file)
            parsed = await extract_text(parser, upload)
            source_id = str(uuid.uuid4())
            path = f"sources/{firm_id}/{folder}/{source_id}/{upload.file_name}"
            await storage.save(path, upload.data)
            written.append(path)
        except (UploadRejected, StorageError) as e:
            for path in written:
                await storage.delete_quietly(path)
            detail = e.detail if isinstance(e, UploadRejected) else str(e)
            code = e.status_code if isinstance(e, UploadRejected) else status.HTTP_400_BAD_REQUEST
            if code == status.HTTP_422_UNPROCESSABLE_ENTITY:
                code = status.HTTP_400_BAD_REQUEST
            raise UploadRejected(code, f"Failed to process file {name}: {detail}") from e

        source = SourceDocument(
            id=source_id,
            firm_id=firm_id,
            document_id=document_id,
            file_name=upload.file_name,
            file_type=upload.file_type,
            storage_path=path,
            extracted_text=parsed.full_text,
            size=len(upload.data),
            uploaded_by=user_id,
        )
        db.add(source)
        created.append(source)

    await db.flush()
    logger.info(
        "Stored %d source document(s) for firm %s (document=%s)",
        len(created),
        firm_id,
        document_id or folder,
    )
    return created
