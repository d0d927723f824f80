"""
DOCX export endpoint.

POST /docx — render a document (or supplied content) as a DOCX attachment
"""
from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from lawmint.database import get_db
from lawmint.dependencies.auth import require_permission
from lawmint.models.database_models import User
from lawmint.models.schemas import ExportRequest
from lawmint.services.docx_exporter import DOCX_MEDIA_TYPE, build_docx, export_filename
from lawmint.services.documents import get_viewable_document

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/docx")
async def export_docx(
    body: ExportRequest,
    current_user: User = Depends(require_permission("export")),
    db: AsyncSession = Depends(get_db),
) -> Response:
    """
    Export a document as DOCX.

    ``content`` and ``title`` override the stored values, so the editor can
    export unsaved changes.
    """
    document = await get_viewable_document(db, body.document_id, current_user)

    content = body.content if body.content is not None else document.content
    if not content or not content.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Document has no content to export")

    data = build_docx(content)
    file_name = export_filename(body.title or document.title)

    logger.info(f"Exported document {document.id} as {file_name} ({len(data)} bytes)")
    return Response(
        content=data,
        media_type=DOCX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{file_name}"'},
    )
