"""
Template creation and startup seeding of global templates.
"""
from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lawmint.models.database_models import Template, TemplateScope
from lawmint.services.document_parser import DocumentParseError, DocumentParser, file_type_for
from lawmint.services.storage import BlobStorage
from lawmint.utils.helpers import sanitize_filename

logger = logging.getLogger(__name__)

SYSTEM_UPLOADER = "system"


def template_storage_path(firm_id: Optional[str], template_id: str, file_name: str) -> str:
    return f"templates/{firm_id or 'global'}/{template_id}/{file_name}"


async def get_accessible_template(
    db: AsyncSession,
    template_id: str,
    firm_id: Optional[str],
) -> Optional[Template]:
    """Global template with this id, else the firm's own; None when neither exists."""
    result = await db.execute(
        select(Template).where(
            Template.id == template_id,
            Template.scope == TemplateScope.GLOBAL.value,
        )
    )
    template = result.scalar_one_or_none()
    if template is not None or not firm_id:
        return template

    result = await db.execute(
        select(Template).where(
            Template.id == template_id,
            Template.scope == TemplateScope.FIRM.value,
            Template.firm_id == firm_id,
        )
    )
    return result.scalar_one_or_none()


async def create_template(
    db: AsyncSession,
    storage: BlobStorage,
    *,
    name: str,
    file_name: str,
    file_type: str,
    data: bytes,
    content: str,
    uploaded_by: str,
    firm_id: Optional[str] = None,
) -> Template:
    """Store the blob and insert the template row (flushed, not committed)."""
    template_id = str(uuid.uuid4())
    path = template_storage_path(firm_id, template_id, file_name)
    await storage.save(path, data)

    template = Template(
        id=template_id,
        name=name,
        scope=TemplateScope.FIRM.value if firm_id else TemplateScope.GLOBAL.value,
        firm_id=firm_id,
        content=content,
        original_file_name=file_name,
        file_type=file_type,
        uploaded_by=uploaded_by,
        size=len(data),
        storage_path=path,
    )
    db.add(template)
    await db.flush()
    return template


async def seed_global_templates(
    db: AsyncSession,
    storage: BlobStorage,
    directory: Optional[str],
    parser: Optional[DocumentParser] = None,
) -> List[Template]:
    """
    Import every supported file in *directory* as a global template.

    Files whose name already exists as a global template are skipped, so
    running this at every startup is idempotent.  Unreadable or empty files
    are logged and skipped.
    """
    if not directory:
        return []
    root = Path(directory)
    if not root.is_dir():
        logger.warning("Global templates directory not found: %s", directory)
        return []

    result = await db.execute(
        select(Template.original_file_name).where(Template.scope == TemplateScope.GLOBAL.value)
    )
    existing = set(result.scalars().all())
    parser = parser or DocumentParser()
    created: List[Template] = []

    for path in sorted(root.iterdir()):
        if not path.is_file():
            continue
        file_name = sanitize_filename(path.name)
        file_type = file_type_for(file_name)
        if file_type is None or file_name in existing:
            continue

        data = path.read_bytes()
        try:
            parsed = await parser.parse_bytes(data, file_name)
        except DocumentParseError as e:
            logger.warning("Skipping global template %s: %s", file_name, e)
            continue
        if parsed.is_empty:
            logger.warning("Skipping global template %s: no extractable text", file_name)
            continue

        template = await create_template(
            db,
            storage,
            name=path.stem.replace("_", " ").replace("-", " ").strip().title(),
            file_name=file_name,
            file_type=file_type,
            data=data,
            content=parsed.full_text,
            uploaded_by=SYSTEM_UPLOADER,
        )
        created.append(template)

    if created:
        logger.info("Seeded %d global template(s) from %s", len(created), directory)
    return created
