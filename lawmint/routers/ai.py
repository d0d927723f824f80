"""
AI generation and refinement endpoints.

POST /generate — draft a demand letter from a template and source texts
POST /refine   — rewrite a draft following instructions
GET  /status   — model name and whether an API key is available
"""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lawmint.database import get_db
from lawmint.dependencies.auth import get_current_user
from lawmint.models.database_models import Firm, User
from lawmint.models.schemas import (
    AIContentResponse,
    AIGenerateRequest,
    AIRefineRequest,
    AIStatusResponse,
)
from lawmint.services.llm_client import LLMClient, LLMServiceError, client_for_firm
from lawmint.services.templates import get_accessible_template

logger = logging.getLogger(__name__)

router = APIRouter()


async def get_llm_client(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> LLMClient:
    """LLM client for the caller; the firm's API key wins over LLM_API_KEY."""
    firm_key: Optional[str] = None
    if current_user.firm_id:
        result = await db.execute(select(Firm.llm_api_key).where(Firm.id == current_user.firm_id))
        firm_key = result.scalar_one_or_none()
    return client_for_firm(firm_key)


def _raise_llm_error(e: LLMServiceError) -> None:
    raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/generate", response_model=AIContentResponse)
async def generate(
    body: AIGenerateRequest,
    current_user: User = Depends(get_current_user),
    llm: LLMClient = Depends(get_llm_client),
    db: AsyncSession = Depends(get_db),
) -> AIContentResponse:
    """
    Generate a demand letter draft.

    ``template_content`` wins over ``template_id``; a template id is resolved
    against global templates and then the caller's firm.
    """
    source_texts = [t for t in body.source_texts if t and t.strip()]
    if not source_texts:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="At least one source text is required for generation",
        )

    template_content = body.template_content
    if body.template_id and not template_content:
        template = await get_accessible_template(db, body.template_id, current_user.firm_id)
        if template is None or not template.content.strip():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Template not found or has no content",
            )
        template_content = template.content

    try:
        content = await llm.generate_demand_letter(
            source_texts, template_content, body.custom_instructions
        )
    except LLMServiceError as e:
        logger.warning("Generation failed for user %s: %s", current_user.id, e.message)
        _raise_llm_error(e)

    logger.info(
        "AI generate: user=%s model=%s template=%s sources=%d",
        current_user.id,
        llm.model,
        body.template_id or "custom",
        len(source_texts),
    )
    return AIContentResponse(content=content, model=llm.model)


@router.post("/refine", response_model=AIContentResponse)
async def refine(
    body: AIRefineRequest,
    current_user: User = Depends(get_current_user),
    llm: LLMClient = Depends(get_llm_client),
) -> AIContentResponse:
    if not body.content.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Document content is required")
    if not body.refinement_instructions.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Refinement instructions are required",
        )

    try:
        content = await llm.refine_document(body.content, body.refinement_instructions)
    except LLMServiceError as e:
        logger.warning("Refinement failed for user %s: %s", current_user.id, e.message)
        _raise_llm_error(e)

    logger.info("AI refine: user=%s model=%s", current_user.id, llm.model)
    return AIContentResponse(content=content, model=llm.model)


@router.get("/status", response_model=AIStatusResponse)
async def ai_status(llm: LLMClient = Depends(get_llm_client)) -> AIStatusResponse:
    return AIStatusResponse(model=llm.model, has_api_key=llm.is_configured)
