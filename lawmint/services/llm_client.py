"""
LLM client for demand-letter generation and refinement.

Talks to any OpenAI-compatible ``/chat/completions`` endpoint over httpx.
Upstream failures are mapped to ``LLMServiceError`` carrying the HTTP status
the API should answer with.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from lawmint.config import settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Prompt templates
# ---------------------------------------------------------------------------

_GENERATION_SYSTEM_PROMPT = """You are an expert legal assistant specializing in demand letters and legal documentation. Your role is to generate professional, compelling demand letters based on provided templates and source documents.

Key Guidelines:
1. Maintain a professional, formal legal tone appropriate for law firm correspondence
2. Structure the letter logically with clear sections (letterhead, date, recipient, salutation, body, signature block)
3. Fill in specific details from source documents when available
4. Follow the template structure provided
5. Use accurate legal terminology and proper formatting
6. Ensure the letter is complete and ready for attorney review
7. Keep the content clear, concise, and persuasive
8. Comply with standard legal letter formatting conventions

The generated letter should be a polished draft that requires minimal editing from the attorney."""

_REFINEMENT_SYSTEM_PROMPT = """You are an expert legal assistant specializing in refining and improving legal documents. Your role is to enhance existing legal documents based on specific user instructions while maintaining professional legal standards.

Key Guidelines:
1. Make targeted improvements based on user instructions
2. Maintain consistent professional legal tone throughout
3. Preserve the overall structure and key arguments of the original document
4. Enhance clarity and persuasiveness where possible
5. Ensure any additions comply with legal writing standards
6. Flag any sections that might need attorney review
7. Preserve proper formatting and structure

Provide the refined document as your response, ready for attorney review."""

_GENERATION_USER_PROMPT = """Generate a professional demand letter based on the following information:

{template_section}SOURCE DOCUMENTS:
{sources}

{instructions_section}Please generate a complete, professional demand letter that incorporates the template structure and information from the source documents. The letter should be ready for attorney review and adjustment."""

_REFINEMENT_USER_PROMPT = """Please refine the following legal document based on these instructions:

REFINEMENT INSTRUCTIONS:
{instructions}

CURRENT DOCUMENT:
{content}

Please provide the refined version of the document, incorporating the requested changes while maintaining professional legal standards and the original structure."""

SOURCE_SEPARATOR = "\n\n---\n\n"


class LLMServiceError(Exception):
    """LLM failure with the HTTP status code the API should return."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def build_generation_prompt(
    source_texts: List[str],
    template_content: Optional[str] = None,
    custom_instructions: Optional[str] = None,
) -> str:
    """Assemble the user prompt; template and instruction sections appear only when present."""
    sources = SOURCE_SEPARATOR.join(
        f"[Source Document {idx}]\n{text}" for idx, text in enumerate(source_texts, start=1)
    )
    template_section = (
        f"TEMPLATE TO FOLLOW:\n{template_content}{SOURCE_SEPARATOR}" if template_content else ""
    )
    instructions_section = (
        f"SPECIAL INSTRUCTIONS:\n{custom_instructions}\n\n" if custom_instructions else ""
    )
    return _GENERATION_USER_PROMPT.format(
        template_section=template_section,
        sources=sources,
        instructions_section=instructions_section,
    ).strip()


def build_refinement_prompt(content: str, instructions: str) -> str:
    return _REFINEMENT_USER_PROMPT.format(instructions=instructions, content=content).strip()


# ---------------------------------------------------------------------------
# Main client class
# ---------------------------------------------------------------------------

class LLMClient:
    """
    Chat-completions client.

    Limits concurrency to MAX_CONCURRENT simultaneous LLM calls per process.
    The API key comes from the firm settings when set, else LLM_API_KEY.
    """

    MAX_CONCURRENT: int = 4
    _semaphore: Optional[asyncio.Semaphore] = None

    GENERATION_SYSTEM_PROMPT = _GENERATION_SYSTEM_PROMPT
    REFINEMENT_SYSTEM_PROMPT = _REFINEMENT_SYSTEM_PROMPT

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None) -> None:
        self.api_key = api_key or settings.LLM_API_KEY
        self.model = model or settings.LLM_MODEL
        self.base_url = settings.LLM_BASE_URL.rstrip("/")
        self.timeout = httpx.Timeout(float(settings.LLM_TIMEOUT), connect=10.0)

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    @classmethod
    def _get_semaphore(cls) -> asyncio.Semaphore:
        if cls._semaphore is None:
            cls._semaphore = asyncio.Semaphore(cls.MAX_CONCURRENT)
        return cls._semaphore

    # ------------------------------------------------------------------
    # Public methods
    # ------------------------------------------------------------------

    async def generate_demand_letter(
        self,
        source_texts: List[str],
        template_content: Optional[str] = None,
        custom_instructions: Optional[str] = None,
    ) -> str:
        """Generate a demand letter draft from the template and source texts."""
        if not source_texts:
            raise LLMServiceError(400, "At least one source text is required for generation")
        prompt = build_generation_prompt(source_texts, template_content, custom_instructions)
        return await self.complete(self.GENERATION_SYSTEM_PROMPT, prompt)

    async def refine_document(self, content: str, instructions: str) -> str:
        """Rewrite *content* following *instructions*."""
        prompt = build_refinement_prompt(content, instructions)
        return await self.complete(self.REFINEMENT_SYSTEM_PROMPT, prompt)

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        """Run one system + user exchange and return the completion text."""
        if not self.is_configured:
            raise LLMServiceError(
                503,
                "AI service is not configured. Ask a firm admin to add an API key.",
            )

        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": settings.LLM_TEMPERATURE,
            "max_tokens": settings.LLM_MAX_TOKENS,
        }

        async with self._get_semaphore():
            data = await self._post_chat(payload)

        choices = data.get("choices") or []
        content = ""
        if choices:
            content = ((choices[0] or {}).get("message") or {}).get("content") or ""
        if not content.strip():
            raise LLMServiceError(502, "Empty response from AI provider")
        return content

    async def check_health(self) -> str:
        """Return "unconfigured", "ok" or "error" for the health endpoint."""
        if not self.is_configured:
            return "unconfigured"
        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                resp = await client.get(f"{self.base_url}/models", headers=self._headers())
            return "ok" if resp.status_code == 200 else "error"
        except httpx.HTTPError as exc:
            logger.error("LLM health check failed: %s", exc)
            return "error"

    # ------------------------------------------------------------------
    # Core HTTP caller
    # ------------------------------------------------------------------

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def _post_chat(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        POST to /chat/completions and return the decoded JSON body.

        Raises:
            LLMServiceError: mapped from timeouts, connection failures and
                non-200 responses
        """
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    f"{self.base_url}/chat/completions",
                    json=payload,
                    headers=self._headers(),
                )
        except httpx.TimeoutException:
            logger.error("_post_chat: request timed out after %s s", settings.LLM_TIMEOUT)
            raise LLMServiceError(502, "AI provider timed out. Please try again.")
        except httpx.HTTPError as exc:
            logger.error("_post_chat: connection error: %s", exc)
            raise LLMServiceError(502, f"Could not reach AI provider: {exc}")

        if resp.status_code == 200:
            try:
                return resp.json()
            except ValueError:
                raise LLMServiceError(502, "AI provider returned an invalid response")

        logger.error(
            "_post_chat: provider returned HTTP %d: %s",
            resp.status_code,
            resp.text[:300],
        )
        raise _map_upstream_error(resp.status_code, resp.text)


def _map_upstream_error(status_code: int, body: str) -> LLMServiceError:
    if status_code == 429:
        return LLMServiceError(429, "AI provider rate limit exceeded. Please try again in a moment.")
    if status_code in (401, 403):
        return LLMServiceError(502, "AI provider authentication failed. Check API key configuration.")
    lowered = (body or "").lower()
    if "context_length" in lowered or "exceeded" in lowered:
        return LLMServiceError(400, "Request exceeded token limits. Please reduce content size.")
    return LLMServiceError(502, f"AI provider error (HTTP {status_code})")


def client_for_firm(firm_api_key: Optional[str]) -> LLMClient:
    """Client using the firm's own key when it has one."""
    return LLMClient(api_key=firm_api_key or None)
