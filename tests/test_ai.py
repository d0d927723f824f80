"""Tests for AI generation, refinement, key selection and upstream error mapping."""
import pytest
from httpx import AsyncClient

from lawmint.services.llm_client import (
    LLMClient,
    LLMServiceError,
    _map_upstream_error,
    build_generation_prompt,
)
from tests.conftest import DOCX_MIME, make_docx


# ---------------------------------------------------------------------------
# Prompt assembly
# ---------------------------------------------------------------------------

def test_generation_prompt_numbers_sources():
    prompt = build_generation_prompt(["Invoice 42", "Contract A"])
    assert "[Source Document 1]\nInvoice 42" in prompt
    assert "[Source Document 2]\nContract A" in prompt
    assert "\n\n---\n\n" in prompt
    assert "TEMPLATE TO FOLLOW" not in prompt
    assert "SPECIAL INSTRUCTIONS" not in prompt


def test_generation_prompt_includes_optional_sections():
    prompt = build_generation_prompt(["Invoice"], "RE: Demand", "Mention interest at 5%")
    assert prompt.index("TEMPLATE TO FOLLOW:\nRE: Demand") < prompt.index("SOURCE DOCUMENTS:")
    assert "SPECIAL INSTRUCTIONS:\nMention interest at 5%" in prompt


@pytest.mark.parametrize(
    "status_code,body,expected",
    [
        (429, "", 429),
        (401, "", 502),
        (403, "", 502),
        (400, '{"error": {"code": "context_length_exceeded"}}', 400),
        (500, "internal", 502),
    ],
)
def test_upstream_error_mapping(status_code, body, expected):
    assert _map_upstream_error(status_code, body).status_code == expected


# ---------------------------------------------------------------------------
# Client behaviour
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_unconfigured_client_raises_503():
    client = LLMClient(api_key="")
    assert not client.is_configured
    with pytest.raises(LLMServiceError) as exc:
        await client.refine_document("Dear Sir", "Be firmer")
    assert exc.value.status_code == 503


@pytest.mark.asyncio
async def test_empty_completion_is_502(fake_llm):
    fake_llm.reply = "   "
    with pytest.raises(LLMServiceError) as exc:
        await LLMClient().generate_demand_letter(["Invoice"])
    assert exc.value.status_code == 502


@pytest.mark.asyncio
async def test_health_unconfigured():
    assert await LLMClient(api_key="").check_health() == "unconfigured"


# ---------------------------------------------------------------------------
# /api/ai endpoints
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_generate_with_inline_template(client: AsyncClient, firm, fake_llm):
    resp = await client.post(
        "/api/ai/generate",
        json={
            "template_content": "RE: Demand for Payment",
            "source_texts": ["Invoice 42 for $4,200", "  "],
            "custom_instructions": "Give ten days to pay",
        },
        headers=firm.lawyer.headers,
    )
    assert resp.status_code == 200
    assert resp.json()["content"] == fake_llm.reply
    assert resp.json()["model"]

    payload = fake_llm.calls[-1]["payload"]
    assert payload["messages"][0]["content"] == LLMClient.GENERATION_SYSTEM_PROMPT
    prompt = fake_llm.last_user_prompt
    assert "RE: Demand for Payment" in prompt
    assert "Invoice 42 for $4,200" in prompt
    assert "[Source Document 2]" not in prompt
    assert "Give ten days to pay" in prompt


@pytest.mark.asyncio
async def test_generate_resolves_template_id(client: AsyncClient, firm, outsider, fake_llm):
    resp = await client.post(
        "/api/templates/upload",
        data={"name": "House style"},
        files={"file": ("house.docx", make_docx("HOUSE STYLE HEADER"), DOCX_MIME)},
        headers=firm.lawyer.headers,
    )
    template_id = resp.json()["id"]

    resp = await client.post(
        "/api/ai/generate",
        json={"template_id": template_id, "source_texts": ["Invoice"]},
        headers=firm.paralegal.headers,
    )
    assert resp.status_code == 200
    assert "HOUSE STYLE HEADER" in fake_llm.last_user_prompt

    resp = await client.post(
        "/api/ai/generate",
        json={"template_id": template_id, "source_texts": ["Invoice"]},
        headers=outsider.headers,
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_generate_requires_sources(client: AsyncClient, firm, fake_llm):
    resp = await client.post(
        "/api/ai/generate",
        json={"template_content": "RE:", "source_texts": ["", "   "]},
        headers=firm.lawyer.headers,
    )
    assert resp.status_code == 400
    assert fake_llm.calls == []


@pytest.mark.asyncio
async def test_firm_key_takes_precedence(client: AsyncClient, firm, fake_llm):
    await client.put(
        f"/api/auth/firms/{firm.id}/settings/api-key",
        json={"api_key": "firm-own-key"},
        headers=firm.admin.headers,
    )
    resp = await client.post(
        "/api/ai/refine",
        json={"content": "Dear Sir", "refinement_instructions": "Be firmer"},
        headers=firm.lawyer.headers,
    )
    assert resp.status_code == 200
    assert fake_llm.calls[-1]["api_key"] == "firm-own-key"


@pytest.mark.asyncio
async def test_global_key_used_without_firm_key(client: AsyncClient, firm, fake_llm):
    await client.post(
        "/api/ai/refine",
        json={"content": "Dear Sir", "refinement_instructions": "Be firmer"},
        headers=firm.lawyer.headers,
    )
    assert fake_llm.calls[-1]["api_key"] == "global-test-key"
    assert "REFINEMENT INSTRUCTIONS:\nBe firmer" in fake_llm.last_user_prompt
    assert "CURRENT DOCUMENT:\nDear Sir" in fake_llm.last_user_prompt


@pytest.mark.asyncio
async def test_no_key_anywhere_is_503(client: AsyncClient, firm):
    resp = await client.post(
        "/api/ai/refine",
        json={"content": "Dear Sir", "refinement_instructions": "Be firmer"},
        headers=firm.lawyer.headers,
    )
    assert resp.status_code == 503


@pytest.mark.asyncio
async def test_refine_validation(client: AsyncClient, firm, fake_llm):
    resp = await client.post(
        "/api/ai/refine",
        json={"content": "  ", "refinement_instructions": "Be firmer"},
        headers=firm.lawyer.headers,
    )
    assert resp.status_code == 400

    resp = await client.post(
        "/api/ai/refine",
        json={"content": "Dear Sir", "refinement_instructions": ""},
        headers=firm.lawyer.headers,
    )
    assert resp.status_code == 400
    assert fake_llm.calls == []


@pytest.mark.asyncio
async def test_upstream_errors_propagate_status(client: AsyncClient, firm, fake_llm):
    fake_llm.error = LLMServiceError(429, "AI provider rate limit exceeded.")
    resp = await client.post(
        "/api/ai/refine",
        json={"content": "Dear Sir", "refinement_instructions": "Be firmer"},
        headers=firm.lawyer.headers,
    )
    assert resp.status_code == 429
    assert "rate limit" in resp.json()["detail"]


@pytest.mark.asyncio
async def test_ai_requires_authentication(client: AsyncClient):
    resp = await client.post("/api/ai/refine", json={"content": "x", "refinement_instructions": "y"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_ai_status(client: AsyncClient, firm):
    resp = await client.get("/api/ai/status", headers=firm.lawyer.headers)
    assert resp.status_code == 200
    assert resp.json()["has_api_key"] is False

    await client.put(
        f"/api/auth/firms/{firm.id}/settings/api-key",
        json={"api_key": "firm-own-key"},
        headers=firm.admin.headers,
    )
    resp = await client.get("/api/ai/status", headers=firm.lawyer.headers)
    assert resp.json()["has_api_key"] is True
