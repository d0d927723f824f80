"""Tests for DOCX export formatting and the /api/export endpoint."""
import io

import pytest
from docx import Document
from docx.shared import Inches, Pt
from httpx import AsyncClient

from lawmint.services.docx_exporter import (
    build_docx,
    export_filename,
    sanitize_text,
    split_paragraphs,
)


# ---------------------------------------------------------------------------
# Exporter units
# ---------------------------------------------------------------------------

def test_split_paragraphs_on_blank_lines_and_html():
    content = "Dear Sir,\n\nWe demand payment.\n \n<p>Sincerely,</p><p><b>Counsel</b></p>"
    assert split_paragraphs(content) == ["Dear Sir,", "We demand payment.", "Sincerely,", "Counsel"]


def test_sanitize_text_decodes_entities():
    assert sanitize_text("Smith &amp; Jones&nbsp;LLP &lt;firm&gt;") == "Smith & Jones LLP <firm>"
    assert sanitize_text("&amp;lt;") == "&lt;"


def test_export_filename():
    assert export_filename("Demand: Smith v. Jones", timestamp_ms=1700000000000) == (
        "demand-smith-v-jones_1700000000000.docx"
    )
    assert export_filename("!!!", timestamp_ms=1) == "document_1.docx"
    assert export_filename(None).startswith("document_")


def test_build_docx_formatting():
    doc = Document(io.BytesIO(build_docx("First paragraph.\n\nSecond paragraph.")))

    paragraphs = [p for p in doc.paragraphs if p.text]
    assert [p.text for p in paragraphs] == ["First paragraph.", "Second paragraph."]

    normal = doc.styles["Normal"]
    assert normal.font.name == "Times New Roman"
    assert normal.font.size == Pt(11)
    for p in paragraphs:
        assert p.paragraph_format.line_spacing == 1.5
        assert p.paragraph_format.space_after == Pt(10)

    section = doc.sections[0]
    assert section.left_margin == Inches(1)
    assert section.top_margin == Inches(1)


# ---------------------------------------------------------------------------
# /api/export/docx
# ---------------------------------------------------------------------------

async def _create(client: AsyncClient, account, content="Dear Acme,\n\nPay now."):
    resp = await client.post(
        "/api/documents/",
        json={"title": "Demand to Acme", "firm_id": account.firm_id, "content": content},
        headers=account.headers,
    )
    return resp.json()["document"]


@pytest.mark.asyncio
async def test_export_stored_content(client: AsyncClient, firm):
    doc = await _create(client, firm.lawyer)
    resp = await client.post("/api/export/docx", json={"document_id": doc["id"]}, headers=firm.lawyer.headers)
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith(
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
    )
    disposition = resp.headers["content-disposition"]
    assert disposition.startswith('attachment; filename="demand-to-acme_')
    assert disposition.endswith('.docx"')

    exported = Document(io.BytesIO(resp.content))
    assert [p.text for p in exported.paragraphs if p.text] == ["Dear Acme,", "Pay now."]


@pytest.mark.asyncio
async def test_export_unsaved_content_and_title(client: AsyncClient, firm):
    doc = await _create(client, firm.lawyer)
    resp = await client.post(
        "/api/export/docx",
        json={"document_id": doc["id"], "content": "<p>Edited letter</p>", "title": "Final Draft"},
        headers=firm.lawyer.headers,
    )
    assert resp.status_code == 200
    assert 'filename="final-draft_' in resp.headers["content-disposition"]
    exported = Document(io.BytesIO(resp.content))
    assert [p.text for p in exported.paragraphs if p.text] == ["Edited letter"]


@pytest.mark.asyncio
async def test_export_empty_content_rejected(client: AsyncClient, firm):
    doc = await _create(client, firm.lawyer, content="")
    resp = await client.post("/api/export/docx", json={"document_id": doc["id"]}, headers=firm.lawyer.headers)
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_export_permissions(client: AsyncClient, firm):
    doc = await _create(client, firm.lawyer)
    await client.post(
        f"/api/documents/{doc['id']}/share",
        json={"visibility": "firm-wide"},
        headers=firm.lawyer.headers,
    )

    # paralegals can view but not export
    resp = await client.post("/api/export/docx", json={"document_id": doc["id"]}, headers=firm.paralegal.headers)
    assert resp.status_code == 403

    private = await _create(client, firm.lawyer)
    resp = await client.post("/api/export/docx", json={"document_id": private["id"]}, headers=firm.admin.headers)
    assert resp.status_code == 403

    resp = await client.post("/api/export/docx", json={"document_id": "missing"}, headers=firm.admin.headers)
    assert resp.status_code == 404
