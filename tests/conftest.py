"""
Shared fixtures for LawMint backend integration tests.

Uses a SQLite database through aiosqlite (override with TEST_DATABASE_URL).
Each test function gets its own session; tables are created on setup and
emptied afterwards.  Blob storage points at a per-test temporary directory
and the LLM provider is never contacted: tests that need completions patch
``LLMClient._post_chat`` via the ``fake_llm`` fixture.
"""
from __future__ import annotations

import io
import os
import tempfile
from dataclasses import dataclass
from typing import AsyncGenerator, Dict, List, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

# Override settings *before* any lawmint module is imported, so that
# settings.DATABASE_URL and the global engine point at the test DB.
TEST_DATABASE_URL = os.environ.get(
    "TEST_DATABASE_URL",
    "sqlite+aiosqlite:///./test_lawmint.db",
)
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["STORAGE_DIR"] = tempfile.mkdtemp(prefix="lawmint-storage-")
os.environ["LLM_API_KEY"] = ""
os.environ.pop("GLOBAL_TEMPLATES_DIR", None)

from lawmint.config import settings  # noqa: E402
from lawmint.database import Base, get_db  # noqa: E402
from lawmint.main import app  # noqa: E402
from lawmint.models import database_models  # noqa: E402,F401
from lawmint.services.collaboration import collaboration_hub  # noqa: E402
from lawmint.services.llm_client import LLMClient  # noqa: E402

PASSWORD = "Str0ngPassword"


# ---------------------------------------------------------------------------
# Per-test fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Provide a DB session for each test. After the test, every table is emptied
    so each test starts with a clean slate.
    """
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)

    # Ensure tables exist
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    # Empty all tables after the test (children first)
    async with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            await conn.execute(table.delete())

    await engine.dispose()


@pytest.fixture(autouse=True)
def storage_dir(tmp_path, monkeypatch) -> str:
    """Point blob storage at a fresh temporary directory."""
    path = tmp_path / "storage"
    path.mkdir()
    monkeypatch.setattr(settings, "STORAGE_DIR", str(path))
    monkeypatch.setattr(settings, "LLM_API_KEY", "")
    collaboration_hub.reset()
    return str(path)


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """
    httpx AsyncClient wired to the FastAPI app with the DB dependency
    overridden to use the per-test session.
    """

    async def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# LLM stub
# ---------------------------------------------------------------------------

class FakeLLM:
    """Records chat payloads and answers with a canned completion."""

    def __init__(self) -> None:
        self.calls: List[Dict] = []
        self.reply = "Dear Sir or Madam,\n\nWe demand payment.\n\nSincerely,\nCounsel"
        self.error: Optional[Exception] = None

    async def post_chat(self, client: LLMClient, payload: Dict) -> Dict:
        self.calls.append({"api_key": client.api_key, "payload": payload})
        if self.error is not None:
            raise self.error
        return {"choices": [{"message": {"role": "assistant", "content": self.reply}}]}

    @property
    def last_user_prompt(self) -> str:
        return self.calls[-1]["payload"]["messages"][1]["content"]


@pytest.fixture
def fake_llm(monkeypatch) -> FakeLLM:
    """Configure a global API key and route completions to FakeLLM."""
    fake = FakeLLM()
    monkeypatch.setattr(settings, "LLM_API_KEY", "global-test-key")

    async def _post_chat(self, payload):
        return await fake.post_chat(self, payload)

    monkeypatch.setattr(LLMClient, "_post_chat", _post_chat)
    return fake


# ---------------------------------------------------------------------------
# Account helpers
# ---------------------------------------------------------------------------

@dataclass
class Account:
    id: str
    email: str
    name: str
    token: str
    firm_id: Optional[str] = None
    firm_code: Optional[str] = None
    role: Optional[str] = None

    @property
    def headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}


async def signup(client: AsyncClient, email: str, name: str = "Test User") -> Account:
    resp = await client.post(
        "/api/auth/signup",
        json={"email": email, "password": PASSWORD, "name": name},
    )
    assert resp.status_code == 201, resp.text
    data = resp.json()
    return Account(id=data["user"]["id"], email=email, name=name, token=data["access_token"])


async def create_firm(client: AsyncClient, account: Account, name: str = "Mint & Partners") -> Account:
    resp = await client.post("/api/auth/firms", json={"name": name}, headers=account.headers)
    assert resp.status_code == 201, resp.text
    data = resp.json()
    account.firm_id = data["firm_id"]
    account.firm_code = data["firm_code"]
    account.role = "admin"
    return account


async def join_firm(client: AsyncClient, account: Account, firm_code: str, role: str) -> Account:
    resp = await client.post(
        "/api/auth/firms/join",
        json={"firm_code": firm_code, "role": role},
        headers=account.headers,
    )
    assert resp.status_code == 201, resp.text
    account.firm_id = resp.json()["firm_id"]
    account.role = role
    return account


@dataclass
class Firm:
    admin: Account
    lawyer: Account
    paralegal: Account

    @property
    def id(self) -> str:
        return self.admin.firm_id


@pytest_asyncio.fixture
async def firm(client: AsyncClient) -> Firm:
    """A firm with one admin, one lawyer and one paralegal."""
    admin = await create_firm(client, await signup(client, "admin@mint.law", "Alice Admin"))
    lawyer = await join_firm(
        client, await signup(client, "lawyer@mint.law", "Larry Lawyer"), admin.firm_code, "lawyer"
    )
    paralegal = await join_firm(
        client, await signup(client, "para@mint.law", "Pat Paralegal"), admin.firm_code, "paralegal"
    )
    return Firm(admin=admin, lawyer=lawyer, paralegal=paralegal)


@pytest_asyncio.fixture
async def outsider(client: AsyncClient) -> Account:
    """Admin of a different firm."""
    return await create_firm(
        client, await signup(client, "other@rival.law", "Oscar Outsider"), "Rival Legal"
    )


# ---------------------------------------------------------------------------
# File builders
# ---------------------------------------------------------------------------

def make_docx(*paragraphs: str) -> bytes:
    """Build a DOCX file in memory with one paragraph per argument."""
    from docx import Document

    doc = Document()
    for text in paragraphs:
        doc.add_paragraph(text)
    buffer = io.BytesIO()
    doc.save(buffer)
    return buffer.getvalue()


def make_pdf(text: str) -> bytes:
    """Build a one-page PDF in memory containing *text*."""
    import fitz

    doc = fitz.open()
    page = doc.new_page()
    page.insert_text((72, 144), text, fontsize=11)
    data = doc.tobytes()
    doc.close()
    return data


def make_blank_pdf() -> bytes:
    import fitz

    doc = fitz.open()
    doc.new_page()
    data = doc.tobytes()
    doc.close()
    return data


DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
