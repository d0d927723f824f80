"""Tests for local blob storage and signed download tokens."""
import pytest

from lawmint.dependencies.auth import create_access_token
from lawmint.services.storage import BlobStorage, StorageError, verify_signed_token


@pytest.mark.asyncio
async def test_save_read_delete(tmp_path):
    storage = BlobStorage(str(tmp_path))
    await storage.save("sources/firm/doc/a.pdf", b"%PDF-1.7")

    assert await storage.exists("sources/firm/doc/a.pdf")
    assert await storage.read("sources/firm/doc/a.pdf") == b"%PDF-1.7"

    assert await storage.delete("sources/firm/doc/a.pdf") is True
    assert not (tmp_path / "sources").exists()
    assert await storage.delete("sources/firm/doc/a.pdf") is False


@pytest.mark.asyncio
async def test_paths_cannot_escape_root(tmp_path):
    storage = BlobStorage(str(tmp_path / "root"))
    with pytest.raises(StorageError):
        await storage.save("../outside.txt", b"x")
    with pytest.raises(StorageError):
        await storage.save("/etc/passwd", b"x")
    with pytest.raises(StorageError):
        await storage.read("templates/missing.docx")


@pytest.mark.asyncio
async def test_delete_quietly_ignores_bad_paths(tmp_path):
    storage = BlobStorage(str(tmp_path))
    await storage.delete_quietly(None)
    await storage.delete_quietly("../escape")


def test_signed_token_round_trip(tmp_path):
    storage = BlobStorage(str(tmp_path))
    url, expires_at = storage.signed_url("templates/global/t1/letter.docx", expires_in=60, file_name="letter.docx")
    assert "/api/files/download?token=" in url

    token = url.split("token=", 1)[1]
    assert verify_signed_token(token) == ("templates/global/t1/letter.docx", "letter.docx")


def test_access_tokens_are_not_download_tokens():
    with pytest.raises(StorageError):
        verify_signed_token(create_access_token("user-1"))
