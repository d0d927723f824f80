"""
Local blob storage for uploaded templates and source documents.

Blobs live under ``settings.STORAGE_DIR`` at relative paths such as
``templates/{firm_id|global}/{template_id}/{file}`` and
``sources/{firm_id}/{document_id|temp_<ts>}/{source_id}/{file}``.
Downloads go through short-lived signed tokens served by ``GET /api/files/download``.
"""
from __future__ import annotations

import logging
import os
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional, Tuple
from urllib.parse import quote

import aiofiles
from jose import JWTError, jwt

from lawmint.config import settings
from lawmint.utils.helpers import utcnow

logger = logging.getLogger(__name__)

_DOWNLOAD_TOKEN_TYPE = "download"


class StorageError(Exception):
    """Raised when a blob path is invalid or a blob cannot be read or written."""


class BlobStorage:
    """Filesystem-backed blob store rooted at *root*."""

    def __init__(self, root: Optional[str] = None) -> None:
        self.root = Path(root or settings.STORAGE_DIR).resolve()

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def _resolve(self, path: str) -> Path:
        if not path or os.path.isabs(path):
            raise StorageError(f"Invalid storage path: {path!r}")
        full = (self.root / path).resolve()
        if full != self.root and self.root not in full.parents:
            raise StorageError(f"Storage path escapes root: {path!r}")
        return full

    # ------------------------------------------------------------------
    # Blob operations
    # ------------------------------------------------------------------

    async def save(self, path: str, data: bytes) -> str:
        """Write *data* to *path*, creating parent directories.  Returns *path*."""
        full = self._resolve(path)
        full.parent.mkdir(parents=True, exist_ok=True)
        try:
            async with aiofiles.open(full, "wb") as f:
                await f.write(data)
        except OSError as e:
            raise StorageError(f"Could not write blob {path}: {e}") from e
        logger.debug("Stored blob %s (%d bytes)", path, len(data))
        return path

    async def read(self, path: str) -> bytes:
        full = self._resolve(path)
        if not full.is_file():
            raise StorageError(f"Blob not found: {path}")
        async with aiofiles.open(full, "rb") as f:
            return await f.read()

    async def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()

    async def delete(self, path: str) -> bool:
        """
        Remove a blob and any directories it leaves empty.

        Returns False when the blob was already gone.
        """
        full = self._resolve(path)
        if not full.is_file():
            return False
        full.unlink()
        parent = full.parent
        while parent != self.root and self.root in parent.parents:
            try:
                parent.rmdir()
            except OSError:
                break
            parent = parent.parent
        return True

    async def delete_quietly(self, path: Optional[str]) -> None:
        """Best-effort delete: failures are logged, never raised."""
        if not path:
            return
        try:
            await self.delete(path)
        except (OSError, StorageError) as e:
            logger.warning("Could not delete blob %s: %s", path, e)

    def local_path(self, path: str) -> Path:
        return self._resolve(path)

    # ------------------------------------------------------------------
    # Signed URLs
    # ------------------------------------------------------------------

    def signed_url(
        self,
        path: str,
        expires_in: Optional[int] = None,
        file_name: Optional[str] = None,
    ) -> Tuple[str, datetime]:
        """
        Build an expiring download URL for *path*.

        Returns:
            (url, expires_at) with *expires_at* as naive UTC
        """
        self._resolve(path)
        expires_at = utcnow() + timedelta(seconds=expires_in or settings.SIGNED_URL_EXPIRES_SECONDS)
        claims = {"path": path, "exp": expires_at, "type": _DOWNLOAD_TOKEN_TYPE}
        if file_name:
            claims["name"] = file_name
        token = jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
        base = settings.PUBLIC_BASE_URL.rstrip("/")
        return f"{base}/api/files/download?token={quote(token)}", expires_at


def verify_signed_token(token: str) -> Tuple[str, Optional[str]]:
    """
    Validate a download token.

    Returns:
        (path, file_name)

    Raises:
        StorageError: token is malformed, expired or not a download token
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as e:
        raise StorageError(f"Invalid download token: {e}") from e
    if payload.get("type") != _DOWNLOAD_TOKEN_TYPE or not payload.get("path"):
        raise StorageError("Invalid download token")
    return payload["path"], payload.get("name")


def get_storage() -> BlobStorage:
    """FastAPI dependency; reads STORAGE_DIR at call time so tests can redirect it."""
    return BlobStorage()
