"""
Signed blob downloads.

GET /download?token= — stream a stored file for a valid, unexpired token
"""
from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import FileResponse
import logging

from lawmint.services.storage import BlobStorage, StorageError, get_storage, verify_signed_token

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/download")
async def download_file(
    token: str = Query(...),
    storage: BlobStorage = Depends(get_storage),
):
    try:
        path, file_name = verify_signed_token(token)
    except StorageError as e:
        logger.warning(f"Rejected download token: {e}")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired download link")

    try:
        full_path = storage.local_path(path)
    except StorageError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired download link")

    if not full_path.is_file():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")

    return FileResponse(full_path, filename=file_name or full_path.name)
