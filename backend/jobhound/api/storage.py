import logging

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import FileResponse

from ..services.storage import ObjectNotFound, StorageError, object_path, verify_signed_token
from ..services.resume_text import mime_type_for

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/storage", tags=["Storage"])


@router.get("/{key:path}")
def download_object(key: str, token: str = Query(default="")):
    """Serve a stored object to holders of a signed URL."""
    if not verify_signed_token(key, token):
        raise HTTPException(status_code=403, detail="Invalid or expired link")
    try:
        path = object_path(key)
    except ObjectNotFound:
        raise HTTPException(status_code=404, detail="File not found")
    except StorageError:
        raise HTTPException(status_code=403, detail="Invalid or expired link")

    media_type = "image/png" if path.suffix.lower() == ".png" else mime_type_for(path.name)
    return FileResponse(path.as_posix(), media_type=media_type, filename=path.name)
