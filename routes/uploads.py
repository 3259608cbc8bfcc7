import os
from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse
from file_utils import UPLOAD_URL_PREFIX, UPLOAD_CATEGORIES, get_media_url, media_file_path

router = APIRouter(prefix=UPLOAD_URL_PREFIX, tags=["uploads"])

@router.get("/{category}/{filename}")
def serve_upload(category: str, filename: str):
    """Serve a stored upload by its reference path"""
    if category not in UPLOAD_CATEGORIES:
        raise HTTPException(status_code=404, detail="File not found")
    file_path = media_file_path(get_media_url(category, filename))
    if file_path is None or not os.path.isfile(file_path):
        raise HTTPException(status_code=404, detail="File not found")
    return FileResponse(file_path)
