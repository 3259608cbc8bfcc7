import logging
import os
import secrets
import time
from pathlib import Path
from typing import Iterable, Optional
from fastapi import UploadFile
from config import get_settings

logger = logging.getLogger(__name__)

# Configuration
UPLOAD_URL_PREFIX = "/uploads"
UPLOAD_CATEGORIES = ("photos", "videos", "audios", "documents", "avatars")
CHUNK_SIZE = 1024 * 1024

ALLOWED_EXTENSIONS = {
    '.jpeg', '.jpg', '.png', '.gif',
    '.mp4', '.mov', '.avi',
    '.mp3', '.wav', '.m4a',
    '.pdf', '.doc', '.docx', '.txt',
}
ALLOWED_MEDIA_TYPES = {
    'image/jpeg', 'image/jpg', 'image/png', 'image/gif',
    'video/mp4', 'video/quicktime', 'video/x-msvideo', 'video/avi',
    'audio/mpeg', 'audio/mp3', 'audio/wav', 'audio/x-wav', 'audio/wave',
    'audio/mp4', 'audio/x-m4a', 'audio/m4a',
    'application/pdf',
    'application/msword',
    'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
    'text/plain',
}

class UploadRejected(Exception):
    """Raised when an uploaded file fails the type or size policy"""

    def __init__(self, detail: str, status_code: int = 400):
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code

def upload_root() -> str:
    return get_settings().upload_folder

def category_folder(category: str) -> str:
    return os.path.join(upload_root(), category)

def ensure_upload_directories():
    """Ensure every upload category directory exists"""
    for category in UPLOAD_CATEGORIES:
        Path(category_folder(category)).mkdir(parents=True, exist_ok=True)

def normalize_media_type(content_type: Optional[str]) -> str:
    return (content_type or "").split(";")[0].strip().lower()

def classify_media_type(content_type: Optional[str]) -> str:
    """Pick the storage category for a declared media type"""
    media_type = normalize_media_type(content_type)
    if media_type.startswith("video/"):
        return "videos"
    if media_type.startswith("audio/"):
        return "audios"
    if "pdf" in media_type or "word" in media_type:
        return "documents"
    return "photos"

def is_allowed_upload(filename: Optional[str], content_type: Optional[str]) -> bool:
    ext = Path(filename or "").suffix.lower()
    return ext in ALLOWED_EXTENSIONS and normalize_media_type(content_type) in ALLOWED_MEDIA_TYPES

def generate_media_filename(original_filename: str) -> str:
    """Millisecond timestamp plus a random suffix, keeping the original extension"""
    ext = Path(original_filename).suffix.lower()
    return f"{time.time_ns() // 1_000_000}-{secrets.randbelow(10**9)}{ext}"

def check_upload(upload: UploadFile, expected_category: Optional[str] = None) -> str:
    """Validate an upload without touching the disk and return its category"""
    if not is_allowed_upload(upload.filename, upload.content_type):
        logger.warning("Rejected upload %s (%s)", upload.filename, upload.content_type)
        raise UploadRejected("Unsupported file type")
    category = classify_media_type(upload.content_type)
    if expected_category and category != expected_category:
        raise UploadRejected(f"Expected a file for {expected_category}, got {upload.content_type}")
    return category

def save_upload(upload: UploadFile, expected_category: Optional[str] = None) -> str:
    """Store an upload under its category folder and return its reference path"""
    category = check_upload(upload, expected_category)
    max_size = get_settings().max_upload_size
    ensure_upload_directories()
    stored_name = generate_media_filename(upload.filename)
    final_path = os.path.join(category_folder(category), stored_name)
    partial_path = final_path + ".part"
    size = 0
    try:
        with open(partial_path, 'wb') as f:
            while True:
                chunk = upload.file.read(CHUNK_SIZE)
                if not chunk:
                    break
                size += len(chunk)
                if size > max_size:
                    raise UploadRejected(f"File exceeds {max_size // (1024 * 1024)}MB limit")
                f.write(chunk)
        os.replace(partial_path, final_path)
    except Exception:
        if os.path.exists(partial_path):
            os.remove(partial_path)
        raise
    reference = get_media_url(category, stored_name)
    logger.info("Stored %s (%d bytes) as %s", upload.filename, size, reference)
    return reference

def get_media_url(category: str, filename: str) -> str:
    return f"{UPLOAD_URL_PREFIX}/{category}/{filename}"

def media_file_path(reference: Optional[str]) -> Optional[str]:
    """Map a /uploads/<category>/<name> reference to its on-disk path"""
    if not reference or not reference.startswith(UPLOAD_URL_PREFIX + "/"):
        return None
    parts = reference[len(UPLOAD_URL_PREFIX) + 1:].split("/")
    if len(parts) != 2 or parts[0] not in UPLOAD_CATEGORIES:
        return None
    filename = parts[1]
    if not filename or filename in (".", "..") or "\\" in filename:
        return None
    return os.path.join(category_folder(parts[0]), filename)

def delete_media_file(reference: Optional[str]) -> bool:
    """Delete a stored file by reference path; failures are logged, never raised"""
    file_path = media_file_path(reference)
    if file_path is None:
        if reference:
            logger.warning("Refusing to delete unrecognised media reference %s", reference)
        return False
    try:
        if os.path.exists(file_path):
            os.remove(file_path)
            logger.info("Deleted media file %s", reference)
            return True
        return False
    except OSError as exc:
        logger.warning("Could not delete media file %s: %s", reference, exc)
        return False

def delete_media_files(references: Iterable[Optional[str]]) -> int:
    return sum(1 for reference in references if reference and delete_media_file(reference))

def replace_slot_file(old_reference: Optional[str], new_reference: Optional[str]) -> bool:
    """Remove the file a single-file slot used to point at, once the record holds the new one"""
    if not old_reference or old_reference == new_reference:
        return False
    if not delete_media_file(old_reference):
        logger.warning("Previous slot file %s was not removed", old_reference)
        return False
    return True
