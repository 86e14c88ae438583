"""
File Upload Utility - store resumes and company logos on disk.

Files land in settings.upload_dir under a unique name and are referenced by
their public path (/uploads/<name>), which app.main serves statically.

Resumes: extensions from settings.allowed_resume_extensions
Logos:   image/* content types
Max file size: settings.max_upload_size_mb
"""

import logging
import os
import re
import time
import uuid
from typing import Optional
from fastapi import UploadFile

from app.core.config import get_settings
from app.core.errors import APIError, ValidationError

logger = logging.getLogger(__name__)

PUBLIC_PREFIX = "/uploads/"


def get_file_extension(filename: str) -> str:
    """Get lowercase file extension."""
    if '.' not in filename:
        return ''
    return '.' + filename.rsplit('.', 1)[1].lower()


def safe_filename(filename: str) -> str:
    """Strip directories and anything outside [A-Za-z0-9._-]."""
    base = os.path.basename(filename.replace("\\", "/"))
    return re.sub(r"[^A-Za-z0-9._-]", "_", base) or "file"


def unique_name(filename: str, prefix: str = "") -> str:
    """<prefix><millis>-<random>-<sanitized filename>"""
    return f"{prefix}{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}-{safe_filename(filename)}"


async def _read_checked(file: UploadFile) -> bytes:
    settings = get_settings()
    content = await file.read()
    max_bytes = settings.max_upload_size_mb * 1024 * 1024
    if len(content) > max_bytes:
        raise APIError(
            code="FILE_TOO_LARGE",
            message=f"File too large. Maximum size: {settings.max_upload_size_mb}MB",
            status_code=413,
        )
    if not content:
        raise ValidationError("Uploaded file is empty")
    return content


def _write(content: bytes, name: str) -> str:
    upload_dir = get_settings().upload_dir
    os.makedirs(upload_dir, exist_ok=True)
    with open(os.path.join(upload_dir, name), "wb") as fh:
        fh.write(content)
    logger.info("stored upload %s (%d bytes)", name, len(content))
    return PUBLIC_PREFIX + name


async def save_resume(file: Optional[UploadFile]) -> Optional[str]:
    """
    Validate and store a resume.

    Returns:
        Public path of the stored file, or None when no file was sent
    """
    if file is None or not file.filename:
        return None

    allowed = get_settings().resume_extensions
    ext = get_file_extension(file.filename)
    if ext not in allowed:
        raise ValidationError(f"Unsupported file type '{ext}'. Allowed: {', '.join(allowed)}")

    content = await _read_checked(file)
    return _write(content, unique_name(file.filename))


async def save_logo(file: UploadFile) -> str:
    """Validate and store a company logo (images only)."""
    if file is None or not file.filename:
        raise ValidationError("No file provided")
    if not (file.content_type or "").startswith("image/"):
        raise ValidationError("Only image files are allowed")

    content = await _read_checked(file)
    name = f"logo-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}{get_file_extension(file.filename)}"
    return _write(content, name)


def remove_upload(public_path: Optional[str]) -> None:
    """Delete a stored upload by its public path; missing files are ignored."""
    if not public_path or not public_path.startswith(PUBLIC_PREFIX):
        return
    path = os.path.join(get_settings().upload_dir, safe_filename(public_path[len(PUBLIC_PREFIX):]))
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
