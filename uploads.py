"""
Image intake: validation and local-disk storage for uploaded images.
"""
import logging
import os
import shutil
import time
import uuid
from typing import Iterable, List, Optional

from fastapi import UploadFile

from errors import InvalidInput, UnsupportedFileType

logger = logging.getLogger(__name__)

URL_PREFIX = "/uploads"

ALLOWED_EXTENSIONS = {".jpeg", ".jpg", ".png", ".gif"}
ALLOWED_CONTENT_TYPES = {"image/jpeg", "image/jpg", "image/pjpeg", "image/png", "image/gif"}


def is_allowed_image(upload: UploadFile) -> bool:
    ext = os.path.splitext(upload.filename or "")[1].lower()
    content_type = (upload.content_type or "").split(";")[0].strip().lower()
    return ext in ALLOWED_EXTENSIONS and content_type in ALLOWED_CONTENT_TYPES


def stored_filename(original: str) -> str:
    ext = os.path.splitext(original)[1]
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}{ext}"


def stored_path(url: str, upload_dir: str) -> Optional[str]:
    """Map a `/uploads/<name>` path to the file on disk, or None if it is not one."""
    prefix = URL_PREFIX + "/"
    if not url or not url.startswith(prefix):
        return None
    name = os.path.basename(url[len(prefix):])
    if not name:
        return None
    return os.path.join(upload_dir, name)


def save_images(files: Iterable[Optional[UploadFile]], upload_dir: str, max_files: int) -> List[str]:
    """
    Validate and store uploaded images.

    Every file is checked before anything is written, so a rejected request
    leaves nothing on disk. Returns `/uploads/<name>` paths in receive order.
    """
    uploads = [f for f in files if f is not None and f.filename]
    if len(uploads) > max_files:
        raise InvalidInput(f"At most {max_files} images per request")
    for upload in uploads:
        if not is_allowed_image(upload):
            logger.info("Rejected upload %r (%s)", upload.filename, upload.content_type)
            raise UnsupportedFileType()

    os.makedirs(upload_dir, exist_ok=True)
    urls: List[str] = []
    try:
        for upload in uploads:
            name = stored_filename(upload.filename)
            # Tracked before writing so a partial file is discarded too
            urls.append(f"{URL_PREFIX}/{name}")
            with open(os.path.join(upload_dir, name), "wb") as out:
                shutil.copyfileobj(upload.file, out)
    except OSError:
        discard_images(urls, upload_dir)
        raise

    if urls:
        logger.info("Stored %d image(s) in %s", len(urls), upload_dir)
    return urls


def discard_images(urls: Iterable[str], upload_dir: str) -> None:
    for url in urls:
        path = stored_path(url, upload_dir)
        if path is None:
            continue
        try:
            os.remove(path)
            logger.debug("Removed %s", path)
        except FileNotFoundError:
            logger.warning("Image %s already missing from %s", url, upload_dir)
