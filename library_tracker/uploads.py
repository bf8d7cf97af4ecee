"""Cover image uploads.

Accepts one image per request, writes it under a generated name in the
uploads directory, then shrinks it to the cover bounding box with Pillow.
"""
import asyncio
import logging
import os
import random
import time
from pathlib import Path
from typing import Optional

from PIL import Image, ImageOps
from starlette.datastructures import FormData, UploadFile

from library_tracker.config import settings

logger = logging.getLogger(__name__)

COVER_FIELD = "coverImage"
PUBLIC_PREFIX = "/uploads/"
CHUNK_SIZE = 64 * 1024


class UploadError(Exception):
    """The upload was rejected before anything was kept on disk."""
    status_code = 400


class PayloadTooLarge(UploadError):
    status_code = 413


class UnsupportedMediaType(UploadError):
    status_code = 415


def get_upload_dir() -> Path:
    """Return the uploads directory, creating it on first use."""
    upload_dir = Path(settings.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    return upload_dir


def generate_filename(original_name: Optional[str]) -> str:
    extension = Path(original_name or "").suffix.lower()
    unique_suffix = f"{int(time.time() * 1000)}-{random.randint(0, 10**9)}"
    return f"book-cover-{unique_suffix}{extension}"


def public_path(filename: str) -> str:
    return f"{PUBLIC_PREFIX}{filename}"


def _max_size_label() -> str:
    return f"{settings.max_file_size / (1024 * 1024):g}MB"


def extract_cover_upload(form: FormData) -> Optional[UploadFile]:
    """Pick the single cover file out of a multipart form."""
    files = [
        (key, value) for key, value in form.multi_items()
        if isinstance(value, UploadFile) and value.filename
    ]
    if not files:
        return None
    if any(key != COVER_FIELD for key, _ in files):
        raise UploadError("Unexpected file field.")
    if len(files) > 1:
        raise UploadError("Too many files. Only one file allowed.")
    return files[0][1]


def normalize_cover(path: Path) -> bool:
    """Fit the image inside the cover box and re-encode it as JPEG in place.

    Smaller images are never enlarged. On any failure the original file is
    kept untouched and False is returned.
    """
    tmp_path = path.with_name(f"optimized-{path.name}")
    try:
        with Image.open(path) as image:
            image = ImageOps.exif_transpose(image)
            if image.mode not in ("RGB", "L"):
                image = image.convert("RGB")
            image.thumbnail((settings.cover_max_width, settings.cover_max_height), Image.Resampling.LANCZOS)
            image.save(tmp_path, format="JPEG", quality=settings.cover_jpeg_quality,
                       progressive=True, optimize=True)
        os.replace(tmp_path, path)
        return True
    except Exception as e:
        logger.error(f"Image optimization failed for {path.name}: {e}")
        tmp_path.unlink(missing_ok=True)
        return False


async def save_cover_upload(upload: UploadFile) -> str:
    """Store an uploaded cover and return its generated filename.

    Raises UnsupportedMediaType for non-image content types and
    PayloadTooLarge once the configured size ceiling is crossed; in both cases
    nothing is left on disk.
    """
    content_type = (upload.content_type or "").lower()
    if not content_type.startswith("image/"):
        raise UnsupportedMediaType("Only image files (JPEG, PNG, GIF, WebP) are allowed.")
    if upload.size is not None and upload.size > settings.max_file_size:
        raise PayloadTooLarge(f"File too large. Maximum size is {_max_size_label()}.")

    filename = generate_filename(upload.filename)
    path = get_upload_dir() / filename
    written = 0
    try:
        with open(path, "wb") as out:
            while chunk := await upload.read(CHUNK_SIZE):
                written += len(chunk)
                if written > settings.max_file_size:
                    raise PayloadTooLarge(f"File too large. Maximum size is {_max_size_label()}.")
                out.write(chunk)
    except Exception:
        path.unlink(missing_ok=True)
        raise

    await asyncio.to_thread(normalize_cover, path)
    logger.info(f"Stored cover upload {filename} ({written} bytes)")
    return filename


def delete_uploaded_file(name_or_path: Optional[str]) -> bool:
    """Remove an uploaded file given its bare name or its /uploads/ path.

    Missing files are ignored. Returns True when a file was removed.
    """
    if not name_or_path:
        return False
    if name_or_path.startswith(PUBLIC_PREFIX):
        name_or_path = name_or_path[len(PUBLIC_PREFIX):]
    # Only ever touch files directly inside the uploads directory
    filename = Path(name_or_path).name
    if not filename:
        return False
    path = Path(settings.upload_dir) / filename
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    logger.info(f"Deleted uploaded file {filename}")
    return True
