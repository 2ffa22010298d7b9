# supportchat/services/uploads.py
from pathlib import Path
import re
import time

from supportchat import settings

UPLOAD_DIR = Path(settings.UPLOADS_DIR)
UPLOAD_URL_PREFIX = "/uploads"

ALLOWED_IMAGE_TYPES = {"image/jpeg", "image/png", "image/gif", "image/webp"}
MAX_IMAGE_BYTES = 10 * 1024 * 1024

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


class UploadRejected(ValueError):
    pass


def _safe_name(filename: str) -> str:
    name = Path(filename or "").name
    name = _UNSAFE.sub("_", name).strip("._")
    return name or "image"


def save_image(raw_bytes: bytes, filename: str, content_type: str | None = None,
               upload_dir: Path = UPLOAD_DIR) -> str:
    """Write the image under the static uploads dir and return its public path."""
    if content_type and content_type not in ALLOWED_IMAGE_TYPES:
        raise UploadRejected("Only image uploads are allowed")
    if not raw_bytes:
        raise UploadRejected("Image file is required")
    if len(raw_bytes) > MAX_IMAGE_BYTES:
        raise UploadRejected("Image is too large")

    upload_dir.mkdir(parents=True, exist_ok=True)
    name = f"{int(time.time() * 1000)}-{_safe_name(filename)}"
    (upload_dir / name).write_bytes(raw_bytes)
    return f"{UPLOAD_URL_PREFIX}/{name}"
