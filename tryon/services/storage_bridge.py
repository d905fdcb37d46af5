"""Key naming and upload helpers for try-on input images."""
from __future__ import annotations

import re
import time
from typing import Dict, Optional

from tryon.models.upload import UploadedImage
from tryon.services.r2_client import ObjectStorage

_DEFAULT_FOLDER = "try-on"
_UNSAFE_RE = re.compile(r"[^0-9A-Za-z._-]")


def _timestamp_ms() -> int:
    return int(time.time() * 1000)


def _safe(name: str) -> str:
    return _UNSAFE_RE.sub("_", name or "image") or "image"


def user_photo_key(
    filename: str, *, folder: str = _DEFAULT_FOLDER, timestamp: Optional[int] = None
) -> str:
    ts = timestamp if timestamp is not None else _timestamp_ms()
    return f"{folder.strip('/ ') or _DEFAULT_FOLDER}/user-{ts}-{_safe(filename)}"


def product_image_key(
    index: int,
    filename: str,
    *,
    folder: str = _DEFAULT_FOLDER,
    timestamp: Optional[int] = None,
) -> str:
    ts = timestamp if timestamp is not None else _timestamp_ms()
    return f"{folder.strip('/ ') or _DEFAULT_FOLDER}/product-{ts}-{index}-{_safe(filename)}"


def store_upload(storage: ObjectStorage, key: str, image: UploadedImage) -> Dict[str, str]:
    """Persist an uploaded image and return its storage metadata."""

    if not isinstance(image.data, (bytes, bytearray)):
        raise TypeError("image payload must be bytes")
    stored = storage.put(key, bytes(image.data), image.content_type or "image/jpeg")
    return {"key": stored["key"], "url": stored["url"], "content_type": image.content_type}
