"""In-memory representation of an uploaded image file."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class UploadedImage:
    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def safe_name(self) -> str:
        name = (self.filename or "image").rsplit("/", 1)[-1].rsplit("\\", 1)[-1]
        return name or "image"

    def __repr__(self) -> str:
        return (
            f"UploadedImage(filename={self.filename!r}, "
            f"content_type={self.content_type!r}, size={self.size})"
        )
