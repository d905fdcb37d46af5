from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol, Sequence

from tryon.services.deadline import Deadline


class GenerationBackend(Protocol):
    """Raw external image-generation call; the result shape is not uniform."""

    def run(self, model: str, input: Mapping[str, Any]) -> Any:
        ...


class ImageProvider(Protocol):
    def invoke(
        self,
        prompt: str,
        negative_prompt: Optional[str],
        image_urls: Sequence[str],
        *,
        deadline: Optional[Deadline] = None,
    ) -> str:
        """Generate one image and return its URL, within ``deadline`` when given."""
        ...
