"""Image provider factory for the Replicate generation backend."""
from __future__ import annotations

from typing import Optional

from tryon.config import ReplicateConfig, get_settings

from .base import GenerationBackend
from .replicate_provider import ReplicateImageProvider


def get_provider(
    config: Optional[ReplicateConfig] = None,
    backend: Optional[GenerationBackend] = None,
) -> ReplicateImageProvider:
    """Build a provider from settings; pass ``backend`` to substitute the API client."""

    return ReplicateImageProvider(config or get_settings().replicate, backend=backend)
