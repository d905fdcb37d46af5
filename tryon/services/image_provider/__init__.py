from .base import GenerationBackend, ImageProvider  # noqa: F401
from .factory import get_provider  # noqa: F401
from .outputs import normalize_output  # noqa: F401
from .replicate_provider import ReplicateImageProvider  # noqa: F401

__all__ = [
    "GenerationBackend",
    "ImageProvider",
    "ReplicateImageProvider",
    "get_provider",
    "normalize_output",
]
