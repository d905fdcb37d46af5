"""Pydantic models shared between the pipeline stages."""

from .category import (  # noqa: F401
    BodyVisibility,
    CategoryConfig,
    CategoryType,
    ReconstructionPlan,
)
from .upload import UploadedImage  # noqa: F401

__all__ = [
    "BodyVisibility",
    "CategoryConfig",
    "CategoryType",
    "ReconstructionPlan",
    "UploadedImage",
]
