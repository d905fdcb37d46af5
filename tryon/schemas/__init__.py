from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from tryon.models.category import BodyVisibility, CategoryType
from tryon.schemas.metadata import (
    PageAnalysis,
    ProductMetadata,
    UserCharacteristics,
    is_sentinel,
)


class _CompatModel(BaseModel):
    """Base model that ignores unknown fields."""

    model_config = ConfigDict(extra="ignore")


class PromptBundle(_CompatModel):
    """Positive / negative prompt pair handed to the generation backend."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    positive_prompt: str = Field(..., description="Full positive prompt text")
    negative_prompt: str = Field("", description="Things the image model must avoid")
    warnings: tuple[str, ...] = Field(
        default_factory=tuple,
        description="Clauses that had to be injected while enforcing prompt invariants",
    )


class ValidationResult(_CompatModel):
    is_valid: bool = True
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @classmethod
    def from_lists(cls, errors: list[str], warnings: list[str]) -> "ValidationResult":
        return cls(is_valid=not errors, errors=list(errors), warnings=list(warnings))

    def merge(self, *others: "ValidationResult") -> "ValidationResult":
        errors = list(self.errors)
        warnings = list(self.warnings)
        for other in others:
            errors.extend(other.errors)
            warnings.extend(other.warnings)
        return ValidationResult.from_lists(errors, warnings)


class CategoryConfigSummary(_CompatModel):
    type: CategoryType
    target_framing: str
    camera_hint: str
    requires_full_body: bool


class CategorySystem(_CompatModel):
    detected_category: str
    category_type: CategoryType
    category_config: CategoryConfigSummary
    needs_body_reconstruction: bool


class ResponseFlags(_CompatModel):
    used_fallback: bool
    user_body_visibility: BodyVisibility
    analysis_confidence: str
    product_scale_ratio: float
    product_scale_category: str


class TryOnMetadata(_CompatModel):
    model: str
    timestamp: str
    request_id: str
    processing_time_ms: int
    product_analysis: ProductMetadata
    category_system: CategorySystem
    flags: ResponseFlags
    warnings: list[str] = Field(default_factory=list)


class TryOnResponse(_CompatModel):
    ok: bool = True
    image_url: str
    product_name: str
    metadata: TryOnMetadata


class ErrorResponse(_CompatModel):
    ok: bool = False
    error: str
    code: str
    request_id: Optional[str] = None
    details: Optional[str] = None
    warnings: list[str] = Field(default_factory=list)
    reset_at: Optional[int] = None


__all__ = [
    "CategoryConfigSummary",
    "CategorySystem",
    "ErrorResponse",
    "PageAnalysis",
    "ProductMetadata",
    "PromptBundle",
    "ResponseFlags",
    "TryOnMetadata",
    "TryOnResponse",
    "UserCharacteristics",
    "ValidationResult",
    "is_sentinel",
]
