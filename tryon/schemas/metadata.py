"""Structured product metadata returned by the vision-analysis step.

Every attribute is optional: ``None`` means the analysis service did not
supply a usable value. Sentinel strings such as ``"Unknown"`` are scrubbed to
``None`` while parsing, so downstream code never compares against them.
"""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from tryon.models.category import BodyVisibility, ScaleCategory

SENTINEL_VALUES = frozenset({"unknown", "n/a", "na", "none", "null", "undefined", "-"})


def is_sentinel(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        text = value.strip()
        return not text or text.lower() in SENTINEL_VALUES
    return False


def _scrub(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: _scrub(item) for key, item in value.items()}
    if isinstance(value, str):
        return None if is_sentinel(value) else value.strip()
    return value


class _MetadataModel(BaseModel):
    model_config = ConfigDict(
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    )


class UserCharacteristics(_MetadataModel):
    """Attributes of the person in the user photo, as observed by the analyzer."""

    visibility: Optional[BodyVisibility] = None
    gender_hint: Optional[Literal["male", "female"]] = None
    age_range: Optional[str] = None
    body_build: Optional[str] = None
    skin_tone: Optional[str] = None
    hair_color: Optional[str] = None
    facial_hair: Optional[str] = None
    head_orientation: Optional[str] = None
    visible_clothing: Optional[str] = None
    face_width_to_height_ratio: Optional[float] = None

    @model_validator(mode="before")
    @classmethod
    def _scrub_sentinels(cls, data: Any) -> Any:
        return _scrub(data) if isinstance(data, dict) else data

    @field_validator("visibility", mode="before")
    @classmethod
    def _coerce_visibility(cls, value: Any) -> Optional[BodyVisibility]:
        return BodyVisibility.parse(value)

    @field_validator("gender_hint", mode="before")
    @classmethod
    def _coerce_gender(cls, value: Any) -> Optional[str]:
        if isinstance(value, str) and value.strip().lower() in {"male", "female"}:
            return value.strip().lower()
        return None

    @field_validator("face_width_to_height_ratio", mode="before")
    @classmethod
    def _coerce_ratio(cls, value: Any) -> Optional[float]:
        try:
            ratio = float(value)
        except (TypeError, ValueError):
            return None
        return ratio if ratio > 0 else None


class ProductMetadata(_MetadataModel):
    product_category: Optional[str] = None
    detailed_visual_description: Optional[str] = None
    image_generation_prompt: Optional[str] = None
    camera_hint: Optional[str] = None
    product_scale_category: Optional[ScaleCategory] = None
    product_scale_ratio_to_head: Optional[float] = None
    requires_full_body_reconstruction: Optional[bool] = None
    user_characteristics: Optional[UserCharacteristics] = None
    force_pose_change: Optional[bool] = None
    target_framing: Optional[str] = None
    background_instruction: Optional[str] = None
    positive_prompt: Optional[str] = None
    negative_prompt: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _scrub_sentinels(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        scrubbed = {}
        for key, value in data.items():
            # nested characteristics are scrubbed by their own validator
            scrubbed[key] = value if isinstance(value, dict) else _scrub(value)
        return scrubbed

    @field_validator("product_scale_category", mode="before")
    @classmethod
    def _coerce_scale_category(cls, value: Any) -> Optional[str]:
        if isinstance(value, str) and value.strip().lower() in {"small", "medium", "large"}:
            return value.strip().lower()
        return None

    @field_validator("product_scale_ratio_to_head", mode="before")
    @classmethod
    def _coerce_scale_ratio(cls, value: Any) -> Optional[float]:
        try:
            ratio = float(value)
        except (TypeError, ValueError):
            return None
        return ratio if ratio > 0 else None

    @field_validator("requires_full_body_reconstruction", "force_pose_change", mode="before")
    @classmethod
    def _coerce_flag(cls, value: Any) -> Optional[bool]:
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            token = value.strip().lower()
            if token in {"true", "yes", "1"}:
                return True
            if token in {"false", "no", "0"}:
                return False
        return None

    @field_validator("user_characteristics", mode="before")
    @classmethod
    def _coerce_characteristics(cls, value: Any) -> Any:
        return value if isinstance(value, (dict, UserCharacteristics)) else None

    def missing_fields(self) -> list[str]:
        """Names of top-level attributes the analyzer left unresolved."""

        return [name for name, value in self if value is None]


class PageAnalysis(_MetadataModel):
    summary: str = ""
    enhanced_description: str = ""
    design_elements: list[str] = Field(default_factory=list)
    materials: list[str] = Field(default_factory=list)
    key_features: list[str] = Field(default_factory=list)

    @field_validator("design_elements", "materials", "key_features", mode="before")
    @classmethod
    def _coerce_list(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, (list, tuple)):
            return []
        return [str(item).strip() for item in value if str(item).strip()]

    @field_validator("summary", "enhanced_description", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return "" if value is None else str(value).strip()


__all__ = [
    "PageAnalysis",
    "ProductMetadata",
    "SENTINEL_VALUES",
    "UserCharacteristics",
    "is_sentinel",
]
