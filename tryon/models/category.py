"""Static category and body-visibility models used by the prompt pipeline."""

from __future__ import annotations

from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class CategoryType(str, Enum):
    FOOTWEAR = "FOOTWEAR"
    CLOTHING_UPPER = "CLOTHING_UPPER"
    CLOTHING_LOWER = "CLOTHING_LOWER"
    CLOTHING_FULL = "CLOTHING_FULL"
    HEADWEAR = "HEADWEAR"
    EYEWEAR = "EYEWEAR"
    JEWELRY = "JEWELRY"
    BAG = "BAG"
    ACCESSORY = "ACCESSORY"
    UNKNOWN = "UNKNOWN"


class BodyVisibility(str, Enum):
    HEAD_ONLY = "head-only"
    UPPER_BODY = "upper-body"
    FULL_BODY = "full-body"

    @classmethod
    def parse(cls, value: object) -> Optional["BodyVisibility"]:
        """Map loose labels ("Full Body", "upper_body") onto the enum."""

        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        token = value.strip().lower().replace("_", "-").replace(" ", "-")
        for member in cls:
            if member.value == token:
                return member
        return None


ScaleCategory = Literal["small", "medium", "large"]


class CategoryConfig(BaseModel):
    """Framing and prompt defaults for one product class. Immutable."""

    model_config = ConfigDict(frozen=True)

    type: CategoryType
    camera_hint: str = Field(..., description="Lens / camera setup used for the shot")
    target_framing: str = Field(..., description="full-body, three-quarter, mid-shot, ...")
    background_instruction: str
    negative_prompt_default: str
    requires_full_body: bool = False
    product_scale_category: ScaleCategory = "medium"
    product_scale_ratio_to_head: float = Field(1.0, gt=0)
    pose_description: str
    focus_instruction: str = Field(
        "", description="Category-specific reminder about how the product must be shown"
    )
    category_label: str = Field(
        "product",
        description="Human readable noun used when the detected category is unusable",
    )


class ReconstructionPlan(BaseModel):
    model_config = ConfigDict(frozen=True)

    needed: bool = False
    instructions: Optional[str] = None


__all__ = [
    "BodyVisibility",
    "CategoryConfig",
    "CategoryType",
    "ReconstructionPlan",
    "ScaleCategory",
]
