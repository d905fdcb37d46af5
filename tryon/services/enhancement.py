"""Per-field fallback resolution for analyzer output.

Each attribute is resolved independently through an ordered chain of
candidates: the analyzer's value, then the category default, then a generic
templated value. A candidate is either :class:`Present` or :class:`Missing`;
the first ``Present`` wins. A partially good analysis therefore keeps every
field it got right.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar, Union

from tryon.models.category import BodyVisibility, CategoryConfig
from tryon.schemas import ProductMetadata, UserCharacteristics
from tryon.services.category import DEFAULT_NEGATIVE_PROMPT, STUDIO_BACKGROUND
from tryon.services.validators import (
    DEFAULT_CATEGORY,
    MIN_DESCRIPTION_LENGTH,
    MIN_GENERATION_HINT_LENGTH,
    sanitize_category,
    sanitize_description,
)

T = TypeVar("T")

ANALYSIS = "analysis"
CATEGORY_DEFAULT = "category"
GENERIC_DEFAULT = "generic"

DEFAULT_POSITIVE_PROMPT = (
    "photorealistic, high-resolution, professional studio lighting, sharp focus, "
    "natural skin texture, commercial product photography"
)


@dataclass(frozen=True)
class Present(Generic[T]):
    value: T
    source: str = ANALYSIS


@dataclass(frozen=True)
class Missing:
    reason: str = "absent"


Candidate = Union[Present[T], Missing]


def observe(
    value: Optional[T],
    *,
    source: str = ANALYSIS,
    usable: Optional[Callable[[T], bool]] = None,
) -> Candidate:
    """Wrap a raw value, treating ``None`` and failed ``usable`` checks as missing."""

    if value is None:
        return Missing()
    if isinstance(value, str) and not value.strip():
        return Missing("empty")
    if usable is not None and not usable(value):
        return Missing("unusable")
    return Present(value, source)


def first_present(*candidates: Candidate) -> Present:
    for candidate in candidates:
        if isinstance(candidate, Present):
            return candidate
    raise ValueError("fallback chain has no present value")


def _min_length(limit: int) -> Callable[[str], bool]:
    return lambda text: len(text.strip()) >= limit


def _positive(value: float) -> bool:
    return value > 0


@dataclass(frozen=True)
class EnhancementResult:
    metadata: ProductMetadata
    fallback_fields: tuple[str, ...] = ()

    @property
    def used_fallback(self) -> bool:
        return bool(self.fallback_fields)


def _characteristics(
    raw: Optional[UserCharacteristics], visibility: Optional[BodyVisibility]
) -> tuple[UserCharacteristics, bool]:
    """Always return a characteristics record; report whether it was patched."""

    if raw is None:
        return UserCharacteristics(visibility=visibility or BodyVisibility.UPPER_BODY), True
    if raw.visibility is None:
        patched = raw.model_copy(update={"visibility": visibility or BodyVisibility.UPPER_BODY})
        return patched, True
    return raw, False


def resolve_category_text(
    analyzed: Optional[str],
    product_category_hint: Optional[str],
    product_name: Optional[str],
) -> Present:
    """Detected category text: analysis, then caller hint, then product name."""

    chosen = first_present(
        observe(analyzed),
        observe(product_category_hint, source=GENERIC_DEFAULT),
        observe(product_name, source=GENERIC_DEFAULT),
        Present(DEFAULT_CATEGORY, GENERIC_DEFAULT),
    )
    return Present(sanitize_category(chosen.value), chosen.source)


def enhance(
    metadata: Optional[ProductMetadata],
    product_name: str,
    product_category_hint: Optional[str],
    config: CategoryConfig,
    *,
    visibility: Optional[BodyVisibility] = None,
) -> EnhancementResult:
    """Return a copy of ``metadata`` with every resolvable field filled in."""

    raw = metadata or ProductMetadata()
    name = (product_name or "").strip() or "This product"

    resolved: dict[str, Present] = {}

    resolved["product_category"] = resolve_category_text(
        raw.product_category, product_category_hint, product_name
    )
    category_text = resolved["product_category"].value

    resolved["detailed_visual_description"] = first_present(
        observe(raw.detailed_visual_description, usable=_min_length(MIN_DESCRIPTION_LENGTH)),
        Present(
            f"{name} - A stylish {category_text} with premium design and quality materials.",
            GENERIC_DEFAULT,
        ),
    )
    resolved["image_generation_prompt"] = first_present(
        observe(raw.image_generation_prompt, usable=_min_length(MIN_GENERATION_HINT_LENGTH)),
        Present(
            f"Show the person wearing the {category_text} in a natural, confident pose. "
            "Position the product prominently so it's clearly visible. "
            "Use professional studio lighting and a clean background.",
            GENERIC_DEFAULT,
        ),
    )
    resolved["camera_hint"] = first_present(
        observe(raw.camera_hint),
        Present(config.camera_hint, CATEGORY_DEFAULT),
    )
    resolved["product_scale_category"] = first_present(
        observe(raw.product_scale_category),
        Present(config.product_scale_category, CATEGORY_DEFAULT),
    )
    resolved["product_scale_ratio_to_head"] = first_present(
        observe(raw.product_scale_ratio_to_head, usable=_positive),
        Present(config.product_scale_ratio_to_head, CATEGORY_DEFAULT),
    )
    resolved["requires_full_body_reconstruction"] = first_present(
        observe(raw.requires_full_body_reconstruction),
        Present(config.requires_full_body, CATEGORY_DEFAULT),
    )
    resolved["force_pose_change"] = first_present(
        observe(raw.force_pose_change),
        Present(True, GENERIC_DEFAULT),
    )
    resolved["target_framing"] = first_present(
        observe(raw.target_framing),
        Present(config.target_framing, CATEGORY_DEFAULT),
    )
    resolved["background_instruction"] = first_present(
        observe(raw.background_instruction),
        observe(config.background_instruction, source=CATEGORY_DEFAULT),
        Present(STUDIO_BACKGROUND, GENERIC_DEFAULT),
    )
    resolved["positive_prompt"] = first_present(
        observe(raw.positive_prompt),
        Present(DEFAULT_POSITIVE_PROMPT, GENERIC_DEFAULT),
    )
    resolved["negative_prompt"] = first_present(
        observe(raw.negative_prompt),
        observe(config.negative_prompt_default, source=CATEGORY_DEFAULT),
        Present(DEFAULT_NEGATIVE_PROMPT, GENERIC_DEFAULT),
    )

    update: dict[str, Any] = {field: item.value for field, item in resolved.items()}
    update["detailed_visual_description"] = sanitize_description(
        update["detailed_visual_description"]
    )
    fallback_fields = [field for field, item in resolved.items() if item.source != ANALYSIS]

    characteristics, patched = _characteristics(raw.user_characteristics, visibility)
    update["user_characteristics"] = characteristics
    if patched:
        fallback_fields.append("user_characteristics")

    return EnhancementResult(
        metadata=raw.model_copy(update=update),
        fallback_fields=tuple(fallback_fields),
    )


__all__ = [
    "DEFAULT_POSITIVE_PROMPT",
    "EnhancementResult",
    "Missing",
    "Present",
    "enhance",
    "first_present",
    "observe",
    "resolve_category_text",
]
