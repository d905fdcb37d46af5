"""Compose the positive / negative prompt pair sent to the image generator."""
from __future__ import annotations

import logging
from typing import Iterable, Optional, Sequence

from tryon.models.category import CategoryConfig, ReconstructionPlan
from tryon.schemas import ProductMetadata, PromptBundle, UserCharacteristics
from tryon.services.category import DEFAULT_NEGATIVE_PROMPT, STUDIO_BACKGROUND

logger = logging.getLogger(__name__)

QUALITY_CLAUSE = (
    "High quality, photorealistic, professional photography, natural lighting, "
    "sharp focus, detailed, 2K resolution."
)

SINGLE_PERSON_CLAUSE = "CRITICAL: Generate EXACTLY ONE person only."
FACIAL_FIDELITY_CLAUSE = "CRITICAL: Preserve exact facial features from user image."
PRODUCT_FIDELITY_CLAUSE = "CRITICAL: Reproduce product exactly from reference images."

# (marker looked up case-insensitively, clause, prepend?, warning)
_INVARIANTS = (
    ("one person", SINGLE_PERSON_CLAUSE, True, "Added single-person enforcement to prompt"),
    (
        "exact facial features",
        FACIAL_FIDELITY_CLAUSE,
        False,
        "Added facial fidelity enforcement to prompt",
    ),
    (
        "product exactly",
        PRODUCT_FIDELITY_CLAUSE,
        False,
        "Added product fidelity enforcement to prompt",
    ),
)


def enforce_invariants(prompt: str, config: CategoryConfig) -> tuple[str, list[str]]:
    """Make sure the mandatory clauses are present; idempotent.

    Missing clauses are injected and reported as warnings, never as errors.
    """

    text = (prompt or "").strip()
    warnings: list[str] = []
    for marker, clause, prepend, warning in _INVARIANTS:
        if marker in text.lower():
            continue
        text = f"{clause} {text}".strip() if prepend else f"{text} {clause}".strip()
        warnings.append(warning)

    if config.type.value != "UNKNOWN" and config.type.value not in text:
        warnings.append("Prompt may benefit from more category-specific guidance")
    return text, warnings


def _split_terms(text: Optional[str]) -> list[str]:
    if not text:
        return []
    return [term.strip().rstrip(".").strip() for term in text.split(",") if term.strip(" .")]


def merge_negative_terms(*parts: Optional[str]) -> str:
    """Join comma separated term lists, dropping case-insensitive duplicates."""

    seen: set[str] = set()
    merged: list[str] = []
    for part in parts:
        for term in _split_terms(part):
            key = term.lower()
            if key in seen:
                continue
            seen.add(key)
            merged.append(term)
    return ", ".join(merged)


def _characteristic_clauses(traits: Optional[UserCharacteristics]) -> Iterable[str]:
    if traits is None:
        return
    if traits.gender_hint:
        yield f"The person is {traits.gender_hint}."
    if traits.age_range:
        yield f"Age: {traits.age_range}."
    if traits.body_build:
        yield f"Body build: {traits.body_build}."
    if traits.skin_tone:
        yield f"Skin tone: {traits.skin_tone}."
    if traits.hair_color and traits.hair_color.strip().lower() != "bald":
        yield f"Hair color: {traits.hair_color}."
    if traits.facial_hair and traits.facial_hair.strip().lower() not in {"none", "no"}:
        yield f"Facial hair: {traits.facial_hair}."


def _sentence(text: str) -> str:
    text = text.strip()
    return text if text.endswith((".", "!", "?")) else f"{text}."


class PromptCompositor:
    def compose(
        self,
        metadata: ProductMetadata,
        config: CategoryConfig,
        plan: ReconstructionPlan,
        product_image_urls: Sequence[str] = (),
    ) -> PromptBundle:
        framing = metadata.target_framing or config.target_framing
        category = metadata.product_category or config.category_label

        clauses: list[str] = [
            f"Generate a photorealistic {framing} image of EXACTLY ONE person wearing {category}."
        ]
        clauses.extend(_characteristic_clauses(metadata.user_characteristics))
        if metadata.detailed_visual_description:
            clauses.append(_sentence(metadata.detailed_visual_description))
        if metadata.image_generation_prompt:
            clauses.append(_sentence(metadata.image_generation_prompt))
        if product_image_urls:
            clauses.append(f"Product reference images: {', '.join(product_image_urls)}.")

        clauses.append(f"Camera: {_sentence(metadata.camera_hint or config.camera_hint)}")
        clauses.append(f"Framing: {_sentence(framing)}")
        clauses.append(f"Pose: {_sentence(config.pose_description)}")
        if config.focus_instruction:
            clauses.append(f"Category guidance ({config.type.value}): {config.focus_instruction}")
        background = metadata.background_instruction or config.background_instruction
        clauses.append(f"Background: {_sentence(background or STUDIO_BACKGROUND)}")
        if metadata.positive_prompt:
            clauses.append(_sentence(metadata.positive_prompt))
        clauses.append(PRODUCT_FIDELITY_CLAUSE)
        clauses.append(FACIAL_FIDELITY_CLAUSE)
        clauses.append(QUALITY_CLAUSE)

        positive = " ".join(clauses)
        if plan.needed and plan.instructions:
            positive = f"{plan.instructions.strip()}\n\n{positive}"

        negative = merge_negative_terms(
            metadata.negative_prompt or config.negative_prompt_default,
            DEFAULT_NEGATIVE_PROMPT,
        )
        logger.debug(
            "composed prompt category=%s chars=%d reconstruction=%s",
            config.type.value,
            len(positive),
            plan.needed,
        )
        return PromptBundle(positive_prompt=positive, negative_prompt=negative)

    def finalize(self, bundle: PromptBundle, config: CategoryConfig) -> PromptBundle:
        """Apply :func:`enforce_invariants` and carry its warnings on the bundle."""

        positive, warnings = enforce_invariants(bundle.positive_prompt, config)
        return PromptBundle(
            positive_prompt=positive,
            negative_prompt=bundle.negative_prompt,
            warnings=tuple(bundle.warnings) + tuple(warnings),
        )


__all__ = [
    "FACIAL_FIDELITY_CLAUSE",
    "PRODUCT_FIDELITY_CLAUSE",
    "PromptCompositor",
    "QUALITY_CLAUSE",
    "SINGLE_PERSON_CLAUSE",
    "enforce_invariants",
    "merge_negative_terms",
]
