"""Pre- and post-generation validation gate.

Every validator is a pure function over data and returns a
:class:`~tryon.schemas.ValidationResult`. Errors block the pipeline; warnings
are only logged and echoed back in the response metadata.
"""
from __future__ import annotations

import re
from typing import Optional, Sequence
from urllib.parse import urlparse

from tryon.config import KB, MB, UploadLimits
from tryon.models.category import CategoryConfig
from tryon.models.upload import UploadedImage
from tryon.schemas import ProductMetadata, ValidationResult

DEFAULT_CATEGORY = "Fashion Accessory"
DEFAULT_DESCRIPTION = "A stylish product with premium design and quality materials."
MAX_CATEGORY_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 1000
MIN_PROMPT_LENGTH = 200
MIN_DESCRIPTION_LENGTH = 20
MIN_GENERATION_HINT_LENGTH = 50
SINGLE_PERSON_PHRASE = "ONE person"

PLACEHOLDER_RE = re.compile(r"\{\{\w+\}\}")
_CATEGORY_STRIP_RE = re.compile(r"[^\w\s-]")
_WHITESPACE_RE = re.compile(r"\s+")


def _format_bytes(value: int) -> str:
    if value >= MB and value % MB == 0:
        return f"{value // MB}MB"
    if value >= KB and value % KB == 0:
        return f"{value // KB}KB"
    return f"{value} bytes"


def sanitize_category(category: Optional[str]) -> str:
    if not category or not isinstance(category, str):
        return DEFAULT_CATEGORY
    cleaned = _CATEGORY_STRIP_RE.sub("", category.strip()).strip()[:MAX_CATEGORY_LENGTH]
    return cleaned or DEFAULT_CATEGORY


def sanitize_description(description: Optional[str]) -> str:
    if not description or not isinstance(description, str):
        return DEFAULT_DESCRIPTION
    cleaned = _WHITESPACE_RE.sub(" ", description.strip())[:MAX_DESCRIPTION_LENGTH]
    return cleaned or DEFAULT_DESCRIPTION


def _check_image(
    image: UploadedImage,
    label: str,
    *,
    min_bytes: int,
    max_bytes: int,
    allowed_types: Sequence[str],
    errors: list[str],
    warnings: list[str],
) -> None:
    if image.size > max_bytes:
        errors.append(f"{label} size exceeds {_format_bytes(max_bytes)} limit")
    elif image.size < min_bytes:
        errors.append(f"{label} size is too small (minimum {_format_bytes(min_bytes)})")

    if (image.content_type or "").lower() not in allowed_types:
        errors.append(f"{label} has invalid file type. Allowed types: {', '.join(allowed_types)}")

    if not (image.filename or "").strip():
        warnings.append(f"{label} filename is empty or invalid")


class ValidationGate:
    """Checks inputs before generation and the output URL after it."""

    def __init__(self, limits: Optional[UploadLimits] = None) -> None:
        self.limits = limits or UploadLimits()

    # -- pre-generation -------------------------------------------------

    def validate_user_photo(self, photo: Optional[UploadedImage]) -> ValidationResult:
        if photo is None:
            return ValidationResult.from_lists(["User photo is required"], [])
        errors: list[str] = []
        warnings: list[str] = []
        _check_image(
            photo,
            "User photo",
            min_bytes=self.limits.user_photo_min_bytes,
            max_bytes=self.limits.user_photo_max_bytes,
            allowed_types=self.limits.allowed_types,
            errors=errors,
            warnings=warnings,
        )
        return ValidationResult.from_lists(errors, warnings)

    def validate_product_images(self, images: Sequence[UploadedImage]) -> ValidationResult:
        if not images:
            return ValidationResult.from_lists(["At least one product image is required"], [])
        errors: list[str] = []
        warnings: list[str] = []
        if len(images) > self.limits.max_product_images:
            errors.append(f"Maximum {self.limits.max_product_images} product images allowed")
        for index, image in enumerate(images, start=1):
            _check_image(
                image,
                f"Product image {index}",
                min_bytes=self.limits.product_image_min_bytes,
                max_bytes=self.limits.product_image_max_bytes,
                allowed_types=self.limits.allowed_types,
                errors=errors,
                warnings=warnings,
            )
        return ValidationResult.from_lists(errors, warnings)

    def validate_files(
        self, photo: Optional[UploadedImage], images: Sequence[UploadedImage]
    ) -> ValidationResult:
        return self.validate_user_photo(photo).merge(self.validate_product_images(images))

    def validate_metadata(self, metadata: Optional[ProductMetadata]) -> ValidationResult:
        """Warnings only: incomplete analysis never blocks generation."""

        if metadata is None:
            return ValidationResult.from_lists([], ["Product metadata is missing"])

        warnings: list[str] = []
        if not metadata.product_category:
            warnings.append("Product category is missing or unknown")
        description = metadata.detailed_visual_description or ""
        if len(description) < MIN_DESCRIPTION_LENGTH:
            warnings.append("Product description is missing, unknown, or too short")
        hint = metadata.image_generation_prompt or ""
        if len(hint) < MIN_GENERATION_HINT_LENGTH:
            warnings.append("Image generation prompt is missing, unknown, or too short")

        characteristics = metadata.user_characteristics
        if characteristics is None:
            warnings.append("User characteristics are missing or invalid")
        else:
            if characteristics.gender_hint is None:
                warnings.append(
                    "User gender hint is missing or unknown - may affect anatomical correctness"
                )
            if characteristics.visibility is None:
                warnings.append("User body visibility is missing or unknown")
        return ValidationResult.from_lists([], warnings)

    def validate_prompt(self, prompt: Optional[str], config: CategoryConfig) -> ValidationResult:
        if not prompt or not isinstance(prompt, str):
            return ValidationResult.from_lists(["Prompt is invalid or missing"], [])

        errors: list[str] = []
        warnings: list[str] = []
        if len(prompt) < MIN_PROMPT_LENGTH:
            errors.append(f"Prompt is too short (minimum {MIN_PROMPT_LENGTH} characters)")
        placeholders = PLACEHOLDER_RE.findall(prompt)
        if placeholders:
            errors.append(f"Prompt contains unreplaced placeholders: {', '.join(placeholders)}")

        if SINGLE_PERSON_PHRASE not in prompt:
            warnings.append("Prompt may not enforce single person constraint")
        if config.type.value not in prompt:
            warnings.append("Prompt may not include category-specific guidance")
        return ValidationResult.from_lists(errors, warnings)

    # -- post-generation ------------------------------------------------

    def validate_output_url(self, image_url: Optional[str]) -> ValidationResult:
        if not image_url or not isinstance(image_url, str) or not image_url.strip():
            return ValidationResult.from_lists(["Generated image URL is missing or empty"], [])
        try:
            parsed = urlparse(image_url.strip())
        except ValueError:
            return ValidationResult.from_lists(["Generated image URL is not a valid URL"], [])

        errors: list[str] = []
        if parsed.scheme not in {"http", "https"}:
            errors.append("Generated image URL must use HTTP or HTTPS protocol")
        elif not parsed.netloc:
            errors.append("Generated image URL is not a valid URL")
        return ValidationResult.from_lists(errors, [])


__all__ = [
    "DEFAULT_CATEGORY",
    "DEFAULT_DESCRIPTION",
    "PLACEHOLDER_RE",
    "SINGLE_PERSON_PHRASE",
    "ValidationGate",
    "sanitize_category",
    "sanitize_description",
]
