"""Estimate how much of the user's body is visible in the uploaded photo."""
from __future__ import annotations

import logging
import re
from typing import Optional, Protocol, Sequence, Tuple

from tryon.errors import TryOnError
from tryon.models.category import BodyVisibility
from tryon.models.upload import UploadedImage
from tryon.services.genai_client import AnalysisService

logger = logging.getLogger(__name__)

FILENAME_KEYWORDS: Tuple[Tuple[BodyVisibility, Tuple[str, ...]], ...] = (
    (BodyVisibility.FULL_BODY, ("fullbody", "full", "standing")),
    (BodyVisibility.UPPER_BODY, ("upper", "torso", "waist", "chest")),
    (BodyVisibility.HEAD_ONLY, ("headshot", "head", "portrait", "selfie", "face")),
)
_TOKEN_SPLIT_RE = re.compile(r"[^a-z0-9]+")

VISIBILITY_PROMPT = (
    "Look at this photo of a person and decide how much of their body is visible. "
    "Answer with exactly one of: head-only, upper-body, full-body. "
    "Use full-body only when the feet are visible. Reply with the label only."
)


class BodyVisibilityClassifier(Protocol):
    def classify(self, photo: UploadedImage) -> BodyVisibility:
        ...


class FilenameVisibilityClassifier:
    """Keyword scan over the uploaded filename. Never calls out."""

    def __init__(
        self,
        keywords: Sequence[Tuple[BodyVisibility, Sequence[str]]] = FILENAME_KEYWORDS,
        default: BodyVisibility = BodyVisibility.UPPER_BODY,
    ) -> None:
        self.keywords = keywords
        self.default = default

    def classify(self, photo: UploadedImage) -> BodyVisibility:
        # whole tokens only, so "surface" is not "face"
        tokens = " ".join(_TOKEN_SPLIT_RE.split((photo.filename or "").lower()))
        padded = f" {tokens} "
        for visibility, words in self.keywords:
            if any(f" {word} " in padded for word in words):
                return visibility
        return self.default


class GenAIVisibilityClassifier:
    """Ask the vision model for a three-way label, falling back to ``fallback``."""

    def __init__(
        self,
        service: AnalysisService,
        fallback: Optional[BodyVisibilityClassifier] = None,
        *,
        max_output_tokens: int = 16,
    ) -> None:
        self.service = service
        self.fallback = fallback or FilenameVisibilityClassifier()
        self.max_output_tokens = max_output_tokens

    def classify(self, photo: UploadedImage) -> BodyVisibility:
        try:
            answer = self.service.analyze_images(
                VISIBILITY_PROMPT, [photo], max_output_tokens=self.max_output_tokens
            )
        except TryOnError as exc:
            logger.warning("visibility classification failed, using fallback: %s", exc.code)
            return self.fallback.classify(photo)

        visibility = BodyVisibility.parse((answer or "").strip().strip(".").strip('"'))
        if visibility is None:
            logger.info("unrecognised visibility label %r, using fallback", (answer or "")[:40])
            return self.fallback.classify(photo)
        return visibility


__all__ = [
    "BodyVisibilityClassifier",
    "FilenameVisibilityClassifier",
    "GenAIVisibilityClassifier",
]
