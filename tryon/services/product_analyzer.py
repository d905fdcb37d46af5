"""Structured product metadata from the vision-analysis service.

Two steps: an optional product-page enrichment whose failures are swallowed,
and the image analysis itself, whose parse failures abort the request.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Optional
from urllib.parse import urlparse

import httpx
from pydantic import ValidationError

from tryon.errors import AnalysisError
from tryon.models.upload import UploadedImage
from tryon.schemas import PageAnalysis, ProductMetadata
from tryon.services.deadline import Deadline
from tryon.services.genai_client import AnalysisService

logger = logging.getLogger(__name__)

PAGE_USER_AGENT = "Mozilla/5.0 (compatible; TryOnBot/1.0)"
LOW_QUALITY_HINT_LENGTH = 100

TEXT_FIELDS = (
    "product_category",
    "detailed_visual_description",
    "image_generation_prompt",
    "camera_hint",
    "target_framing",
    "background_instruction",
    "positive_prompt",
    "negative_prompt",
)

ANALYSIS_PROMPT = """You will receive TWO images:

1. USER PHOTO (first image) - The person who will wear the product
2. PRODUCT IMAGE (second image) - The product to be worn

Analyze BOTH images and return ONLY valid JSON:

{
  "productCategory": "specific category (e.g., Running Shoes, Leather Jacket)",
  "detailedVisualDescription": "2-4 sentences describing product visually",
  "imageGenerationPrompt": "4-6 imperative sentences for image generation model",
  "cameraHint": "camera setup (e.g., 85mm portrait, 50mm full-body)",
  "productScaleCategory": "small" | "medium" | "large",
  "productScaleRatioToHead": 0.5-2.0,
  "requiresFullBodyReconstruction": true | false,
  "userCharacteristics": {
    "visibility": "head-only" | "upper-body" | "full-body",
    "genderHint": "male" | "female" | "unknown",
    "ageRange": "teen|20-29|30-39|40-49|50+|Unknown",
    "bodyBuild": "slim|average|athletic|stocky|Unknown",
    "skinTone": "light|medium|tan|dark|Unknown",
    "hairColor": "black|brown|blonde|grey|bald|Unknown",
    "facialHair": "none|stubble|beard|mustache|Unknown",
    "headOrientation": "frontal|slight-3-4|profile|tilted|Unknown",
    "visibleClothing": "description or Unknown",
    "faceWidthToHeightRatio": "numeric or Unknown"
  },
  "forcePoseChange": true,
  "targetFraming": "full-body|three-quarter|upper-body|head-and-shoulders|mid-shot",
  "backgroundInstruction": "studio background description",
  "positivePrompt": "additional positive keywords",
  "negativePrompt": "things to avoid"
}

ANALYSIS RULES:
- Analyze the USER PHOTO for userCharacteristics, not the product image
- genderHint matters for anatomical correctness
- Decide whether full body reconstruction is needed
- For bags, name the type (Handbag, Crossbody, Backpack, ...)
- Target framing by category:
  * Footwear / full garments -> "full-body"
  * Upper clothing -> "three-quarter"
  * Headwear -> "head-and-shoulders"
  * Accessories / bags -> "mid-shot"
"""

PAGE_PROMPT_TEMPLATE = """Analyze this product page content and extract product details:

{text}

Return ONLY valid JSON:
{{
  "summary": "Brief product summary (2-3 sentences)",
  "enhancedDescription": "Enhanced visual description with materials, design elements, and key features (3-4 sentences)",
  "designElements": ["design element 1", "design element 2"],
  "materials": ["material 1", "material 2"],
  "keyFeatures": ["feature 1", "feature 2"]
}}"""

_FENCE_RE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)
_SCRIPT_RE = re.compile(r"<script[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL)
_STYLE_RE = re.compile(r"<style[^>]*>.*?</style>", re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r"<[^>]+>")
_WS_RE = re.compile(r"\s+")
_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", text or "").strip()


def extract_page_text(html: str, limit: int = 5000) -> str:
    text = _SCRIPT_RE.sub("", html or "")
    text = _STYLE_RE.sub("", text)
    text = _TAG_RE.sub(" ", text)
    return _WS_RE.sub(" ", text).strip()[:limit]


def is_page_url(url: Optional[str]) -> bool:
    if not url or not url.strip():
        return False
    parsed = urlparse(url.strip())
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def parse_metadata(raw_text: str) -> ProductMetadata:
    """Parse the analysis response; any failure is ``PRODUCT_ANALYSIS_ERROR``."""

    cleaned = strip_code_fences(raw_text)
    try:
        data = json.loads(cleaned)
    except (TypeError, ValueError) as exc:
        logger.error("failed to parse product metadata preview=%r", (raw_text or "")[:200])
        raise AnalysisError("Failed to analyze product", code="PRODUCT_ANALYSIS_ERROR") from exc
    if not isinstance(data, dict):
        raise AnalysisError("Failed to analyze product", code="PRODUCT_ANALYSIS_ERROR")
    try:
        return ProductMetadata.model_validate(data)
    except ValidationError as exc:
        raise AnalysisError("Failed to analyze product", code="PRODUCT_ANALYSIS_ERROR") from exc


def parse_page_analysis(raw_text: str) -> Optional[PageAnalysis]:
    match = _OBJECT_RE.search(raw_text or "")
    if not match:
        logger.warning("no JSON object in product page analysis")
        return None
    try:
        data = json.loads(strip_code_fences(match.group(0)))
        return PageAnalysis.model_validate(data)
    except (ValueError, ValidationError) as exc:
        logger.warning("failed to parse product page analysis: %s", type(exc).__name__)
        return None


def combine_description(description: Optional[str], page: PageAnalysis) -> Optional[str]:
    if not page.enhanced_description:
        return description
    combined = f"{description or ''} {page.enhanced_description}".strip()
    if page.materials:
        combined = f"{combined} Materials: {', '.join(page.materials)}."
    return combined


def enrich_generation_hint(hint: Optional[str], page: PageAnalysis) -> Optional[str]:
    enhanced = hint or ""
    if page.design_elements:
        enhanced += f" Pay attention to design elements: {', '.join(page.design_elements)}."
    if page.key_features:
        enhanced += f" Highlight key features: {', '.join(page.key_features)}."
    return enhanced.strip() or hint


@dataclass(frozen=True)
class AnalysisOutcome:
    metadata: ProductMetadata
    page_analysis: Optional[PageAnalysis] = None
    missing_fields: tuple[str, ...] = field(default_factory=tuple)
    generation_hint_length: int = 0

    @property
    def low_quality(self) -> bool:
        return bool(self.missing_fields) or self.generation_hint_length < LOW_QUALITY_HINT_LENGTH


class MetadataAnalyzer:
    def __init__(
        self,
        service: AnalysisService,
        *,
        http_client: Optional[httpx.Client] = None,
        page_fetch_timeout: float = 10.0,
        page_text_limit: int = 5000,
        analysis_max_tokens: int = 768,
        page_max_tokens: int = 500,
    ) -> None:
        self.service = service
        self.http_client = http_client
        self.page_fetch_timeout = page_fetch_timeout
        self.page_text_limit = page_text_limit
        self.analysis_max_tokens = analysis_max_tokens
        self.page_max_tokens = page_max_tokens

    def fetch_page_text(self, url: str, timeout: Optional[float] = None) -> str:
        headers = {"User-Agent": PAGE_USER_AGENT}
        timeout = timeout or self.page_fetch_timeout
        if self.http_client is not None:
            response = self.http_client.get(url, headers=headers, timeout=timeout)
        else:
            with httpx.Client(timeout=timeout, follow_redirects=True) as client:
                response = client.get(url, headers=headers)
        response.raise_for_status()
        return extract_page_text(response.text, self.page_text_limit)

    def analyze_page(self, url: str, deadline: Optional[Deadline] = None) -> Optional[PageAnalysis]:
        """Best-effort page enrichment; returns ``None`` on any failure."""

        try:
            if deadline is not None:
                deadline.check("product page fetch")
            timeout = (
                deadline.timeout_for(self.page_fetch_timeout) if deadline else self.page_fetch_timeout
            )
            text = self.fetch_page_text(url, timeout=timeout)
            if not text:
                return None
            if deadline is not None:
                deadline.check("product page analysis")
            raw = self.service.generate_text(
                PAGE_PROMPT_TEMPLATE.format(text=text), max_output_tokens=self.page_max_tokens
            )
        except Exception as exc:  # noqa: BLE001 - page context is optional enrichment
            logger.warning(
                "product page analysis skipped url=%s err=%s", url[:100], type(exc).__name__
            )
            return None
        return parse_page_analysis(raw)

    def analyze(
        self,
        user_photo: UploadedImage,
        product_image: UploadedImage,
        product_url: Optional[str] = None,
        *,
        deadline: Optional[Deadline] = None,
    ) -> AnalysisOutcome:
        page: Optional[PageAnalysis] = None
        if is_page_url(product_url):
            page = self.analyze_page(product_url.strip(), deadline)
        elif product_url:
            logger.info("product url ignored, not http(s): %s", product_url[:100])

        if deadline is not None:
            deadline.check("product analysis")
        raw_text = self.service.analyze_images(
            ANALYSIS_PROMPT,
            [user_photo, product_image],
            max_output_tokens=self.analysis_max_tokens,
        )
        metadata = parse_metadata(raw_text)

        missing = tuple(name for name in TEXT_FIELDS if getattr(metadata, name) is None)
        hint_length = len(metadata.image_generation_prompt or "")

        if page is not None:
            update: dict[str, Any] = {
                "detailed_visual_description": combine_description(
                    metadata.detailed_visual_description, page
                ),
                "image_generation_prompt": enrich_generation_hint(
                    metadata.image_generation_prompt, page
                ),
            }
            metadata = metadata.model_copy(update=update)

        logger.info(
            "product analysis done category=%s missing=%d page=%s",
            metadata.product_category,
            len(missing),
            page is not None,
        )
        return AnalysisOutcome(
            metadata=metadata,
            page_analysis=page,
            missing_fields=missing,
            generation_hint_length=hint_length,
        )


__all__ = [
    "ANALYSIS_PROMPT",
    "AnalysisOutcome",
    "MetadataAnalyzer",
    "combine_description",
    "enrich_generation_hint",
    "extract_page_text",
    "is_page_url",
    "parse_metadata",
    "parse_page_analysis",
]
