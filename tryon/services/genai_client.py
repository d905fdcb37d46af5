"""google-genai backed vision and text analysis client."""
from __future__ import annotations

import logging
from typing import Optional, Protocol, Sequence

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from tryon.config import GenAIConfig
from tryon.errors import AnalysisError, ConfigurationError, RequestTimeoutError
from tryon.models.upload import UploadedImage

logger = logging.getLogger(__name__)


class AnalysisService(Protocol):
    """Narrow contract for the external vision / text analysis backend."""

    def analyze_images(
        self,
        prompt: str,
        images: Sequence[UploadedImage],
        *,
        max_output_tokens: Optional[int] = None,
    ) -> str:
        ...

    def generate_text(self, prompt: str, *, max_output_tokens: Optional[int] = None) -> str:
        ...


class GenAIAnalysisClient:
    """Thin wrapper around ``genai.Client`` returning raw response text."""

    def __init__(self, config: GenAIConfig, client: Optional[genai.Client] = None) -> None:
        if client is None:
            if not config.is_configured:
                raise ConfigurationError("GOOGLE_API_KEY is not configured")
            client = genai.Client(
                api_key=config.api_key,
                http_options=types.HttpOptions(timeout=int(config.timeout_seconds * 1000)),
            )
        self.client = client
        self.config = config

    def _generate(self, contents: list, max_output_tokens: int, stage: str) -> str:
        try:
            response = self.client.models.generate_content(
                model=self.config.model,
                contents=contents,
                config=types.GenerateContentConfig(
                    temperature=self.config.temperature,
                    max_output_tokens=max_output_tokens,
                ),
            )
        except httpx.TimeoutException as exc:
            raise RequestTimeoutError(stage) from exc
        except (genai_errors.APIError, httpx.HTTPError) as exc:
            logger.warning("genai request failed stage=%s code=%s", stage, getattr(exc, "code", None))
            raise AnalysisError(f"{stage} request failed") from exc

        text = getattr(response, "text", None)
        if not text:
            logger.warning("genai returned empty text model=%s stage=%s", self.config.model, stage)
            raise AnalysisError("analysis service returned an empty response")
        return text

    def analyze_images(
        self,
        prompt: str,
        images: Sequence[UploadedImage],
        *,
        max_output_tokens: Optional[int] = None,
    ) -> str:
        contents: list = [
            types.Part.from_bytes(data=image.data, mime_type=image.content_type or "image/jpeg")
            for image in images
        ]
        contents.append(prompt)
        return self._generate(
            contents,
            max_output_tokens or self.config.analysis_max_tokens,
            "image analysis",
        )

    def generate_text(self, prompt: str, *, max_output_tokens: Optional[int] = None) -> str:
        return self._generate(
            [prompt],
            max_output_tokens or self.config.page_max_tokens,
            "page analysis",
        )


__all__ = ["AnalysisService", "GenAIAnalysisClient"]
