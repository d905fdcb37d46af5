from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Any, Dict, Optional, Sequence

import httpx
import replicate

from tryon.config import ReplicateConfig
from tryon.errors import (
    ConfigurationError,
    GenerationError,
    RequestTimeoutError,
    TryOnError,
    sanitize_message,
)
from tryon.services.deadline import Deadline
from tryon.services.image_provider.base import GenerationBackend
from tryon.services.image_provider.outputs import normalize_output

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = frozenset({"succeeded", "failed", "canceled"})


class ReplicateImageProvider:
    """Seedream image generation through the Replicate API.

    With the real client the prediction is created and polled here so that a
    stuck prediction is cancelled once the time budget runs out. Injected
    backends only expose ``run`` and are bounded by a worker future instead.
    """

    def __init__(
        self,
        config: ReplicateConfig,
        backend: Optional[GenerationBackend] = None,
    ) -> None:
        if backend is None:
            if not config.is_configured:
                raise ConfigurationError("REPLICATE_API_TOKEN is not configured")
            backend = replicate.Client(
                api_token=config.api_token,
                timeout=httpx.Timeout(config.timeout_seconds, connect=10.0),
            )
        self.backend = backend
        self.config = config

    def build_request(
        self,
        prompt: str,
        negative_prompt: Optional[str],
        image_urls: Sequence[str],
    ) -> Dict[str, Any]:
        request: Dict[str, Any] = {
            "size": self.config.size,
            "width": self.config.width,
            "height": self.config.height,
            "prompt": prompt,
            "max_images": 1,
            "image_input": list(image_urls),
            "aspect_ratio": self.config.aspect_ratio,
            "sequential_image_generation": "disabled",
        }
        if negative_prompt:
            request["negative_prompt"] = negative_prompt
        return request

    def _poll_prediction(self, request: Dict[str, Any], budget: Deadline) -> Any:
        prediction = self.backend.models.predictions.create(model=self.config.model, input=request)
        while prediction.status not in TERMINAL_STATUSES:
            if budget.expired():
                try:
                    prediction.cancel()
                except Exception as exc:  # noqa: BLE001 - the timeout is still reported
                    logger.warning(
                        "replicate cancel failed id=%s err=%s",
                        getattr(prediction, "id", None),
                        sanitize_message(str(exc), "<redacted>"),
                    )
                logger.warning(
                    "replicate prediction cancelled after %d ms id=%s",
                    budget.elapsed_ms(),
                    getattr(prediction, "id", None),
                )
                raise RequestTimeoutError("image generation")
            time.sleep(budget.timeout_for(self.config.poll_interval_seconds))
            prediction.reload()

        if prediction.status != "succeeded":
            raise GenerationError(
                f"prediction {prediction.status}: "
                f"{sanitize_message(str(prediction.error or ''), '<redacted>')}"
            )
        return prediction.output

    def _run_bounded(self, request: Dict[str, Any], budget: Deadline) -> Any:
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="generation")
        try:
            future = executor.submit(self.backend.run, self.config.model, input=request)
            try:
                return future.result(timeout=budget.remaining())
            except FutureTimeout as exc:
                future.cancel()
                raise RequestTimeoutError("image generation") from exc
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def invoke(
        self,
        prompt: str,
        negative_prompt: Optional[str],
        image_urls: Sequence[str],
        *,
        deadline: Optional[Deadline] = None,
    ) -> str:
        request = self.build_request(prompt, negative_prompt, image_urls)
        limit = (
            deadline.timeout_for(self.config.timeout_seconds)
            if deadline is not None
            else self.config.timeout_seconds
        )
        budget = Deadline(limit)
        logger.info(
            "replicate generation start model=%s inputs=%d prompt_chars=%d timeout_s=%.1f",
            self.config.model,
            len(request["image_input"]),
            len(prompt),
            limit,
        )
        try:
            if isinstance(self.backend, replicate.Client):
                raw = self._poll_prediction(request, budget)
            else:
                raw = self._run_bounded(request, budget)
            url = normalize_output(raw)
        except httpx.TimeoutException as exc:
            raise RequestTimeoutError("image generation") from exc
        except TryOnError:
            raise
        except Exception as exc:  # noqa: BLE001 - every backend failure maps to GENERATION_ERROR
            logger.warning(
                "replicate generation failed model=%s err=%s",
                self.config.model,
                sanitize_message(str(exc), "<redacted>"),
            )
            raise GenerationError(f"generation backend failed: {type(exc).__name__}") from exc

        logger.info(
            "replicate generation done model=%s dur_ms=%d url=%s",
            self.config.model,
            budget.elapsed_ms(),
            url[:100],
        )
        return url


__all__ = ["ReplicateImageProvider"]
