"""End-to-end try-on generation pipeline."""
from __future__ import annotations

import logging
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from tryon.config import PipelineConfig
from tryon.errors import InputValidationError, OutputValidationError, RequestTimeoutError
from tryon.models.category import BodyVisibility, CategoryConfig, CategoryType
from tryon.models.upload import UploadedImage
from tryon.schemas import (
    CategoryConfigSummary,
    CategorySystem,
    ResponseFlags,
    TryOnMetadata,
    TryOnResponse,
    ValidationResult,
)
from tryon.services.body_visibility import BodyVisibilityClassifier, FilenameVisibilityClassifier
from tryon.services.category import CategoryResolver
from tryon.services.deadline import Deadline
from tryon.services.enhancement import enhance, resolve_category_text
from tryon.services.history import HistoryRecord
from tryon.services.image_provider.base import ImageProvider
from tryon.services.product_analyzer import MetadataAnalyzer
from tryon.services.prompt import PromptCompositor
from tryon.services.r2_client import ObjectStorage
from tryon.services.reconstruction import ReconstructionPlanner
from tryon.services.recorder import SideEffectRecorder
from tryon.services.storage_bridge import product_image_key, store_upload, user_photo_key
from tryon.services.validators import ValidationGate

logger = logging.getLogger("tryon-service")


def new_request_id() -> str:
    return f"req-{int(time.time() * 1000)}-{uuid.uuid4().hex[:7]}"


@dataclass
class TryOnRequest:
    user_photo: Optional[UploadedImage]
    product_images: List[UploadedImage]
    product_name: str
    product_category: Optional[str] = None
    product_url: Optional[str] = None
    session_id: Optional[str] = None
    shop_domain: Optional[str] = None
    product_id: Optional[str] = None
    customer_id: Optional[str] = None
    request_id: str = field(default_factory=new_request_id)


@dataclass(frozen=True)
class UploadedUrls:
    user_photo_url: str
    product_image_urls: tuple[str, ...]


def _raise_if_invalid(result: ValidationResult, message: str, request_id: str) -> None:
    if result.is_valid:
        return
    logger.warning(
        "%s rid=%s errors=%s", message, request_id, result.errors, extra={"request_id": request_id}
    )
    raise InputValidationError(message, errors=result.errors, warnings=result.warnings)


class TryOnPipeline:
    """Runs one request through every stage; stages share no mutable state."""

    def __init__(
        self,
        *,
        analyzer: MetadataAnalyzer,
        provider: ImageProvider,
        storage: ObjectStorage,
        recorder: Optional[SideEffectRecorder] = None,
        classifier: Optional[BodyVisibilityClassifier] = None,
        resolver: Optional[CategoryResolver] = None,
        planner: Optional[ReconstructionPlanner] = None,
        compositor: Optional[PromptCompositor] = None,
        gate: Optional[ValidationGate] = None,
        config: Optional[PipelineConfig] = None,
        storage_folder: str = "try-on",
        upload_workers: int = 4,
    ) -> None:
        self.analyzer = analyzer
        self.provider = provider
        self.storage = storage
        self.recorder = recorder or SideEffectRecorder()
        self.classifier = classifier or FilenameVisibilityClassifier()
        self.resolver = resolver or CategoryResolver()
        self.planner = planner or ReconstructionPlanner()
        self.compositor = compositor or PromptCompositor()
        self.gate = gate or ValidationGate()
        self.config = config or PipelineConfig()
        self.storage_folder = storage_folder
        self.upload_workers = max(upload_workers, 1)

    # -- stages ---------------------------------------------------------

    def upload_inputs(
        self,
        user_photo: UploadedImage,
        product_images: Sequence[UploadedImage],
        deadline: Deadline,
    ) -> UploadedUrls:
        """Upload every input image concurrently; all must finish before returning."""

        deadline.check("image upload")
        ts = int(time.time() * 1000)
        executor = ThreadPoolExecutor(
            max_workers=min(self.upload_workers, len(product_images) + 1),
            thread_name_prefix="tryon-upload",
        )
        try:
            user_future = executor.submit(
                store_upload,
                self.storage,
                user_photo_key(user_photo.safe_name, folder=self.storage_folder, timestamp=ts),
                user_photo,
            )
            product_futures = [
                executor.submit(
                    store_upload,
                    self.storage,
                    product_image_key(
                        idx, image.safe_name, folder=self.storage_folder, timestamp=ts
                    ),
                    image,
                )
                for idx, image in enumerate(product_images)
            ]
            timeout = deadline.timeout_for(self.config.upload_timeout_seconds)
            try:
                user_url = user_future.result(timeout=timeout)["url"]
                product_urls = tuple(
                    future.result(timeout=deadline.timeout_for(timeout))["url"]
                    for future in product_futures
                )
            except FutureTimeout as exc:
                raise RequestTimeoutError("image upload") from exc
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        return UploadedUrls(user_photo_url=user_url, product_image_urls=product_urls)

    def run(self, request: TryOnRequest) -> TryOnResponse:
        rid = request.request_id
        deadline = Deadline(self.config.deadline_seconds)
        log_extra = {"request_id": rid}
        warnings: List[str] = []

        photo_check = self.gate.validate_user_photo(request.user_photo)
        _raise_if_invalid(photo_check, "Invalid user photo", rid)
        products_check = self.gate.validate_product_images(request.product_images)
        _raise_if_invalid(products_check, "Invalid product images", rid)
        warnings.extend(photo_check.warnings + products_check.warnings)
        user_photo = request.user_photo
        if user_photo is None:
            raise InputValidationError("Invalid user photo", errors=["User photo is required"])

        visibility = self.classifier.classify(user_photo)
        logger.debug("body visibility rid=%s value=%s", rid, visibility.value, extra=log_extra)

        analysis = self.analyzer.analyze(
            user_photo,
            request.product_images[0],
            request.product_url,
            deadline=deadline,
        )
        metadata_check = self.gate.validate_metadata(analysis.metadata)
        if metadata_check.warnings:
            logger.warning(
                "product metadata warnings rid=%s %s", rid, metadata_check.warnings, extra=log_extra
            )
        warnings.extend(metadata_check.warnings)

        detected_category = resolve_category_text(
            analysis.metadata.product_category, request.product_category, request.product_name
        ).value
        category_type, category_config = self.resolver.resolve(detected_category)
        plan = self.planner.plan(category_config, visibility)

        enhanced = enhance(
            analysis.metadata,
            request.product_name,
            request.product_category,
            category_config,
            visibility=visibility,
        )
        used_fallback = enhanced.used_fallback or analysis.low_quality
        if used_fallback:
            logger.info(
                "fallback used rid=%s fields=%s low_quality=%s",
                rid,
                list(enhanced.fallback_fields),
                analysis.low_quality,
                extra=log_extra,
            )

        urls = self.upload_inputs(user_photo, request.product_images, deadline)

        bundle = self.compositor.finalize(
            self.compositor.compose(
                enhanced.metadata, category_config, plan, urls.product_image_urls
            ),
            category_config,
        )
        warnings.extend(bundle.warnings)
        prompt_check = self.gate.validate_prompt(bundle.positive_prompt, category_config)
        _raise_if_invalid(prompt_check, "Invalid prompt", rid)
        warnings.extend(prompt_check.warnings)

        deadline.check("image generation")
        image_url = self.provider.invoke(
            bundle.positive_prompt,
            bundle.negative_prompt,
            [urls.user_photo_url, urls.product_image_urls[0]],
            deadline=deadline,
        )

        output_check = self.gate.validate_output_url(image_url)
        if not output_check.is_valid:
            logger.error(
                "generated url rejected rid=%s errors=%s", rid, output_check.errors, extra=log_extra
            )
            raise OutputValidationError("; ".join(output_check.errors))

        duration_ms = deadline.elapsed_ms()
        response = self._build_response(
            request,
            image_url=image_url,
            duration_ms=duration_ms,
            enhanced_metadata=enhanced.metadata,
            detected_category=detected_category,
            category_type=category_type,
            category_config=category_config,
            needs_reconstruction=plan.needed,
            used_fallback=used_fallback,
            visibility=visibility,
            warnings=warnings,
        )
        logger.info(
            "try-on completed rid=%s category=%s dur_ms=%d url=%s",
            rid,
            category_type.value,
            duration_ms,
            image_url[:100],
            extra=log_extra,
        )

        history = None
        if request.session_id and request.shop_domain and request.product_id:
            history = HistoryRecord(
                session_id=request.session_id,
                shop_domain=request.shop_domain,
                customer_id=request.customer_id,
                product_id=request.product_id,
                product_category=detected_category,
                user_photo_url=urls.user_photo_url,
                product_image_url=urls.product_image_urls[0],
                generated_image_url=image_url,
                generation_time_ms=duration_ms,
                metadata={
                    "category_type": category_type.value,
                    "prompt": bundle.positive_prompt,
                    "product_url": request.product_url,
                    "used_fallback": used_fallback,
                    "needs_body_reconstruction": plan.needed,
                    "warnings": list(warnings),
                },
            )
        self.recorder.record(self.recorder.plan(shop_domain=request.shop_domain, history=history))
        return response

    def _build_response(
        self,
        request: TryOnRequest,
        *,
        image_url: str,
        duration_ms: int,
        enhanced_metadata,
        detected_category: str,
        category_type: CategoryType,
        category_config: CategoryConfig,
        needs_reconstruction: bool,
        used_fallback: bool,
        visibility: BodyVisibility,
        warnings: List[str],
    ) -> TryOnResponse:
        return TryOnResponse(
            ok=True,
            image_url=image_url,
            product_name=request.product_name,
            metadata=TryOnMetadata(
                model=self.config.model_label,
                timestamp=datetime.now(timezone.utc).isoformat(),
                request_id=request.request_id,
                processing_time_ms=duration_ms,
                product_analysis=enhanced_metadata,
                category_system=CategorySystem(
                    detected_category=detected_category,
                    category_type=category_type,
                    category_config=CategoryConfigSummary(
                        type=category_config.type,
                        target_framing=category_config.target_framing,
                        camera_hint=category_config.camera_hint,
                        requires_full_body=category_config.requires_full_body,
                    ),
                    needs_body_reconstruction=needs_reconstruction,
                ),
                flags=ResponseFlags(
                    used_fallback=used_fallback,
                    user_body_visibility=visibility,
                    analysis_confidence="low" if used_fallback else "high",
                    product_scale_ratio=enhanced_metadata.product_scale_ratio_to_head
                    or category_config.product_scale_ratio_to_head,
                    product_scale_category=enhanced_metadata.product_scale_category
                    or category_config.product_scale_category,
                ),
                warnings=list(dict.fromkeys(warnings)),
            ),
        )


__all__ = ["TryOnPipeline", "TryOnRequest", "UploadedUrls", "new_request_id"]
