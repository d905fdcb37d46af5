"""Wiring of concrete clients into the pipeline and upstream gates."""
from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

from tryon.config import Settings, get_settings
from tryon.services.body_visibility import (
    BodyVisibilityClassifier,
    FilenameVisibilityClassifier,
    GenAIVisibilityClassifier,
)
from tryon.services.genai_client import AnalysisService, GenAIAnalysisClient
from tryon.services.history import HistoryRepository, build_engine
from tryon.services.image_provider import get_provider
from tryon.services.pipeline import TryOnPipeline
from tryon.services.product_analyzer import MetadataAnalyzer
from tryon.services.r2_client import R2Storage
from tryon.services.recorder import SideEffectRecorder
from tryon.services.usage import QuotaGate, RateLimiter, UsageCounter, build_redis
from tryon.services.validators import ValidationGate

logger = logging.getLogger("tryon-service")


def build_recorder(settings: Settings) -> SideEffectRecorder:
    usage: Optional[UsageCounter] = None
    history: Optional[HistoryRepository] = None

    redis_client = build_redis(settings.redis)
    if redis_client is not None:
        usage = UsageCounter(redis_client, ttl_seconds=settings.redis.usage_ttl_seconds)
    else:
        logger.warning("REDIS_URL not set; usage tracking disabled")

    engine = build_engine(settings.database)
    if engine is not None:
        history = HistoryRepository(engine)
    else:
        logger.warning("DATABASE_URL not set; try-on history disabled")
    return SideEffectRecorder(
        usage=usage, history=history, max_pending=settings.pipeline.outbox_max_pending
    )


def build_classifier(settings: Settings, service: AnalysisService) -> BodyVisibilityClassifier:
    if settings.pipeline.visibility_classifier == "vision":
        return GenAIVisibilityClassifier(service)
    return FilenameVisibilityClassifier()


def build_pipeline(settings: Optional[Settings] = None) -> TryOnPipeline:
    """Construct a pipeline backed by the real external services."""

    settings = settings or get_settings()
    service = GenAIAnalysisClient(settings.genai)
    analyzer = MetadataAnalyzer(
        service,
        page_fetch_timeout=settings.pipeline.page_fetch_timeout_seconds,
        page_text_limit=settings.pipeline.page_text_limit,
        analysis_max_tokens=settings.genai.analysis_max_tokens,
        page_max_tokens=settings.genai.page_max_tokens,
    )
    pipeline = TryOnPipeline(
        analyzer=analyzer,
        provider=get_provider(settings.replicate),
        storage=R2Storage(
            settings.storage, timeout_seconds=settings.pipeline.upload_timeout_seconds
        ),
        recorder=build_recorder(settings),
        classifier=build_classifier(settings, service),
        gate=ValidationGate(settings.uploads),
        config=settings.pipeline,
        storage_folder=settings.storage.folder,
    )
    logger.info(
        "try-on pipeline ready",
        extra={
            "analysis_model": settings.genai.model,
            "generation_model": settings.replicate.model,
            "visibility_classifier": settings.pipeline.visibility_classifier,
        },
    )
    return pipeline


@lru_cache(maxsize=1)
def get_pipeline() -> TryOnPipeline:
    return build_pipeline()


@lru_cache(maxsize=1)
def get_rate_limiter() -> RateLimiter:
    settings = get_settings()
    return RateLimiter(
        build_redis(settings.redis),
        max_requests=settings.redis.rate_limit_max_requests,
        window_seconds=settings.redis.rate_limit_window_seconds,
    )


@lru_cache(maxsize=1)
def get_quota_gate() -> QuotaGate:
    settings = get_settings()
    client = build_redis(settings.redis)
    counter = (
        UsageCounter(client, ttl_seconds=settings.redis.usage_ttl_seconds)
        if client is not None
        else None
    )
    return QuotaGate(counter, default_limit=settings.pipeline.default_monthly_quota)


__all__ = [
    "build_classifier",
    "build_pipeline",
    "build_recorder",
    "get_pipeline",
    "get_quota_gate",
    "get_rate_limiter",
]
