from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List
from urllib.parse import urlparse

KB = 1024
MB = 1024 * 1024

DEFAULT_ALLOWED_IMAGE_TYPES = (
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/webp",
    "image/avif",
)


def _as_bool(value: str | None, default: bool) -> bool:
    """Interpret common truthy / falsy strings while providing a default."""

    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _as_int(value: str | None, default: int, *, minimum: int = 0) -> int:
    if value is None or not value.strip():
        return default
    try:
        return max(int(value), minimum)
    except (TypeError, ValueError):
        return default


def _as_float(value: str | None, default: float) -> float:
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_list(csv: str | None, fallback: List[str]) -> List[str]:
    """Split a CSV string to list with trimming and fallback."""
    if not csv:
        return fallback
    items = [x.strip() for x in csv.split(",") if x.strip()]
    return items or fallback


def _parse_allowed_origins(raw: str | None) -> List[str]:
    """Normalise comma-separated origins into values accepted by CORSMiddleware."""

    if not raw:
        return ["*"]

    cleaned: List[str] = []
    for origin in raw.split(","):
        value = origin.strip()
        if not value:
            continue
        if value == "*":
            return ["*"]

        parsed = urlparse(value)
        if parsed.scheme and parsed.netloc:
            normalised = f"{parsed.scheme}://{parsed.netloc}"
        else:
            normalised = value.rstrip("/")

        if normalised not in cleaned:
            cleaned.append(normalised)

    return cleaned or ["*"]


@dataclass
class UploadLimits:
    user_photo_min_bytes: int = 10 * KB
    user_photo_max_bytes: int = 10 * MB
    product_image_min_bytes: int = 10 * KB
    product_image_max_bytes: int = 15 * MB
    max_product_images: int = 5
    allowed_types: tuple[str, ...] = DEFAULT_ALLOWED_IMAGE_TYPES
    form_overhead_bytes: int = 1 * MB

    @property
    def max_request_bytes(self) -> int:
        """Largest multipart body a well-formed try-on request can produce."""

        return (
            self.user_photo_max_bytes
            + self.max_product_images * self.product_image_max_bytes
            + self.form_overhead_bytes
        )

    @classmethod
    def from_env(cls) -> "UploadLimits":
        allowed = _as_list(os.getenv("UPLOAD_ALLOWED_MIME"), list(DEFAULT_ALLOWED_IMAGE_TYPES))
        return cls(
            user_photo_min_bytes=_as_int(os.getenv("USER_PHOTO_MIN_BYTES"), 10 * KB),
            user_photo_max_bytes=_as_int(os.getenv("USER_PHOTO_MAX_BYTES"), 10 * MB),
            product_image_min_bytes=_as_int(os.getenv("PRODUCT_IMAGE_MIN_BYTES"), 10 * KB),
            product_image_max_bytes=_as_int(os.getenv("PRODUCT_IMAGE_MAX_BYTES"), 15 * MB),
            max_product_images=_as_int(os.getenv("MAX_PRODUCT_IMAGES"), 5, minimum=1),
            allowed_types=tuple(item.lower() for item in allowed),
        )


@dataclass
class GenAIConfig:
    """Vision / text analysis backend (google-genai)."""

    api_key: str | None = None
    model: str = "gemini-2.5-flash"
    timeout_seconds: float = 60.0
    temperature: float = 0.0
    analysis_max_tokens: int = 768
    page_max_tokens: int = 500

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    @classmethod
    def from_env(cls) -> "GenAIConfig":
        api_key = os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY")
        return cls(
            api_key=api_key,
            model=os.getenv("GEMINI_MODEL", "gemini-2.5-flash") or "gemini-2.5-flash",
            timeout_seconds=_as_float(os.getenv("GEMINI_TIMEOUT_SECONDS"), 60.0),
        )


@dataclass
class ReplicateConfig:
    """Image generation backend (Replicate)."""

    api_token: str | None = None
    model: str = "bytedance/seedream-4"
    size: str = "2K"
    width: int = 2048
    height: int = 2048
    aspect_ratio: str = "4:3"
    timeout_seconds: float = 120.0
    poll_interval_seconds: float = 1.0

    @property
    def is_configured(self) -> bool:
        return bool(self.api_token)

    @classmethod
    def from_env(cls) -> "ReplicateConfig":
        return cls(
            api_token=os.getenv("REPLICATE_API_TOKEN"),
            model=os.getenv("REPLICATE_MODEL", "bytedance/seedream-4") or "bytedance/seedream-4",
            size=os.getenv("GENERATION_SIZE", "2K") or "2K",
            width=_as_int(os.getenv("GENERATION_WIDTH"), 2048, minimum=1),
            height=_as_int(os.getenv("GENERATION_HEIGHT"), 2048, minimum=1),
            aspect_ratio=os.getenv("GENERATION_ASPECT_RATIO", "4:3") or "4:3",
            timeout_seconds=_as_float(os.getenv("REPLICATE_TIMEOUT_SECONDS"), 120.0),
            poll_interval_seconds=_as_float(os.getenv("REPLICATE_POLL_INTERVAL_SECONDS"), 1.0),
        )


@dataclass
class StorageConfig:
    endpoint: str | None = None
    access_key: str | None = None
    secret_key: str | None = None
    region: str = "auto"
    bucket: str | None = None
    public_base: str | None = None
    folder: str = "try-on"

    @property
    def is_configured(self) -> bool:
        return bool(self.endpoint and self.access_key and self.secret_key and self.bucket)


@dataclass
class RedisConfig:
    url: str | None = None
    rate_limit_max_requests: int = 20
    rate_limit_window_seconds: int = 60
    usage_ttl_seconds: int = 35 * 24 * 3600

    @property
    def is_configured(self) -> bool:
        return bool(self.url)


@dataclass
class DatabaseConfig:
    url: str | None = None
    echo: bool = False

    @property
    def is_configured(self) -> bool:
        return bool(self.url)


@dataclass
class PipelineConfig:
    deadline_seconds: float = 180.0
    page_fetch_timeout_seconds: float = 10.0
    page_text_limit: int = 5000
    upload_timeout_seconds: float = 30.0
    default_monthly_quota: int = 600
    model_label: str = "closelook-v1"
    visibility_classifier: str = "filename"
    outbox_max_pending: int = 500


@dataclass
class Settings:
    environment: str
    allowed_origins: List[str]
    uploads: UploadLimits
    genai: GenAIConfig
    replicate: ReplicateConfig
    storage: StorageConfig
    redis: RedisConfig
    database: DatabaseConfig
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)


@lru_cache()
def get_settings() -> Settings:
    def _get(name: str, default: str | None = None) -> str | None:
        v = os.getenv(name)
        return v if v is not None else default

    storage = StorageConfig(
        endpoint=_get("R2_ENDPOINT") or _get("S3_ENDPOINT"),
        access_key=_get("R2_ACCESS_KEY_ID") or _get("S3_ACCESS_KEY"),
        secret_key=_get("R2_SECRET_ACCESS_KEY") or _get("S3_SECRET_KEY"),
        region=_get("R2_REGION") or _get("S3_REGION", "auto") or "auto",
        bucket=_get("R2_BUCKET") or _get("S3_BUCKET"),
        public_base=_get("R2_PUBLIC_BASE") or _get("S3_PUBLIC_BASE"),
        folder=(_get("TRYON_STORAGE_FOLDER", "try-on") or "try-on").strip("/ ") or "try-on",
    )

    redis_cfg = RedisConfig(
        url=_get("REDIS_URL"),
        rate_limit_max_requests=_as_int(_get("RATE_LIMIT_MAX_REQUESTS"), 20, minimum=1),
        rate_limit_window_seconds=_as_int(_get("RATE_LIMIT_WINDOW_SECONDS"), 60, minimum=1),
        usage_ttl_seconds=_as_int(_get("USAGE_COUNTER_TTL_SECONDS"), 35 * 24 * 3600, minimum=1),
    )

    database = DatabaseConfig(
        url=_get("DATABASE_URL"),
        echo=_as_bool(_get("DATABASE_ECHO"), False),
    )

    pipeline = PipelineConfig(
        deadline_seconds=_as_float(_get("TRYON_DEADLINE_SECONDS"), 180.0),
        page_fetch_timeout_seconds=_as_float(_get("PAGE_FETCH_TIMEOUT_SECONDS"), 10.0),
        page_text_limit=_as_int(_get("PAGE_TEXT_LIMIT"), 5000, minimum=1),
        upload_timeout_seconds=_as_float(_get("UPLOAD_TIMEOUT_SECONDS"), 30.0),
        default_monthly_quota=_as_int(_get("DEFAULT_MONTHLY_QUOTA"), 600),
        visibility_classifier=(_get("VISIBILITY_CLASSIFIER", "filename") or "filename").lower(),
        outbox_max_pending=_as_int(_get("OUTBOX_MAX_PENDING"), 500, minimum=1),
    )

    return Settings(
        environment=_get("ENVIRONMENT", "development") or "development",
        allowed_origins=_parse_allowed_origins(_get("ALLOWED_ORIGINS", "*")),
        uploads=UploadLimits.from_env(),
        genai=GenAIConfig.from_env(),
        replicate=ReplicateConfig.from_env(),
        storage=storage,
        redis=redis_cfg,
        database=database,
        pipeline=pipeline,
    )
