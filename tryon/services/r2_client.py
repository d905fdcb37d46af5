"""Cloudflare R2 (S3 compatible) object storage helpers."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Protocol

import boto3
from botocore.client import BaseClient
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError, ConnectTimeoutError, ReadTimeoutError

from tryon.config import StorageConfig
from tryon.errors import ConfigurationError, RequestTimeoutError, StorageError

logger = logging.getLogger(__name__)


class ObjectStorage(Protocol):
    def put(self, path: str, data: bytes, content_type: str) -> Dict[str, str]:
        """Store ``data`` at ``path`` and return ``{"key", "url"}``."""
        ...


def build_client(config: StorageConfig, *, timeout_seconds: float = 30.0) -> BaseClient:
    if not config.is_configured:
        raise ConfigurationError("R2 storage is not configured")
    return boto3.session.Session().client(
        "s3",
        endpoint_url=config.endpoint,
        aws_access_key_id=config.access_key,
        aws_secret_access_key=config.secret_key,
        region_name=config.region or "auto",
        config=BotoConfig(
            connect_timeout=min(timeout_seconds, 10.0),
            read_timeout=timeout_seconds,
            retries={"max_attempts": 2},
        ),
    )


class R2Storage:
    """Public-read uploads to a single bucket."""

    def __init__(
        self,
        config: StorageConfig,
        client: Optional[Any] = None,
        *,
        timeout_seconds: float = 30.0,
    ) -> None:
        self.config = config
        self.client = client or build_client(config, timeout_seconds=timeout_seconds)

    def public_url_for(self, key: str) -> str:
        base = self.config.public_base
        if base:
            return f"{base.rstrip('/')}/{key.lstrip('/')}"
        endpoint = (self.config.endpoint or "").rstrip("/")
        return f"{endpoint}/{self.config.bucket}/{key.lstrip('/')}"

    def put(self, path: str, data: bytes, content_type: str) -> Dict[str, str]:
        key = path.lstrip("/")
        try:
            self.client.put_object(
                Bucket=self.config.bucket,
                Key=key,
                Body=bytes(data),
                ContentType=content_type or "application/octet-stream",
            )
        except (ConnectTimeoutError, ReadTimeoutError) as exc:
            raise RequestTimeoutError("image upload") from exc
        except (ClientError, BotoCoreError) as exc:
            logger.warning("R2 put failed: bucket=%s key=%s err=%s", self.config.bucket, key, exc)
            raise StorageError(f"failed to store object {key}") from exc
        return {"key": key, "url": self.public_url_for(key)}


__all__ = ["ObjectStorage", "R2Storage", "StorageError", "build_client"]
