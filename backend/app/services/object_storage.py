"""Object storage backends for offloaded result artifacts."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol
from urllib import error as urllib_error
from urllib import request as urllib_request

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from app.config import Settings
from app.errors import ExecutionFailure

logger = logging.getLogger(__name__)


class ObjectStorage(Protocol):
    """Protocol for stores that hold offloaded result artifacts."""

    def upload(self, content: str, artifact_name: str) -> str:
        """Store ``content`` and return a locator (URL or path) for retrieval."""

    def exists(self, locator: str) -> bool:
        """Return whether the artifact behind ``locator`` is still retrievable."""


def is_url(locator: str | None) -> bool:
    return bool(locator) and locator.startswith(("http://", "https://"))


def probe_url(url: str, timeout_seconds: int = 5) -> bool:
    """Issue a HEAD request and report whether the artifact answered successfully."""

    req = urllib_request.Request(url=url, method="HEAD")
    try:
        with urllib_request.urlopen(req, timeout=timeout_seconds) as resp:
            return 200 <= resp.status < 400
    except urllib_error.HTTPError as exc:
        logger.info("storage.probe_miss url=%s status=%d", url, exc.code)
        return False
    except (urllib_error.URLError, TimeoutError) as exc:
        logger.warning("storage.probe_failed url=%s reason=%s", url, exc)
        return False


@dataclass(slots=True)
class LocalObjectStorage:
    """Filesystem-backed store used for development and tests."""

    root_dir: str
    folder: str = "results"

    def upload(self, content: str, artifact_name: str) -> str:
        target_dir = Path(self.root_dir) / self.folder
        target_dir.mkdir(parents=True, exist_ok=True)
        target = target_dir / artifact_name
        target.write_text(content, encoding="utf-8")
        logger.info("storage.local_uploaded path=%s bytes=%d", target, len(content))
        return str(target)

    def exists(self, locator: str) -> bool:
        if is_url(locator):
            return probe_url(locator)
        return Path(locator).is_file()


class S3ObjectStorage:
    """S3-compatible store returning public URLs for uploaded artifacts."""

    def __init__(
        self,
        bucket: str,
        *,
        folder: str,
        region: str | None = None,
        endpoint_url: str | None = None,
        public_base_url: str | None = None,
        probe_timeout_seconds: int = 5,
        client: Any | None = None,
    ) -> None:
        self.bucket = bucket
        self.folder = folder.strip("/")
        self.region = region
        self.public_base_url = public_base_url
        self.probe_timeout_seconds = probe_timeout_seconds
        self._client = client or boto3.client("s3", region_name=region, endpoint_url=endpoint_url)

    def upload(self, content: str, artifact_name: str) -> str:
        key = f"{self.folder}/{artifact_name}" if self.folder else artifact_name
        try:
            self._client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=content.encode("utf-8"),
                ContentType="text/csv",
            )
        except (BotoCoreError, ClientError) as exc:
            logger.error("storage.s3_upload_failed bucket=%s key=%s error=%s", self.bucket, key, exc)
            raise ExecutionFailure(f"Failed to upload result artifact: {exc}") from exc
        url = self._public_url(key)
        logger.info("storage.s3_uploaded bucket=%s key=%s bytes=%d", self.bucket, key, len(content))
        return url

    def exists(self, locator: str) -> bool:
        return probe_url(locator, timeout_seconds=self.probe_timeout_seconds)

    def _public_url(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{key}"
        if self.region:
            return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"
        return f"https://{self.bucket}.s3.amazonaws.com/{key}"


def build_object_storage(settings: Settings) -> ObjectStorage:
    """Return the storage backend selected by configuration."""

    backend = settings.storage_backend.strip().lower()
    if backend == "s3":
        if not settings.s3_bucket:
            raise ValueError("S3_BUCKET must be configured when STORAGE_BACKEND=s3")
        return S3ObjectStorage(
            settings.s3_bucket,
            folder=settings.result_folder,
            region=settings.s3_region,
            endpoint_url=settings.s3_endpoint_url,
            public_base_url=settings.s3_public_base_url,
            probe_timeout_seconds=settings.artifact_probe_timeout_seconds,
        )
    if backend == "local":
        return LocalObjectStorage(root_dir=settings.local_storage_dir, folder=settings.result_folder)
    raise ValueError(f"Unsupported storage backend: {settings.storage_backend}")
