"""
Storage strategies for uploaded document bytes.

All strategies share one interface:

    store(data, filename, content_type) -> reference
    retrieve(reference) -> Retrieval
    delete(reference) -> bool

Exactly one strategy is active per deployment (``STORAGE_BACKEND``), but each
Document records the strategy that stored it, so older records are served
by the backend that understands their reference.
"""
import os
import re
import secrets
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional
from urllib.parse import urlparse

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import Request

from app.config import Settings
from app.errors import InternalError, NotFound
from app.logger import get_logger

logger = get_logger(__name__)

DISK = "disk"
MEMORY = "memory"
S3 = "s3"
BACKENDS = (DISK, MEMORY, S3)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class StorageError(InternalError):
    default_message = "File storage failed"


@dataclass
class Retrieval:
    """Outcome of reading a stored file: bytes, a redirect, or neither."""
    content: Optional[bytes] = None
    redirect_url: Optional[str] = None

    @property
    def supported(self) -> bool:
        return self.content is not None or self.redirect_url is not None


def stored_name(filename: str) -> str:
    """Build a collision-resistant, filesystem-safe object name."""
    base = os.path.basename(filename or "upload")
    safe = _UNSAFE_CHARS.sub("_", base).strip("._") or "upload"
    return f"{int(time.time() * 1000)}-{secrets.token_hex(4)}-{safe}"


class StorageBackend:
    name = ""

    def store(self, data: bytes, filename: str, content_type: str) -> str:
        raise NotImplementedError("Subclasses must implement store")

    def retrieve(self, reference: str) -> Retrieval:
        raise NotImplementedError("Subclasses must implement retrieve")

    def delete(self, reference: str) -> bool:
        raise NotImplementedError("Subclasses must implement delete")


class DiskStorage(StorageBackend):
    """Writes files under a local directory; reference is ``uploads/<name>``."""
    name = DISK

    def __init__(self, upload_dir: str, prefix: str = "uploads"):
        self.root = Path(upload_dir)
        self.prefix = prefix

    def _path(self, reference: str) -> Path:
        # Only the final component is trusted, so references cannot escape root.
        return self.root / Path(reference).name

    def store(self, data: bytes, filename: str, content_type: str) -> str:
        name = stored_name(filename)
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            (self.root / name).write_bytes(data)
        except OSError as e:
            raise StorageError(detail=str(e)) from e
        logger.info(f"Stored {len(data)} bytes on disk as {name}")
        return f"{self.prefix}/{name}"

    def retrieve(self, reference: str) -> Retrieval:
        path = self._path(reference)
        if not path.is_file():
            logger.warning(f"File missing on disk: {path}")
            raise NotFound("File not found")
        return Retrieval(content=path.read_bytes())

    def delete(self, reference: str) -> bool:
        path = self._path(reference)
        try:
            path.unlink()
        except FileNotFoundError:
            logger.warning(f"File already missing on disk: {path}")
            return False
        logger.info(f"Deleted {path} from disk")
        return True


class MemoryStorage(StorageBackend):
    """
    Holds the upload only for the request lifetime.

    The reference is a virtual path that points at nothing; downloads are
    unsupported and there is nothing to delete.
    """
    name = MEMORY

    def store(self, data: bytes, filename: str, content_type: str) -> str:
        return f"uploads/{stored_name(filename)}"

    def retrieve(self, reference: str) -> Retrieval:
        return Retrieval()

    def delete(self, reference: str) -> bool:
        return False


class S3Storage(StorageBackend):
    """Uploads to an S3-compatible bucket; reference is the public object URL."""
    name = S3

    def __init__(self, settings: Settings, client=None):
        if not settings.s3_bucket:
            raise StorageError("S3 storage is not configured", detail="S3_BUCKET is empty")
        self.bucket = settings.s3_bucket
        self.client = client or boto3.client(
            "s3",
            aws_access_key_id=settings.s3_access_key or None,
            aws_secret_access_key=settings.s3_secret_key or None,
            region_name=settings.s3_region,
            endpoint_url=settings.s3_endpoint_url or None,
        )
        self.public_base = (
            settings.s3_public_base_url
            or f"https://{self.bucket}.s3.{settings.s3_region}.amazonaws.com"
        ).rstrip("/")

    def _key(self, reference: str) -> str:
        if reference.startswith(self.public_base + "/"):
            return reference[len(self.public_base) + 1:]
        return urlparse(reference).path.lstrip("/")

    def store(self, data: bytes, filename: str, content_type: str) -> str:
        key = f"documents/{stored_name(filename)}"
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Error uploading {key} to S3: {e}")
            raise StorageError(detail=str(e)) from e
        logger.info(f"Uploaded {key} to S3 bucket {self.bucket}")
        return f"{self.public_base}/{key}"

    def retrieve(self, reference: str) -> Retrieval:
        return Retrieval(redirect_url=reference)

    def delete(self, reference: str) -> bool:
        key = self._key(reference)
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Error deleting {key} from S3: {e}")
            return False
        logger.info(f"Deleted {key} from S3")
        return True


def build_storage_backend(name: str, settings: Settings) -> StorageBackend:
    name = (name or "").lower()
    if name not in BACKENDS:
        raise StorageError(f"Unknown storage backend: {name} (expected one of {', '.join(BACKENDS)})")
    if name == DISK:
        return DiskStorage(settings.upload_dir)
    if name == MEMORY:
        return MemoryStorage()
    return S3Storage(settings)


class StorageRegistry:
    """
    The active backend plus lazily-built backends for older records.
    """

    def __init__(self, settings: Settings, active: Optional[StorageBackend] = None):
        self.settings = settings
        self.active = active or build_storage_backend(settings.storage_backend, settings)
        self._backends: Dict[str, StorageBackend] = {self.active.name: self.active}

    def for_record(self, name: str) -> Optional[StorageBackend]:
        """Return the backend for a record's strategy tag, or None if unusable here."""
        backend = self._backends.get(name)
        if backend is not None:
            return backend
        try:
            backend = build_storage_backend(name, self.settings)
        except StorageError as e:
            logger.warning(f"Storage backend '{name}' unavailable: {e.detail or e.message}")
            return None
        self._backends[name] = backend
        return backend


def get_storage(request: Request) -> StorageRegistry:
    return request.app.state.storage
