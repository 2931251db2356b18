"""Local blob storage for uploaded CVs."""

import uuid
from pathlib import Path
from typing import Optional
import logging

from core.config import settings

logger = logging.getLogger(__name__)


class LocalStorage:
    """Files grouped in buckets (sub-directories) under one base path."""

    def __init__(self, base_path: Optional[str] = None):
        """
        Initialize local storage.

        Args:
            base_path: Base directory, defaults to STORAGE_PATH
        """
        self.base_path = Path(base_path or settings.storage_path).resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _path(self, bucket: str, key: str) -> Path:
        path = (self.base_path / bucket / key).resolve()
        if self.base_path not in path.parents:
            raise ValueError(f"Invalid storage key: {key}")
        return path

    def save(self, bucket: str, key: str, data: bytes) -> str:
        """
        Write ``data`` under ``bucket/key``.

        Returns:
            The storage path ``bucket/key``
        """
        path = self._path(bucket, key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        logger.info(f"Saved {len(data)} bytes to {bucket}/{key}")
        return f"{bucket}/{key}"

    def save_with_uuid(self, bucket: str, data: bytes, extension: str) -> str:
        """Save under a fresh ``<uuid><extension>`` key."""
        return self.save(bucket, f"{uuid.uuid4()}{extension}", data)

    def read(self, bucket: str, key: str) -> bytes:
        path = self._path(bucket, key)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {bucket}/{key}")
        return path.read_bytes()

    def delete(self, bucket: str, key: str) -> bool:
        path = self._path(bucket, key)
        if not path.exists():
            return False
        path.unlink()
        logger.info(f"Deleted {bucket}/{key}")
        return True

    def exists(self, bucket: str, key: str) -> bool:
        return self._path(bucket, key).exists()


def get_storage() -> LocalStorage:
    """Dependency: storage rooted at STORAGE_PATH."""
    return LocalStorage()
