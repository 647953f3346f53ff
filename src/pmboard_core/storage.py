"""Attachment blob storage on the local filesystem."""
import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .config import get_settings

logger = logging.getLogger("pmboard-core.storage")


@dataclass
class StoredBlob:
    filename: str
    url: str
    size: int


class AttachmentStorage:
    """
    Stores uploaded files as ``<uuid4 hex>.<ext>`` under one directory.

    The directory is served statically under `url_prefix`, so the public URL
    of a blob is ``<url_prefix>/<filename>``.
    """

    def __init__(self, root: Path, url_prefix: str = "/uploads"):
        self.root = Path(root)
        self.url_prefix = url_prefix.rstrip("/")

    @staticmethod
    def generate_filename(original_name: Optional[str]) -> str:
        """Random filename keeping the original extension ("bin" if there is none)."""
        suffix = Path(original_name or "").suffix.lstrip(".").lower()
        return f"{uuid.uuid4().hex}.{suffix or 'bin'}"

    def path_for(self, filename: str) -> Path:
        path = (self.root / filename).resolve()
        if path.parent != self.root.resolve():
            raise ValueError(f"Invalid attachment filename: {filename}")
        return path

    def save(self, original_name: Optional[str], data: bytes) -> StoredBlob:
        """Write a blob and return where it lives."""
        self.root.mkdir(parents=True, exist_ok=True)
        filename = self.generate_filename(original_name)
        self.path_for(filename).write_bytes(data)
        logger.debug(f"Stored attachment {original_name!r} as {filename} ({len(data)} bytes)")
        return StoredBlob(filename=filename, url=f"{self.url_prefix}/{filename}", size=len(data))

    def delete(self, filename: str) -> None:
        """Remove a blob. A missing file is ignored; other OS errors are logged."""
        try:
            self.path_for(filename).unlink(missing_ok=True)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not delete attachment blob {filename}: {e}")


def get_storage() -> AttachmentStorage:
    """FastAPI dependency returning storage configured from settings."""
    settings = get_settings()
    return AttachmentStorage(Path(settings.upload_dir), settings.upload_url_prefix)
