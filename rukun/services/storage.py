"""File storage for uploaded images (proofs of payment, receipts, avatars).

Services only see the FileStorage interface so that the dues and ledger
logic does not depend on where files live.
"""

import logging
import uuid
from pathlib import Path
from typing import Protocol

from rukun.config import get_settings

logger = logging.getLogger(__name__)

URL_PREFIX = "/uploads/"

ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".heic", ".pdf"}


class FileStorage(Protocol):
    """Storage capability used by services."""

    def save(self, content: bytes, filename: str) -> str:
        """Store content and return its public URL."""
        ...

    def delete(self, url: str | None) -> bool:
        """Remove a previously stored file. Never raises."""
        ...


class LocalFileStorage:
    """Stores files in UPLOAD_DIR and serves them under /uploads/."""

    def __init__(self, upload_dir: str | None = None):
        self.upload_dir = Path(upload_dir or get_settings().upload_dir)

    def save(self, content: bytes, filename: str) -> str:
        extension = Path(filename or "").suffix.lower()
        if extension not in ALLOWED_EXTENSIONS:
            extension = ".bin"
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        stored_name = f"{uuid.uuid4().hex}{extension}"
        (self.upload_dir / stored_name).write_bytes(content)
        logger.debug("storage.save: %s (%d bytes)", stored_name, len(content))
        return f"{URL_PREFIX}{stored_name}"

    def delete(self, url: str | None) -> bool:
        """Best-effort removal; failures are logged and reported as False."""
        if not url or not url.startswith(URL_PREFIX):
            return False
        path = self.upload_dir / Path(url[len(URL_PREFIX):]).name
        try:
            path.unlink()
        except FileNotFoundError:
            logger.info("storage.delete: %s does not exist", path)
            return False
        except OSError as e:
            logger.error("storage.delete: failed to delete %s: %s", path, e)
            return False
        logger.debug("storage.delete: removed %s", path)
        return True


__all__ = ["FileStorage", "LocalFileStorage", "URL_PREFIX"]
