"""
File storage for receipt images.

Uploads live flat under ``settings.UPLOAD_DIR`` and are served under
``settings.UPLOAD_URL_PREFIX``. Receipts store URLs (``/uploads/<name>``);
the untouched backup of each upload is ``/uploads/raw-<name>``.
"""

import logging
import shutil
import uuid
from datetime import datetime
from pathlib import Path
from typing import Optional

from expense_tracker.config import settings

logger = logging.getLogger(__name__)

RAW_PREFIX = "raw-"


class FileStore:
    """Local filesystem store for uploaded receipt images."""

    def __init__(self, base_dir: Optional[str] = None, url_prefix: Optional[str] = None):
        self.base_dir = Path(base_dir or settings.UPLOAD_DIR)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.url_prefix = (url_prefix or settings.UPLOAD_URL_PREFIX).rstrip("/")

    def _normalise_filename(self, filename: str) -> str:
        """Remove potentially dangerous characters and ensure a safe filename."""
        keepchars = {"-", "_", "."}
        safe = "".join(c for c in Path(filename).name if c.isalnum() or c in keepchars)
        return safe or "receipt"

    def save_upload(self, content: bytes, filename: str) -> Path:
        """
        Write uploaded bytes under a unique name.

        Returns:
            Path of the stored file
        """
        if not content:
            raise ValueError("Empty upload payload")

        timestamp = datetime.now().strftime("%Y%m%d%H%M%S")
        stored_name = f"{timestamp}-{uuid.uuid4().hex[:8]}-{self._normalise_filename(filename)}"
        file_path = self.base_dir / stored_name
        file_path.write_bytes(content)
        logger.info(f"Saved upload {filename} as {stored_name} ({len(content)} bytes)")
        return file_path

    def url_for(self, path: Path) -> str:
        return f"{self.url_prefix}/{Path(path).name}"

    def path_for(self, url: str) -> Path:
        """Resolve a stored URL back to its file on disk."""
        return self.base_dir / Path(url).name

    def backup_raw(self, image_path: Path) -> str:
        """
        Copy an upload to its raw backup location.

        Returns:
            URL of the raw copy
        """
        image_path = Path(image_path)
        raw_path = self.base_dir / f"{RAW_PREFIX}{image_path.name}"
        shutil.copyfile(image_path, raw_path)
        return self.url_for(raw_path)

    def remove(self, url: str) -> None:
        """Delete a stored file. Missing files are ignored; other OS errors propagate."""
        if not url:
            return
        self.path_for(url).unlink(missing_ok=True)

    def discard(self, *urls: str) -> None:
        """Best-effort removal used for cleanup; failures are only logged."""
        for url in urls:
            try:
                self.remove(url)
            except OSError as e:
                logger.warning(f"Could not remove stored file {url}: {e}")
