# src/storage/image_store.py

"""Local-filesystem object store for product images."""

import logging
import time
import uuid
from pathlib import Path

from src.config.settings import Settings
from src.scrapers.errors import ImagePersistError

logger = logging.getLogger("pricepulse.storage")

_ALLOWED_SUFFIXES: frozenset[str] = frozenset({
    ".jpg", ".jpeg", ".png", ".webp", ".gif",
})


class ImageStore:
    """Writes image bytes under ``uploads/`` and returns a stable reference."""

    def __init__(
        self,
        uploads_dir: Path | None = None,
        public_base_url: str | None = None,
    ) -> None:
        self.uploads_dir: Path = uploads_dir or Settings.UPLOADS_DIR
        self.uploads_dir.mkdir(parents=True, exist_ok=True)
        self.public_base_url = (
            public_base_url
            if public_base_url is not None
            else Settings.IMAGE_PUBLIC_BASE_URL
        ).rstrip("/")
        logger.debug("ImageStore initialised, uploads_dir=%s", self.uploads_dir)

    def upload(self, image_bytes: bytes, suffix: str = ".jpg") -> str:
        """Persist *image_bytes* and return its public reference.

        The reference is ``uploads/<name>``, prefixed with
        ``IMAGE_PUBLIC_BASE_URL`` when one is configured.
        """
        if not image_bytes:
            raise ImagePersistError("Refusing to store an empty image")
        suffix = suffix.lower() if suffix else ".jpg"
        if suffix not in _ALLOWED_SUFFIXES:
            suffix = ".jpg"

        name = f"{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}{suffix}"
        filepath = self.uploads_dir / name
        try:
            filepath.write_bytes(image_bytes)
        except OSError as exc:
            raise ImagePersistError(
                f"Could not write {filepath}: {exc}"
            ) from exc

        logger.info(
            "Stored image (%d bytes) at %s", len(image_bytes), filepath,
        )
        reference = f"uploads/{name}"
        if self.public_base_url:
            return f"{self.public_base_url}/{reference}"
        return reference
