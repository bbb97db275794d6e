"""Proof-of-donation photo storage."""
import logging
import uuid
from pathlib import Path

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".heic"}
MAX_PHOTO_BYTES = 10 * 1024 * 1024


class PhotoRejectedError(ValueError):
    pass


class LocalPhotoStorage:
    """Stores photos on the local filesystem and hands back an opaque reference.

    The workflow never reads photo content; the reference is just a file name
    under ``upload_dir``.
    """

    def __init__(self, upload_dir: Path):
        self.upload_dir = Path(upload_dir)

    def store(self, data: bytes, filename: str | None = None) -> str:
        if not data:
            raise PhotoRejectedError("Photo is empty")
        if len(data) > MAX_PHOTO_BYTES:
            raise PhotoRejectedError("Photo exceeds the 10 MB limit")

        suffix = Path(filename or "").suffix.lower() or ".jpg"
        if suffix not in ALLOWED_EXTENSIONS:
            raise PhotoRejectedError(f"Unsupported photo type: {suffix}")

        self.upload_dir.mkdir(parents=True, exist_ok=True)
        reference = f"donations/{uuid.uuid4().hex}{suffix}"
        path = self.upload_dir / reference
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        logger.info(f"Stored donation photo {reference} ({len(data)} bytes)")
        return reference

    def delete(self, reference: str) -> None:
        """Remove a stored photo that ended up unused."""
        path = self.upload_dir / reference
        path.unlink(missing_ok=True)
        logger.info(f"Removed unused donation photo {reference}")
