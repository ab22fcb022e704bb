"""Payment slip file storage."""
import logging
import os
import secrets
import time
from typing import List, Optional

from config import ALLOWED_SLIP_TYPES, MAX_SLIP_SIZE_BYTES, MEDIA_URL_PREFIX, UPLOAD_DIR
from errors import StoreError

logger = logging.getLogger(__name__)

SLIP_FOLDER = "payment-slips"


def is_allowed_type(content_type: Optional[str], allowed_types: List[str]) -> bool:
    if not content_type:
        return False
    for allowed in allowed_types:
        if allowed.endswith("/*"):
            if content_type.startswith(allowed[:-1]):
                return True
        elif content_type == allowed:
            return True
    return False


class SlipStorage:
    """Stores uploaded slips on disk and returns their public URL."""

    def __init__(
        self,
        upload_dir: str = UPLOAD_DIR,
        url_prefix: str = MEDIA_URL_PREFIX,
        max_size: int = MAX_SLIP_SIZE_BYTES,
        allowed_types: Optional[List[str]] = None
    ):
        self.upload_dir = upload_dir
        self.url_prefix = url_prefix.rstrip("/")
        self.max_size = max_size
        self.allowed_types = allowed_types or list(ALLOWED_SLIP_TYPES)

    def validate(self, content_type: Optional[str], size: int) -> None:
        """
        Raises:
            StoreError: INVALID_FILE when the file is too large or of a
                disallowed type
        """
        if size > self.max_size:
            raise StoreError(
                "INVALID_FILE",
                f"File too large. Maximum size is {self.max_size // (1024 * 1024)}MB"
            )
        if size == 0:
            raise StoreError("INVALID_FILE", "File is empty")
        if not is_allowed_type(content_type, self.allowed_types):
            raise StoreError(
                "INVALID_FILE",
                f"Invalid file type. Allowed: {', '.join(self.allowed_types)}"
            )

    def save(self, filename: Optional[str], content_type: Optional[str], data: bytes) -> str:
        """
        Validate and write a slip file.

        Returns:
            Public URL of the stored file
        """
        self.validate(content_type, len(data))

        ext = ""
        if filename and "." in filename:
            ext = "." + filename.rsplit(".", 1)[1].lower()[:10]
        name = f"{int(time.time() * 1000)}-{secrets.token_hex(5)}{ext}"

        folder = os.path.join(self.upload_dir, SLIP_FOLDER)
        os.makedirs(folder, exist_ok=True)
        with open(os.path.join(folder, name), "wb") as f:
            f.write(data)

        logger.info("Stored payment slip", extra={
            "file_name": name,
            "content_type": content_type,
            "size_bytes": len(data)
        })
        return f"{self.url_prefix}/{SLIP_FOLDER}/{name}"
