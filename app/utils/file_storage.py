import os
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from loguru import logger

from app.core.config import settings
from app.core.errors import InvalidInput


DOCUMENT_DIR = Path(settings.static_dir) / "documents"
DOCUMENT_URL_PREFIX = "/static/documents"

# Allowed mime types for supporting documents, with the stored extension
ALLOWED_DOCUMENT_TYPES = {
    "application/pdf": "pdf",
    "application/msword": "doc",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "application/vnd.ms-excel": "xls",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": "xlsx",
    "text/plain": "txt",
    "text/csv": "csv",
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
    "image/tiff": "tiff",
}


class BlobStore(ABC):
    """Opaque document storage. Only the returned URL is kept in the database."""

    @abstractmethod
    def store(self, content: bytes, mime_type: str, filename: Optional[str] = None) -> str:
        ...

    @abstractmethod
    def delete(self, url: str) -> None:
        ...


class LocalBlobStore(BlobStore):
    """
    Writes documents under the static directory so they are served by the
    app's StaticFiles mount.
    """

    def __init__(self, root: Path = DOCUMENT_DIR, public_url: str = None):
        self.root = Path(root)
        self.url_prefix = f"{public_url or settings.public_url}{DOCUMENT_URL_PREFIX}/"

    def store(self, content: bytes, mime_type: str, filename: Optional[str] = None) -> str:
        # 1. Validate
        if not content:
            raise InvalidInput("Document is empty.", field="file")
        if len(content) > settings.max_document_bytes:
            raise InvalidInput(
                "Document exceeds the maximum allowed size.",
                max_bytes=settings.max_document_bytes)

        ext = ALLOWED_DOCUMENT_TYPES.get((mime_type or "").lower())
        if not ext:
            raise InvalidInput(
                f"Document type '{mime_type}' is not allowed. Allowed types: "
                + ", ".join(sorted(ALLOWED_DOCUMENT_TYPES)),
                field="mime_type")

        # 2. Write under a unique name
        os.makedirs(self.root, exist_ok=True)
        unique_name = f"{uuid.uuid4()}.{ext}"
        with open(self.root / unique_name, "wb") as buffer:
            buffer.write(content)

        logger.info(f"Stored document {unique_name} ({len(content)} bytes, from '{filename}')")
        return f"{self.url_prefix}{unique_name}"

    def delete(self, url: str) -> None:
        if not url.startswith(self.url_prefix):
            logger.warning(f"Refusing to delete blob outside the store: {url}")
            return

        name = url[len(self.url_prefix):]
        if "/" in name or name in ("", ".", ".."):
            logger.warning(f"Refusing to delete malformed blob url: {url}")
            return

        path = self.root / name
        if path.exists():
            path.unlink()
        else:
            logger.warning(f"Blob already missing: {url}")
