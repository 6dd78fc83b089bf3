"""
Storage for uploaded documents.

Supporting documents for verified payments are written to
DOCUMENT_STORAGE_DIR/verifications/<uuid>_<original name>. The path stored
on PaymentVerification.document_path is relative to DOCUMENT_STORAGE_DIR,
so the directory can move without rewriting rows.

Uploads are read at most MAX_UPLOAD_BYTES + 1 bytes at a time, so an
oversized file is refused without being held in memory in full.
"""

import re
import uuid
from pathlib import Path

import structlog
from fastapi import UploadFile
from fastapi.concurrency import run_in_threadpool

from billpay.config import settings
from billpay.exceptions import DocumentTooLargeError, InvalidDocumentError

logger = structlog.get_logger(__name__)

VERIFICATION_DOCUMENTS = "verifications"

# Content types accepted as supporting documents
ALLOWED_DOCUMENT_TYPES = {
    "application/pdf": ".pdf",
    "image/png": ".png",
    "image/jpeg": ".jpg",
}

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def _storage_root() -> Path:
    return Path(settings.DOCUMENT_STORAGE_DIR)


def safe_filename(filename: str | None, content_type: str) -> str:
    """Strip directories and odd characters from a client-supplied name."""
    name = _UNSAFE_CHARS.sub("_", Path(filename or "").name).strip("._")
    if not name:
        name = "document" + ALLOWED_DOCUMENT_TYPES.get(content_type, "")
    return name[:100]


async def read_upload(upload: UploadFile | None, allowed_types: set[str]) -> bytes:
    """
    Read an upload into memory after checking its type and size.

    Raises:
        InvalidDocumentError: No file, an empty file, or a type not in allowed_types.
        DocumentTooLargeError: More than MAX_UPLOAD_BYTES.
    """
    if upload is None or not upload.filename:
        raise InvalidDocumentError("No file uploaded")
    if upload.content_type not in allowed_types:
        raise InvalidDocumentError(
            f"Unsupported file type {upload.content_type!r}; "
            f"allowed: {', '.join(sorted(allowed_types))}"
        )

    limit = settings.MAX_UPLOAD_BYTES
    content = await upload.read(limit + 1)
    if len(content) > limit:
        raise DocumentTooLargeError(limit)
    if not content:
        raise InvalidDocumentError("Uploaded file is empty")
    return content


def _write(path: Path, content: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)


async def save_verification_document(upload: UploadFile | None, user_id: uuid.UUID) -> str:
    """Store a supporting document and return its path relative to the storage root."""
    content = await read_upload(upload, set(ALLOWED_DOCUMENT_TYPES))
    relative = Path(VERIFICATION_DOCUMENTS) / (
        f"{uuid.uuid4().hex}_{safe_filename(upload.filename, upload.content_type)}"
    )
    await run_in_threadpool(_write, _storage_root() / relative, content)

    logger.info(
        "verification_document_stored",
        user_id=str(user_id),
        document_path=relative.as_posix(),
        size_bytes=len(content),
    )
    return relative.as_posix()


async def discard_document(document_path: str) -> None:
    """Remove a stored document whose payment was refused."""
    await run_in_threadpool((_storage_root() / document_path).unlink, missing_ok=True)
    logger.info("verification_document_discarded", document_path=document_path)
