"""
Attachment validation and blob storage.

Validation always runs before anything is written: the size ceiling and
the mimetype allow-list come from settings (5 MB; JPEG, PNG, WebP, HEIC,
PDF by default).
"""

import logging
import secrets
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import PurePosixPath
from uuid import UUID

import httpx

from ..core.config import Settings, get_settings
from ..core.errors import (
    AttachmentTooLargeError,
    StoreUnavailableError,
    UnsupportedAttachmentError,
)
from ..models import utcnow

logger = logging.getLogger(__name__)


# =============================================================================
# DATA TRANSFER OBJECTS
# =============================================================================


@dataclass
class AttachmentInput:
    """Attachment supplied with a new comment.

    Either ``url`` (already uploaded) or ``content`` (bytes to upload)
    must be set.
    """
    filename: str
    mimetype: str
    size: int
    url: str | None = None
    content: bytes | None = None


@dataclass
class StoredAttachment:
    """Attachment reference persisted on a comment."""
    url: str
    filename: str
    mimetype: str
    size: int
    uploaded_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "filename": self.filename,
            "mimetype": self.mimetype,
            "size": self.size,
            "uploaded_at": self.uploaded_at.isoformat(),
        }


# =============================================================================
# VALIDATION
# =============================================================================


def validate_attachment(
    filename: str,
    mimetype: str,
    size: int,
    settings: Settings | None = None,
) -> None:
    """Raise if the attachment is too large or of a disallowed type."""
    settings = settings or get_settings()
    if size > settings.attachment_max_bytes:
        limit_mb = settings.attachment_max_bytes / (1024 * 1024)
        raise AttachmentTooLargeError(
            f"{filename} is {size} bytes; the limit is {limit_mb:g} MB"
        )
    if mimetype.lower() not in settings.attachment_allowed_mimetypes:
        raise UnsupportedAttachmentError(
            f"{filename} has unsupported type {mimetype}"
        )


def validate_attachments(attachments: list[AttachmentInput], settings: Settings | None = None) -> None:
    """Validate every attachment; the first failure wins."""
    for attachment in attachments:
        if attachment.url is None and attachment.content is None:
            raise UnsupportedAttachmentError(f"{attachment.filename} has no url or content")
        size = len(attachment.content) if attachment.content is not None else attachment.size
        validate_attachment(attachment.filename, attachment.mimetype, size, settings)


def build_object_path(owner_id: UUID, filename: str, now: datetime | None = None) -> str:
    """``{owner}/{epoch_ms}-{random}.{ext}`` object key for an upload."""
    now = now or utcnow()
    ext = PurePosixPath(filename).suffix.lstrip(".").lower() or "bin"
    return f"{owner_id}/{int(now.timestamp() * 1000)}-{secrets.token_hex(4)}.{ext}"


# =============================================================================
# STORES
# =============================================================================


class AttachmentStore(ABC):
    """Abstract blob store for comment attachments."""

    @abstractmethod
    async def upload(
        self,
        data: bytes,
        filename: str,
        mimetype: str,
        owner_id: UUID,
    ) -> StoredAttachment:
        """Store ``data`` and return a retrievable reference."""
        pass


class HttpAttachmentStore(AttachmentStore):
    """Object storage over HTTP (``/storage/v1/object/{bucket}/{path}``)."""

    def __init__(self, settings: Settings | None = None, client: httpx.AsyncClient | None = None):
        self._settings = settings or get_settings()
        self._client = client

    def public_url(self, path: str) -> str:
        base = self._settings.attachment_store_url.rstrip("/")
        return f"{base}/storage/v1/object/public/{self._settings.attachment_bucket}/{path}"

    async def upload(
        self,
        data: bytes,
        filename: str,
        mimetype: str,
        owner_id: UUID,
    ) -> StoredAttachment:
        validate_attachment(filename, mimetype, len(data), self._settings)

        path = build_object_path(owner_id, filename)
        base = self._settings.attachment_store_url.rstrip("/")
        url = f"{base}/storage/v1/object/{self._settings.attachment_bucket}/{path}"
        headers = {"Content-Type": mimetype, "x-upsert": "false"}
        if self._settings.attachment_store_token:
            headers["Authorization"] = f"Bearer {self._settings.attachment_store_token}"

        try:
            if self._client is not None:
                response = await self._client.post(url, content=data, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self._settings.store_timeout_seconds) as client:
                    response = await client.post(url, content=data, headers=headers)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error(f"Attachment upload failed for {filename}: {exc}")
            raise StoreUnavailableError(f"Attachment upload failed: {exc}") from exc

        logger.info(f"Uploaded attachment {path} ({len(data)} bytes)")
        return StoredAttachment(
            url=self.public_url(path),
            filename=filename,
            mimetype=mimetype,
            size=len(data),
        )
