"""Tests for attachment validation and the HTTP blob store."""

from datetime import datetime, timezone
from uuid import uuid4

import httpx
import pytest

from case_threads.core.config import get_settings
from case_threads.core.errors import (
    AttachmentTooLargeError,
    StoreUnavailableError,
    UnsupportedAttachmentError,
)
from case_threads.services import (
    AttachmentInput,
    HttpAttachmentStore,
    validate_attachment,
    validate_attachments,
)
from case_threads.services.attachments import build_object_path


class TestValidation:

    def test_allowed_types_pass(self):
        for mimetype in ("image/jpeg", "image/png", "image/webp", "image/heic", "application/pdf"):
            validate_attachment("file", mimetype, 100)

    def test_mimetype_check_is_case_insensitive(self):
        validate_attachment("photo.JPG", "IMAGE/JPEG", 100)

    def test_six_megabyte_jpeg_too_large(self):
        with pytest.raises(AttachmentTooLargeError):
            validate_attachment("photo.jpg", "image/jpeg", 6 * 1024 * 1024)

    def test_exactly_at_limit_allowed(self):
        validate_attachment("photo.jpg", "image/jpeg", get_settings().attachment_max_bytes)

    def test_too_large_is_also_unsupported(self):
        with pytest.raises(UnsupportedAttachmentError):
            validate_attachment("photo.jpg", "image/jpeg", 6 * 1024 * 1024)

    def test_disallowed_type(self):
        with pytest.raises(UnsupportedAttachmentError):
            validate_attachment("notes.txt", "text/plain", 10)

    def test_input_needs_url_or_content(self):
        with pytest.raises(UnsupportedAttachmentError):
            validate_attachments([AttachmentInput(filename="x.png", mimetype="image/png", size=1)])

    def test_content_length_wins_over_declared_size(self):
        attachment = AttachmentInput(
            filename="x.png",
            mimetype="image/png",
            size=1,
            content=b"\0" * (6 * 1024 * 1024),
        )

        with pytest.raises(AttachmentTooLargeError):
            validate_attachments([attachment])


class TestObjectPath:

    def test_path_layout(self):
        owner = uuid4()
        now = datetime(2026, 3, 2, tzinfo=timezone.utc)

        path = build_object_path(owner, "Fälla.PNG", now)

        folder, name = path.split("/")
        assert folder == str(owner)
        assert name.startswith(f"{int(now.timestamp() * 1000)}-")
        assert name.endswith(".png")

    def test_missing_extension(self):
        assert build_object_path(uuid4(), "README").endswith(".bin")


class TestHttpAttachmentStore:

    async def test_upload_posts_bytes_and_returns_public_url(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"Key": "ok"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            store = HttpAttachmentStore(client=client)
            stored = await store.upload(b"pixels", "trap.png", "image/png", uuid4())

        [request] = requests
        assert request.method == "POST"
        assert "/storage/v1/object/comment-attachments/" in str(request.url)
        assert request.headers["content-type"] == "image/png"
        assert request.content == b"pixels"
        assert "/storage/v1/object/public/comment-attachments/" in stored.url
        assert stored.size == 6

    async def test_http_failure_is_store_unavailable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            store = HttpAttachmentStore(client=client)
            with pytest.raises(StoreUnavailableError):
                await store.upload(b"pixels", "trap.png", "image/png", uuid4())

    async def test_upload_validates_first(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            store = HttpAttachmentStore(client=client)
            with pytest.raises(UnsupportedAttachmentError):
                await store.upload(b"#!", "run.sh", "text/x-shellscript", uuid4())
