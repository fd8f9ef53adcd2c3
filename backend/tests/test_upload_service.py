"""
Memory Lane Backend — Upload Validation Unit Tests
====================================================

What:  Tests for UploadService (extension, MIME type, agreement, size).
How:   Pure validation on in-memory bytes; read_upload() is fed a
       starlette UploadFile wrapping a BytesIO.

Test Strategy:
    ✅ Allowed extensions (.jpg .jpeg .png .gif .webp), case-insensitive
    ✅ Rejected extensions (.bmp .pdf .exe, none)
    ✅ Declared MIME must be an image type and agree with the extension
    ✅ Size limit at the boundary, empty files rejected
    ✅ read_upload() treats an empty file part as "no image"
"""

import io

import pytest
from starlette.datastructures import Headers, UploadFile

from memorylane.exceptions import ValidationError
from memorylane.services.upload_service import UploadService


def make_upload(filename, content, content_type="image/jpeg"):
    return UploadFile(
        file=io.BytesIO(content),
        size=len(content),
        filename=filename,
        headers=Headers({"content-type": content_type}),
    )


class TestExtensionValidation:
    """Tests for the extension allow-list."""

    def setup_method(self):
        self.service = UploadService(max_file_size=5 * 1024 * 1024)

    @pytest.mark.parametrize(
        "filename",
        ["photo.jpg", "photo.jpeg", "photo.png", "photo.gif", "photo.webp"],
    )
    def test_allowed_extensions(self, filename):
        assert self.service.validate_extension(filename).startswith(".")

    def test_extension_is_case_insensitive(self):
        assert self.service.validate_extension("photo.JPG") == ".jpg"
        assert self.service.validate_extension("photo.Jpeg") == ".jpeg"
        assert self.service.validate_extension("photo.WEBP") == ".webp"

    @pytest.mark.parametrize("filename", ["scan.bmp", "document.pdf", "malware.exe", "noextension"])
    def test_rejected_extensions(self, filename):
        with pytest.raises(ValidationError, match="not supported"):
            self.service.validate_extension(filename)


class TestMimeValidation:
    """Tests for the declared content type."""

    def setup_method(self):
        self.service = UploadService()

    def test_image_jpg_alias_is_canonicalized(self):
        assert self.service.validate_mime_type("image/jpg", ".jpg") == "image/jpeg"

    def test_parameters_are_ignored(self):
        assert self.service.validate_mime_type("image/png; charset=binary", ".png") == "image/png"

    def test_non_image_type_rejected(self):
        with pytest.raises(ValidationError, match="not supported"):
            self.service.validate_mime_type("application/pdf", ".png")

    def test_missing_type_rejected(self):
        with pytest.raises(ValidationError, match="not supported"):
            self.service.validate_mime_type(None, ".png")

    def test_extension_and_type_must_agree(self):
        """photo.png declared as image/jpeg is rejected."""
        with pytest.raises(ValidationError, match="does not match") as exc_info:
            self.service.validate_mime_type("image/jpeg", ".png")
        assert exc_info.value.field == "image"


class TestSizeValidation:
    """Tests for the size limit."""

    def setup_method(self):
        self.service = UploadService(max_file_size=2048)

    def test_within_limit(self):
        self.service.validate_size(1000, 1000)

    def test_exactly_at_limit(self):
        self.service.validate_size(2048, 2048)

    def test_one_byte_over_limit(self):
        with pytest.raises(ValidationError, match="too large"):
            self.service.validate_size(None, 2049)

    def test_reported_length_over_limit(self):
        """A Content-Length over the limit is rejected before counting bytes."""
        with pytest.raises(ValidationError, match="too large"):
            self.service.validate_size(10_000, 10)

    def test_empty_file(self):
        with pytest.raises(ValidationError, match="empty"):
            self.service.validate_size(0, 0)


class TestValidatePipeline:
    def setup_method(self):
        self.service = UploadService(max_file_size=2048)

    def test_valid_image(self, sample_image_bytes):
        image = self.service.validate("beach.jpg", "image/jpeg", sample_image_bytes)
        assert image.mime_type == "image/jpeg"
        assert image.filename == "beach.jpg"
        assert image.size == len(sample_image_bytes)

    def test_extension_checked_before_size(self):
        """An oversized .pdf reports the type problem, not the size."""
        with pytest.raises(ValidationError, match="not supported"):
            self.service.validate("big.pdf", "application/pdf", b"x" * 10_000)

    @pytest.mark.asyncio
    async def test_read_upload_accepts_valid_file(self, sample_png_bytes):
        image = await self.service.read_upload(make_upload("sunset.png", sample_png_bytes, "image/png"))
        assert image is not None
        assert image.data == sample_png_bytes
        assert image.mime_type == "image/png"

    @pytest.mark.asyncio
    async def test_read_upload_none(self):
        assert await self.service.read_upload(None) is None

    @pytest.mark.asyncio
    async def test_read_upload_empty_part_is_no_image(self):
        """Browsers submit an empty, unnamed part for an untouched file input."""
        upload = make_upload("", b"", "application/octet-stream")
        assert await self.service.read_upload(upload) is None

    @pytest.mark.asyncio
    async def test_read_upload_oversized(self):
        upload = make_upload("huge.jpg", b"x" * 4096)
        with pytest.raises(ValidationError, match="too large"):
            await self.service.read_upload(upload)
