"""
Memory Lane Backend — Image Upload Validation
==============================================

What:  Validates the optional image attached to a create/update request and
       buffers it in memory.
How:   Extension check, declared MIME check, extension/MIME agreement, then
       size check. Nothing is written to disk here; where the bytes end up is
       the image store's decision.
Who:   Called by the memory write routes before any database access.

Validation order:
    1. Extension  (.jpeg .jpg .png .gif .webp, case-insensitive)
    2. MIME type  (image/jpeg image/jpg image/png image/gif image/webp)
    3. Agreement  (photo.png declared as image/jpeg is rejected)
    4. Size       (Content-Length when known, then the actual byte count)
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from fastapi import UploadFile

from memorylane.config import DEFAULT_MAX_FILE_SIZE
from memorylane.exceptions import ValidationError

logger = logging.getLogger(__name__)

# Form field that carries the file on POST/PUT /api/memories
IMAGE_FIELD = "image"

# ── Allowed File Types ────────────────────────────────────────────────────
# Extension → canonical MIME type
EXTENSION_MIME_TYPES = {
    ".jpeg": "image/jpeg",
    ".jpg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
}

# Declared MIME → canonical MIME type (image/jpg is a common non-standard alias)
ALLOWED_MIME_TYPES = {
    "image/jpeg": "image/jpeg",
    "image/jpg": "image/jpeg",
    "image/png": "image/png",
    "image/gif": "image/gif",
    "image/webp": "image/webp",
}

ALLOWED_EXTENSIONS = set(EXTENSION_MIME_TYPES)


@dataclass(frozen=True)
class ImageUpload:
    """A validated image held in memory."""

    data: bytes
    mime_type: str
    filename: str

    @property
    def size(self) -> int:
        return len(self.data)


class UploadService:
    """Validates at most one image per write request."""

    def __init__(self, max_file_size: int = DEFAULT_MAX_FILE_SIZE):
        self.max_file_size = max_file_size

    def validate_extension(self, filename: str) -> str:
        """
        Returns: Normalized extension (lowercase with dot).
        Raises:  ValidationError if extension is not allowed.
        """
        ext = Path(filename).suffix.lower()
        if ext not in ALLOWED_EXTENSIONS:
            raise ValidationError(
                message=(
                    f"File type '{ext or filename}' is not supported. "
                    f"Allowed types: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
                ),
                field=IMAGE_FIELD,
                context={"extension": ext, "allowed": sorted(ALLOWED_EXTENSIONS)},
            )
        return ext

    def validate_mime_type(self, content_type: Optional[str], extension: str) -> str:
        """
        Check the declared MIME type and that it agrees with the extension.

        Returns: Canonical MIME type (image/jpg is reported as image/jpeg).
        """
        declared = (content_type or "").split(";")[0].strip().lower()
        canonical = ALLOWED_MIME_TYPES.get(declared)
        if canonical is None:
            raise ValidationError(
                message=(
                    f"Content type '{declared or 'unknown'}' is not supported. "
                    f"The file must be a JPEG, PNG, GIF or WebP image."
                ),
                field=IMAGE_FIELD,
                context={"content_type": declared, "allowed": sorted(ALLOWED_MIME_TYPES)},
            )

        expected = EXTENSION_MIME_TYPES[extension]
        if canonical != expected:
            raise ValidationError(
                message=(
                    f"File extension '{extension}' does not match content type '{declared}'."
                ),
                field=IMAGE_FIELD,
                context={"extension": extension, "content_type": declared},
            )
        return canonical

    def validate_size(self, content_length: Optional[int], actual_size: int) -> None:
        """
        Reject empty files and files above max_file_size.

        content_length comes from the part headers and may be missing or
        wrong, so the actual byte count is always checked as well.
        """
        max_mb = self.max_file_size / (1024 * 1024)

        if content_length and content_length > self.max_file_size:
            raise ValidationError(
                message=f"File is too large. Maximum size is {max_mb:.0f}MB.",
                field=IMAGE_FIELD,
                context={"max_size": self.max_file_size, "reported_size": content_length},
            )

        if actual_size > self.max_file_size:
            raise ValidationError(
                message=(
                    f"File is too large ({actual_size / (1024 * 1024):.1f}MB). "
                    f"Maximum size is {max_mb:.0f}MB."
                ),
                field=IMAGE_FIELD,
                context={"max_size": self.max_file_size, "actual_size": actual_size},
            )

        if actual_size == 0:
            raise ValidationError(
                message="Uploaded file is empty.",
                field=IMAGE_FIELD,
            )

    def validate(
        self,
        filename: str,
        content_type: Optional[str],
        content: bytes,
        content_length: Optional[int] = None,
    ) -> ImageUpload:
        """
        Complete validation pipeline for already-read bytes.

        Cheap header checks run first so a bad upload is rejected before its
        size is even considered.
        """
        ext = self.validate_extension(filename)
        mime_type = self.validate_mime_type(content_type, ext)
        self.validate_size(content_length, len(content))
        return ImageUpload(data=content, mime_type=mime_type, filename=filename)

    async def read_upload(self, upload: Optional[UploadFile]) -> Optional[ImageUpload]:
        """
        Read and validate an UploadFile from a multipart form.

        Returns None when no file was sent, including the empty part browsers
        submit for an untouched <input type="file">.
        """
        if upload is None:
            return None

        try:
            # Read one byte past the limit so oversized uploads are detected
            # without buffering the whole body.
            content = await upload.read(self.max_file_size + 1)
        finally:
            await upload.close()

        if not upload.filename and not content:
            return None

        image = self.validate(
            filename=upload.filename or "",
            content_type=upload.content_type,
            content=content,
            content_length=upload.size,
        )
        logger.info(
            "Image upload accepted: filename=%s, type=%s, size=%d bytes",
            image.filename,
            image.mime_type,
            image.size,
        )
        return image
