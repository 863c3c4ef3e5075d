"""
Input validation for uploaded images.

These checks run before any decoding or storage work and only look at the
raw bytes, the filename and the declared MIME type.
"""

from typing import Optional

from image_variants.core.exceptions import (
    UnsupportedFormatError,
    ValidationFailedError,
)

SUPPORTED_EXTENSIONS = frozenset(
    {"jpg", "jpeg", "png", "webp", "avif", "gif", "bmp", "tiff", "svg"}
)

SUPPORTED_MIME_TYPES = frozenset(
    {
        "image/jpeg",
        "image/jpg",
        "image/png",
        "image/webp",
        "image/avif",
        "image/gif",
        "image/bmp",
        "image/tiff",
        "image/svg+xml",
    }
)


def _extension_of(filename: str) -> str:
    last_dot = filename.rfind(".")
    if last_dot == -1:
        return ""
    return filename[last_dot + 1 :]


def check_extension(filename: str) -> None:
    """Raise UnsupportedFormatError unless the filename suffix is allowed."""
    extension = _extension_of(filename)
    if extension.lower() not in SUPPORTED_EXTENSIONS:
        raise UnsupportedFormatError(f".{extension}" if extension else filename)


def check_mime_type(mime_type: str) -> None:
    """Raise UnsupportedFormatError unless the MIME type is allowed."""
    if mime_type.lower() not in SUPPORTED_MIME_TYPES:
        raise UnsupportedFormatError(mime_type)


def check_size(data: bytes, max_bytes: int) -> None:
    if len(data) > max_bytes:
        raise ValidationFailedError(
            f"File size exceeds maximum allowed size of {max_bytes} bytes"
        )


def check_all(
    data: Optional[bytes],
    filename: str,
    mime_type: Optional[str] = None,
    max_bytes: Optional[int] = None,
) -> None:
    """
    Run every input check in order and raise on the first failure.

    Args:
        data: Raw upload bytes; empty or None is rejected
        filename: Original filename, checked for an allowed extension
        mime_type: Declared MIME type, checked only when given
        max_bytes: Size ceiling, checked only when given

    Raises:
        ValidationFailedError: Empty input or size ceiling exceeded
        UnsupportedFormatError: Extension or MIME type not allowed
    """
    if not data:
        raise ValidationFailedError("File buffer is empty")

    check_extension(filename)

    if mime_type:
        check_mime_type(mime_type)

    if max_bytes is not None:
        check_size(data, max_bytes)
