from __future__ import annotations

from typing import Protocol

from image_variants.core.schemas import (
    EffectiveSize,
    ImageFormat,
    ImageMetadata,
    ProcessedImage,
)


class IImageTransformer(Protocol):
    """Decodes, resizes and re-encodes images.

    Implementations may use Pillow, libvips, a remote service, etc. The
    application layer should not depend on any concrete codec.
    """

    async def transform(
        self, data: bytes, size: EffectiveSize, fmt: ImageFormat
    ) -> ProcessedImage:
        """Fit the image inside ``size`` (never upscaling) and encode it as ``fmt``.

        Raises ProcessingFailedError wrapping the underlying codec error.
        """
        ...

    async def introspect(self, data: bytes) -> ImageMetadata:
        """Return decoded metadata; raises ProcessingFailedError if undecodable."""
        ...

    async def is_decodable(self, data: bytes) -> bool:
        """Cheap check that the bytes decode as an image. Never raises."""
        ...
