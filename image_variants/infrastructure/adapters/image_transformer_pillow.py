from __future__ import annotations

import asyncio
import io
import logging
from typing import Any, Dict, Optional

from PIL import Image, ImageOps

from image_variants.application.interfaces.image_transformer import IImageTransformer
from image_variants.core.exceptions import ProcessingFailedError
from image_variants.core.schemas import (
    EffectiveSize,
    ImageFormat,
    ImageMetadata,
    ProcessedImage,
)

logger = logging.getLogger(__name__)

# output format type -> Pillow encoder name
_PIL_FORMATS = {
    "webp": "WEBP",
    "avif": "AVIF",
    "jpeg": "JPEG",
    "png": "PNG",
}

_ALPHA_MODES = {"RGBA", "LA", "PA", "RGBa", "La"}

_SVG_SNIFF_BYTES = 1024


def is_svg(data: bytes) -> bool:
    head = data[:_SVG_SNIFF_BYTES].lstrip().lower()
    if head.startswith(b"\xef\xbb\xbf"):
        head = head[3:].lstrip()
    return head.startswith(b"<svg") or (
        head.startswith((b"<?xml", b"<!doctype svg", b"<!--")) and b"<svg" in head
    )


def _rasterize_svg(data: bytes, width: Optional[int] = None) -> bytes:
    """Render SVG to PNG bytes, at ``width`` pixels wide when given (aspect kept)."""
    import cairosvg  # loads libcairo on import

    return cairosvg.svg2png(bytestring=data, output_width=width)


def _open(data: bytes, width: Optional[int] = None) -> Image.Image:
    """Open raster bytes with Pillow; SVG is rasterized first."""
    if is_svg(data):
        return Image.open(io.BytesIO(_rasterize_svg(data, width)))
    return Image.open(io.BytesIO(data))


def _has_alpha(img: Image.Image) -> bool:
    return img.mode in _ALPHA_MODES or "transparency" in img.info


def _prepare_mode(img: Image.Image, format_type: str) -> Image.Image:
    """Convert to a pixel mode the target encoder accepts."""
    if format_type == "jpeg":
        if img.mode in ("RGB", "L"):
            return img
        if _has_alpha(img):
            # JPEG has no alpha: flatten onto white
            rgba = img.convert("RGBA")
            background = Image.new("RGB", rgba.size, (255, 255, 255))
            background.paste(rgba, mask=rgba.getchannel("A"))
            return background
        return img.convert("RGB")

    if img.mode in ("RGB", "RGBA", "L", "LA") or (format_type == "png" and img.mode == "P"):
        return img
    return img.convert("RGBA" if _has_alpha(img) else "RGB")


def _save_kwargs(fmt: ImageFormat) -> Dict[str, Any]:
    quality = fmt.effective_quality
    if fmt.type == "png":
        # PNG is lossless; map quality onto zlib effort (higher quality -> less effort)
        return {"compress_level": max(0, min(9, round((100 - quality) * 9 / 100)))}
    if fmt.type == "jpeg":
        return {"quality": quality, "optimize": True, "progressive": True}
    return {"quality": quality}


class PillowImageTransformer(IImageTransformer):
    """Resize/encode images with Pillow.

    Resize policy is fit-inside: aspect ratio preserved, no cropping and no
    upscaling beyond the source resolution. EXIF orientation is applied
    before resizing. SVG input is rasterized with cairosvg first, at the
    requested width for transforms. Decoding and encoding run in a worker
    thread.
    """

    async def transform(
        self, data: bytes, size: EffectiveSize, fmt: ImageFormat
    ) -> ProcessedImage:
        def _run() -> ProcessedImage:
            pil_format = _PIL_FORMATS.get(fmt.type)
            if pil_format is None:
                raise ProcessingFailedError(f"Unsupported output format: {fmt.type}")

            with _open(data, size.width) as src:
                img = ImageOps.exif_transpose(src)
                bound_h = size.height or img.height
                img.thumbnail((size.width, bound_h), resample=Image.LANCZOS)
                img = _prepare_mode(img, fmt.type)

                buf = io.BytesIO()
                img.save(buf, format=pil_format, **_save_kwargs(fmt))
                return ProcessedImage(
                    data=buf.getvalue(),
                    format=fmt.type,
                    width=img.width,
                    height=img.height,
                )

        try:
            return await asyncio.to_thread(_run)
        except ProcessingFailedError:
            raise
        except Exception as e:  # noqa: BLE001
            raise ProcessingFailedError(
                f"Failed to process image: {e}", cause=e
            ) from e

    async def introspect(self, data: bytes) -> ImageMetadata:
        def _run() -> ImageMetadata:
            with _open(data) as img:
                exif = img.getexif()
                return ImageMetadata(
                    format="svg" if is_svg(data) else (img.format or "").lower() or None,
                    width=img.width,
                    height=img.height,
                    has_alpha=_has_alpha(img),
                    color_space=img.mode,
                    icc_profile=bool(img.info.get("icc_profile")),
                    exif=bool(exif) or bool(img.info.get("exif")),
                    size_bytes=len(data),
                )

        try:
            return await asyncio.to_thread(_run)
        except Exception as e:  # noqa: BLE001
            raise ProcessingFailedError(
                f"Failed to get image metadata: {e}", cause=e
            ) from e

    async def is_decodable(self, data: bytes) -> bool:
        def _run() -> bool:
            try:
                with _open(data) as img:
                    img.verify()
                return True
            except Exception as e:  # noqa: BLE001
                logger.debug("Bytes are not a decodable image: %s", e)
                return False

        if not data:
            return False
        return await asyncio.to_thread(_run)
