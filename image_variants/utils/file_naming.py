"""
File naming utilities for original uploads and generated variants.
"""

import uuid
from typing import Callable, Optional, Union

DEFAULT_ORIGINALS_BASE_PATH = "/uploads/originals"


def get_file_extension(filename: str) -> str:
    """Return the final ``.suffix`` of a filename (dot included, case kept).

    Returns an empty string when the name has no dot.
    """
    last_dot = filename.rfind(".")
    if last_dot == -1:
        return ""
    return filename[last_dot:]


def get_base_name(filename: str) -> str:
    """Return the filename with its final ``.suffix`` stripped."""
    last_dot = filename.rfind(".")
    if last_dot == -1:
        return filename
    return filename[:last_dot]


def format_dpr(ratio: Union[int, float]) -> str:
    """Render a DPR ratio for a filename: ``2`` / ``2.0`` -> ``"2"``, ``1.5`` -> ``"1.5"``."""
    if float(ratio).is_integer():
        return str(int(ratio))
    return repr(float(ratio))


def derive_variant_name(
    original_name: str,
    width: int,
    format_type: str,
    dpr: Union[int, float] = 1,
) -> str:
    """
    Build the storage name of a generated variant.

    Args:
        original_name: Uploaded filename, e.g. ``"pic.jpg"``
        width: Nominal (pre-DPR) width in CSS pixels
        format_type: Output format, e.g. ``"webp"``
        dpr: Device pixel ratio encoded as the ``@Nx`` suffix

    Returns:
        ``"<basename>_<width>w@<dpr>x.<format_type>"``

    Example:
        >>> derive_variant_name("pic.jpg", 320, "webp", 2)
        'pic_320w@2x.webp'
    """
    base_name = get_base_name(original_name)
    return f"{base_name}_{width}w@{format_dpr(dpr)}x.{format_type}"


def derive_original_identifier(
    original_name: str, *, id_factory: Optional[Callable[[], str]] = None
) -> str:
    """Return a fresh unique identifier carrying the original extension."""
    token = id_factory() if id_factory else str(uuid.uuid4())
    return f"{token}{get_file_extension(original_name)}"


def derive_original_path(
    original_name: str,
    base_path: str = DEFAULT_ORIGINALS_BASE_PATH,
    *,
    id_factory: Optional[Callable[[], str]] = None,
) -> str:
    identifier = derive_original_identifier(original_name, id_factory=id_factory)
    return f"{base_path}/{identifier}"
