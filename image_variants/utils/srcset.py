"""
Helpers for consuming generated variant paths as HTML ``srcset`` values.
"""

import re
from typing import Iterable, List, NamedTuple, Optional

_VARIANT_RE = re.compile(r"_(?P<width>\d+)w@(?P<dpr>\d+(?:\.\d+)?)x\.(?P<format>[A-Za-z0-9]+)$")


class VariantInfo(NamedTuple):
    width: int
    dpr: float
    format: str

    @property
    def pixel_width(self) -> int:
        return int(round(self.width * self.dpr))


def parse_variant_name(path: str) -> Optional[VariantInfo]:
    """Extract (nominal width, dpr, format) from a variant path, or None."""
    match = _VARIANT_RE.search(path)
    if not match:
        return None
    return VariantInfo(
        width=int(match.group("width")),
        dpr=float(match.group("dpr")),
        format=match.group("format").lower(),
    )


def build_srcset(paths: Iterable[str]) -> str:
    """
    Render ``"<path> <pixels>w"`` candidates, ordered by pixel width.

    Paths that do not look like generated variants are skipped. When two
    variants resolve to the same pixel width, the first one wins.

    Example:
        >>> build_srcset(["a_320w@1x.webp", "a_320w@2x.webp"])
        'a_320w@1x.webp 320w, a_320w@2x.webp 640w'
    """
    seen = set()
    entries: List[tuple[int, str]] = []
    for path in paths:
        info = parse_variant_name(path)
        if info is None or info.pixel_width in seen:
            continue
        seen.add(info.pixel_width)
        entries.append((info.pixel_width, path))
    entries.sort(key=lambda item: item[0])
    return ", ".join(f"{path} {pixels}w" for pixels, path in entries)
