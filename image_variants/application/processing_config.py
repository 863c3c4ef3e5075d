from __future__ import annotations

from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

from pydantic import ValidationError

from image_variants.core.exceptions import ConfigurationError
from image_variants.core.schemas import DPRConfig, DPRRatio, ImageFormat, ImageSize

SizeLike = Union[ImageSize, Mapping[str, Any], int]
FormatLike = Union[ImageFormat, Mapping[str, Any], str]
DPRLike = Union[DPRConfig, Mapping[str, Any], Iterable[DPRRatio]]

Combination = Tuple[ImageSize, ImageFormat, DPRRatio]

DEFAULT_SIZES: Tuple[int, ...] = (320, 640, 1024)
DEFAULT_FORMATS: Tuple[Dict[str, Any], ...] = (
    {"type": "webp", "quality": 80},
    {"type": "avif", "quality": 80},
)
DEFAULT_DPR_RATIOS: Tuple[int, ...] = (1, 2, 3)


class ProcessingConfig:
    """The three axes (sizes x formats x DPR ratios) of variant generation.

    Mutators change the instance in place and return ``self`` for chaining.
    Getters hand out copies, so callers can never reach internal state
    through an aliased list. Sizes and formats are frozen models, so a
    shallow list copy is enough for them.

    Example:
        config = (
            ProcessingConfig()
            .set_sizes([{"width": 64, "height": 64}])
            .set_formats(["webp", {"type": "jpeg", "quality": 95}])
            .set_dpr([1, 2])
        )
    """

    def __init__(
        self,
        sizes: Optional[Iterable[SizeLike]] = None,
        formats: Optional[Iterable[FormatLike]] = None,
        dpr: Optional[DPRLike] = None,
    ) -> None:
        self._sizes: List[ImageSize] = _coerce_sizes(
            DEFAULT_SIZES if sizes is None else sizes
        )
        self._formats: List[ImageFormat] = _coerce_formats(
            DEFAULT_FORMATS if formats is None else formats
        )
        self._dpr: DPRConfig = _coerce_dpr(DEFAULT_DPR_RATIOS if dpr is None else dpr)

    # ----- Getters (defensive copies) -----
    @property
    def sizes(self) -> List[ImageSize]:
        return list(self._sizes)

    @property
    def formats(self) -> List[ImageFormat]:
        return list(self._formats)

    @property
    def dpr(self) -> DPRConfig:
        return self._dpr.model_copy(deep=True)

    @property
    def format_types(self) -> List[str]:
        return [f.type for f in self._formats]

    # ----- Mutators -----
    def set_sizes(self, sizes: Iterable[SizeLike]) -> "ProcessingConfig":
        self._sizes = _coerce_sizes(sizes)
        return self

    def set_formats(self, formats: Iterable[FormatLike]) -> "ProcessingConfig":
        self._formats = _coerce_formats(formats)
        return self

    def set_dpr(self, dpr: DPRLike) -> "ProcessingConfig":
        self._dpr = _coerce_dpr(dpr)
        return self

    def add_size(self, size: SizeLike) -> "ProcessingConfig":
        self._sizes.append(_coerce_size(size))
        return self

    def add_format(self, fmt: FormatLike) -> "ProcessingConfig":
        self._formats.append(_coerce_format(fmt))
        return self

    def add_dpr_ratio(self, ratio: DPRRatio) -> "ProcessingConfig":
        if ratio not in self._dpr.ratios:
            self._dpr = _coerce_dpr([*self._dpr.ratios, ratio])
        return self

    def remove_size(self, width: int) -> "ProcessingConfig":
        self._sizes = [s for s in self._sizes if s.width != width]
        return self

    def remove_format(self, format_type: str) -> "ProcessingConfig":
        self._formats = [f for f in self._formats if f.type != format_type]
        return self

    def remove_dpr_ratio(self, ratio: DPRRatio) -> "ProcessingConfig":
        self._dpr = DPRConfig(ratios=[r for r in self._dpr.ratios if r != ratio])
        return self

    # ----- Combination space -----
    def combinations(self) -> Iterator[Combination]:
        """Yield (size, format, dpr) size-major, format-middle, dpr-minor."""
        ratios = list(self._dpr.ratios)
        for size in self._sizes:
            for fmt in self._formats:
                for ratio in ratios:
                    yield size, fmt, ratio

    @property
    def combination_count(self) -> int:
        return len(self._sizes) * len(self._formats) * len(self._dpr.ratios)

    def snapshot(self) -> "ProcessingConfig":
        """Return an independent copy for the duration of one call."""
        return ProcessingConfig(self._sizes, self._formats, self._dpr)

    # ----- Serialization -----
    def to_dict(self) -> Dict[str, Any]:
        return {
            "sizes": [s.model_dump(exclude_none=True) for s in self._sizes],
            "formats": [f.model_dump(exclude_none=True) for f in self._formats],
            "dpr": self._dpr.model_dump(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ProcessingConfig":
        """Build a config from a plain mapping; missing axes use the defaults."""
        if not isinstance(data, Mapping):
            raise ConfigurationError("Processing config must be a mapping")
        return cls(
            sizes=data.get("sizes"),
            formats=data.get("formats"),
            dpr=data.get("dpr"),
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ProcessingConfig):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return (
            f"ProcessingConfig(sizes={[s.width for s in self._sizes]}, "
            f"formats={self.format_types}, dpr={self._dpr.ratios})"
        )


def _coerce_size(value: SizeLike) -> ImageSize:
    if isinstance(value, ImageSize):
        return value
    try:
        if isinstance(value, int) and not isinstance(value, bool):
            return ImageSize(width=value)
        return ImageSize.model_validate(value)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid size {value!r}: {e}", "sizes") from e


def _coerce_format(value: FormatLike) -> ImageFormat:
    if isinstance(value, ImageFormat):
        return value
    try:
        if isinstance(value, str):
            return ImageFormat(type=value.lower())
        return ImageFormat.model_validate(value)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid format {value!r}: {e}", "formats") from e


def _coerce_dpr(value: DPRLike) -> DPRConfig:
    try:
        if isinstance(value, DPRConfig):
            return DPRConfig(ratios=list(value.ratios))
        if isinstance(value, Mapping):
            return DPRConfig.model_validate(
                {**value, "ratios": list(value.get("ratios", []))}
            )
        return DPRConfig(ratios=list(value))
    except (TypeError, ValidationError) as e:
        raise ConfigurationError(f"Invalid DPR ratios {value!r}: {e}", "dpr") from e


def _coerce_sizes(values: Iterable[SizeLike]) -> List[ImageSize]:
    return [_coerce_size(v) for v in values]


def _coerce_formats(values: Iterable[FormatLike]) -> List[ImageFormat]:
    return [_coerce_format(v) for v in values]
