from __future__ import annotations

from typing import Dict, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PositiveFloat,
    PositiveInt,
    conint,
    field_validator,
)

from image_variants.core.config import settings

FormatType = Literal["webp", "avif", "jpeg", "png"]

DPRRatio = Union[PositiveInt, PositiveFloat]


class ImageSize(BaseModel):
    """Nominal (CSS pixel) target size; height omitted keeps the aspect ratio."""

    model_config = ConfigDict(frozen=True)

    width: PositiveInt
    height: Optional[PositiveInt] = None

    def scaled(self, ratio: float) -> "EffectiveSize":
        return EffectiveSize(
            width=_scale(self.width, ratio),
            height=_scale(self.height, ratio) if self.height else None,
        )


class EffectiveSize(BaseModel):
    """Physical pixel size requested from the transformer (nominal x DPR)."""

    model_config = ConfigDict(frozen=True)

    width: PositiveInt
    height: Optional[PositiveInt] = None


class ImageFormat(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: FormatType
    quality: Optional[conint(ge=1, le=100)] = None

    @property
    def effective_quality(self) -> int:
        return self.quality or settings.default_quality


class DPRConfig(BaseModel):
    ratios: List[DPRRatio] = Field(default_factory=list)

    @field_validator("ratios")
    @classmethod
    def drop_duplicates(cls, v: List[DPRRatio]) -> List[DPRRatio]:
        unique: List[DPRRatio] = []
        for ratio in v:
            if ratio not in unique:
                unique.append(ratio)
        return unique


class ProcessedImage(BaseModel):
    data: bytes
    format: FormatType
    width: int
    height: int


class ImageMetadata(BaseModel):
    format: Optional[str] = None
    width: int
    height: int
    has_alpha: bool = False
    color_space: Optional[str] = None
    icc_profile: bool = False
    exif: bool = False
    size_bytes: int = 0


class VariantFailure(BaseModel):
    """One absorbed (size, format, dpr) failure."""

    width: int
    height: Optional[int] = None
    format: str
    dpr: DPRRatio
    stage: Literal["transform", "storage"]
    error: str


class ProcessingResult(BaseModel):
    original: str
    generated: Dict[str, List[str]] = Field(default_factory=dict)
    # side channel for absorbed per-variant failures; not part of the wire shape
    failures: List[VariantFailure] = Field(default_factory=list, exclude=True)

    @property
    def variant_count(self) -> int:
        return sum(len(paths) for paths in self.generated.values())


class ImageInspection(BaseModel):
    is_valid: bool
    size_bytes: int
    metadata: Optional[ImageMetadata] = None


class ImageUpload(BaseModel):
    data: bytes
    filename: str
    mime_type: Optional[str] = None
    max_bytes: Optional[int] = None


class BatchItemResult(BaseModel):
    filename: str
    result: Optional[ProcessingResult] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.result is not None


def _scale(value: int, ratio: float) -> int:
    return max(1, int(round(value * ratio)))
