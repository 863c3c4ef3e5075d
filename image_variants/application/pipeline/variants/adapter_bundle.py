from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from image_variants.application.interfaces import IImageTransformer, IStorageDriver


@dataclass(slots=True)
class VariantPipelineAdapters:
    """Container for the adapters used by the variant pipeline.

    Keeps builders free of long parameter lists and centralizes validation.
    """

    transformer: Optional[IImageTransformer] = None
    storage: Optional[IStorageDriver] = None

    def validate_required(
        self, required: Iterable[str] = ("transformer", "storage")
    ) -> None:
        missing = [name for name in required if getattr(self, name, None) is None]
        if missing:
            raise ValueError(f"Missing required adapters: {', '.join(missing)}")
