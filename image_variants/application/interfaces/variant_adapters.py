from __future__ import annotations

from typing import Protocol, runtime_checkable

from .image_transformer import IImageTransformer
from .storage_driver import IStorageDriver


@runtime_checkable
class IVariantPipelineAdapters(Protocol):
    transformer: IImageTransformer
    storage: IStorageDriver
