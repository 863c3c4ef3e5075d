from .image_transformer import IImageTransformer
from .storage_driver import IStorageDriver
from .variant_adapters import IVariantPipelineAdapters

__all__ = [
    "IImageTransformer",
    "IStorageDriver",
    "IVariantPipelineAdapters",
]
