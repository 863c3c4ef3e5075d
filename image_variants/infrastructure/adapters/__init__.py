from .image_transformer_pillow import PillowImageTransformer
from .storage_local import LocalStorageDriver
from .storage_memory import InMemoryStorageDriver
from .storage_s3 import S3StorageDriver

__all__ = [
    "PillowImageTransformer",
    "LocalStorageDriver",
    "InMemoryStorageDriver",
    "S3StorageDriver",
]
