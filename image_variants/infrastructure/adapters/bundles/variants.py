from __future__ import annotations

from typing import Optional

from image_variants.application.interfaces import IStorageDriver
from image_variants.application.pipeline.variants.adapter_bundle import (
    VariantPipelineAdapters,
)
from image_variants.core.config import settings
from image_variants.core.exceptions import ConfigurationError
from image_variants.infrastructure.adapters import (
    InMemoryStorageDriver,
    LocalStorageDriver,
    PillowImageTransformer,
    S3StorageDriver,
)


def get_storage_driver(
    backend: Optional[str] = None, *, storage_dir: Optional[str] = None
) -> IStorageDriver:
    """Build the storage adapter named by ``backend`` (default: settings)."""
    name = (backend or settings.storage_backend).strip().lower()
    if name == "local":
        return LocalStorageDriver(base_dir=storage_dir or settings.local_storage_dir)
    if name == "s3":
        return S3StorageDriver()
    if name == "memory":
        return InMemoryStorageDriver()
    raise ConfigurationError(
        f"Unknown storage backend '{name}'. Use one of: local, s3, memory",
        config_key="storage_backend",
    )


def get_variant_adapter_bundle(
    *, backend: Optional[str] = None, storage_dir: Optional[str] = None
) -> VariantPipelineAdapters:
    """Provide the concrete adapters for the variant pipeline."""
    return VariantPipelineAdapters(
        transformer=PillowImageTransformer(),
        storage=get_storage_driver(backend, storage_dir=storage_dir),
    )
