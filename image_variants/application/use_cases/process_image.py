from __future__ import annotations

import asyncio
import logging
from typing import Callable, Iterable, List, Optional

from image_variants.application.interfaces import IImageTransformer, IStorageDriver
from image_variants.application.pipeline.base import PipelineContext
from image_variants.application.pipeline.variants.adapter_bundle import (
    VariantPipelineAdapters,
)
from image_variants.application.pipeline.variants.builder import build_variant_pipeline
from image_variants.application.pipeline.variants.steps.generate_variants import (
    VariantFailureHook,
)
from image_variants.application.processing_config import ProcessingConfig
from image_variants.core.config import settings
from image_variants.core.exceptions import (
    ImageProcessingError,
    ProcessingFailedError,
    StorageFailedError,
)
from image_variants.core.schemas import (
    BatchItemResult,
    ImageInspection,
    ImageUpload,
    ProcessingResult,
)

logger = logging.getLogger(__name__)


class ImagePipelineService:
    """Generates and stores every configured variant of an uploaded image.

    The service holds a default ProcessingConfig. ``update_config`` swaps it
    and is meant for sequential use; callers that need a per-call override
    while other calls are in flight should pass ``config=`` to
    ``process_image`` instead of swapping and restoring the shared one.
    """

    def __init__(
        self,
        transformer: IImageTransformer,
        storage: IStorageDriver,
        config: Optional[ProcessingConfig] = None,
        *,
        max_concurrency: Optional[int] = None,
        originals_base_path: Optional[str] = None,
        on_variant_failure: Optional[VariantFailureHook] = None,
        id_factory: Optional[Callable[[], str]] = None,
        enable_logging_middleware: bool = True,
    ) -> None:
        self._adapters = VariantPipelineAdapters(transformer=transformer, storage=storage)
        self._adapters.validate_required()
        self._config = (config if config is not None else ProcessingConfig()).snapshot()
        self._max_concurrency = max_concurrency
        self._originals_base_path = originals_base_path or settings.originals_base_path
        self._on_variant_failure = on_variant_failure
        self._id_factory = id_factory
        self._enable_logging_middleware = enable_logging_middleware

    @classmethod
    def from_adapters(
        cls, adapters: VariantPipelineAdapters, **kwargs
    ) -> "ImagePipelineService":
        return cls(adapters.transformer, adapters.storage, **kwargs)

    # ----- Configuration -----
    @property
    def config(self) -> ProcessingConfig:
        return self._config.snapshot()

    def update_config(self, config: ProcessingConfig) -> None:
        """Replace the default config used by later ``process_image`` calls."""
        self._config = config.snapshot()

    # ----- Core operation -----
    async def process_image(
        self,
        data: bytes,
        original_filename: str,
        mime_type: Optional[str] = None,
        max_bytes: Optional[int] = None,
        *,
        config: Optional[ProcessingConfig] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ProcessingResult:
        """
        Validate, store the original and generate every configured variant.

        Args:
            data: Raw upload bytes
            original_filename: Client filename; drives naming and extension checks
            mime_type: Declared MIME type, validated when given
            max_bytes: Upload size ceiling, validated when given
            config: Per-call config; defaults to the service config
            cancel_event: Cooperative cancellation. Set before the original is
                stored -> ProcessingFailedError("cancelled"); set later -> no new
                variants start and the settled ones are returned.

        Returns:
            ProcessingResult with every configured format as a key in
            ``generated`` (possibly an empty list).

        Raises:
            ValidationFailedError, UnsupportedFormatError: input rejected
            ProcessingFailedError: not an image, cancelled, or unexpected error
            StorageFailedError: the original could not be stored
        """
        snapshot = (config if config is not None else self._config).snapshot()
        context = PipelineContext(
            input={
                "data": data,
                "filename": original_filename,
                "mime_type": mime_type,
                "max_bytes": max_bytes,
                "config": snapshot,
                "cancel_event": cancel_event,
            }
        )
        pipeline = build_variant_pipeline(
            self._adapters,
            max_concurrency=self._max_concurrency,
            originals_base_path=self._originals_base_path,
            on_variant_failure=self._on_variant_failure,
            id_factory=self._id_factory,
            enable_logging_middleware=self._enable_logging_middleware,
        )

        logger.info(
            "Processing %s with %d variant combinations",
            original_filename,
            snapshot.combination_count,
        )
        try:
            outcome = await pipeline.execute(context)
        except ImageProcessingError:
            raise
        except Exception as e:  # noqa: BLE001
            raise ProcessingFailedError(
                f"Pipeline processing failed: {str(e) or type(e).__name__}", cause=e
            ) from e

        ctx = outcome.context
        return ProcessingResult(
            original=ctx.get("original_path"),
            generated=ctx.get("generated", {}),
            failures=ctx.get("variant_failures", []),
        )

    async def process_batch(
        self,
        uploads: Iterable[ImageUpload],
        *,
        config: Optional[ProcessingConfig] = None,
        max_concurrency: Optional[int] = None,
    ) -> List[BatchItemResult]:
        """Process several uploads; one failing file does not stop the others.

        Results keep the input order.
        """
        items = list(uploads)
        limit = max(1, int(max_concurrency or settings.batch_max_concurrency))
        semaphore = asyncio.Semaphore(limit)

        async def _one(upload: ImageUpload) -> BatchItemResult:
            async with semaphore:
                try:
                    result = await self.process_image(
                        upload.data,
                        upload.filename,
                        upload.mime_type,
                        upload.max_bytes,
                        config=config,
                    )
                except ImageProcessingError as e:
                    logger.error("Batch item %s failed: %s", upload.filename, e.message)
                    return BatchItemResult(
                        filename=upload.filename,
                        error=e.message,
                        error_code=e.error_code.value if e.error_code else None,
                    )
                return BatchItemResult(filename=upload.filename, result=result)

        results = await asyncio.gather(*(_one(u) for u in items))
        logger.info(
            "Batch finished: %d succeeded, %d failed",
            sum(1 for r in results if r.ok),
            sum(1 for r in results if not r.ok),
        )
        return list(results)

    async def inspect_image(self, data: bytes) -> ImageInspection:
        """Report whether the bytes decode and, if so, their metadata."""
        transformer = self._adapters.transformer
        if not data or not await transformer.is_decodable(data):
            return ImageInspection(is_valid=False, size_bytes=len(data or b""))
        metadata = await transformer.introspect(data)
        return ImageInspection(is_valid=True, size_bytes=len(data), metadata=metadata)

    # ----- Storage passthrough -----
    async def get_image(self, path: str) -> bytes:
        try:
            return await self._adapters.storage.download(path)
        except Exception as e:  # noqa: BLE001
            raise StorageFailedError(
                f"Failed to get image: {e}", cause=e, path=path
            ) from e

    async def delete_image(self, path: str) -> None:
        try:
            await self._adapters.storage.delete(path)
        except Exception as e:  # noqa: BLE001
            raise StorageFailedError(
                f"Failed to delete image: {e}", cause=e, path=path
            ) from e
        logger.info("Deleted %s", path)
