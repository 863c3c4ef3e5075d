from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from image_variants.application.interfaces import IStorageDriver
from image_variants.application.pipeline.base import BaseStep, PipelineContext
from image_variants.core.config import settings
from image_variants.core.exceptions import ProcessingFailedError, StorageFailedError
from image_variants.utils.file_naming import derive_original_path

logger = logging.getLogger(__name__)


class UploadOriginalStep(BaseStep):
    """Store the unmodified upload; every derived variant depends on it.

    ``original_path`` is the derived storage path, not whatever the driver
    confirms (an S3 driver may answer with a public URL). Cancellation seen
    before the upload has completed fails the step.

    Input:  data, filename, cancel_event?
    Output: original_path, original_location
    """

    name = "upload_original"
    required_keys = ["image_verified"]

    def __init__(
        self,
        storage: IStorageDriver,
        *,
        base_path: Optional[str] = None,
        id_factory: Optional[Callable[[], str]] = None,
        upload_timeout: Optional[float] = None,
    ):
        self.storage = storage
        self.base_path = base_path or settings.originals_base_path
        self.id_factory = id_factory
        # Per attempt; a timeout is raised as StorageFailedError
        self.upload_timeout = (
            upload_timeout if upload_timeout is not None else settings.original_upload_timeout
        )
        self.retry_exceptions = {
            StorageFailedError: {
                "retries": settings.original_upload_retries,
                "retry_backoff": settings.original_upload_retry_backoff,
                "max_backoff": settings.original_upload_max_backoff,
                "jitter": settings.original_upload_jitter,
            }
        }

    async def run(self, context: PipelineContext) -> None:  # type: ignore[override]
        if context.is_cancelled():
            raise ProcessingFailedError("cancelled")

        filename = context.input["filename"]
        # Keep the same target across retries
        target = context.get("original_target")
        if not target:
            target = derive_original_path(
                filename, self.base_path, id_factory=self.id_factory
            )
            context.set("original_target", target)

        upload = self.storage.upload(target, context.input["data"])
        try:
            if self.upload_timeout:
                location = await asyncio.wait_for(upload, timeout=self.upload_timeout)
            else:
                location = await upload
        except asyncio.TimeoutError as e:
            raise StorageFailedError(
                f"Failed to upload file {target}: timed out after {self.upload_timeout}s",
                cause=e,
                path=target,
            ) from e
        except Exception as e:  # noqa: BLE001
            raise StorageFailedError(
                f"Failed to upload file {target}: {e}", cause=e, path=target
            ) from e

        if context.is_cancelled():
            logger.warning("Cancelled while storing original %s at %s", filename, target)
            raise ProcessingFailedError("cancelled")

        logger.info("Original %s stored at %s", filename, location)
        context.update(original_path=target, original_location=location)
