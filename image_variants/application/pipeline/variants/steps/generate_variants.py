from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, List, Optional, Union

from image_variants.application.interfaces import IImageTransformer, IStorageDriver
from image_variants.application.pipeline.base import BaseStep, PipelineContext
from image_variants.application.processing_config import ProcessingConfig
from image_variants.core.config import settings
from image_variants.core.schemas import (
    DPRRatio,
    ImageFormat,
    ImageSize,
    VariantFailure,
)
from image_variants.utils.file_naming import derive_variant_name

logger = logging.getLogger(__name__)

VariantFailureHook = Callable[[VariantFailure], None]
Outcome = Union[str, VariantFailure, None]  # None = not started (cancelled)


class GenerateVariantsStep(BaseStep):
    """Produce and store every (size, format, dpr) combination.

    Each combination is an independent task: a failed transform or upload
    is logged, recorded as a VariantFailure and left out of ``generated``;
    it never cancels its siblings. The mapping is assembled only after
    every task has settled, in size-major / dpr-minor order.

    Input:  data, filename, config, cancel_event?
    Output: generated, variant_failures, variants_skipped
    """

    name = "generate_variants"
    required_keys = ["original_path"]

    def __init__(
        self,
        transformer: IImageTransformer,
        storage: IStorageDriver,
        *,
        max_concurrency: Optional[int] = None,
        on_variant_failure: Optional[VariantFailureHook] = None,
    ):
        self.transformer = transformer
        self.storage = storage
        self.max_concurrency = max(
            1, int(max_concurrency or settings.variant_max_concurrency)
        )
        self.on_variant_failure = on_variant_failure

    async def run(self, context: PipelineContext) -> None:  # type: ignore[override]
        config: ProcessingConfig = context.input["config"]
        data: bytes = context.input["data"]
        filename: str = context.input["filename"]

        generated: Dict[str, List[str]] = {t: [] for t in config.format_types}
        combinations = list(config.combinations())
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _with_limit(size: ImageSize, fmt: ImageFormat, ratio: DPRRatio):
            async with semaphore:
                if context.is_cancelled():
                    return None
                return await self._generate_one(data, filename, size, fmt, ratio)

        outcomes: List[Outcome] = await asyncio.gather(
            *(_with_limit(size, fmt, ratio) for size, fmt, ratio in combinations)
        )

        failures: List[VariantFailure] = []
        skipped = 0
        for (_, fmt, _), outcome in zip(combinations, outcomes):
            if outcome is None:
                skipped += 1
            elif isinstance(outcome, VariantFailure):
                failures.append(outcome)
                self._notify(outcome)
            else:
                generated[fmt.type].append(outcome)

        if skipped:
            logger.warning(
                "Cancelled: %d of %d variants were not started for %s",
                skipped,
                len(combinations),
                filename,
            )
        logger.info(
            "Variant summary for %s: %d stored, %d failed, %d skipped",
            filename,
            len(combinations) - len(failures) - skipped,
            len(failures),
            skipped,
        )

        context.update(
            generated=generated,
            variant_failures=failures,
            variants_skipped=skipped,
        )

    async def _generate_one(
        self,
        data: bytes,
        filename: str,
        size: ImageSize,
        fmt: ImageFormat,
        ratio: DPRRatio,
    ) -> Union[str, VariantFailure]:
        # Effective pixels = nominal x dpr; the name keeps the nominal width
        effective = size.scaled(ratio)
        stage = "transform"
        try:
            processed = await self.transformer.transform(data, effective, fmt)
            stage = "storage"
            variant_name = derive_variant_name(filename, size.width, fmt.type, ratio)
            return await self.storage.upload(variant_name, processed.data)
        except Exception as e:  # noqa: BLE001
            logger.warning(
                "Failed to generate variant width=%s format=%s dpr=%s at %s stage: %s",
                size.width,
                fmt.type,
                ratio,
                stage,
                e,
            )
            return VariantFailure(
                width=size.width,
                height=size.height,
                format=fmt.type,
                dpr=ratio,
                stage=stage,
                error=str(e) or type(e).__name__,
            )

    def _notify(self, failure: VariantFailure) -> None:
        if self.on_variant_failure is None:
            return
        try:
            self.on_variant_failure(failure)
        except Exception:  # noqa: BLE001
            logger.exception("Variant failure hook raised for %s", failure)
