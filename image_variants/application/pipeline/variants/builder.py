from __future__ import annotations

from typing import Callable, Optional

from image_variants.application.interfaces import IVariantPipelineAdapters
from image_variants.application.pipeline.base import Pipeline, make_logging_middleware
from image_variants.application.pipeline.factory import PipelineFactory
from image_variants.application.pipeline.variants.steps.generate_variants import (
    GenerateVariantsStep,
    VariantFailureHook,
)
from image_variants.application.pipeline.variants.steps.upload_original import (
    UploadOriginalStep,
)
from image_variants.application.pipeline.variants.steps.validate_input import (
    ValidateInputStep,
)
from image_variants.application.pipeline.variants.steps.verify_image import (
    VerifyImageStep,
)


def build_variant_pipeline(
    adapters: IVariantPipelineAdapters,
    *,
    max_concurrency: Optional[int] = None,
    originals_base_path: Optional[str] = None,
    on_variant_failure: Optional[VariantFailureHook] = None,
    id_factory: Optional[Callable[[], str]] = None,
    enable_logging_middleware: bool = True,
) -> Pipeline:
    """validate_input -> verify_image -> upload_original -> generate_variants.

    The pipeline stops at the first failing step; its exception reaches the caller
    unchanged. Per-variant failures never fail generate_variants itself.
    """
    middlewares = [make_logging_middleware()] if enable_logging_middleware else []
    factory = PipelineFactory(middlewares=middlewares)
    factory.add(ValidateInputStep())
    factory.add(VerifyImageStep(adapters.transformer))
    factory.add(
        UploadOriginalStep(
            adapters.storage, base_path=originals_base_path, id_factory=id_factory
        )
    )
    factory.add(
        GenerateVariantsStep(
            adapters.transformer,
            adapters.storage,
            max_concurrency=max_concurrency,
            on_variant_failure=on_variant_failure,
        )
    )
    return factory.build()
