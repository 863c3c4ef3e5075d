from __future__ import annotations

from image_variants.application.interfaces import IImageTransformer
from image_variants.application.pipeline.base import BaseStep, PipelineContext
from image_variants.core.exceptions import ProcessingFailedError


class VerifyImageStep(BaseStep):
    """Decode check: extension and MIME type can lie about the content."""

    name = "verify_image"
    required_keys = ["validated_input"]

    def __init__(self, transformer: IImageTransformer):
        self.transformer = transformer

    async def run(self, context: PipelineContext) -> None:  # type: ignore[override]
        if not await self.transformer.is_decodable(context.input["data"]):
            raise ProcessingFailedError("invalid image")
        context.set("image_verified", True)
