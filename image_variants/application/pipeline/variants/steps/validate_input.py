from __future__ import annotations

import logging

from image_variants.application.pipeline.base import BaseStep, PipelineContext
from image_variants.utils.image_validator import check_all

logger = logging.getLogger(__name__)


class ValidateInputStep(BaseStep):
    """Reject uploads that fail the allow-list or size checks before any other work.

    Input:  data, filename, mime_type?, max_bytes?
    Output: validated_input
    """

    name = "validate_input"

    async def run(self, context: PipelineContext) -> None:  # type: ignore[override]
        data = context.input.get("data")
        filename = context.input.get("filename") or ""

        check_all(
            data,
            filename,
            mime_type=context.input.get("mime_type"),
            max_bytes=context.input.get("max_bytes"),
        )

        logger.debug("Validated upload %s (%d bytes)", filename, len(data))
        context.set("validated_input", True)
