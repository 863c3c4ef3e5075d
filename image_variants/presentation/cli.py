#!/usr/bin/env python3
"""
Generate responsive image variants from the command line.

Usage:
  image-variants process photo.jpg [--profile gallery] [--storage-dir data/uploads]
  image-variants inspect photo.jpg

Prints the result as JSON on stdout; logs go to stderr.
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import mimetypes
import sys
from pathlib import Path
from typing import List, Optional

from image_variants.application.profiles import available_profiles, get_profile
from image_variants.application.use_cases.process_image import ImagePipelineService
from image_variants.core.config import settings
from image_variants.core.exceptions import ImageProcessingError
from image_variants.core.logging_config import configure_logging
from image_variants.infrastructure.adapters.bundles.variants import (
    get_variant_adapter_bundle,
)
from image_variants.utils.srcset import build_srcset

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="image-variants",
        description="Generate width x format x DPR variants of an image",
    )
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    sub = parser.add_subparsers(dest="command", required=True)

    process = sub.add_parser("process", help="Store an image and all its variants")
    process.add_argument("file", type=Path, help="Image file to process")
    process.add_argument(
        "--profile",
        default=settings.default_profile,
        choices=available_profiles(),
        help="Processing profile (sizes/formats/DPR preset)",
    )
    process.add_argument("--mime", default=None, help="Declared MIME type (guessed if omitted)")
    process.add_argument(
        "--max-bytes",
        type=int,
        default=settings.max_file_size,
        help="Reject inputs larger than this many bytes",
    )
    process.add_argument(
        "--storage",
        default=None,
        choices=["local", "s3", "memory"],
        help="Storage backend (default from settings)",
    )
    process.add_argument("--storage-dir", default=None, help="Base directory for local storage")
    process.add_argument(
        "--srcset", action="store_true", help="Also print a srcset string per format"
    )

    inspect = sub.add_parser("inspect", help="Print decoded image metadata")
    inspect.add_argument("file", type=Path, help="Image file to inspect")
    return parser


async def _process(args: argparse.Namespace) -> dict:
    adapters = get_variant_adapter_bundle(backend=args.storage, storage_dir=args.storage_dir)
    service = ImagePipelineService.from_adapters(adapters, config=get_profile(args.profile))
    mime_type = args.mime or mimetypes.guess_type(args.file.name)[0]
    result = await service.process_image(
        args.file.read_bytes(), args.file.name, mime_type, args.max_bytes
    )
    payload = result.model_dump()
    if result.failures:
        payload["failures"] = [f.model_dump() for f in result.failures]
    if args.srcset:
        payload["srcset"] = {
            fmt: build_srcset(paths) for fmt, paths in result.generated.items()
        }
    return payload


async def _inspect(args: argparse.Namespace) -> dict:
    adapters = get_variant_adapter_bundle(backend="memory")
    service = ImagePipelineService.from_adapters(adapters)
    inspection = await service.inspect_image(args.file.read_bytes())
    return inspection.model_dump()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    if not args.file.is_file():
        logger.error("File not found: %s", args.file)
        return 2

    handler = _process if args.command == "process" else _inspect
    try:
        payload = asyncio.run(handler(args))
    except ImageProcessingError as e:
        logger.error("%s: %s", type(e).__name__, e.message)
        print(json.dumps(e.to_dict(), indent=2))
        return 1

    print(json.dumps(payload, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
