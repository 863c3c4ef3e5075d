"""
Shared fixtures for the image variant pipeline tests.
"""

import io
import logging
from pathlib import Path
from datetime import datetime
from typing import Callable, Iterable, Optional, Set, Tuple
from unittest.mock import AsyncMock

import pytest
from PIL import Image

from image_variants.core.schemas import EffectiveSize, ImageFormat, ProcessedImage
from image_variants.infrastructure.adapters.storage_memory import InMemoryStorageDriver

logger = logging.getLogger(__name__)


def setup_logging():
    """Configure logging for the whole test run."""
    log_dir = Path("test/test_output/logs")
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "test_run.log"

    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)-8s [%(name)s:%(lineno)d] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    file_handler = logging.FileHandler(filename=log_file, mode="a", encoding="utf-8")
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Avoid duplicate handlers between runs
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    logging.getLogger("PIL").setLevel(logging.WARNING)
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("image_variants").setLevel(logging.DEBUG)

    return log_file


def pytest_configure(config):  # pylint: disable=unused-argument
    log_file = setup_logging()
    logging.getLogger("pytest").info("Test run started, log file: %s", log_file)


@pytest.fixture(autouse=True)
def log_test_name(request):
    """Log test name when test starts and finishes."""
    test_logger = logging.getLogger(request.node.nodeid)
    test_logger.info("Starting test: %s", request.node.name)
    start_time = datetime.now()

    def log_test_end():
        duration = (datetime.now() - start_time).total_seconds()
        test_logger.info("Finished test after %.2fs", duration)

    request.addfinalizer(log_test_end)


# -------------------- Image helpers --------------------
def make_image_bytes(
    width: int = 64,
    height: int = 48,
    *,
    mode: str = "RGB",
    fmt: str = "PNG",
    color=(200, 30, 30),
) -> bytes:
    """Encode a solid-color image in memory."""
    if mode in ("RGBA", "LA") and isinstance(color, tuple) and len(color) == 3:
        color = (*color, 128)
    img = Image.new(mode, (width, height), color)
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def png_bytes() -> bytes:
    return make_image_bytes()


@pytest.fixture
def image_factory() -> Callable[..., bytes]:
    return make_image_bytes


# -------------------- Fake adapters --------------------
Failure = Tuple[int, str]  # (effective width, format type)


class FakeTransformer:
    """Records transform calls; fails for the given (effective width, format) pairs.

    ``transform`` / ``is_decodable`` / ``introspect`` are AsyncMocks so tests
    can assert on calls.
    """

    def __init__(self, fail_on: Optional[Iterable[Failure]] = None, decodable: bool = True):
        self.fail_on: Set[Failure] = set(fail_on or [])
        self.transform = AsyncMock(side_effect=self._transform)
        self.is_decodable = AsyncMock(return_value=decodable)
        self.introspect = AsyncMock()

    async def _transform(self, data: bytes, size: EffectiveSize, fmt: ImageFormat):
        if (size.width, fmt.type) in self.fail_on:
            raise RuntimeError(f"encoder failed at {size.width} {fmt.type}")
        return ProcessedImage(
            data=f"{fmt.type}:{size.width}".encode(),
            format=fmt.type,
            width=size.width,
            height=size.height or size.width,
        )


class RecordingStorage(InMemoryStorageDriver):
    """In-memory storage whose upload is an AsyncMock; fails for paths in ``fail_paths``."""

    def __init__(self, fail_paths: Optional[Callable[[str], bool]] = None):
        super().__init__()
        self.fail_paths = fail_paths or (lambda _path: False)
        self._store = super().upload
        self.upload = AsyncMock(side_effect=self._upload)

    async def _upload(self, path: str, data: bytes) -> str:
        if self.fail_paths(path):
            raise OSError(f"disk full writing {path}")
        return await self._store(path, data)


@pytest.fixture
def fake_transformer() -> FakeTransformer:
    return FakeTransformer()


@pytest.fixture
def fake_storage() -> RecordingStorage:
    return RecordingStorage()


@pytest.fixture
def transformer_factory():
    return FakeTransformer


@pytest.fixture
def storage_factory():
    return RecordingStorage
