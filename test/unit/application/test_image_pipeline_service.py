"""
Behavior of ImagePipelineService.process_image and friends against fake adapters.
"""

import asyncio
import logging
from unittest.mock import Mock

import pytest

from image_variants.application.processing_config import ProcessingConfig
from image_variants.application.use_cases.process_image import ImagePipelineService
from image_variants.core.config import settings
from image_variants.core.exceptions import (
    ProcessingFailedError,
    StorageFailedError,
    UnsupportedFormatError,
    ValidationFailedError,
)
from image_variants.core.schemas import ImageMetadata, ImageUpload, VariantFailure

ORIGINAL = "/uploads/originals/orig-id.jpg"


def _expected(base, widths, fmt, ratios):
    return [f"{base}_{w}w@{r}x.{fmt}" for w in widths for r in ratios]


@pytest.fixture
def two_by_two_config():
    return ProcessingConfig(sizes=[320, 640], formats=["webp", "avif"], dpr=[1, 2, 3])


@pytest.fixture
def make_service(fake_transformer, fake_storage):
    def _make(transformer=None, storage=None, config=None, **kwargs):
        kwargs.setdefault("id_factory", lambda: "orig-id")
        return ImagePipelineService(
            fake_transformer if transformer is None else transformer,
            fake_storage if storage is None else storage,
            config,
            **kwargs,
        )

    return _make


class TestCombinations:
    @pytest.mark.asyncio
    async def test_every_combination_generated_in_order(
        self, make_service, two_by_two_config, fake_storage
    ):
        service = make_service(config=two_by_two_config)

        result = await service.process_image(b"img", "pic.jpg", "image/jpeg")

        assert result.original == ORIGINAL
        assert list(result.generated) == ["webp", "avif"]
        assert result.generated["webp"] == _expected("pic", [320, 640], "webp", [1, 2, 3])
        assert result.generated["avif"] == _expected("pic", [320, 640], "avif", [1, 2, 3])
        assert result.failures == []
        assert result.variant_count == 12
        # original + 12 variants
        assert len(fake_storage) == 13
        assert ORIGINAL in fake_storage

    @pytest.mark.asyncio
    async def test_defaults_produce_eighteen_variants(self, make_service):
        result = await make_service().process_image(b"img", "pic.png")
        assert len(result.generated["webp"]) == 9
        assert len(result.generated["avif"]) == 9

    @pytest.mark.asyncio
    async def test_transformer_receives_effective_size_name_keeps_nominal(
        self, make_service, fake_transformer
    ):
        config = ProcessingConfig(sizes=[{"width": 320, "height": 200}], formats=["webp"], dpr=[1, 2, 1.5])

        result = await make_service(config=config).process_image(b"img", "pic.jpg")

        requested = [
            (call.args[1].width, call.args[1].height) for call in fake_transformer.transform.call_args_list
        ]
        assert sorted(requested) == [(320, 200), (480, 300), (640, 400)]
        assert result.generated["webp"] == [
            "pic_320w@1x.webp",
            "pic_320w@2x.webp",
            "pic_320w@1.5x.webp",
        ]

    @pytest.mark.asyncio
    async def test_duplicate_dpr_ratios_do_not_duplicate_variants(self, make_service, fake_transformer):
        config = ProcessingConfig(sizes=[320], formats=["webp"], dpr=[1, 2, 2, 1])

        result = await make_service(config=config).process_image(b"img", "pic.jpg")

        assert result.generated["webp"] == ["pic_320w@1x.webp", "pic_320w@2x.webp"]
        assert fake_transformer.transform.await_count == 2

    @pytest.mark.asyncio
    async def test_empty_sizes_yield_empty_lists(self, make_service, fake_transformer):
        config = ProcessingConfig(sizes=[], formats=["webp", "png"])

        result = await make_service(config=config).process_image(b"img", "pic.jpg")

        assert result.original == ORIGINAL
        assert result.generated == {"webp": [], "png": []}
        fake_transformer.transform.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_formats_yield_empty_mapping(self, make_service):
        result = await make_service(config=ProcessingConfig(formats=[])).process_image(b"img", "pic.jpg")
        assert result.generated == {}

    @pytest.mark.asyncio
    async def test_concurrency_limit_is_respected(self, make_service, fake_transformer):
        active = 0
        peak = 0
        inner = fake_transformer.transform.side_effect

        async def _tracking(data, size, fmt):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.005)
            active -= 1
            return await inner(data, size, fmt)

        fake_transformer.transform.side_effect = _tracking
        await make_service(max_concurrency=2).process_image(b"img", "pic.jpg")

        assert peak == 2


class TestPartialFailure:
    @pytest.mark.asyncio
    async def test_single_transform_failure_is_isolated(
        self, make_service, transformer_factory, two_by_two_config, caplog
    ):
        caplog.set_level(logging.WARNING)
        # (640, avif, 2) -> 1280 effective pixels
        transformer = transformer_factory(fail_on=[(1280, "avif")])

        result = await make_service(transformer=transformer, config=two_by_two_config).process_image(
            b"img", "pic.jpg"
        )

        assert result.generated["webp"] == _expected("pic", [320, 640], "webp", [1, 2, 3])
        assert len(result.generated["avif"]) == 5
        assert "pic_640w@2x.avif" not in result.generated["avif"]
        assert result.generated["avif"] == [
            p for p in _expected("pic", [320, 640], "avif", [1, 2, 3]) if p != "pic_640w@2x.avif"
        ]
        assert len(result.failures) == 1
        failure = result.failures[0]
        assert (failure.width, failure.format, failure.dpr, failure.stage) == (640, "avif", 2, "transform")
        assert "Failed to generate variant width=640 format=avif dpr=2 at transform stage" in caplog.text

    @pytest.mark.asyncio
    async def test_variant_storage_failure_is_isolated(self, make_service, storage_factory):
        storage = storage_factory(fail_paths=lambda p: p.endswith("_320w@3x.webp"))
        config = ProcessingConfig(sizes=[320], formats=["webp"], dpr=[1, 2, 3])

        result = await make_service(storage=storage, config=config).process_image(b"img", "pic.jpg")

        assert result.generated["webp"] == ["pic_320w@1x.webp", "pic_320w@2x.webp"]
        assert result.failures[0].stage == "storage"
        assert "disk full" in result.failures[0].error

    @pytest.mark.asyncio
    async def test_every_variant_failing_still_returns(self, make_service, transformer_factory):
        transformer = transformer_factory(fail_on=[(w, "webp") for w in (320, 640, 960)])
        config = ProcessingConfig(sizes=[320], formats=["webp"])

        result = await make_service(transformer=transformer, config=config).process_image(b"img", "pic.jpg")

        assert result.original == ORIGINAL
        assert result.generated == {"webp": []}
        assert len(result.failures) == 3

    @pytest.mark.asyncio
    async def test_failure_hook_called_and_its_errors_ignored(self, make_service, transformer_factory):
        transformer = transformer_factory(fail_on=[(640, "webp")])
        hook = Mock(side_effect=RuntimeError("hook broke"))
        config = ProcessingConfig(sizes=[320], formats=["webp"], dpr=[1, 2])

        result = await make_service(
            transformer=transformer, config=config, on_variant_failure=hook
        ).process_image(b"img", "pic.jpg")

        assert result.generated["webp"] == ["pic_320w@1x.webp"]
        hook.assert_called_once()
        assert isinstance(hook.call_args.args[0], VariantFailure)


class TestFatalErrors:
    @pytest.mark.asyncio
    async def test_empty_input_rejected_before_any_adapter_call(
        self, make_service, fake_transformer, fake_storage
    ):
        with pytest.raises(ValidationFailedError):
            await make_service().process_image(b"", "x.jpg")

        fake_transformer.is_decodable.assert_not_called()
        fake_transformer.transform.assert_not_called()
        fake_storage.upload.assert_not_called()

    @pytest.mark.asyncio
    async def test_validation_errors_propagate_unwrapped(self, make_service, fake_storage):
        with pytest.raises(UnsupportedFormatError):
            await make_service().process_image(b"img", "report.pdf")
        with pytest.raises(UnsupportedFormatError):
            await make_service().process_image(b"img", "pic.jpg", "application/pdf")
        with pytest.raises(ValidationFailedError):
            await make_service().process_image(b"imgdata", "pic.jpg", max_bytes=3)
        fake_storage.upload.assert_not_called()

    @pytest.mark.asyncio
    async def test_undecodable_bytes_rejected(self, make_service, transformer_factory, fake_storage):
        transformer = transformer_factory(decodable=False)
        with pytest.raises(ProcessingFailedError, match="invalid image"):
            await make_service(transformer=transformer).process_image(b"not an image", "pic.jpg")
        fake_storage.upload.assert_not_called()

    @pytest.mark.asyncio
    async def test_original_storage_failure_is_fatal(
        self, make_service, storage_factory, fake_transformer
    ):
        storage = storage_factory(fail_paths=lambda p: p.startswith("/uploads/originals/"))

        with pytest.raises(StorageFailedError) as exc:
            await make_service(storage=storage).process_image(b"img", "pic.jpg")

        assert exc.value.path == ORIGINAL
        assert isinstance(exc.value.cause, OSError)
        fake_transformer.transform.assert_not_called()
        assert storage.upload.await_count == 1

    @pytest.mark.asyncio
    async def test_original_upload_retry_reuses_target(self, monkeypatch, make_service, storage_factory):
        monkeypatch.setattr(settings, "original_upload_retries", 2)
        monkeypatch.setattr(settings, "original_upload_retry_backoff", 0.0)
        monkeypatch.setattr(settings, "original_upload_jitter", 0.0)
        attempts = []

        def _fail_first(path):
            if path.startswith("/uploads/originals/"):
                attempts.append(path)
                return len(attempts) == 1
            return False

        ids = iter(["first", "second", "third"])
        storage = storage_factory(fail_paths=_fail_first)
        service = make_service(
            storage=storage,
            config=ProcessingConfig(sizes=[320], formats=["webp"], dpr=[1]),
            id_factory=lambda: next(ids),
        )

        result = await service.process_image(b"img", "pic.jpg")

        assert attempts == ["/uploads/originals/first.jpg"] * 2
        assert result.original == "/uploads/originals/first.jpg"

    @pytest.mark.asyncio
    async def test_slow_original_upload_times_out_as_storage_error(
        self, monkeypatch, make_service, fake_storage, fake_transformer
    ):
        monkeypatch.setattr(settings, "original_upload_timeout", 0.01)
        store = fake_storage.upload.side_effect

        async def _slow_original(path, data):
            if path.startswith("/uploads/originals/"):
                await asyncio.sleep(0.5)
            return await store(path, data)

        fake_storage.upload.side_effect = _slow_original

        with pytest.raises(StorageFailedError, match="timed out") as exc:
            await make_service().process_image(b"img", "pic.jpg")

        assert exc.value.path == ORIGINAL
        assert isinstance(exc.value.cause, asyncio.TimeoutError)
        fake_transformer.transform.assert_not_called()

    @pytest.mark.asyncio
    async def test_original_upload_timeout_is_retried(self, monkeypatch, make_service, fake_storage):
        monkeypatch.setattr(settings, "original_upload_timeout", 0.05)
        monkeypatch.setattr(settings, "original_upload_retries", 1)
        monkeypatch.setattr(settings, "original_upload_retry_backoff", 0.0)
        monkeypatch.setattr(settings, "original_upload_jitter", 0.0)
        store = fake_storage.upload.side_effect
        original_attempts = []

        async def _slow_first(path, data):
            if path.startswith("/uploads/originals/"):
                original_attempts.append(path)
                if len(original_attempts) == 1:
                    await asyncio.sleep(0.5)
            return await store(path, data)

        fake_storage.upload.side_effect = _slow_first
        config = ProcessingConfig(sizes=[320], formats=["webp"], dpr=[1])

        result = await make_service(config=config).process_image(b"img", "pic.jpg")

        assert original_attempts == [ORIGINAL, ORIGINAL]
        assert result.original == ORIGINAL
        assert result.generated == {"webp": ["pic_320w@1x.webp"]}

    @pytest.mark.asyncio
    async def test_unexpected_error_wrapped_as_processing_failed(self, make_service, fake_transformer):
        fake_transformer.is_decodable.side_effect = RuntimeError("decoder crashed")
        with pytest.raises(ProcessingFailedError, match="Pipeline processing failed: decoder crashed"):
            await make_service().process_image(b"img", "pic.jpg")

    def test_missing_adapter_rejected(self, fake_storage):
        with pytest.raises(ValueError, match="transformer"):
            ImagePipelineService(None, fake_storage)


class TestConfigIsolation:
    @pytest.mark.asyncio
    async def test_per_call_config_does_not_replace_default(self, make_service):
        service = make_service()
        override = ProcessingConfig(sizes=[100], formats=["png"], dpr=[1])

        result = await service.process_image(b"img", "pic.jpg", config=override)

        assert result.generated == {"png": ["pic_100w@1x.png"]}
        assert service.config == ProcessingConfig()

    @pytest.mark.asyncio
    async def test_update_config_stores_a_copy(self, make_service):
        service = make_service()
        config = ProcessingConfig(sizes=[100], formats=["webp"], dpr=[1])
        service.update_config(config)
        config.add_size(200).add_format("png")

        result = await service.process_image(b"img", "pic.jpg")

        assert result.generated == {"webp": ["pic_100w@1x.webp"]}

    def test_config_getter_returns_copy(self, make_service):
        service = make_service()
        service.config.set_sizes([1])
        assert [s.width for s in service.config.sizes] == [320, 640, 1024]

    @pytest.mark.asyncio
    async def test_concurrent_calls_keep_their_own_config(self, make_service):
        service = make_service(id_factory=None)
        a = ProcessingConfig(sizes=[100], formats=["webp"], dpr=[1])
        b = ProcessingConfig(sizes=[200], formats=["png"], dpr=[1, 2])

        ra, rb = await asyncio.gather(
            service.process_image(b"img", "a.jpg", config=a),
            service.process_image(b"img", "b.jpg", config=b),
        )

        assert ra.generated == {"webp": ["a_100w@1x.webp"]}
        assert rb.generated == {"png": ["b_200w@1x.png", "b_200w@2x.png"]}
        assert ra.original != rb.original


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_before_start(self, make_service, fake_storage):
        event = asyncio.Event()
        event.set()

        with pytest.raises(ProcessingFailedError, match="cancelled"):
            await make_service().process_image(b"img", "pic.jpg", cancel_event=event)

        fake_storage.upload.assert_not_called()

    @pytest.mark.asyncio
    async def test_cancel_during_original_upload_fails_the_call(
        self, make_service, fake_storage, fake_transformer
    ):
        event = asyncio.Event()
        store = fake_storage.upload.side_effect

        async def _cancel_while_storing(path, data):
            if path.startswith("/uploads/originals/"):
                event.set()
            return await store(path, data)

        fake_storage.upload.side_effect = _cancel_while_storing

        with pytest.raises(ProcessingFailedError, match="cancelled"):
            await make_service().process_image(b"img", "pic.jpg", cancel_event=event)

        fake_transformer.transform.assert_not_called()

    @pytest.mark.asyncio
    async def test_cancel_mid_run_stops_new_variants(self, make_service, fake_transformer):
        event = asyncio.Event()
        inner = fake_transformer.transform.side_effect

        async def _cancel_on_first(data, size, fmt):
            event.set()
            return await inner(data, size, fmt)

        fake_transformer.transform.side_effect = _cancel_on_first
        config = ProcessingConfig(sizes=[320, 640], formats=["webp"], dpr=[1, 2])

        result = await make_service(config=config, max_concurrency=1).process_image(
            b"img", "pic.jpg", cancel_event=event
        )

        assert result.generated == {"webp": ["pic_320w@1x.webp"]}
        assert fake_transformer.transform.await_count == 1
        assert result.failures == []

    @pytest.mark.asyncio
    async def test_task_cancellation_propagates(self, make_service, fake_transformer):
        started = asyncio.Event()

        async def _hang(data, size, fmt):
            started.set()
            await asyncio.sleep(10)

        fake_transformer.transform.side_effect = _hang
        task = asyncio.create_task(make_service().process_image(b"img", "pic.jpg"))
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task


class TestBatchAndStorage:
    @pytest.mark.asyncio
    async def test_batch_keeps_order_and_isolates_failures(self, make_service):
        service = make_service(
            config=ProcessingConfig(sizes=[320], formats=["webp"], dpr=[1]), id_factory=None
        )
        uploads = [
            ImageUpload(data=b"img", filename="one.jpg"),
            ImageUpload(data=b"", filename="empty.jpg"),
            ImageUpload(data=b"img", filename="doc.pdf"),
            ImageUpload(data=b"img", filename="two.png", mime_type="image/png"),
        ]

        results = await service.process_batch(uploads, max_concurrency=2)

        assert [r.filename for r in results] == ["one.jpg", "empty.jpg", "doc.pdf", "two.png"]
        assert [r.ok for r in results] == [True, False, False, True]
        assert results[0].result.generated == {"webp": ["one_320w@1x.webp"]}
        assert results[1].error_code == "VALIDATION_ERROR"
        assert results[2].error_code == "UNSUPPORTED_FORMAT"
        assert results[2].error == "Unsupported image format: .pdf"

    @pytest.mark.asyncio
    async def test_get_and_delete_image(self, make_service, fake_storage):
        service = make_service(config=ProcessingConfig(sizes=[], formats=[]))
        result = await service.process_image(b"raw-bytes", "pic.jpg")

        assert await service.get_image(result.original) == b"raw-bytes"
        await service.delete_image(result.original)
        assert result.original not in fake_storage

    @pytest.mark.asyncio
    async def test_original_is_the_derived_path_not_the_confirmed_location(
        self, make_service, fake_storage
    ):
        store = fake_storage.upload.side_effect

        async def _cdn_location(path, data):
            await store(path, data)
            return "https://cdn.example/" + path.lstrip("/")

        fake_storage.upload.side_effect = _cdn_location
        config = ProcessingConfig(sizes=[320], formats=["webp"], dpr=[1])
        service = make_service(config=config)

        result = await service.process_image(b"raw-bytes", "pic.jpg")

        assert result.original == ORIGINAL
        assert result.generated == {"webp": ["https://cdn.example/pic_320w@1x.webp"]}
        assert await service.get_image(result.original) == b"raw-bytes"
        await service.delete_image(result.original)
        assert ORIGINAL not in fake_storage

    @pytest.mark.asyncio
    async def test_get_missing_image_raises_storage_error(self, make_service):
        with pytest.raises(StorageFailedError, match="Failed to get image") as exc:
            await make_service().get_image("/nope.jpg")
        assert exc.value.path == "/nope.jpg"
        assert isinstance(exc.value.cause, FileNotFoundError)

    @pytest.mark.asyncio
    async def test_delete_missing_image_raises_storage_error(self, make_service):
        with pytest.raises(StorageFailedError, match="Failed to delete image"):
            await make_service().delete_image("/nope.jpg")


class TestInspect:
    @pytest.mark.asyncio
    async def test_inspect_valid_image(self, make_service, fake_transformer):
        metadata = ImageMetadata(format="png", width=10, height=5, size_bytes=3)
        fake_transformer.introspect.return_value = metadata

        inspection = await make_service().inspect_image(b"img")

        assert inspection.is_valid is True
        assert inspection.size_bytes == 3
        assert inspection.metadata == metadata

    @pytest.mark.asyncio
    async def test_inspect_invalid_image(self, make_service, transformer_factory):
        transformer = transformer_factory(decodable=False)

        inspection = await make_service(transformer=transformer).inspect_image(b"junk")

        assert inspection.is_valid is False
        assert inspection.metadata is None
        transformer.introspect.assert_not_called()
