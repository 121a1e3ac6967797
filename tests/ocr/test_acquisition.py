"""Staged text acquisition."""
from unittest.mock import AsyncMock, MagicMock

import pytest

from trip_import.ocr import HostedOcrResult, TextAcquisitionLayer
from trip_import.shared import OcrFailedError
from tests.fakes import FakeAdapter, make_gateway

IMAGE = b"\x89PNG fake image bytes"
GOOD_TEXT = "Boarding pass\nLATAM LA3405\nGRU -> EZE\nDeparture 2026-03-10 14:00"


def _ocr_client(result=None):
    client = MagicMock()
    client.parse = AsyncMock(return_value=result or HostedOcrResult(error="OCR.space HTTP 500"))
    return client


@pytest.mark.asyncio
class TestTextAcquisitionLayer:
    async def test_native_text_short_circuits(self):
        ocr = _ocr_client()
        layer = TextAcquisitionLayer(make_gateway(), ocr_client=ocr)

        result = await layer.acquire(b"LATAM\nVoo LA3405 GRU-EZE\nData 2026-03-10", "ticket.txt")

        assert result.method == "native_text"
        assert result.warnings == []
        assert result.quality_metrics is not None
        ocr.parse.assert_not_called()

    async def test_sparse_text_file_is_returned_with_warning(self):
        layer = TextAcquisitionLayer(make_gateway(), ocr_client=_ocr_client())

        result = await layer.acquire(b"hello", "note.txt")

        assert result.text == "hello"
        assert result.warnings == ["native_text: text below density threshold"]

    async def test_unsupported_binary_raises(self):
        layer = TextAcquisitionLayer(make_gateway(), ocr_client=_ocr_client())

        with pytest.raises(OcrFailedError) as exc_info:
            await layer.acquire(b"\x00\x01", "archive.zip", "application/zip")

        assert any("unsupported file type" in w for w in exc_info.value.warnings)

    async def test_hosted_ocr_used_for_small_images(self):
        ocr = _ocr_client(HostedOcrResult(text=GOOD_TEXT, elapsed_ms=40))
        layer = TextAcquisitionLayer(make_gateway(), ocr_client=ocr)

        result = await layer.acquire(IMAGE, "photo.png")

        assert result.method == "ocr_space"
        assert result.text == GOOD_TEXT
        ocr.parse.assert_awaited_once()

    async def test_oversized_file_skips_hosted_ocr(self):
        ocr = _ocr_client(HostedOcrResult(text=GOOD_TEXT))
        gateway = make_gateway(openrouter=FakeAdapter("openrouter", reply=GOOD_TEXT))
        layer = TextAcquisitionLayer(gateway, ocr_client=ocr, max_hosted_bytes=10)

        result = await layer.acquire(IMAGE, "photo.png")

        ocr.parse.assert_not_called()
        assert result.method == "vision_openrouter"
        assert "ocr_space skipped: file exceeds 10 bytes" in result.warnings

    async def test_best_vision_candidate_wins(self):
        gateway = make_gateway(
            openrouter=FakeAdapter("openrouter", reply="blurry"),
            gemini=FakeAdapter("gemini", reply=GOOD_TEXT),
        )
        layer = TextAcquisitionLayer(gateway, ocr_client=_ocr_client())

        result = await layer.acquire(IMAGE, "photo.png")

        assert result.method == "vision_gemini"
        assert result.text == GOOD_TEXT
        assert "OCR.space HTTP 500" in result.warnings

    async def test_vision_tie_prefers_openrouter(self):
        gateway = make_gateway(
            openrouter=FakeAdapter("openrouter", reply=GOOD_TEXT),
            gemini=FakeAdapter("gemini", reply=GOOD_TEXT),
        )
        layer = TextAcquisitionLayer(gateway, ocr_client=_ocr_client())

        result = await layer.acquire(IMAGE, "photo.png")

        assert result.method == "vision_openrouter"

    async def test_openai_is_last_resort(self):
        gateway = make_gateway(
            gemini=FakeAdapter("gemini", error=RuntimeError("quota")),
            openai=FakeAdapter("openai", reply=GOOD_TEXT),
        )
        layer = TextAcquisitionLayer(gateway, ocr_client=_ocr_client())

        result = await layer.acquire(IMAGE, "photo.png")

        assert result.method == "openai_vision"
        assert any("quota" in w for w in result.warnings)

    async def test_every_stage_failing_raises_with_warnings(self):
        layer = TextAcquisitionLayer(make_gateway(), ocr_client=_ocr_client())

        with pytest.raises(OcrFailedError) as exc_info:
            await layer.acquire(IMAGE, "photo.png")

        warnings = exc_info.value.warnings
        assert "OCR.space HTTP 500" in warnings
        assert "Openai API key not configured" in warnings

    async def test_to_dict_uses_camel_quality_key(self):
        layer = TextAcquisitionLayer(make_gateway(), ocr_client=_ocr_client())

        data = (await layer.acquire(b"Voo LA3405 GRU-EZE 2026-03-10", "t.txt")).to_dict()

        assert set(data) == {"text", "method", "warnings", "qualityMetrics"}
