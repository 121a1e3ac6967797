"""ProviderGateway: every failure is a value, never an exception."""
import pytest

from trip_import.inference import CallOptions, ProviderCallResult, build_provider_meta, extract_json_object
from tests.fakes import FakeAdapter, make_gateway


class TestExtractJsonObject:
    def test_plain_object(self):
        assert extract_json_object('{"a": 1}') == {"a": 1}

    def test_object_wrapped_in_prose_and_fences(self):
        text = 'Here you go:\n```json\n{"metadata": {"type": "Flight"}}\n```\nThanks'
        assert extract_json_object(text) == {"metadata": {"type": "Flight"}}

    @pytest.mark.parametrize("text", [None, "", "no braces", "} reversed {", "{broken json}", "[1, 2]"])
    def test_unparseable_returns_none(self, text):
        assert extract_json_object(text) is None


@pytest.mark.asyncio
class TestProviderGatewayCall:
    async def test_success_parses_json(self):
        gateway = make_gateway(openrouter=FakeAdapter("openrouter", reply={"ok": True}))

        result = await gateway.call("openrouter", "prompt", "payload")

        assert result.ok is True
        assert result.parsed == {"ok": True}
        assert result.error is None
        assert result.elapsed_ms >= 0

    async def test_missing_key_is_not_configured(self):
        adapter = FakeAdapter("gemini", reply={"ok": True}, key=None)
        gateway = make_gateway(gemini=adapter)

        result = await gateway.call("gemini", "prompt", "payload")

        assert result.ok is False
        assert result.elapsed_ms == 0
        assert result.error == "Gemini API key not configured"
        assert adapter.calls == []

    async def test_timeout_becomes_result(self):
        gateway = make_gateway(openrouter=FakeAdapter("openrouter", reply={"ok": True}, delay=0.5))

        result = await gateway.call("openrouter", "p", "x", CallOptions(timeout_ms=50))

        assert result.ok is False
        assert result.error == "openrouter timeout 50ms"
        assert result.elapsed_ms < 500

    async def test_exception_becomes_result(self):
        gateway = make_gateway(gemini=FakeAdapter("gemini", error=ConnectionError("boom")))

        result = await gateway.call("gemini", "p", "x")

        assert result.ok is False
        assert result.error == "Gemini ConnectionError: boom"

    async def test_empty_response(self):
        gateway = make_gateway(openrouter=FakeAdapter("openrouter", reply="   "))

        result = await gateway.call("openrouter", "p", "x")

        assert result.ok is False
        assert result.error == "Openrouter empty response"

    async def test_non_json_text_is_ok_without_parsed(self):
        gateway = make_gateway(openrouter=FakeAdapter("openrouter", reply="just words"))

        result = await gateway.call("openrouter", "p", "x")

        assert result.ok is True
        assert result.raw_text == "just words"
        assert result.parsed is None

    async def test_vision_keeps_raw_text(self):
        gateway = make_gateway(openai=FakeAdapter("openai", reply="GRU -> EZE"))

        result = await gateway.call_vision("openai", "read", "aGVsbG8=", "image/png")

        assert result.ok is True
        assert result.raw_text == "GRU -> EZE"
        assert result.parsed is None

    async def test_usage_metadata_is_kept(self):
        usage = {"input_tokens": 10, "output_tokens": 5, "total_tokens": 15,
                 "output_token_details": {"reasoning": 3}}
        gateway = make_gateway(openrouter=FakeAdapter("openrouter", reply="{}", usage=usage))

        result = await gateway.call("openrouter", "p", "x")

        assert result.usage["total_tokens"] == 15
        assert result.reasoning_tokens == 3


class TestProviderCallResult:
    def test_with_parsed_none_marks_failure(self):
        result = ProviderCallResult(provider="gemini", ok=True, elapsed_ms=10, raw_text="x")

        failed = result.with_parsed(None)

        assert failed.ok is False
        assert failed.error == "gemini invalid_json"
        assert result.ok is True

    def test_with_parsed_value(self):
        result = ProviderCallResult(provider="gemini", ok=True, elapsed_ms=10, raw_text="{}")
        assert result.with_parsed({"a": 1}).parsed == {"a": 1}


class TestProviderMeta:
    def test_meta_fields(self):
        results = {
            "openrouter": ProviderCallResult("openrouter", False, 120, error="timeout"),
            "gemini": ProviderCallResult("gemini", True, 80, raw_text="{}"),
        }

        meta = build_provider_meta("gemini", results)

        assert meta["selected"] == "gemini"
        assert meta["openrouter_ok"] is False
        assert meta["openrouter_ms"] == 120
        assert meta["gemini_ok"] is True
        assert meta["fallback_used"] is True
        assert meta["reasoning_tokens_openrouter"] is None
