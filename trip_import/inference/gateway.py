"""Uniform, failure-tolerant access to the inference providers."""
import asyncio
import json
import time
from typing import Any, Dict, List, Mapping, Optional

from langchain_core.messages import BaseMessage
from loguru import logger

from trip_import.adapters import BaseProviderAdapter, get_adapter
from .dto import CallOptions, ProviderCallResult


def extract_json_object(text: Optional[str]) -> Optional[Dict[str, Any]]:
    """Parse the span between the first ``{`` and the last ``}`` of ``text``."""
    if not text:
        return None
    start = text.find("{")
    end = text.rfind("}")
    if start < 0 or end <= start:
        return None
    try:
        value = json.loads(text[start:end + 1])
    except ValueError:
        return None
    return value if isinstance(value, dict) else None


class ProviderGateway:
    """Calls one provider and always returns a :class:`ProviderCallResult`.

    Timeouts, missing credentials, transport errors and empty bodies become
    ``ok=False`` results instead of exceptions so callers can fan out freely.
    """

    def __init__(self, adapters: Optional[Mapping[str, BaseProviderAdapter]] = None):
        self._adapters: Dict[str, BaseProviderAdapter] = dict(adapters or {})

    def adapter(self, provider: str) -> BaseProviderAdapter:
        if provider not in self._adapters:
            self._adapters[provider] = get_adapter(provider)
        return self._adapters[provider]

    def is_configured(self, provider: str) -> bool:
        return bool(self.adapter(provider).api_key())

    async def call(
        self,
        provider: str,
        prompt: str,
        payload: str,
        options: Optional[CallOptions] = None,
    ) -> ProviderCallResult:
        """Text inference; ``parsed`` holds the first JSON object of the reply."""
        options = options or CallOptions()
        adapter = self.adapter(provider)
        if not adapter.api_key():
            return self._not_configured(adapter)

        result = await self._invoke(adapter, adapter.build_messages(prompt, payload), options)
        if result.ok:
            return ProviderCallResult(
                provider=result.provider,
                ok=True,
                elapsed_ms=result.elapsed_ms,
                raw_text=result.raw_text,
                parsed=extract_json_object(result.raw_text),
                usage=result.usage,
            )
        return result

    async def call_vision(
        self,
        provider: str,
        prompt: str,
        base64_data: str,
        mime_type: str,
        options: Optional[CallOptions] = None,
    ) -> ProviderCallResult:
        """Vision inference over an inline image or PDF; ``parsed`` stays None."""
        options = options or CallOptions(temperature=0, max_tokens=2000)
        adapter = self.adapter(provider)
        if not adapter.api_key():
            return self._not_configured(adapter)

        messages = adapter.build_vision_messages(prompt, base64_data, mime_type)
        return await self._invoke(adapter, messages, options)

    def _not_configured(self, adapter: BaseProviderAdapter) -> ProviderCallResult:
        return ProviderCallResult(
            provider=adapter.provider_name,
            ok=False,
            elapsed_ms=0,
            error=f"{adapter.label} API key not configured",
        )

    async def _invoke(
        self,
        adapter: BaseProviderAdapter,
        messages: List[BaseMessage],
        options: CallOptions,
    ) -> ProviderCallResult:
        provider = adapter.provider_name
        timeout_s = options.timeout_ms / 1000
        started = time.perf_counter()

        def elapsed() -> int:
            return int((time.perf_counter() - started) * 1000)

        try:
            llm = adapter.create_llm(
                model=options.model,
                temperature=options.temperature,
                max_tokens=options.max_tokens,
                timeout_s=timeout_s,
            )
            message = await asyncio.wait_for(llm.ainvoke(messages), timeout=timeout_s)
        except asyncio.TimeoutError:
            logger.warning(f"[{provider}] timed out after {options.timeout_ms}ms")
            return ProviderCallResult(
                provider=provider,
                ok=False,
                elapsed_ms=elapsed(),
                error=f"{provider} timeout {options.timeout_ms}ms",
            )
        except Exception as e:
            logger.warning(f"[{provider}] call failed: {type(e).__name__}: {e}")
            return ProviderCallResult(
                provider=provider,
                ok=False,
                elapsed_ms=elapsed(),
                error=f"{adapter.label} {type(e).__name__}: {e}",
            )

        text = adapter.normalize_content(message).text
        usage = adapter.extract_usage(message)
        if not text:
            return ProviderCallResult(
                provider=provider,
                ok=False,
                elapsed_ms=elapsed(),
                usage=usage,
                error=f"{adapter.label} empty response",
            )

        result = ProviderCallResult(
            provider=provider,
            ok=True,
            elapsed_ms=elapsed(),
            raw_text=text,
            usage=usage,
        )
        logger.debug(f"[{provider}] ok in {result.elapsed_ms}ms ({len(text)} chars)")
        return result


def build_provider_meta(
    selected: str,
    results: Mapping[str, ProviderCallResult],
) -> Dict[str, Any]:
    """Summarize a fan-out for clients: winner, per-provider status and latency."""
    meta: Dict[str, Any] = {"selected": selected}
    for provider, result in results.items():
        meta[f"{provider}_ok"] = result.ok
        meta[f"{provider}_ms"] = result.elapsed_ms
    meta["fallback_used"] = selected != "openrouter"
    openrouter = results.get("openrouter")
    meta["reasoning_tokens_openrouter"] = openrouter.reasoning_tokens if openrouter else None
    return meta
