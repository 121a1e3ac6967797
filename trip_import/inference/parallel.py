"""Concurrent fan-out over several providers."""
import asyncio
from typing import Any, Callable, Dict, Optional, Sequence

from loguru import logger

from .dto import ProviderCallResult, ProviderConfig
from .gateway import ProviderGateway, extract_json_object

Parser = Callable[[str], Optional[Any]]


class ParallelInferenceCoordinator:
    """Runs the same request against several providers at once.

    Each call keeps its own timeout; one provider's failure never cancels or
    delays the others, so total latency tracks the slowest call, not the sum.
    """

    def __init__(self, gateway: ProviderGateway):
        self.gateway = gateway

    async def run_parallel(
        self,
        prompt: str,
        payload: str,
        providers: Sequence[ProviderConfig],
        parser: Optional[Parser] = extract_json_object,
    ) -> Dict[str, ProviderCallResult]:
        calls = [
            self.gateway.call(cfg.provider, prompt, payload, cfg.options)
            for cfg in providers
        ]
        results = await self._gather(providers, calls)
        if parser is None:
            return results
        return {name: self._apply_parser(result, parser) for name, result in results.items()}

    async def run_parallel_vision(
        self,
        prompt: str,
        base64_data: str,
        mime_type: str,
        providers: Sequence[ProviderConfig],
    ) -> Dict[str, ProviderCallResult]:
        calls = [
            self.gateway.call_vision(cfg.provider, prompt, base64_data, mime_type, cfg.options)
            for cfg in providers
        ]
        return await self._gather(providers, calls)

    async def _gather(self, providers: Sequence[ProviderConfig], calls) -> Dict[str, ProviderCallResult]:
        outcomes = await asyncio.gather(*calls, return_exceptions=True)
        results: Dict[str, ProviderCallResult] = {}
        for cfg, outcome in zip(providers, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning(f"[{cfg.provider}] unexpected failure: {type(outcome).__name__}: {outcome}")
                outcome = ProviderCallResult(
                    provider=cfg.provider,
                    ok=False,
                    elapsed_ms=0,
                    error=f"{cfg.provider} {type(outcome).__name__}",
                )
            results[cfg.provider] = outcome
        return results

    @staticmethod
    def _apply_parser(result: ProviderCallResult, parser: Parser) -> ProviderCallResult:
        if not result.ok:
            return result
        try:
            parsed = parser(result.raw_text)
        except (ValueError, TypeError) as e:
            logger.warning(f"[{result.provider}] parser rejected reply: {e}")
            parsed = None
        return result.with_parsed(parsed)
