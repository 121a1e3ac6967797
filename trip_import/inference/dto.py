"""Inference data transfer objects."""
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class CallOptions:
    """Per-call provider options."""

    timeout_ms: int = 15_000
    temperature: float = 0.1
    max_tokens: int = 1200
    model: Optional[str] = None


@dataclass(frozen=True)
class ProviderConfig:
    """One provider entry of a parallel fan-out."""

    provider: str
    options: CallOptions = field(default_factory=CallOptions)


@dataclass(frozen=True)
class ProviderCallResult:
    """Outcome of a single provider call.

    Failures are values: ``ok`` is False and ``error`` names the cause.
    """

    provider: str
    ok: bool
    elapsed_ms: int
    raw_text: str = ""
    parsed: Optional[Any] = None
    usage: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    def with_parsed(self, parsed: Optional[Any], error: Optional[str] = None) -> "ProviderCallResult":
        """Return a copy carrying ``parsed``; a missing value marks the call failed."""
        if parsed is None:
            return replace(
                self,
                ok=False,
                parsed=None,
                error=self.error or error or f"{self.provider} invalid_json",
            )
        return replace(self, parsed=parsed)

    @property
    def reasoning_tokens(self) -> Optional[int]:
        usage = self.usage or {}
        details = usage.get("output_token_details") or usage.get("completion_tokens_details") or {}
        for key in ("reasoning", "reasoning_tokens"):
            value = details.get(key) if isinstance(details, dict) else None
            if isinstance(value, int):
                return value
        value = usage.get("reasoning_tokens")
        return value if isinstance(value, int) else None
