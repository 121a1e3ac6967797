"""Provider Adapters - 프로바이더별 차이점 캡슐화"""
from .base import BaseProviderAdapter, NormalizedContent
from .gemini import GeminiAdapter
from .openai_compatible import (
    LovableAdapter,
    OpenAIAdapter,
    OpenAICompatibleAdapter,
    OpenRouterAdapter,
)

# 프로바이더 이름 → Adapter 클래스 매핑
ADAPTER_REGISTRY: dict[str, type[BaseProviderAdapter]] = {
    "openrouter": OpenRouterAdapter,
    "gemini": GeminiAdapter,
    "lovable_ai": LovableAdapter,
    "openai": OpenAIAdapter,
}


def get_adapter(provider: str) -> BaseProviderAdapter:
    """프로바이더 이름으로 Adapter 인스턴스 반환

    Args:
        provider: 프로바이더 이름 ("openrouter", "gemini", "lovable_ai", "openai")

    Returns:
        해당 프로바이더의 Adapter 인스턴스

    Raises:
        ValueError: 지원하지 않는 프로바이더
    """
    adapter_cls = ADAPTER_REGISTRY.get(provider.lower())
    if adapter_cls is None:
        supported = ", ".join(ADAPTER_REGISTRY.keys())
        raise ValueError(f"Unknown provider: {provider}. Supported: {supported}")
    return adapter_cls()


__all__ = [
    "BaseProviderAdapter",
    "NormalizedContent",
    "OpenAICompatibleAdapter",
    "OpenRouterAdapter",
    "LovableAdapter",
    "OpenAIAdapter",
    "GeminiAdapter",
    "get_adapter",
    "ADAPTER_REGISTRY",
]
