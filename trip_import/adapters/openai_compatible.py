"""OpenAI 호환 chat-completion Adapter (OpenRouter / Lovable AI / OpenAI)"""
from typing import Dict, List, Optional

from langchain_openai import ChatOpenAI
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import BaseMessage, HumanMessage

from .base import BaseProviderAdapter
from config import config


class OpenAICompatibleAdapter(BaseProviderAdapter):
    """chat-completion 형식 프로바이더 공통 구현

    특징:
    - system + user 메시지 분리
    - 비전 요청은 image_url(data URL) 파트 사용
    - LangChain 내부 재시도 비활성화 (타임아웃/실패는 게이트웨이가 판단)
    """

    base_url: Optional[str] = None

    def default_headers(self) -> Optional[Dict[str, str]]:
        return None

    def create_llm(
        self,
        model: Optional[str] = None,
        temperature: float = 0.1,
        max_tokens: int = 1200,
        timeout_s: Optional[float] = None,
    ) -> BaseChatModel:
        return ChatOpenAI(
            model=model or self.default_model,
            api_key=self.api_key(),
            base_url=self.base_url,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout_s,
            max_retries=0,
            default_headers=self.default_headers(),
        )

    def build_vision_messages(self, prompt: str, base64_data: str, mime_type: str) -> List[BaseMessage]:
        return [
            HumanMessage(
                content=[
                    {"type": "text", "text": prompt},
                    {
                        "type": "image_url",
                        "image_url": {"url": f"data:{mime_type};base64,{base64_data}"},
                    },
                ]
            )
        ]


class OpenRouterAdapter(OpenAICompatibleAdapter):
    """OpenRouter Adapter (primary text provider)"""

    label = "OpenRouter"
    base_url = config.OPENROUTER_BASE_URL

    @property
    def provider_name(self) -> str:
        return "openrouter"

    @property
    def default_model(self) -> str:
        return config.OPENROUTER_MODEL

    def api_key(self) -> Optional[str]:
        return config.OPENROUTER_API_KEY

    def default_headers(self) -> Optional[Dict[str, str]]:
        return {
            "HTTP-Referer": config.APP_ORIGIN,
            "X-Title": config.APP_TITLE,
        }


class LovableAdapter(OpenAICompatibleAdapter):
    """Lovable AI gateway Adapter (tertiary extraction provider)"""

    label = "LovableAI"
    base_url = config.LOVABLE_BASE_URL

    @property
    def provider_name(self) -> str:
        return "lovable_ai"

    @property
    def default_model(self) -> str:
        return config.LOVABLE_MODEL

    def api_key(self) -> Optional[str]:
        return config.LOVABLE_API_KEY


class OpenAIAdapter(OpenAICompatibleAdapter):
    """OpenAI Adapter (last-resort vision OCR)"""

    label = "OpenAI"

    @property
    def provider_name(self) -> str:
        return "openai"

    @property
    def default_model(self) -> str:
        return config.OPENAI_VISION_MODEL

    def api_key(self) -> Optional[str]:
        return config.OPENAI_API_KEY
