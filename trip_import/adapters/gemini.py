"""Gemini Provider Adapter"""
from typing import List, Optional

from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import BaseMessage, HumanMessage

from .base import BaseProviderAdapter
from config import config


class GeminiAdapter(BaseProviderAdapter):
    """Google Gemini Adapter (direct generation)

    특징:
    - 프롬프트와 페이로드를 하나의 user 파트로 결합 (generateContent 형식)
    - chunk.content가 list[dict] 형식일 수 있음: [{"type": "text", "text": "..."}]
    - 비전 요청은 media 파트(inline base64)로 이미지와 PDF 모두 지원
    """

    label = "Gemini"

    @property
    def provider_name(self) -> str:
        return "gemini"

    @property
    def default_model(self) -> str:
        return config.GEMINI_MODEL

    def api_key(self) -> Optional[str]:
        return config.GEMINI_API_KEY

    def create_llm(
        self,
        model: Optional[str] = None,
        temperature: float = 0.1,
        max_tokens: int = 1200,
        timeout_s: Optional[float] = None,
    ) -> BaseChatModel:
        return ChatGoogleGenerativeAI(
            model=model or self.default_model,
            google_api_key=self.api_key(),
            temperature=temperature,
            max_output_tokens=max_tokens,
            timeout=timeout_s,
            max_retries=0,
        )

    def build_messages(self, prompt: str, payload: str) -> List[BaseMessage]:
        return [HumanMessage(content=f"{prompt}\n\n{payload}")]

    def build_vision_messages(self, prompt: str, base64_data: str, mime_type: str) -> List[BaseMessage]:
        return [
            HumanMessage(
                content=[
                    {"type": "text", "text": prompt},
                    {"type": "media", "mime_type": mime_type, "data": base64_data},
                ]
            )
        ]
