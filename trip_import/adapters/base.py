"""Provider Adapter 베이스 클래스"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage


@dataclass
class NormalizedContent:
    """정규화된 응답 본문

    모든 프로바이더의 응답(content: str | list[part])을 통일된 형식으로 변환
    """
    text: str


class BaseProviderAdapter(ABC):
    """Inference Provider Adapter 추상 베이스 클래스

    각 프로바이더별 차이점을 캡슐화:
    - 자격 증명(API key) 해석
    - LLM 인스턴스 생성 방식 (chat-completion vs direct generation)
    - 요청 메시지 구성 (텍스트 / 비전)
    - 응답 본문 및 토큰 사용량 정규화
    """

    #: 로그/에러 메시지에 쓰이는 사람이 읽는 이름
    label: str = "Provider"

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """프로바이더 이름 (결과 태깅/로깅용)"""
        pass

    @property
    @abstractmethod
    def default_model(self) -> str:
        """모델 미지정 시 사용할 기본 모델"""
        pass

    @abstractmethod
    def api_key(self) -> Optional[str]:
        """설정된 API key (없으면 None)"""
        pass

    @abstractmethod
    def create_llm(
        self,
        model: Optional[str] = None,
        temperature: float = 0.1,
        max_tokens: int = 1200,
        timeout_s: Optional[float] = None,
    ) -> BaseChatModel:
        """LLM 인스턴스 생성

        Args:
            model: 모델명 (None이면 default_model)
            temperature: 샘플링 온도
            max_tokens: 최대 출력 토큰 수
            timeout_s: HTTP 클라이언트 타임아웃

        Returns:
            LangChain BaseChatModel 인스턴스
        """
        pass

    def build_messages(self, prompt: str, payload: str) -> List[BaseMessage]:
        """텍스트 요청 메시지 구성 (chat-completion 기본: system + user)"""
        return [SystemMessage(content=prompt), HumanMessage(content=payload)]

    @abstractmethod
    def build_vision_messages(self, prompt: str, base64_data: str, mime_type: str) -> List[BaseMessage]:
        """비전 요청 메시지 구성 (프롬프트 + inline 이미지/PDF)"""
        pass

    def normalize_content(self, message: Any) -> NormalizedContent:
        """응답 본문 정규화

        - 문자열: 그대로 사용
        - list[part]: text 파트만 줄바꿈으로 결합
        """
        content = getattr(message, "content", "") if message is not None else ""

        if isinstance(content, str):
            return NormalizedContent(text=content.strip())

        if isinstance(content, list):
            texts = []
            for part in content:
                if isinstance(part, str):
                    texts.append(part)
                elif isinstance(part, dict) and part.get("type", "text") == "text":
                    texts.append(part.get("text") or "")
            return NormalizedContent(text="\n".join(texts).strip())

        return NormalizedContent(text=str(content).strip() if content else "")

    def extract_usage(self, message: Any) -> Optional[Dict[str, Any]]:
        """토큰 사용량 메타데이터 (불투명 dict)"""
        usage = getattr(message, "usage_metadata", None)
        if isinstance(usage, dict) and usage:
            return dict(usage)

        metadata = getattr(message, "response_metadata", None) or {}
        for key in ("token_usage", "usage", "usage_metadata"):
            value = metadata.get(key)
            if isinstance(value, dict) and value:
                return dict(value)
        return None
