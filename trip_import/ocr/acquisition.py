"""Staged text acquisition: native text, hosted OCR, parallel vision, last-resort vision."""
import base64
import mimetypes
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from loguru import logger

from config import config
from trip_import.inference import (
    CallOptions,
    ParallelInferenceCoordinator,
    ProviderConfig,
    ProviderGateway,
)
from trip_import.shared import OcrFailedError
from .hosted import OcrSpaceClient
from .native import extract_native_text, has_structured_density
from .quality import QualityMetrics, score_text_quality

OCR_PROMPT = (
    "Extraia todo o texto visivel deste documento de viagem.\n"
    "Retorne apenas texto bruto.\n"
    "Nao invente palavras ilegiveis.\n"
    "Se algo estiver ilegivel, simplesmente omita."
)

VISION_PREFERENCE = ("openrouter", "gemini")


@dataclass
class AcquisitionResult:
    text: str
    method: str
    warnings: List[str] = field(default_factory=list)
    quality_metrics: Optional[QualityMetrics] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "method": self.method,
            "warnings": list(self.warnings),
            "qualityMetrics": self.quality_metrics.to_dict() if self.quality_metrics else None,
        }


def guess_mime_type(file_name: Optional[str], mime_type: Optional[str]) -> str:
    if mime_type:
        return mime_type.lower()
    guessed, _ = mimetypes.guess_type(file_name or "")
    return guessed or "application/octet-stream"


def is_visual(mime_type: str) -> bool:
    return mime_type.startswith("image/") or mime_type == "application/pdf"


class TextAcquisitionLayer:
    """Turns an uploaded file into raw text, cheapest stage first.

    1. native text layer (txt, html, eml, pdf)
    2. OCR.space, skipped above the configured size ceiling
    3. OpenRouter and Gemini vision in parallel, best quality score wins
    4. OpenAI vision
    """

    def __init__(
        self,
        gateway: ProviderGateway,
        ocr_client: Optional[OcrSpaceClient] = None,
        max_hosted_bytes: Optional[int] = None,
    ):
        self.gateway = gateway
        self.parallel = ParallelInferenceCoordinator(gateway)
        self.ocr_client = ocr_client or OcrSpaceClient()
        self.max_hosted_bytes = max_hosted_bytes or config.OCR_SPACE_MAX_BYTES

    async def acquire(
        self,
        content: bytes,
        file_name: Optional[str],
        mime_type: Optional[str] = None,
        timeout_ms: Optional[int] = None,
    ) -> AcquisitionResult:
        """Extract text from ``content``.

        Raises:
            OcrFailedError: every applicable stage failed; carries the warnings.
        """
        timeout_ms = timeout_ms or config.VISION_TIMEOUT_MS
        mime = guess_mime_type(file_name, mime_type)
        warnings: List[str] = []

        native = extract_native_text(content, file_name, mime)
        if native is not None:
            if has_structured_density(native.text):
                return self._result(native.text, native.method, warnings)
            warnings.append(f"{native.method}: text below density threshold")

        if not is_visual(mime):
            if native is not None:
                return self._result(native.text, native.method, warnings)
            warnings.append(f"unsupported file type for OCR: {mime}")
            raise OcrFailedError("No text could be extracted from the file", warnings=warnings)

        base64_data = base64.b64encode(content).decode("ascii")

        if len(content) > self.max_hosted_bytes:
            warnings.append(
                f"ocr_space skipped: file exceeds {self.max_hosted_bytes} bytes"
            )
        else:
            hosted = await self.ocr_client.parse(base64_data, mime, timeout_ms)
            if hosted.ok:
                return self._result(hosted.text, "ocr_space", warnings)
            warnings.append(hosted.error or "ocr_space failed")

        vision = await self._parallel_vision(base64_data, mime, timeout_ms, warnings)
        if vision is not None:
            return vision

        last = await self.gateway.call_vision(
            "openai",
            OCR_PROMPT,
            base64_data,
            mime,
            CallOptions(timeout_ms=timeout_ms, temperature=0, max_tokens=2000),
        )
        if last.ok and last.raw_text:
            return self._result(last.raw_text, "openai_vision", warnings)
        warnings.append(last.error or "openai vision failed")

        logger.warning(f"OCR failed for {file_name}: {warnings}")
        raise OcrFailedError("OCR failed in every stage", warnings=warnings)

    async def _parallel_vision(
        self,
        base64_data: str,
        mime: str,
        timeout_ms: int,
        warnings: List[str],
    ) -> Optional[AcquisitionResult]:
        options = CallOptions(timeout_ms=timeout_ms, temperature=0, max_tokens=2000)
        providers = [
            ProviderConfig(
                "openrouter",
                CallOptions(
                    timeout_ms=timeout_ms,
                    temperature=0,
                    max_tokens=2000,
                    model=config.OPENROUTER_VISION_MODEL,
                ),
            ),
            ProviderConfig("gemini", options),
        ]
        results = await self.parallel.run_parallel_vision(OCR_PROMPT, base64_data, mime, providers)

        best = None
        best_key = None
        for rank, provider in enumerate(VISION_PREFERENCE):
            result = results.get(provider)
            if result is None:
                continue
            if not result.ok or not result.raw_text.strip():
                warnings.append(result.error or f"{provider} vision returned no text")
                continue
            metrics = score_text_quality(result.raw_text)
            key = (metrics.score, -rank)
            if best_key is None or key > best_key:
                best, best_key = (result, metrics), key

        if best is None:
            return None
        result, metrics = best
        return AcquisitionResult(
            text=result.raw_text.strip(),
            method=f"vision_{result.provider}",
            warnings=warnings,
            quality_metrics=metrics,
        )

    @staticmethod
    def _result(text: str, method: str, warnings: List[str]) -> AcquisitionResult:
        text = text.strip()
        return AcquisitionResult(
            text=text,
            method=method,
            warnings=warnings,
            quality_metrics=score_text_quality(text),
        )
