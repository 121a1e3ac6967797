"""OCR.space hosted OCR client."""
import time
from dataclasses import dataclass
from typing import Optional

import httpx
from loguru import logger

from config import config


@dataclass(frozen=True)
class HostedOcrResult:
    text: str = ""
    error: Optional[str] = None
    elapsed_ms: int = 0

    @property
    def ok(self) -> bool:
        return bool(self.text) and self.error is None


class OcrSpaceClient:
    """Form-encoded POST to the OCR.space parse endpoint.

    Like the provider gateway, failures come back as results with ``error``
    set rather than as exceptions.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        url: Optional[str] = None,
        language: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._api_key = api_key
        self.url = url or config.OCR_SPACE_URL
        self.language = language or config.OCR_SPACE_LANGUAGE
        self._http_client = http_client

    @property
    def api_key(self) -> Optional[str]:
        return self._api_key or config.OCR_SPACE_API_KEY

    async def parse(self, base64_data: str, mime_type: str, timeout_ms: int) -> HostedOcrResult:
        if not self.api_key:
            return HostedOcrResult(error="OCR_SPACE_API_KEY not configured")

        form = {
            "apikey": self.api_key,
            "language": self.language,
            "isOverlayRequired": "false",
            "OCREngine": "2",
            "base64Image": f"data:{mime_type};base64,{base64_data}",
        }
        started = time.perf_counter()
        try:
            if self._http_client is not None:
                response = await self._http_client.post(self.url, data=form, timeout=timeout_ms / 1000)
            else:
                async with httpx.AsyncClient(timeout=timeout_ms / 1000) as client:
                    response = await client.post(self.url, data=form)
        except httpx.TimeoutException:
            return HostedOcrResult(error=f"ocr_space timeout {timeout_ms}ms", elapsed_ms=timeout_ms)
        except httpx.HTTPError as e:
            logger.warning(f"[ocr_space] transport error: {type(e).__name__}")
            return HostedOcrResult(error=f"OCR.space {type(e).__name__}")
        elapsed_ms = int((time.perf_counter() - started) * 1000)

        if response.status_code >= 400:
            return HostedOcrResult(error=f"OCR.space HTTP {response.status_code}", elapsed_ms=elapsed_ms)

        try:
            body = response.json()
        except ValueError:
            return HostedOcrResult(error="OCR.space invalid response", elapsed_ms=elapsed_ms)
        if not isinstance(body, dict):
            return HostedOcrResult(error="OCR.space invalid response", elapsed_ms=elapsed_ms)

        if body.get("IsErroredOnProcessing"):
            message = body.get("ErrorMessage") or "processing error"
            if isinstance(message, list):
                message = "; ".join(str(item) for item in message)
            return HostedOcrResult(error=f"OCR.space {message}", elapsed_ms=elapsed_ms)

        text = "\n".join(
            (item.get("ParsedText") or "").strip()
            for item in body.get("ParsedResults") or []
            if isinstance(item, dict)
        ).strip()
        if not text:
            return HostedOcrResult(error="OCR.space returned no text", elapsed_ms=elapsed_ms)
        return HostedOcrResult(text=text, elapsed_ms=elapsed_ms)
