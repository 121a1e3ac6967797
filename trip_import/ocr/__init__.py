"""Text acquisition (native extraction and OCR)."""
from .acquisition import AcquisitionResult, TextAcquisitionLayer, guess_mime_type
from .hosted import HostedOcrResult, OcrSpaceClient
from .native import NativeText, extract_native_text, has_structured_density, strip_html
from .quality import QualityMetrics, score_text_quality

__all__ = [
    "AcquisitionResult",
    "TextAcquisitionLayer",
    "guess_mime_type",
    "HostedOcrResult",
    "OcrSpaceClient",
    "NativeText",
    "extract_native_text",
    "has_structured_density",
    "strip_html",
    "QualityMetrics",
    "score_text_quality",
]
