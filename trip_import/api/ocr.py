from fastapi import APIRouter, Depends
from loguru import logger

from config import config
from trip_import.ocr import TextAcquisitionLayer
from .dependencies import AiAccess, AiOperationGuard, get_acquisition
from .errors import success
from .schemas import OcrDocumentRequest, decode_file_base64

router = APIRouter(prefix="/v1", tags=["ocr"])

ocr_guard = AiOperationGuard(
    "ocr-document",
    config.OCR_LIMIT_PER_HOUR,
    config.VISION_TIMEOUT_MS,
)


@router.post("/ocr-document")
async def ocr_document(
    body: OcrDocumentRequest,
    access: AiAccess = Depends(ocr_guard),
    acquisition: TextAcquisitionLayer = Depends(get_acquisition),
):
    """Native text first, then hosted OCR, then vision models."""
    content = decode_file_base64(body.file_base64)
    try:
        result = await acquisition.acquire(
            content,
            body.file_name,
            body.mime_type,
            timeout_ms=access.timeout_ms,
        )
    except Exception:
        await access.track("failed")
        raise

    await access.track("success", method=result.method)
    logger.info(f"OCR for user {access.user.id}: method={result.method} chars={len(result.text)}")
    return success(result.to_dict())
