from fastapi import APIRouter, Depends
from loguru import logger

from config import config
from trip_import.extraction import CanonicalExtractor
from .dependencies import AiAccess, AiOperationGuard, get_extractor
from .errors import success
from .schemas import ExtractReservationRequest

router = APIRouter(prefix="/v1", tags=["extraction"])

extract_guard = AiOperationGuard(
    "extract-reservation",
    config.EXTRACT_LIMIT_PER_HOUR,
    config.EXTRACTION_TIMEOUT_MS,
)


@router.post("/extract-reservation")
async def extract_reservation(
    body: ExtractReservationRequest,
    access: AiAccess = Depends(extract_guard),
    extractor: CanonicalExtractor = Depends(get_extractor),
):
    """
    Raw document text -> canonical reservation.

    Never fails on provider outages: the rule engine answers when no LLM does.
    """
    try:
        outcome = await extractor.extract(
            body.text,
            body.file_name,
            timeout_ms=access.timeout_ms,
            trip_destination=body.trip_destination,
        )
    except Exception:
        await access.track("failed")
        raise

    await access.track("success", provider=outcome.provider, scope=outcome.scope.value)
    logger.info(f"Extracted reservation for user {access.user.id} via {outcome.provider}")
    return success(outcome.to_view())
