from typing import Optional

from fastapi import APIRouter, Depends, status
from loguru import logger
from pydantic import ValidationError

from config import config
from trip_import.auth import RateLimiter, User, get_rate_limiter, verify_current_user
from trip_import.entitlements import EntitlementStore, FeatureGate, is_feature_enabled, track_usage
from trip_import.imports import ImportQueueCoordinator, ImportStatus
from trip_import.shared import ApiError, ErrorCode
from .dependencies import (
    AI_FEATURE_KEY,
    AiAccess,
    AiOperationGuard,
    get_entitlement_store,
    get_feature_gate,
    get_import_coordinator,
)
from .errors import success
from .schemas import ConfirmImportRequest, ImportDocumentRequest, decode_file_base64

router = APIRouter(prefix="/v1/imports", tags=["imports"])

import_guard = AiOperationGuard(
    "import-document",
    config.IMPORT_LIMIT_PER_HOUR,
    config.EXTRACTION_TIMEOUT_MS,
)


@router.post("", status_code=status.HTTP_201_CREATED)
async def import_document(
    body: ImportDocumentRequest,
    current_user: User = Depends(verify_current_user),
    gate: FeatureGate = Depends(get_feature_gate),
    limiter: RateLimiter = Depends(get_rate_limiter),
    store: Optional[EntitlementStore] = Depends(get_entitlement_store),
    coordinator: ImportQueueCoordinator = Depends(get_import_coordinator),
):
    """
    Enqueue one file and run it through acquisition and extraction.

    A file already imported by the same user comes back as ``saved`` without
    touching any provider or spending import quota.
    """
    context = await import_guard.check_enabled(current_user, gate, store)
    content = decode_file_base64(body.file_base64)

    duplicate = await coordinator.resolve_duplicate(
        current_user.id, body.file_name, content, mime_type=body.mime_type, trip_id=body.trip_id
    )
    if duplicate is not None:
        logger.info(f"Import of {body.file_name} for user {current_user.id} resolved as duplicate, no quota spent")
        return success(duplicate.to_dict())

    access = await import_guard.grant(current_user, context, limiter, store)
    item = coordinator.enqueue(
        access.user.id,
        body.file_name,
        content,
        mime_type=body.mime_type,
        trip_id=body.trip_id,
        trip_destination=body.trip_destination,
    )
    item = await coordinator.process(access.user.id, item.id, timeout_ms=access.timeout_ms)
    await access.track(
        "failed" if item.status == ImportStatus.FAILED else "success",
        trip_id=body.trip_id,
        event="import_started",
        importStatus=item.status.value,
    )
    return success(item.to_dict())


@router.get("")
async def list_imports(
    current_user: User = Depends(verify_current_user),
    coordinator: ImportQueueCoordinator = Depends(get_import_coordinator),
):
    """Queue items of the current user that are still retained in memory."""
    return success([item.to_dict() for item in coordinator.queue.for_user(current_user.id)])


@router.get("/{item_id}")
async def get_import(
    item_id: str,
    current_user: User = Depends(verify_current_user),
    coordinator: ImportQueueCoordinator = Depends(get_import_coordinator),
):
    return success(coordinator.queue.get(current_user.id, item_id).to_dict())


@router.post("/{item_id}/reprocess")
async def reprocess_import(
    item_id: str,
    access: AiAccess = Depends(import_guard),
    coordinator: ImportQueueCoordinator = Depends(get_import_coordinator),
):
    item = coordinator.queue.get(access.user.id, item_id)
    unlimited = is_feature_enabled(access.context, "ff_ai_reprocess_unlimited")
    if not unlimited and item.reprocess_count >= config.REPROCESS_LIMIT_PER_ITEM:
        await access.track("blocked", trip_id=item.trip_id, event="import_reprocess")
        raise ApiError(
            ErrorCode.UNAUTHORIZED,
            "Reprocess limit reached for this document on the current plan",
            status_code=403,
            details={"limit": config.REPROCESS_LIMIT_PER_ITEM, "featureKey": "ff_ai_reprocess_unlimited"},
        )

    item = await coordinator.process(access.user.id, item_id, reprocess=True, timeout_ms=access.timeout_ms)
    await access.track(
        "failed" if item.status == ImportStatus.FAILED else "success",
        trip_id=item.trip_id,
        event="import_reprocess",
    )
    logger.info(f"Reprocessed import {item_id} for user {access.user.id} ({item.reprocess_count}x)")
    return success(item.to_dict())


@router.post("/{item_id}/confirm")
async def confirm_import(
    item_id: str,
    body: Optional[ConfirmImportRequest] = None,
    current_user: User = Depends(verify_current_user),
    coordinator: ImportQueueCoordinator = Depends(get_import_coordinator),
    store: Optional[EntitlementStore] = Depends(get_entitlement_store),
):
    override = body.canonical if body else None
    try:
        item = await coordinator.confirm(current_user.id, item_id, canonical_override=override)
    except ValidationError as e:
        raise ApiError(
            ErrorCode.BAD_REQUEST,
            "Invalid canonical payload",
            details={"errors": [{"loc": list(err["loc"]), "msg": err["msg"]} for err in e.errors()]},
        )
    await track_usage(
        store,
        current_user.id,
        AI_FEATURE_KEY,
        "import_confirmed",
        "success" if item.status == ImportStatus.SAVED else "failed",
        trip_id=item.trip_id,
    )
    return success(item.to_dict())
