from typing import Optional

from fastapi import APIRouter, Depends
from loguru import logger

from trip_import.auth import User, verify_current_user
from trip_import.entitlements import (
    EVENT_TO_FEATURE,
    PLAN_TIERS,
    EntitlementStore,
    FeatureGate,
    is_feature_key,
    summarize_usage,
    track_usage,
    usage_window_start,
)
from trip_import.shared import ApiError, ErrorCode
from .dependencies import get_entitlement_store, get_feature_gate
from .errors import success
from .schemas import FeatureEntitlementsRequest

router = APIRouter(prefix="/v1", tags=["entitlements"])

DEFAULT_USAGE_DAYS = 7
MAX_USAGE_DAYS = 90
FALLBACK_EVENT_FEATURE = "ff_collab_enabled"


def _require_store(store: Optional[EntitlementStore]) -> EntitlementStore:
    if store is None:
        raise ApiError(ErrorCode.MISCONFIGURED, "Entitlement storage is not configured")
    return store


async def _require_self_service(gate: FeatureGate, user_id: str) -> None:
    context = await gate.load_context(user_id)
    if not context.self_service_enabled:
        raise ApiError(
            ErrorCode.UNAUTHORIZED,
            "Plan and override changes are not available in this environment",
            status_code=403,
        )


@router.post("/feature-entitlements")
async def feature_entitlements(
    body: FeatureEntitlementsRequest,
    current_user: User = Depends(verify_current_user),
    gate: FeatureGate = Depends(get_feature_gate),
    store: Optional[EntitlementStore] = Depends(get_entitlement_store),
):
    """
    Feature-gate context for the caller, plus self-service plan changes,
    client usage events and usage summaries.
    """
    user_id = current_user.id

    if body.action == "set_plan_tier":
        await _require_self_service(gate, user_id)
        plan_tier = (body.plan_tier or "").strip().lower()
        if plan_tier not in PLAN_TIERS:
            raise ApiError(ErrorCode.BAD_REQUEST, "Invalid plan tier")
        await _require_store(store).set_plan_tier(user_id, plan_tier)
        logger.info(f"User {user_id} switched plan to {plan_tier}")

    if body.action == "set_override":
        await _require_self_service(gate, user_id)
        if not is_feature_key(body.feature_key):
            raise ApiError(ErrorCode.BAD_REQUEST, "Invalid feature key")
        await _require_store(store).set_override(user_id, body.feature_key, body.enabled, body.limit_value)
        logger.info(f"User {user_id} override {body.feature_key}: enabled={body.enabled} limit={body.limit_value}")

    context = await gate.load_context(user_id)

    if body.action == "track_event":
        event_name = (body.event_name or "").strip()
        if not event_name:
            raise ApiError(ErrorCode.BAD_REQUEST, "Invalid event name")
        feature_key = (body.feature_key or "").strip() or EVENT_TO_FEATURE.get(event_name)
        if not is_feature_key(feature_key):
            feature_key = FALLBACK_EVENT_FEATURE
        status = (body.status or "").strip() or (
            "success" if context.entitlements.get(feature_key) else "blocked"
        )
        await track_usage(
            store,
            user_id,
            feature_key,
            event_name,
            status,
            trip_id=body.trip_id,
            metadata={"source": "client", **(body.metadata or {})},
        )
        return success({"ok": True, "eventName": event_name, "featureKey": feature_key, "status": status})

    data = context.to_dict()
    data.pop("userId", None)

    if body.action == "usage_summary":
        days = max(1, min(MAX_USAGE_DAYS, body.days or DEFAULT_USAGE_DAYS))
        since = usage_window_start(days)
        entitlement_store = _require_store(store)
        usage_rows = await entitlement_store.list_usage_events(user_id, since)
        plan_events = await entitlement_store.list_plan_events(user_id, since)
        data["usageSummary"] = summarize_usage(usage_rows, plan_events, days)

    return success(data)
