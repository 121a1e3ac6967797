"""Usage tracking and usage summaries."""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from loguru import logger

from .gates import FEATURE_CLUSTER

AI_OPERATIONS = frozenset({
    "extract-reservation",
    "ocr-document",
    "generate-tips",
    "suggest-restaurants",
    "import-document",
})

EVENT_TO_FEATURE = {
    "import_started": "ff_ai_import_enabled",
    "import_confirmed": "ff_ai_import_enabled",
    "invite_sent": "ff_collab_enabled",
    "member_role_changed": "ff_collab_editor_role",
    "export_triggered": "ff_export_json_full",
}

TIER_ORDER = {"free": 1, "pro": 2, "team": 3}


async def track_usage(
    store,
    user_id: str,
    feature_key: str,
    operation: str,
    status: str,
    trip_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> None:
    """Record one usage event. Best-effort: a failing store never fails the request."""
    if store is None:
        return
    try:
        await store.record_usage(
            user_id,
            feature_key,
            trip_id=trip_id,
            metadata={"operation": operation, "status": status, **(metadata or {})},
        )
    except Exception as e:
        logger.warning(f"Usage event not recorded ({operation}/{status}): {type(e).__name__}: {e}")


def usage_window_start(days: int, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return (now - timedelta(days=days)).isoformat()


def summarize_usage(
    usage_rows: List[Dict[str, Any]],
    plan_events: List[Dict[str, Any]],
    days: int,
) -> Dict[str, Any]:
    by_feature: Dict[str, Dict[str, Any]] = {}
    by_cluster: Dict[str, Dict[str, Any]] = {}
    ai = {"requestCount": 0, "successCount": 0, "failedCount": 0, "blockedCount": 0}

    for row in usage_rows:
        feature_key = row.get("feature_key")
        cluster_key = row.get("cluster_key") or FEATURE_CLUSTER.get(feature_key)
        created_at = row.get("created_at") or ""
        metadata = row.get("metadata") or {}
        operation = metadata.get("operation")
        status = metadata.get("status") or "success"

        feature = by_feature.setdefault(
            feature_key,
            {"featureKey": feature_key, "clusterKey": cluster_key, "count": 0, "lastEventAt": created_at},
        )
        feature["count"] += 1
        feature["lastEventAt"] = max(feature["lastEventAt"], created_at)

        cluster = by_cluster.setdefault(
            cluster_key,
            {"clusterKey": cluster_key, "count": 0, "lastEventAt": created_at},
        )
        cluster["count"] += 1
        cluster["lastEventAt"] = max(cluster["lastEventAt"], created_at)

        if operation in AI_OPERATIONS:
            ai["requestCount"] += 1
            if status == "failed":
                ai["failedCount"] += 1
            elif status == "blocked":
                ai["blockedCount"] += 1
            else:
                ai["successCount"] += 1

    settled = ai["successCount"] + ai["failedCount"]
    ai["successRate"] = round(ai["successCount"] / settled, 4) if settled else None

    upgrades = downgrades = 0
    for event in plan_events:
        previous = TIER_ORDER.get(event.get("previous_tier"), 1)
        new = TIER_ORDER.get(event.get("new_tier"), 1)
        if new > previous:
            upgrades += 1
        elif new < previous:
            downgrades += 1

    return {
        "windowDays": days,
        "totalEvents": len(usage_rows),
        "byFeature": sorted(by_feature.values(), key=lambda item: item["count"], reverse=True),
        "byCluster": sorted(by_cluster.values(), key=lambda item: item["count"], reverse=True),
        "activeFeatures": list(by_feature.keys()),
        "aiMetrics": ai,
        "conversionMetrics": {
            "upgradeCount": upgrades,
            "downgradeCount": downgrades,
            "events": len(plan_events),
            "lastPlanChangeAt": plan_events[0].get("created_at") if plan_events else None,
        },
        "generatedAt": datetime.now(timezone.utc).isoformat(),
    }
