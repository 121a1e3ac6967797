"""Per-user capability snapshot: base flags, plan tier, overrides, rollout cohort."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from loguru import logger

from config import config
from trip_import.shared import ContentHashUtil

PLAN_TIERS = ("free", "pro", "team")

FEATURE_KEYS = (
    "ff_collab_enabled",
    "ff_collab_seat_limit_enforced",
    "ff_collab_editor_role",
    "ff_collab_audit_log",
    "ff_ai_import_enabled",
    "ff_ai_batch_high_volume",
    "ff_ai_priority_inference",
    "ff_ai_reprocess_unlimited",
    "ff_export_pdf",
    "ff_export_json_full",
    "ff_budget_advanced_insights",
    "ff_public_api_access",
    "ff_webhooks_enabled",
)

BASE_FLAGS: Dict[str, bool] = {key: False for key in FEATURE_KEYS}
BASE_FLAGS.update(
    ff_collab_enabled=True,
    ff_collab_editor_role=True,
    ff_ai_import_enabled=True,
)

_PRO_FEATURES = {
    "ff_ai_batch_high_volume": True,
    "ff_ai_reprocess_unlimited": True,
    "ff_export_pdf": True,
    "ff_export_json_full": True,
    "ff_budget_advanced_insights": True,
}

PLAN_OVERRIDES: Dict[str, Dict[str, bool]] = {
    "free": {},
    "pro": dict(_PRO_FEATURES),
    "team": {
        **_PRO_FEATURES,
        "ff_collab_seat_limit_enforced": True,
        "ff_collab_audit_log": True,
        "ff_ai_priority_inference": True,
        "ff_public_api_access": True,
        "ff_webhooks_enabled": True,
    },
}

PLAN_SEAT_LIMITS = {"free": 2, "pro": 6, "team": 20}

# Feature clusters: M1 collaboration, M2 AI import, M3 export/insights, M4 integrations
FEATURE_CLUSTER = {
    "ff_collab_enabled": "M1",
    "ff_collab_seat_limit_enforced": "M1",
    "ff_collab_editor_role": "M1",
    "ff_collab_audit_log": "M1",
    "ff_ai_import_enabled": "M2",
    "ff_ai_batch_high_volume": "M2",
    "ff_ai_priority_inference": "M2",
    "ff_ai_reprocess_unlimited": "M2",
    "ff_export_pdf": "M3",
    "ff_export_json_full": "M3",
    "ff_budget_advanced_insights": "M3",
    "ff_public_api_access": "M4",
    "ff_webhooks_enabled": "M4",
}

HIGH_VOLUME_MULTIPLIER = 3
PRIORITY_TIMEOUT_MULTIPLIER = 1.4


def is_feature_key(value: Any) -> bool:
    return isinstance(value, str) and value in FEATURE_KEYS


def normalize_plan_tier(value: Any) -> str:
    return value if value in PLAN_TIERS else "free"


def parse_rollout_percent(raw: Optional[str]) -> int:
    try:
        parsed = int(str(raw).strip()) if raw not in (None, "") else 0
    except ValueError:
        return 0
    return max(0, min(100, parsed))


def parse_rollout_features(raw: Optional[str]) -> List[str]:
    features: List[str] = []
    for item in (raw or "").split(","):
        item = item.strip()
        if is_feature_key(item) and item not in features:
            features.append(item)
    return features


@dataclass
class FeatureGateContext:
    user_id: str
    plan_tier: str
    entitlements: Dict[str, bool]
    seat_limit: Optional[int]  # None means unlimited
    limits: Dict[str, int] = field(default_factory=dict)
    source: str = "fallback"
    self_service_enabled: bool = False
    rollout_cohort: bool = False
    rollout_percent: int = 0
    rollout_features: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "planTier": self.plan_tier,
            "entitlements": dict(self.entitlements),
            "seatLimit": self.seat_limit,
            "limits": dict(self.limits),
            "source": self.source,
            "selfServiceEnabled": self.self_service_enabled,
            "rolloutCohort": self.rollout_cohort,
            "rolloutPercent": self.rollout_percent,
            "rolloutFeatures": list(self.rollout_features),
        }


def build_entitlements(plan_tier: str) -> Dict[str, bool]:
    return {**BASE_FLAGS, **PLAN_OVERRIDES.get(plan_tier, {})}


def is_feature_enabled(context: FeatureGateContext, feature_key: str) -> bool:
    return bool(context.entitlements.get(feature_key))


def resolve_ai_rate_limit(base_limit: int, context: FeatureGateContext) -> int:
    if is_feature_enabled(context, "ff_ai_batch_high_volume"):
        return max(base_limit, base_limit * HIGH_VOLUME_MULTIPLIER)
    return base_limit


def resolve_ai_timeout(base_timeout_ms: int, context: FeatureGateContext) -> int:
    if is_feature_enabled(context, "ff_ai_priority_inference"):
        return int(round(base_timeout_ms * PRIORITY_TIMEOUT_MULTIPLIER))
    return base_timeout_ms


class FeatureGate:
    """Resolves a fresh :class:`FeatureGateContext` per request.

    Layers, later wins: base flags, plan-tier overrides, plan entitlement
    rows, per-user overrides, rollout cohort. Nothing is cached between calls.
    """

    def __init__(
        self,
        store=None,
        self_service_enabled: Optional[bool] = None,
        rollout_percent: Optional[int] = None,
        rollout_features: Optional[List[str]] = None,
    ):
        self.store = store
        self.self_service_enabled = (
            config.ENTITLEMENTS_SELF_SERVICE if self_service_enabled is None else self_service_enabled
        )
        self.rollout_percent = (
            parse_rollout_percent(config.ENTITLEMENTS_ROLLOUT_PERCENT)
            if rollout_percent is None
            else max(0, min(100, rollout_percent))
        )
        self.rollout_features = (
            parse_rollout_features(config.ENTITLEMENTS_ROLLOUT_FEATURES)
            if rollout_features is None
            else [key for key in rollout_features if is_feature_key(key)]
        )

    async def load_context(self, user_id: str) -> FeatureGateContext:
        plan_tier = "free"
        entitlements = build_entitlements(plan_tier)
        limits: Dict[str, int] = {}

        if self.store is None:
            return self._finish(user_id, plan_tier, entitlements, limits, source="fallback")

        try:
            stored_tier = await self.store.get_plan_tier(user_id)
            if stored_tier:
                plan_tier = normalize_plan_tier(stored_tier)
                entitlements = build_entitlements(plan_tier)

            for row in await self.store.list_plan_entitlements(plan_tier):
                key = row.get("feature_key")
                if not is_feature_key(key):
                    continue
                entitlements[key] = bool(row.get("enabled"))
                if isinstance(row.get("limit_value"), int):
                    limits[key] = row["limit_value"]

            for row in await self.store.list_user_overrides(user_id):
                key = row.get("feature_key")
                if not is_feature_key(key):
                    continue
                if isinstance(row.get("enabled"), bool):
                    entitlements[key] = row["enabled"]
                if isinstance(row.get("limit_value"), int):
                    limits[key] = row["limit_value"]
        except Exception as e:
            logger.warning(f"Entitlement store unavailable for {user_id}, using fallback: {type(e).__name__}: {e}")
            return self._finish(user_id, plan_tier, entitlements, limits, source="fallback")

        return self._finish(user_id, plan_tier, entitlements, limits, source="database")

    def rollout_bucket(self, user_id: str) -> int:
        return ContentHashUtil.user_bucket(user_id)

    def _finish(
        self,
        user_id: str,
        plan_tier: str,
        entitlements: Dict[str, bool],
        limits: Dict[str, int],
        source: str,
    ) -> FeatureGateContext:
        rollout_active = self.rollout_percent > 0 and bool(self.rollout_features)
        cohort = rollout_active and self.rollout_bucket(user_id) < self.rollout_percent
        if cohort:
            entitlements = {**entitlements, **{key: True for key in self.rollout_features}}

        seat_limit: Optional[int] = None
        if source == "database" and entitlements.get("ff_collab_seat_limit_enforced"):
            seat_limit = limits.get("ff_collab_seat_limit_enforced", PLAN_SEAT_LIMITS[plan_tier])

        return FeatureGateContext(
            user_id=user_id,
            plan_tier=plan_tier,
            entitlements=entitlements,
            seat_limit=seat_limit,
            limits=limits,
            source=source,
            self_service_enabled=self.self_service_enabled,
            rollout_cohort=cohort,
            rollout_percent=self.rollout_percent if rollout_active else 0,
            rollout_features=list(self.rollout_features) if rollout_active else [],
        )
