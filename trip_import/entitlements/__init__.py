"""Feature gating and plan entitlements."""

from .gates import (
    BASE_FLAGS,
    FEATURE_CLUSTER,
    FEATURE_KEYS,
    PLAN_OVERRIDES,
    PLAN_SEAT_LIMITS,
    PLAN_TIERS,
    FeatureGate,
    FeatureGateContext,
    is_feature_enabled,
    is_feature_key,
    resolve_ai_rate_limit,
    resolve_ai_timeout,
)
from .store import EntitlementStore, InMemoryEntitlementStore, SupabaseEntitlementStore
from .usage import EVENT_TO_FEATURE, summarize_usage, track_usage, usage_window_start

__all__ = [
    "BASE_FLAGS",
    "FEATURE_CLUSTER",
    "FEATURE_KEYS",
    "PLAN_OVERRIDES",
    "PLAN_SEAT_LIMITS",
    "PLAN_TIERS",
    "FeatureGate",
    "FeatureGateContext",
    "is_feature_enabled",
    "is_feature_key",
    "resolve_ai_rate_limit",
    "resolve_ai_timeout",
    "EntitlementStore",
    "InMemoryEntitlementStore",
    "SupabaseEntitlementStore",
    "EVENT_TO_FEATURE",
    "summarize_usage",
    "track_usage",
    "usage_window_start",
]
