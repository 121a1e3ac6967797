"""Entitlement persistence collaborators."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

from loguru import logger
from supabase import AsyncClient, PostgrestAPIError

from .gates import FEATURE_CLUSTER, normalize_plan_tier

UNDEFINED_TABLE = "42P01"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class EntitlementStore(Protocol):
    async def get_plan_tier(self, user_id: str) -> Optional[str]: ...

    async def list_plan_entitlements(self, plan_tier: str) -> List[Dict[str, Any]]: ...

    async def list_user_overrides(self, user_id: str) -> List[Dict[str, Any]]: ...

    async def set_plan_tier(self, user_id: str, plan_tier: str, source: str = "self_service") -> None: ...

    async def set_override(
        self,
        user_id: str,
        feature_key: str,
        enabled: Optional[bool],
        limit_value: Optional[int],
    ) -> None: ...

    async def record_usage(
        self,
        user_id: str,
        feature_key: str,
        trip_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None: ...

    async def list_usage_events(self, user_id: str, since_iso: str) -> List[Dict[str, Any]]: ...

    async def list_plan_events(self, user_id: str, since_iso: str) -> List[Dict[str, Any]]: ...


class InMemoryEntitlementStore:
    """Process-local store for development and tests."""

    def __init__(self):
        self.plan_tiers: Dict[str, str] = {}
        self.plan_entitlements: Dict[str, List[Dict[str, Any]]] = {}
        self.overrides: Dict[tuple, Dict[str, Any]] = {}
        self.usage_events: List[Dict[str, Any]] = []
        self.plan_events: List[Dict[str, Any]] = []

    async def get_plan_tier(self, user_id: str) -> Optional[str]:
        return self.plan_tiers.get(user_id)

    async def list_plan_entitlements(self, plan_tier: str) -> List[Dict[str, Any]]:
        return list(self.plan_entitlements.get(plan_tier, []))

    async def list_user_overrides(self, user_id: str) -> List[Dict[str, Any]]:
        return [row for (owner, _), row in self.overrides.items() if owner == user_id]

    async def set_plan_tier(self, user_id: str, plan_tier: str, source: str = "self_service") -> None:
        previous = normalize_plan_tier(self.plan_tiers.get(user_id, "free"))
        self.plan_tiers[user_id] = plan_tier
        if previous != plan_tier:
            self.plan_events.insert(0, {
                "user_id": user_id,
                "previous_tier": previous,
                "new_tier": plan_tier,
                "source": source,
                "created_at": _now_iso(),
            })

    async def set_override(self, user_id, feature_key, enabled, limit_value) -> None:
        if enabled is None and limit_value is None:
            self.overrides.pop((user_id, feature_key), None)
            return
        self.overrides[(user_id, feature_key)] = {
            "feature_key": feature_key,
            "enabled": enabled,
            "limit_value": limit_value,
        }

    async def record_usage(self, user_id, feature_key, trip_id=None, metadata=None) -> None:
        self.usage_events.insert(0, {
            "user_id": user_id,
            "feature_key": feature_key,
            "cluster_key": FEATURE_CLUSTER.get(feature_key),
            "trip_id": trip_id,
            "metadata": metadata or {},
            "created_at": _now_iso(),
        })

    async def list_usage_events(self, user_id: str, since_iso: str) -> List[Dict[str, Any]]:
        return [
            event for event in self.usage_events
            if event["user_id"] == user_id and event["created_at"] >= since_iso
        ]

    async def list_plan_events(self, user_id: str, since_iso: str) -> List[Dict[str, Any]]:
        return [
            event for event in self.plan_events
            if event["user_id"] == user_id and event["created_at"] >= since_iso
        ]


class SupabaseEntitlementStore:
    """Tables: user_plan_tiers, feature_entitlements, user_feature_overrides,
    feature_usage_events, user_plan_tier_events. Requires the service-role client.
    """

    def __init__(self, client: AsyncClient):
        self.client = client

    async def get_plan_tier(self, user_id: str) -> Optional[str]:
        response = await (
            self.client.table("user_plan_tiers")
            .select("plan_tier")
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
        rows = response.data or []
        return rows[0].get("plan_tier") if rows else None

    async def list_plan_entitlements(self, plan_tier: str) -> List[Dict[str, Any]]:
        response = await (
            self.client.table("feature_entitlements")
            .select("feature_key,enabled,limit_value")
            .eq("plan_tier", plan_tier)
            .execute()
        )
        return list(response.data or [])

    async def list_user_overrides(self, user_id: str) -> List[Dict[str, Any]]:
        response = await (
            self.client.table("user_feature_overrides")
            .select("feature_key,enabled,limit_value")
            .eq("user_id", user_id)
            .execute()
        )
        return list(response.data or [])

    async def set_plan_tier(self, user_id: str, plan_tier: str, source: str = "self_service") -> None:
        previous = normalize_plan_tier(await self.get_plan_tier(user_id) or "free")
        await (
            self.client.table("user_plan_tiers")
            .upsert(
                {"user_id": user_id, "plan_tier": plan_tier, "updated_at": _now_iso()},
                on_conflict="user_id",
            )
            .execute()
        )
        if previous == plan_tier:
            return
        try:
            await (
                self.client.table("user_plan_tier_events")
                .insert({
                    "user_id": user_id,
                    "previous_tier": previous,
                    "new_tier": plan_tier,
                    "source": source,
                    "metadata": {"source": source},
                })
                .execute()
            )
        except PostgrestAPIError as e:
            logger.warning(f"Plan tier event not recorded for {user_id}: {e.message}")

    async def set_override(self, user_id, feature_key, enabled, limit_value) -> None:
        query = self.client.table("user_feature_overrides")
        if enabled is None and limit_value is None:
            await query.delete().eq("user_id", user_id).eq("feature_key", feature_key).execute()
            return
        await query.upsert(
            {
                "user_id": user_id,
                "feature_key": feature_key,
                "enabled": enabled,
                "limit_value": limit_value,
                "updated_at": _now_iso(),
            },
            on_conflict="user_id,feature_key",
        ).execute()

    async def record_usage(self, user_id, feature_key, trip_id=None, metadata=None) -> None:
        await (
            self.client.table("feature_usage_events")
            .insert({
                "user_id": user_id,
                "feature_key": feature_key,
                "cluster_key": FEATURE_CLUSTER.get(feature_key),
                "viagem_id": trip_id,
                "metadata": metadata,
            })
            .execute()
        )

    async def list_usage_events(self, user_id: str, since_iso: str) -> List[Dict[str, Any]]:
        response = await (
            self.client.table("feature_usage_events")
            .select("feature_key,cluster_key,created_at,metadata")
            .eq("user_id", user_id)
            .gte("created_at", since_iso)
            .order("created_at", desc=True)
            .execute()
        )
        return list(response.data or [])

    async def list_plan_events(self, user_id: str, since_iso: str) -> List[Dict[str, Any]]:
        try:
            response = await (
                self.client.table("user_plan_tier_events")
                .select("previous_tier,new_tier,source,created_at")
                .eq("user_id", user_id)
                .gte("created_at", since_iso)
                .order("created_at", desc=True)
                .execute()
            )
        except PostgrestAPIError as e:
            if e.code == UNDEFINED_TABLE:
                logger.warning("user_plan_tier_events table missing, skipping conversion metrics")
                return []
            raise
        return list(response.data or [])
