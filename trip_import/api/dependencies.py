"""Service providers for the routes.

Everything is built once in the lifespan and read from ``app.state``; tests
swap any of these through ``app.dependency_overrides``.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, Request
from loguru import logger

from trip_import.auth import ONE_HOUR_MS, RateLimiter, User, get_rate_limiter, verify_current_user
from trip_import.enrichment import TravelEnricher
from trip_import.entitlements import (
    EntitlementStore,
    FeatureGate,
    FeatureGateContext,
    is_feature_enabled,
    resolve_ai_rate_limit,
    resolve_ai_timeout,
    track_usage,
)
from trip_import.extraction import CanonicalExtractor
from trip_import.imports import ImportQueue, ImportQueueCoordinator, InMemoryImportStore
from trip_import.inference import ProviderGateway
from trip_import.ocr import TextAcquisitionLayer
from trip_import.shared import ApiError, ErrorCode

AI_FEATURE_KEY = "ff_ai_import_enabled"


def _state(request: Request, name: str, factory):
    value = getattr(request.app.state, name, None)
    if value is None:
        value = factory()
        setattr(request.app.state, name, value)
    return value


def get_gateway(request: Request) -> ProviderGateway:
    return _state(request, "gateway", ProviderGateway)


def get_entitlement_store(request: Request) -> Optional[EntitlementStore]:
    return getattr(request.app.state, "entitlement_store", None)


def get_feature_gate(
    request: Request,
    store: Optional[EntitlementStore] = Depends(get_entitlement_store),
) -> FeatureGate:
    return _state(request, "feature_gate", lambda: FeatureGate(store))


def get_acquisition(
    request: Request,
    gateway: ProviderGateway = Depends(get_gateway),
) -> TextAcquisitionLayer:
    return _state(request, "acquisition", lambda: TextAcquisitionLayer(gateway))


def get_extractor(
    request: Request,
    gateway: ProviderGateway = Depends(get_gateway),
) -> CanonicalExtractor:
    return _state(request, "extractor", lambda: CanonicalExtractor(gateway))


def get_enricher(
    request: Request,
    gateway: ProviderGateway = Depends(get_gateway),
) -> TravelEnricher:
    return _state(request, "enricher", lambda: TravelEnricher(gateway))


def get_import_coordinator(
    request: Request,
    acquisition: TextAcquisitionLayer = Depends(get_acquisition),
    extractor: CanonicalExtractor = Depends(get_extractor),
) -> ImportQueueCoordinator:
    def build() -> ImportQueueCoordinator:
        store = getattr(request.app.state, "import_store", None) or InMemoryImportStore()
        return ImportQueueCoordinator(ImportQueue(), store, acquisition, extractor)

    return _state(request, "import_coordinator", build)


@dataclass
class AiAccess:
    """Granted access to one priced AI operation."""

    user: User
    operation: str
    context: FeatureGateContext
    timeout_ms: int
    remaining: int
    store: Optional[EntitlementStore] = None

    async def track(self, status: str, trip_id: Optional[str] = None, **metadata) -> None:
        await track_usage(
            self.store,
            self.user.id,
            AI_FEATURE_KEY,
            self.operation,
            status,
            trip_id=trip_id,
            metadata=metadata or None,
        )


class AiOperationGuard:
    """Feature flag check, then the per-hour quota, before any provider is paid for.

    Used as a dependency it runs both steps. Routes that can answer without a
    provider call run ``check_enabled`` and ``grant`` themselves so quota is
    only spent when a provider is actually needed.
    """

    def __init__(self, operation: str, base_limit: int, base_timeout_ms: int):
        self.operation = operation
        self.base_limit = base_limit
        self.base_timeout_ms = base_timeout_ms

    async def __call__(
        self,
        user: User = Depends(verify_current_user),
        gate: FeatureGate = Depends(get_feature_gate),
        limiter: RateLimiter = Depends(get_rate_limiter),
        store: Optional[EntitlementStore] = Depends(get_entitlement_store),
    ) -> AiAccess:
        context = await self.check_enabled(user, gate, store)
        return await self.grant(user, context, limiter, store)

    async def check_enabled(
        self, user: User, gate: FeatureGate, store: Optional[EntitlementStore]
    ) -> FeatureGateContext:
        context = await gate.load_context(user.id)
        if not is_feature_enabled(context, AI_FEATURE_KEY):
            await track_usage(store, user.id, AI_FEATURE_KEY, self.operation, "blocked")
            raise ApiError(
                ErrorCode.UNAUTHORIZED,
                "AI import is not enabled for this plan",
                status_code=403,
                details={"featureKey": AI_FEATURE_KEY, "planTier": context.plan_tier},
            )
        return context

    async def grant(
        self,
        user: User,
        context: FeatureGateContext,
        limiter: RateLimiter,
        store: Optional[EntitlementStore],
    ) -> AiAccess:
        limit = resolve_ai_rate_limit(self.base_limit, context)
        result = limiter.consume(user.id, self.operation, limit, ONE_HOUR_MS)
        if not result.allowed:
            await track_usage(store, user.id, AI_FEATURE_KEY, self.operation, "blocked")
            reset_at = datetime.fromtimestamp(result.reset_at / 1000, tz=timezone.utc).isoformat()
            raise ApiError(
                ErrorCode.RATE_LIMITED,
                f"Rate limit exceeded for {self.operation}, try again later",
                details={"resetAt": reset_at, "limit": limit},
            )

        timeout_ms = resolve_ai_timeout(self.base_timeout_ms, context)
        logger.debug(
            f"{self.operation} granted for {user.id}: plan={context.plan_tier} "
            f"remaining={result.remaining} timeout={timeout_ms}ms"
        )
        return AiAccess(
            user=user,
            operation=self.operation,
            context=context,
            timeout_ms=timeout_ms,
            remaining=result.remaining,
            store=store,
        )
