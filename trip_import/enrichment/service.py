"""Hotel tips and restaurant suggestions."""
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from loguru import logger

from config import config
from trip_import.extraction.prompts import RESTAURANTS_PROMPT, TIPS_PROMPT
from trip_import.inference import (
    CallOptions,
    ParallelInferenceCoordinator,
    ProviderCallResult,
    ProviderConfig,
    ProviderGateway,
    build_provider_meta,
)
from trip_import.shared import ConfigurationError, UpstreamError

ENRICHMENT_PROVIDERS = ("openrouter", "gemini")
TIP_FIELDS = ("travel_tip", "how_to_arrive", "nearby_attractions", "nearby_restaurants", "local_tip")
RESTAURANT_FIELDS = ("city", "cuisine", "price_range", "specialty", "neighborhood")
MAX_RESTAURANTS = 6


def truncate(value: Optional[str], limit: int) -> Optional[str]:
    if not value:
        return None
    return value[:limit]


def _clean(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    return value.strip() or None


def sanitize_tips(raw: Any) -> Dict[str, Optional[str]]:
    data = raw if isinstance(raw, Mapping) else {}
    return {key: _clean(data.get(key)) for key in TIP_FIELDS}


def sanitize_restaurants(raw: Any) -> List[Dict[str, Optional[str]]]:
    """Keep named entries only, at most six."""
    data = raw if isinstance(raw, Mapping) else {}
    entries = data.get("items")
    if not isinstance(entries, list):
        return []

    items = []
    for entry in entries:
        if not isinstance(entry, Mapping):
            continue
        name = _clean(entry.get("name"))
        if not name:
            continue
        items.append({"name": name, **{key: _clean(entry.get(key)) for key in RESTAURANT_FIELDS}})
    return items[:MAX_RESTAURANTS]


@dataclass
class EnrichmentResult:
    data: Any
    provider: str
    provider_meta: Dict[str, Any] = field(default_factory=dict)


class TravelEnricher:
    """OpenRouter and Gemini race; the first usable answer in preference order wins."""

    def __init__(self, gateway: ProviderGateway):
        self.gateway = gateway
        self.parallel = ParallelInferenceCoordinator(gateway)

    async def generate_tips(
        self,
        hotel_name: Optional[str] = None,
        location: Optional[str] = None,
        check_in: Optional[str] = None,
        check_out: Optional[str] = None,
        trip_destination: Optional[str] = None,
        timeout_ms: Optional[int] = None,
    ) -> EnrichmentResult:
        payload = {
            "hotelName": truncate(hotel_name, 220),
            "location": truncate(location, 220),
            "checkIn": truncate(check_in, 32),
            "checkOut": truncate(check_out, 32),
            "tripDestination": truncate(trip_destination, 220),
        }
        return await self._run(
            "tips",
            TIPS_PROMPT,
            payload,
            sanitize_tips,
            lambda tips: any(tips.values()),
            timeout_ms,
        )

    async def suggest_restaurants(
        self,
        city: Optional[str] = None,
        location: Optional[str] = None,
        trip_destination: Optional[str] = None,
        timeout_ms: Optional[int] = None,
    ) -> EnrichmentResult:
        payload = {
            "city": truncate(city, 180),
            "location": truncate(location, 180),
            "tripDestination": truncate(trip_destination, 180),
        }
        return await self._run(
            "restaurants",
            RESTAURANTS_PROMPT,
            payload,
            sanitize_restaurants,
            bool,
            timeout_ms,
        )

    async def _run(self, kind, prompt, payload, sanitize, usable, timeout_ms) -> EnrichmentResult:
        if not any(self.gateway.is_configured(provider) for provider in ENRICHMENT_PROVIDERS):
            raise ConfigurationError("No enrichment provider is configured")

        options = CallOptions(
            timeout_ms=timeout_ms or config.ENRICHMENT_TIMEOUT_MS,
            temperature=0.4,
            max_tokens=900,
        )
        results: Dict[str, ProviderCallResult] = await self.parallel.run_parallel(
            prompt,
            json.dumps(payload, ensure_ascii=False),
            [ProviderConfig(provider, options) for provider in ENRICHMENT_PROVIDERS],
        )

        errors = []
        for provider in ENRICHMENT_PROVIDERS:
            result = results[provider]
            if not result.ok:
                errors.append(result.error or f"{provider} failed")
                continue
            data = sanitize(result.parsed)
            if not usable(data):
                errors.append(f"{provider} returned no usable {kind}")
                continue
            logger.info(f"Enrichment {kind} served by {provider} in {result.elapsed_ms}ms")
            return EnrichmentResult(data, provider, build_provider_meta(provider, results))

        logger.warning(f"Enrichment {kind} failed on every provider: {errors}")
        raise UpstreamError(f"Could not generate {kind} right now", warnings=errors)
