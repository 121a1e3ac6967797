"""Raw text to canonical reservation payload."""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from loguru import logger
from pydantic import ValidationError

from config import config
from trip_import.inference import (
    CallOptions,
    ParallelInferenceCoordinator,
    ProviderCallResult,
    ProviderConfig,
    ProviderGateway,
    build_provider_meta,
    extract_json_object,
)
from .heuristics import backfill, heuristic_extract, infer_scope_and_type_hints, run_rules
from .normalize import confidence_to_unit, normalize_payload
from .prompts import EXTRACTION_SYSTEM_PROMPT, MAX_EXTRACTION_CHARS, build_extraction_payload
from .schemas import CanonicalPayload, Scope
from .scoring import Candidate, CandidateScorer

PRIMARY_PROVIDERS = ("openrouter", "gemini")
TERTIARY_PROVIDER = "lovable_ai"
HEURISTIC_PROVIDER = "heuristic"


def normalize_canonical(
    raw: Mapping[str, Any],
    text: str,
    file_name: Optional[str] = None,
) -> Tuple[CanonicalPayload, Scope]:
    """Normalize one provider object and decide its scope.

    A payload without a type is out of scope; so is any payload whose source
    text carries no travel vocabulary. Trip-related payloads get empty core
    fields back-filled from the rule engine.
    """
    payload = normalize_payload(raw)
    hints = infer_scope_and_type_hints(text, file_name)
    kind = payload.metadata.type or hints.forced_type

    if kind is None or hints.scope == Scope.OUTSIDE_SCOPE:
        metadata = payload.metadata.model_copy(update={"type": None})
        return payload.model_copy(update={"metadata": metadata}), Scope.OUTSIDE_SCOPE

    metadata = payload.metadata.model_copy(update={"type": kind})
    payload = payload.model_copy(update={"metadata": metadata})
    return backfill(payload, run_rules(text, file_name)), Scope.TRIP_RELATED


def extraction_quality(confidence: int) -> str:
    if confidence >= 75:
        return "high"
    if confidence >= 55:
        return "medium"
    return "low"


def field_confidence(payload: CanonicalPayload) -> Dict[str, float]:
    core = payload.core_fields
    return {
        "flight.route": 0.9 if core.origin and core.destination else 0.4,
        "flight.date": 0.85 if core.start_date else 0.3,
        "lodging.stay_dates": 0.9 if core.start_date and core.end_date else 0.35,
    }


@dataclass
class ExtractionOutcome:
    canonical: CanonicalPayload
    scope: Scope
    provider: str
    missing_fields: List[str]
    candidates: List[Candidate] = field(default_factory=list)
    provider_meta: Dict[str, Any] = field(default_factory=dict)

    @property
    def confidence(self) -> float:
        return confidence_to_unit(self.canonical.metadata.confidence)

    def to_view(self) -> Dict[str, Any]:
        """Response shape of the extraction endpoint."""
        canonical = self.canonical.to_api()
        kind = self.canonical.metadata.type
        return {
            "metadata": canonical["metadata"],
            "coreFields": canonical["coreFields"],
            "financial": canonical["financial"],
            "aiEnrichment": canonical["aiEnrichment"],
            "type": kind.legacy if kind and self.scope == Scope.TRIP_RELATED else None,
            "scope": self.scope.value,
            "confidence": self.confidence,
            "missingFields": list(self.missing_fields),
            "canonical": canonical,
            "provider_meta": self.provider_meta,
            "extraction_quality": extraction_quality(self.canonical.metadata.confidence),
            "field_confidence": field_confidence(self.canonical),
            "date_range_valid": self.canonical.date_range_valid,
        }


class CanonicalExtractor:
    """Parallel LLM candidates, scored; lovable_ai when none parse; regex rules last."""

    def __init__(self, gateway: ProviderGateway, scorer: Optional[CandidateScorer] = None):
        self.gateway = gateway
        self.parallel = ParallelInferenceCoordinator(gateway)
        self.scorer = scorer or CandidateScorer()

    async def extract(
        self,
        raw_text: str,
        file_name: Optional[str] = None,
        timeout_ms: Optional[int] = None,
        trip_destination: Optional[str] = None,
    ) -> ExtractionOutcome:
        text = (raw_text or "")[:MAX_EXTRACTION_CHARS]
        payload = build_extraction_payload(text, file_name or "file")
        options = CallOptions(
            timeout_ms=timeout_ms or config.EXTRACTION_TIMEOUT_MS,
            temperature=0.05,
            max_tokens=1300,
        )

        results: Dict[str, ProviderCallResult] = await self.parallel.run_parallel(
            EXTRACTION_SYSTEM_PROMPT,
            payload,
            [ProviderConfig(provider, options) for provider in PRIMARY_PROVIDERS],
        )
        candidates = self._candidates(results, text, file_name)

        if not candidates and self.gateway.is_configured(TERTIARY_PROVIDER):
            logger.warning("No primary extraction candidate, falling back to lovable_ai")
            result = await self.gateway.call(TERTIARY_PROVIDER, EXTRACTION_SYSTEM_PROMPT, payload, options)
            if result.ok:
                result = result.with_parsed(extract_json_object(result.raw_text))
            results[TERTIARY_PROVIDER] = result
            candidates = self._candidates({TERTIARY_PROVIDER: result}, text, file_name)

        if not candidates:
            logger.warning("All extraction providers failed, using heuristic rules")
            candidates = [self.heuristic_candidate(text, file_name, trip_destination)]

        winner = self.scorer.select(candidates)
        outcome = ExtractionOutcome(
            canonical=winner.canonical,
            scope=winner.scope,
            provider=winner.provider,
            missing_fields=winner.missing_fields,
            candidates=candidates,
            provider_meta=build_provider_meta(winner.provider, results),
        )
        logger.info(
            f"Extraction selected={winner.provider} score={winner.score} "
            f"type={winner.canonical.metadata.type} scope={winner.scope.value} "
            f"missing={len(winner.missing_fields)}"
        )
        return outcome

    def _candidates(
        self,
        results: Mapping[str, ProviderCallResult],
        text: str,
        file_name: Optional[str],
    ) -> List[Candidate]:
        candidates = []
        for provider, result in results.items():
            if not result.ok or not isinstance(result.parsed, dict):
                logger.warning(f"[{provider}] no extraction candidate: {result.error}")
                continue
            try:
                canonical, scope = normalize_canonical(result.parsed, text, file_name)
            except ValidationError as e:
                logger.warning(f"[{provider}] payload rejected: {e.error_count()} validation errors")
                continue
            candidates.append(self.scorer.build(canonical, scope, provider))
        return candidates

    def heuristic_candidate(
        self,
        text: str,
        file_name: Optional[str] = None,
        trip_destination: Optional[str] = None,
    ) -> Candidate:
        canonical, scope = heuristic_extract(text, file_name, trip_destination)
        return self.scorer.build(canonical, scope, HEURISTIC_PROVIDER)

    def heuristic_outcome(
        self,
        text: str,
        file_name: Optional[str] = None,
        trip_destination: Optional[str] = None,
    ) -> ExtractionOutcome:
        """Rule-engine-only outcome, no provider calls."""
        candidate = self.heuristic_candidate(text, file_name, trip_destination)
        return ExtractionOutcome(
            canonical=candidate.canonical,
            scope=candidate.scope,
            provider=candidate.provider,
            missing_fields=candidate.missing_fields,
            candidates=[candidate],
            provider_meta=build_provider_meta(candidate.provider, {}),
        )
