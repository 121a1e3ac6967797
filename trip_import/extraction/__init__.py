"""Canonical reservation extraction."""
from .extractor import CanonicalExtractor, ExtractionOutcome, normalize_canonical
from .heuristics import RULES, HeuristicRule, heuristic_extract, infer_scope_and_type_hints, run_rules
from .missing_fields import compute_missing_fields
from .normalize import normalize_payload, payload_from_dict
from .schemas import CanonicalPayload, ReservationStatus, ReservationType, Scope
from .scoring import Candidate, CandidateScorer

__all__ = [
    "CanonicalExtractor",
    "ExtractionOutcome",
    "normalize_canonical",
    "RULES",
    "HeuristicRule",
    "heuristic_extract",
    "infer_scope_and_type_hints",
    "run_rules",
    "compute_missing_fields",
    "normalize_payload",
    "payload_from_dict",
    "CanonicalPayload",
    "ReservationStatus",
    "ReservationType",
    "Scope",
    "Candidate",
    "CandidateScorer",
]
