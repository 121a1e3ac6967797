"""Deterministic rule engine used when no LLM candidate is usable.

Each rule is ``(name, pattern, extractor)``; rules run in order and the first
rule to produce a fact wins it. Rules never raise.
"""
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from .normalize import normalize_currency, normalize_date, normalize_money
from .schemas import (
    CanonicalMetadata,
    CanonicalPayload,
    CoreFields,
    Financial,
    ReservationStatus,
    ReservationType,
    Scope,
)

# Heuristic output is a plausible guess, never a confident one
HEURISTIC_CONFIDENCE = 45

Facts = Dict[str, Any]

_DATE_TOKEN = r"(\d{1,2}[/.\-]\d{1,2}[/.\-](?:20\d{2}|\d{2})|20\d{2}[/.\-]\d{1,2}[/.\-]\d{1,2})"
_PLACE = r"([A-ZÀ-Ý][A-Za-zÀ-ÿ'.]*(?: [A-ZÀ-Ý][A-Za-zÀ-ÿ'.]*){0,3})"

CARRIERS = {
    "latam": "LATAM",
    "gol": "GOL",
    "azul": "AZUL",
    "avianca": "Avianca",
    "copa airlines": "Copa Airlines",
    "aerolineas argentinas": "Aerolíneas Argentinas",
    "tap air portugal": "TAP Air Portugal",
    "air france": "Air France",
    "lufthansa": "Lufthansa",
    "iberia": "Iberia",
    "american airlines": "American Airlines",
    "united airlines": "United Airlines",
    "delta": "Delta",
}

TRAVEL_SIGNAL_RE = re.compile(
    r"\b(voo|flight|airbnb|hotel|hospedagem|check-in|check-out|checkin|checkout|airport|aeroporto"
    r"|pnr|iata|itiner[áa]rio|itinerary|booking|trip|viagem|restaurante|restaurant|boarding"
    r"|embarque|passagem|bilhete|pousada|hostel|ônibus|onibus|rodovi[áa]ria|trem|train|transfer"
    r"|reserva de mesa|opentable)\b"
    r"|\b(latam|gol|azul|air france|lufthansa|booking\.com|airbnb)\b",
    re.IGNORECASE,
)
FLIGHT_HINT_RE = re.compile(
    r"\b(latam|gol|azul|flight|voo|boarding|embarque|pnr|iata|ticket|itiner[áa]rio|aeroporto|airport)\b",
    re.IGNORECASE,
)
LODGING_HINT_RE = re.compile(
    r"\b(airbnb|hotel|hospedagem|booking|check-in|checkin|checkout|check out|pousada|hostel)\b",
    re.IGNORECASE,
)
RESTAURANT_HINT_RE = re.compile(
    r"\b(restaurante|restaurant|reserva de mesa|opentable)\b",
    re.IGNORECASE,
)
TRANSPORT_HINT_RE = re.compile(
    r"\b(ônibus|onibus|bus|rodovi[áa]ria|trem|train|transfer|locadora|car rental|aluguel de carro)\b",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class ScopeHints:
    scope: Scope
    forced_type: Optional[ReservationType] = None


def infer_scope_and_type_hints(text: str, file_name: Optional[str] = None) -> ScopeHints:
    """Vocabulary-based scope decision plus a type hint when the wording is clear."""
    bag = f"{text or ''} {file_name or ''}"
    if not TRAVEL_SIGNAL_RE.search(bag):
        return ScopeHints(scope=Scope.OUTSIDE_SCOPE)
    if FLIGHT_HINT_RE.search(bag):
        return ScopeHints(Scope.TRIP_RELATED, ReservationType.FLIGHT)
    if RESTAURANT_HINT_RE.search(bag):
        return ScopeHints(Scope.TRIP_RELATED, ReservationType.RESTAURANT)
    if LODGING_HINT_RE.search(bag):
        return ScopeHints(Scope.TRIP_RELATED, ReservationType.LODGING)
    if TRANSPORT_HINT_RE.search(bag):
        return ScopeHints(Scope.TRIP_RELATED, ReservationType.GROUND_TRANSPORT)
    return ScopeHints(Scope.TRIP_RELATED)


@dataclass(frozen=True)
class HeuristicRule:
    name: str
    pattern: re.Pattern
    extract: Callable[[re.Match], Facts]

    def apply(self, text: str) -> Facts:
        match = self.pattern.search(text)
        if not match:
            return {}
        return {key: value for key, value in self.extract(match).items() if value is not None}


def _route(match: re.Match) -> Facts:
    return {"origin": match.group(1).upper(), "destination": match.group(2).upper()}


def _places(match: re.Match) -> Facts:
    return {"origin": match.group(1).strip(), "destination": match.group(2).strip()}


def _amount(match: re.Match) -> Facts:
    return {
        "total_amount": normalize_money(match.group(2)),
        "currency_code": normalize_currency(match.group(1)),
    }


def _carrier(match: re.Match) -> Facts:
    return {"carrier": CARRIERS.get(match.group(1).lower())}


RULES: List[HeuristicRule] = [
    HeuristicRule(
        "airport_pair",
        re.compile(r"\b([A-Z]{3})\s*(?:->|-|→|/|>)\s*([A-Z]{3})\b"),
        _route,
    ),
    HeuristicRule(
        "labeled_route",
        re.compile(
            r"\b(?:origem|from|de)\s*[:\-]?\s*((?-i:[A-Z]{3}))\b.*?"
            r"\b(?:destino|to|para)\s*[:\-]?\s*((?-i:[A-Z]{3}))\b",
            re.IGNORECASE | re.DOTALL,
        ),
        _route,
    ),
    HeuristicRule(
        "city_arrow",
        re.compile(_PLACE + r"\s*(?:→|->|=>)\s*" + _PLACE),
        _places,
    ),
    HeuristicRule(
        "flight_number",
        re.compile(r"\b([A-Z]{2}|[A-Z]\d|\d[A-Z])\s?(\d{3,4})\b"),
        lambda m: {"flight_number": f"{m.group(1)}{m.group(2)}"},
    ),
    HeuristicRule(
        "booking_code",
        re.compile(
            r"(?:localizador|c[oó]digo(?: de)? (?:da )?reserva|booking (?:code|reference)"
            r"|confirmation(?: code| number)?|record locator|pnr)\s*(?:n[º°o.]\s*)?[:#\-]?\s*"
            r"((?-i:[A-Z0-9]{5,8}))\b",
            re.IGNORECASE,
        ),
        lambda m: {"confirmation_code": m.group(1)},
    ),
    HeuristicRule(
        "iso_date",
        re.compile(r"\b20\d{2}[-/.]\d{1,2}[-/.]\d{1,2}\b"),
        lambda m: {"date": normalize_date(m.group(0))},
    ),
    HeuristicRule(
        "european_date",
        re.compile(r"\b\d{1,2}[-/.]\d{1,2}[-/.]20\d{2}\b"),
        lambda m: {"date": normalize_date(m.group(0))},
    ),
    HeuristicRule(
        "month_name_date",
        re.compile(
            r"\b\d{1,2}(?:\s+de)?\s+[A-Za-zç]{3,9}\.?(?:\s+de)?,?\s+20\d{2}\b"
            r"|\b[A-Za-z]{3,9}\.?\s+\d{1,2}(?:st|nd|rd|th)?,?\s+20\d{2}\b",
            re.IGNORECASE,
        ),
        lambda m: {"date": normalize_date(m.group(0))},
    ),
    HeuristicRule(
        "check_in_date",
        re.compile(r"(?:check[\s-]?in|entrada)\s*[:\-]?\s*" + _DATE_TOKEN, re.IGNORECASE),
        lambda m: {"check_in": normalize_date(m.group(1))},
    ),
    HeuristicRule(
        "check_out_date",
        re.compile(r"(?:check[\s-]?out|sa[ií]da)\s*[:\-]?\s*" + _DATE_TOKEN, re.IGNORECASE),
        lambda m: {"check_out": normalize_date(m.group(1))},
    ),
    HeuristicRule(
        "time_24h",
        re.compile(r"\b([01]\d|2[0-3])[:h]([0-5]\d)\b", re.IGNORECASE),
        lambda m: {"time": f"{m.group(1)}:{m.group(2)}"},
    ),
    HeuristicRule(
        "currency_amount",
        re.compile(r"(R\$|US\$|USD|EUR|CHF|GBP|BRL|€|£|\$)\s*(-?[0-9][0-9.,]*)", re.IGNORECASE),
        _amount,
    ),
    HeuristicRule(
        "carrier",
        re.compile(r"\b(" + "|".join(re.escape(name) for name in CARRIERS) + r")\b", re.IGNORECASE),
        _carrier,
    ),
]


def run_rules(text: str, file_name: Optional[str] = None, rules: Optional[List[HeuristicRule]] = None) -> Facts:
    """Apply the rules in order; earlier rules win conflicting facts."""
    facts: Facts = {}
    for rule in rules or RULES:
        for key, value in rule.apply(text or "").items():
            facts.setdefault(key, value)

    if not file_name:
        return facts
    spaced = re.sub(r"[-_.]+", " ", file_name)
    if "flight_number" not in facts:
        match = re.search(r"\b([A-Z]{2}\d{3,4})\b", spaced, re.IGNORECASE)
        if match:
            facts["flight_number"] = match.group(1).upper()
    if "carrier" not in facts:
        facts.update(RULES[-1].apply(spaced))
    return facts


def _clean_file_name(file_name: Optional[str]) -> Optional[str]:
    if not file_name:
        return None
    stem = re.sub(r"\.[^.]+$", "", file_name)
    cleaned = re.sub(r"[-_]+", " ", stem).strip()
    return cleaned or None


def _infer_type(facts: Facts) -> ReservationType:
    if facts.get("flight_number") or facts.get("carrier"):
        return ReservationType.FLIGHT
    if facts.get("check_in") or facts.get("check_out"):
        return ReservationType.LODGING
    return ReservationType.GROUND_TRANSPORT


def backfill(payload: CanonicalPayload, facts: Facts) -> CanonicalPayload:
    """Fill empty core/financial fields from rule facts; provider values always win."""
    core = payload.core_fields.model_copy()
    financial = payload.financial.model_copy()
    kind = payload.metadata.type
    lodging = kind == ReservationType.LODGING

    core.origin = core.origin or facts.get("origin")
    core.destination = core.destination or facts.get("destination")
    core.start_date = core.start_date or (facts.get("check_in") if lodging else None) or facts.get("date")
    if lodging:
        core.end_date = core.end_date or facts.get("check_out")
    core.start_time = core.start_time or facts.get("time")

    if kind == ReservationType.FLIGHT:
        core.confirmation_code = core.confirmation_code or facts.get("confirmation_code")
        core.display_name = core.display_name or facts.get("flight_number")
        core.provider_name = core.provider_name or facts.get("carrier")

    if financial.total_amount is None:
        financial.total_amount = facts.get("total_amount")
    financial.currency_code = financial.currency_code or facts.get("currency_code")

    return payload.model_copy(update={"core_fields": core, "financial": financial})


def heuristic_extract(
    text: str,
    file_name: Optional[str] = None,
    trip_destination: Optional[str] = None,
) -> Tuple[CanonicalPayload, Scope]:
    """Best-effort payload from regex rules alone. Never raises."""
    hints = infer_scope_and_type_hints(text, file_name)
    if hints.scope == Scope.OUTSIDE_SCOPE:
        payload = CanonicalPayload(metadata=CanonicalMetadata(confidence=HEURISTIC_CONFIDENCE))
        return payload, Scope.OUTSIDE_SCOPE

    facts = run_rules(text, file_name)
    kind = hints.forced_type or _infer_type(facts)
    display_name = None if kind == ReservationType.FLIGHT else _clean_file_name(file_name)

    payload = CanonicalPayload(
        metadata=CanonicalMetadata(
            type=kind,
            confidence=HEURISTIC_CONFIDENCE,
            status=ReservationStatus.PENDING,
        ),
        core_fields=CoreFields(
            display_name=display_name,
            destination=trip_destination if kind in (ReservationType.LODGING, ReservationType.RESTAURANT) else None,
        ),
        financial=Financial(),
    )
    return backfill(payload, facts), Scope.TRIP_RELATED
