"""Field-by-field normalization of provider output into a CanonicalPayload.

Every function here is total: unparseable input yields ``None`` (or the
documented default), never an exception.
"""
import math
import re
from datetime import date
from typing import Any, Dict, Iterable, Mapping, Optional

from .schemas import (
    AiEnrichment,
    CanonicalMetadata,
    CanonicalPayload,
    CoreFields,
    Financial,
    ReservationStatus,
    ReservationType,
)

MONTHS = {
    # português
    "janeiro": 1, "fevereiro": 2, "março": 3, "marco": 3, "abril": 4, "maio": 5,
    "junho": 6, "julho": 7, "agosto": 8, "setembro": 9, "outubro": 10,
    "novembro": 11, "dezembro": 12,
    "jan": 1, "fev": 2, "mar": 3, "abr": 4, "mai": 5, "jun": 6, "jul": 7,
    "ago": 8, "set": 9, "out": 10, "nov": 11, "dez": 12,
    # english
    "january": 1, "february": 2, "march": 3, "april": 4, "may": 5, "june": 6,
    "july": 7, "august": 8, "september": 9, "october": 10, "november": 11, "december": 12,
    "feb": 2, "apr": 4, "aug": 8, "sep": 9, "sept": 9, "oct": 10, "dec": 12,
}
MONTH_NAMES = "|".join(sorted(MONTHS, key=len, reverse=True))

ISO_DATE_RE = re.compile(r"\b(20\d{2})[-/.](\d{1,2})[-/.](\d{1,2})\b")
DMY_DATE_RE = re.compile(r"\b(\d{1,2})[-/.](\d{1,2})[-/.](20\d{2}|\d{2})\b")
DAY_MONTH_NAME_RE = re.compile(
    rf"\b(\d{{1,2}})(?:º|o)?(?:\s+de)?\s+({MONTH_NAMES})\.?(?:\s+de)?,?\s+(20\d{{2}})\b",
    re.IGNORECASE,
)
MONTH_NAME_DAY_RE = re.compile(
    rf"\b({MONTH_NAMES})\.?\s+(\d{{1,2}})(?:st|nd|rd|th)?,?\s+(20\d{{2}})\b",
    re.IGNORECASE,
)
TIME_RE = re.compile(r"\b([01]\d|2[0-3])[:h]([0-5]\d)\b", re.IGNORECASE)

CURRENCY_SYMBOLS = {
    "R$": "BRL",
    "US$": "USD",
    "$": "USD",
    "€": "EUR",
    "£": "GBP",
}
KNOWN_CURRENCIES = {"BRL", "USD", "EUR", "CHF", "GBP", "ARS", "CLP", "UYU", "MXN", "JPY", "CAD", "AUD"}

TYPE_LABELS = {
    "flight": ReservationType.FLIGHT,
    "voo": ReservationType.FLIGHT,
    "air": ReservationType.FLIGHT,
    "lodging": ReservationType.LODGING,
    "hotel": ReservationType.LODGING,
    "stay": ReservationType.LODGING,
    "hospedagem": ReservationType.LODGING,
    "groundtransport": ReservationType.GROUND_TRANSPORT,
    "ground_transport": ReservationType.GROUND_TRANSPORT,
    "ground transport": ReservationType.GROUND_TRANSPORT,
    "transport": ReservationType.GROUND_TRANSPORT,
    "transporte": ReservationType.GROUND_TRANSPORT,
    "restaurant": ReservationType.RESTAURANT,
    "restaurante": ReservationType.RESTAURANT,
}

STATUS_LABELS = {
    "confirmed": ReservationStatus.CONFIRMED,
    "confirmado": ReservationStatus.CONFIRMED,
    "cancelled": ReservationStatus.CANCELLED,
    "canceled": ReservationStatus.CANCELLED,
    "cancelado": ReservationStatus.CANCELLED,
}

# Accepted keys per canonical field (English schema, camelCase and Portuguese)
SECTION_KEYS = {
    "metadata": ("metadata",),
    "core_fields": ("core_fields", "coreFields", "dados_principais"),
    "financial": ("financial", "financeiro"),
    "ai_enrichment": ("ai_enrichment", "aiEnrichment", "enriquecimento_ia"),
}
FIELD_KEYS = {
    "type": ("type", "tipo"),
    "confidence": ("confidence", "confianca"),
    "status": ("status",),
    "display_name": ("display_name", "displayName", "nome_exibicao"),
    "provider_name": ("provider_name", "providerName", "provider", "provedor"),
    "confirmation_code": ("confirmation_code", "confirmationCode", "codigo_reserva"),
    "traveler_name": ("traveler_name", "travelerName", "passageiro_hospede"),
    "start_date": ("start_date", "startDate", "data_inicio"),
    "start_time": ("start_time", "startTime", "hora_inicio"),
    "end_date": ("end_date", "endDate", "data_fim"),
    "end_time": ("end_time", "endTime", "hora_fim"),
    "origin": ("origin", "origem"),
    "destination": ("destination", "destino"),
    "total_amount": ("total_amount", "totalAmount", "valor_total"),
    "currency_code": ("currency_code", "currencyCode", "currency", "moeda"),
    "payment_method": ("payment_method", "paymentMethod", "metodo"),
    "loyalty_points_used": ("loyalty_points_used", "loyaltyPointsUsed", "pontos_utilizados"),
    "travel_tip": ("travel_tip", "travelTip", "dica_viagem"),
    "how_to_arrive": ("how_to_arrive", "howToArrive", "como_chegar"),
    "nearby_attractions": ("nearby_attractions", "nearbyAttractions", "atracoes_proximas"),
    "nearby_restaurants": ("nearby_restaurants", "nearbyRestaurants", "restaurantes_proximos"),
}


def str_or_none(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = value.strip()
    if not value or value.lower() in ("null", "none", "n/a"):
        return None
    return value


def parse_number(value: Any) -> Optional[float]:
    """Parse ``1.234,56`` / ``1,234.56`` / ``1234,5`` style numbers."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if not isinstance(value, str):
        return None

    sanitized = re.sub(r"[^0-9,.\-]", "", value).strip(".,")
    if not sanitized or sanitized == "-":
        return None

    has_dot, has_comma = "." in sanitized, "," in sanitized
    if has_dot and has_comma:
        if sanitized.rfind(",") > sanitized.rfind("."):
            sanitized = sanitized.replace(".", "").replace(",", ".")
        else:
            sanitized = sanitized.replace(",", "")
    elif has_comma:
        head, _, tail = sanitized.rpartition(",")
        # "1,234" is a thousands separator, "12,50" a decimal comma
        if len(tail) == 3 and head.replace(",", "").isdigit():
            sanitized = sanitized.replace(",", "")
        else:
            sanitized = sanitized.replace(".", "").replace(",", ".")
    elif sanitized.count(".") > 1:
        sanitized = sanitized.replace(".", "")

    try:
        parsed = float(sanitized)
    except ValueError:
        return None
    return parsed if math.isfinite(parsed) else None


def normalize_money(value: Any) -> Optional[float]:
    parsed = parse_number(value)
    return round(parsed, 2) if parsed is not None else None


def _format_date(year: int, month: int, day: int) -> Optional[str]:
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def normalize_date(value: Any) -> Optional[str]:
    """Normalize a date-like string to ISO ``YYYY-MM-DD``."""
    raw = str_or_none(value)
    if not raw:
        return None

    match = ISO_DATE_RE.search(raw)
    if match:
        return _format_date(int(match.group(1)), int(match.group(2)), int(match.group(3)))

    match = DMY_DATE_RE.search(raw)
    if match:
        year = int(match.group(3))
        if year < 100:
            year += 2000
        return _format_date(year, int(match.group(2)), int(match.group(1)))

    match = DAY_MONTH_NAME_RE.search(raw)
    if match:
        month = MONTHS[match.group(2).lower()]
        return _format_date(int(match.group(3)), month, int(match.group(1)))

    match = MONTH_NAME_DAY_RE.search(raw)
    if match:
        month = MONTHS[match.group(1).lower()]
        return _format_date(int(match.group(3)), month, int(match.group(2)))

    return None


def normalize_time(value: Any) -> Optional[str]:
    """24-hour ``HH:MM`` (``14h00`` accepted)."""
    raw = str_or_none(value)
    if not raw:
        return None
    match = TIME_RE.search(raw)
    return f"{match.group(1)}:{match.group(2)}" if match else None


def normalize_confidence(value: Any) -> int:
    """Map a ``[0,1]`` or ``[0,100]`` confidence to an integer in ``[0,100]``."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, str):
        value = parse_number(value)
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        return 0
    if value <= 1:
        value = value * 100
    return max(0, min(100, int(round(value))))


def confidence_to_unit(value: int) -> float:
    return max(0.0, min(1.0, round(value / 100, 4)))


def normalize_currency(value: Any) -> Optional[str]:
    raw = str_or_none(value)
    if not raw:
        return None
    upper = raw.upper()
    if upper in CURRENCY_SYMBOLS:
        return CURRENCY_SYMBOLS[upper]
    letters = re.sub(r"[^A-Z]", "", upper)
    if upper.startswith("R$") or letters == "R":
        return "BRL"
    if len(letters) == 3:
        return letters
    return None


def normalize_type(value: Any) -> Optional[ReservationType]:
    raw = str_or_none(value)
    if not raw:
        return None
    return TYPE_LABELS.get(raw.lower())


def normalize_status(value: Any) -> ReservationStatus:
    raw = str_or_none(value)
    if not raw:
        return ReservationStatus.PENDING
    return STATUS_LABELS.get(raw.lower(), ReservationStatus.PENDING)


def _pick(source: Mapping[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        if key in source and source[key] is not None:
            return source[key]
    return None


def _section(raw: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = _pick(raw, SECTION_KEYS[name])
    return value if isinstance(value, Mapping) else {}


def normalize_payload(raw: Mapping[str, Any]) -> CanonicalPayload:
    """Validate an arbitrary provider JSON object into the canonical schema."""
    metadata = _section(raw, "metadata")
    core = _section(raw, "core_fields")
    financial = _section(raw, "financial")
    enrichment = _section(raw, "ai_enrichment")

    def field(section: Mapping[str, Any], name: str) -> Any:
        return _pick(section, FIELD_KEYS[name])

    return CanonicalPayload(
        metadata=CanonicalMetadata(
            type=normalize_type(field(metadata, "type")),
            confidence=normalize_confidence(field(metadata, "confidence")),
            status=normalize_status(field(metadata, "status")),
        ),
        core_fields=CoreFields(
            display_name=str_or_none(field(core, "display_name")),
            provider_name=str_or_none(field(core, "provider_name")),
            confirmation_code=str_or_none(field(core, "confirmation_code")),
            traveler_name=str_or_none(field(core, "traveler_name")),
            start_date=normalize_date(field(core, "start_date")),
            start_time=normalize_time(field(core, "start_time")),
            end_date=normalize_date(field(core, "end_date")),
            end_time=normalize_time(field(core, "end_time")),
            origin=str_or_none(field(core, "origin")),
            destination=str_or_none(field(core, "destination")),
        ),
        financial=Financial(
            total_amount=normalize_money(field(financial, "total_amount")),
            currency_code=normalize_currency(field(financial, "currency_code")),
            payment_method=str_or_none(field(financial, "payment_method")),
            loyalty_points_used=parse_number(field(financial, "loyalty_points_used")),
        ),
        ai_enrichment=AiEnrichment(
            travel_tip=str_or_none(field(enrichment, "travel_tip")),
            how_to_arrive=str_or_none(field(enrichment, "how_to_arrive")),
            nearby_attractions=str_or_none(field(enrichment, "nearby_attractions")),
            nearby_restaurants=str_or_none(field(enrichment, "nearby_restaurants")),
        ),
    )


def payload_from_dict(data: Optional[Dict[str, Any]]) -> CanonicalPayload:
    """Re-hydrate a payload stored with ``CanonicalPayload.to_api``."""
    if not data:
        return CanonicalPayload()
    return CanonicalPayload.model_validate(data)
