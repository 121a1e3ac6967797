"""Canonical reservation schema."""
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class ReservationType(str, Enum):
    FLIGHT = "Flight"
    LODGING = "Lodging"
    GROUND_TRANSPORT = "GroundTransport"
    RESTAURANT = "Restaurant"

    @property
    def legacy(self) -> str:
        """Lower-case name kept for older clients (``flight``, ``lodging``...)."""
        return {
            ReservationType.FLIGHT: "flight",
            ReservationType.LODGING: "lodging",
            ReservationType.GROUND_TRANSPORT: "ground_transport",
            ReservationType.RESTAURANT: "restaurant",
        }[self]


class ReservationStatus(str, Enum):
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    CANCELLED = "Cancelled"


class Scope(str, Enum):
    TRIP_RELATED = "trip_related"
    OUTSIDE_SCOPE = "outside_scope"


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class CanonicalMetadata(CamelModel):
    type: Optional[ReservationType] = None
    confidence: int = Field(default=0, ge=0, le=100)
    status: ReservationStatus = ReservationStatus.PENDING
    # Stamped by the import queue for duplicate detection
    file_hash: Optional[str] = None
    file_name: Optional[str] = None


class CoreFields(CamelModel):
    display_name: Optional[str] = None
    provider_name: Optional[str] = None
    confirmation_code: Optional[str] = None
    traveler_name: Optional[str] = None
    start_date: Optional[str] = None
    start_time: Optional[str] = None
    end_date: Optional[str] = None
    end_time: Optional[str] = None
    origin: Optional[str] = None
    destination: Optional[str] = None


class Financial(CamelModel):
    total_amount: Optional[float] = None
    currency_code: Optional[str] = None
    payment_method: Optional[str] = None
    loyalty_points_used: Optional[float] = None

    @field_validator("total_amount")
    @classmethod
    def round_amount(cls, value: Optional[float]) -> Optional[float]:
        return round(value, 2) if value is not None else None


class AiEnrichment(CamelModel):
    travel_tip: Optional[str] = None
    how_to_arrive: Optional[str] = None
    nearby_attractions: Optional[str] = None
    nearby_restaurants: Optional[str] = None


class CanonicalPayload(CamelModel):
    """Provider-agnostic structured reservation record."""

    metadata: CanonicalMetadata = Field(default_factory=CanonicalMetadata)
    core_fields: CoreFields = Field(default_factory=CoreFields)
    financial: Financial = Field(default_factory=Financial)
    ai_enrichment: AiEnrichment = Field(default_factory=AiEnrichment)

    @property
    def date_range_valid(self) -> bool:
        """False only when both dates are known and the end precedes the start."""
        start, end = self.core_fields.start_date, self.core_fields.end_date
        if not start or not end:
            return True
        return start <= end

    @property
    def has_negative_amount(self) -> bool:
        amount = self.financial.total_amount
        return amount is not None and amount < 0

    def to_api(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
