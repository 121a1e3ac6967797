"""Required-field checklists per reservation type."""
from typing import List, Optional

from .schemas import CanonicalPayload, ReservationType, Scope


def compute_missing_fields(
    kind: Optional[ReservationType],
    payload: CanonicalPayload,
    scope: Scope,
) -> List[str]:
    """Dotted names of the required fields ``payload`` lacks.

    Out-of-scope documents never report missing fields.
    """
    if scope == Scope.OUTSIDE_SCOPE:
        return []
    if kind is None:
        return ["metadata.type"]

    core = payload.core_fields
    missing: List[str] = []

    if kind == ReservationType.FLIGHT:
        if not core.origin:
            missing.append("flight.origin")
        if not core.destination:
            missing.append("flight.destination")
        if not core.start_date:
            missing.append("flight.start_date")
        if not core.confirmation_code and not core.display_name:
            missing.append("flight.identifier")
    elif kind == ReservationType.LODGING:
        if not core.display_name:
            missing.append("lodging.display_name")
        if not core.start_date:
            missing.append("lodging.start_date")
        if not core.end_date:
            missing.append("lodging.end_date")
        if not payload.financial.total_amount:
            missing.append("lodging.total_amount")
    elif kind == ReservationType.GROUND_TRANSPORT:
        if not core.origin:
            missing.append("ground_transport.origin")
        if not core.destination:
            missing.append("ground_transport.destination")
        if not core.start_date:
            missing.append("ground_transport.start_date")
    elif kind == ReservationType.RESTAURANT:
        if not core.display_name:
            missing.append("restaurant.name")
        if not core.destination:
            missing.append("restaurant.city")

    return missing
