"""Persistence collaborators for imported documents and reservations."""

import uuid
from typing import Any, Dict, Optional, Protocol

from supabase import AsyncClient

from trip_import.extraction import CanonicalPayload, ReservationType
from .models import utc_now_iso

RESERVATION_TABLES = {
    ReservationType.FLIGHT: "flights",
    ReservationType.LODGING: "stays",
    ReservationType.GROUND_TRANSPORT: "transports",
    ReservationType.RESTAURANT: "restaurants",
}


def reservation_row(canonical: CanonicalPayload) -> Dict[str, Any]:
    core = canonical.core_fields
    financial = canonical.financial
    return {
        "display_name": core.display_name,
        "provider_name": core.provider_name,
        "confirmation_code": core.confirmation_code,
        "traveler_name": core.traveler_name,
        "start_date": core.start_date,
        "start_time": core.start_time,
        "end_date": core.end_date,
        "end_time": core.end_time,
        "origin": core.origin,
        "destination": core.destination,
        "total_amount": financial.total_amount,
        "currency_code": financial.currency_code,
        "status": canonical.metadata.status.value,
        "payload": canonical.to_api(),
    }


class ImportStore(Protocol):
    async def find_imported_document_by_hash(self, user_id: str, file_hash: str) -> Optional[Dict[str, Any]]: ...

    async def create_document(
        self,
        user_id: str,
        file_name: str,
        file_hash: str,
        mime_type: Optional[str],
        trip_id: Optional[str] = None,
    ) -> str: ...

    async def update_document(self, document_id: str, fields: Dict[str, Any]) -> None: ...

    async def save_reservation(
        self,
        user_id: str,
        kind: ReservationType,
        canonical: CanonicalPayload,
        document_id: Optional[str],
        trip_id: Optional[str] = None,
    ) -> str: ...

    async def mark_imported(self, document_id: str, canonical: CanonicalPayload) -> None: ...


class InMemoryImportStore:
    """Process-local store for development and tests."""

    def __init__(self):
        self.documents: Dict[str, Dict[str, Any]] = {}
        self.reservations: Dict[str, Dict[str, Any]] = {}

    async def find_imported_document_by_hash(self, user_id, file_hash):
        for document in self.documents.values():
            if document["user_id"] == user_id and document["file_hash"] == file_hash and document["imported"]:
                return document
        return None

    async def create_document(self, user_id, file_name, file_hash, mime_type, trip_id=None) -> str:
        document_id = str(uuid.uuid4())
        self.documents[document_id] = {
            "id": document_id,
            "user_id": user_id,
            "trip_id": trip_id,
            "file_name": file_name,
            "file_hash": file_hash,
            "mime_type": mime_type,
            "imported": False,
            "created_at": utc_now_iso(),
        }
        return document_id

    async def update_document(self, document_id, fields) -> None:
        self.documents[document_id].update(fields)

    async def save_reservation(self, user_id, kind, canonical, document_id, trip_id=None) -> str:
        reservation_id = str(uuid.uuid4())
        self.reservations[reservation_id] = {
            "id": reservation_id,
            "table": RESERVATION_TABLES[kind],
            "user_id": user_id,
            "trip_id": trip_id,
            "document_id": document_id,
            **reservation_row(canonical),
        }
        return reservation_id

    async def mark_imported(self, document_id, canonical) -> None:
        self.documents[document_id].update(
            imported=True,
            extraction_payload=canonical.to_api(),
            updated_at=utc_now_iso(),
        )


class SupabaseImportStore:
    """``documents`` plus one table per reservation type."""

    def __init__(self, client: AsyncClient):
        self.client = client

    async def find_imported_document_by_hash(self, user_id, file_hash):
        response = await (
            self.client.table("documents")
            .select("*")
            .eq("user_id", user_id)
            .eq("file_hash", file_hash)
            .eq("imported", True)
            .limit(1)
            .execute()
        )
        rows = response.data or []
        return rows[0] if rows else None

    async def create_document(self, user_id, file_name, file_hash, mime_type, trip_id=None) -> str:
        response = await (
            self.client.table("documents")
            .insert({
                "user_id": user_id,
                "trip_id": trip_id,
                "file_name": file_name,
                "file_hash": file_hash,
                "mime_type": mime_type,
                "imported": False,
                "import_source": "file",
            })
            .execute()
        )
        return response.data[0]["id"]

    async def update_document(self, document_id, fields) -> None:
        await (
            self.client.table("documents")
            .update({**fields, "updated_at": utc_now_iso()})
            .eq("id", document_id)
            .execute()
        )

    async def save_reservation(self, user_id, kind, canonical, document_id, trip_id=None) -> str:
        response = await (
            self.client.table(RESERVATION_TABLES[kind])
            .insert({
                "user_id": user_id,
                "trip_id": trip_id,
                "document_id": document_id,
                **reservation_row(canonical),
            })
            .execute()
        )
        return response.data[0]["id"]

    async def mark_imported(self, document_id, canonical) -> None:
        await self.update_document(
            document_id,
            {"imported": True, "extraction_payload": canonical.to_api()},
        )
