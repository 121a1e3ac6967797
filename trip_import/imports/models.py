"""Import queue item state."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from trip_import.extraction import CanonicalPayload, Scope


class ImportStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    NEEDS_CONFIRMATION = "needs_confirmation"
    AUTO_EXTRACTED = "auto_extracted"
    FAILED = "failed"
    SAVED = "saved"


class StepStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


VISUAL_STEPS = ("read", "identified", "saving", "tips", "done")
CONFIRMABLE = (ImportStatus.NEEDS_CONFIRMATION, ImportStatus.AUTO_EXTRACTED)


def default_visual_steps() -> Dict[str, StepStatus]:
    return {step: StepStatus.PENDING for step in VISUAL_STEPS}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class ImportQueueItem:
    user_id: str
    file_name: str
    file_hash: str
    mime_type: Optional[str] = None
    content: bytes = field(default=b"", repr=False)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    document_id: Optional[str] = None
    status: ImportStatus = ImportStatus.PENDING
    scope: Optional[Scope] = None
    confidence: Optional[float] = None
    missing_fields: List[str] = field(default_factory=list)
    canonical_payload: Optional[CanonicalPayload] = None
    provider: Optional[str] = None
    visual_steps: Dict[str, StepStatus] = field(default_factory=default_visual_steps)
    warnings: List[str] = field(default_factory=list)
    provider_meta: Optional[Dict[str, Any]] = None
    raw_text: str = ""
    extraction_method: Optional[str] = None
    extraction_quality: Optional[str] = None
    extraction_history: List[Dict[str, Any]] = field(default_factory=list)
    reprocess_count: int = 0
    trip_id: Optional[str] = None
    trip_destination: Optional[str] = None
    created_at: str = field(default_factory=utc_now_iso)

    @property
    def is_terminal(self) -> bool:
        return self.status in (ImportStatus.SAVED, ImportStatus.FAILED)

    def set_step(self, step: str, status: StepStatus) -> None:
        self.visual_steps[step] = status

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "fileName": self.file_name,
            "fileHash": self.file_hash,
            "mimeType": self.mime_type,
            "documentId": self.document_id,
            "status": self.status.value,
            "scope": self.scope.value if self.scope else None,
            "confidence": self.confidence,
            "missingFields": list(self.missing_fields),
            "canonicalPayload": self.canonical_payload.to_api() if self.canonical_payload else None,
            "provider": self.provider,
            "visualSteps": {step: status.value for step, status in self.visual_steps.items()},
            "warnings": list(self.warnings),
            "providerMeta": self.provider_meta,
            "extractionMethod": self.extraction_method,
            "extractionQuality": self.extraction_quality,
            "extractionHistory": list(self.extraction_history),
            "reprocessCount": self.reprocess_count,
            "tripId": self.trip_id,
            "createdAt": self.created_at,
        }
