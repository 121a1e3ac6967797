"""Server-side import queue: one uploaded file from bytes to a saved reservation."""
import threading
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from loguru import logger

from config import config
from trip_import.extraction import (
    CanonicalExtractor,
    CanonicalPayload,
    ExtractionOutcome,
    Scope,
    compute_missing_fields,
    payload_from_dict,
)
from trip_import.extraction.extractor import extraction_quality
from trip_import.ocr import TextAcquisitionLayer
from trip_import.shared import (
    ContentHashUtil,
    ImportItemNotFound,
    InvalidImportState,
    OcrFailedError,
)
from .models import (
    CONFIRMABLE,
    ImportQueueItem,
    ImportStatus,
    StepStatus,
    utc_now_iso,
)
from .store import ImportStore

MIN_EXTRACTION_CHARS = 20
DUPLICATE_WARNING = "Document already imported (same file hash)"
INSUFFICIENT_TEXT_WARNING = "Insufficient text for automatic extraction"
UNCHANGED_WARNING = "Reprocessing produced the same result"


class ImportQueue:
    """In-process registry of queue items, scoped per user.

    Bounded: finished items (saved or failed) expire after ``ttl_seconds``,
    any item after ``max_age_seconds``, and past ``max_items`` the oldest
    entries go first, finished ones before open ones. Items mid-processing
    are never evicted.
    """

    def __init__(
        self,
        max_items: Optional[int] = None,
        ttl_seconds: Optional[float] = None,
        max_age_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_items = max_items or config.IMPORT_QUEUE_MAX_ITEMS
        self.ttl_seconds = ttl_seconds or config.IMPORT_QUEUE_TTL_SECONDS
        self.max_age_seconds = max_age_seconds or config.IMPORT_QUEUE_MAX_AGE_SECONDS
        self._items: Dict[str, ImportQueueItem] = {}
        self._added_at: Dict[str, float] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def add(self, item: ImportQueueItem) -> ImportQueueItem:
        with self._lock:
            now = self._clock()
            self._prune(now)
            self._items[item.id] = item
            self._added_at[item.id] = now
            self._evict_overflow()
        return item

    def get(self, user_id: str, item_id: str) -> ImportQueueItem:
        with self._lock:
            self._prune(self._clock())
            item = self._items.get(item_id)
        if item is None or item.user_id != user_id:
            raise ImportItemNotFound(f"Import item {item_id} not found")
        return item

    def for_user(self, user_id: str) -> List[ImportQueueItem]:
        with self._lock:
            self._prune(self._clock())
            return [item for item in self._items.values() if item.user_id == user_id]

    def _remove(self, item_id: str) -> None:
        self._items.pop(item_id, None)
        self._added_at.pop(item_id, None)

    def _prune(self, now: float) -> None:
        expired = [
            item_id
            for item_id, item in self._items.items()
            if item.status != ImportStatus.PROCESSING
            and now - self._added_at[item_id] >= (self.ttl_seconds if item.is_terminal else self.max_age_seconds)
        ]
        for item_id in expired:
            self._remove(item_id)
        if expired:
            logger.debug(f"Import queue pruned {len(expired)} expired items")

    def _evict_overflow(self) -> None:
        overflow = len(self._items) - self.max_items
        if overflow <= 0:
            return
        # dict order is insertion order, so sorting is stable on age
        candidates = sorted(
            (item for item in self._items.values() if item.status != ImportStatus.PROCESSING),
            key=lambda item: not item.is_terminal,
        )
        for item in candidates[:overflow]:
            self._remove(item.id)
        logger.warning(f"Import queue over {self.max_items} items, evicted {min(overflow, len(candidates))}")


class ImportQueueCoordinator:
    """Drives an item through acquisition, extraction and persistence.

    State machine::

        pending -> processing -> needs_confirmation | auto_extracted | failed
        needs_confirmation | auto_extracted -> saved

    A file whose hash matches an already imported document jumps straight to
    ``saved`` without any provider call.
    """

    def __init__(
        self,
        queue: ImportQueue,
        store: ImportStore,
        acquisition: TextAcquisitionLayer,
        extractor: CanonicalExtractor,
    ):
        self.queue = queue
        self.store = store
        self.acquisition = acquisition
        self.extractor = extractor

    def enqueue(
        self,
        user_id: str,
        file_name: str,
        content: bytes,
        mime_type: Optional[str] = None,
        trip_id: Optional[str] = None,
        trip_destination: Optional[str] = None,
    ) -> ImportQueueItem:
        item = ImportQueueItem(
            user_id=user_id,
            file_name=file_name,
            file_hash=ContentHashUtil.file_hash(content),
            mime_type=mime_type,
            content=content,
            trip_id=trip_id,
            trip_destination=trip_destination,
        )
        logger.info(f"Enqueued import {item.id} file={file_name} hash={item.file_hash[:12]}")
        return self.queue.add(item)

    async def resolve_duplicate(
        self,
        user_id: str,
        file_name: str,
        content: bytes,
        mime_type: Optional[str] = None,
        trip_id: Optional[str] = None,
    ) -> Optional[ImportQueueItem]:
        """Return a saved queue item when ``content`` was already imported, else None."""
        existing = await self.store.find_imported_document_by_hash(user_id, ContentHashUtil.file_hash(content))
        if existing is None:
            return None
        item = self.enqueue(user_id, file_name, content, mime_type=mime_type, trip_id=trip_id)
        return self._mark_duplicate(item, existing)

    async def process(
        self,
        user_id: str,
        item_id: str,
        reprocess: bool = False,
        timeout_ms: Optional[int] = None,
        trip_destination: Optional[str] = None,
    ) -> ImportQueueItem:
        item = self.queue.get(user_id, item_id)
        if item.status == ImportStatus.PROCESSING:
            raise InvalidImportState(f"Import item {item_id} is already processing")
        if item.status == ImportStatus.SAVED:
            raise InvalidImportState(f"Import item {item_id} is already saved")
        if reprocess and item.canonical_payload is None:
            raise InvalidImportState(f"Import item {item_id} has nothing to reprocess")

        previous = item.canonical_payload
        previous_provider = item.provider
        previous_confidence = item.confidence
        item.status = ImportStatus.PROCESSING
        item.set_step("read", StepStatus.IN_PROGRESS)

        try:
            if not reprocess:
                existing = await self.store.find_imported_document_by_hash(user_id, item.file_hash)
                if existing is not None:
                    return self._mark_duplicate(item, existing)

            if item.document_id is None:
                item.document_id = await self.store.create_document(
                    user_id, item.file_name, item.file_hash, item.mime_type, item.trip_id
                )

            warnings: List[str] = []
            text = await self._acquire(item, timeout_ms, warnings)

            item.set_step("identified", StepStatus.IN_PROGRESS)
            outcome = await self._extract(
                item, text, timeout_ms, trip_destination or item.trip_destination, warnings
            )
            canonical = self._stamp(outcome.canonical, item)

            if reprocess and previous is not None:
                item.extraction_history.append({
                    "canonical": previous.to_api(),
                    "provider": previous_provider,
                    "confidence": previous_confidence,
                    "replacedAt": utc_now_iso(),
                })
                item.reprocess_count += 1
                if previous.to_api() == canonical.to_api():
                    warnings.append(UNCHANGED_WARNING)

            missing = compute_missing_fields(canonical.metadata.type, canonical, outcome.scope)
            quality = extraction_quality(canonical.metadata.confidence)

            await self.store.update_document(item.document_id, {
                "raw_text": item.raw_text,
                "extraction_method": item.extraction_method,
                "extraction_payload": canonical.to_api(),
                "extraction_scope": outcome.scope.value,
                "extraction_confidence": outcome.confidence,
                "extraction_provider": outcome.provider,
                "missing_fields": missing,
            })

            item.canonical_payload = canonical
            item.scope = outcome.scope
            item.confidence = outcome.confidence
            item.provider = outcome.provider
            item.provider_meta = outcome.provider_meta
            item.missing_fields = missing
            item.extraction_quality = quality
            item.warnings = warnings
            item.set_step("identified", StepStatus.COMPLETED)

            auto = outcome.scope == Scope.TRIP_RELATED and quality == "high" and not missing
            item.status = ImportStatus.AUTO_EXTRACTED if auto else ImportStatus.NEEDS_CONFIRMATION
            logger.info(
                f"Import {item.id} processed: status={item.status.value} provider={item.provider} "
                f"scope={item.scope.value} missing={len(missing)}"
            )
            return item
        except Exception as e:
            logger.exception(f"Import {item.id} processing failed: {e}")
            item.status = ImportStatus.FAILED
            item.canonical_payload = previous
            item.warnings = item.warnings + [f"Processing failed: {type(e).__name__}: {e}"]
            for step, status in item.visual_steps.items():
                if status == StepStatus.IN_PROGRESS:
                    item.set_step(step, StepStatus.FAILED)
            return item

    async def confirm(
        self,
        user_id: str,
        item_id: str,
        canonical_override: Optional[Union[CanonicalPayload, Mapping[str, Any]]] = None,
    ) -> ImportQueueItem:
        item = self.queue.get(user_id, item_id)
        if item.status not in CONFIRMABLE:
            raise InvalidImportState(
                f"Import item {item_id} cannot be confirmed from status {item.status.value}"
            )

        canonical = item.canonical_payload
        if canonical_override is not None:
            if not isinstance(canonical_override, CanonicalPayload):
                canonical_override = payload_from_dict(canonical_override)
            canonical = self._stamp(canonical_override, item)
            item.scope = Scope.TRIP_RELATED if canonical.metadata.type else Scope.OUTSIDE_SCOPE
        if canonical is None:
            raise InvalidImportState(f"Import item {item_id} has no payload to confirm")

        item.set_step("saving", StepStatus.IN_PROGRESS)
        try:
            kind = canonical.metadata.type
            if item.scope == Scope.TRIP_RELATED and kind is not None:
                await self.store.save_reservation(user_id, kind, canonical, item.document_id, item.trip_id)
            await self.store.mark_imported(item.document_id, canonical)
        except Exception as e:
            logger.exception(f"Import {item.id} confirmation failed: {e}")
            item.set_step("saving", StepStatus.FAILED)
            item.status = ImportStatus.FAILED
            item.warnings = item.warnings + [f"Saving failed: {type(e).__name__}: {e}"]
            return item

        item.canonical_payload = canonical
        item.set_step("saving", StepStatus.COMPLETED)
        item.set_step("tips", StepStatus.SKIPPED)
        item.set_step("done", StepStatus.COMPLETED)
        item.status = ImportStatus.SAVED
        item.content = b""
        logger.info(f"Import {item.id} saved as {canonical.metadata.type} scope={item.scope}")
        return item

    def _mark_duplicate(self, item: ImportQueueItem, existing: Mapping[str, Any]) -> ImportQueueItem:
        item.document_id = existing.get("id")
        item.status = ImportStatus.SAVED
        item.content = b""
        item.warnings = item.warnings + [DUPLICATE_WARNING]
        stored = existing.get("extraction_payload")
        if isinstance(stored, dict):
            item.canonical_payload = payload_from_dict(stored)
        for step in ("read", "identified", "saving", "done"):
            item.set_step(step, StepStatus.COMPLETED)
        item.set_step("tips", StepStatus.SKIPPED)
        logger.info(f"Import {item.id} is a duplicate of document {item.document_id}")
        return item

    async def _acquire(self, item: ImportQueueItem, timeout_ms: Optional[int], warnings: List[str]) -> str:
        try:
            acquired = await self.acquisition.acquire(item.content, item.file_name, item.mime_type, timeout_ms)
        except OcrFailedError as e:
            logger.warning(f"Import {item.id} text acquisition failed: {e}")
            warnings.extend(e.warnings)
            warnings.append(str(e))
            item.raw_text = ""
            item.extraction_method = None
            item.set_step("read", StepStatus.FAILED)
            return ""

        warnings.extend(acquired.warnings)
        item.raw_text = acquired.text
        item.extraction_method = acquired.method
        item.set_step("read", StepStatus.COMPLETED)
        return acquired.text

    async def _extract(
        self,
        item: ImportQueueItem,
        text: str,
        timeout_ms: Optional[int],
        trip_destination: Optional[str],
        warnings: List[str],
    ) -> ExtractionOutcome:
        if len(text.strip()) <= MIN_EXTRACTION_CHARS:
            warnings.append(INSUFFICIENT_TEXT_WARNING)
            return self.extractor.heuristic_outcome(text, item.file_name, trip_destination)
        try:
            return await self.extractor.extract(text, item.file_name, timeout_ms, trip_destination)
        except Exception as e:
            logger.warning(f"Import {item.id} extraction failed, using heuristic rules: {e}")
            warnings.append(f"Extraction failed: {type(e).__name__}")
            return self.extractor.heuristic_outcome(text, item.file_name, trip_destination)

    @staticmethod
    def _stamp(canonical: CanonicalPayload, item: ImportQueueItem) -> CanonicalPayload:
        metadata = canonical.metadata.model_copy(
            update={"file_hash": item.file_hash, "file_name": item.file_name}
        )
        return canonical.model_copy(update={"metadata": metadata})
