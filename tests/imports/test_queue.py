"""Import queue state machine."""
import pytest

from trip_import.extraction import CanonicalExtractor, ReservationType, Scope
from trip_import.imports import (
    ImportQueue,
    ImportQueueCoordinator,
    ImportQueueItem,
    ImportStatus,
    InMemoryImportStore,
    StepStatus,
)
from trip_import.imports.queue import (
    DUPLICATE_WARNING,
    INSUFFICIENT_TEXT_WARNING,
    UNCHANGED_WARNING,
)
from trip_import.ocr.acquisition import AcquisitionResult
from trip_import.shared import ImportItemNotFound, InvalidImportState, OcrFailedError
from tests.fakes import FakeAdapter, make_gateway


class FakeAcquisition:
    """Returns fixed text, or raises the configured error."""

    def __init__(self, text="", error=None):
        self.text = text
        self.error = error
        self.calls = 0

    async def acquire(self, content, file_name=None, mime_type=None, timeout_ms=None):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return AcquisitionResult(text=self.text, method="native_text")


@pytest.fixture
def openrouter(flight_reply):
    return FakeAdapter("openrouter", reply=flight_reply)


@pytest.fixture
def store():
    return InMemoryImportStore()


@pytest.fixture
def coordinator(store, openrouter, latam_text):
    extractor = CanonicalExtractor(make_gateway(openrouter=openrouter))
    return ImportQueueCoordinator(ImportQueue(), store, FakeAcquisition(latam_text), extractor)


@pytest.mark.asyncio
class TestProcess:
    async def test_clear_flight_is_auto_extracted(self, coordinator, store):
        item = coordinator.enqueue("user-1", "boarding.pdf", b"%PDF boarding")

        item = await coordinator.process("user-1", item.id)

        assert item.status == ImportStatus.AUTO_EXTRACTED
        assert item.scope == Scope.TRIP_RELATED
        assert item.provider == "openrouter"
        assert item.extraction_quality == "high"
        assert item.canonical_payload.metadata.file_hash == item.file_hash
        assert item.canonical_payload.metadata.file_name == "boarding.pdf"
        assert item.visual_steps["read"] == StepStatus.COMPLETED
        assert item.visual_steps["identified"] == StepStatus.COMPLETED
        document = store.documents[item.document_id]
        assert document["extraction_scope"] == "trip_related"
        assert document["imported"] is False

    async def test_insufficient_text_uses_rules_only(self, store, openrouter):
        extractor = CanonicalExtractor(make_gateway(openrouter=openrouter))
        coordinator = ImportQueueCoordinator(ImportQueue(), store, FakeAcquisition("LA3405"), extractor)
        item = coordinator.enqueue("user-1", "voo.pdf", b"x")

        item = await coordinator.process("user-1", item.id)

        assert item.provider == "heuristic"
        assert INSUFFICIENT_TEXT_WARNING in item.warnings
        assert item.status == ImportStatus.NEEDS_CONFIRMATION
        assert openrouter.calls == []

    async def test_ocr_failure_keeps_going(self, store):
        acquisition = FakeAcquisition(error=OcrFailedError("No text could be read", warnings=["gemini timeout"]))
        coordinator = ImportQueueCoordinator(
            ImportQueue(), store, acquisition, CanonicalExtractor(make_gateway())
        )
        item = coordinator.enqueue("user-1", "scan.jpg", b"jpeg", "image/jpeg")

        item = await coordinator.process("user-1", item.id)

        assert item.status == ImportStatus.NEEDS_CONFIRMATION
        assert item.visual_steps["read"] == StepStatus.FAILED
        assert "gemini timeout" in item.warnings
        assert "No text could be read" in item.warnings

    async def test_unexpected_failure_marks_failed(self, coordinator, store, monkeypatch):
        async def broken(document_id, fields):
            raise RuntimeError("write refused")

        monkeypatch.setattr(store, "update_document", broken)
        item = coordinator.enqueue("user-1", "boarding.pdf", b"%PDF boarding")

        item = await coordinator.process("user-1", item.id)

        assert item.status == ImportStatus.FAILED
        assert item.canonical_payload is None
        assert item.visual_steps["identified"] == StepStatus.FAILED
        assert item.warnings[-1] == "Processing failed: RuntimeError: write refused"

    async def test_reprocess_records_history(self, coordinator):
        item = coordinator.enqueue("user-1", "boarding.pdf", b"%PDF boarding")
        await coordinator.process("user-1", item.id)

        item = await coordinator.process("user-1", item.id, reprocess=True)

        assert item.reprocess_count == 1
        assert len(item.extraction_history) == 1
        assert item.extraction_history[0]["provider"] == "openrouter"
        assert UNCHANGED_WARNING in item.warnings

    async def test_reprocess_needs_a_payload(self, coordinator):
        item = coordinator.enqueue("user-1", "boarding.pdf", b"%PDF boarding")

        with pytest.raises(InvalidImportState):
            await coordinator.process("user-1", item.id, reprocess=True)

    async def test_other_users_cannot_see_item(self, coordinator):
        item = coordinator.enqueue("user-1", "boarding.pdf", b"%PDF boarding")

        with pytest.raises(ImportItemNotFound):
            await coordinator.process("user-2", item.id)


@pytest.mark.asyncio
class TestConfirm:
    async def test_confirm_saves_reservation(self, coordinator, store):
        item = coordinator.enqueue("user-1", "boarding.pdf", b"%PDF boarding", trip_id="trip-9")
        await coordinator.process("user-1", item.id)

        item = await coordinator.confirm("user-1", item.id)

        assert item.status == ImportStatus.SAVED
        assert item.visual_steps["done"] == StepStatus.COMPLETED
        assert item.visual_steps["tips"] == StepStatus.SKIPPED
        [reservation] = store.reservations.values()
        assert reservation["table"] == "flights"
        assert reservation["trip_id"] == "trip-9"
        assert reservation["document_id"] == item.document_id
        assert store.documents[item.document_id]["imported"] is True

    async def test_confirm_with_override(self, coordinator, store):
        item = coordinator.enqueue("user-1", "boarding.pdf", b"%PDF boarding")
        await coordinator.process("user-1", item.id)

        override = item.canonical_payload.to_api()
        override["metadata"]["type"] = "Lodging"
        override["coreFields"]["displayName"] = "Hotel Fasano"
        item = await coordinator.confirm("user-1", item.id, override)

        assert item.canonical_payload.metadata.type == ReservationType.LODGING
        assert item.canonical_payload.metadata.file_hash == item.file_hash
        [reservation] = store.reservations.values()
        assert reservation["table"] == "stays"

    async def test_outside_scope_saves_document_only(self, store, grocery_text):
        extractor = CanonicalExtractor(make_gateway())
        coordinator = ImportQueueCoordinator(ImportQueue(), store, FakeAcquisition(grocery_text), extractor)
        item = coordinator.enqueue("user-1", "nota.pdf", b"receipt")
        await coordinator.process("user-1", item.id)
        assert item.scope == Scope.OUTSIDE_SCOPE

        item = await coordinator.confirm("user-1", item.id)

        assert item.status == ImportStatus.SAVED
        assert store.reservations == {}
        assert store.documents[item.document_id]["imported"] is True

    async def test_confirm_requires_processed_item(self, coordinator):
        item = coordinator.enqueue("user-1", "boarding.pdf", b"%PDF boarding")

        with pytest.raises(InvalidImportState):
            await coordinator.confirm("user-1", item.id)

    async def test_saved_item_cannot_be_processed_again(self, coordinator):
        item = coordinator.enqueue("user-1", "boarding.pdf", b"%PDF boarding")
        await coordinator.process("user-1", item.id)
        await coordinator.confirm("user-1", item.id)

        with pytest.raises(InvalidImportState):
            await coordinator.process("user-1", item.id)

    async def test_store_failure_marks_failed(self, coordinator, store, monkeypatch):
        async def broken(*args, **kwargs):
            raise RuntimeError("insert refused")

        monkeypatch.setattr(store, "save_reservation", broken)
        item = coordinator.enqueue("user-1", "boarding.pdf", b"%PDF boarding")
        await coordinator.process("user-1", item.id)

        item = await coordinator.confirm("user-1", item.id)

        assert item.status == ImportStatus.FAILED
        assert item.visual_steps["saving"] == StepStatus.FAILED


@pytest.mark.asyncio
class TestDuplicates:
    async def test_same_file_is_not_extracted_twice(self, coordinator, openrouter):
        first = coordinator.enqueue("user-1", "boarding.pdf", b"%PDF boarding")
        await coordinator.process("user-1", first.id)
        await coordinator.confirm("user-1", first.id)
        calls = len(openrouter.calls)

        second = coordinator.enqueue("user-1", "copy.pdf", b"%PDF boarding")
        second = await coordinator.process("user-1", second.id)

        assert second.status == ImportStatus.SAVED
        assert second.document_id == first.document_id
        assert DUPLICATE_WARNING in second.warnings
        assert second.canonical_payload.metadata.type == ReservationType.FLIGHT
        assert len(openrouter.calls) == calls
        assert coordinator.acquisition.calls == 1

    async def test_resolve_duplicate_skips_processing(self, coordinator, openrouter):
        first = coordinator.enqueue("user-1", "boarding.pdf", b"%PDF boarding")
        await coordinator.process("user-1", first.id)
        await coordinator.confirm("user-1", first.id)
        calls = len(openrouter.calls)

        duplicate = await coordinator.resolve_duplicate("user-1", "copy.pdf", b"%PDF boarding")

        assert duplicate.status == ImportStatus.SAVED
        assert duplicate.document_id == first.document_id
        assert duplicate.content == b""
        assert len(openrouter.calls) == calls
        assert await coordinator.resolve_duplicate("user-1", "new.pdf", b"%PDF other") is None

    async def test_saved_items_drop_their_bytes(self, coordinator):
        item = coordinator.enqueue("user-1", "boarding.pdf", b"%PDF boarding")
        await coordinator.process("user-1", item.id)
        assert item.content == b"%PDF boarding"

        item = await coordinator.confirm("user-1", item.id)

        assert item.status == ImportStatus.SAVED
        assert item.content == b""

    async def test_hash_is_scoped_per_user(self, coordinator):
        first = coordinator.enqueue("user-1", "boarding.pdf", b"%PDF boarding")
        await coordinator.process("user-1", first.id)
        await coordinator.confirm("user-1", first.id)

        other = coordinator.enqueue("user-2", "boarding.pdf", b"%PDF boarding")
        other = await coordinator.process("user-2", other.id)

        assert other.status != ImportStatus.SAVED
        assert DUPLICATE_WARNING not in other.warnings


class TestQueueItem:
    def test_to_dict_shape(self, coordinator):
        item = coordinator.enqueue("user-1", "boarding.pdf", b"%PDF boarding", "application/pdf")

        data = item.to_dict()

        assert data["status"] == "pending"
        assert data["visualSteps"] == {
            "read": "pending",
            "identified": "pending",
            "saving": "pending",
            "tips": "pending",
            "done": "pending",
        }
        assert data["canonicalPayload"] is None
        assert "content" not in data
        assert len(data["fileHash"]) == 64


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


def _item(status=ImportStatus.PENDING, user_id="user-1"):
    return ImportQueueItem(user_id=user_id, file_name="a.pdf", file_hash="h", content=b"bytes", status=status)


class TestRetention:
    def test_finished_items_expire_after_ttl(self):
        clock = FakeClock()
        queue = ImportQueue(max_items=100, ttl_seconds=60, max_age_seconds=3600, clock=clock)
        saved = queue.add(_item(ImportStatus.SAVED))
        failed = queue.add(_item(ImportStatus.FAILED))
        open_item = queue.add(_item(ImportStatus.NEEDS_CONFIRMATION))

        clock.now = 61

        assert [item.id for item in queue.for_user("user-1")] == [open_item.id]
        for gone in (saved, failed):
            with pytest.raises(ImportItemNotFound):
                queue.get("user-1", gone.id)

    def test_open_items_expire_after_max_age(self):
        clock = FakeClock()
        queue = ImportQueue(max_items=100, ttl_seconds=60, max_age_seconds=3600, clock=clock)
        pending = queue.add(_item())
        processing = queue.add(_item(ImportStatus.PROCESSING))

        clock.now = 3600

        assert [item.id for item in queue.for_user("user-1")] == [processing.id]
        with pytest.raises(ImportItemNotFound):
            queue.get("user-1", pending.id)

    def test_cap_evicts_finished_items_first(self):
        queue = ImportQueue(max_items=3, ttl_seconds=60, max_age_seconds=3600, clock=FakeClock())
        oldest_open = queue.add(_item())
        saved = queue.add(_item(ImportStatus.SAVED))
        processing = queue.add(_item(ImportStatus.PROCESSING))

        newest = queue.add(_item())

        assert len(queue) == 3
        assert {item.id for item in queue.for_user("user-1")} == {oldest_open.id, processing.id, newest.id}
        assert saved.is_terminal

        queue.add(_item())

        assert len(queue) == 3
        with pytest.raises(ImportItemNotFound):
            queue.get("user-1", oldest_open.id)
        assert queue.get("user-1", processing.id) is processing
