"""Import queue: enqueue, process, confirm."""
from .models import ImportQueueItem, ImportStatus, StepStatus, VISUAL_STEPS
from .queue import ImportQueue, ImportQueueCoordinator
from .store import ImportStore, InMemoryImportStore, SupabaseImportStore

__all__ = [
    "ImportQueueItem",
    "ImportStatus",
    "StepStatus",
    "VISUAL_STEPS",
    "ImportQueue",
    "ImportQueueCoordinator",
    "ImportStore",
    "InMemoryImportStore",
    "SupabaseImportStore",
]
