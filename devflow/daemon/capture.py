"""Ingestion service: classify captured text and persist it as entries."""

import asyncio
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional

from loguru import logger

from .bulk import BulkClassifier
from .bus import Event, EventBus
from .classifier import SingleEntryClassifier
from .error_handling import CriticalIngestionError, StoreError, ValidationError
from .models import Entry, Category, OutcomeSource, utc_now
from .store import EntryFilter, EntryNotFoundError, EntryStore


@dataclass
class BulkImportReport:
    """What a bulk import saved, and how it was classified."""
    saved: List[Entry] = field(default_factory=list)
    failed: int = 0
    source: OutcomeSource = OutcomeSource.ORACLE
    reason: Optional[str] = None

    @property
    def saved_count(self) -> int:
        return len(self.saved)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "saved": [e.to_dict() for e in self.saved],
            "saved_count": self.saved_count,
            "failed": self.failed,
            "source": self.source.value,
            "reason": self.reason
        }


class IngestionService:
    """
    Write path for entries.

    Single capture:
    1. Reject empty text
    2. Classify (oracle, or rule-based fallback)
    3. Persist with owner and timestamps

    Bulk capture classifies the whole blob in one call, then saves every
    record concurrently and reports how many saves failed.
    """

    def __init__(
        self,
        store: EntryStore,
        classifier: SingleEntryClassifier,
        bulk_classifier: BulkClassifier,
        owner_id: str = "anonymous",
        event_bus: Optional[EventBus] = None
    ):
        self.store = store
        self.classifier = classifier
        self.bulk_classifier = bulk_classifier
        self.owner_id = owner_id
        self._event_bus = event_bus

    async def add_entry(self, content: str) -> Entry:
        """
        Classify and store one entry.

        Raises:
            ValidationError: content is empty or whitespace
            StoreError: the store rejected an oracle-classified entry
            CriticalIngestionError: classification fell back and the
                store rejected the fallback entry too
        """
        if not content or not content.strip():
            raise ValidationError("Content cannot be empty.")

        outcome = await self.classifier.classify(content)
        entry = Entry.from_record(outcome.record, owner_id=self.owner_id, now=utc_now())

        try:
            saved = await self.store.create(entry)
        except StoreError as e:
            if outcome.is_fallback:
                logger.error(f"Critical error: fallback entry could not be saved: {e}")
                raise CriticalIngestionError(
                    f"Failed to save entry after AI categorization failed: {e}"
                ) from e
            logger.error(f"Failed to save entry: {e}")
            raise

        logger.info(f"Added {saved.category.value} entry {saved.id} ({outcome.source.value})")
        return saved

    async def bulk_add_entries(self, raw_text: str) -> BulkImportReport:
        """Split, classify and store a brain dump; individual save failures are counted."""
        if not raw_text or not raw_text.strip():
            return BulkImportReport(source=OutcomeSource.FALLBACK, reason="empty input")

        outcome = await self.bulk_classifier.classify(raw_text)
        report = BulkImportReport(source=outcome.source, reason=outcome.reason)

        if not outcome.records:
            logger.info("Bulk import produced no items")
            return report

        now = utc_now()
        entries = [Entry.from_record(r, owner_id=self.owner_id, now=now) for r in outcome.records]

        results = await asyncio.gather(
            *(self.store.create(e) for e in entries),
            return_exceptions=True
        )

        for result in results:
            if isinstance(result, StoreError):
                logger.error(f"Bulk item save failed: {result}")
                report.failed += 1
            elif isinstance(result, BaseException):
                raise result
            else:
                report.saved.append(result)

        logger.info(
            f"Bulk import saved {report.saved_count} of {len(entries)} items "
            f"({report.source.value})"
        )

        if self._event_bus is not None:
            await self._event_bus.emit(Event(
                type="ingestion.bulk_completed",
                data={
                    "saved": report.saved_count,
                    "failed": report.failed,
                    "source": report.source.value
                },
                source="ingestion_service"
            ))

        return report

    async def toggle_completion(self, entry_id: str, is_completed: bool) -> Entry:
        await self.store.update(entry_id, {"is_completed": is_completed})
        entry = await self.store.get(entry_id)
        if entry is None:
            raise EntryNotFoundError(f"Entry {entry_id} not found")
        return entry

    async def delete_entry(self, entry_id: str) -> None:
        await self.store.delete(entry_id)

    async def clear_all(self) -> None:
        await self.store.delete_all(self.owner_id)

    async def list_entries(
        self,
        category: Optional[Category] = None,
        limit: Optional[int] = None
    ) -> List[Entry]:
        return await self.store.list(EntryFilter(
            owner_id=self.owner_id,
            category=category,
            limit=limit
        ))

    async def category_counts(self) -> Dict[str, int]:
        counts = {c.value: 0 for c in Category}
        for entry in await self.list_entries():
            counts[entry.category.value] += 1
        return counts
