"""
Ordered, bounded collection of TriageRecords.

The full list lives in one persistence slot, newest first. Every public
operation holds the store lock for one load-modify-store round trip, so
concurrent callers never observe a partial write.
"""

import logging
import threading
import time
import uuid
from typing import Callable, Dict, List, Optional

from pydantic import TypeAdapter, ValidationError

from triage.records import (
    DEFAULT_TITLE,
    PARSER_TITLE_LENGTH,
    Priority,
    SourceCount,
    TriageRecord,
    TriageRecordDraft,
    TriageStatistics,
)
from triage.storage import KeyValueMedium

logger = logging.getLogger(__name__)

DEFAULT_MAX_SIZE = 1000
DEFAULT_TITLE_MAX_LENGTH = 120

_RECORD_LIST = TypeAdapter(List[TriageRecord])


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class RecordStore:
    """
    Owns every TriageRecord.

    Args:
        medium: Persistence slot holding the serialized record list
        max_size: Retention cap; oldest records are evicted beyond it
        title_max_length: Stored titles are cut to this many characters
        clock: Returns epoch millis; injectable for tests
    """

    def __init__(
        self,
        medium: KeyValueMedium,
        max_size: int = DEFAULT_MAX_SIZE,
        title_max_length: int = DEFAULT_TITLE_MAX_LENGTH,
        clock: Callable[[], int] = _now_ms,
    ):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._medium = medium
        self.max_size = max_size
        self.title_max_length = title_max_length
        self._clock = clock
        self._lock = threading.RLock()

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def insert(self, draft: TriageRecordDraft) -> TriageRecord:
        with self._lock:
            records = self._load()
            created_at = self._clock()
            if records and records[0].created_at > created_at:
                # Keep creation time monotonic even if the wall clock steps back
                created_at = records[0].created_at
            record = TriageRecord(
                id=str(uuid.uuid4()),
                source_label=draft.source_label,
                title=self._display_title(draft.title, draft.body, draft.raw_text),
                body=draft.body,
                priority=draft.priority,
                created_at=created_at,
                origin_identifier=draft.origin_identifier,
            )
            records.insert(0, record)
            if len(records) > self.max_size:
                evicted = len(records) - self.max_size
                del records[self.max_size:]
                logger.info(f"Retention cap {self.max_size} reached, evicted {evicted} oldest record(s)")
            self._save(records)

        logger.info(f"Record stored: id={record.id}, source={record.source_label}, priority={record.priority.value}")
        return record

    def update(
        self, record_id: str, mutator: Callable[[TriageRecord], TriageRecord]
    ) -> Optional[TriageRecord]:
        """
        Replace a record with mutator(record).

        Returns:
            The stored replacement, or None if no record has that id
        """
        with self._lock:
            records = self._load()
            index = _index_of(records, record_id)
            if index is None:
                logger.debug(f"Update skipped, record not found: {record_id}")
                return None
            updated = mutator(records[index])
            if updated.id != record_id:
                raise ValueError(f"mutator changed record id {record_id} -> {updated.id}")
            title = self._display_title(updated.title, updated.body, "")
            if title != updated.title:
                updated = updated.model_copy(update={"title": title})
            records[index] = updated
            self._save(records)
        return updated

    def delete(self, record_id: str) -> bool:
        with self._lock:
            records = self._load()
            remaining = [r for r in records if r.id != record_id]
            if len(remaining) == len(records):
                return False
            self._save(remaining)
        logger.info(f"Record deleted: {record_id}")
        return True

    def mark_read(self, record_id: str) -> bool:
        with self._lock:
            records = self._load()
            index = _index_of(records, record_id)
            if index is None:
                return False
            if not records[index].is_read:
                records[index] = records[index].model_copy(update={"is_read": True})
                self._save(records)
        return True

    def mark_all_read(self) -> int:
        """Mark every record read. Returns how many were unread."""
        with self._lock:
            records = self._load()
            unread = sum(1 for r in records if not r.is_read)
            if unread:
                self._save([r if r.is_read else r.model_copy(update={"is_read": True}) for r in records])
        logger.info(f"Marked {unread} record(s) read")
        return unread

    def clear_all(self) -> None:
        with self._lock:
            self._save([])
        logger.info("All records cleared")

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def query(self) -> List[TriageRecord]:
        """Snapshot of all records, newest first."""
        with self._lock:
            return self._load()

    def get(self, record_id: str) -> Optional[TriageRecord]:
        records = self.query()
        index = _index_of(records, record_id)
        return records[index] if index is not None else None

    def unread_count(self) -> int:
        return sum(1 for r in self.query() if not r.is_read)

    def records_by_source(self, source_label: str) -> List[TriageRecord]:
        return [r for r in self.query() if r.source_label == source_label]

    def source_labels(self) -> List[str]:
        return sorted({r.source_label for r in self.query()})

    def aggregate_by_source(self) -> Dict[str, SourceCount]:
        return _aggregate_by_source(self.query())

    def aggregate_by_priority(self) -> Dict[Priority, int]:
        return _aggregate_by_priority(self.query())

    def statistics(self) -> TriageStatistics:
        records = self.query()
        return TriageStatistics(
            total=len(records),
            unread=sum(1 for r in records if not r.is_read),
            by_source=_aggregate_by_source(records),
            by_priority=_aggregate_by_priority(records),
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _display_title(self, title: str, body: str, raw_text: str) -> str:
        title = (title or "").strip()
        if not title:
            title = (body or "").strip()[:PARSER_TITLE_LENGTH].strip()
        if not title:
            title = (raw_text or "").strip()[:PARSER_TITLE_LENGTH].strip()
        if not title:
            title = DEFAULT_TITLE
        return title[:self.title_max_length]

    def _load(self) -> List[TriageRecord]:
        raw = self._medium.load()
        if not raw:
            return []
        try:
            return _RECORD_LIST.validate_json(raw)
        except ValidationError as e:
            logger.warning(f"Stored records unreadable, treating store as empty: {e.error_count()} error(s)")
            return []

    def _save(self, records: List[TriageRecord]) -> None:
        self._medium.store(_RECORD_LIST.dump_json(records).decode("utf-8"))


def _index_of(records: List[TriageRecord], record_id: str) -> Optional[int]:
    for index, record in enumerate(records):
        if record.id == record_id:
            return index
    return None


def _aggregate_by_source(records: List[TriageRecord]) -> Dict[str, SourceCount]:
    counts: Dict[str, List[int]] = {}
    for record in records:
        tally = counts.setdefault(record.source_label, [0, 0])
        tally[0] += 1
        if not record.is_read:
            tally[1] += 1
    return {label: SourceCount(total, unread) for label, (total, unread) in counts.items()}


def _aggregate_by_priority(records: List[TriageRecord]) -> Dict[Priority, int]:
    counts = {priority: 0 for priority in Priority}
    for record in records:
        counts[record.priority] += 1
    return counts
