"""
Ingestion pipeline: parse, check the allow-list, store.

The pipeline only returns outcomes. Showing or alerting on a stored record
is up to the caller.
"""

import logging
from typing import Optional

from triage import parser
from triage.allowlist import AllowListFilter
from triage.record_store import RecordStore
from triage.records import Dropped, Outcome, Priority, Stored, TriageRecordDraft

logger = logging.getLogger(__name__)

ORIGIN_NOT_ALLOWED = "origin not allowed"


class IngestionPipeline:

    def __init__(self, store: RecordStore, allow_list: AllowListFilter, default_source_label: str = "SMS"):
        self.store = store
        self.allow_list = allow_list
        self.default_source_label = default_source_label

    def ingest(self, raw_text: str, source_hint: Optional[str] = None, origin_identifier: str = "") -> Outcome:
        """
        Run one inbound message through the pipeline.

        Returns:
            Stored(record) when persisted, Dropped(reason) when the origin is rejected
        """
        draft = parser.parse(raw_text, source_hint or self.default_source_label, origin_identifier)

        if not self.allow_list.is_allowed(origin_identifier):
            logger.info(f"Blocked message from: {origin_identifier}")
            return Dropped(reason=ORIGIN_NOT_ALLOWED)

        record = self.store.insert(draft)
        logger.info(f"Saved record: {record.title!r} from {record.source_label}")
        return Stored(record=record)

    def submit(self, source_label: str, title: str, body: str = "", priority: Priority = Priority.NORMAL) -> Stored:
        """Store a manually composed record. There is no origin, so the allow-list is not consulted."""
        draft = TriageRecordDraft(
            source_label=source_label.strip() or self.default_source_label,
            title=title.strip(),
            body=body.strip(),
            priority=priority,
        )
        return Stored(record=self.store.insert(draft))
