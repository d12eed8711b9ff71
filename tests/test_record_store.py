"""
Tests for the record store.

Tests cover:
- Insert ordering, ids, timestamps and title fallback
- Bounded retention
- update / delete / mark_read / mark_all_read / clear_all
- Aggregates and statistics
- Persistence round trip and corrupt data
- Concurrent inserts
"""

import threading

import pytest

from triage.record_store import RecordStore
from triage.records import DEFAULT_TITLE, Priority, SourceCount, TriageRecordDraft
from triage.storage import MemoryMedium
from conftest import StepClock


def make_draft(title="Title", source="SMS", body="", priority=Priority.NORMAL, raw_text=""):
    return TriageRecordDraft(
        source_label=source,
        title=title,
        body=body,
        priority=priority,
        origin_identifier="+40712345678",
        raw_text=raw_text,
    )


class TestInsert:

    def test_insert_assigns_id_and_timestamp(self, store, clock):
        record = store.insert(make_draft())

        assert record.id
        assert record.created_at == 1_700_000_000_000
        assert record.is_read is False
        assert record.origin_identifier == "+40712345678"

    def test_ids_are_unique(self, store):
        ids = {store.insert(make_draft()).id for _ in range(20)}

        assert len(ids) == 20

    def test_newest_first(self, store):
        first = store.insert(make_draft("first"))
        second = store.insert(make_draft("second"))

        assert [r.id for r in store.query()] == [second.id, first.id]

    def test_created_at_never_goes_backwards(self):
        times = iter([5000, 3000])
        store = RecordStore(MemoryMedium(), clock=lambda: next(times))

        first = store.insert(make_draft())
        second = store.insert(make_draft())

        assert second.created_at >= first.created_at

    def test_title_falls_back_to_body(self, store):
        record = store.insert(make_draft(title="", body="b" * 80))

        assert record.title == "b" * 50

    def test_title_falls_back_to_raw_text(self, store):
        record = store.insert(make_draft(title="  ", body="", raw_text="raw payload"))

        assert record.title == "raw payload"

    def test_title_sentinel_when_nothing_available(self, store):
        record = store.insert(make_draft(title="", body="", raw_text=""))

        assert record.title == DEFAULT_TITLE

    def test_title_bounded(self):
        store = RecordStore(MemoryMedium(), title_max_length=10)

        assert store.insert(make_draft("x" * 40)).title == "x" * 10

    def test_invalid_max_size(self):
        with pytest.raises(ValueError):
            RecordStore(MemoryMedium(), max_size=0)


class TestRetention:

    def test_bounded_retention_keeps_newest(self, clock):
        max_size = 25
        store = RecordStore(MemoryMedium(), max_size=max_size, clock=clock)

        inserted = [store.insert(make_draft(f"t{i}")) for i in range(max_size + 50)]
        records = store.query()

        assert len(records) == max_size
        expected = [r.id for r in reversed(inserted[-max_size:])]
        assert [r.id for r in records] == expected

    def test_default_cap(self, store):
        assert store.max_size == 1000


class TestMutations:

    def test_update_replaces_record(self, store):
        record = store.insert(make_draft("old"))

        updated = store.update(record.id, lambda r: r.model_copy(update={"title": "new", "priority": Priority.HIGH}))

        assert updated.title == "new"
        assert store.get(record.id).priority == Priority.HIGH

    def test_update_missing_id_returns_none(self, store):
        store.insert(make_draft())
        before = store.query()

        assert store.update("missing", lambda r: r) is None
        assert store.query() == before

    def test_update_cannot_change_id(self, store):
        record = store.insert(make_draft())

        with pytest.raises(ValueError):
            store.update(record.id, lambda r: r.model_copy(update={"id": "other"}))
        assert store.get(record.id) is not None

    def test_update_blank_title_falls_back(self, store):
        record = store.insert(make_draft("keep", body="body text"))

        updated = store.update(record.id, lambda r: r.model_copy(update={"title": ""}))

        assert updated.title == "body text"

    def test_delete(self, store):
        keep = store.insert(make_draft("keep"))
        gone = store.insert(make_draft("gone"))

        assert store.delete(gone.id) is True
        assert [r.id for r in store.query()] == [keep.id]

    def test_delete_missing(self, store):
        store.insert(make_draft())

        assert store.delete("missing") is False
        assert len(store.query()) == 1

    def test_mark_read(self, store):
        record = store.insert(make_draft())

        assert store.mark_read(record.id) is True
        assert store.get(record.id).is_read is True
        assert store.mark_read(record.id) is True
        assert store.mark_read("missing") is False

    def test_mark_all_read_is_idempotent(self, store):
        for i in range(3):
            store.insert(make_draft(f"t{i}"))

        assert store.mark_all_read() == 3
        once = store.query()
        assert store.mark_all_read() == 0
        assert store.query() == once
        assert all(r.is_read for r in once)

    def test_clear_all(self, store):
        store.insert(make_draft())
        store.clear_all()

        assert store.query() == []

    def test_query_returns_snapshot(self, store):
        store.insert(make_draft())
        snapshot = store.query()
        store.insert(make_draft())

        assert len(snapshot) == 1


class TestAggregates:

    @pytest.fixture
    def populated(self, store):
        a1 = store.insert(make_draft(source="A", priority=Priority.HIGH))
        store.insert(make_draft(source="A"))
        store.insert(make_draft(source="B", priority=Priority.HIGH))
        store.mark_read(a1.id)
        return store

    def test_aggregate_by_source(self, populated):
        assert populated.aggregate_by_source() == {"A": (2, 1), "B": (1, 1)}
        assert populated.aggregate_by_source()["A"] == SourceCount(count=2, unread_count=1)

    def test_aggregate_by_priority(self, populated):
        assert populated.aggregate_by_priority() == {
            Priority.LOW: 0,
            Priority.NORMAL: 1,
            Priority.HIGH: 2,
            Priority.URGENT: 0,
        }

    def test_unread_count(self, populated):
        assert populated.unread_count() == 2

    def test_records_by_source(self, populated):
        assert [r.source_label for r in populated.records_by_source("A")] == ["A", "A"]

    def test_source_labels(self, populated):
        assert populated.source_labels() == ["A", "B"]

    def test_statistics(self, populated):
        stats = populated.statistics()

        assert stats.total == 3
        assert stats.unread == 2
        assert stats.by_source == {"A": (2, 1), "B": (1, 1)}
        assert stats.by_priority[Priority.HIGH] == 2

    def test_empty_store(self, store):
        assert store.aggregate_by_source() == {}
        assert sum(store.aggregate_by_priority().values()) == 0


class TestPersistence:

    def test_records_survive_new_store(self):
        medium = MemoryMedium()
        record = RecordStore(medium).insert(make_draft("persisted", priority=Priority.URGENT))

        reloaded = RecordStore(medium).query()

        assert reloaded == [record]

    def test_missing_data_is_empty(self):
        assert RecordStore(MemoryMedium()).query() == []

    def test_corrupt_data_is_empty(self):
        assert RecordStore(MemoryMedium("not json at all")).query() == []

    def test_wrong_shape_is_empty(self):
        assert RecordStore(MemoryMedium('[{"id": 1}]')).query() == []

    def test_insert_after_corruption_recovers(self):
        store = RecordStore(MemoryMedium("{{{"))
        store.insert(make_draft())

        assert len(store.query()) == 1

    def test_write_failure_propagates(self):
        class FailingMedium(MemoryMedium):
            def store(self, data):
                raise OSError("disk full")

        store = RecordStore(FailingMedium())

        with pytest.raises(OSError):
            store.insert(make_draft())


class TestConcurrency:

    def test_concurrent_inserts_are_not_lost(self):
        store = RecordStore(MemoryMedium(), clock=StepClock(step=1))

        def worker(n):
            for i in range(25):
                store.insert(make_draft(f"{n}-{i}"))

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        records = store.query()
        assert len(records) == 200
        assert len({r.id for r in records}) == 200
