"""
Read-only views over a record snapshot for presentation.

Every function returns a new list and leaves its input untouched.
"""

from datetime import datetime
from enum import Enum
from typing import Iterable, List, Optional, Union

from triage.records import Priority, SourceGroup, TriageRecord


class ReadState(str, Enum):
    ALL = "all"
    UNREAD_ONLY = "unread"


def filter_by_read_state(
    records: Iterable[TriageRecord], want: Union[ReadState, str] = ReadState.ALL
) -> List[TriageRecord]:
    if ReadState(want) is ReadState.UNREAD_ONLY:
        return [r for r in records if not r.is_read]
    return list(records)


def filter_by_priority(
    records: Iterable[TriageRecord], priority: Optional[Priority] = None
) -> List[TriageRecord]:
    if priority is None:
        return list(records)
    return [r for r in records if r.priority == priority]


def filter_by_source(
    records: Iterable[TriageRecord], source_label: Optional[str] = None
) -> List[TriageRecord]:
    if source_label is None:
        return list(records)
    return [r for r in records if r.source_label == source_label]


def sort_by_recency(records: Iterable[TriageRecord]) -> List[TriageRecord]:
    """Newest first. sorted() is stable, so equal timestamps keep their input order."""
    return sorted(records, key=lambda r: r.created_at, reverse=True)


def group_by_source(records: Iterable[TriageRecord]) -> List[SourceGroup]:
    """
    One row per source label: (label, total, unread).
    Ordered by total descending, then label ascending.
    """
    totals = {}
    unread = {}
    for record in records:
        totals[record.source_label] = totals.get(record.source_label, 0) + 1
        if not record.is_read:
            unread[record.source_label] = unread.get(record.source_label, 0) + 1
    groups = [SourceGroup(label, total, unread.get(label, 0)) for label, total in totals.items()]
    groups.sort(key=lambda g: (-g.total, g.source_label))
    return groups


def triage_view(
    records: Iterable[TriageRecord],
    read_state: Union[ReadState, str] = ReadState.ALL,
    priority: Optional[Priority] = None,
    source_label: Optional[str] = None,
) -> List[TriageRecord]:
    """The inbox listing: filter by read state, priority and source, newest first."""
    selected = filter_by_read_state(records, read_state)
    selected = filter_by_priority(selected, priority)
    selected = filter_by_source(selected, source_label)
    return sort_by_recency(selected)


def format_relative_time(created_at: int, now: int) -> str:
    """Short age label for a record, e.g. 'Just now', '5m ago', '3h ago', 'Jan 05, 14:30'."""
    diff = now - created_at
    if diff < 60_000:
        return "Just now"
    if diff < 3_600_000:
        return f"{diff // 60_000}m ago"
    if diff < 86_400_000:
        return f"{diff // 3_600_000}h ago"
    return datetime.fromtimestamp(created_at / 1000).strftime("%b %d, %H:%M")
