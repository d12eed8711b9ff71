"""
Domain types shared by the parser, allow-list, store and query engine.

Records are immutable pydantic models; every change goes through the
record store, which replaces the stored value.
"""

import uuid
from enum import Enum
from typing import Literal, NamedTuple, Union

from pydantic import BaseModel, ConfigDict, Field


# Default title when neither the sender nor the body supplies one
DEFAULT_TITLE = "New Message"

# Characters taken from a first line or raw text to build a title
PARSER_TITLE_LENGTH = 50


class Priority(str, Enum):
    """Message priority, ordered by severity."""
    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    URGENT = "URGENT"

    @property
    def level(self) -> int:
        """Severity weight used for sorting and tie-breaks."""
        return _PRIORITY_LEVELS[self]

    @property
    def display_name(self) -> str:
        return self.value.capitalize()

    @classmethod
    def from_string(cls, value) -> "Priority":
        """Map a token such as 'high' to its Priority; unknown tokens give NORMAL."""
        if not value:
            return cls.NORMAL
        return _PRIORITY_LOOKUP.get(str(value).strip().upper(), cls.NORMAL)


_PRIORITY_LEVELS = {
    Priority.LOW: 1,
    Priority.NORMAL: 3,
    Priority.HIGH: 5,
    Priority.URGENT: 8,
}

_PRIORITY_LOOKUP = {
    "LOW": Priority.LOW,
    "NORMAL": Priority.NORMAL,
    "HIGH": Priority.HIGH,
    "URGENT": Priority.URGENT,
}


class TriageRecordDraft(BaseModel):
    """A parsed but not yet stored record."""
    model_config = ConfigDict(frozen=True)

    source_label: str
    title: str = ""
    body: str = ""
    priority: Priority = Priority.NORMAL
    origin_identifier: str = ""
    raw_text: str = ""


class TriageRecord(BaseModel):
    """A stored, prioritized notification."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    source_label: str
    title: str
    body: str = ""
    priority: Priority = Priority.NORMAL
    created_at: int  # epoch millis
    origin_identifier: str = ""
    is_read: bool = False


class SourceCount(NamedTuple):
    count: int
    unread_count: int


class SourceGroup(NamedTuple):
    source_label: str
    total: int
    unread_count: int


class TriageStatistics(NamedTuple):
    total: int
    unread: int
    by_source: dict
    by_priority: dict


# =============================================================================
# Ingestion outcomes
# =============================================================================

class Stored(BaseModel):
    status: Literal["stored"] = "stored"
    record: TriageRecord


class Dropped(BaseModel):
    status: Literal["dropped"] = "dropped"
    reason: str


Outcome = Union[Stored, Dropped]
