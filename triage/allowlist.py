"""
Allow-list of origin identifiers (phone numbers).

An empty list admits every origin. Entries are stored normalized: digits
with an optional leading '+'. Two identifiers match when their digits agree,
so '+1 (234) 567-8900' admits '12345678900'.
"""

import json
import logging
import re
import threading
from typing import List

from triage.storage import KeyValueMedium

logger = logging.getLogger(__name__)

_NON_DIGIT = re.compile(r"\D")


def normalize_identifier(value: str) -> str:
    """Keep digits and a single leading '+'."""
    if not value:
        return ""
    value = value.strip()
    digits = _NON_DIGIT.sub("", value)
    if not digits:
        return ""
    return ("+" + digits) if value.startswith("+") else digits


def _match_key(normalized: str) -> str:
    return normalized.lstrip("+")


class AllowListFilter:
    """Decides whether an origin may produce a stored record."""

    def __init__(self, medium: KeyValueMedium):
        self._medium = medium
        self._lock = threading.RLock()

    def is_allowed(self, origin_identifier: str) -> bool:
        with self._lock:
            entries = self._load()
            if not entries:
                return True
            key = _match_key(normalize_identifier(origin_identifier))
            if not key:
                return False
            return any(_match_key(entry) == key for entry in entries)

    def add_entry(self, value: str) -> bool:
        """Add an identifier. Returns False if it is empty or already present."""
        normalized = normalize_identifier(value)
        if not normalized:
            logger.warning(f"Ignoring allow-list entry without digits: {value!r}")
            return False
        with self._lock:
            entries = self._load()
            if any(_match_key(entry) == _match_key(normalized) for entry in entries):
                return False
            entries.append(normalized)
            self._save(entries)
        logger.info(f"Allow-list entry added: {normalized}")
        return True

    def remove_entry(self, value: str) -> bool:
        """Remove the entry equivalent to value. Returns whether one was removed."""
        key = _match_key(normalize_identifier(value))
        with self._lock:
            entries = self._load()
            remaining = [entry for entry in entries if _match_key(entry) != key]
            if len(remaining) == len(entries):
                return False
            self._save(remaining)
        logger.info(f"Allow-list entry removed: {value}")
        return True

    def entries(self) -> List[str]:
        with self._lock:
            return sorted(self._load())

    def clear(self) -> None:
        with self._lock:
            self._save([])
        logger.info("Allow-list cleared, all origins allowed")

    def _load(self) -> List[str]:
        raw = self._medium.load()
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Allow-list data unreadable, treating as empty: {e}")
            return []
        if not isinstance(data, list):
            logger.warning("Allow-list data is not a list, treating as empty")
            return []
        # Re-normalize so hand-edited data still has set semantics
        entries: List[str] = []
        seen = set()
        for item in data:
            normalized = normalize_identifier(str(item))
            if normalized and _match_key(normalized) not in seen:
                seen.add(_match_key(normalized))
                entries.append(normalized)
        return entries

    def _save(self, entries: List[str]) -> None:
        self._medium.store(json.dumps(entries))
