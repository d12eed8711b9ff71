"""
Turns raw inbound text (an SMS body) into a TriageRecordDraft.

Recognized shapes, tried in order:

    [APP:Server] HIGH: Disk space low | Only 5GB remaining
    [APP:Backup] Daily backup completed
    Plain text, first line becomes the title

Parsing never raises. Anything unexpected degrades to a title cut from the
first 50 characters and a body holding the rest.
"""

import logging
import re
from typing import Optional

from triage.records import PARSER_TITLE_LENGTH, Priority, TriageRecordDraft

logger = logging.getLogger(__name__)

APP_PREFIX = "[APP:"

# "]" at or before this index means there is no app name
MIN_APP_BRACKET_INDEX = len(APP_PREFIX)

PRIORITY_PATTERN = re.compile(r"^(LOW|NORMAL|HIGH|URGENT):", re.IGNORECASE)

LINE_BREAK = re.compile(r"\r\n|\n|\r")


class MalformedMessage(ValueError):
    """Raised internally when a structured header cannot be read."""


def parse(
    raw_text: Optional[str],
    source_hint: str = "SMS",
    origin_identifier: str = "",
) -> TriageRecordDraft:
    """
    Parse raw text into a draft.

    Args:
        raw_text: Message body as received; None is treated as empty
        source_hint: Label used when the text names no app (e.g. "SMS")
        origin_identifier: Sender address, passed through untouched

    Returns:
        Best-effort TriageRecordDraft
    """
    raw_text = raw_text or ""
    try:
        if raw_text.startswith(APP_PREFIX):
            source_label, priority, title, body = _parse_structured(raw_text, source_hint)
        else:
            source_label, priority, title, body = _parse_unstructured(raw_text, source_hint)
    except Exception as e:
        logger.debug(f"Falling back to truncated parse: {e}")
        source_label, priority, title, body = _parse_fallback(raw_text, source_hint)

    return TriageRecordDraft(
        source_label=source_label,
        title=title,
        body=body,
        priority=priority,
        origin_identifier=origin_identifier or "",
        raw_text=raw_text,
    )


def _parse_structured(raw_text: str, source_hint: str):
    app_end = raw_text.find("]")
    if app_end <= MIN_APP_BRACKET_INDEX:
        raise MalformedMessage(f"no app name before ']' (index {app_end})")

    source_label = raw_text[MIN_APP_BRACKET_INDEX:app_end].strip() or source_hint
    remaining = raw_text[app_end + 1:].strip()

    priority = Priority.NORMAL
    match = PRIORITY_PATTERN.match(remaining)
    if match:
        priority = Priority.from_string(match.group(1))
        remaining = remaining[match.end():].strip()

    title, body = _split_title_body(remaining)
    return source_label, priority, title, body


def _parse_unstructured(raw_text: str, source_hint: str):
    lines = LINE_BREAK.split(raw_text)
    title = lines[0][:PARSER_TITLE_LENGTH]
    body = "\n".join(lines[1:])
    return source_hint, Priority.NORMAL, title, body


def _parse_fallback(raw_text: str, source_hint: str):
    title = raw_text[:PARSER_TITLE_LENGTH]
    body = raw_text[PARSER_TITLE_LENGTH:]
    return source_hint, Priority.NORMAL, title, body


def _split_title_body(content: str):
    title, sep, body = content.partition("|")
    return title.strip(), body.strip() if sep else ""
