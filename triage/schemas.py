"""
Pydantic schemas for request/response validation.

Record payloads reuse the TriageRecord domain model from records.py.
"""

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from triage.records import Priority, TriageRecord


# =============================================================================
# Request Models
# =============================================================================

class InboundMessageRequest(BaseModel):
    """
    An inbound message delivered to POST /webhook.

    - from: sender address (any phone-like string; normalized for allow-list checks)
    - text: raw message body, max 4096 characters
    - source: label used when the text names no app (defaults to DEFAULT_SOURCE_LABEL)
    """
    from_identifier: str = Field(
        "",
        alias="from",
        max_length=64,
        description="Sender address, e.g. +40712345678"
    )
    text: str = Field(
        ...,
        max_length=4096,
        description="Raw message body"
    )
    source: Optional[str] = Field(
        None,
        min_length=1,
        max_length=64,
        description="Source label for messages without an [APP:...] header"
    )

    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {
            "examples": [
                {
                    "from": "+40712345678",
                    "text": "[APP:Server] URGENT: Disk low | 5GB left",
                    "source": "SMS"
                }
            ]
        }
    }


class ManualRecordRequest(BaseModel):
    """A record composed by hand (POST /records)."""
    source_label: str = Field("TestApp", max_length=64)
    title: str = Field(..., min_length=1, max_length=500)
    body: str = Field("", max_length=4096)
    priority: Priority = Priority.NORMAL

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("title must not be blank")
        return v

    @field_validator("priority", mode="before")
    @classmethod
    def parse_priority(cls, v):
        return Priority.from_string(v) if isinstance(v, str) else v


class AllowListEntryRequest(BaseModel):
    number: str = Field(..., min_length=1, max_length=64, description="Phone number to allow")


# =============================================================================
# Response Models
# =============================================================================

class IngestResponse(BaseModel):
    """Outcome of POST /webhook."""
    status: Literal["stored", "dropped"]
    record: Optional[TriageRecord] = None
    reason: Optional[str] = None


class ErrorResponse(BaseModel):
    detail: str = Field(..., description="Error description")


class RecordsListResponse(BaseModel):
    """GET /records: the filtered view plus store-wide counts."""
    data: List[TriageRecord] = Field(default_factory=list)
    total: int = Field(..., ge=0, description="Records in this view")
    unread: int = Field(..., ge=0, description="Unread records in the whole store")


class MarkAllReadResponse(BaseModel):
    marked: int = Field(..., ge=0)


class StatusResponse(BaseModel):
    status: str = Field(default="ok")


class SourceCountResponse(BaseModel):
    count: int = Field(..., ge=0)
    unread: int = Field(..., ge=0)


class StatsResponse(BaseModel):
    total: int = Field(..., ge=0)
    unread: int = Field(..., ge=0)
    by_source: Dict[str, SourceCountResponse] = Field(default_factory=dict)
    by_priority: Dict[Priority, int] = Field(default_factory=dict)


class SourceGroupResponse(BaseModel):
    source_label: str
    total: int = Field(..., ge=0)
    unread: int = Field(..., ge=0)


class AllowListResponse(BaseModel):
    entries: List[str] = Field(default_factory=list)
    allow_all: bool = Field(..., description="True when the list is empty")


class HealthResponse(BaseModel):
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")
