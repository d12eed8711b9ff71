import json
import logging
from contextlib import asynccontextmanager
from typing import Annotated, List, Optional

from fastapi import FastAPI, Response, Request, Depends, Header, HTTPException, status, Query
from pydantic import ValidationError

from triage.allowlist import AllowListFilter
from triage.config import settings
from triage.logging_utils import setup_logging, RequestLoggingMiddleware, log_ingest_data
from triage.metrics import record_ingest_outcome, get_metrics, get_metrics_content_type
from triage.pipeline import IngestionPipeline
from triage.queries import ReadState, group_by_source, triage_view
from triage.record_store import RecordStore
from triage.records import Priority, Stored, TriageRecord
from triage.schemas import (
    AllowListEntryRequest,
    AllowListResponse,
    ErrorResponse,
    HealthResponse,
    InboundMessageRequest,
    IngestResponse,
    ManualRecordRequest,
    MarkAllReadResponse,
    RecordsListResponse,
    SourceCountResponse,
    SourceGroupResponse,
    StatsResponse,
    StatusResponse,
)
from triage.storage import SqlKeyValueMedium, check_db_health, init_db
from triage.utils import verify_hmac_signature


setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

RECORDS_KEY = "messages"
ALLOWED_NUMBERS_KEY = "allowed_numbers"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup: create tables and build the single store, allow-list and pipeline
    that every request shares through app.state.
    """
    init_db()
    store = RecordStore(
        SqlKeyValueMedium(RECORDS_KEY),
        max_size=settings.MAX_STORED_RECORDS,
        title_max_length=settings.TITLE_MAX_LENGTH,
    )
    allow_list = AllowListFilter(SqlKeyValueMedium(ALLOWED_NUMBERS_KEY))
    app.state.store = store
    app.state.allow_list = allow_list
    app.state.pipeline = IngestionPipeline(store, allow_list, settings.DEFAULT_SOURCE_LABEL)
    logger.info(f"Triage engine ready (retention cap {settings.MAX_STORED_RECORDS})")
    yield


app = FastAPI(
    title="SMS Triage API",
    description="Parses inbound SMS into prioritized notifications, filters by sender and keeps a bounded inbox",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)


def get_store(request: Request) -> RecordStore:
    return request.app.state.store


def get_allow_list(request: Request) -> AllowListFilter:
    return request.app.state.allow_list


def get_pipeline(request: Request) -> IngestionPipeline:
    return request.app.state.pipeline


def _not_found(record_id: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"record {record_id} not found")


# =============================================================================
# Health Check Routes
# =============================================================================

@app.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    """Liveness probe - 200 once the app is running."""
    return HealthResponse(status="ok")


@app.get("/health/ready", response_model=HealthResponse)
async def health_ready(response: Response) -> HealthResponse:
    """
    Readiness probe - 200 only if WEBHOOK_SECRET is set and the
    kv_store table is reachable; 503 otherwise.
    """
    if not settings.WEBHOOK_SECRET:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(status="not_ready", reason="WEBHOOK_SECRET not configured")

    if not check_db_health():
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(status="not_ready", reason="Database not reachable or schema not applied")

    return HealthResponse(status="ready")


# =============================================================================
# Inbound Messages
# =============================================================================

@app.post(
    "/webhook",
    response_model=IngestResponse,
    response_model_exclude_none=True,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid signature"},
        422: {"description": "Validation error"},
    }
)
async def webhook(
    request: Request,
    x_signature: Annotated[str | None, Header(alias="X-Signature")] = None,
    pipeline: IngestionPipeline = Depends(get_pipeline),
) -> IngestResponse:
    """
    Triage one inbound message.

    - Validates the HMAC-SHA256 X-Signature over the raw body
    - Parses, checks the sender against the allow-list, and stores
    - A rejected sender is a normal 200 response with status "dropped"
    """
    raw_body = await request.body()
    logger.debug(f"Request body size: {len(raw_body)} bytes")

    if not verify_hmac_signature(raw_body, x_signature or "", settings.WEBHOOK_SECRET):
        logger.error("Missing or invalid X-Signature")
        record_ingest_outcome("invalid_signature")
        log_ingest_data(request=request, result="invalid_signature")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid signature")

    try:
        message = InboundMessageRequest.model_validate(json.loads(raw_body))
    except ValidationError as e:
        logger.error(f"Validation error: {e}")
        record_ingest_outcome("validation_error")
        log_ingest_data(request=request, result="validation_error")
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    except ValueError as e:
        # JSONDecodeError and UnicodeDecodeError
        logger.error(f"Invalid JSON: {e}")
        record_ingest_outcome("validation_error")
        log_ingest_data(request=request, result="validation_error")
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=f"Invalid JSON: {e}")

    outcome = pipeline.ingest(message.text, message.source, message.from_identifier)

    record_ingest_outcome(outcome.status)
    if isinstance(outcome, Stored):
        log_ingest_data(request=request, origin=message.from_identifier, result="stored",
                        record_id=outcome.record.id)
        return IngestResponse(status="stored", record=outcome.record)

    log_ingest_data(request=request, origin=message.from_identifier, result="dropped")
    return IngestResponse(status="dropped", reason=outcome.reason)


# =============================================================================
# Records
# =============================================================================

@app.post("/records", response_model=TriageRecord, status_code=status.HTTP_201_CREATED)
async def create_record(
    body: ManualRecordRequest,
    pipeline: IngestionPipeline = Depends(get_pipeline),
) -> TriageRecord:
    """Add a hand-written record (no sender, allow-list not consulted)."""
    outcome = pipeline.submit(body.source_label, body.title, body.body, body.priority)
    return outcome.record


@app.get("/records", response_model=RecordsListResponse)
async def list_records(
    view: Annotated[ReadState, Query(description="all or unread")] = ReadState.ALL,
    priority: Annotated[Optional[Priority], Query(description="Only this priority")] = None,
    source: Annotated[Optional[str], Query(description="Only this source label")] = None,
    store: RecordStore = Depends(get_store),
) -> RecordsListResponse:
    """Inbox listing, newest first."""
    records = store.query()
    data = triage_view(records, view, priority, source)
    logger.info(f"GET /records: view={view.value}, priority={priority}, source={source}, returned {len(data)}")
    return RecordsListResponse(
        data=data,
        total=len(data),
        unread=sum(1 for r in records if not r.is_read),
    )


@app.post("/records/read-all", response_model=MarkAllReadResponse)
async def mark_all_read(store: RecordStore = Depends(get_store)) -> MarkAllReadResponse:
    return MarkAllReadResponse(marked=store.mark_all_read())


@app.delete("/records", response_model=StatusResponse)
async def clear_records(store: RecordStore = Depends(get_store)) -> StatusResponse:
    store.clear_all()
    return StatusResponse()


@app.get("/records/{record_id}", response_model=TriageRecord, responses={404: {"model": ErrorResponse}})
async def get_record(record_id: str, store: RecordStore = Depends(get_store)) -> TriageRecord:
    record = store.get(record_id)
    if record is None:
        raise _not_found(record_id)
    return record


@app.post("/records/{record_id}/read", response_model=TriageRecord, responses={404: {"model": ErrorResponse}})
async def mark_record_read(record_id: str, store: RecordStore = Depends(get_store)) -> TriageRecord:
    record = store.update(record_id, lambda r: r.model_copy(update={"is_read": True}))
    if record is None:
        raise _not_found(record_id)
    return record


@app.delete("/records/{record_id}", response_model=StatusResponse, responses={404: {"model": ErrorResponse}})
async def delete_record(record_id: str, store: RecordStore = Depends(get_store)) -> StatusResponse:
    if not store.delete(record_id):
        raise _not_found(record_id)
    return StatusResponse()


# =============================================================================
# Stats
# =============================================================================

@app.get("/stats", response_model=StatsResponse)
async def get_statistics(store: RecordStore = Depends(get_store)) -> StatsResponse:
    """Totals, unread count, per-source and per-priority counts."""
    stats = store.statistics()
    logger.info(f"GET /stats: {stats.total} records, {stats.unread} unread")
    return StatsResponse(
        total=stats.total,
        unread=stats.unread,
        by_source={
            label: SourceCountResponse(count=counts.count, unread=counts.unread_count)
            for label, counts in stats.by_source.items()
        },
        by_priority=stats.by_priority,
    )


@app.get("/sources", response_model=List[SourceGroupResponse])
async def list_sources(store: RecordStore = Depends(get_store)) -> List[SourceGroupResponse]:
    """Sources ordered by record count, busiest first."""
    return [
        SourceGroupResponse(source_label=group.source_label, total=group.total, unread=group.unread_count)
        for group in group_by_source(store.query())
    ]


# =============================================================================
# Allow-list
# =============================================================================

def _allow_list_response(allow_list: AllowListFilter) -> AllowListResponse:
    entries = allow_list.entries()
    return AllowListResponse(entries=entries, allow_all=not entries)


@app.get("/allowlist", response_model=AllowListResponse)
async def get_allow_list_entries(allow_list: AllowListFilter = Depends(get_allow_list)) -> AllowListResponse:
    return _allow_list_response(allow_list)


@app.post("/allowlist", response_model=AllowListResponse, responses={422: {"model": ErrorResponse}})
async def add_allow_list_entry(
    body: AllowListEntryRequest,
    allow_list: AllowListFilter = Depends(get_allow_list),
) -> AllowListResponse:
    """Allow a number. Adding an existing number is a no-op."""
    if not any(c.isdigit() for c in body.number):
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="number must contain digits")
    allow_list.add_entry(body.number)
    return _allow_list_response(allow_list)


@app.delete("/allowlist", response_model=AllowListResponse, responses={404: {"model": ErrorResponse}})
async def remove_allow_list_entry(
    number: Annotated[str, Query(min_length=1, description="Number to remove")],
    allow_list: AllowListFilter = Depends(get_allow_list),
) -> AllowListResponse:
    if not allow_list.remove_entry(number):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"number {number} not in allow-list")
    return _allow_list_response(allow_list)


@app.post("/allowlist/clear", response_model=AllowListResponse)
async def clear_allow_list(allow_list: AllowListFilter = Depends(get_allow_list)) -> AllowListResponse:
    """Remove every entry; all senders are allowed again."""
    allow_list.clear()
    return _allow_list_response(allow_list)


# =============================================================================
# Metrics Route
# =============================================================================

@app.get("/metrics")
async def metrics() -> Response:
    """Prometheus text exposition of request and ingest metrics."""
    return Response(content=get_metrics(), media_type=get_metrics_content_type())
