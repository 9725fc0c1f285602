import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Annotated, Any, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, Response, status
from fastapi.responses import JSONResponse
import uvicorn

from openmessages.config import get_settings
from openmessages.errors import StorageError
from openmessages.logging_utils import RequestLoggingMiddleware, get_request_id, setup_logging
from openmessages.media import extension_for_mime, format_message_body
from openmessages.metrics import get_metrics, get_metrics_content_type
from openmessages.schemas import (
    Contact,
    Conversation,
    Draft,
    DraftRequest,
    ErrorResponse,
    HealthResponse,
    Message,
    MessageResponse,
    StatusResponse,
)
from openmessages.storage import Store

settings = get_settings()
logger = logging.getLogger(__name__)


def get_store(request: Request) -> Store:
    """Dependency returning the Store owned by the application."""
    return request.app.state.store


StoreDep = Annotated[Store, Depends(get_store)]


def to_message_response(message: Message) -> MessageResponse:
    """Public view of a message: derived media fields, no decryption key."""
    return MessageResponse(
        message_id=message.message_id,
        conversation_id=message.conversation_id,
        sender_name=message.sender_name,
        sender_number=message.sender_number,
        body=message.body,
        display_body=format_message_body(
            message.body, message.media_id, message.mime_type, message.message_id
        ),
        timestamp_ms=message.timestamp_ms,
        status=message.status,
        is_from_me=message.is_from_me,
        media_id=message.media_id or None,
        mime_type=message.mime_type or None,
        media_extension=extension_for_mime(message.mime_type) if message.has_media else None,
        reactions=message.reactions or None,
        reply_to_id=message.reply_to_id or None,
    )


router = APIRouter()


# =============================================================================
# Health Check Routes
# =============================================================================

@router.get("/health/live", response_model=HealthResponse)
def health_live() -> HealthResponse:
    """Liveness probe - always returns 200 once the app is running."""
    return HealthResponse(status="ok")


@router.get("/health/ready", response_model=HealthResponse)
def health_ready(response: Response, store: StoreDep) -> HealthResponse:
    """
    Readiness probe - returns 200 only if the DB is reachable and the
    schema is applied, otherwise 503.
    """
    if not store.check_health():
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="Database not reachable or schema not applied"
        )
    return HealthResponse(status="ready")


# =============================================================================
# Conversation Routes
# =============================================================================

@router.get("/api/conversations", response_model=list[Conversation])
def list_conversations(
    store: StoreDep,
    limit: Annotated[int, Query(ge=1, le=500, description="Maximum number of conversations")] = 50,
) -> list[Conversation]:
    """Conversations ordered by most recent activity."""
    return store.list_conversations(limit)


@router.get(
    "/api/conversations/{conversation_id}",
    response_model=Conversation,
    responses={404: {"model": ErrorResponse}},
)
def get_conversation(conversation_id: str, store: StoreDep) -> Conversation:
    conversation = store.get_conversation(conversation_id)
    if conversation is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="conversation not found")
    return conversation


@router.get(
    "/api/conversations/{conversation_id}/messages",
    response_model=list[MessageResponse],
    response_model_exclude_none=True,
)
def get_conversation_messages(
    conversation_id: str,
    store: StoreDep,
    limit: Annotated[int, Query(ge=1, le=1000, description="Maximum number of messages")] = 100,
) -> list[MessageResponse]:
    """Messages of one conversation, newest first."""
    messages = store.get_messages_by_conversation(conversation_id, limit)
    return [to_message_response(m) for m in messages]


@router.get("/api/conversations/{conversation_id}/drafts", response_model=list[Draft])
def list_drafts(
    conversation_id: str,
    store: StoreDep,
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
) -> list[Draft]:
    return store.list_drafts(conversation_id, limit)


# =============================================================================
# Message Routes
# =============================================================================

@router.get(
    "/api/messages",
    response_model=list[MessageResponse],
    response_model_exclude_none=True,
)
def list_messages(
    store: StoreDep,
    phone_number: Annotated[Optional[str], Query(description="Filter by sender number (exact match)")] = None,
    after_ms: Annotated[Optional[int], Query(ge=0, description="Only messages at or after this epoch ms")] = None,
    before_ms: Annotated[Optional[int], Query(ge=0, description="Only messages at or before this epoch ms")] = None,
    limit: Annotated[int, Query(ge=1, le=1000, description="Maximum number of messages")] = 50,
) -> list[MessageResponse]:
    """
    Messages across all conversations, newest first.

    Filters are optional and combined with AND.
    """
    logger.info(f"GET /api/messages: phone={phone_number}, after={after_ms}, before={before_ms}, limit={limit}")
    messages = store.get_messages(phone_number, after_ms, before_ms, limit)
    return [to_message_response(m) for m in messages]


@router.get(
    "/api/messages/{message_id}",
    response_model=MessageResponse,
    response_model_exclude_none=True,
    responses={404: {"model": ErrorResponse}},
)
def get_message(message_id: str, store: StoreDep) -> MessageResponse:
    message = store.get_message_by_id(message_id)
    if message is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="message not found")
    return to_message_response(message)


@router.get(
    "/api/search",
    response_model=list[MessageResponse],
    response_model_exclude_none=True,
)
def search_messages(
    store: StoreDep,
    q: Annotated[str, Query(min_length=1, description="Substring to look for in message bodies")],
    phone_number: Annotated[Optional[str], Query(description="Restrict to this sender number")] = None,
    limit: Annotated[int, Query(ge=1, le=1000)] = 50,
) -> list[MessageResponse]:
    messages = store.search_messages(q, phone_number, limit)
    return [to_message_response(m) for m in messages]


# =============================================================================
# Contact and Draft Routes
# =============================================================================

@router.get("/api/contacts", response_model=list[Contact])
def list_contacts(
    store: StoreDep,
    q: Annotated[str, Query(description="Substring of name or number; empty lists all")] = "",
    limit: Annotated[int, Query(ge=1, le=1000)] = 50,
) -> list[Contact]:
    return store.list_contacts(q, limit)


@router.post("/api/drafts", response_model=Draft, status_code=status.HTTP_201_CREATED)
def create_draft(payload: DraftRequest, store: StoreDep) -> Draft:
    draft = Draft(
        draft_id=uuid.uuid4().hex,
        conversation_id=payload.conversation_id,
        body=payload.body,
        created_at=int(time.time() * 1000),
    )
    store.upsert_draft(draft)
    logger.info(f"Draft created: {draft.draft_id} conv={draft.conversation_id}")
    return draft


# =============================================================================
# Status and Metrics Routes
# =============================================================================

@router.get("/api/status", response_model=StatusResponse)
def get_status(request: Request, store: StoreDep) -> StatusResponse:
    return StatusResponse(
        connected=getattr(request.app.state, "client", None) is not None,
        stats=store.stats(),
    )


@router.get("/metrics")
def metrics() -> Response:
    """Expose Prometheus-style metrics."""
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )


async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            detail=f"storage error: {exc}", request_id=get_request_id()
        ).model_dump(exclude_none=True),
    )


def create_app(store: Optional[Store] = None, client: Any = None) -> FastAPI:
    """
    Build the API application.

    Args:
        store: Store to serve from. When omitted, one is opened on
            ``DATABASE_URL`` at startup and closed at shutdown.
        client: Upstream messaging client, if connected. Only its presence
            is reported by /api/status.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_store = app.state.store is None
        if owns_store:
            app.state.store = Store(settings.DATABASE_URL)
        yield
        if owns_store:
            app.state.store.close()
            app.state.store = None

    app = FastAPI(
        title="openmessages",
        description="Local mirror of a messaging account's conversations and messages",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.store = store
    app.state.client = client
    app.add_middleware(RequestLoggingMiddleware)
    app.add_exception_handler(StorageError, storage_error_handler)
    app.include_router(router)
    return app


app = create_app()


def run() -> None:
    """Serve the API with uvicorn."""
    setup_logging(settings.LOG_LEVEL)
    uvicorn.run(app, host=settings.HOST, port=settings.PORT, log_config=None)
