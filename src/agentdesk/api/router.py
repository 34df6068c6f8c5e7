"""
FastAPI Router for the desktop agent.

Provides REST endpoints and the WebSocket handler the GUI observes.
The router is a thin adapter: turns run in the ChatService, events come
from the EventStreamer, decisions go to the ApprovalService.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Optional, Union

from fastapi import (
    APIRouter,
    Depends,
    HTTPException,
    Query,
    WebSocket,
    WebSocketDisconnect,
    status,
)

from ..config import Settings
from ..domain.entities import Message, StreamEvent
from ..domain.errors import ArgumentError, AuthError, StoreUnavailableError, TransportError
from ..domain.ports import IModelProvider
from ..orchestrator import ApprovalResolution, CallbackEventSink, ChatService
from ..sessions import SessionStore, validate_session_id
from .schemas import (
    ApprovalDecision,
    ApprovalResponse,
    CancelRequest,
    CancelResponse,
    ChatRequest,
    ChatResponse,
    ChatSettings,
    MessageListResponse,
    MessageResponse,
    ModelListResponse,
    SessionInfoResponse,
    SessionListResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/agent", tags=["agent"])


# =============================================================================
# Dependencies
# =============================================================================


class AgentDependencies:
    """Container for agent dependencies.

    Injected at application startup.
    """

    chat_service: Optional[ChatService] = None
    store: Optional[SessionStore] = None
    provider: Optional[IModelProvider] = None
    settings: Optional[Settings] = None


_deps = AgentDependencies()


def create_agent_dependencies(
    chat_service: ChatService,
    store: SessionStore,
    provider: IModelProvider,
    settings: Settings,
) -> None:
    """Initialize agent dependencies.

    Call this at application startup.

    Args:
        chat_service: Runs turns and routes decisions
        store: Session persistence
        provider: Model provider (for model listing)
        settings: Server defaults
    """
    _deps.chat_service = chat_service
    _deps.store = store
    _deps.provider = provider
    _deps.settings = settings


def reset_agent_dependencies() -> None:
    """Clear injected dependencies."""
    _deps.chat_service = None
    _deps.store = None
    _deps.provider = None
    _deps.settings = None


def get_chat_service() -> ChatService:
    """Get the chat service dependency."""
    if not _deps.chat_service:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Agent not initialized",
        )
    return _deps.chat_service


def get_store() -> SessionStore:
    """Get the session store dependency."""
    if not _deps.store:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Agent not initialized",
        )
    return _deps.store


def get_provider() -> IModelProvider:
    """Get the model provider dependency."""
    if not _deps.provider:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Agent not initialized",
        )
    return _deps.provider


def _default_work_dir() -> str:
    return _deps.settings.work_dir if _deps.settings else ""


def _store_unavailable(e: StoreUnavailableError) -> HTTPException:
    logger.error(f"Session store unavailable: {e}")
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=e.message,
    )


def _invalid_argument(e: ArgumentError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)


def _message_response(message: Message) -> MessageResponse:
    return MessageResponse(**message.to_dict())


# =============================================================================
# REST Endpoints
# =============================================================================


@router.post("/chat", response_model=ChatResponse)
async def start_chat(
    request: ChatRequest,
    chat_service: ChatService = Depends(get_chat_service),
) -> ChatResponse:
    """Start a turn.

    Events are delivered to WebSocket observers; this endpoint
    returns immediately.
    """
    session_id = request.session_id or str(uuid.uuid4())
    try:
        validate_session_id(session_id)
    except ArgumentError as e:
        raise _invalid_argument(e)

    task = asyncio.create_task(
        _run_chat(chat_service, session_id, request.message, request.settings),
        name=f"chat-{session_id}",
    )
    task.add_done_callback(_task_exception_handler)
    return ChatResponse(session_id=session_id)


def _task_exception_handler(task: asyncio.Task) -> None:
    """Handle exceptions from background tasks.

    Ensures exceptions are logged and don't cause unhandled exception warnings.
    """
    if task.cancelled():
        return
    exc = task.exception()
    if exc:
        logger.error(
            f"Background task {task.get_name()} failed: {exc}",
            exc_info=(type(exc), exc, exc.__traceback__),
        )


async def _run_chat(
    chat_service: ChatService,
    session_id: str,
    message: str,
    settings: ChatSettings,
) -> None:
    await chat_service.chat_stream(
        session_id,
        message,
        model=settings.model,
        work_dir=settings.work_dir,
        config_file=settings.config_file,
        yolo=settings.yolo,
    )


@router.post("/approvals/{request_id}", response_model=ApprovalResponse)
async def resolve_approval(
    request_id: str,
    decision: ApprovalDecision,
    chat_service: ChatService = Depends(get_chat_service),
) -> ApprovalResponse:
    """Approve or reject a pending tool call."""
    try:
        resolution = chat_service.resolve_approval(request_id, decision.approved)
    except StoreUnavailableError as e:
        raise _store_unavailable(e)

    if resolution == ApprovalResolution.NOT_FOUND:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Approval request not found",
        )
    return ApprovalResponse(request_id=request_id, status=resolution.value)


@router.post("/cancel", response_model=CancelResponse)
async def cancel_chat(
    request: CancelRequest,
    chat_service: ChatService = Depends(get_chat_service),
) -> CancelResponse:
    """Cancel one session's turn, or all live turns."""
    try:
        if request.session_id:
            cancelled = 1 if chat_service.cancel(request.session_id) else 0
        else:
            cancelled = chat_service.cancel_all()
    except StoreUnavailableError as e:
        raise _store_unavailable(e)
    return CancelResponse(cancelled=cancelled)


@router.get("/sessions", response_model=SessionListResponse)
async def list_sessions(
    work_dir: Optional[str] = Query(None),
    store: SessionStore = Depends(get_store),
) -> SessionListResponse:
    """List GUI sessions and the CLI sessions of a working directory."""
    try:
        infos = store.list_sessions(work_dir or None)
    except StoreUnavailableError as e:
        raise _store_unavailable(e)
    return SessionListResponse(
        sessions=[SessionInfoResponse(**info.to_dict()) for info in infos],
        total=len(infos),
    )


@router.get("/sessions/{session_id}/messages", response_model=MessageListResponse)
async def get_session_messages(
    session_id: str,
    work_dir: Optional[str] = Query(None),
    store: SessionStore = Depends(get_store),
) -> MessageListResponse:
    """Get a session's message history."""
    try:
        messages = store.get_messages(work_dir or _default_work_dir(), session_id)
    except StoreUnavailableError as e:
        raise _store_unavailable(e)
    except ArgumentError as e:
        raise _invalid_argument(e)
    return MessageListResponse(
        session_id=session_id,
        messages=[_message_response(m) for m in messages],
    )


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(
    session_id: str,
    work_dir: Optional[str] = Query(None),
    chat_service: ChatService = Depends(get_chat_service),
) -> None:
    """Delete a session and its CLI transcript."""
    try:
        chat_service.delete_session(work_dir or _default_work_dir(), session_id)
    except StoreUnavailableError as e:
        raise _store_unavailable(e)
    except ArgumentError as e:
        raise _invalid_argument(e)


@router.get("/models", response_model=ModelListResponse)
async def list_models(
    provider: IModelProvider = Depends(get_provider),
) -> ModelListResponse:
    """List models advertised by the endpoint."""
    try:
        models = await provider.list_models()
    except AuthError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=e.message)
    except TransportError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.message)
    return ModelListResponse(models=models)


# =============================================================================
# WebSocket
# =============================================================================


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """WebSocket endpoint for streaming turns.

    Message formats:
    - Client -> Server:
        {"type": "chat", "message": "...", "session_id": "...", "settings": {...}}
        {"type": "approval", "request_id": "...", "approved": true/false}
        {"type": "cancel", "session_id": "..."}   (omit session_id to cancel all)
        {"type": "ping"}

    - Server -> Client:
        {"event": "thinking" | "tool_status" | ... | "error", "data": {...}}
        {"type": "chat_started", "session_id": "..."}
        {"type": "approval", "request_id": "...", "status": "ok" | "not_found"}
        {"type": "pong"}

    A connection only receives events of the sessions it started.
    """
    chat_service = _deps.chat_service
    await websocket.accept()

    if not chat_service:
        await websocket.send_json({"type": "error", "message": "Agent not initialized"})
        await websocket.close()
        return

    logger.info("WebSocket connected")
    outbox: asyncio.Queue[Union[StreamEvent, dict[str, Any]]] = asyncio.Queue()
    sessions: set[str] = set()
    tasks: set[asyncio.Task] = set()

    def forward(event: StreamEvent) -> None:
        if event.session_id in sessions:
            outbox.put_nowait(event)

    emitter = chat_service.orchestrator.emitter
    sink = emitter.subscribe(CallbackEventSink(forward))
    writer = asyncio.create_task(_write_outbox(websocket, outbox), name="ws-writer")

    try:
        while True:
            data = await websocket.receive_json()
            msg_type = data.get("type", "chat")

            if msg_type == "chat":
                message = data.get("message") or ""
                if not message:
                    outbox.put_nowait({"type": "error", "message": "Empty message"})
                    continue
                session_id = str(data.get("session_id") or uuid.uuid4())
                try:
                    validate_session_id(session_id)
                except ArgumentError as e:
                    outbox.put_nowait({"type": "error", "message": e.message})
                    continue
                settings = ChatSettings.model_validate(data.get("settings") or {})
                sessions.add(session_id)
                outbox.put_nowait({"type": "chat_started", "session_id": session_id})

                task = asyncio.create_task(
                    _run_chat(chat_service, session_id, message, settings),
                    name=f"chat-{session_id}",
                )
                tasks.add(task)
                task.add_done_callback(tasks.discard)
                task.add_done_callback(_task_exception_handler)

            elif msg_type == "approval":
                request_id = str(data.get("request_id", ""))
                resolution = chat_service.resolve_approval(
                    request_id, bool(data.get("approved", False))
                )
                outbox.put_nowait(
                    {"type": "approval", "request_id": request_id, "status": resolution.value}
                )

            elif msg_type == "cancel":
                session_id = data.get("session_id")
                targets = [session_id] if session_id else list(sessions)
                for target in targets:
                    chat_service.cancel(target)

            elif msg_type == "ping":
                # Heartbeat
                outbox.put_nowait({"type": "pong"})

    except WebSocketDisconnect:
        logger.info("WebSocket disconnected")
    except Exception as e:
        logger.exception(f"WebSocket error: {e}")
    finally:
        emitter.unsubscribe(sink)
        for session_id in sessions:
            chat_service.cancel(session_id)
        writer.cancel()


async def _write_outbox(
    websocket: WebSocket,
    outbox: asyncio.Queue,
) -> None:
    """Send queued events and replies in order."""
    while True:
        item = await outbox.get()
        payload = item.to_dict() if isinstance(item, StreamEvent) else item
        try:
            await websocket.send_json(payload)
        except Exception as e:
            logger.warning(f"WebSocket send failed: {e}")
            return
