import json
import logging
from typing import AsyncIterator, Optional
from uuid import UUID, uuid4

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sse_starlette.sse import EventSourceResponse

from src.artifacts.service import ArtifactService
from src.auth.dependencies import decode_user_id, get_optional_user_id, get_owned_session
from src.chat.models import ChatSession
from src.chat.orchestrator import ConversationOrchestrator, Turn
from src.chat.persistence import UUID_RE, MessagePersistence, SqlMessageRepository, owned_by
from src.chat.schemas import ChatRequest, ChatSessionResponse, StreamEvent
from src.chat.turns import active_turns
from src.core.dependencies import (
    get_artifact_service,
    get_message_persistence,
    get_message_repository,
    get_model_selector,
    get_patent_store,
    get_sandbox_provider,
    get_search_provider,
    get_tool_registry,
)
from src.core.errors import AssistantError, ValidationError
from src.llm.factory import ModelSelector, ProviderPreferences
from src.patents.store import PatentDocumentStore
from src.providers.sandbox import SandboxProvider
from src.providers.search import SearchProvider
from src.tools.registry import ToolContext, ToolRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])


async def _event_source(
    first: Optional[StreamEvent],
    events: AsyncIterator[StreamEvent],
    on_close,
):
    try:
        if first is not None:
            yield first.to_sse()
        async for event in events:
            yield event.to_sse()
        yield {"event": "done", "data": json.dumps({"status": "completed"})}
    finally:
        await events.aclose()
        on_close()


@router.post("")
async def chat(
    request: ChatRequest,
    http_request: Request,
    header_user_id: Optional[str] = Depends(get_optional_user_id),
    selector: ModelSelector = Depends(get_model_selector),
    registry: ToolRegistry = Depends(get_tool_registry),
    store: PatentDocumentStore = Depends(get_patent_store),
    artifacts: ArtifactService = Depends(get_artifact_service),
    search: SearchProvider = Depends(get_search_provider),
    sandbox: SandboxProvider = Depends(get_sandbox_provider),
    persistence: MessagePersistence = Depends(get_message_persistence),
    repository: SqlMessageRepository = Depends(get_message_repository),
):
    user_id = decode_user_id(request.auth_token) or header_user_id
    session_id = request.session_id if user_id else None
    if session_id:
        if not UUID_RE.match(session_id):
            raise ValidationError("sessionId must be a UUID")
        session_id = str(UUID(session_id))
        # Another user's session is reported as missing
        session = await repository.get_session(session_id)
        if session is not None and not owned_by(session, user_id):
            raise HTTPException(status_code=404, detail="Chat session not found")

    context = ToolContext(
        search=search,
        sandbox=sandbox,
        session_id=session_id,
        user_id=user_id,
        patent_store=store if session_id else None,
        artifacts=artifacts,
    )
    orchestrator = ConversationOrchestrator(selector, registry, context, persistence)
    turn = Turn(
        messages=request.messages,
        session_id=session_id,
        user_id=user_id,
        preferences=ProviderPreferences.from_headers(http_request.headers),
    )

    turn_key = session_id or f"anonymous-{uuid4()}"
    turn.stop = active_turns.start(turn_key)

    def release():
        active_turns.finish(turn_key, turn.stop)

    events = orchestrator.stream(turn)
    try:
        first = await anext(events)
    except StopAsyncIteration:
        first = None
    except AssistantError as e:
        release()
        logger.warning(f"Chat request failed before streaming: {e.message}")
        return JSONResponse(status_code=e.status_code, content=e.to_dict())

    return EventSourceResponse(_event_source(first, events, release))


@router.get(
    "/sessions/{session_id}/messages",
    response_model=ChatSessionResponse,
    response_model_by_alias=True,
    response_model_exclude_none=True,
)
async def get_session_messages(
    session: ChatSession = Depends(get_owned_session),
    repository: SqlMessageRepository = Depends(get_message_repository),
):
    messages = await repository.get_messages(str(session.id))
    return ChatSessionResponse(
        id=session.id,
        title=session.title,
        last_message_at=session.last_message_at,
        messages=messages,
    )


@router.delete("/sessions/{session_id}")
async def delete_session(
    session: ChatSession = Depends(get_owned_session),
    repository: SqlMessageRepository = Depends(get_message_repository),
):
    await repository.delete_session(str(session.id))
    return {"success": True}


@router.post("/sessions/{session_id}/stop")
async def stop_session_turn(session: ChatSession = Depends(get_owned_session)):
    return {"stopped": active_turns.stop(str(session.id))}
