"""
API Routes - HTTP endpoints for driving a guided conversation.

Endpoints:
- POST /sessions - Start or re-open a conversation
- GET /sessions/{session_id} - Current step and answers
- POST /sessions/{session_id}/choices - Select an option
- POST /sessions/{session_id}/text - Submit free text
- GET /sessions/{session_id}/messages - Timeline since a message id
- DELETE /sessions/{session_id} - Forget a conversation
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from superconnector.api.schemas import (
    AcceptedResponse,
    ChoiceRequest,
    ErrorResponse,
    MessageSchema,
    MessagesResponse,
    SessionResponse,
    StartSessionRequest,
    TextRequest,
)
from superconnector.orchestration.orchestrator import (
    ConversationOrchestrator,
    SessionNotFoundError,
)


router = APIRouter(prefix="/sessions", tags=["sessions"])

# Shared orchestrator instance for session management
_orchestrator: ConversationOrchestrator | None = None


def get_orchestrator() -> ConversationOrchestrator:
    """Get or create the shared orchestrator instance."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = ConversationOrchestrator()
    return _orchestrator


async def shutdown_orchestrator() -> None:
    global _orchestrator
    if _orchestrator is not None:
        await _orchestrator.close()
        _orchestrator = None


NOT_FOUND = {404: {"model": ErrorResponse, "description": "Session not found"}}


def _not_found(session_id: str) -> HTTPException:
    return HTTPException(status_code=404, detail=f"Session not found: {session_id}")


@router.post(
    "",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start a conversation",
    description="Open a new conversation, or re-open an existing one (pending results for the old one are discarded).",
)
async def start_session(
    request: StartSessionRequest | None = None,
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
) -> SessionResponse:
    session_id = request.session_id if request else ""
    session = await orchestrator.start(session_id or None)
    return SessionResponse.from_session(session)


@router.get("/{session_id}", response_model=SessionResponse, responses=NOT_FOUND)
async def get_session(
    session_id: str,
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
) -> SessionResponse:
    session = orchestrator.get_session(session_id)
    if session is None:
        raise _not_found(session_id)
    return SessionResponse.from_session(session, frozen=orchestrator.is_frozen(session_id))


@router.post(
    "/{session_id}/choices",
    response_model=AcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses=NOT_FOUND,
    summary="Select an option",
)
async def make_choice(
    session_id: str,
    request: ChoiceRequest,
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
) -> AcceptedResponse:
    """Queue a selection. Stale or duplicate selections are ignored by the engine."""
    try:
        await orchestrator.choose(session_id, request.choice_id, request.message_id)
    except SessionNotFoundError:
        raise _not_found(session_id)
    return AcceptedResponse(session_id=session_id)


@router.post(
    "/{session_id}/text",
    response_model=AcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses=NOT_FOUND,
    summary="Submit free text",
)
async def submit_text(
    session_id: str,
    request: TextRequest,
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
) -> AcceptedResponse:
    try:
        await orchestrator.submit_text(session_id, request.text)
    except SessionNotFoundError:
        raise _not_found(session_id)
    return AcceptedResponse(session_id=session_id)


@router.get(
    "/{session_id}/messages",
    response_model=MessagesResponse,
    responses=NOT_FOUND,
    summary="Read the timeline",
)
async def get_messages(
    session_id: str,
    after: int = Query(default=0, ge=0, description="Return messages with id greater than this"),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
) -> MessagesResponse:
    try:
        messages = orchestrator.get_messages(session_id, after)
    except SessionNotFoundError:
        raise _not_found(session_id)
    return MessagesResponse(
        session_id=session_id,
        messages=[
            MessageSchema.from_message(m, awaiting=orchestrator.is_awaiting(session_id, m.id))
            for m in messages
        ],
    )


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT, responses=NOT_FOUND)
async def end_session(
    session_id: str,
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
) -> None:
    if orchestrator.get_session(session_id) is None:
        raise _not_found(session_id)
    orchestrator.end_session(session_id)
