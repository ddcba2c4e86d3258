"""
API Schemas - Request/response contracts between the presentation layer
and the conversation engine.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from superconnector.orchestration.dialogue import placeholder_for
from superconnector.orchestration.state import Message, Session


# ============================================================================
# Request Schemas
# ============================================================================

class StartSessionRequest(BaseModel):
    """
    Open (or re-open) a conversation.

    Attributes:
        session_id: Existing id to restart, or empty for a new session.
    """
    session_id: str = Field(
        default="",
        max_length=128,
        description="Session to re-open (optional)",
    )

    @field_validator("session_id")
    @classmethod
    def strip_session_id(cls, v: str) -> str:
        return v.strip()


class ChoiceRequest(BaseModel):
    """
    A button selection.

    Attributes:
        choice_id: Id of the selected option.
        message_id: Message the option belongs to; lets the engine reject
            clicks on stale menus.
    """
    choice_id: str = Field(..., min_length=1, max_length=64)
    message_id: int | None = Field(default=None, ge=1)


class TextRequest(BaseModel):
    """A free-text submission. Empty text is accepted and ignored."""
    text: str = Field(default="", max_length=4000)


# ============================================================================
# Response Schemas
# ============================================================================

class ChoiceSchema(BaseModel):
    id: str
    label: str
    emoji: str = ""


class MessageSchema(BaseModel):
    """
    One timeline entry as seen by the presentation layer.

    Attributes:
        awaiting: True while this message's options can still be chosen.
    """
    id: int
    sender: Literal["bot", "user"]
    body: str
    options: list[ChoiceSchema] = Field(default_factory=list)
    results: list[dict[str, Any]] = Field(default_factory=list)
    awaiting: bool = False

    @classmethod
    def from_message(cls, message: Message, awaiting: bool) -> "MessageSchema":
        data = message.to_dict()
        return cls(**data, awaiting=awaiting)


class SessionResponse(BaseModel):
    session_id: str
    generation: int
    current_step: str
    capture_field: str | None = None
    placeholder: str = "Type here..."
    answers: dict[str, str] = Field(default_factory=dict)
    premium_unlocked: bool = False
    awaiting_message_id: int | None = None
    is_complete: bool = False
    frozen: bool = False

    @classmethod
    def from_session(cls, session: Session, frozen: bool = False) -> "SessionResponse":
        data = session.to_dict()
        return cls(**data, placeholder=placeholder_for(session.capture_field), frozen=frozen)


class MessagesResponse(BaseModel):
    session_id: str
    messages: list[MessageSchema] = Field(default_factory=list)


class AcceptedResponse(BaseModel):
    status: Literal["queued"] = "queued"
    session_id: str


# ============================================================================
# Error Schemas
# ============================================================================

class ErrorResponse(BaseModel):
    """
    Standard error response.

    Attributes:
        error: Error type or code.
        detail: Human-readable error message.
    """
    error: str = Field(..., description="Error type or code")
    detail: str = Field(..., description="Human-readable error message")
