"""
Conversation State - Typed state objects for the guided dialogue.

This module defines the session, message, event and effect types that flow
between the transition engine and the orchestrator, plus the two holders
that own mutable per-visitor state: the SessionStore and MessageTimeline.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal, Mapping, Union

from superconnector.data.profiles import Profile


class Step(str, Enum):
    """Vertices of the conversation graph."""
    WELCOME = "welcome"
    FOUNDER_GOAL = "founder_goal"
    INVESTOR_FOCUS = "investor_focus"
    OTHER_INTAKE = "other_intake"
    DETAIL_CAPTURE = "detail_capture"
    EXTERNAL_ANALYSIS = "external_analysis"
    RESULTS_PRESENTED = "results_presented"
    UPSELL_OFFER = "upsell_offer"
    PAYMENT_AWAITING = "payment_awaiting"
    PAYMENT_UNLOCKED = "payment_unlocked"
    BONUS_RESULTS_PRESENTED = "bonus_results_presented"
    FALLBACK_RESULTS_PRESENTED = "fallback_results_presented"
    EMAIL_CAPTURE = "email_capture"
    CONFIRMATION = "confirmation"


TERMINAL_STEPS = frozenset({Step.CONFIRMATION})

# Steps that accept free-text input
TEXT_STEPS = frozenset({Step.DETAIL_CAPTURE, Step.EMAIL_CAPTURE})


# ============================================================================
# Messages
# ============================================================================

@dataclass(frozen=True)
class Choice:
    """A selectable option offered at a branch point."""
    id: str
    label: str
    emoji: str = ""

    @property
    def display(self) -> str:
        return f"{self.emoji} {self.label}".strip()


@dataclass(frozen=True)
class Message:
    """A single entry in the message timeline."""
    id: int
    sender: Literal["bot", "user"]
    body: str
    options: tuple[Choice, ...] = ()
    results: tuple[Profile, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        """Convert message to dictionary for serialization."""
        return {
            "id": self.id,
            "sender": self.sender,
            "body": self.body,
            "options": [
                {"id": c.id, "label": c.label, "emoji": c.emoji}
                for c in self.options
            ],
            "results": [r.to_dict() for r in self.results],
        }


# ============================================================================
# Session
# ============================================================================

@dataclass(frozen=True)
class Session:
    """
    One visitor's in-progress conversation.

    Sessions are immutable values; the transition engine returns a new
    Session and the SessionStore swaps it in.

    Attributes:
        session_id: Visitor/session identifier.
        generation: Bumped each time the conversation is re-opened.
        current_step: Current vertex of the conversation graph.
        answers: Captured fields (role, goal, website, industry, ...).
        premium_unlocked: Set by a successful charge, never unset.
        message_seq: Id for the next message created in this session.
        awaiting_message_id: Message whose options are still live.
        awaiting_options: The live options of that message.
        capture_queue: Free-text fields still to be asked on this branch.
        shown_results: Ids of records already presented.
        charge_requested: Whether the upsell charge has been issued.
    """
    session_id: str
    generation: int = 0
    current_step: Step = Step.WELCOME
    answers: Mapping[str, str] = field(default_factory=dict)
    premium_unlocked: bool = False
    message_seq: int = 1
    awaiting_message_id: int | None = None
    awaiting_options: tuple[Choice, ...] = ()
    capture_queue: tuple[str, ...] = ()
    shown_results: tuple[str, ...] = ()
    charge_requested: bool = False

    @property
    def capture_field(self) -> str | None:
        """Field the visitor is currently being asked for, if any."""
        if self.current_step in TEXT_STEPS and self.capture_queue:
            return self.capture_queue[0]
        return None

    @property
    def is_complete(self) -> bool:
        return self.current_step in TERMINAL_STEPS

    def has_choice(self, choice_id: str) -> bool:
        return any(c.id == choice_id for c in self.awaiting_options)

    def to_dict(self) -> dict[str, Any]:
        """Convert session to dictionary for serialization."""
        return {
            "session_id": self.session_id,
            "generation": self.generation,
            "current_step": self.current_step.value,
            "capture_field": self.capture_field,
            "answers": dict(self.answers),
            "premium_unlocked": self.premium_unlocked,
            "awaiting_message_id": self.awaiting_message_id,
            "is_complete": self.is_complete,
        }


# ============================================================================
# Events
# ============================================================================

@dataclass(frozen=True)
class Started:
    """Conversation opened; emits the greeting and role menu."""


@dataclass(frozen=True)
class ChoiceMade:
    choice_id: str
    message_id: int | None = None


@dataclass(frozen=True)
class TextSubmitted:
    value: str


@dataclass(frozen=True)
class ExternalResult:
    tag: str
    payload: Any = None
    token: int | None = None


@dataclass(frozen=True)
class ExternalFailure:
    tag: str
    reason: str = ""
    token: int | None = None


@dataclass(frozen=True)
class Continued:
    """Follow-up after a scheduled pause ("message, pause, next message")."""
    token: int | None = None


Event = Union[Started, ChoiceMade, TextSubmitted, ExternalResult, ExternalFailure, Continued]

# Events that originate from the visitor rather than from the system
USER_EVENTS = (ChoiceMade, TextSubmitted)


# ============================================================================
# Effects
# ============================================================================

@dataclass(frozen=True)
class InvokeAdapter:
    name: Literal["analyze", "charge"]
    args: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ScheduleDelay:
    ms: int
    then_event: Event = field(default_factory=Continued)


@dataclass(frozen=True)
class NotifySideEffect:
    payload: Mapping[str, Any] = field(default_factory=dict)


Effect = Union[InvokeAdapter, ScheduleDelay, NotifySideEffect]


@dataclass(frozen=True)
class Transition:
    """Output of one engine step."""
    session: Session
    messages: tuple[Message, ...] = ()
    effects: tuple[Effect, ...] = ()

    @property
    def rejected(self) -> bool:
        return not self.messages and not self.effects


# ============================================================================
# Errors
# ============================================================================

class InvalidTransitionError(Exception):
    """An internal event reached a step with no rule for it."""

    def __init__(self, step: Step, event: Event) -> None:
        self.step = step
        self.event = event
        super().__init__(f"No transition from {step.value} on {type(event).__name__}")


class StoreInvariantError(Exception):
    """A session update would break a store invariant."""


# ============================================================================
# Holders
# ============================================================================

class MessageTimeline:
    """Append-only ordered log of messages for one conversation."""

    def __init__(self) -> None:
        self._messages: list[Message] = []

    def append(self, message: Message) -> None:
        if self._messages and message.id <= self._messages[-1].id:
            raise StoreInvariantError(
                f"Message id {message.id} is not after {self._messages[-1].id}"
            )
        self._messages.append(message)

    def since(self, after_id: int = 0) -> list[Message]:
        """Messages with id greater than after_id, in order."""
        return [m for m in self._messages if m.id > after_id]

    def last(self) -> Message | None:
        return self._messages[-1] if self._messages else None

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self):
        return iter(tuple(self._messages))


class SessionStore:
    """Holds the current Session value for one conversation."""

    def __init__(self, session: Session) -> None:
        self._session = session
        self.timeline = MessageTimeline()

    @property
    def session(self) -> Session:
        return self._session

    def advance(self, new: Session) -> None:
        """Swap in the session produced by a completed transition."""
        old = self._session
        if new.session_id != old.session_id or new.generation != old.generation:
            raise StoreInvariantError("Session identity changed during advance")
        if not isinstance(new.current_step, Step):
            raise StoreInvariantError(f"Unknown step: {new.current_step!r}")
        missing = set(old.answers) - set(new.answers)
        if missing:
            raise StoreInvariantError(f"Answers cannot be retracted: {sorted(missing)}")
        if old.premium_unlocked and not new.premium_unlocked:
            raise StoreInvariantError("premium_unlocked cannot be unset")
        self._session = new

    def is_awaiting(self, message_id: int) -> bool:
        """Whether the message's options are still selectable."""
        return self._session.awaiting_message_id == message_id
