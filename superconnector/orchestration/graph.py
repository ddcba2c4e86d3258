"""
LangGraph Orchestration - Transition engine for the guided dialogue.

This module implements the conversation state machine as a LangGraph
StateGraph: a guard node validates the incoming event, a routing function
picks the handler for (current step, event), and the handler returns the
next Session plus the messages to emit and the effects to schedule.

The engine is pure: it never sleeps, never calls an adapter, and draws all
randomness from the ``rng`` passed in, so replaying an event sequence from
the same initial session yields the same steps and message bodies.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, TypedDict

from langchain_core.runnables import RunnableConfig
from langgraph.graph import StateGraph, END

from superconnector.core.config import OfferConfig, settings
from superconnector.data.profiles import Profile, get_pool
from superconnector.orchestration import dialogue
from superconnector.orchestration.state import (
    Choice,
    ChoiceMade,
    Continued,
    Effect,
    Event,
    ExternalFailure,
    ExternalResult,
    InvalidTransitionError,
    InvokeAdapter,
    Message,
    NotifySideEffect,
    ScheduleDelay,
    Session,
    Started,
    Step,
    TextSubmitted,
    TEXT_STEPS,
    Transition,
)


REJECTED = "rejected"


@dataclass(frozen=True)
class EngineOptions:
    """Knobs the engine needs from configuration."""
    continuation_ms: int = field(default_factory=lambda: settings.pacing.continuation_delay_ms)
    offer: OfferConfig = field(default_factory=lambda: settings.offer)


# ============================================================================
# TypedDict State for LangGraph (works with dict-based state)
# ============================================================================

class EngineState(TypedDict, total=False):
    """State dict for LangGraph nodes."""
    session: Session
    event: Event
    route: str
    messages: tuple[Message, ...]
    effects: tuple[Effect, ...]


# ============================================================================
# Reply builder
# ============================================================================

class _Reply:
    """Accumulates the outcome of one handler."""

    def __init__(self, session: Session, options: EngineOptions) -> None:
        self.session = session
        self.options = options
        self.messages: list[Message] = []
        self.effects: list[Effect] = []

    def _next_id(self) -> int:
        message_id = self.session.message_seq
        self.session = replace(self.session, message_seq=message_id + 1)
        return message_id

    def echo(self, body: str) -> None:
        self.messages.append(Message(id=self._next_id(), sender="user", body=body))

    def say(
        self,
        body: str,
        options: Iterable[Choice] = (),
        results: Iterable[Profile] = (),
    ) -> None:
        message = Message(
            id=self._next_id(),
            sender="bot",
            body=body,
            options=tuple(options),
            results=tuple(results),
        )
        if message.options:
            self.session = replace(
                self.session,
                awaiting_message_id=message.id,
                awaiting_options=message.options,
            )
        self.messages.append(message)

    def consume(self) -> None:
        """Deactivate the options that were just answered."""
        self.session = replace(self.session, awaiting_message_id=None, awaiting_options=())

    def remember(self, **answers: str) -> None:
        self.session = replace(self.session, answers={**self.session.answers, **answers})

    def goto(self, step: Step, **changes: Any) -> None:
        self.session = replace(self.session, current_step=step, **changes)

    def pause(self) -> None:
        self.effects.append(ScheduleDelay(
            ms=self.options.continuation_ms,
            then_event=Continued(token=self.session.generation),
        ))

    def invoke(self, name: str, **args: Any) -> None:
        self.effects.append(InvokeAdapter(name=name, args=args))

    def notify(self, payload: dict[str, Any]) -> None:
        self.effects.append(NotifySideEffect(payload=payload))

    def update(self) -> dict[str, Any]:
        return {
            "session": self.session,
            "messages": tuple(self.messages),
            "effects": tuple(self.effects),
        }


def _context(state: EngineState, config: RunnableConfig | None) -> tuple[_Reply, random.Random]:
    configurable = (config or {}).get("configurable", {})
    options = configurable.get("options") or EngineOptions()
    rng = configurable.get("rng") or random.Random()
    return _Reply(state["session"], options), rng


def _ask(reply: _Reply, field_name: str, lead: str = "") -> None:
    prompt = dialogue.FIELD_PROMPTS[field_name].text
    reply.say(lead + dialogue.fill(prompt, reply.session.answers))


def _present_results(reply: _Reply, rng: random.Random) -> None:
    session = reply.session
    branch = dialogue.branch_for(session.answers)
    pool = get_pool(branch.pool)
    k = min(reply.options.offer.results_per_page, len(pool))
    picks = rng.sample(pool, k)
    reply.say(dialogue.fill(branch.results_intro, session.answers, count=str(len(picks))), results=picks)
    reply.goto(Step.RESULTS_PRESENTED, capture_queue=(), shown_results=tuple(p.id for p in picks))
    reply.pause()


def _ask_contact(reply: _Reply, lead: str = "") -> None:
    reply.goto(Step.EMAIL_CAPTURE, capture_queue=dialogue.CONTACT_FIELDS)
    _ask(reply, dialogue.CONTACT_FIELDS[0], lead)


# ============================================================================
# Node Functions
# ============================================================================

def greet_node(state: EngineState, config: RunnableConfig) -> EngineState:
    """Open the conversation with the greeting and the role menu."""
    reply, _ = _context(state, config)
    reply.say(dialogue.GREETING)
    reply.say(dialogue.ROLE_PROMPT, options=dialogue.ROLE_OPTIONS)
    return reply.update()


def select_role_node(state: EngineState, config: RunnableConfig) -> EngineState:
    """Record the role and show the matching needs menu."""
    reply, _ = _context(state, config)
    choice = _chosen(state)
    reply.consume()
    reply.echo(choice.display)
    reply.remember(role=choice.id)

    step, menu, prompt = dialogue.GOAL_MENUS[dialogue.role_group(choice.id)]
    reply.goto(step)
    reply.say(prompt, options=menu)
    return reply.update()


def select_goal_node(state: EngineState, config: RunnableConfig) -> EngineState:
    """Record the goal and start the branch's detail capture."""
    reply, _ = _context(state, config)
    choice = _chosen(state)
    reply.consume()
    reply.echo(choice.display)
    reply.remember(goal=choice.id)

    branch = dialogue.branch_for(reply.session.answers)
    reply.goto(Step.DETAIL_CAPTURE, capture_queue=branch.capture)
    _ask(reply, branch.capture[0], lead="Perfect! ")
    return reply.update()


def capture_detail_node(state: EngineState, config: RunnableConfig) -> EngineState:
    """
    Store one free-text answer and move to the next prompt.

    The branch's analyze field suspends into external analysis; the last
    field presents the sampled results.
    """
    reply, rng = _context(state, config)
    value = state["event"].value.strip()
    field_name, *rest = reply.session.capture_queue
    branch = dialogue.branch_for(reply.session.answers)

    reply.echo(value)
    reply.remember(**{field_name: value})
    reply.goto(reply.session.current_step, capture_queue=tuple(rest))

    if field_name == branch.analyze_field:
        reply.goto(Step.EXTERNAL_ANALYSIS)
        reply.say(dialogue.fill(dialogue.ANALYZING, reply.session.answers))
        reply.invoke("analyze", url=value)
    elif rest:
        _ask(reply, rest[0])
    else:
        _present_results(reply, rng)
    return reply.update()


def apply_analysis_node(state: EngineState, config: RunnableConfig) -> EngineState:
    """Fold the industry label (or the fallback) into the answers."""
    reply, rng = _context(state, config)
    event = state["event"]
    industry = dialogue.FALLBACK_INDUSTRY
    if isinstance(event, ExternalResult) and isinstance(event.payload, str) and event.payload.strip():
        industry = event.payload.strip()

    reply.remember(industry=industry)
    reply.goto(Step.DETAIL_CAPTURE)
    if reply.session.capture_queue:
        _ask(reply, reply.session.capture_queue[0])
    else:
        _present_results(reply, rng)
    return reply.update()


def present_upsell_node(state: EngineState, config: RunnableConfig) -> EngineState:
    reply, _ = _context(state, config)
    offer = reply.options.offer
    price = dialogue.format_price(offer.price_cents, offer.currency)
    reply.goto(Step.UPSELL_OFFER)
    reply.say(dialogue.fill(dialogue.UPSELL, {}, price=price), options=dialogue.UPSELL_OPTIONS)
    return reply.update()


def answer_upsell_node(state: EngineState, config: RunnableConfig) -> EngineState:
    """Start checkout or skip straight to contact capture."""
    reply, _ = _context(state, config)
    choice = _chosen(state)
    reply.consume()
    reply.echo(choice.display)

    if choice.id != "pay":
        _ask_contact(reply, lead="No problem! ")
        return reply.update()

    session = reply.session
    offer = reply.options.offer
    reply.goto(Step.PAYMENT_AWAITING, charge_requested=True)
    reply.say(dialogue.CHECKOUT)
    reply.invoke(
        "charge",
        amount_cents=offer.price_cents,
        currency=offer.currency,
        offer_id=offer.offer_id,
        idempotency_key=f"{session.session_id}:{session.generation}:{offer.offer_id}",
    )
    return reply.update()


def settle_payment_node(state: EngineState, config: RunnableConfig) -> EngineState:
    """
    Route the charge outcome.

    Approved unlocks premium; anything else shows one failure message and
    re-presents the free matches.
    """
    reply, _ = _context(state, config)
    event = state["event"]

    if isinstance(event, ExternalResult) and _approved(event.payload):
        reply.goto(Step.PAYMENT_UNLOCKED, premium_unlocked=True)
        reply.say(dialogue.PAYMENT_CONFIRMED)
        reply.pause()
        return reply.update()

    if isinstance(event, ExternalFailure):
        reason = event.reason or "declined"
    else:
        reason = _decline_reason(event.payload)

    branch = dialogue.branch_for(reply.session.answers)
    by_id = {p.id: p for p in get_pool(branch.pool)}
    shown = [by_id[i] for i in reply.session.shown_results if i in by_id]

    reply.goto(Step.FALLBACK_RESULTS_PRESENTED)
    reply.say(dialogue.fill(dialogue.PAYMENT_FAILED, {}, reason=reason))
    reply.say(dialogue.FALLBACK_RESULTS, results=shown)
    reply.pause()
    return reply.update()


def present_bonus_node(state: EngineState, config: RunnableConfig) -> EngineState:
    """Show matches from the pool that were not part of the free page."""
    reply, rng = _context(state, config)
    branch = dialogue.branch_for(reply.session.answers)
    remaining = [p for p in get_pool(branch.pool) if p.id not in reply.session.shown_results]
    picks = rng.sample(remaining, min(reply.options.offer.results_per_page, len(remaining)))

    if picks:
        reply.say(dialogue.BONUS_RESULTS, results=picks)
    else:
        reply.say(dialogue.BONUS_EXHAUSTED)
    reply.goto(
        Step.BONUS_RESULTS_PRESENTED,
        shown_results=reply.session.shown_results + tuple(p.id for p in picks),
    )
    reply.pause()
    return reply.update()


def ask_contact_node(state: EngineState, config: RunnableConfig) -> EngineState:
    reply, _ = _context(state, config)
    _ask_contact(reply, lead="Perfect! ")
    return reply.update()


def capture_contact_node(state: EngineState, config: RunnableConfig) -> EngineState:
    """Collect contact details in order; the last one completes the conversation."""
    reply, _ = _context(state, config)
    value = state["event"].value.strip()
    field_name, *rest = reply.session.capture_queue

    reply.echo(value)
    reply.remember(**{field_name: value})
    reply.goto(Step.EMAIL_CAPTURE, capture_queue=tuple(rest))

    if rest:
        _ask(reply, rest[0])
        return reply.update()

    session = reply.session
    reply.goto(Step.CONFIRMATION)
    reply.say(dialogue.SUBMITTING)
    reply.say(dialogue.CONFIRMATION)
    reply.notify({
        "session_id": session.session_id,
        "premium_unlocked": session.premium_unlocked,
        "matches": list(session.shown_results),
        **session.answers,
    })
    return reply.update()


def _chosen(state: EngineState) -> Choice:
    event = state["event"]
    return next(c for c in state["session"].awaiting_options if c.id == event.choice_id)


def _approved(payload: Any) -> bool:
    if isinstance(payload, dict):
        return payload.get("status") == "approved"
    return bool(getattr(payload, "approved", False))


def _decline_reason(payload: Any) -> str:
    if isinstance(payload, dict):
        return str(payload.get("reason") or "declined")
    return str(getattr(payload, "reason", None) or "declined")


# ============================================================================
# Routing
# ============================================================================

# (step, event type) -> node; external events also match on adapter tag
ROUTES: dict[tuple[Step, type], str] = {
    (Step.WELCOME, Started): "greet",
    (Step.WELCOME, ChoiceMade): "select_role",
    (Step.FOUNDER_GOAL, ChoiceMade): "select_goal",
    (Step.INVESTOR_FOCUS, ChoiceMade): "select_goal",
    (Step.OTHER_INTAKE, ChoiceMade): "select_goal",
    (Step.DETAIL_CAPTURE, TextSubmitted): "capture_detail",
    (Step.EXTERNAL_ANALYSIS, ExternalResult): "apply_analysis",
    (Step.EXTERNAL_ANALYSIS, ExternalFailure): "apply_analysis",
    (Step.RESULTS_PRESENTED, Continued): "present_upsell",
    (Step.UPSELL_OFFER, ChoiceMade): "answer_upsell",
    (Step.PAYMENT_AWAITING, ExternalResult): "settle_payment",
    (Step.PAYMENT_AWAITING, ExternalFailure): "settle_payment",
    (Step.PAYMENT_UNLOCKED, Continued): "present_bonus",
    (Step.BONUS_RESULTS_PRESENTED, Continued): "ask_contact",
    (Step.FALLBACK_RESULTS_PRESENTED, Continued): "ask_contact",
    (Step.EMAIL_CAPTURE, TextSubmitted): "capture_contact",
}

EXPECTED_TAGS: dict[Step, str] = {
    Step.EXTERNAL_ANALYSIS: "analyze",
    Step.PAYMENT_AWAITING: "charge",
}


def guard_node(state: EngineState) -> EngineState:
    """
    Decide whether the event is accepted and which handler runs.

    User input that does not fit the current step (stale or duplicate
    choices, empty text, text while a menu is showing) is rejected as a
    no-op. Internal events without a rule raise InvalidTransitionError.
    """
    session = state["session"]
    event = state["event"]
    step = session.current_step

    if isinstance(event, ChoiceMade):
        if session.awaiting_message_id is None:
            return {"route": REJECTED}
        if event.message_id is not None and event.message_id != session.awaiting_message_id:
            return {"route": REJECTED}
        if not session.has_choice(event.choice_id):
            return {"route": REJECTED}

    if isinstance(event, TextSubmitted):
        if not event.value or not event.value.strip():
            return {"route": REJECTED}
        if step not in TEXT_STEPS or not session.capture_queue:
            return {"route": REJECTED}

    if isinstance(event, Started) and (session.message_seq != 1 or session.awaiting_message_id is not None):
        raise InvalidTransitionError(step, event)

    if isinstance(event, (ExternalResult, ExternalFailure)) and EXPECTED_TAGS.get(step) != event.tag:
        raise InvalidTransitionError(step, event)

    route = ROUTES.get((step, type(event)))
    if route is None:
        if isinstance(event, (ChoiceMade, TextSubmitted)):
            return {"route": REJECTED}
        raise InvalidTransitionError(step, event)
    return {"route": route}


def route_after_guard(state: EngineState) -> str:
    return state.get("route", REJECTED)


# ============================================================================
# Graph Builder
# ============================================================================

HANDLERS = {
    "greet": greet_node,
    "select_role": select_role_node,
    "select_goal": select_goal_node,
    "capture_detail": capture_detail_node,
    "apply_analysis": apply_analysis_node,
    "present_upsell": present_upsell_node,
    "answer_upsell": answer_upsell_node,
    "settle_payment": settle_payment_node,
    "present_bonus": present_bonus_node,
    "ask_contact": ask_contact_node,
    "capture_contact": capture_contact_node,
}


def build_transition_graph():
    """
    Build the LangGraph for one dialogue transition.

    Flow:
    1. guard -> (rejected? -> end, otherwise -> handler for step/event)
    2. handler -> end

    Returns:
        Compiled StateGraph ready for execution.
    """
    workflow = StateGraph(EngineState)

    workflow.add_node("guard", guard_node)
    for name, handler in HANDLERS.items():
        workflow.add_node(name, handler)
        workflow.add_edge(name, END)

    workflow.set_entry_point("guard")

    workflow.add_conditional_edges(
        "guard",
        route_after_guard,
        {**{name: name for name in HANDLERS}, REJECTED: END},
    )

    return workflow.compile()


_graph = None


def _get_graph():
    global _graph
    if _graph is None:
        _graph = build_transition_graph()
    return _graph


# ============================================================================
# Public Interface
# ============================================================================

def transition(
    session: Session,
    event: Event,
    rng: random.Random | None = None,
    options: EngineOptions | None = None,
) -> Transition:
    """
    Apply one event to a session.

    Args:
        session: Current session value (not modified).
        event: The inbound or synthetic event.
        rng: Source for results sampling. Pass a seeded Random for replay.
        options: Engine knobs; defaults come from settings.

    Returns:
        Transition with the new session, messages to emit and effects to
        schedule. A rejected input returns the same session and nothing else.

    Raises:
        InvalidTransitionError: An internal event has no rule at this step.
    """
    result = _get_graph().invoke(
        {"session": session, "event": event, "messages": (), "effects": ()},
        config={"configurable": {"rng": rng, "options": options}},
    )
    if result.get("route") == REJECTED:
        return Transition(session=session)
    return Transition(
        session=result["session"],
        messages=tuple(result.get("messages", ())),
        effects=tuple(result.get("effects", ())),
    )


def start(
    session_id: str,
    generation: int = 0,
    options: EngineOptions | None = None,
) -> Transition:
    """Create a fresh session and produce its opening messages."""
    return transition(Session(session_id=session_id, generation=generation), Started(), options=options)
