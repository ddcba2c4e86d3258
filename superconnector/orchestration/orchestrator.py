"""
Conversation Orchestrator - Drives the transition engine for live sessions.

Each visitor gets a SessionRuntime with its own event queue and worker
task. The worker applies one event at a time: it runs the pure transition,
commits the new session, emits messages behind a simulated "composing"
pause, runs scheduled continuations inline, and spawns adapter calls whose
results come back through the same queue stamped with the session's
generation token.
"""

from __future__ import annotations

import asyncio
import inspect
import random
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable
from uuid import uuid4

from superconnector.adapters.content_analyzer import ContentAnalyzer
from superconnector.adapters.notifier import Notifier
from superconnector.adapters.payment import PaymentGateway
from superconnector.core.config import PacingConfig, Settings, settings as default_settings
from superconnector.core.logging_config import get_logger, session_logger
from superconnector.orchestration.graph import EngineOptions, transition
from superconnector.orchestration.state import (
    ChoiceMade,
    Event,
    ExternalFailure,
    ExternalResult,
    InvalidTransitionError,
    InvokeAdapter,
    Message,
    NotifySideEffect,
    ScheduleDelay,
    Session,
    SessionStore,
    Started,
    StoreInvariantError,
    TextSubmitted,
    USER_EVENTS,
)


logger = get_logger("orchestrator")


class SessionNotFoundError(KeyError):
    """No live conversation for this session id."""


@dataclass(frozen=True)
class MessageAppended:
    """Outbound notification for the presentation layer."""
    session_id: str
    message: Message


Listener = Callable[[MessageAppended], Awaitable[None] | None]


def composing_delay_ms(rng: random.Random, pacing: PacingConfig) -> float:
    """Typing pause before a bot message, uniform within the configured bounds."""
    return rng.uniform(pacing.typing_delay_min_ms, pacing.typing_delay_max_ms)


@dataclass
class Adapters:
    """The external services one orchestrator talks to."""
    analyzer: Any
    payment: Any
    notifier: Any

    @classmethod
    def from_settings(cls, config: Settings) -> "Adapters":
        return cls(
            analyzer=ContentAnalyzer(
                api_key=config.groq_api_key,
                model=config.adapters.analyzer_model,
            ),
            payment=PaymentGateway(
                api_url=config.payment_api_url,
                api_key=config.payment_api_key,
                timeout_s=config.adapters.charge_timeout_s,
            ),
            notifier=Notifier(
                service_id=config.emailjs_service_id,
                template_id=config.emailjs_template_id,
                public_key=config.emailjs_public_key,
                timeout_s=config.adapters.notify_timeout_s,
            ),
        )

    async def aclose(self) -> None:
        for adapter in (self.analyzer, self.payment, self.notifier):
            close = getattr(adapter, "aclose", None)
            if close is not None:
                await close()


@dataclass
class SessionRuntime:
    """Per-visitor processing state owned by the orchestrator."""
    store: SessionStore
    rng: random.Random
    pacing_rng: random.Random
    queue: asyncio.Queue = field(default_factory=asyncio.Queue)
    worker: asyncio.Task | None = None
    pending: set[asyncio.Task] = field(default_factory=set)
    # Adapter calls issued by this conversation; cancelled when it is retired
    adapter_calls: set[asyncio.Task] = field(default_factory=set)
    # Adapter tags whose result has not been applied yet
    outstanding: set[str] = field(default_factory=set)
    # User input held back while an adapter result is outstanding
    deferred: deque = field(default_factory=deque)
    charges_issued: set[str] = field(default_factory=set)
    frozen: bool = False

    @property
    def session_id(self) -> str:
        return self.store.session.session_id

    @property
    def generation(self) -> int:
        return self.store.session.generation


class ConversationOrchestrator:
    """
    High-level interface for running guided conversations.

    This class owns every live session, serializes event processing per
    session, and is the only place adapters are called from.
    """

    def __init__(
        self,
        adapters: Adapters | None = None,
        config: Settings | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng_factory: Callable[[], random.Random] | None = None,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            adapters: External services; built from settings if omitted.
            config: Settings; the global settings if omitted.
            sleep: Awaitable used for every suspension (tests pass a fake).
            rng_factory: Builds the per-session random source.
        """
        self._config = config or default_settings
        self._adapters = adapters or Adapters.from_settings(self._config)
        self._sleep = sleep
        self._rng_factory = rng_factory or self._default_rng
        self._options = EngineOptions(
            continuation_ms=self._config.pacing.continuation_delay_ms,
            offer=self._config.offer,
        )
        self._sessions: dict[str, SessionRuntime] = {}
        # Last generation handed out per session id; survives end_session
        self._generations: dict[str, int] = {}
        self._listeners: list[Listener] = []
        self._background: set[asyncio.Task] = set()

    def _default_rng(self) -> random.Random:
        return random.Random(self._config.rng_seed)

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def start(self, session_id: str | None = None) -> Session:
        """
        Open a conversation, or re-open it if the id is already live.

        Re-opening bumps the generation so results still in flight for the
        old conversation are discarded when they arrive.
        """
        session_id = session_id or uuid4().hex
        generation = self._generations.get(session_id, -1) + 1
        self._generations[session_id] = generation

        old = self._sessions.get(session_id)
        if old is not None:
            self._retire(old)

        runtime = SessionRuntime(
            store=SessionStore(Session(session_id=session_id, generation=generation)),
            rng=self._rng_factory(),
            pacing_rng=self._rng_factory(),
        )
        self._sessions[session_id] = runtime
        runtime.worker = asyncio.create_task(self._run(runtime))
        runtime.queue.put_nowait(Started())

        session_logger("orchestrator", session_id).info(
            "Session started", context={"generation": generation}
        )
        return runtime.store.session

    async def choose(self, session_id: str, choice_id: str, message_id: int | None = None) -> None:
        """Queue a button selection."""
        self._get_runtime(session_id).queue.put_nowait(ChoiceMade(choice_id, message_id))

    async def submit_text(self, session_id: str, text: str) -> None:
        """Queue a free-text submission."""
        self._get_runtime(session_id).queue.put_nowait(TextSubmitted(text))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_session(self, session_id: str) -> Session | None:
        runtime = self._sessions.get(session_id)
        return runtime.store.session if runtime else None

    def get_messages(self, session_id: str, after: int = 0) -> list[Message]:
        return self._get_runtime(session_id).store.timeline.since(after)

    def is_awaiting(self, session_id: str, message_id: int) -> bool:
        return self._get_runtime(session_id).store.is_awaiting(message_id)

    def is_frozen(self, session_id: str) -> bool:
        return self._get_runtime(session_id).frozen

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def wait_idle(self, session_id: str) -> None:
        """Wait until the session's queue is drained and no adapter call is pending."""
        runtime = self._get_runtime(session_id)
        while True:
            await runtime.queue.join()
            pending = [task for task in runtime.pending if not task.done()]
            if pending:
                await asyncio.wait(pending)
            elif runtime.queue.empty():
                return

    def end_session(self, session_id: str) -> None:
        """Stop processing and forget the session."""
        runtime = self._sessions.pop(session_id, None)
        if runtime is not None:
            self._retire(runtime)

    async def close(self) -> None:
        workers = [r.worker for r in self._sessions.values() if r.worker is not None]
        for session_id in list(self._sessions):
            self.end_session(session_id)
        tasks = workers + list(self._background)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await self._adapters.aclose()

    def _retire(self, runtime: SessionRuntime) -> None:
        """
        Stop a conversation's worker and its in-flight adapter calls.

        Notifications already handed off keep running.
        """
        if runtime.worker is not None:
            runtime.worker.cancel()
        for task in list(runtime.adapter_calls):
            task.cancel()
        runtime.deferred.clear()

    def _get_runtime(self, session_id: str) -> SessionRuntime:
        runtime = self._sessions.get(session_id)
        if runtime is None:
            raise SessionNotFoundError(session_id)
        return runtime

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    async def _run(self, runtime: SessionRuntime) -> None:
        while True:
            event = await runtime.queue.get()
            try:
                await self._process(runtime, event)
            except Exception:
                # Keep the worker alive; the failing session is frozen
                session_logger("orchestrator", runtime.session_id).exception(
                    "Unhandled error while processing %s", type(event).__name__
                )
                runtime.frozen = True
            finally:
                runtime.queue.task_done()

    async def _process(self, runtime: SessionRuntime, event: Event) -> None:
        log = session_logger("orchestrator", runtime.session_id)

        if runtime.frozen:
            log.debug("Session frozen, ignoring %s", type(event).__name__)
            return

        token = getattr(event, "token", None)
        if token is not None and token != runtime.generation:
            log.info("Dropped stale %s", type(event).__name__, context={"token": token})
            return

        if isinstance(event, USER_EVENTS) and runtime.outstanding:
            runtime.deferred.append(event)
            log.debug(
                "Deferred %s until %s completes",
                type(event).__name__,
                ", ".join(sorted(runtime.outstanding)),
            )
            return

        try:
            result = transition(runtime.store.session, event, rng=runtime.rng, options=self._options)
            runtime.store.advance(result.session)
        except (InvalidTransitionError, StoreInvariantError):
            log.exception(
                "Invariant violation, freezing session",
                context={"step": runtime.store.session.current_step.value},
            )
            runtime.frozen = True
            return

        if result.rejected:
            log.debug("Rejected %s at %s", type(event).__name__, runtime.store.session.current_step.value)
            return

        if isinstance(event, (ExternalResult, ExternalFailure)):
            runtime.outstanding.discard(event.tag)

        log.info(
            "Transitioned on %s",
            type(event).__name__,
            context={"step": result.session.current_step.value},
        )

        for message in result.messages:
            if message.sender == "bot":
                await self._sleep(composing_delay_ms(runtime.pacing_rng, self._config.pacing) / 1000)
            runtime.store.timeline.append(message)
            await self._publish(MessageAppended(runtime.session_id, message))

        for effect in result.effects:
            if isinstance(effect, ScheduleDelay):
                await self._sleep(effect.ms / 1000)
                await self._process(runtime, effect.then_event)
            elif isinstance(effect, InvokeAdapter):
                runtime.outstanding.add(effect.name)
                task = self._spawn(runtime, self._invoke(runtime, effect))
                runtime.adapter_calls.add(task)
                task.add_done_callback(runtime.adapter_calls.discard)
            elif isinstance(effect, NotifySideEffect):
                self._spawn(runtime, self._notify(runtime.session_id, effect.payload))

        # Input that arrived during the suspension is applied in arrival order
        while runtime.deferred and not runtime.outstanding and not runtime.frozen:
            await self._process(runtime, runtime.deferred.popleft())

    def _spawn(self, runtime: SessionRuntime, coro: Awaitable[None]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        runtime.pending.add(task)
        self._background.add(task)
        task.add_done_callback(runtime.pending.discard)
        task.add_done_callback(self._background.discard)
        return task

    async def _publish(self, event: MessageAppended) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Message listener failed")

    # ------------------------------------------------------------------
    # Adapters
    # ------------------------------------------------------------------

    async def _invoke(self, runtime: SessionRuntime, effect: InvokeAdapter) -> None:
        """Run one adapter call and feed its outcome back as an event."""
        log = session_logger("orchestrator", runtime.session_id)
        token = runtime.generation
        name = effect.name
        args = dict(effect.args)
        timeouts = self._config.adapters

        if name == "charge":
            offer_id = str(args.get("offer_id"))
            if offer_id in runtime.charges_issued:
                log.warning("Refusing duplicate charge", context={"offer_id": offer_id})
                return
            runtime.charges_issued.add(offer_id)

        try:
            if name == "analyze":
                label = await asyncio.wait_for(
                    self._adapters.analyzer.analyze(args["url"]),
                    timeout=timeouts.analyze_timeout_s,
                )
                event: Event = ExternalResult("analyze", label, token)
            elif name == "charge":
                outcome = await asyncio.wait_for(
                    self._adapters.payment.charge(**args),
                    timeout=timeouts.charge_timeout_s,
                )
                if outcome.approved:
                    event = ExternalResult("charge", outcome.to_dict(), token)
                else:
                    event = ExternalFailure("charge", outcome.reason, token)
            else:
                raise ValueError(f"Unknown adapter: {name}")
        except asyncio.TimeoutError:
            log.warning("Adapter timed out", context={"adapter": name})
            event = ExternalFailure(name, "timeout", token)
        except Exception:
            log.exception("Adapter failed", context={"adapter": name})
            event = ExternalFailure(name, "error", token)

        self._deliver(runtime.session_id, event)

    def _deliver(self, session_id: str, event: Event) -> None:
        runtime = self._sessions.get(session_id)
        token = getattr(event, "token", None)
        if runtime is None or token != runtime.generation:
            session_logger("orchestrator", session_id).info(
                "Discarded late %s", type(event).__name__,
                context={"tag": getattr(event, "tag", None), "token": token},
            )
            return
        runtime.queue.put_nowait(event)

    async def _notify(self, session_id: str, payload: Any) -> None:
        """Fire-and-forget delivery; retried because notify is idempotent."""
        log = session_logger("orchestrator", session_id)
        record = {**payload, "submitted_at": datetime.now(timezone.utc).isoformat()}
        attempts = max(1, self._config.adapters.notify_max_attempts)

        for attempt in range(1, attempts + 1):
            try:
                await asyncio.wait_for(
                    self._adapters.notifier.notify(record),
                    timeout=self._config.adapters.notify_timeout_s,
                )
                log.info("Notification delivered", context={"attempt": attempt})
                return
            except Exception as e:
                log.warning(
                    "Notification attempt failed: %s", e,
                    context={"attempt": attempt, "max_attempts": attempts},
                )
                if attempt < attempts:
                    await self._sleep(self._config.adapters.notify_backoff_s * attempt)

        log.error("Notification not delivered", context={"attempts": attempts})
