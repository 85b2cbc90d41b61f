"""Per-agent decision cycle.

``AgentRuntime`` turns one Event into at most one reasoning request and the
resulting world actions:

1. Hits by the player are accounted in memory first, even if the cycle is
   then dropped by the single-flight guard
2. Player speech is classified and recorded before context is assembled
3. A fresh ContextSnapshot is rendered into the event's prompt template
4. The reasoning service is called; tool calls run in order, then any free
   text is spoken

Each agent is a two-state machine (IDLE / AWAITING_RESPONSE). An event that
arrives while a request is outstanding is dropped and logged. The guard is
released on every exit path.

Outstanding work is bound to an ``AgentLifetime``. Closing it cancels the
in-flight cycle and pending tool completions, and a response that arrives
after close never touches memory or the world.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Coroutine, Dict, List, Optional, Set, Union

from pydantic import ValidationError

from ..errors import TransportError
from ..logging_utils import log_deterministic, log_error, log_info, log_success, preview
from ..memory import MemoryStore
from ..schemas import (
    AgentIdentity,
    Event,
    EventKind,
    HitPayload,
    PlayerQueryPayload,
    ReasoningResponse,
)
from ..sentiment import SentimentClassifier, heuristic_sentiment
from ..tools import ToolDispatcher, ToolOutcome
from .context import ContextAssembler
from .prompts import DEFAULT_PROMPTS, PromptLibrary
from .reasoning import ReasoningClient
from .renderers import render_event_prompt

HISTORY_TURNS = 5


class AgentPhase(str, Enum):
    IDLE = "idle"
    AWAITING_RESPONSE = "awaiting_response"


class AgentLifetime:
    """Cancellation scope covering everything an agent has outstanding."""

    def __init__(self, agent_id: str) -> None:
        self.agent_id = agent_id
        self.closed = False
        self._tasks: Set[asyncio.Task] = set()

    def track(self, coro: Coroutine[Any, Any, Any], name: Optional[str] = None) -> asyncio.Task:
        if self.closed:
            coro.close()
            raise RuntimeError(f"Agent {self.agent_id} has been shut down")
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def outstanding(self) -> int:
        return len(self._tasks)

    async def wait(self) -> None:
        """Wait for tracked tasks to finish without cancelling them."""
        current = asyncio.current_task()
        tasks = [task for task in self._tasks if task is not current]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def close(self) -> None:
        """Mark the scope closed and cancel every tracked task (except the caller)."""

        self.closed = True
        current = asyncio.current_task()
        tasks = [task for task in self._tasks if task is not current]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


@dataclass
class CycleReport:
    """What happened to one event."""

    event: Event
    dropped: bool = False
    cancelled: bool = False
    response: Optional[ReasoningResponse] = None
    outcomes: List[ToolOutcome] = field(default_factory=list)
    spoke: Optional[str] = None
    error: Optional[str] = None


class AgentRuntime:
    """Decision loop bound to one NPC identity and its memory."""

    def __init__(
        self,
        identity: AgentIdentity,
        memory: MemoryStore,
        *,
        reasoning: ReasoningClient,
        dispatcher: ToolDispatcher,
        assembler: ContextAssembler,
        sentiment: Optional[SentimentClassifier] = None,
        prompts: PromptLibrary = DEFAULT_PROMPTS,
        history_turns: int = HISTORY_TURNS,
    ) -> None:
        self.identity = identity
        self.memory = memory
        self.reasoning = reasoning
        self.dispatcher = dispatcher
        self.assembler = assembler
        self.sentiment = sentiment
        self.prompts = prompts
        self.history_turns = history_turns
        self.lifetime = AgentLifetime(identity.agent_id)
        self._phase = AgentPhase.IDLE

    @property
    def agent_id(self) -> str:
        return self.identity.agent_id

    @property
    def phase(self) -> AgentPhase:
        return self._phase

    @property
    def busy(self) -> bool:
        return self._phase is AgentPhase.AWAITING_RESPONSE

    def _transition(self, expected: AgentPhase, target: AgentPhase) -> bool:
        """Move to ``target`` only from ``expected``. Returns whether it moved."""
        if self._phase is not expected:
            return False
        self._phase = target
        return True

    async def start(self) -> None:
        """Seed memory with the spawn personality unless one was persisted."""

        if self.memory.get_personality() is None:
            log_deterministic("Setting personality in memory", self.agent_id)
            await self.memory.set_personality(self.identity.personality)
        else:
            log_deterministic("Personality already set in memory", self.agent_id)

    def submit(self, kind: Union[EventKind, str], payload: Optional[Dict[str, Any]] = None) -> asyncio.Task:
        """Schedule ``process_event`` inside this agent's lifetime and return the task."""
        event_kind = EventKind(kind)
        return self.lifetime.track(
            self.process_event(event_kind, payload),
            name=f"{self.agent_id}:{event_kind.value}",
        )

    async def process_event(
        self, kind: Union[EventKind, str], payload: Optional[Dict[str, Any]] = None
    ) -> CycleReport:
        event = Event(kind=EventKind(kind), payload=dict(payload or {}))
        report = CycleReport(event=event)

        if self.lifetime.closed:
            log_deterministic(f"Agent shut down, ignoring event: {event.kind.value}", self.agent_id)
            report.dropped = True
            return report

        if event.kind is EventKind.HIT:
            try:
                hit = HitPayload.model_validate(event.payload)
            except ValidationError as exc:
                log_error(f"Malformed hit payload, dropping event ({exc.error_count()} issues)", self.agent_id)
                report.dropped = True
                report.error = str(exc)
                return report
            await self.memory.record_hit(hit.thrower_id)

        if not self._transition(AgentPhase.IDLE, AgentPhase.AWAITING_RESPONSE):
            log_deterministic(f"Already processing, skipping event: {event.kind.value}", self.agent_id)
            report.dropped = True
            return report

        log_info(f"Processing event: {event.kind.value} {event.payload or ''}".rstrip(), self.agent_id)
        try:
            await self._run_cycle(event, report)
        except asyncio.CancelledError:
            if not self.lifetime.closed:
                raise
            log_deterministic(f"Cycle for {event.kind.value} cancelled by shutdown", self.agent_id)
            report.cancelled = True
        except TransportError as exc:
            log_error(f"Reasoning service unavailable, skipping turn: {exc}", self.agent_id)
            report.error = str(exc)
        except Exception as exc:  # noqa: BLE001 - a failed turn must never take the host down
            log_error(f"Error processing event {event.kind.value}: {exc}", self.agent_id)
            report.error = str(exc)
        finally:
            self._transition(AgentPhase.AWAITING_RESPONSE, AgentPhase.IDLE)
            log_deterministic("Event processing complete", self.agent_id)
        return report

    async def _run_cycle(self, event: Event, report: CycleReport) -> None:
        # Earlier turns only; the current message travels separately
        history = self.memory.recent_player_turns(self.history_turns)

        if event.kind is EventKind.PLAYER_QUERY:
            query = PlayerQueryPayload.model_validate(event.payload)
            if query.text.strip():
                await self._record_player_message(query.text)

        snapshot = self.assembler.assemble(self.identity, self.memory)
        prompt = render_event_prompt(snapshot, event, self.prompts)
        request = self.reasoning.build_request(
            system_instruction=prompt.system,
            current_message=prompt.user,
            history=history,
            tool_declarations=snapshot.tool_catalog,
        )

        response = await self.reasoning.generate(request, self.agent_id)

        if self.lifetime.closed:
            log_deterministic("Agent shut down while waiting, discarding response", self.agent_id)
            report.cancelled = True
            return
        if response is None:
            log_deterministic("No usable response, nothing to do this turn", self.agent_id)
            return

        report.response = response
        report.outcomes = await self.dispatcher.dispatch(self.agent_id, response.tool_calls)
        if response.text:
            self.dispatcher.say(self.agent_id, response.text)
            report.spoke = response.text
        log_success(
            f"Turn complete: {len(report.outcomes)} tool call(s)"
            + (f", said \"{preview(response.text, 40)}\"" if response.text else ""),
            self.agent_id,
        )

    async def _record_player_message(self, text: str) -> None:
        if self.sentiment is not None:
            result = await self.sentiment.classify(text, self.agent_id)
        else:
            result = heuristic_sentiment(text)
        await self.memory.record_message(text, result.label)

    async def close(self) -> None:
        """Cancel outstanding work. Late responses are discarded afterwards."""

        if self.lifetime.closed:
            return
        log_deterministic("Shutting down agent", self.agent_id)
        await self.lifetime.close()
        await self.dispatcher.cancel_pending(self.agent_id)


__all__ = ["AgentLifetime", "AgentPhase", "AgentRuntime", "CycleReport", "HISTORY_TURNS"]
