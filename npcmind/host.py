"""
AgentHost - the seam between the game loop and the agent core.

The game's fixed-interval update loop never awaits reasoning. It calls the
non-blocking methods here (``dispatch``, ``tick``, ``notify_*``), which
schedule each agent's decision cycle as a task and return immediately. Agents
run independently of one another; each one's single-flight guard drops events
that arrive while it is still waiting on the reasoning service.

Lifecycle:
    host = AgentHost(world, storage=InMemoryStorage())
    await host.start()
    await host.spawn(identity)
    host.dispatch("npc-1", EventKind.PLAYER_QUERY, {"text": "hello"})
    ...
    await host.shutdown()
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Union

from .cognition import AgentRuntime, ContextAssembler, ReasoningClient
from .logging_utils import log_deterministic, log_error, log_info
from .memory import DEFAULT_REGISTRY, MemoryRegistry
from .persistence import StorageStrategy, build_storage
from .schemas import AgentIdentity, EventKind
from .sentiment import SentimentClassifier
from .tools import ToolDispatcher
from .world import WorldCollaborator


class AgentHost:
    """Owns every agent runtime in one world and the services they share."""

    def __init__(
        self,
        world: WorldCollaborator,
        *,
        storage: Optional[StorageStrategy] = None,
        reasoning: Optional[ReasoningClient] = None,
        sentiment: Optional[SentimentClassifier] = None,
        dispatcher: Optional[ToolDispatcher] = None,
        registry: Optional[MemoryRegistry] = None,
        travel_delay: Optional[float] = None,
    ) -> None:
        self.world = world
        self.storage = storage if storage is not None else build_storage()
        self.reasoning = reasoning or ReasoningClient()
        self.sentiment = sentiment or SentimentClassifier()
        self.dispatcher = dispatcher or ToolDispatcher(world, travel_delay=travel_delay)
        self.registry = registry or DEFAULT_REGISTRY
        self.assembler = ContextAssembler(world)
        self.runtimes: Dict[str, AgentRuntime] = {}
        self._started = False

    async def __aenter__(self) -> "AgentHost":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.shutdown()

    async def start(self) -> None:
        if self._started:
            return
        await self.storage.initialize()
        self._started = True

    # ------------------------------------------------------------------
    # Agents
    # ------------------------------------------------------------------

    async def spawn(self, identity: AgentIdentity) -> AgentRuntime:
        """Create the runtime for ``identity``, loading its memory once per storage backend."""

        if identity.agent_id in self.runtimes:
            raise ValueError(f"Agent {identity.agent_id} is already spawned")
        await self.start()

        memory = await self.registry.get_or_load(identity.agent_id, self.storage)
        runtime = AgentRuntime(
            identity,
            memory,
            reasoning=self.reasoning,
            dispatcher=self.dispatcher,
            assembler=self.assembler,
            sentiment=self.sentiment,
        )
        await runtime.start()
        self.runtimes[identity.agent_id] = runtime
        log_info(f"Spawned ({identity.personality.label}), reputation {memory.reputation}", identity.agent_id)
        return runtime

    async def despawn(self, agent_id: str) -> None:
        runtime = self.runtimes.pop(agent_id, None)
        if runtime is None:
            return
        await runtime.close()
        log_info("Despawned", agent_id)

    def get(self, agent_id: str) -> Optional[AgentRuntime]:
        return self.runtimes.get(agent_id)

    # ------------------------------------------------------------------
    # Events (non-blocking)
    # ------------------------------------------------------------------

    def dispatch(
        self,
        agent_id: str,
        kind: Union[EventKind, str],
        payload: Optional[Dict[str, Any]] = None,
    ) -> Optional[asyncio.Task]:
        """Schedule one event for one agent and return its task (None if unknown)."""

        runtime = self.runtimes.get(agent_id)
        if runtime is None:
            log_error(f"Event {EventKind(kind).value} for unknown agent ignored", agent_id)
            return None
        return runtime.submit(kind, payload)

    def tick(self) -> List[asyncio.Task]:
        """Send a periodic check to every agent that is not already thinking."""

        tasks = []
        for agent_id, runtime in self.runtimes.items():
            if runtime.busy:
                continue
            tasks.append(runtime.submit(EventKind.PERIODIC))
        if tasks:
            log_deterministic(f"Periodic tick for {len(tasks)} idle agent(s)")
        return tasks

    def notify_environment_change(
        self,
        change: str,
        previous: Optional[str] = None,
        current: Optional[str] = None,
        details: str = "",
    ) -> List[asyncio.Task]:
        payload = {"change": change, "previous": previous, "current": current, "details": details}
        return [runtime.submit(EventKind.ENVIRONMENT_CHANGE, payload) for runtime in self.runtimes.values()]

    def notify_hit(self, target_id: str, thrower_id: str) -> Optional[asyncio.Task]:
        return self.dispatch(target_id, EventKind.HIT, {"thrower_id": thrower_id})

    def notify_player_speech(self, text: str, listener_ids: List[str]) -> List[asyncio.Task]:
        """Deliver something the player said to every NPC within earshot."""
        tasks = []
        for agent_id in listener_ids:
            task = self.dispatch(agent_id, EventKind.PLAYER_QUERY, {"text": text})
            if task is not None:
                tasks.append(task)
        return tasks

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def drain(self) -> None:
        """Wait until every scheduled cycle and tool completion has finished."""

        for runtime in list(self.runtimes.values()):
            await runtime.lifetime.wait()
        await self.dispatcher.wait_pending()

    async def shutdown(self) -> None:
        """Cancel all outstanding work and release storage."""

        for agent_id in list(self.runtimes):
            await self.despawn(agent_id)
        await self.dispatcher.close()
        if self._started:
            await self.storage.close()
            self._started = False


__all__ = ["AgentHost"]
