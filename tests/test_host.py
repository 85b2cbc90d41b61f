"""Tests for the multi-agent host the game loop talks to."""

import asyncio
from typing import List, Optional

import pytest

from npcmind.cognition import AgentPhase, ReasoningClient
from npcmind.host import AgentHost
from npcmind.memory import MemoryRegistry
from npcmind.persistence import InMemoryStorage
from npcmind.schemas import AgentIdentity, EventKind, Personality, ReasoningResponse, ToolCall, Vector3
from npcmind.sentiment import SentimentClassifier
from npcmind.world import SimpleWorld


class EchoReasoning(ReasoningClient):
    """Replies to every request with a fixed response and remembers the prompts."""

    def __init__(self, response: Optional[ReasoningResponse] = None, gate: Optional[asyncio.Event] = None) -> None:
        super().__init__(api_key="test")
        self.response = response or ReasoningResponse()
        self.gate = gate
        self.messages: List[str] = []

    async def generate(self, request, agent_id=None):
        self.messages.append(f"{agent_id}: {request.current_message}")
        if self.gate is not None:
            await self.gate.wait()
        return self.response


class TrackingStorage(InMemoryStorage):
    def __init__(self) -> None:
        super().__init__()
        self.closed = False

    async def close(self) -> None:
        self.closed = True


def identity(agent_id: str, name: str) -> AgentIdentity:
    return AgentIdentity(agent_id=agent_id, personality=Personality(name=name))


def make_host(reasoning: ReasoningClient, storage=None) -> AgentHost:
    world = SimpleWorld(player_position=Vector3(x=0, y=0, z=5))
    world.add_agent("npc-1")
    world.add_agent("npc-2", Vector3(x=10, y=0, z=0))
    return AgentHost(
        world,
        storage=storage or InMemoryStorage(),
        reasoning=reasoning,
        sentiment=SentimentClassifier(api_key=""),
        registry=MemoryRegistry(),
        travel_delay=0,
    )


@pytest.mark.asyncio
async def test_dispatch_runs_the_cycle_in_the_background():
    reasoning = EchoReasoning(ReasoningResponse(tool_calls=[ToolCall(name="get_player_position")]))
    host = make_host(reasoning)
    await host.spawn(identity("npc-1", "Mira"))

    task = host.dispatch("npc-1", EventKind.PLAYER_QUERY, {"text": "Where am I?"})
    assert isinstance(task, asyncio.Task)
    await host.drain()

    assert reasoning.messages == ['npc-1: The player nearby said: "Where am I?"\n\nHow do you respond?']
    assert host.world.spoken_by("npc-1") == ["Player is at (0.0, 0.0, 5.0)"]
    await host.shutdown()


@pytest.mark.asyncio
async def test_dispatch_to_unknown_agent_is_ignored():
    host = make_host(EchoReasoning())
    assert host.dispatch("ghost", EventKind.PERIODIC) is None
    await host.shutdown()


@pytest.mark.asyncio
async def test_spawn_seeds_personality_and_rejects_duplicates():
    storage = InMemoryStorage()
    host = make_host(EchoReasoning(), storage)

    runtime = await host.spawn(identity("npc-1", "Mira"))

    assert runtime.memory.get_personality().name == "Mira"
    assert "memory:npc-1" in storage.records
    with pytest.raises(ValueError):
        await host.spawn(identity("npc-1", "Mira"))
    await host.shutdown()


@pytest.mark.asyncio
async def test_memory_is_loaded_once_across_respawns():
    host = make_host(EchoReasoning())

    first = await host.spawn(identity("npc-1", "Mira"))
    await first.memory.record_hit("player")
    await host.despawn("npc-1")
    second = await host.spawn(identity("npc-1", "Mira"))

    assert host.registry.load_count == 1
    assert second.memory is first.memory
    assert second.memory.reputation == -10
    await host.shutdown()


@pytest.mark.asyncio
async def test_tick_skips_busy_agents():
    gate = asyncio.Event()
    reasoning = EchoReasoning(gate=gate)
    host = make_host(reasoning)
    await host.spawn(identity("npc-1", "Mira"))
    await host.spawn(identity("npc-2", "Finn"))

    host.dispatch("npc-1", EventKind.PLAYER_QUERY, {"text": "hi"})
    for _ in range(50):
        if host.get("npc-1").busy:
            break
        await asyncio.sleep(0)

    tasks = host.tick()
    gate.set()
    await host.drain()

    assert len(tasks) == 1
    assert sorted(message.split(":")[0] for message in reasoning.messages) == ["npc-1", "npc-2"]
    assert all(runtime.phase is AgentPhase.IDLE for runtime in host.runtimes.values())
    await host.shutdown()


@pytest.mark.asyncio
async def test_environment_change_reaches_every_agent():
    reasoning = EchoReasoning()
    host = make_host(reasoning)
    await host.spawn(identity("npc-1", "Mira"))
    await host.spawn(identity("npc-2", "Finn"))

    tasks = host.notify_environment_change("weather", previous="sunny", current="rain")
    await asyncio.gather(*tasks)

    assert sorted(reasoning.messages) == [
        "npc-1: The environment changed: weather (sunny -> rain)\n\nHow do you react?",
        "npc-2: The environment changed: weather (sunny -> rain)\n\nHow do you react?",
    ]
    await host.shutdown()


@pytest.mark.asyncio
async def test_notify_hit_updates_reputation():
    host = make_host(EchoReasoning())
    runtime = await host.spawn(identity("npc-2", "Finn"))

    await host.notify_hit("npc-2", "player")

    assert runtime.memory.reputation == -10
    await host.shutdown()


@pytest.mark.asyncio
async def test_player_speech_reaches_listeners_only():
    reasoning = EchoReasoning()
    host = make_host(reasoning)
    await host.spawn(identity("npc-1", "Mira"))
    await host.spawn(identity("npc-2", "Finn"))

    await asyncio.gather(*host.notify_player_speech("thanks friend", ["npc-1"]))

    assert host.get("npc-1").memory.reputation == 2
    assert host.get("npc-2").memory.reputation == 0
    assert len(reasoning.messages) == 1
    await host.shutdown()


@pytest.mark.asyncio
async def test_shutdown_cancels_outstanding_work_and_closes_storage():
    gate = asyncio.Event()
    storage = TrackingStorage()
    reasoning = EchoReasoning(ReasoningResponse(text="never said"), gate=gate)
    host = make_host(reasoning, storage)
    await host.spawn(identity("npc-1", "Mira"))

    task = host.dispatch("npc-1", EventKind.PERIODIC)
    for _ in range(50):
        if host.get("npc-1").busy:
            break
        await asyncio.sleep(0)
    await host.shutdown()
    gate.set()

    report = await task
    assert report.cancelled
    assert host.world.speech_log == []
    assert host.runtimes == {}
    assert storage.closed


@pytest.mark.asyncio
async def test_host_as_async_context_manager():
    storage = TrackingStorage()
    async with make_host(EchoReasoning(), storage) as host:
        await host.spawn(identity("npc-1", "Mira"))
    assert storage.closed


@pytest.mark.asyncio
async def test_hosts_sharing_a_registry_write_to_their_own_storage():
    registry = MemoryRegistry()
    storage_a = InMemoryStorage()
    storage_b = InMemoryStorage()

    def host_for(storage) -> AgentHost:
        world = SimpleWorld(player_position=Vector3(x=0, y=0, z=5))
        world.add_agent("npc-1")
        return AgentHost(
            world,
            storage=storage,
            reasoning=EchoReasoning(),
            sentiment=SentimentClassifier(api_key=""),
            registry=registry,
            travel_delay=0,
        )

    host_a = host_for(storage_a)
    await host_a.spawn(identity("npc-1", "Mira"))
    await host_a.shutdown()
    storage_a.records.clear()

    host_b = host_for(storage_b)
    runtime = await host_b.spawn(identity("npc-1", "Mira"))
    await runtime.memory.record_hit("player")

    assert runtime.memory.storage is storage_b
    assert "memory:npc-1" in storage_b.records
    assert storage_a.records == {}
    await host_b.shutdown()
