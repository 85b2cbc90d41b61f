"""Context assembly for one decision cycle.

``build_context_snapshot`` is a pure function: the same identity, NPC state,
environment, memory summary and catalog always produce an equal snapshot and
the same rendered text. The text helpers below turn a snapshot into the
sections used by the prompt templates; dict-valued inputs are rendered in
sorted order so prompts stay reproducible.
"""

from __future__ import annotations

import json
from typing import Iterable, List, Optional, Sequence

from ..memory import MemoryStore
from ..schemas import (
    AgentIdentity,
    ContextSnapshot,
    EnvironmentState,
    MemorySummary,
    NPCState,
    Personality,
    ToolDeclaration,
)
from ..tools import TOOL_CATALOG
from ..world import WorldCollaborator


def build_context_snapshot(
    identity: AgentIdentity,
    npc_state: NPCState,
    environment: Optional[EnvironmentState],
    memory: MemorySummary | MemoryStore,
    tool_catalog: Iterable[ToolDeclaration] = TOOL_CATALOG,
) -> ContextSnapshot:
    """Assemble the immutable snapshot for one cycle.

    The persisted personality, when memory has one, wins over the spawn-time
    personality so edits made through ``set_personality`` survive restarts.
    """

    summary = memory.get_context() if isinstance(memory, MemoryStore) else memory
    if summary.personality is None:
        summary = summary.model_copy(update={"personality": identity.personality})

    return ContextSnapshot(
        npc_state=npc_state,
        environment_state=environment,
        memory_summary=summary,
        tool_catalog=tuple(tool_catalog),
    )


class ContextAssembler:
    """Reads live NPC and environment state from the world and builds snapshots."""

    def __init__(self, world: WorldCollaborator, tool_catalog: Sequence[ToolDeclaration] = TOOL_CATALOG) -> None:
        self.world = world
        self.tool_catalog = tuple(tool_catalog)

    def npc_state(self, agent_id: str) -> NPCState:
        return NPCState(
            agent_id=agent_id,
            position=self.world.agent_position(agent_id),
            state=self.world.agent_state(agent_id),
            rock_count=self.world.inventory(agent_id).count(),
        )

    def assemble(self, identity: AgentIdentity, memory: MemoryStore) -> ContextSnapshot:
        return build_context_snapshot(
            identity,
            self.npc_state(identity.agent_id),
            self.world.query_environment_state(),
            memory,
            self.tool_catalog,
        )


# ----------------------------------------------------------------------------
# Text sections
# ----------------------------------------------------------------------------


def personality_text(personality: Optional[Personality]) -> str:
    if personality is None:
        return "You are an NPC with no particular personality."
    lines = [f"You are {personality.label}."]
    if personality.backstory:
        lines.append(f"Backstory: {personality.backstory}")
    if personality.traits:
        lines.append("Your personality traits are:")
        for trait in sorted(personality.traits):
            label = trait.replace("_", " ").capitalize()
            lines.append(f"- {label}: {personality.traits[trait]:.2f}")
    return "\n".join(lines)


def state_text(npc_state: NPCState) -> str:
    return (
        f"Your current state: {npc_state.state}\n"
        f"Your position: {npc_state.position.describe()}\n"
        f"Rocks in your inventory: {npc_state.rock_count}"
    )


def environment_text(environment: Optional[EnvironmentState]) -> str:
    env = environment or EnvironmentState()
    temperature = "unknown" if env.temperature is None else f"{env.temperature:g}°C"
    lines = [
        "Environment:",
        f"- Time of day: {env.time_of_day or 'unknown'}",
        f"- Weather: {env.weather or 'unknown'}",
        f"- Temperature: {temperature}",
    ]
    if env.next_weather:
        lines.append(f"- Upcoming weather: {env.next_weather}")
    return "\n".join(lines)


def memory_text(summary: MemorySummary) -> str:
    lines = [f"Your reputation with the player: {summary.reputation} ({summary.attitude})"]

    if summary.recent_interactions:
        lines.append("Recent interactions with the player:")
        for interaction in summary.recent_interactions:
            lines.append(
                f"- {interaction.type} ({interaction.impact}, reputation {interaction.reputation_delta:+d})"
            )

    if summary.recent_conversations:
        lines.append("Recent things the player said:")
        for entry in summary.recent_conversations:
            mood = f" [{entry.sentiment}]" if entry.sentiment else ""
            lines.append(f"- \"{entry.content}\"{mood}")

    if summary.recent_actions:
        lines.append("Recent player actions: " + ", ".join(action.action for action in summary.recent_actions))
    else:
        lines.append("Recent player actions: none")

    return "\n".join(lines)


def tool_catalog_text(tool_catalog: Sequence[ToolDeclaration]) -> str:
    if not tool_catalog:
        return "No tools available."
    lines: List[str] = ["Available tools:"]
    for tool in tool_catalog:
        required = tool.parameters.get("required") or []
        suffix = f" (requires: {', '.join(required)})" if required else ""
        lines.append(f"- {tool.name}: {tool.description}{suffix}")
    return "\n".join(lines)


def snapshot_json(snapshot: ContextSnapshot) -> str:
    return json.dumps(snapshot.model_dump(mode="json", by_alias=True), indent=2, sort_keys=True)


__all__ = [
    "ContextAssembler",
    "build_context_snapshot",
    "environment_text",
    "memory_text",
    "personality_text",
    "snapshot_json",
    "state_text",
    "tool_catalog_text",
]
