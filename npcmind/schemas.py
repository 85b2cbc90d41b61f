"""
Pydantic schemas for the npcmind agent core.

All data structures that cross a module boundary are defined here.

Design Philosophy:
- Persisted and wire-facing models serialize with camelCase aliases
  (``conversationHistory``, ``toolCalls``) while Python code uses snake_case
- Snapshots handed to the reasoning layer are frozen after construction
- Timestamps are timezone-aware UTC
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Geometry
# ============================================================================


class Vector3(BaseModel):
    """Point or direction in world space (y is up)."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def minus(self, other: "Vector3") -> "Vector3":
        return Vector3(x=self.x - other.x, y=self.y - other.y, z=self.z - other.z)

    def plus(self, other: "Vector3") -> "Vector3":
        return Vector3(x=self.x + other.x, y=self.y + other.y, z=self.z + other.z)

    def scaled(self, factor: float) -> "Vector3":
        return Vector3(x=self.x * factor, y=self.y * factor, z=self.z * factor)

    def length(self) -> float:
        return math.sqrt(self.x * self.x + self.y * self.y + self.z * self.z)

    def normalized(self) -> "Vector3":
        """Return a unit vector. Raises ValueError for a zero-length vector."""
        length = self.length()
        if length == 0:
            raise ValueError("Cannot normalize a zero-length vector")
        return self.scaled(1.0 / length)

    def distance_to(self, other: "Vector3") -> float:
        return self.minus(other).length()

    def horizontal_distance_to(self, other: "Vector3") -> float:
        """Distance on the ground plane, ignoring height."""
        return math.hypot(self.x - other.x, self.z - other.z)

    def describe(self) -> str:
        return f"({self.x:.1f}, {self.y:.1f}, {self.z:.1f})"


# ============================================================================
# Agent identity
# ============================================================================


class Personality(CamelModel):
    """Who the NPC is. Trait values are weights in [0, 1]."""

    name: str = Field(..., description="Internal name used in prompts")
    display_name: Optional[str] = Field(None, description="Name shown to the player")
    backstory: str = Field("", description="Short first-person background")
    traits: Dict[str, float] = Field(
        default_factory=dict,
        description="Trait weights, e.g. {'friendliness': 0.8, 'curiosity': 0.4}",
    )

    @field_validator("traits")
    @classmethod
    def _traits_in_unit_range(cls, value: Dict[str, float]) -> Dict[str, float]:
        for trait, weight in value.items():
            if not 0.0 <= float(weight) <= 1.0:
                raise ValueError(f"trait '{trait}' must be within [0, 1], got {weight}")
        return value

    @property
    def label(self) -> str:
        return self.display_name or self.name


class AgentIdentity(CamelModel):
    """Immutable identity bound to one NPC for its whole lifetime."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    agent_id: str = Field(..., description="Unique agent identifier")
    personality: Personality


# ============================================================================
# Events
# ============================================================================


class EventKind(str, Enum):
    """Occurrences that trigger one decision cycle."""

    PLAYER_QUERY = "player_query"
    ENVIRONMENT_CHANGE = "environment_change"
    HIT = "hit"
    PERIODIC = "periodic"


class PlayerQueryPayload(BaseModel):
    text: str = ""


class EnvironmentChangePayload(BaseModel):
    # "weather" or "time_of_day"
    change: str = "environment"
    previous: Optional[str] = None
    current: Optional[str] = None
    details: str = ""


class HitPayload(BaseModel):
    thrower_id: str = "unknown"


class PeriodicPayload(BaseModel):
    pass


_PAYLOAD_MODELS: Dict[EventKind, type[BaseModel]] = {
    EventKind.PLAYER_QUERY: PlayerQueryPayload,
    EventKind.ENVIRONMENT_CHANGE: EnvironmentChangePayload,
    EventKind.HIT: HitPayload,
    EventKind.PERIODIC: PeriodicPayload,
}


class Event(BaseModel):
    """A typed occurrence produced by world collaborators."""

    kind: EventKind
    payload: Dict[str, Any] = Field(default_factory=dict)

    def typed_payload(self) -> BaseModel:
        """Validate the raw payload against the model for this event kind."""
        return _PAYLOAD_MODELS[self.kind].model_validate(self.payload)


# ============================================================================
# World snapshots
# ============================================================================


class EnvironmentState(CamelModel):
    """Ambient conditions reported by the day/night and weather systems."""

    time_of_day: Optional[str] = None
    weather: Optional[str] = None
    temperature: Optional[float] = None
    next_weather: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class NPCState(CamelModel):
    """Dynamic state of the NPC at the start of a decision cycle."""

    agent_id: str
    position: Vector3 = Field(default_factory=Vector3)
    state: str = "idle"
    rock_count: int = 0


# ============================================================================
# Memory records
# ============================================================================

SentimentLabel = Literal["friendly", "hostile", "threatening", "neutral", "positive", "negative"]


class ConversationEntry(CamelModel):
    role: Literal["player", "agent"]
    content: str
    sentiment: Optional[str] = None
    timestamp: datetime = Field(default_factory=utc_now)


class ActionEntry(CamelModel):
    action: str
    details: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utc_now)


class PlayerInteraction(CamelModel):
    type: Literal["hit", "message"]
    # Sentiment label for messages, "hit" for hits
    impact: str
    reputation_delta: int
    timestamp: datetime = Field(default_factory=utc_now)


class MemoryRecord(CamelModel):
    """Persisted memory of one agent (stored under ``memory:<agentId>``)."""

    agent_id: str
    personality: Optional[Personality] = None
    conversation_history: List[ConversationEntry] = Field(default_factory=list)
    action_memory: List[ActionEntry] = Field(default_factory=list)
    player_interactions: List[PlayerInteraction] = Field(default_factory=list)
    reputation: int = 0
    last_updated: datetime = Field(default_factory=utc_now)


class MemorySummary(CamelModel):
    """Bounded excerpt of memory handed to the context assembler."""

    personality: Optional[Personality] = None
    reputation: int = 0
    attitude: str = "neutral"
    recent_interactions: List[PlayerInteraction] = Field(default_factory=list)
    recent_conversations: List[ConversationEntry] = Field(default_factory=list)
    recent_actions: List[ActionEntry] = Field(default_factory=list)
    total_conversations: int = 0
    total_actions: int = 0
    total_interactions: int = 0


class SentimentResult(BaseModel):
    label: SentimentLabel = "neutral"
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    reasoning: str = ""
    # "service" when parsed from the service reply, "heuristic" for keyword fallback
    source: Literal["service", "heuristic"] = "heuristic"


# ============================================================================
# Reasoning protocol
# ============================================================================


class ToolCall(CamelModel):
    """A named action requested by the reasoning service."""

    name: str
    args: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("args", mode="before")
    @classmethod
    def _default_args(cls, value: Any) -> Any:
        return {} if value is None else value


class ReasoningResponse(CamelModel):
    """Canonical response shape, whichever wire shape it arrived in."""

    text: str = ""
    tool_calls: List[ToolCall] = Field(default_factory=list)


class ToolDeclaration(BaseModel):
    """Catalog entry advertised to the reasoning service."""

    name: str
    description: str
    parameters: Dict[str, Any] = Field(default_factory=dict)


class GenerationParams(CamelModel):
    temperature: float = 0.7
    top_k: int = 40
    top_p: float = 0.95
    max_output_tokens: int = 1024


class ContextSnapshot(CamelModel):
    """Everything one decision cycle may know. Never mutated after construction."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    npc_state: NPCState
    environment_state: Optional[EnvironmentState] = None
    memory_summary: MemorySummary
    tool_catalog: Tuple[ToolDeclaration, ...] = ()
