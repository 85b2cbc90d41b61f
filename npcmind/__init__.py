"""
npcmind - decision-making core for LLM-driven game NPCs.

Turns world events into actions by calling an external reasoning service,
executing the tool calls it returns against the game world, and keeping a
persistent, bounded memory of how the player has treated each NPC.

Rendering, animation, physics and input stay in the game; it plugs in through
the WorldCollaborator protocol.
"""

__version__ = "0.1.0"

# Host and runtime
from .host import AgentHost
from .cognition import (
    AgentLifetime,
    AgentPhase,
    AgentRuntime,
    CandidatesResponseAdapter,
    ContextAssembler,
    CycleReport,
    DEFAULT_PROMPTS,
    DirectResponseAdapter,
    PromptLibrary,
    PromptTemplate,
    ReasoningClient,
    ReasoningRequest,
    build_context_snapshot,
    parse_response,
    render_event_prompt,
)

# Memory and storage
from .memory import MemoryRegistry, MemoryStore, describe_attitude
from .persistence import (
    InMemoryStorage,
    JsonFileStorage,
    PostgresStorage,
    StorageStrategy,
    build_storage,
    memory_key,
)

# Services and tools
from .sentiment import SentimentClassifier, heuristic_sentiment
from .tools import TOOL_CATALOG, ToolDispatcher, ToolOutcome, validate_tool_call
from .world import DEFAULT_SHELTERS, Inventory, Shelter, SimpleWorld, WorldCollaborator, WorldObject

# Core schemas
from .schemas import (
    AgentIdentity,
    ContextSnapshot,
    EnvironmentState,
    Event,
    EventKind,
    MemoryRecord,
    MemorySummary,
    NPCState,
    Personality,
    ReasoningResponse,
    SentimentResult,
    ToolCall,
    ToolDeclaration,
    Vector3,
)

from .config import Config
from .errors import (
    NPCMindError,
    PersistenceError,
    ProtocolError,
    ToolExecutionError,
    ToolValidationError,
    TransportError,
    UnknownToolError,
)

__all__ = [
    "AgentHost",
    "AgentIdentity",
    "AgentLifetime",
    "AgentPhase",
    "AgentRuntime",
    "CandidatesResponseAdapter",
    "Config",
    "ContextAssembler",
    "ContextSnapshot",
    "CycleReport",
    "DEFAULT_PROMPTS",
    "DEFAULT_SHELTERS",
    "DirectResponseAdapter",
    "EnvironmentState",
    "Event",
    "EventKind",
    "InMemoryStorage",
    "Inventory",
    "JsonFileStorage",
    "MemoryRecord",
    "MemoryRegistry",
    "MemoryStore",
    "MemorySummary",
    "NPCMindError",
    "NPCState",
    "PersistenceError",
    "Personality",
    "PostgresStorage",
    "PromptLibrary",
    "PromptTemplate",
    "ProtocolError",
    "ReasoningClient",
    "ReasoningRequest",
    "ReasoningResponse",
    "SentimentClassifier",
    "SentimentResult",
    "Shelter",
    "SimpleWorld",
    "StorageStrategy",
    "TOOL_CATALOG",
    "ToolCall",
    "ToolDeclaration",
    "ToolDispatcher",
    "ToolExecutionError",
    "ToolOutcome",
    "ToolValidationError",
    "TransportError",
    "UnknownToolError",
    "Vector3",
    "WorldCollaborator",
    "WorldObject",
    "build_context_snapshot",
    "build_storage",
    "describe_attitude",
    "heuristic_sentiment",
    "memory_key",
    "parse_response",
    "render_event_prompt",
    "validate_tool_call",
]
