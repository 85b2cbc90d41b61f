"""Cognition layer: context assembly, prompts, reasoning protocol, and the agent runtime."""

from .context import ContextAssembler, build_context_snapshot
from .prompts import DEFAULT_PROMPTS, PromptLibrary, PromptTemplate
from .reasoning import (
    CandidatesResponseAdapter,
    DirectResponseAdapter,
    ReasoningClient,
    ReasoningRequest,
    parse_response,
)
from .renderers import RenderedPrompt, render_event_prompt
from .runtime import AgentLifetime, AgentPhase, AgentRuntime, CycleReport

__all__ = [
    "AgentLifetime",
    "AgentPhase",
    "AgentRuntime",
    "CandidatesResponseAdapter",
    "ContextAssembler",
    "CycleReport",
    "DEFAULT_PROMPTS",
    "DirectResponseAdapter",
    "PromptLibrary",
    "PromptTemplate",
    "ReasoningClient",
    "ReasoningRequest",
    "RenderedPrompt",
    "build_context_snapshot",
    "parse_response",
    "render_event_prompt",
]
