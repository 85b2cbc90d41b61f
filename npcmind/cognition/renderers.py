"""Prompt rendering utilities."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict

from ..schemas import (
    ContextSnapshot,
    EnvironmentChangePayload,
    Event,
    HitPayload,
    PlayerQueryPayload,
)
from .context import environment_text, memory_text, personality_text, state_text, tool_catalog_text
from .prompts import DEFAULT_PROMPTS, PromptLibrary


_PLACEHOLDER = re.compile(r"\{\{[a-z_]+\}\}")


@dataclass
class RenderedPrompt:
    system: str
    user: str


def _event_replacements(event: Event) -> Dict[str, str]:
    payload = event.typed_payload()
    if isinstance(payload, PlayerQueryPayload):
        return {"{{player_text}}": payload.text}
    if isinstance(payload, EnvironmentChangePayload):
        details = payload.details
        if not details and (payload.previous or payload.current):
            details = f"{payload.previous or 'unknown'} -> {payload.current or 'unknown'}"
        return {"{{change}}": payload.change, "{{change_details}}": details}
    if isinstance(payload, HitPayload):
        return {"{{thrower}}": payload.thrower_id or "someone"}
    return {}


def render_event_prompt(
    snapshot: ContextSnapshot,
    event: Event,
    library: PromptLibrary = DEFAULT_PROMPTS,
) -> RenderedPrompt:
    """Fill the template registered for ``event.kind`` from the snapshot.

    Placeholders use ``{{double_brace}}`` syntax so JSON braces in templates
    never collide with them. Unknown placeholders are left as-is.
    """

    template = library.get(event.kind.value)

    replacements: Dict[str, str] = {
        "{{personality}}": personality_text(snapshot.memory_summary.personality),
        "{{state}}": state_text(snapshot.npc_state),
        "{{environment}}": environment_text(snapshot.environment_state),
        "{{memory}}": memory_text(snapshot.memory_summary),
        "{{tool_catalog}}": tool_catalog_text(snapshot.tool_catalog),
        "{{agent_id}}": snapshot.npc_state.agent_id,
    }
    replacements.update(_event_replacements(event))

    def substitute(text: str) -> str:
        # One pass, so braces inside substituted values are never expanded
        return _PLACEHOLDER.sub(lambda match: replacements.get(match.group(0), match.group(0)), text)

    system = substitute(template.system)
    user = substitute(template.user)

    return RenderedPrompt(system=system.strip(), user=user.strip())


__all__ = ["RenderedPrompt", "render_event_prompt"]
