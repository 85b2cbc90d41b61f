"""Prompt templates for each event kind."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict


@dataclass
class PromptTemplate:
    """Represents a templated prompt with placeholders."""

    name: str
    system: str
    user: str
    description: str = ""


class PromptLibrary:
    """Container for named prompt templates, one per event kind."""

    def __init__(self) -> None:
        self.templates: Dict[str, PromptTemplate] = {}

    def register(self, template: PromptTemplate) -> None:
        self.templates[template.name] = template

    def get(self, name: str) -> PromptTemplate:
        return self.templates[name]

    def __contains__(self, name: str) -> bool:
        return name in self.templates


SYSTEM_INSTRUCTION = (
    "You are an NPC in a 3D game world.\n"
    "{{personality}}\n\n"
    "{{state}}\n\n"
    "{{environment}}\n\n"
    "{{memory}}\n\n"
    "You can use tools to interact with the world. When you want to perform an action, "
    "use the appropriate tool function. When you want to speak, use the speak tool or reply "
    "with plain text.\n"
    "{{tool_catalog}}\n\n"
    "Respond naturally based on your personality, your reputation with the player, "
    "and the current situation."
)


DEFAULT_PROMPTS = PromptLibrary()

DEFAULT_PROMPTS.register(
    PromptTemplate(
        name="player_query",
        system=SYSTEM_INSTRUCTION,
        user='The player nearby said: "{{player_text}}"\n\nHow do you respond?',
        description="The player spoke within earshot.",
    )
)

DEFAULT_PROMPTS.register(
    PromptTemplate(
        name="environment_change",
        system=SYSTEM_INSTRUCTION,
        user="The environment changed: {{change}} ({{change_details}})\n\nHow do you react?",
        description="Weather or time-of-day transition.",
    )
)

DEFAULT_PROMPTS.register(
    PromptTemplate(
        name="hit",
        system=SYSTEM_INSTRUCTION,
        user="You were hit by {{thrower}}!\n\nHow do you react?",
        description="A projectile struck the NPC.",
    )
)

DEFAULT_PROMPTS.register(
    PromptTemplate(
        name="periodic",
        system=SYSTEM_INSTRUCTION,
        user="Periodic check: What do you want to do now?",
        description="Idle tick with no payload.",
    )
)
