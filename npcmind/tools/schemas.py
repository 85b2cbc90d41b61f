"""Tool argument variants and the catalog advertised to the reasoning service.

Each tool is a pydantic model tagged by its ``name`` literal. A tool call
coming back from the reasoning service is validated against the discriminated
union before it reaches the dispatcher, so handlers receive typed arguments
and never poke at raw dicts.
"""

from __future__ import annotations

from typing import Annotated, Dict, List, Literal, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from ..errors import ToolValidationError, UnknownToolError
from ..schemas import ToolCall, ToolDeclaration


class ToolArgs(BaseModel):
    # Unexpected extra arguments from the model are dropped, not rejected
    model_config = ConfigDict(extra="ignore", frozen=True)


class MoveTo(ToolArgs):
    name: Literal["move_to"] = "move_to"
    x: float
    z: float
    y: float = 0.0


class Speak(ToolArgs):
    name: Literal["speak"] = "speak"
    message: str = Field(..., min_length=1)


class CollectNearestRock(ToolArgs):
    name: Literal["collect_nearest_rock"] = "collect_nearest_rock"


class InteractWithNearestLamp(ToolArgs):
    name: Literal["interact_with_nearest_lamp"] = "interact_with_nearest_lamp"


class ThrowRock(ToolArgs):
    name: Literal["throw_rock"] = "throw_rock"
    target_id: str = Field(..., min_length=1)


class GetPlayerPosition(ToolArgs):
    name: Literal["get_player_position"] = "get_player_position"


class HideFromRain(ToolArgs):
    name: Literal["hide_from_rain"] = "hide_from_rain"


ToolInvocation = Annotated[
    Union[
        MoveTo,
        Speak,
        CollectNearestRock,
        InteractWithNearestLamp,
        ThrowRock,
        GetPlayerPosition,
        HideFromRain,
    ],
    Field(discriminator="name"),
]

_INVOCATION_ADAPTER: TypeAdapter[ToolInvocation] = TypeAdapter(ToolInvocation)


_NO_PARAMETERS: Dict[str, object] = {"type": "object", "properties": {}, "required": []}

TOOL_CATALOG: Tuple[ToolDeclaration, ...] = (
    ToolDeclaration(
        name="move_to",
        description="Move to a specific position in the world",
        parameters={
            "type": "object",
            "properties": {
                "x": {"type": "number", "description": "X coordinate"},
                "y": {"type": "number", "description": "Y coordinate (usually 0 for ground level)"},
                "z": {"type": "number", "description": "Z coordinate"},
            },
            "required": ["x", "z"],
        },
    ),
    ToolDeclaration(
        name="speak",
        description="Speak a message (displayed as text above the NPC)",
        parameters={
            "type": "object",
            "properties": {"message": {"type": "string", "description": "The message to speak"}},
            "required": ["message"],
        },
    ),
    ToolDeclaration(
        name="collect_nearest_rock",
        description="Walk to the nearest collectable rock and pick it up",
        parameters=_NO_PARAMETERS,
    ),
    ToolDeclaration(
        name="interact_with_nearest_lamp",
        description="Walk to the nearest lamp and switch it on or off",
        parameters=_NO_PARAMETERS,
    ),
    ToolDeclaration(
        name="throw_rock",
        description="Throw a rock from your inventory at the player or another NPC",
        parameters={
            "type": "object",
            "properties": {
                "target_id": {
                    "type": "string",
                    "description": "\"player\" or the id of another NPC",
                }
            },
            "required": ["target_id"],
        },
    ),
    ToolDeclaration(
        name="get_player_position",
        description="Get the current player position and say it out loud",
        parameters=_NO_PARAMETERS,
    ),
    ToolDeclaration(
        name="hide_from_rain",
        description="Find shelter from rain (tree or hut) and move there",
        parameters=_NO_PARAMETERS,
    ),
)

TOOL_NAMES: Tuple[str, ...] = tuple(declaration.name for declaration in TOOL_CATALOG)


def _describe_issues(error: ValidationError) -> List[str]:
    issues = []
    for err in error.errors(include_url=False):
        loc = ".".join(str(part) for part in err.get("loc", ()) if part not in TOOL_NAMES) or "args"
        issues.append(f"{loc}: {err.get('msg', 'invalid')}")
    return issues


def validate_tool_call(call: ToolCall) -> ToolInvocation:
    """Turn a raw ToolCall into its typed variant.

    Raises:
        UnknownToolError: the name is not in the catalog
        ToolValidationError: required arguments are missing or malformed
    """

    if call.name not in TOOL_NAMES:
        raise UnknownToolError(call.name)
    try:
        return _INVOCATION_ADAPTER.validate_python({**call.args, "name": call.name})
    except ValidationError as exc:
        raise ToolValidationError(call.name, "; ".join(_describe_issues(exc))) from exc


__all__ = [
    "CollectNearestRock",
    "GetPlayerPosition",
    "HideFromRain",
    "InteractWithNearestLamp",
    "MoveTo",
    "Speak",
    "ThrowRock",
    "TOOL_CATALOG",
    "TOOL_NAMES",
    "ToolArgs",
    "ToolInvocation",
    "validate_tool_call",
]
