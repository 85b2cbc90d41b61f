"""Execute validated tool calls against the world.

Dispatch rules:
- Calls run strictly in the order the reasoning service returned them
- An unknown tool or bad arguments skips that call only
- An exception inside a tool is logged and does not stop later calls
- Nothing here writes to agent memory: the agent's own actions are ephemeral

Two-phase tools (rock pickup, lamp toggle) walk first and finish in a
background task after a fixed travel estimate. The completion task re-checks
distance instead of assuming arrival, and every such task is tracked per agent
so shutting the agent down cancels it.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Literal, Optional, Sequence, Set

from ..config import Config
from ..errors import ToolExecutionError, ToolValidationError, UnknownToolError
from ..logging_utils import log_deterministic, log_error, log_success, preview
from ..schemas import ToolCall, Vector3
from ..world import WorldCollaborator, WorldObject, nearest
from .schemas import (
    CollectNearestRock,
    GetPlayerPosition,
    HideFromRain,
    InteractWithNearestLamp,
    MoveTo,
    Speak,
    ThrowRock,
    ToolInvocation,
    validate_tool_call,
)

ROCK_PICKUP_RANGE = 2.0
LAMP_INTERACTION_RANGE = 3.0
THROW_SPEED = 15.0
THROW_ORIGIN_HEIGHT = 1.5
PLAYER_TARGET_HEIGHT = 1.6
NPC_TARGET_HEIGHT = 1.0
SHELTER_STANDOFF = 1.5

SPEECH_BASE_MS = 2000
SPEECH_PER_CHAR_MS = 60
SPEECH_MAX_MS = 8000

PLAYER_TARGET = "player"
NO_ROCKS_MESSAGE = "I don't have any rocks to throw."


def speech_duration_ms(text: str) -> int:
    """How long a speech bubble stays up: longer text, longer display."""
    return max(SPEECH_BASE_MS, min(SPEECH_MAX_MS, SPEECH_BASE_MS + SPEECH_PER_CHAR_MS * len(text)))


@dataclass(slots=True)
class ToolOutcome:
    """Result of one tool call."""

    name: str
    status: Literal["ok", "skipped", "failed"]
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.status == "ok"


class ToolDispatcher:
    """Registry of tools bound to one world, shared by every agent in it."""

    def __init__(self, world: WorldCollaborator, *, travel_delay: Optional[float] = None) -> None:
        self.world = world
        self.travel_delay = Config.TRAVEL_DELAY_SECONDS if travel_delay is None else travel_delay
        self._pending: Dict[str, Set[asyncio.Task]] = {}
        self._handlers: Dict[str, Callable[[str, ToolInvocation], str]] = {
            "move_to": self._move_to,
            "speak": self._speak,
            "collect_nearest_rock": self._collect_nearest_rock,
            "interact_with_nearest_lamp": self._interact_with_nearest_lamp,
            "throw_rock": self._throw_rock,
            "get_player_position": self._get_player_position,
            "hide_from_rain": self._hide_from_rain,
        }

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def dispatch(self, agent_id: str, calls: Sequence[ToolCall]) -> List[ToolOutcome]:
        """Execute ``calls`` in order and report one outcome per call."""

        if calls:
            log_deterministic(f"Executing {len(calls)} tool call(s)", agent_id)
        outcomes = []
        for call in calls:
            outcomes.append(self.execute(agent_id, call))
            # Let scheduled completions and other agents run between calls
            await asyncio.sleep(0)
        return outcomes

    def execute(self, agent_id: str, call: ToolCall) -> ToolOutcome:
        try:
            invocation = validate_tool_call(call)
        except UnknownToolError as exc:
            log_error(f"Unknown tool '{exc.tool_name}', skipping", agent_id)
            return ToolOutcome(call.name, "skipped", str(exc))
        except ToolValidationError as exc:
            log_error(f"Invalid arguments for {exc}, skipping", agent_id)
            return ToolOutcome(call.name, "skipped", str(exc))

        log_deterministic(f"Executing tool: {call.name} {call.args}", agent_id)
        try:
            detail = self._handlers[invocation.name](agent_id, invocation)
        except ToolExecutionError as exc:
            log_error(str(exc), agent_id)
            return ToolOutcome(call.name, "failed", str(exc.underlying))
        except Exception as exc:  # noqa: BLE001 - one broken tool must not stop its siblings
            error = ToolExecutionError(call.name, exc)
            log_error(str(error), agent_id)
            return ToolOutcome(call.name, "failed", str(exc))

        log_success(f"Tool {call.name} executed: {detail}", agent_id)
        return ToolOutcome(call.name, "ok", detail)

    # ------------------------------------------------------------------
    # Background completions
    # ------------------------------------------------------------------

    def _schedule(self, agent_id: str, completion: Callable[[], Awaitable[None]], label: str) -> asyncio.Task:
        async def _run() -> None:
            await asyncio.sleep(self.travel_delay)
            await completion()

        task = asyncio.get_running_loop().create_task(_run(), name=f"{agent_id}:{label}")
        tasks = self._pending.setdefault(agent_id, set())
        tasks.add(task)
        task.add_done_callback(lambda done: self._finished(agent_id, done, label))
        return task

    def _finished(self, agent_id: str, task: asyncio.Task, label: str) -> None:
        tasks = self._pending.get(agent_id)
        if tasks is not None:
            tasks.discard(task)
            if not tasks:
                self._pending.pop(agent_id, None)
        if task.cancelled():
            log_deterministic(f"Pending {label} cancelled", agent_id)
            return
        exc = task.exception()
        if exc is not None:
            log_error(f"Pending {label} failed: {exc}", agent_id)

    def pending_count(self, agent_id: Optional[str] = None) -> int:
        if agent_id is not None:
            return len(self._pending.get(agent_id, ()))
        return sum(len(tasks) for tasks in self._pending.values())

    async def wait_pending(self, agent_id: Optional[str] = None) -> None:
        """Wait for outstanding completions (all agents when ``agent_id`` is None)."""

        if agent_id is not None:
            tasks = list(self._pending.get(agent_id, ()))
        else:
            tasks = [task for group in self._pending.values() for task in group]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def cancel_pending(self, agent_id: str) -> None:
        tasks = list(self._pending.pop(agent_id, ()))
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def close(self) -> None:
        for agent_id in list(self._pending):
            await self.cancel_pending(agent_id)

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    def say(self, agent_id: str, text: str) -> None:
        """Show ``text`` above the agent. Used by tools and for free-text replies."""
        log_deterministic(f"Speaking: \"{preview(text, 100)}\"", agent_id)
        self.world.speak(agent_id, text, speech_duration_ms(text))

    def _walk_to(self, agent_id: str, target: Vector3) -> None:
        log_deterministic(f"Moving to {target.describe()}", agent_id)
        self.world.set_movement_target(agent_id, target)

    # ------------------------------------------------------------------
    # Tool handlers
    # ------------------------------------------------------------------

    def _move_to(self, agent_id: str, args: MoveTo) -> str:
        target = Vector3(x=args.x, y=args.y, z=args.z)
        self._walk_to(agent_id, target)
        return f"moving to {target.describe()}"

    def _speak(self, agent_id: str, args: Speak) -> str:
        self.say(agent_id, args.message)
        return f"said \"{preview(args.message, 40)}\""

    def _collect_nearest_rock(self, agent_id: str, args: CollectNearestRock) -> str:
        position = self.world.agent_position(agent_id)
        rock, distance = nearest(position, self.world.available_rocks())
        if rock is None:
            log_deterministic("No rocks available", agent_id)
            return "no rocks available"

        if distance < ROCK_PICKUP_RANGE:
            return self._pick_up(agent_id, rock)

        log_deterministic(f"Nearest rock {rock.object_id} is {distance:.2f} away, walking there", agent_id)
        self._walk_to(agent_id, Vector3(x=rock.position.x, y=0.0, z=rock.position.z))

        async def _complete() -> None:
            current = self._find(self.world.available_rocks(), rock.object_id)
            here = self.world.agent_position(agent_id)
            if current is None:
                log_deterministic(f"Rock {rock.object_id} is gone, nothing to collect", agent_id)
                return
            if here.horizontal_distance_to(current.position) >= ROCK_PICKUP_RANGE:
                log_deterministic(f"Arrival not confirmed at rock {rock.object_id}, not collecting", agent_id)
                return
            self._pick_up(agent_id, current)

        self._schedule(agent_id, _complete, f"rock pickup {rock.object_id}")
        return f"walking to rock {rock.object_id}"

    def _pick_up(self, agent_id: str, rock: WorldObject) -> str:
        if not self.world.collect_rock(rock.object_id):
            log_deterministic(f"Rock {rock.object_id} was already taken", agent_id)
            return f"rock {rock.object_id} already taken"
        total = self.world.inventory(agent_id).add(1)
        log_success(f"Collected rock {rock.object_id} ({total} in inventory)", agent_id)
        return f"collected rock {rock.object_id}"

    def _interact_with_nearest_lamp(self, agent_id: str, args: InteractWithNearestLamp) -> str:
        position = self.world.agent_position(agent_id)
        lamp, distance = nearest(position, self.world.lamps())
        if lamp is None:
            log_deterministic("No lamps available", agent_id)
            return "no lamps available"

        if distance < LAMP_INTERACTION_RANGE:
            return self._toggle(agent_id, lamp)

        log_deterministic(f"Nearest lamp {lamp.object_id} is {distance:.2f} away, walking there", agent_id)
        self._walk_to(agent_id, Vector3(x=lamp.position.x, y=0.0, z=lamp.position.z))

        async def _complete() -> None:
            current = self._find(self.world.lamps(), lamp.object_id)
            here = self.world.agent_position(agent_id)
            if current is None:
                log_deterministic(f"Lamp {lamp.object_id} is gone", agent_id)
                return
            if here.horizontal_distance_to(current.position) >= LAMP_INTERACTION_RANGE:
                log_deterministic(f"Arrival not confirmed at lamp {lamp.object_id}, not toggling", agent_id)
                return
            self._toggle(agent_id, current)

        self._schedule(agent_id, _complete, f"lamp toggle {lamp.object_id}")
        return f"walking to lamp {lamp.object_id}"

    def _toggle(self, agent_id: str, lamp: WorldObject) -> str:
        if not self.world.toggle_lamp(lamp.object_id):
            return f"lamp {lamp.object_id} did not respond"
        log_success(f"Toggled lamp {lamp.object_id}", agent_id)
        return f"toggled lamp {lamp.object_id}"

    def _throw_rock(self, agent_id: str, args: ThrowRock) -> str:
        inventory = self.world.inventory(agent_id)
        if inventory.count() < 1:
            log_deterministic("No rocks in inventory, refusing to throw", agent_id)
            self.say(agent_id, NO_ROCKS_MESSAGE)
            return "refused: no rocks in inventory"

        if args.target_id == agent_id:
            raise ToolExecutionError("throw_rock", ValueError("cannot throw a rock at yourself"))

        target = self._resolve_target(args.target_id)
        if target is None:
            raise ToolExecutionError("throw_rock", LookupError(f"unknown target '{args.target_id}'"))

        position = self.world.agent_position(agent_id)
        origin = position.plus(Vector3(y=THROW_ORIGIN_HEIGHT))
        direction = target.minus(origin).normalized()

        if not inventory.remove(1):
            raise ToolExecutionError("throw_rock", RuntimeError("inventory changed before the throw"))
        try:
            thrown = self.world.throw_projectile(origin, direction, THROW_SPEED, agent_id)
        except Exception:
            inventory.add(1)
            raise
        if not thrown:
            inventory.add(1)
            raise ToolExecutionError("throw_rock", RuntimeError("throw could not be issued, rock refunded"))

        log_success(f"Threw a rock at {args.target_id} ({inventory.count()} left)", agent_id)
        return f"threw rock at {args.target_id}"

    def _resolve_target(self, target_id: str) -> Optional[Vector3]:
        if target_id == PLAYER_TARGET:
            player = self.world.query_player_position()
            if player is None:
                return None
            # A ground-level report means "feet"; aim at head height instead
            if player.y == 0:
                return Vector3(x=player.x, y=PLAYER_TARGET_HEIGHT, z=player.z)
            return player
        npc = self.world.npc_position(target_id)
        if npc is None:
            return None
        return npc.plus(Vector3(y=NPC_TARGET_HEIGHT))

    def _get_player_position(self, agent_id: str, args: GetPlayerPosition) -> str:
        player = self.world.query_player_position()
        if player is None:
            message = "I can't see the player right now."
        else:
            message = f"Player is at {player.describe()}"
        self.say(agent_id, message)
        return message

    def _hide_from_rain(self, agent_id: str, args: HideFromRain) -> str:
        position = self.world.agent_position(agent_id)
        shelter, distance = nearest(position, self.world.shelters())
        if shelter is None:
            log_deterministic("No shelter found", agent_id)
            return "no shelter found"

        log_deterministic(f"Found nearest shelter: {shelter.kind} at distance {distance:.2f}", agent_id)
        base = shelter.position
        away = Vector3(x=position.x - base.x, y=0.0, z=position.z - base.z)
        if away.length() > 0:
            target = base.plus(away.normalized().scaled(SHELTER_STANDOFF))
        else:
            target = base
        self._walk_to(agent_id, target)
        self.say(agent_id, f"Going to {shelter.kind} for shelter")
        return f"heading to {shelter.kind} at {base.describe()}"

    @staticmethod
    def _find(objects: Sequence[WorldObject], object_id: str) -> Optional[WorldObject]:
        for candidate in objects:
            if candidate.object_id == object_id:
                return candidate
        return None


__all__ = [
    "LAMP_INTERACTION_RANGE",
    "NO_ROCKS_MESSAGE",
    "ROCK_PICKUP_RANGE",
    "THROW_SPEED",
    "ToolDispatcher",
    "ToolOutcome",
    "speech_duration_ms",
]
