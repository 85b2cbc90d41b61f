"""World collaborators consumed by the tool dispatcher.

The agent core never renders, animates or simulates physics. It talks to the
game through the ``WorldCollaborator`` protocol below: movement targets,
speech bubbles, inventories, projectiles, lamps, shelters and position
queries. ``SimpleWorld`` is a plain in-memory implementation used by the
examples and tests; a real game adapts its own scene graph to the protocol.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Literal, Optional, Protocol, Sequence, Tuple, TypeVar

from pydantic import BaseModel, Field

from .schemas import EnvironmentState, Vector3


class WorldObject(BaseModel):
    """A collectable rock, a lamp, or any other point of interest."""

    object_id: str
    position: Vector3
    kind: str = "object"
    # Lamp on/off state; ignored for other kinds
    active: bool = False


class Shelter(BaseModel):
    """Fixed landmark an agent can stand under when it rains."""

    kind: Literal["tree", "hut"]
    x: float
    z: float

    @property
    def position(self) -> Vector3:
        return Vector3(x=self.x, y=0.0, z=self.z)


DEFAULT_SHELTERS: Tuple[Shelter, ...] = (
    Shelter(kind="tree", x=-15, z=15),
    Shelter(kind="tree", x=20, z=-10),
    Shelter(kind="tree", x=-20, z=-15),
    Shelter(kind="tree", x=15, z=20),
    Shelter(kind="tree", x=-10, z=25),
    Shelter(kind="tree", x=25, z=10),
    Shelter(kind="tree", x=-25, z=-5),
    Shelter(kind="hut", x=10, z=10),
)


class Inventory:
    """Rock counter owned by one agent."""

    def __init__(self, rocks: int = 0) -> None:
        if rocks < 0:
            raise ValueError("inventory cannot start negative")
        self._rocks = rocks

    def count(self) -> int:
        return self._rocks

    def add(self, amount: int = 1) -> int:
        self._rocks += amount
        return self._rocks

    def remove(self, amount: int = 1) -> bool:
        """Take ``amount`` rocks out. Returns False (and changes nothing) if short."""
        if amount > self._rocks:
            return False
        self._rocks -= amount
        return True


class WorldCollaborator(Protocol):
    """Everything the tool dispatcher and context assembler need from the game."""

    def agent_position(self, agent_id: str) -> Vector3:
        ...

    def agent_state(self, agent_id: str) -> str:
        ...

    def set_movement_target(self, agent_id: str, target: Vector3) -> None:
        ...

    def speak(self, agent_id: str, text: str, duration_ms: int) -> None:
        ...

    def inventory(self, agent_id: str) -> Inventory:
        ...

    def throw_projectile(self, origin: Vector3, direction: Vector3, speed: float, thrower_id: str) -> bool:
        ...

    def available_rocks(self) -> Sequence[WorldObject]:
        ...

    def collect_rock(self, rock_id: str) -> bool:
        ...

    def lamps(self) -> Sequence[WorldObject]:
        ...

    def toggle_lamp(self, lamp_id: str) -> bool:
        ...

    def shelters(self) -> Sequence[Shelter]:
        ...

    def query_player_position(self) -> Optional[Vector3]:
        ...

    def npc_position(self, npc_id: str) -> Optional[Vector3]:
        ...

    def query_environment_state(self) -> EnvironmentState:
        ...


T = TypeVar("T", WorldObject, Shelter)


def nearest(origin: Vector3, candidates: Iterable[T]) -> Tuple[Optional[T], float]:
    """Return the candidate closest to ``origin`` on the ground plane, and its distance.

    Ties keep the first candidate. With no candidates returns ``(None, inf)``.
    """

    best: Optional[T] = None
    best_distance = float("inf")
    for candidate in candidates:
        distance = origin.horizontal_distance_to(candidate.position)
        if distance < best_distance:
            best = candidate
            best_distance = distance
    return best, best_distance


def nearest_shelter(origin: Vector3, shelters: Sequence[Shelter] = DEFAULT_SHELTERS) -> Tuple[Optional[Shelter], float]:
    return nearest(origin, shelters)


@dataclass
class Projectile:
    origin: Vector3
    direction: Vector3
    speed: float
    thrower_id: str


@dataclass
class SpeechLine:
    agent_id: str
    text: str
    duration_ms: int


@dataclass
class SimpleWorld:
    """In-memory world for demos and tests.

    With ``instant_travel`` an agent arrives the moment it is given a movement
    target; otherwise it stays put until ``arrive()`` is called.
    """

    instant_travel: bool = True
    player_position: Optional[Vector3] = None
    environment: EnvironmentState = field(default_factory=EnvironmentState)
    shelter_sites: Tuple[Shelter, ...] = DEFAULT_SHELTERS
    positions: Dict[str, Vector3] = field(default_factory=dict)
    states: Dict[str, str] = field(default_factory=dict)
    targets: Dict[str, Vector3] = field(default_factory=dict)
    inventories: Dict[str, Inventory] = field(default_factory=dict)
    rocks: Dict[str, WorldObject] = field(default_factory=dict)
    lamp_objects: Dict[str, WorldObject] = field(default_factory=dict)
    speech_log: List[SpeechLine] = field(default_factory=list)
    projectiles: List[Projectile] = field(default_factory=list)
    # When False, throw_projectile reports that the throw could not be issued
    accept_throws: bool = True

    # -- setup helpers ---------------------------------------------------

    def add_agent(self, agent_id: str, position: Vector3 | None = None, rocks: int = 0) -> None:
        self.positions[agent_id] = position or Vector3()
        self.states[agent_id] = "idle"
        self.inventories[agent_id] = Inventory(rocks)

    def remove_agent(self, agent_id: str) -> None:
        for registry in (self.positions, self.states, self.targets, self.inventories):
            registry.pop(agent_id, None)

    def add_rock(self, rock_id: str, position: Vector3) -> WorldObject:
        rock = WorldObject(object_id=rock_id, position=position, kind="rock")
        self.rocks[rock_id] = rock
        return rock

    def add_lamp(self, lamp_id: str, position: Vector3, active: bool = False) -> WorldObject:
        lamp = WorldObject(object_id=lamp_id, position=position, kind="lamp", active=active)
        self.lamp_objects[lamp_id] = lamp
        return lamp

    def arrive(self, agent_id: str) -> None:
        """Move ``agent_id`` to its pending movement target."""
        target = self.targets.pop(agent_id, None)
        if target is not None:
            self.positions[agent_id] = target
            self.states[agent_id] = "idle"

    def spoken_by(self, agent_id: str) -> List[str]:
        return [line.text for line in self.speech_log if line.agent_id == agent_id]

    # -- WorldCollaborator -------------------------------------------------

    def agent_position(self, agent_id: str) -> Vector3:
        return self.positions[agent_id]

    def agent_state(self, agent_id: str) -> str:
        return self.states.get(agent_id, "idle")

    def set_movement_target(self, agent_id: str, target: Vector3) -> None:
        if self.instant_travel:
            self.positions[agent_id] = target
            self.states[agent_id] = "idle"
        else:
            self.targets[agent_id] = target
            self.states[agent_id] = "walking"

    def speak(self, agent_id: str, text: str, duration_ms: int) -> None:
        self.speech_log.append(SpeechLine(agent_id=agent_id, text=text, duration_ms=duration_ms))

    def inventory(self, agent_id: str) -> Inventory:
        return self.inventories.setdefault(agent_id, Inventory())

    def throw_projectile(self, origin: Vector3, direction: Vector3, speed: float, thrower_id: str) -> bool:
        if not self.accept_throws:
            return False
        self.projectiles.append(Projectile(origin=origin, direction=direction, speed=speed, thrower_id=thrower_id))
        return True

    def available_rocks(self) -> Sequence[WorldObject]:
        return list(self.rocks.values())

    def collect_rock(self, rock_id: str) -> bool:
        return self.rocks.pop(rock_id, None) is not None

    def lamps(self) -> Sequence[WorldObject]:
        return list(self.lamp_objects.values())

    def toggle_lamp(self, lamp_id: str) -> bool:
        lamp = self.lamp_objects.get(lamp_id)
        if lamp is None:
            return False
        lamp.active = not lamp.active
        return True

    def shelters(self) -> Sequence[Shelter]:
        return self.shelter_sites

    def query_player_position(self) -> Optional[Vector3]:
        return self.player_position

    def npc_position(self, npc_id: str) -> Optional[Vector3]:
        return self.positions.get(npc_id)

    def query_environment_state(self) -> EnvironmentState:
        return self.environment


__all__ = [
    "DEFAULT_SHELTERS",
    "Inventory",
    "Projectile",
    "Shelter",
    "SimpleWorld",
    "SpeechLine",
    "WorldCollaborator",
    "WorldObject",
    "nearest",
    "nearest_shelter",
]
