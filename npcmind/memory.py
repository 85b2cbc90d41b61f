"""
Bounded, persistent memory of player interactions for one agent.

Key responsibilities:
- Keep three append-only ring buffers (conversation, actions, player
  interactions) that never grow past their caps
- Maintain the reputation score as the exact running sum of recorded deltas
- Persist the full record after every mutation (durability over throughput)
- Hand a bounded summary to the context assembler

Only player-attributable facts are remembered: the player's chat turns, hits
by the player, and the reputation they imply. The agent's own utterances and
tool invocations are ephemeral.
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Any, Deque, Dict, List, Optional, Tuple

from pydantic import ValidationError

from .errors import PersistenceError
from .logging_utils import log_deterministic, log_error, log_info, preview
from .persistence import StorageStrategy, memory_key
from .schemas import (
    ActionEntry,
    ConversationEntry,
    MemoryRecord,
    MemorySummary,
    Personality,
    PlayerInteraction,
    utc_now,
)

CONVERSATION_CAP = 20
ACTION_CAP = 30
INTERACTION_CAP = 50

# Reputation is mutated only by these fixed deltas
HIT_DELTA = -10
SENTIMENT_DELTAS: Dict[str, int] = {
    "hostile": -5,
    "threatening": -5,
    "negative": -5,
    "friendly": 2,
    "positive": 2,
    "neutral": 1,
}

PLAYER_ID = "player"

# How much of each log the context assembler sees
SUMMARY_INTERACTIONS = 3
SUMMARY_CONVERSATIONS = 5
SUMMARY_ACTIONS = 2


def sentiment_delta(label: Optional[str]) -> int:
    """Reputation delta for a message with the given sentiment label."""
    return SENTIMENT_DELTAS.get((label or "neutral").lower(), SENTIMENT_DELTAS["neutral"])


def describe_attitude(reputation: int) -> str:
    """Map a reputation score to the attitude label used in prompts."""
    if reputation >= 20:
        return "trusting"
    if reputation >= 5:
        return "friendly"
    if reputation > -5:
        return "neutral"
    if reputation > -20:
        return "wary"
    return "hostile"


class MemoryStore:
    """Persistent, bounded memory for a single agent.

    Construct with ``MemoryStore.load()`` (or through ``MemoryRegistry``) so
    prior state is picked up from storage. Every mutating coroutine writes
    the full record back before returning; a failed write is logged and the
    in-memory state remains authoritative for the session.
    """

    def __init__(self, agent_id: str, storage: Optional[StorageStrategy] = None) -> None:
        self.agent_id = agent_id
        self.storage = storage
        self.personality: Optional[Personality] = None
        self.conversation_history: Deque[ConversationEntry] = deque(maxlen=CONVERSATION_CAP)
        self.action_memory: Deque[ActionEntry] = deque(maxlen=ACTION_CAP)
        self.player_interactions: Deque[PlayerInteraction] = deque(maxlen=INTERACTION_CAP)
        self.reputation = 0
        self.last_updated = utc_now()
        self.save_failures = 0

    # ------------------------------------------------------------------
    # Loading and serialization
    # ------------------------------------------------------------------

    @classmethod
    async def load(cls, agent_id: str, storage: Optional[StorageStrategy]) -> "MemoryStore":
        """Build a store from persisted state, falling back to an empty one."""

        store = cls(agent_id, storage)
        if storage is None:
            return store

        try:
            raw = await storage.load(memory_key(agent_id))
        except PersistenceError as exc:
            log_error(f"Could not load memory, starting fresh: {exc}", agent_id)
            return store

        if raw is None:
            log_info("No existing memory found, starting fresh", agent_id)
            return store

        try:
            record = MemoryRecord.model_validate_json(raw)
        except ValidationError as exc:
            log_error(f"Stored memory is corrupt, starting fresh ({exc.error_count()} issues)", agent_id)
            return store

        if record.agent_id != agent_id:
            log_error(f"Stored memory belongs to agent {record.agent_id!r}, starting fresh", agent_id)
            return store

        store.apply_record(record)
        log_info(
            f"Memory loaded: {len(store.conversation_history)} conversations, "
            f"{len(store.action_memory)} actions, {len(store.player_interactions)} interactions, "
            f"reputation {store.reputation}",
            agent_id,
        )
        return store

    def apply_record(self, record: MemoryRecord) -> None:
        """Replace in-memory state with ``record`` (buffers are re-bounded)."""
        self.personality = record.personality
        self.conversation_history = deque(record.conversation_history, maxlen=CONVERSATION_CAP)
        self.action_memory = deque(record.action_memory, maxlen=ACTION_CAP)
        self.player_interactions = deque(record.player_interactions, maxlen=INTERACTION_CAP)
        self.reputation = record.reputation
        self.last_updated = record.last_updated

    @classmethod
    def from_record(cls, record: MemoryRecord, storage: Optional[StorageStrategy] = None) -> "MemoryStore":
        store = cls(record.agent_id, storage)
        store.apply_record(record)
        return store

    def to_record(self) -> MemoryRecord:
        return MemoryRecord(
            agent_id=self.agent_id,
            personality=self.personality,
            conversation_history=list(self.conversation_history),
            action_memory=list(self.action_memory),
            player_interactions=list(self.player_interactions),
            reputation=self.reputation,
            last_updated=self.last_updated,
        )

    def to_json(self) -> str:
        return self.to_record().model_dump_json(by_alias=True)

    async def save(self) -> bool:
        """Persist the full record. Returns False (after logging) if the write failed."""

        self.last_updated = utc_now()
        if self.storage is None:
            return True
        try:
            await self.storage.save(memory_key(self.agent_id), self.to_json())
        except PersistenceError as exc:
            self.save_failures += 1
            log_error(f"Memory not saved, keeping in-memory state: {exc}", self.agent_id)
            return False
        return True

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def set_personality(self, personality: Personality) -> None:
        self.personality = personality
        await self.save()

    def get_personality(self) -> Optional[Personality]:
        return self.personality

    async def add_conversation(
        self, role: str, content: str, sentiment: Optional[str] = None
    ) -> Optional[ConversationEntry]:
        """Append a conversation turn. Agent turns are not remembered."""

        if role != "player":
            log_deterministic(f"Not persisting {role} turn: \"{preview(content, 50)}\"", self.agent_id)
            return None

        entry = ConversationEntry(role="player", content=content, sentiment=sentiment)
        self.conversation_history.append(entry)
        log_deterministic(
            f"Conversation now has {len(self.conversation_history)} entries "
            f"(latest: \"{preview(content, 50)}\")",
            self.agent_id,
        )
        await self.save()
        return entry

    async def add_action(self, action: str, details: Optional[Dict[str, Any]] = None) -> ActionEntry:
        """Append a player-attributable action (e.g. being hit by the player)."""

        entry = ActionEntry(action=action, details=dict(details or {}))
        self.action_memory.append(entry)
        log_deterministic(f"Action memory now has {len(self.action_memory)} entries ({action})", self.agent_id)
        await self.save()
        return entry

    async def record_hit(self, thrower_id: str) -> Optional[PlayerInteraction]:
        """Account for a projectile hit. Only hits by the player affect reputation."""

        if thrower_id != PLAYER_ID:
            log_deterministic(f"Hit by {thrower_id} is not a player interaction", self.agent_id)
            return None

        interaction = PlayerInteraction(type="hit", impact="hit", reputation_delta=HIT_DELTA)
        self.player_interactions.append(interaction)
        self.reputation += HIT_DELTA
        self.action_memory.append(ActionEntry(action="hit_by_player", details={"thrower": thrower_id}))
        log_deterministic(f"Hit by player, reputation {HIT_DELTA:+d} -> {self.reputation}", self.agent_id)
        await self.save()
        return interaction

    async def record_message(self, text: str, sentiment: Optional[str]) -> PlayerInteraction:
        """Account for a player message and remember it as a conversation turn."""

        label = (sentiment or "neutral").lower()
        delta = sentiment_delta(label)
        interaction = PlayerInteraction(type="message", impact=label, reputation_delta=delta)
        self.player_interactions.append(interaction)
        self.conversation_history.append(ConversationEntry(role="player", content=text, sentiment=label))
        self.reputation += delta
        log_deterministic(
            f"Player message ({label}), reputation {delta:+d} -> {self.reputation}",
            self.agent_id,
        )
        await self.save()
        return interaction

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def reputation_attitude(self) -> str:
        return describe_attitude(self.reputation)

    def recent_player_turns(self, limit: int) -> List[ConversationEntry]:
        if limit <= 0:
            return []
        return list(self.conversation_history)[-limit:]

    def get_context(self) -> MemorySummary:
        """Return the bounded summary used by the context assembler."""

        return MemorySummary(
            personality=self.personality,
            reputation=self.reputation,
            attitude=self.reputation_attitude(),
            recent_interactions=list(self.player_interactions)[-SUMMARY_INTERACTIONS:],
            recent_conversations=self.recent_player_turns(SUMMARY_CONVERSATIONS),
            recent_actions=list(self.action_memory)[-SUMMARY_ACTIONS:],
            total_conversations=len(self.conversation_history),
            total_actions=len(self.action_memory),
            total_interactions=len(self.player_interactions),
        )


class MemoryRegistry:
    """Process-wide cache guaranteeing each agent's memory is loaded once.

    Concurrent callers asking for the same agent share one load; later
    callers get the same MemoryStore instance, which stays in sync with
    storage because it writes through on every mutation. Stores are cached
    per storage backend, so a host using different storage never receives
    a store that writes somewhere else.
    """

    def __init__(self) -> None:
        self._stores: Dict[Tuple[str, Optional[StorageStrategy]], "asyncio.Future[MemoryStore]"] = {}
        self.load_count = 0

    async def get_or_load(self, agent_id: str, storage: Optional[StorageStrategy]) -> MemoryStore:
        cache_key = (agent_id, storage)
        future = self._stores.get(cache_key)
        if future is None:
            future = asyncio.get_running_loop().create_future()
            self._stores[cache_key] = future
            self.load_count += 1
            try:
                store = await MemoryStore.load(agent_id, storage)
            except asyncio.CancelledError:
                # Let a later caller retry instead of caching the failure
                del self._stores[cache_key]
                future.cancel()
                raise
            except Exception as exc:
                del self._stores[cache_key]
                future.set_exception(exc)
                # Mark retrieved so an unobserved failure is not reported twice
                future.exception()
                raise
            future.set_result(store)
            return store
        return await asyncio.shield(future)

    def loaded(self, agent_id: str, storage: Optional[StorageStrategy] = None) -> bool:
        """Whether a store for ``agent_id`` is ready (for any backend when ``storage`` is omitted)."""
        for (cached_id, cached_storage), future in self._stores.items():
            if cached_id != agent_id or (storage is not None and cached_storage is not storage):
                continue
            if future.done() and not future.cancelled():
                return True
        return False

    def forget(self, agent_id: str) -> None:
        """Drop the cached stores (used when an agent despawns for good)."""
        for cache_key in [key for key in self._stores if key[0] == agent_id]:
            del self._stores[cache_key]


DEFAULT_REGISTRY = MemoryRegistry()
