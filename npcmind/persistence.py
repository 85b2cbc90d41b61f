"""
StorageStrategy interface for pluggable agent-memory storage.

Agent memory is stored as one record per agent under the key
``memory:<agentId>``; the value is the JSON form of ``MemoryRecord``. Storage
is deliberately a dumb key/value layer: the MemoryStore owns the schema and
the bounding rules, backends only move strings.

Three included implementations:
1. InMemoryStorage - Dict-based storage, data lost on exit (testing, prototyping)
2. JsonFileStorage - One human-readable JSON file per key (single-machine games)
3. PostgresStorage - JSONB rows, shared by several game servers

Every backend signals failure with PersistenceError so the memory layer can
log it and keep its in-memory state authoritative.

Usage pattern:
    storage = JsonFileStorage("npc_memory")
    await storage.initialize()
    await storage.save(memory_key("npc-1"), record_json)
    raw = await storage.load(memory_key("npc-1"))
    await storage.close()
"""

import asyncio
import json
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import quote, unquote

from .config import Config
from .errors import PersistenceError

try:  # Optional dependency (only needed for PostgresStorage)
    import asyncpg
except ImportError:  # pragma: no cover - asyncpg may not be installed for json/memory usage
    asyncpg = None


MEMORY_KEY_PREFIX = "memory:"


def memory_key(agent_id: str) -> str:
    """Return the storage key for an agent's memory record."""
    return f"{MEMORY_KEY_PREFIX}{agent_id}"


class StorageStrategy(ABC):
    """Abstract base class for memory storage backends.

    All methods are async so database and file backends never block the game
    loop; for InMemoryStorage the async is a no-op.

    Method categories:
    1. Lifecycle: initialize(), close()
    2. Records: load(), save(), delete()
    3. Introspection: keys()
    """

    @abstractmethod
    async def initialize(self) -> None:
        """
        Initialize the storage backend.

        Called once before any agent loads memory. Used to open pools,
        create directories or tables.

        Raises:
            PersistenceError: If initialization fails
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release connections and file handles."""
        pass

    @abstractmethod
    async def load(self, key: str) -> Optional[str]:
        """
        Read the raw value stored under ``key``.

        Returns:
            The stored JSON text, or None when nothing is stored

        Raises:
            PersistenceError: If the read fails
        """
        pass

    @abstractmethod
    async def save(self, key: str, value: str) -> None:
        """
        Replace the value stored under ``key``.

        Raises:
            PersistenceError: If the write fails
        """
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove ``key`` if present."""
        pass

    @abstractmethod
    async def keys(self) -> List[str]:
        """List stored keys (sorted)."""
        pass


class InMemoryStorage(StorageStrategy):
    """In-memory storage using a Python dict (no database, no files).

    Data lives as long as the process. Perfect for unit tests and for games
    that do not need NPCs to remember the player across restarts.
    """

    def __init__(self) -> None:
        self.records: Dict[str, str] = {}

    async def initialize(self) -> None:
        pass

    async def close(self) -> None:
        # Data is kept on close so callers can inspect it afterwards
        pass

    async def load(self, key: str) -> Optional[str]:
        return self.records.get(key)

    async def save(self, key: str, value: str) -> None:
        self.records[key] = value

    async def delete(self, key: str) -> None:
        self.records.pop(key, None)

    async def keys(self) -> List[str]:
        return sorted(self.records)


class JsonFileStorage(StorageStrategy):
    """File-based storage writing one pretty-printed JSON file per key.

    Directory structure:
    ```
    {base_path}/
      memory_npc-1.json
      memory_npc-2.json
    ```

    Writes go to a temporary file that is then renamed over the target, so a
    crash mid-write never leaves a truncated record behind. All file I/O runs
    in a worker thread (asyncio.to_thread).
    """

    def __init__(self, base_path: Path | str | None = None) -> None:
        self.base_path = Path(base_path) if base_path is not None else Config.MEMORY_DIR

    async def initialize(self) -> None:
        try:
            await asyncio.to_thread(self.base_path.mkdir, parents=True, exist_ok=True)
        except OSError as exc:
            raise PersistenceError(f"Cannot create storage directory {self.base_path}: {exc}") from exc

    async def close(self) -> None:
        return None

    async def load(self, key: str) -> Optional[str]:
        path = self._path_for(key)

        def _read() -> Optional[str]:
            if not path.exists():
                return None
            return path.read_text("utf-8")

        try:
            return await asyncio.to_thread(_read)
        except OSError as exc:
            raise PersistenceError(f"Cannot read {path}: {exc}") from exc
        except UnicodeDecodeError as exc:
            raise PersistenceError(f"{path} is not valid UTF-8: {exc}") from exc

    async def save(self, key: str, value: str) -> None:
        path = self._path_for(key)
        pretty = json.dumps(json.loads(value), indent=2)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_suffix(".json.tmp")
            tmp_path.write_text(pretty, "utf-8")
            os.replace(tmp_path, path)

        try:
            await asyncio.to_thread(_write)
        except OSError as exc:
            raise PersistenceError(f"Cannot write {path}: {exc}") from exc

    async def delete(self, key: str) -> None:
        path = self._path_for(key)
        try:
            await asyncio.to_thread(path.unlink, missing_ok=True)
        except OSError as exc:
            raise PersistenceError(f"Cannot delete {path}: {exc}") from exc

    async def keys(self) -> List[str]:
        if not self.base_path.exists():
            return []
        names = await asyncio.to_thread(lambda: [p.name for p in self.base_path.glob("*.json")])
        return sorted(self._key_for(name) for name in names)

    def _path_for(self, key: str) -> Path:
        # "memory:npc-1" -> "memory_npc-1.json", "memory:npc 1" -> "memory_npc%201.json".
        # Percent-encoding keeps the mapping one-to-one; the first "_" separates the prefix.
        prefix, sep, rest = key.partition(":")
        filename = _encode_part(prefix)
        if sep:
            filename = f"{filename}_{_encode_part(rest)}"
        return self.base_path / f"{filename}.json"

    @staticmethod
    def _key_for(filename: str) -> str:
        stem = filename[: -len(".json")]
        prefix, sep, rest = stem.partition("_")
        if not sep:
            return unquote(prefix)
        return f"{unquote(prefix)}:{unquote(rest)}"


def _encode_part(part: str) -> str:
    # quote() never escapes "_", which is reserved as the prefix separator
    return quote(part, safe="").replace("_", "%5F")


class PostgresStorage(StorageStrategy):
    """PostgreSQL-backed storage for games running several server processes.

    Schema (created by initialize()):
    - npc_memory(key TEXT PRIMARY KEY, value JSONB, updated_at TIMESTAMPTZ)

    Saves are upserts, so the row always holds the latest full record.
    """

    CREATE_TABLE = """
        CREATE TABLE IF NOT EXISTS npc_memory (
            key TEXT PRIMARY KEY,
            value JSONB NOT NULL,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """

    def __init__(self, database_url: Optional[str] = None):
        if asyncpg is None:  # pragma: no cover - handled during runtime when dependency missing
            raise ImportError(
                "asyncpg is required for PostgresStorage. Install with `pip install npcmind[postgres]`."
            )

        self.database_url = database_url or Config.DATABASE_URL
        self.pool: Optional["asyncpg.Pool"] = None

    async def initialize(self) -> None:
        try:
            self.pool = await asyncpg.create_pool(self.database_url)
            async with self.pool.acquire() as conn:
                await conn.execute(self.CREATE_TABLE)
        except (OSError, asyncpg.PostgresError) as exc:
            raise PersistenceError(f"Cannot initialize Postgres storage: {exc}") from exc

    async def close(self) -> None:
        if self.pool is not None:
            await self.pool.close()
            self.pool = None

    def _require_pool(self) -> "asyncpg.Pool":
        if self.pool is None:
            raise PersistenceError("Postgres storage is not initialized or has been closed")
        return self.pool

    async def load(self, key: str) -> Optional[str]:
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow("SELECT value::text AS value FROM npc_memory WHERE key = $1", key)
        except (OSError, asyncpg.PostgresError) as exc:
            raise PersistenceError(f"Cannot load {key}: {exc}") from exc
        return row["value"] if row else None

    async def save(self, key: str, value: str) -> None:
        pool = self._require_pool()
        query = """
            INSERT INTO npc_memory (key, value, updated_at)
            VALUES ($1, $2::jsonb, now())
            ON CONFLICT (key) DO UPDATE SET value = EXCLUDED.value, updated_at = now()
        """
        try:
            async with pool.acquire() as conn:
                await conn.execute(query, key, value)
        except (OSError, asyncpg.PostgresError) as exc:
            raise PersistenceError(f"Cannot save {key}: {exc}") from exc

    async def delete(self, key: str) -> None:
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                await conn.execute("DELETE FROM npc_memory WHERE key = $1", key)
        except (OSError, asyncpg.PostgresError) as exc:
            raise PersistenceError(f"Cannot delete {key}: {exc}") from exc

    async def keys(self) -> List[str]:
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch("SELECT key FROM npc_memory ORDER BY key")
        except (OSError, asyncpg.PostgresError) as exc:
            raise PersistenceError(f"Cannot list keys: {exc}") from exc
        return [row["key"] for row in rows]


def build_storage(backend: Optional[str] = None) -> StorageStrategy:
    """Return the storage backend named by ``backend`` (default: Config.MEMORY_BACKEND)."""

    name = (backend or Config.MEMORY_BACKEND).lower()
    if name == "memory":
        return InMemoryStorage()
    if name == "json":
        return JsonFileStorage(Config.MEMORY_DIR)
    if name == "postgres":
        return PostgresStorage(Config.DATABASE_URL)
    raise ValueError(f"Unknown memory backend '{name}'")
