"""
Key-value storage backends.

Both the account table and the transaction ledger sit on a ``KeyValueStore``.
The in-memory store is the default; the SQLite store keeps the same contract
on disk so either can back a repository without the state machine noticing.
"""

from abc import ABC, abstractmethod
from typing import Dict, Generic, List, Tuple, Type, TypeVar, Union
from pathlib import Path
import re
import sqlite3

from pydantic import BaseModel, ValidationError

from errors import NotFoundError, StorageError

K = TypeVar("K")
V = TypeVar("V")
M = TypeVar("M", bound=BaseModel)

_TABLE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class KeyValueStore(ABC, Generic[K, V]):
    @abstractmethod
    async def get(self, key: K) -> V:
        """Get value for key. Raises NotFoundError if the key is absent."""
        pass

    @abstractmethod
    async def set(self, key: K, value: V) -> None:
        """Insert or replace value for key."""
        pass

    @abstractmethod
    async def items(self) -> List[Tuple[K, V]]:
        """Return every stored (key, value) pair."""
        pass

    @abstractmethod
    async def count(self) -> int:
        """Get number of stored keys."""
        pass

    async def close(self) -> None:
        """Release backend resources (default no-op)."""
        pass


class InMemoryKeyValueStore(KeyValueStore[K, V]):
    def __init__(self):
        self.store: Dict[K, V] = {}

    async def get(self, key: K) -> V:
        try:
            return self.store[key]
        except KeyError:
            raise NotFoundError(key) from None

    async def set(self, key: K, value: V) -> None:
        self.store[key] = value

    async def items(self) -> List[Tuple[K, V]]:
        return list(self.store.items())

    async def count(self) -> int:
        return len(self.store)


class SqliteKeyValueStore(KeyValueStore[int, M]):
    """Durable store keyed by integer ids, values kept as model JSON."""

    def __init__(
        self,
        model: Type[M],
        db_path: Union[str, Path] = ":memory:",
        table: str = "kv",
        truncate: bool = False,
        commit_interval: int = 500
    ):
        if not _TABLE_NAME.match(table):
            raise StorageError(f"invalid table name: {table!r}")
        self.model = model
        self.db_path = str(db_path)
        self.table = table
        self.commit_interval = max(1, commit_interval)
        self._uncommitted = 0
        try:
            self._connection = sqlite3.connect(self.db_path)
            if self.db_path != ":memory:":
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")
            self._connection.execute(
                f"CREATE TABLE IF NOT EXISTS {table} (key INTEGER PRIMARY KEY, value TEXT NOT NULL)"
            )
            if truncate:
                self._connection.execute(f"DELETE FROM {table}")
            self._connection.commit()
        except sqlite3.Error as e:
            raise StorageError(f"cannot open {self.db_path}: {e}") from e

    async def get(self, key: int) -> M:
        try:
            row = self._connection.execute(
                f"SELECT value FROM {self.table} WHERE key = ?", (key,)
            ).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"read of key {key} failed: {e}") from e
        if row is None:
            raise NotFoundError(key)
        return self._decode(row[0])

    async def set(self, key: int, value: M) -> None:
        try:
            self._connection.execute(
                f"INSERT OR REPLACE INTO {self.table} (key, value) VALUES (?, ?)",
                (key, value.model_dump_json()),
            )
            self._uncommitted += 1
            if self._uncommitted >= self.commit_interval:
                self.commit()
        except sqlite3.Error as e:
            raise StorageError(f"write of key {key} failed: {e}") from e

    async def items(self) -> List[Tuple[int, M]]:
        try:
            rows = self._connection.execute(
                f"SELECT key, value FROM {self.table} ORDER BY key"
            ).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"scan of {self.table} failed: {e}") from e
        return [(key, self._decode(value)) for key, value in rows]

    async def count(self) -> int:
        try:
            return self._connection.execute(f"SELECT COUNT(*) FROM {self.table}").fetchone()[0]
        except sqlite3.Error as e:
            raise StorageError(f"count of {self.table} failed: {e}") from e

    def commit(self) -> None:
        """Flush buffered writes to disk. Reads on this store already see them."""
        try:
            self._connection.commit()
        except sqlite3.Error as e:
            raise StorageError(f"commit to {self.db_path} failed: {e}") from e
        self._uncommitted = 0

    async def close(self) -> None:
        try:
            self.commit()
        finally:
            self._connection.close()

    def _decode(self, raw: str) -> M:
        try:
            return self.model.model_validate_json(raw)
        except ValidationError as e:
            raise StorageError(f"corrupt {self.model.__name__} record in {self.table}") from e
