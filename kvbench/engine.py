from __future__ import annotations

import contextlib
import enum
import logging
import re
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional

LOGGER = logging.getLogger("kvbench.engine")

STATS_PROPERTY = "kvbench.stats"

_CONTAINER_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class EngineError(RuntimeError):
    """Raised when the storage engine reports a non-success outcome."""


class NotFoundError(EngineError):
    """Raised by point lookups for keys that are not present."""


class Durability(enum.Enum):
    OFF = "off"
    FULL = "full"


@dataclass(frozen=True)
class EngineOptions:
    durability: Durability = Durability.OFF
    lock_mode: str = "exclusive"
    cache_size: int = 4 * 1024 * 1024
    page_size: int = 4096


@dataclass(frozen=True)
class Container:
    name: str
    table: str


class Cursor:
    """Forward cursor over a container, ordered by key."""

    def __init__(self, connection: sqlite3.Connection, container: Container) -> None:
        self._connection = connection
        self._container = container
        self._rows: sqlite3.Cursor | None = None
        self._current: tuple[bytes, bytes] | None = None

    def seek_first(self) -> None:
        self.close()
        with _translate_errors():
            self._rows = self._connection.execute(
                f'SELECT key, value FROM "{self._container.table}" ORDER BY key'
            )
            self._current = self._rows.fetchone()

    def next(self) -> None:
        if self._rows is None or self._current is None:
            raise EngineError("cursor is not positioned on an entry")
        with _translate_errors():
            self._current = self._rows.fetchone()

    def is_valid(self) -> bool:
        return self._current is not None

    def key(self) -> bytes:
        if self._current is None:
            raise EngineError("cursor is not positioned on an entry")
        return bytes(self._current[0])

    def value(self) -> bytes:
        if self._current is None:
            raise EngineError("cursor is not positioned on an entry")
        return bytes(self._current[1])

    def close(self) -> None:
        if self._rows is not None:
            self._rows.close()
        self._rows = None
        self._current = None


class Transaction:
    def __init__(self, connection: sqlite3.Connection, writable: bool) -> None:
        self._connection = connection
        self._writable = writable

    @property
    def writable(self) -> bool:
        return self._writable

    def create_or_open(self, name: str) -> Container:
        container = _container_for(name)
        if not self._writable:
            return self.open(name)
        with _translate_errors():
            self._connection.execute(
                f'CREATE TABLE IF NOT EXISTS "{container.table}" '
                "(key BLOB PRIMARY KEY, value BLOB NOT NULL) WITHOUT ROWID"
            )
        return container

    def open(self, name: str) -> Container:
        container = _container_for(name)
        with _translate_errors():
            row = self._connection.execute(
                "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?",
                (container.table,),
            ).fetchone()
        if row is None:
            raise NotFoundError(f"container {name!r} does not exist")
        return container

    def put(self, container: Container, key: bytes, value: bytes) -> None:
        if not self._writable:
            raise EngineError("put issued inside a read-only transaction")
        with _translate_errors():
            self._connection.execute(
                f'INSERT OR REPLACE INTO "{container.table}" (key, value) VALUES (?, ?)',
                (key, value),
            )

    def get(self, container: Container, key: bytes) -> bytes:
        with _translate_errors():
            row = self._connection.execute(
                f'SELECT value FROM "{container.table}" WHERE key = ?', (key,)
            ).fetchone()
        if row is None:
            raise NotFoundError(f"key {bytes(key)!r} not found")
        return bytes(row[0])

    def new_cursor(self, container: Container) -> Cursor:
        return Cursor(self._connection, container)


class _TransactionScope(contextlib.AbstractContextManager):
    def __init__(self, engine: "Engine", writable: bool) -> None:
        self._engine = engine
        self._writable = writable
        self._txn: Transaction | None = None

    def __enter__(self) -> Transaction:
        self._txn = self._engine._begin(self._writable)
        return self._txn

    def __exit__(self, exc_type, exc, tb) -> None:
        self._txn = None
        if exc_type is None:
            self._engine._commit()
        else:
            self._engine._rollback()


class Engine:
    """SQLite-backed engine running in WAL mode with manual checkpoints."""

    name = "SQLite"

    def __init__(self, connection: sqlite3.Connection, path: Path, options: EngineOptions) -> None:
        self._connection = connection
        self._path = path
        self._options = options
        self._in_transaction = False

    @property
    def path(self) -> Path:
        return self._path

    @property
    def options(self) -> EngineOptions:
        return self._options

    @property
    def version(self) -> str:
        return sqlite3.sqlite_version

    def update(self) -> contextlib.AbstractContextManager[Transaction]:
        return _TransactionScope(self, writable=True)

    def view(self) -> contextlib.AbstractContextManager[Transaction]:
        return _TransactionScope(self, writable=False)

    def checkpoint(self, wait: bool = True) -> None:
        if self._in_transaction:
            raise EngineError("checkpoint requested inside a transaction")
        mode = "FULL" if wait else "PASSIVE"
        with _translate_errors():
            busy, log_frames, checkpointed = self._connection.execute(
                f"PRAGMA wal_checkpoint({mode})"
            ).fetchone()
        if wait and busy:
            raise EngineError("checkpoint could not complete: database is busy")
        LOGGER.debug("checkpoint(%s): %d/%d frames", mode, checkpointed, log_frames)

    def get_property(self, name: str) -> Optional[str]:
        if name != STATS_PROPERTY:
            return None
        pragmas = (
            "page_size",
            "page_count",
            "freelist_count",
            "cache_size",
            "journal_mode",
            "synchronous",
            "locking_mode",
        )
        lines = []
        with _translate_errors():
            for pragma in pragmas:
                (value,) = self._connection.execute(f"PRAGMA {pragma}").fetchone()
                lines.append(f"{pragma:<16}{value}")
        return "\n".join(lines)

    def close(self) -> None:
        if self._in_transaction:
            self._rollback()
        with _translate_errors():
            self._connection.close()

    def _begin(self, writable: bool) -> Transaction:
        if self._in_transaction:
            raise EngineError("a transaction is already open")
        with _translate_errors():
            self._connection.execute("BEGIN IMMEDIATE" if writable else "BEGIN DEFERRED")
        self._in_transaction = True
        return Transaction(self._connection, writable)

    def _commit(self) -> None:
        self._in_transaction = False
        try:
            self._connection.execute("COMMIT")
        except sqlite3.Error as exc:
            if self._connection.in_transaction:
                with contextlib.suppress(sqlite3.Error):
                    self._connection.execute("ROLLBACK")
            raise EngineError(f"commit failed: {exc}") from exc

    def _rollback(self) -> None:
        self._in_transaction = False
        with _translate_errors():
            self._connection.execute("ROLLBACK")


def open_engine(options: EngineOptions, path: Path | str) -> Engine:
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise EngineError(f"open error ({path}): {exc}") from exc
    synchronous = "FULL" if options.durability is Durability.FULL else "OFF"
    with _translate_errors(f"open error ({path})"):
        connection = sqlite3.connect(str(path), isolation_level=None)
        # page_size must be set before WAL mode creates the file layout
        connection.execute(f"PRAGMA page_size = {int(options.page_size)}")
        connection.execute(f"PRAGMA locking_mode = {options.lock_mode.upper()}")
        connection.execute("PRAGMA journal_mode = WAL")
        connection.execute(f"PRAGMA synchronous = {synchronous}")
        connection.execute(f"PRAGMA cache_size = {-max(options.cache_size // 1024, 1)}")
        connection.execute("PRAGMA wal_autocheckpoint = 0")
    LOGGER.info(
        "Opened %s (durability=%s, cache=%d bytes, page_size=%d)",
        path,
        options.durability.value,
        options.cache_size,
        options.page_size,
    )
    return Engine(connection, path, options)


def _container_for(name: str) -> Container:
    if not _CONTAINER_NAME.match(name):
        raise EngineError(f"invalid container name {name!r}")
    return Container(name=name, table=f"bucket_{name}")


@contextlib.contextmanager
def _translate_errors(context: str | None = None) -> Iterator[None]:
    try:
        yield
    except sqlite3.Error as exc:
        message = f"{context}: {exc}" if context else str(exc)
        raise EngineError(message) from exc


__all__ = [
    "STATS_PROPERTY",
    "Container",
    "Cursor",
    "Durability",
    "Engine",
    "EngineError",
    "EngineOptions",
    "NotFoundError",
    "Transaction",
    "open_engine",
]
