"""
Durable key/value state for folio.

Every value lives under a plain string key and is stored as JSON text.
The backend is the source of truth, so other processes sharing it (CLI,
import script) are seen right away. Only writes the backend refused (quota,
disk, locked DB …) are held in a process-local mirror, so they still show up
in the next read until a later write to the same key goes through.
"""

from __future__ import annotations

import copy
import json
import logging
import sqlite3
from collections import defaultdict
from contextlib import closing
from pathlib import Path
from typing import Any, Callable, Iterable, Protocol

log = logging.getLogger(__name__)

Listener = Callable[[str, Any], None]

_TOMBSTONE = object()


class StorageWriteError(Exception):
    """The durable backend could not persist a value."""


###############################################################################
# Backends
###############################################################################
class Backend(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, raw: str) -> None: ...

    def delete(self, key: str) -> None: ...

    def keys(self) -> list[str]: ...

    def clear(self) -> None: ...


class MemoryBackend:
    def __init__(self, data: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(data or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, raw: str) -> None:
        self._data[key] = raw

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)

    def clear(self) -> None:
        self._data = {}


class SQLiteBackend:
    """
    One `kv` table, one row per key.
    A connection is opened for every call and closed right after, so the
    backend can be shared between requests without any thread bookkeeping.
    """

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS kv (
            key   TEXT PRIMARY KEY,
            value TEXT NOT NULL
        );
    """

    def __init__(self, path: str | Path) -> None:
        self.path = str(path)
        self._ready = False

    def _connect(self) -> sqlite3.Connection:
        db = sqlite3.connect(self.path)
        db.row_factory = sqlite3.Row
        return db

    def init_schema(self) -> None:
        with closing(self._connect()) as db:
            db.executescript(self.SCHEMA)
            db.commit()
        self._ready = True

    def _writable(self) -> sqlite3.Connection:
        if not self._ready:
            self.init_schema()
        return self._connect()

    def get(self, key: str) -> str | None:
        with closing(self._connect()) as db:
            try:
                row = db.execute("SELECT value FROM kv WHERE key=?", (key,)).fetchone()
            except sqlite3.OperationalError:
                # table not created yet ➜ nothing stored
                return None
        return row["value"] if row else None

    def set(self, key: str, raw: str) -> None:
        with closing(self._writable()) as db:
            db.execute(
                "INSERT INTO kv (key,value) VALUES (?,?) "
                "ON CONFLICT(key) DO UPDATE SET value=excluded.value",
                (key, raw),
            )
            db.commit()

    def delete(self, key: str) -> None:
        with closing(self._writable()) as db:
            db.execute("DELETE FROM kv WHERE key=?", (key,))
            db.commit()

    def keys(self) -> list[str]:
        with closing(self._connect()) as db:
            try:
                rows = db.execute("SELECT key FROM kv ORDER BY key").fetchall()
            except sqlite3.OperationalError:
                return []
        return [r["key"] for r in rows]

    def clear(self) -> None:
        with closing(self._writable()) as db:
            db.execute("DELETE FROM kv")
            db.commit()


# what a backend may throw at the write boundary
WRITE_ERRORS = (StorageWriteError, sqlite3.Error, OSError)


###############################################################################
# Store
###############################################################################
class PersistentStore:
    def __init__(self, backend: Backend | None = None) -> None:
        self.backend: Backend = backend if backend is not None else MemoryBackend()
        self._mirror: dict[str, object] = {}
        self._listeners: defaultdict[str, list[Listener]] = defaultdict(list)

    # -- raw strings --------------------------------------------------------
    def read_raw(self, key: str) -> str | None:
        if key in self._mirror:
            raw = self._mirror[key]
            return None if raw is _TOMBSTONE else raw  # type: ignore[return-value]
        return self.backend.get(key)

    def write_raw(self, key: str, raw: str) -> bool:
        try:
            self.backend.set(key, raw)
        except WRITE_ERRORS as exc:
            log.warning("could not persist %r: %s", key, exc)
            self._mirror[key] = raw
            return False
        self._mirror.pop(key, None)
        return True

    # -- JSON values --------------------------------------------------------
    def read(self, key: str, default: Any = None) -> Any:
        """
        Value stored under *key*, or a copy of *default*.
        Never writes anything back, and never raises on bad stored data.
        """
        raw = self.read_raw(key)
        if raw is None:
            return copy.deepcopy(default)
        try:
            return json.loads(raw)
        except ValueError:
            log.warning("stored value for %r is not valid JSON; using default", key)
            return copy.deepcopy(default)

    def write(self, key: str, value: Any) -> bool:
        """
        Persist *value* as JSON, last writer wins.
        Returns False when the backend refused the write; the value is still
        visible to this process and listeners are still notified.
        """
        raw = json.dumps(value, ensure_ascii=False)
        ok = self.write_raw(key, raw)
        self._notify(key, copy.deepcopy(value))
        return ok

    def remove(self, key: str) -> bool:
        ok = True
        try:
            self.backend.delete(key)
        except WRITE_ERRORS as exc:
            log.warning("could not remove %r: %s", key, exc)
            self._mirror[key] = _TOMBSTONE
            ok = False
        else:
            self._mirror.pop(key, None)
        self._notify(key, None)
        return ok

    def contains(self, key: str) -> bool:
        return self.read_raw(key) is not None

    def keys(self) -> list[str]:
        found = set(self.backend.keys())
        for k, raw in self._mirror.items():
            if raw is _TOMBSTONE:
                found.discard(k)
            else:
                found.add(k)
        return sorted(found)

    def clear(self) -> bool:
        """Drop every key (full reset)."""
        doomed = self.keys()
        ok = True
        try:
            self.backend.clear()
        except WRITE_ERRORS as exc:
            log.warning("could not clear store: %s", exc)
            ok = False
        self._mirror = {} if ok else {k: _TOMBSTONE for k in doomed}
        for k in doomed:
            self._notify(k, None)
        return ok

    # -- observers ----------------------------------------------------------
    def subscribe(self, key: str, listener: Listener) -> Callable[[], None]:
        """Call *listener(key, value)* after every write/remove of *key*."""
        self._listeners[key].append(listener)

        def unsubscribe() -> None:
            try:
                self._listeners[key].remove(listener)
            except ValueError:
                pass

        return unsubscribe

    def _notify(self, key: str, value: Any) -> None:
        for listener in list(self._listeners.get(key, ())):
            listener(key, value)

    # -- bindings -----------------------------------------------------------
    def bind(self, key: str, default: Any = None) -> "StoredValue":
        return StoredValue(self, key, default)

    def namespace(self, prefix: str) -> "Namespace":
        return Namespace(self, prefix)


class StoredValue:
    """
    One key seen as a value with a setter.

        name = store.bind("profile:name", "Anonymous")
        name.value          # stored value or "Anonymous"
        name.set("Ada")     # persisted + visible everywhere
    """

    def __init__(self, store: PersistentStore, key: str, default: Any = None) -> None:
        self.store = store
        self.key = key
        self.default = default

    @property
    def value(self) -> Any:
        return self.store.read(self.key, self.default)

    def set(self, value: Any) -> bool:
        return self.store.write(self.key, value)

    def update(self, fn: Callable[[Any], Any]) -> bool:
        return self.set(fn(self.value))

    def reset(self) -> bool:
        return self.store.remove(self.key)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self.store.subscribe(self.key, listener)

    def __repr__(self) -> str:
        return f"<StoredValue {self.key!r}>"


class Namespace:
    """Key view that prefixes every key with ``<prefix>:``."""

    def __init__(self, store: PersistentStore, prefix: str) -> None:
        self.store = store
        self.prefix = prefix.rstrip(":")

    def key(self, name: str) -> str:
        return f"{self.prefix}:{name}"

    def read(self, name: str, default: Any = None) -> Any:
        return self.store.read(self.key(name), default)

    def write(self, name: str, value: Any) -> bool:
        return self.store.write(self.key(name), value)

    def remove(self, name: str) -> bool:
        return self.store.remove(self.key(name))

    def bind(self, name: str, default: Any = None) -> StoredValue:
        return self.store.bind(self.key(name), default)

    def names(self) -> Iterable[str]:
        head = self.prefix + ":"
        return [k[len(head) :] for k in self.store.keys() if k.startswith(head)]
