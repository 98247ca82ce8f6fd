"""Ordered list stores backing the drift tracker and weight learner.

Items are plain JSON-serialisable dicts. The store only appends, reads and
replaces lists; trimming to a cap is the caller's job.
"""
from __future__ import annotations

import json
import logging
import threading
from typing import Any, Protocol

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from dealscout.models import StoreEntry
from dealscout.utils import json_parse

log = logging.getLogger(__name__)


class ListStore(Protocol):
    def get(self, key: str) -> list[dict[str, Any]]: ...

    def append(self, key: str, item: dict[str, Any]) -> None: ...

    def set(self, key: str, items: list[dict[str, Any]]) -> None: ...


class InMemoryStore:
    """Process-local store. Reads return copies so callers never alias stored lists."""

    def __init__(self) -> None:
        self._data: dict[str, list[dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> list[dict[str, Any]]:
        with self._lock:
            return [dict(item) for item in self._data.get(key, [])]

    def append(self, key: str, item: dict[str, Any]) -> None:
        with self._lock:
            self._data[key] = [*self._data.get(key, []), dict(item)]

    def set(self, key: str, items: list[dict[str, Any]]) -> None:
        with self._lock:
            self._data[key] = [dict(item) for item in items]

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._data)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()


class SqlStore:
    """SQLAlchemy-backed store on the ``store_entries`` table (caller must commit)."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, key: str) -> list[dict[str, Any]]:
        rows = self.session.execute(
            select(StoreEntry.payload_json)
            .where(StoreEntry.key == key)
            .order_by(StoreEntry.position)
        ).scalars().all()
        return [json_parse(row, {}) for row in rows]

    def append(self, key: str, item: dict[str, Any]) -> None:
        last = self.session.execute(
            select(func.max(StoreEntry.position)).where(StoreEntry.key == key)
        ).scalar()
        self.session.add(StoreEntry(
            key=key, position=(last if last is not None else -1) + 1,
            payload_json=json.dumps(item),
        ))
        self.session.flush()

    def set(self, key: str, items: list[dict[str, Any]]) -> None:
        self.session.execute(delete(StoreEntry).where(StoreEntry.key == key))
        for position, item in enumerate(items):
            self.session.add(StoreEntry(key=key, position=position, payload_json=json.dumps(item)))
        self.session.flush()

    def clear(self) -> int:
        result = self.session.execute(delete(StoreEntry))
        return result.rowcount or 0
