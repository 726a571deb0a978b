"""Durable key/value cache persisted through SQLAlchemy."""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ocesync.exceptions import StorageError
from ocesync.storage.database import get_engine, init_db, make_session_factory, session_scope
from ocesync.storage.models import CacheEntry


class SqlCache:
    """Cache implementation backed by the `cache_entries` table.

    Values are JSON-serialized dicts. Calls are short local transactions, so
    they run inline inside the event loop.
    """

    def __init__(self, factory: sessionmaker[Session]) -> None:
        self._factory = factory

    @classmethod
    def from_url(cls, url: str) -> "SqlCache":
        engine = get_engine(url)
        init_db(engine)
        return cls(make_session_factory(engine))

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            with session_scope(self._factory) as session:
                entry = session.get(CacheEntry, key)
                raw = entry.value if entry is not None else None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed reading cache key {key}") from e
        if raw is None:
            return None
        return json.loads(raw)

    async def set(self, key: str, value: Dict[str, Any]) -> None:
        try:
            with session_scope(self._factory) as session:
                entry = session.get(CacheEntry, key)
                if entry is None:
                    session.add(CacheEntry(key=key, value=json.dumps(value)))
                else:
                    entry.value = json.dumps(value)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed writing cache key {key}") from e
