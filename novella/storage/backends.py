"""Storage backends behind the story store.

A backend holds one opaque payload under one key: ``load()`` returns the bytes
last saved (or ``None`` when nothing was ever saved) and ``save()`` reports
whether the write went through instead of raising.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Protocol

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from novella.config.schema import StorageConfig
from novella.storage.db import DatabaseService, open_sqlite
from novella.storage.models import KeyValueEntry


class StorageBackend(Protocol):
    def load(self) -> bytes | None: ...

    def save(self, payload: bytes) -> bool: ...


class MemoryBackend:
    def __init__(self, payload: bytes | None = None, *, fail_saves: bool = False):
        self.payload = payload
        self.fail_saves = fail_saves
        self.saves = 0

    def load(self) -> bytes | None:
        return self.payload

    def save(self, payload: bytes) -> bool:
        if self.fail_saves:
            return False
        self.payload = payload
        self.saves += 1
        return True


class FileBackend:
    def __init__(self, path: Path):
        self.path = path

    def load(self) -> bytes | None:
        if not self.path.exists():
            return None
        try:
            return self.path.read_bytes()
        except OSError as exc:
            logger.error("Failed to read story file {}: {}", self.path, exc)
            return None

    def save(self, payload: bytes) -> bool:
        tmp_path = self.path.with_name(f"{self.path.name}.tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_bytes(payload)
            os.replace(tmp_path, self.path)
        except OSError as exc:
            logger.error("Failed to write story file {}: {}", self.path, exc)
            return False
        return True


class SQLAlchemyBackend:
    def __init__(self, db: DatabaseService, key: str):
        self.db = db
        self.key = key

    def load(self) -> bytes | None:
        with self.db.session_scope() as session:
            result = session.execute(select(KeyValueEntry.value).where(KeyValueEntry.key == self.key))
            value = result.scalar_one_or_none()
        return bytes(value) if value is not None else None

    def save(self, payload: bytes) -> bool:
        stmt = sqlite_insert(KeyValueEntry).values(key=self.key, value=payload)
        stmt = stmt.on_conflict_do_update(
            index_elements=[KeyValueEntry.key],
            set_={"value": stmt.excluded.value, "updated_at": func.now()},
        )
        try:
            with self.db.session_scope() as session:
                session.execute(stmt)
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to save key {}: {}", self.key, exc)
            return False
        return True

    def close(self) -> None:
        self.db.dispose()


def build_backend(config: StorageConfig) -> StorageBackend:
    if config.backend == "memory":
        return MemoryBackend()
    if config.backend == "file":
        return FileBackend(config.json_path)
    return SQLAlchemyBackend(open_sqlite(config.sqlite_path), config.storage_key)
