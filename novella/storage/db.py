from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from loguru import logger
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from novella.storage.base import Base, import_all_models


def build_sqlite_url(db_path: Path) -> str:
    resolved = db_path.resolve()
    return f"sqlite:///{resolved.as_posix()}"


class DatabaseService:
    def __init__(self, db_url: str):
        self.db_url = db_url
        self.engine: Engine = create_engine(db_url, future=True)
        self._sessionmaker = sessionmaker(self.engine, expire_on_commit=False)

    def init_models(self) -> None:
        import_all_models()
        Base.metadata.create_all(self.engine)

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Context manager for managing a session scope.

        Commits when the block finishes without error, rolls back and re-raises
        otherwise.

        Yields:
            Session: The session object.

        """

        with self._sessionmaker() as session:
            try:
                yield session
                session.commit()
            except Exception:
                logger.exception("An error occurred during the session scope.")
                session.rollback()
                raise

    def dispose(self) -> None:
        self.engine.dispose()


def open_sqlite(db_path: Path) -> DatabaseService:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    service = DatabaseService(build_sqlite_url(db_path))
    service.init_models()
    return service
