from __future__ import annotations

from pathlib import Path

from novella.config.schema import StorageConfig
from novella.storage.backends import FileBackend, MemoryBackend, SQLAlchemyBackend, build_backend
from novella.storage.db import open_sqlite
from novella.store.state import StoryStore


def test_file_backend_round_trip(tmp_path: Path) -> None:
    backend = FileBackend(tmp_path / "nested" / "stories.json")

    assert backend.load() is None
    assert backend.save(b"[1,2,3]") is True
    assert backend.load() == b"[1,2,3]"
    assert not (tmp_path / "nested" / "stories.json.tmp").exists()


def test_file_backend_reports_write_failure(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    backend = FileBackend(blocker / "stories.json")

    assert backend.save(b"[]") is False


def test_sqlalchemy_backend_upserts_single_key(tmp_path: Path) -> None:
    backend = SQLAlchemyBackend(open_sqlite(tmp_path / "novella.db"), "novella_stories")
    try:
        assert backend.load() is None
        assert backend.save(b"first") is True
        assert backend.save(b"second") is True
        assert backend.load() == b"second"
    finally:
        backend.close()


def test_sqlalchemy_backend_keys_are_isolated(tmp_path: Path) -> None:
    db = open_sqlite(tmp_path / "novella.db")
    first = SQLAlchemyBackend(db, "a")
    second = SQLAlchemyBackend(db, "b")
    try:
        first.save(b"alpha")
        assert second.load() is None
    finally:
        db.dispose()


def test_build_backend_selects_kind(tmp_path: Path) -> None:
    assert isinstance(build_backend(StorageConfig(backend="memory")), MemoryBackend)

    file_backend = build_backend(StorageConfig(backend="file", json_path=tmp_path / "s.json"))
    assert isinstance(file_backend, FileBackend)

    sqlite_backend = build_backend(StorageConfig(backend="sqlite", sqlite_path=tmp_path / "db" / "n.db"))
    assert isinstance(sqlite_backend, SQLAlchemyBackend)
    sqlite_backend.close()


def test_store_persists_through_sqlite(tmp_path: Path) -> None:
    db_path = tmp_path / "novella.db"
    backend = SQLAlchemyBackend(open_sqlite(db_path), "novella_stories")
    store = StoryStore(backend)
    store.load()
    story = store.create_story("id")
    store.create_chapter(story.id)
    backend.close()

    reopened = SQLAlchemyBackend(open_sqlite(db_path), "novella_stories")
    try:
        reloaded = StoryStore(reopened)
        reloaded.load()
        assert reloaded.get(story.id).chapters[0].title == "Bab 1"
    finally:
        reopened.close()


def test_file_backend_reports_read_failure(tmp_path: Path) -> None:
    directory = tmp_path / "stories.json"
    directory.mkdir()
    backend = FileBackend(directory)

    assert backend.load() is None

    store = StoryStore(backend)
    assert store.load() == []
