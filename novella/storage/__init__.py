"""Durable key-value backends for the story collection."""

from novella.storage.backends import FileBackend, MemoryBackend, SQLAlchemyBackend, StorageBackend, build_backend

__all__ = ["FileBackend", "MemoryBackend", "SQLAlchemyBackend", "StorageBackend", "build_backend"]
