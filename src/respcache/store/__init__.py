"""Persistent store backends."""

from __future__ import annotations

from pathlib import Path

from .base import PersistentStore, StoredRecord
from .file import FileStore
from .memory import MemoryStore
from .sqlite import SQLiteStore

BACKENDS = ("file", "sqlite", "memory")


def build_store(backend: str, path: Path | str | None = None) -> PersistentStore:
    """Create a store for the configured backend name."""
    backend = (backend or "file").lower()
    if backend == "memory":
        return MemoryStore()
    if path is None:
        raise ValueError(f"Store backend {backend!r} requires a path")
    if backend == "file":
        return FileStore(path)
    if backend == "sqlite":
        return SQLiteStore(path)
    raise ValueError(f"Unsupported store backend: {backend}")


__all__ = ["BACKENDS", "PersistentStore", "StoredRecord", "FileStore", "MemoryStore", "SQLiteStore", "build_store"]
