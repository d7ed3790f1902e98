"""Directory-backed store with atomic per-entry files."""

from __future__ import annotations

import hashlib
import json
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from ..errors import StoreError
from .base import PersistentStore, StoredRecord

ENTRY_SUFFIX = ".entry"
FORMAT_VERSION = 1


class FileStore(PersistentStore):
    """
    Stores each key in its own file under ``root``.

    File layout: one JSON header line (key, validator, stored_at, ttl, size)
    followed by the raw payload bytes. Writes go to a temp file that is
    fsynced and moved over the target, so a reader sees either the whole old
    entry or the whole new one.
    """

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).expanduser()

    def open(self) -> None:
        try:
            self.ensure_dir(self.root)
        except OSError as exc:
            raise StoreError("open", reason=str(exc)) from exc

    # ------------------------------------------------------------------ #
    # Record operations
    # ------------------------------------------------------------------ #
    def read(self, key: str) -> Optional[StoredRecord]:
        path = self.path_for(key)
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StoreError("read", key, str(exc)) from exc
        return self._decode(key, raw)

    def write(self, record: StoredRecord) -> None:
        header = {
            "version": FORMAT_VERSION,
            "key": record.key,
            "validator": record.validator,
            "stored_at": record.stored_at,
            "ttl": record.ttl,
            "size": record.size,
        }
        data = json.dumps(header).encode("utf-8") + b"\n" + record.payload
        try:
            self.save_atomic(self.path_for(record.key), data)
        except OSError as exc:
            raise StoreError("write", record.key, str(exc)) from exc

    def delete(self, key: str) -> bool:
        try:
            self.path_for(key).unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise StoreError("delete", key, str(exc)) from exc
        return True

    def clear(self) -> None:
        try:
            for path in self._entry_files():
                path.unlink(missing_ok=True)
        except OSError as exc:
            raise StoreError("clear", reason=str(exc)) from exc

    def describe(self) -> List[Tuple[str, int, float]]:
        rows: List[Tuple[str, int, float]] = []
        try:
            for path in self._entry_files():
                header = self._read_header(path)
                if header is None:
                    # The key is unknown without a header; reads of it still raise.
                    continue
                try:
                    row = (str(header["key"]), int(header.get("size", 0)), float(header.get("stored_at", 0.0)))
                except (TypeError, ValueError):
                    continue
                rows.append(row)
        except OSError as exc:
            raise StoreError("describe", reason=str(exc)) from exc
        return rows

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    def path_for(self, key: str) -> Path:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return self.root / f"{digest}{ENTRY_SUFFIX}"

    def _entry_files(self) -> List[Path]:
        if not self.root.exists():
            return []
        return sorted(self.root.glob(f"*{ENTRY_SUFFIX}"))

    def _decode(self, key: str, raw: bytes) -> StoredRecord:
        head, sep, payload = raw.partition(b"\n")
        if not sep:
            raise StoreError("read", key, "missing header terminator")
        try:
            header: Dict[str, Any] = json.loads(head.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise StoreError("read", key, f"corrupt header: {exc}") from exc
        if not isinstance(header, dict) or header.get("key") != key:
            raise StoreError("read", key, "header does not match key")
        try:
            size = int(header["size"])
            stored_at = float(header["stored_at"])
            ttl = float(header["ttl"])
        except (KeyError, TypeError, ValueError) as exc:
            raise StoreError("read", key, f"corrupt header: {exc!r}") from exc
        if size != len(payload):
            raise StoreError("read", key, "payload truncated")
        return StoredRecord(key=key, payload=payload, stored_at=stored_at, ttl=ttl, validator=header.get("validator"))

    @staticmethod
    def _read_header(path: Path) -> Optional[Dict[str, Any]]:
        with path.open("rb") as fp:
            line = fp.readline()
        try:
            header = json.loads(line.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            return None
        return header if isinstance(header, dict) and "key" in header else None

    @staticmethod
    def save_atomic(file_path: Path, data: bytes) -> None:
        """Atomically replace ``file_path`` with ``data``."""
        FileStore.ensure_dir(file_path.parent)
        tmp_fd, tmp_path = tempfile.mkstemp(dir=file_path.parent, suffix=".tmp")
        try:
            with os.fdopen(tmp_fd, "wb") as fp:
                fp.write(data)
                fp.flush()
                os.fsync(fp.fileno())
            shutil.move(tmp_path, file_path)
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)

    @staticmethod
    def ensure_dir(dir_path: Path) -> None:
        """Create directory if it doesn't exist."""
        dir_path.mkdir(parents=True, exist_ok=True)
