"""Bounded gallery history for Quantum Canvas.

The gallery is the only durable record of past results.  It is a list of
entries in reverse-chronological order (newest first), capped at a fixed
number of entries; adding to a full history evicts the oldest entry.

State and persistence are kept apart:

- :class:`GalleryHistory` is an explicit state object.  Route handlers and
  renderers receive it as an argument; there is no module-level gallery.
- :class:`GalleryStorage` is the persistence interface injected into the
  history.  :class:`JsonFileStorage` writes a single JSON array under one
  storage key (``quantumCanvasGallery``) in ``gallery.json``;
  :class:`MemoryStorage` keeps it in a dict for tests.

Loading is intentionally forgiving: a missing, empty or corrupt file yields an
empty gallery rather than an exception, and malformed entries are dropped.

Route handlers run in the threadpool, so every storage exposes a ``lock``.
:meth:`GalleryHistory.add` and :meth:`GalleryHistory.clear` reload, modify and
save while holding it, and :class:`JsonFileStorage` shares one lock per file
path and replaces the file atomically.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from contextlib import AbstractContextManager
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)

STORAGE_KEY = "quantumCanvasGallery"
DEFAULT_LIMIT = 20
ENTRY_TYPES = ("generated", "manipulated")


@dataclass
class GalleryEntry:
    """One gallery item.

    Attributes:
        url: Artifact reference (``/generated/...`` path, data URI or URL).
        prompt: Prompt the artifact was created from.
        type: ``"generated"`` or ``"manipulated"``.
        timestamp: ISO-8601 creation time.
        description: Optional model description shown under the image.
    """

    url: str
    prompt: str
    type: str = "generated"
    timestamp: str = ""
    description: str | None = None

    def __post_init__(self) -> None:
        if not self.timestamp:
            self.timestamp = datetime.now(timezone.utc).isoformat()

    @classmethod
    def from_dict(cls, data: object) -> GalleryEntry | None:
        """Build an entry from persisted data, or ``None`` if it is malformed."""
        if not isinstance(data, dict):
            return None
        url = data.get("url")
        prompt = data.get("prompt")
        if not isinstance(url, str) or not url or not isinstance(prompt, str):
            return None
        entry_type = data.get("type")
        description = data.get("description")
        return cls(
            url=url,
            prompt=prompt,
            type=entry_type if entry_type in ENTRY_TYPES else "generated",
            timestamp=str(data.get("timestamp") or ""),
            description=description if isinstance(description, str) else None,
        )

    def to_dict(self) -> dict:
        data = asdict(self)
        if data["description"] is None:
            del data["description"]
        return data


class GalleryStorage(Protocol):
    """Persistence interface for a gallery history."""

    lock: AbstractContextManager

    def load(self, key: str) -> list[dict]: ...

    def save(self, key: str, entries: list[dict]) -> None: ...


class MemoryStorage:
    """In-memory storage, mostly for tests."""

    def __init__(self) -> None:
        self.data: dict[str, list[dict]] = {}
        self.lock = threading.RLock()

    def load(self, key: str) -> list[dict]:
        return list(self.data.get(key, []))

    def save(self, key: str, entries: list[dict]) -> None:
        self.data[key] = list(entries)


_file_locks: dict[Path, threading.RLock] = {}
_file_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.RLock:
    with _file_locks_guard:
        return _file_locks.setdefault(path.resolve(), threading.RLock())


class JsonFileStorage:
    """Stores each key's entries in one JSON file as ``{key: [...]}``."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.lock = _lock_for(self.path)

    def _read(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, encoding="utf-8") as handle:
                data = json.load(handle)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable gallery file {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def load(self, key: str) -> list[dict]:
        entries = self._read().get(key, [])
        return entries if isinstance(entries, list) else []

    def save(self, key: str, entries: list[dict]) -> None:
        with self.lock:
            data = self._read()
            data[key] = entries
            self.path.parent.mkdir(parents=True, exist_ok=True)
            # Readers never observe a truncated file.
            fd, tmp_name = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(data, handle, indent=2)
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise


class GalleryHistory:
    """Most-recent-first history bounded to *limit* entries.

    Args:
        storage: Injected persistence backend.
        limit: Maximum number of entries kept.
        key: Storage key the entries live under.
    """

    def __init__(
        self,
        storage: GalleryStorage,
        limit: int = DEFAULT_LIMIT,
        key: str = STORAGE_KEY,
    ) -> None:
        self.storage = storage
        self.limit = limit
        self.key = key
        self.entries: list[GalleryEntry] = self._load()

    def _load(self) -> list[GalleryEntry]:
        entries = [GalleryEntry.from_dict(raw) for raw in self.storage.load(self.key)]
        return [entry for entry in entries if entry is not None][: self.limit]

    def save(self) -> None:
        self.storage.save(self.key, [entry.to_dict() for entry in self.entries])

    def add(self, entry: GalleryEntry) -> GalleryEntry:
        """Insert *entry* at the front, evicting the oldest beyond the limit.

        The history is reloaded under the storage lock first, so entries
        added by concurrent requests are kept.
        """
        with self.storage.lock:
            self.entries = self._load()
            self.entries.insert(0, entry)
            del self.entries[self.limit :]
            self.save()
        return entry

    def clear(self) -> None:
        with self.storage.lock:
            self.entries = []
            self.save()

    def to_list(self) -> list[dict]:
        return [entry.to_dict() for entry in self.entries]

    def __len__(self) -> int:
        return len(self.entries)
