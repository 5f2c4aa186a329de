"""Session persistence: whole-snapshot key-value storage for one session.

Contract
--------
Read the full snapshot, mutate in memory, write the full snapshot. There are no
partial-field writes and no concurrency control; a single pipeline run per
session is assumed. Deleting the snapshot is the only reset.
"""
import json
import logging
import os
from pathlib import Path
from typing import Protocol

from evergreen.session import Session

logger = logging.getLogger(__name__)


class SessionStore(Protocol):
    def load(self) -> Session | None: ...

    def save(self, session: Session) -> None: ...

    def delete(self) -> None: ...


class JsonFileStore:
    """Store the session as one JSON document on disk.

    Args:
        path: Location of the session file. Parent directories are created on save.

    Postconditions:
        - save() replaces the file atomically, so a crash mid-write leaves the
          previous snapshot intact.
        - load() returns None for a missing or unreadable file; an unreadable file
          is left in place for inspection and is only removed by delete().
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load(self) -> Session | None:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return Session.model_validate(data)
        except (ValueError, OSError) as exc:
            logger.warning("Could not read session at %s (%s); starting fresh", self.path, exc)
            return None

    def save(self, session: Session) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(self.path.name + ".tmp")
        tmp.write_text(json.dumps(session.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
        os.replace(tmp, self.path)

    def delete(self) -> None:
        self.path.unlink(missing_ok=True)


class MemoryStore:
    """In-process store holding a serialized snapshot, so callers never share the live object."""

    def __init__(self, session: Session | None = None):
        self._snapshot: dict | None = session.to_dict() if session is not None else None
        self.saves = 0

    def load(self) -> Session | None:
        if self._snapshot is None:
            return None
        return Session.model_validate(self._snapshot)

    def save(self, session: Session) -> None:
        self._snapshot = session.to_dict()
        self.saves += 1

    def delete(self) -> None:
        self._snapshot = None
