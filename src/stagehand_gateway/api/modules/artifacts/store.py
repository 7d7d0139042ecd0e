"""Per-session artifact storage.

Artifacts are small named blobs a session produces while it runs
(browser session records, captured screenshots, tool output). They are
exposed to the client as protocol resources and dropped when the
session is torn down.
"""
from __future__ import annotations

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Protocol

DEFAULT_MAX_PER_SESSION = 50


@dataclass
class Artifact:
    """One stored artifact."""

    name: str
    data: bytes
    mime_type: str = 'application/octet-stream'
    created_at: float = field(default_factory=time.time)

    @property
    def is_text(self) -> bool:
        return self.mime_type.startswith('text/') or self.mime_type == 'application/json'

    def as_text(self) -> str:
        return self.data.decode('utf-8', errors='replace')


class ArtifactStore(Protocol):
    def cleanup(self, session_id: str) -> int: ...


class InMemoryArtifactStore:
    """Thread-safe in-memory artifact store with a per-session cap.

    When a session exceeds ``max_per_session`` the oldest artifact is
    evicted. Re-putting an existing name replaces it and marks it newest.
    """

    def __init__(self, max_per_session: int = DEFAULT_MAX_PER_SESSION):
        self.max_per_session = max_per_session
        self._artifacts: dict[str, OrderedDict[str, Artifact]] = {}
        self._lock = threading.Lock()

    def put(
        self,
        session_id: str,
        name: str,
        data: bytes | str,
        mime_type: str | None = None,
    ) -> Artifact:
        if isinstance(data, str):
            data = data.encode('utf-8')
            mime_type = mime_type or 'text/plain'
        artifact = Artifact(name=name, data=data, mime_type=mime_type or 'application/octet-stream')
        with self._lock:
            bucket = self._artifacts.setdefault(session_id, OrderedDict())
            bucket.pop(name, None)
            bucket[name] = artifact
            while len(bucket) > self.max_per_session:
                bucket.popitem(last=False)
        return artifact

    def get(self, session_id: str, name: str) -> Artifact | None:
        with self._lock:
            bucket = self._artifacts.get(session_id)
            return bucket.get(name) if bucket else None

    def list(self, session_id: str) -> list[Artifact]:
        with self._lock:
            return list(self._artifacts.get(session_id, {}).values())

    def cleanup(self, session_id: str) -> int:
        """Drop every artifact for a session. Idempotent; returns how many were dropped."""
        with self._lock:
            bucket = self._artifacts.pop(session_id, None)
        return len(bucket) if bucket else 0

    def session_count(self) -> int:
        with self._lock:
            return len(self._artifacts)
