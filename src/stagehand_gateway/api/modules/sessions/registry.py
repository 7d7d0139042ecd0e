"""Session registry: the table of currently routable stream sessions.

The registry is an explicit object owned by the app and handed to the
lifecycle controller and the message router. Every operation holds one
table-wide lock for the duration of the dict access only; no method
awaits, so the lock is never held across an I/O suspension point.
"""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ...errors import SessionExistsError
from ....observability.metrics import SESSIONS_ACTIVE
from ...signals import CompletionSignal, SessionState

if TYPE_CHECKING:
    from ..transport.sse import SSEStreamHandle
    from ...credentials import Credentials


@dataclass
class Session:
    """A live association between a stream handle and its session id."""

    id: str
    handle: 'SSEStreamHandle'
    response: Any
    credentials: 'Credentials | None' = None
    signal: CompletionSignal = field(default_factory=CompletionSignal)
    created_at: float = field(default_factory=time.monotonic)
    teardown_started: bool = False

    @property
    def state(self) -> SessionState:
        return self.signal.state

    @property
    def is_routable(self) -> bool:
        """True while messages may be forwarded to this session's handle."""
        return self.signal.is_open

    @property
    def age_seconds(self) -> float:
        return time.monotonic() - self.created_at

    def summary(self) -> dict[str, Any]:
        return {
            'id': self.id,
            'state': self.state.value,
            'age_seconds': round(self.age_seconds, 3),
        }


class SessionRegistry:
    """In-process table of sessions keyed by session id."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def register(
        self,
        session_id: str,
        handle: 'SSEStreamHandle',
        response: Any,
        *,
        credentials: 'Credentials | None' = None,
        signal: CompletionSignal | None = None,
    ) -> Session:
        """Insert a new session.

        Raises:
            SessionExistsError: If the id is already registered. Ids come
                from the handshake, so a collision means two live streams
                would share one routing key.
        """
        session = Session(
            id=session_id,
            handle=handle,
            response=response,
            credentials=credentials,
            signal=signal or CompletionSignal(),
        )
        with self._lock:
            if session_id in self._sessions:
                raise SessionExistsError(
                    f'Session already registered: {session_id}',
                    session_id=session_id,
                    operation='registry.register',
                )
            self._sessions[session_id] = session
            SESSIONS_ACTIVE.set(len(self._sessions))
        return session

    def lookup(self, session_id: str) -> Session | None:
        with self._lock:
            return self._sessions.get(session_id)

    def remove(self, session_id: str) -> Session | None:
        """Remove a session. Removing an absent id is a no-op returning None."""
        with self._lock:
            session = self._sessions.pop(session_id, None)
            SESSIONS_ACTIVE.set(len(self._sessions))
        return session

    def count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def ids(self) -> list[str]:
        with self._lock:
            return list(self._sessions)

    def sessions(self) -> list[Session]:
        with self._lock:
            return list(self._sessions.values())

    def snapshot(self) -> list[dict[str, Any]]:
        """Summaries of live sessions for the debug listing. No credentials."""
        return [session.summary() for session in self.sessions()]

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    def __len__(self) -> int:
        return self.count()
