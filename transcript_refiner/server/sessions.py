"""In-memory store of editing sessions with TTL cleanup.

WHY: The HTTP API serves many independent transcripts at once. Each
needs its own EditingSession (live transcript + version history) that
survives across requests, and abandoned sessions must not pile up.

HOW: SessionStore keeps sessions in a dict keyed by session ID, guarded
by a threading.Lock. Every lookup refreshes the session's last-access
time; cleanup_expired() drops sessions idle longer than the TTL.

RULES:
- All store mutations are protected by threading.Lock
- get_session() returns None for missing IDs (no exceptions)
- create_session() raises ValueError once max_sessions is reached
- Sessions with a refinement in flight are never expired
- Default TTL is 1 hour (3600 seconds)
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Dict, List, Optional

from transcript_refiner.core.session import EditingSession

logger = logging.getLogger(__name__)

# Default idle time-to-live for sessions (seconds)
DEFAULT_TTL_SECONDS = 3600


class SessionStore:
    """Thread-safe in-memory store for editing sessions."""

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        max_sessions: int = 100,
    ) -> None:
        self._sessions: Dict[str, EditingSession] = {}
        self._touched: Dict[str, float] = {}
        self._lock = threading.Lock()
        self._ttl_seconds = ttl_seconds
        self.max_sessions = max_sessions

    def create_session(self, name: str = "transcript") -> EditingSession:
        with self._lock:
            if len(self._sessions) >= self.max_sessions:
                raise ValueError(
                    "Maximum number of sessions ({}) reached".format(self.max_sessions)
                )
            session = EditingSession(name=name)
            self._sessions[session.id] = session
            self._touched[session.id] = time.time()

        logger.info("Created session %s for %s", session.id, name)
        return session

    def get_session(self, session_id: str) -> Optional[EditingSession]:
        """Return the live session (not a copy), or None."""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None:
                self._touched[session_id] = time.time()
            return session

    def list_sessions(self) -> List[EditingSession]:
        with self._lock:
            return sorted(self._sessions.values(), key=lambda s: self._touched[s.id])

    def delete_session(self, session_id: str) -> bool:
        with self._lock:
            session = self._sessions.pop(session_id, None)
            self._touched.pop(session_id, None)

        if session is None:
            return False
        logger.info("Deleted session %s", session_id)
        return True

    def cleanup_expired(self) -> int:
        """Remove sessions idle for longer than the TTL; returns the count."""
        now = time.time()
        expired: List[str] = []

        with self._lock:
            for session_id, session in list(self._sessions.items()):
                if session.refining:
                    continue
                if now - self._touched[session_id] > self._ttl_seconds:
                    del self._sessions[session_id]
                    del self._touched[session_id]
                    expired.append(session_id)

        for session_id in expired:
            logger.info("Expired session %s", session_id)
        return len(expired)
