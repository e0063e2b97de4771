from __future__ import annotations

import threading
import time
from typing import Dict, Iterable, List


class ExposureTracker:
    """In-memory record of venue ids recently shown per session (ids only).

    Shared across request threads; every public method holds ``_lock``.
    """

    def __init__(self, max_history: int = 50, ttl_sec: int = 21600) -> None:
        self._sessions: Dict[str, List[str]] = {}
        self._last_access: Dict[str, float] = {}
        self._lock = threading.Lock()
        self.max_history = max_history
        self.ttl_sec = ttl_sec

    def recent(self, session_id: str) -> List[str]:
        """Most recent first."""
        with self._lock:
            self._cleanup()
            if not session_id:
                return []
            self._last_access[session_id] = time.time()
            return list(self._sessions.get(session_id, []))

    def record(self, session_id: str, venue_ids: Iterable[str]) -> None:
        if not session_id:
            return

        shown = list(dict.fromkeys(venue_ids))
        with self._lock:
            self._cleanup()
            previous = [vid for vid in self._sessions.get(session_id, []) if vid not in shown]
            history = shown + previous
            if len(history) > self.max_history:
                history = history[: self.max_history]
            self._sessions[session_id] = history
            self._last_access[session_id] = time.time()

    def reset(self, session_id: str) -> None:
        if not session_id:
            return
        with self._lock:
            self._sessions.pop(session_id, None)
            self._last_access.pop(session_id, None)

    def _cleanup(self) -> None:
        """Remove expired sessions. Caller holds the lock."""
        now = time.time()
        expired = [sid for sid, last in self._last_access.items() if now - last > self.ttl_sec]
        for sid in expired:
            self._sessions.pop(sid, None)
            del self._last_access[sid]


# Global singleton
exposure_tracker = ExposureTracker()
