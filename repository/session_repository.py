# repository/session_repository.py
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional
from uuid import uuid4
from config.settings import settings
from core.session import DocumentSession
import logging

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    session: DocumentSession
    touched: float


# Process-local store; entries idle longer than the TTL are evicted lazily.
_sessions: Dict[str, _Entry] = {}


class SessionRepository:
    """
    Flow:
    - create() allocates a DocumentSession under a fresh id.
    - get() returns the live session object (state is mutated in place) and
      refreshes its TTL.
    - delete() closes the session, cancelling pending highlight/layer work.
    - Sessions idle for more than ttl_seconds are closed and dropped on the
      next create()/get().
    """

    def __init__(
        self,
        store: Optional[Dict[str, _Entry]] = None,
        ttl_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = _sessions if store is None else store
        self._ttl = float(
            settings.SESSION_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        )
        self._clock = clock

    def _evict_expired(self) -> None:
        now = self._clock()
        expired = [sid for sid, e in self._store.items() if now - e.touched > self._ttl]
        for sid in expired:
            entry = self._store.pop(sid, None)
            if entry is None:
                continue
            entry.session.close()
            logger.info("session.expired session=%s", sid)

    def create(self) -> DocumentSession:
        self._evict_expired()
        session = DocumentSession(str(uuid4()))
        self._store[session.id] = _Entry(session=session, touched=self._clock())
        logger.info("session.created session=%s live=%d", session.id, len(self._store))
        return session

    def get(self, session_id: str) -> Optional[DocumentSession]:
        if not session_id:
            return None
        self._evict_expired()
        entry = self._store.get(session_id)
        if entry is None:
            return None
        entry.touched = self._clock()
        return entry.session

    def delete(self, session_id: str) -> bool:
        entry = self._store.pop(session_id, None)
        if entry is None:
            return False
        entry.session.close()
        return True
