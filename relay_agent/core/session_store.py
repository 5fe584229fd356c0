"""
Keyed stores for out-of-band lookups.

SessionStore maps a call SID to its live session handler so HTTP control
endpoints can reach it. ParameterStore holds data registered for a call
reference ahead of the call; setup consumes it once, and unclaimed entries
expire. The same store keeps the parameter data of ended calls for
webhooks that arrive after hang-up.
"""

from typing import Any, Callable, Dict, Generic, List, Optional, Tuple, TypeVar
import time

import structlog

logger = structlog.get_logger(__name__)

S = TypeVar("S")


class SessionStore(Generic[S]):
    """Live sessions by call SID. Entries are added after setup and evicted on close."""

    def __init__(self):
        self._sessions: Dict[str, S] = {}

    def add(self, call_sid: str, session: S) -> None:
        previous = self._sessions.get(call_sid)
        if previous is not None and previous is not session:
            logger.warning("Replacing existing session for call", call_sid=call_sid)
        self._sessions[call_sid] = session

    def get(self, call_sid: str) -> Optional[S]:
        return self._sessions.get(call_sid)

    def remove(self, call_sid: str, session: Optional[S] = None) -> bool:
        """
        Evict a session. When ``session`` is given, only evict if it is still
        the one registered (a reconnect may have replaced it).
        """
        current = self._sessions.get(call_sid)
        if current is None or (session is not None and current is not session):
            return False
        del self._sessions[call_sid]
        return True

    def call_sids(self) -> List[str]:
        return list(self._sessions)

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, call_sid: str) -> bool:
        return call_sid in self._sessions


class ParameterStore:
    """
    Parameter data by key, with expiry. The server keeps one instance keyed
    by call reference (consumed at session setup) and one keyed by call SID
    for calls that have ended.

    An entry expires ``ttl_seconds`` after registration. At most
    ``max_entries`` are kept; the oldest is dropped first. ``None`` disables
    either limit.
    """

    def __init__(
        self,
        *,
        ttl_seconds: Optional[float] = 3600.0,
        max_entries: Optional[int] = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        # insertion order is registration order
        self._data: Dict[str, Tuple[float, Dict[str, Any]]] = {}

    def put(self, call_reference: str, data: Dict[str, Any]) -> None:
        self._evict_expired()
        self._data.pop(call_reference, None)
        self._data[call_reference] = (self._clock(), dict(data))
        while self.max_entries is not None and len(self._data) > self.max_entries:
            oldest = next(iter(self._data))
            del self._data[oldest]
            logger.warning("Parameter store full; oldest call reference dropped", call_reference=oldest)
        logger.debug("Parameter data registered", call_reference=call_reference)

    def get(self, call_reference: Optional[str]) -> Optional[Dict[str, Any]]:
        """Look at the data for a call reference without consuming it."""
        if not call_reference:
            return None
        self._evict_expired()
        entry = self._data.get(call_reference)
        return entry[1] if entry else None

    def pop(self, call_reference: Optional[str]) -> Dict[str, Any]:
        if not call_reference:
            return {}
        self._evict_expired()
        entry = self._data.pop(call_reference, None)
        return entry[1] if entry else {}

    def _evict_expired(self) -> None:
        if self.ttl_seconds is None:
            return
        cutoff = self._clock() - self.ttl_seconds
        expired = [ref for ref, (registered, _) in self._data.items() if registered <= cutoff]
        for ref in expired:
            del self._data[ref]
        if expired:
            logger.info("Expired call references evicted", count=len(expired))

    def __len__(self) -> int:
        self._evict_expired()
        return len(self._data)
