import threading
import time
from typing import Callable, Dict, Optional, Protocol, Tuple


class KeyValueStore(Protocol):
    """
    The four store primitives the lock coordinator relies on.

    Guarantees required from implementations:
    - set_if_absent is atomic: at most one concurrent caller gets True
    - all operations on one key are serialized in arrival order
    - expire(key, 0) deletes the key immediately

    ProtocolClient is the production implementation.
    """

    def echo(self, token: str) -> Optional[str]:
        ...

    def set_if_absent(self, key: str, value: str) -> bool:
        ...

    def get(self, key: str) -> Optional[str]:
        ...

    def expire(self, key: str, seconds: int) -> bool:
        ...


class InMemoryStore:
    """
    In-memory reference implementation.

    Used for:
    - Tests
    - Local experiments
    - Demonstrating the TTL and set-if-absent rules the coordinator needs

    NOT for production: it is not shared between processes.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}
        self._lock = threading.Lock()

    def _live(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None

        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    def echo(self, token: str) -> Optional[str]:
        return token

    def set_if_absent(self, key: str, value: str) -> bool:
        with self._lock:
            if self._live(key) is not None:
                return False
            self._data[key] = (value, None)
            return True

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._live(key)

    def expire(self, key: str, seconds: int) -> bool:
        with self._lock:
            value = self._live(key)
            if value is None:
                return False

            if seconds <= 0:
                del self._data[key]
            else:
                self._data[key] = (value, self._clock() + seconds)
            return True

    def ttl(self, key: str) -> Optional[float]:
        """Remaining seconds before ``key`` expires; None if absent or persistent."""
        with self._lock:
            if self._live(key) is None:
                return None
            expires_at = self._data[key][1]
            if expires_at is None:
                return None
            return expires_at - self._clock()

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return self._live(key) is not None
