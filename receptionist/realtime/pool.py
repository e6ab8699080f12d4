"""Least-loaded allocation of upstream API credentials."""

import logging
import threading
from typing import Sequence

from receptionist.errors import ConfigurationError, PoolReleaseError

logger = logging.getLogger(__name__)


class ConnectionPool:
    """
    Spreads concurrent connections across a fixed set of credentials.

    ``assign`` picks the credential with the fewest live connections, ties
    going to the lowest index. Counters are guarded by a lock so bridges on
    any thread or event loop can share one pool.
    """

    def __init__(self, credentials: Sequence[str]) -> None:
        if not credentials:
            raise ConfigurationError("ConnectionPool requires at least one credential")
        for index, credential in enumerate(credentials):
            if not isinstance(credential, str) or not credential.strip():
                raise ConfigurationError(f"Credential at index {index} is empty")
        self._credentials = tuple(credentials)
        self._counters = [0] * len(self._credentials)
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._credentials)

    @property
    def counters(self) -> tuple[int, ...]:
        with self._lock:
            return tuple(self._counters)

    def assign(self) -> tuple[str, int]:
        with self._lock:
            index = min(range(len(self._counters)), key=self._counters.__getitem__)
            self._counters[index] += 1
            load = self._counters[index]
        logger.debug("Assigned credential %d (now %d connections)", index, load)
        return self._credentials[index], index

    def release(self, index: int) -> None:
        with self._lock:
            if not 0 <= index < len(self._counters):
                raise ConfigurationError(f"Credential index {index} out of range")
            if self._counters[index] <= 0:
                raise PoolReleaseError(index)
            self._counters[index] -= 1
            load = self._counters[index]
        logger.debug("Released credential %d (now %d connections)", index, load)
