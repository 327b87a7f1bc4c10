"""In-memory store of outstanding challenge tokens.

A token is outstanding from :meth:`ChallengeTokenStore.issue` until it is
consumed, expires, or is evicted because the store is full. Consumption is
atomic: concurrent callbacks presenting the same token get exactly one
success between them.
"""

import threading
import time
from collections import OrderedDict
from collections.abc import Callable

from ..domain.value_objects import ChallengeToken
from ..utils.logging import get_logger

logger = get_logger(__name__)


class ChallengeTokenStore:
    """Single-use challenge set with TTL and a capacity cap.

    Methods are synchronous and never block on I/O, so they are safe to call
    from event-loop tasks and from threads alike.
    """

    def __init__(
        self,
        ttl_seconds: float = 600.0,
        capacity: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the store.

        Args:
            ttl_seconds: How long an issued token remains answerable
            capacity: Maximum outstanding tokens; the oldest are evicted beyond it
            clock: Monotonic time source (injectable for tests)
        """
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.ttl_seconds = ttl_seconds
        self.capacity = capacity
        self._clock = clock
        # token value -> issue time, in issue order
        self._outstanding: OrderedDict[str, float] = OrderedDict()
        self._lock = threading.Lock()

    def issue(self) -> ChallengeToken:
        """Create, record and return a fresh token."""
        with self._lock:
            now = self._clock()
            self._sweep_locked(now)

            token = ChallengeToken.generate()
            while token.value in self._outstanding:
                token = ChallengeToken.generate()
            self._outstanding[token.value] = now

            evicted = 0
            while len(self._outstanding) > self.capacity:
                self._outstanding.popitem(last=False)
                evicted += 1

        if evicted:
            logger.warning("challenge_tokens_evicted", count=evicted, capacity=self.capacity)
        return token

    def validate_and_consume(self, token: ChallengeToken | str) -> bool:
        """Remove ``token`` if it is outstanding and unexpired.

        Returns:
            True exactly once per issued token, False for unknown, expired
            or already consumed tokens.
        """
        value = token.value if isinstance(token, ChallengeToken) else token
        with self._lock:
            issued_at = self._outstanding.pop(value, None)
            if issued_at is None:
                return False
            expired = self._clock() - issued_at >= self.ttl_seconds

        if expired:
            logger.info("challenge_token_expired", ttl_seconds=self.ttl_seconds)
            return False
        return True

    def sweep(self) -> int:
        """Drop every expired token. Returns the number removed."""
        with self._lock:
            return self._sweep_locked(self._clock())

    def _sweep_locked(self, now: float) -> int:
        removed = 0
        # Issue order equals expiry order, so stop at the first live token.
        while self._outstanding:
            value, issued_at = next(iter(self._outstanding.items()))
            if now - issued_at < self.ttl_seconds:
                break
            del self._outstanding[value]
            removed += 1
        if removed:
            logger.debug("challenge_tokens_swept", count=removed)
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._outstanding)

    def __contains__(self, token: ChallengeToken | str) -> bool:
        value = token.value if isinstance(token, ChallengeToken) else token
        with self._lock:
            return value in self._outstanding
