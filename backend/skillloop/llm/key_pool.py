"""Gemini API key pool.

Manages multiple Gemini API keys from different Google Cloud projects.
Each project has its own independent free tier quota, so distributing
callers across the keys maximizes free tier usage.

Callers are pinned to a "home" key by consistent hashing and spill over to
the next healthy key while their home key is cooling down after a 429.
"""

import hashlib
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from skillloop.utils.logging import mask_key

logger = logging.getLogger(__name__)


@dataclass
class KeyState:
    """Cooldown and failure bookkeeping for one pooled credential."""

    key: str
    cooldown_until: float = 0.0
    fail_count: int = 0
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def available(self, now: float) -> bool:
        with self.lock:
            return self.cooldown_until <= now

    def cooldown_end(self) -> float:
        with self.lock:
            return self.cooldown_until


class KeyPool:
    """Shared pool of interchangeable Gemini credentials.

    Built once per process and passed to the services that need it. The key
    list is fixed after construction; each entry's cooldown state is guarded
    by its own lock.
    """

    def __init__(
        self,
        keys: list[str],
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the pool.

        Args:
            keys: Pool credentials, in a stable order
            clock: Monotonic time source in seconds
        """
        self._clock = clock
        self._keys: list[KeyState] = []
        self._index: dict[str, int] = {}
        for key in keys:
            if key and key not in self._index:
                self._index[key] = len(self._keys)
                self._keys.append(KeyState(key=key))

        if self._keys:
            logger.info(f"[POOL] Gemini key pool initialized with {len(self._keys)} key(s)")
        else:
            logger.warning("[POOL] Gemini key pool is empty, shared Gemini access disabled")

    @property
    def pool_size(self) -> int:
        return len(self._keys)

    def _home_index(self, caller_id: str) -> int:
        # Same caller always maps to the same home key
        digest = hashlib.md5(caller_id.encode("utf-8")).digest()
        return int.from_bytes(digest[:4], "big") % len(self._keys)

    def get_key_for_caller(self, caller_id: str) -> Optional[str]:
        """Get an available key for a caller.

        Starts with the caller's home key and scans forward circularly past
        keys in cooldown. When every key is cooling down, the one whose
        cooldown ends soonest is returned rather than nothing.

        Args:
            caller_id: Caller identifier to hash

        Returns:
            A pool credential, or None if the pool is empty
        """
        if not self._keys:
            return None

        now = self._clock()
        start = self._home_index(caller_id)
        size = len(self._keys)

        for offset in range(size):
            state = self._keys[(start + offset) % size]
            if state.available(now):
                return state.key

        soonest = min(self._keys, key=lambda s: s.cooldown_end())
        logger.debug(f"[POOL] All keys cooling down, degrading to {mask_key(soonest.key)}")
        return soonest.key

    def mark_rate_limited(self, credential: str, retry_after_seconds: float = 60) -> None:
        """Put a key into cooldown after a 429.

        The cooldown only ever extends: a racing call with a shorter
        retry-after cannot shorten a longer cooldown already in place.
        Unknown credentials are ignored.
        """
        index = self._index.get(credential)
        if index is None:
            return

        state = self._keys[index]
        until = self._clock() + max(retry_after_seconds, 0)
        with state.lock:
            state.fail_count += 1
            state.cooldown_until = max(state.cooldown_until, until)
            fail_count = state.fail_count

        logger.warning(
            f"[POOL] Gemini key {mask_key(credential)} cooldown {retry_after_seconds}s "
            f"(fail #{fail_count})"
        )

    def get_next_key(self, failed_credential: str) -> Optional[str]:
        """Get the next available key after a failed one.

        Args:
            failed_credential: The key that just failed

        Returns:
            The next key in circular order that is not cooling down, or None
            when the pool has at most one key or every other key is cooling down
        """
        size = len(self._keys)
        if size <= 1:
            return None

        failed_index = self._index.get(failed_credential)
        if failed_index is None:
            return None

        now = self._clock()
        for offset in range(1, size):
            state = self._keys[(failed_index + offset) % size]
            if state.available(now):
                return state.key
        return None

    def mark_success(self, credential: str) -> None:
        """Mark a key as healthy after a successful request."""
        index = self._index.get(credential)
        if index is None:
            return

        state = self._keys[index]
        with state.lock:
            state.fail_count = 0
            state.cooldown_until = 0.0

    def seconds_until_available(self) -> float:
        """Seconds until the soonest cooldown in the pool ends (0 if a key is free)."""
        if not self._keys:
            return 0.0
        now = self._clock()
        soonest = min(state.cooldown_end() for state in self._keys)
        return max(0.0, soonest - now)

    def snapshot(self) -> dict:
        """Masked view of the pool for health reporting."""
        now = self._clock()
        keys = []
        for state in self._keys:
            with state.lock:
                keys.append(
                    {
                        "key": mask_key(state.key),
                        "fail_count": state.fail_count,
                        "cooldown_remaining": round(max(0.0, state.cooldown_until - now), 1),
                    }
                )
        return {
            "pool_size": len(self._keys),
            "available": sum(1 for k in keys if k["cooldown_remaining"] == 0),
            "keys": keys,
        }
