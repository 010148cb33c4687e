"""Per-channel rate limiting and duplicate message suppression.

Both structures are bounded: the least recently used keys are evicted past
a maximum size, and ``sweep`` drops keys whose windows have expired.
"""

import hashlib
import math
import time
from collections import OrderedDict, deque
from dataclasses import dataclass


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class RateLimitResult:
    """Outcome of a rate limit check."""

    allowed: bool
    retry_after: int = 0  # Seconds until the oldest request leaves the window


class RateLimiter:
    """Sliding-window request limiter keyed by channel."""

    def __init__(self, max_requests: int = 60, window_ms: int = 60_000, max_keys: int = 10_000):
        """Initialize the limiter.

        Args:
            max_requests: Requests allowed per window
            window_ms: Window length in milliseconds
            max_keys: Maximum tracked channels (LRU eviction beyond this)
        """
        self.max_requests = max_requests
        self.window_ms = window_ms
        self.max_keys = max_keys
        self._windows: OrderedDict[str, deque[int]] = OrderedDict()

    def check(self, key: str, now: int | None = None) -> RateLimitResult:
        """Count a request for ``key`` if it fits in the window.

        Args:
            key: Channel identifier
            now: Current time in milliseconds

        Returns:
            Whether the request is allowed, and if not, when to retry
        """
        now = now if now is not None else now_ms()
        window = self._windows.get(key)
        if window is None:
            window = deque()
            self._windows[key] = window
        self._windows.move_to_end(key)

        while window and window[0] <= now - self.window_ms:
            window.popleft()

        if len(window) >= self.max_requests:
            retry_after = math.ceil((window[0] + self.window_ms - now) / 1000)
            return RateLimitResult(allowed=False, retry_after=retry_after)

        window.append(now)
        while len(self._windows) > self.max_keys:
            self._windows.popitem(last=False)
        return RateLimitResult(allowed=True)

    def sweep(self, now: int | None = None) -> int:
        """Drop channels with no requests in the current window.

        Returns:
            Number of channels removed
        """
        now = now if now is not None else now_ms()
        stale = [k for k, w in self._windows.items() if not w or w[-1] <= now - self.window_ms]
        for key in stale:
            del self._windows[key]
        return len(stale)

    def __len__(self) -> int:
        return len(self._windows)


class DedupWindow:
    """Suppresses identical content on the same session within a short window."""

    def __init__(self, window_ms: int = 2000, max_keys: int = 10_000):
        self.window_ms = window_ms
        self.max_keys = max_keys
        self._seen: OrderedDict[str, int] = OrderedDict()

    @staticmethod
    def key(session_id: str, content: str) -> str:
        return hashlib.sha256(f"{session_id}|{content}".encode()).hexdigest()

    def is_duplicate(self, session_id: str, content: str, now: int | None = None) -> bool:
        """Check a message, recording it when it is not a duplicate."""
        now = now if now is not None else now_ms()
        key = self.key(session_id, content)
        seen_at = self._seen.get(key)
        if seen_at is not None and now - seen_at < self.window_ms:
            return True

        self._seen[key] = now
        self._seen.move_to_end(key)
        while len(self._seen) > self.max_keys:
            self._seen.popitem(last=False)
        return False

    def sweep(self, now: int | None = None) -> int:
        now = now if now is not None else now_ms()
        stale = [k for k, seen_at in self._seen.items() if now - seen_at >= self.window_ms]
        for key in stale:
            del self._seen[key]
        return len(stale)

    def __len__(self) -> int:
        return len(self._seen)
