"""Linear backoff used when the provider reports lock contention.

Lock contention on the provider clears after a short pause, so the delay
grows by a fixed step per attempt instead of doubling.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable

Sleeper = Callable[[float], Awaitable[None]]


def linear_delay(attempt: int, step: float = 0.3) -> float:
    """Return ``step * attempt`` seconds, never negative.

    Args:
        attempt: Retry number (1-indexed; the first retry is attempt 1).
        step: Seconds added per attempt. Defaults to 0.3.
    """
    return max(0.0, step * attempt)

