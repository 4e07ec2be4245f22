"""Fixed-interval polling used while waiting on the Godot editor."""

from __future__ import annotations

import time
from typing import Callable, Optional, TypeVar

T = TypeVar("T")

WaitFn = Callable[[int], None]


def poll_until(
    check: Callable[[], T],
    done: Callable[[T], bool],
    *,
    max_attempts: int = 100,
    interval: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
    on_wait: Optional[WaitFn] = None,
    cancelled: Optional[Callable[[], bool]] = None,
) -> T:
    """Call ``check`` until ``done(result)`` holds or the budget runs out.

    Every attempt re-runs ``check`` from scratch.  When an attempt is not
    done, ``on_wait`` receives the zero-based attempt number and the loop
    sleeps ``interval`` seconds.  ``cancelled`` is consulted before each new
    attempt; a cancelled poll returns the last result it saw.

    The last result is returned either way, callers decide what an
    unfinished result means.
    """

    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    result = check()
    for attempt in range(max_attempts):
        if attempt:
            if cancelled and cancelled():
                break
            result = check()
        if done(result):
            break
        if on_wait:
            on_wait(attempt)
        sleep(interval)
    return result
