"""Blocking poll helpers built on tenacity.

Every wait in a launch goes through ``poll_until``: sleep a fixed interval,
observe, repeat until the observation is acceptable or the bound runs out.
The sleep function is injectable so tests and cancellable launches can
replace ``time.sleep``.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from tenacity import (
    Retrying,
    retry_if_result,
    stop_after_attempt,
    stop_after_delay,
    stop_any,
    stop_never,
    wait_fixed,
)

from ovirtagent.core.exceptions import LaunchInterruptedError

type Sleep = Callable[[float], None]


@dataclass(frozen=True, slots=True)
class PollOutcome[T]:
    """Last observation and how many observations were made."""

    value: T
    polls: int
    ready: bool


def poll_until[T](
    probe: Callable[[], T],
    ready: Callable[[T], bool],
    *,
    interval: float,
    max_polls: int | None = None,
    timeout: float | None = None,
    sleep: Sleep = time.sleep,
    sleep_first: bool = True,
) -> PollOutcome[T]:
    """Call ``probe`` until ``ready(value)`` holds.

    Args:
        probe: Fetches the current observation. Exceptions propagate unchanged.
        ready: Acceptance predicate.
        interval: Seconds between observations.
        max_polls: Give up after this many observations. None = no count bound.
        timeout: Give up after this many seconds. None = no time bound.
        sleep: Sleep implementation.
        sleep_first: Sleep ``interval`` before the first observation too.

    Returns:
        PollOutcome with ``ready`` False when a bound was exhausted.
    """
    if max_polls is not None and max_polls <= 0:
        raise ValueError("max_polls must be positive")

    stops = []
    if max_polls is not None:
        stops.append(stop_after_attempt(max_polls))
    if timeout is not None:
        stops.append(stop_after_delay(timeout))

    polls = 0

    def observe() -> T:
        nonlocal polls
        polls += 1
        return probe()

    if sleep_first:
        sleep(interval)

    retrying = Retrying(
        stop=stop_any(*stops) if stops else stop_never,
        wait=wait_fixed(interval),
        retry=retry_if_result(lambda value: not ready(value)),
        retry_error_callback=lambda state: state.outcome.result(),
        sleep=sleep,
        reraise=True,
    )
    value = retrying(observe)
    return PollOutcome(value=value, polls=polls, ready=ready(value))


def interruptible_sleep(cancel: threading.Event) -> Sleep:
    """A sleep that raises LaunchInterruptedError as soon as ``cancel`` is set."""

    def _sleep(seconds: float) -> None:
        if cancel.wait(seconds):
            raise LaunchInterruptedError("Launch interrupted while waiting")

    return _sleep
