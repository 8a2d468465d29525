"""Bounded polling until a remote object reaches a target status."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Collection
from typing import Any

logger = logging.getLogger(__name__)

RefreshFunc = Callable[[], tuple[Any, str]]


class WaitError(Exception):
    """Base exception for waiter failures."""


class WaitTimeoutError(WaitError):
    """Raised when the target status is not reached before the deadline."""

    def __init__(self, timeout: float, last_status: str) -> None:
        super().__init__(
            f"Timed out after {timeout:g}s waiting for target state (last state: "
            f"{last_status or 'not found'!r})"
        )
        self.timeout = timeout
        self.last_status = last_status


class UnexpectedStateError(WaitError):
    """Raised when the object reports a status that is neither pending nor target."""

    def __init__(self, status: str, expected: Collection[str]) -> None:
        super().__init__(
            f"Unexpected state {status!r}, wanted one of: {', '.join(sorted(expected)) or '<gone>'}"
        )
        self.status = status


class NotFoundError(WaitError):
    """Raised when the object keeps being absent while waiting for it to appear."""

    def __init__(self, checks: int) -> None:
        super().__init__(f"Object not found after {checks} consecutive checks")
        self.checks = checks


def wait_for_state(
    refresh: RefreshFunc,
    *,
    pending: Collection[str],
    target: Collection[str],
    timeout: float,
    delay: float = 0.0,
    poll_interval: float = 5.0,
    not_found_checks: int = 20,
    continuous_target_occurence: int = 1,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> Any:
    """Poll *refresh* until it reports a status in *target*.

    ``refresh()`` returns ``(obj, status)``; ``obj is None`` means the object
    does not exist. With an empty *target* the wait succeeds once the object is
    gone. Otherwise not-found results are tolerated ``not_found_checks`` times
    in a row. The target must be observed ``continuous_target_occurence`` times
    consecutively. Returns the last object seen.
    """
    deadline = clock() + timeout
    if delay:
        sleep(delay)

    not_found = 0
    target_hits = 0
    last_status = ""

    while True:
        obj, status = refresh()
        if obj is None:
            if not target:
                return None
            target_hits = 0
            not_found += 1
            if not_found > not_found_checks:
                raise NotFoundError(not_found)
        elif status in target:
            not_found = 0
            target_hits += 1
            if target_hits >= continuous_target_occurence:
                return obj
        elif status in pending:
            not_found = 0
            target_hits = 0
        else:
            raise UnexpectedStateError(status, target)

        last_status = status
        logger.debug("Waiting: state=%r target=%s", status, sorted(target))
        if clock() + poll_interval > deadline:
            raise WaitTimeoutError(timeout, last_status)
        sleep(poll_interval)
