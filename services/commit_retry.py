"""
Bounded retry for optimistic ledger commits.

Every write operation reads committed state, builds a change set and commits
it. When the store reports a ConcurrencyConflict the whole operation is run
again from the read, so validation always sees fresh state.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, TypeVar

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from domain.errors import ConcurrencyConflict

T = TypeVar("T")


def run_with_commit_retry(
    operation: str,
    fn: Callable[..., T],
    *args: Any,
    max_attempts: int,
    log: logging.Logger,
    **kwargs: Any,
) -> T:
    """
    Run `fn(*args, **kwargs)`, retrying it on ConcurrencyConflict.

    The last ConcurrencyConflict is re-raised once `max_attempts` is used up.
    """

    retrying = Retrying(
        retry=retry_if_exception_type(ConcurrencyConflict),
        stop=stop_after_attempt(max_attempts),
        wait=wait_random_exponential(multiplier=0.005, max=0.1),
        before_sleep=before_sleep_log(log, logging.DEBUG),
        reraise=True,
    )
    try:
        return retrying(fn, *args, **kwargs)
    except ConcurrencyConflict:
        log.warning(
            "Commit retry budget exhausted",
            extra={"operation": operation, "max_attempts": max_attempts},
        )
        raise


__all__ = ["run_with_commit_retry"]
