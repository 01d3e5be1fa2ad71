"""
Tests for `services/commit_retry.py`.

Covers contract rules:
- ConcurrencyConflict re-runs the whole operation up to the attempt budget.
- Other errors are not retried.
"""

from __future__ import annotations

import logging

import pytest

from domain.errors import ConcurrencyConflict, SlotNotFound
from services.commit_retry import run_with_commit_retry

log = logging.getLogger("tests.commit_retry")


def test_retries_until_commit_succeeds() -> None:
    calls = []

    def flaky(value):
        calls.append(value)
        if len(calls) < 3:
            raise ConcurrencyConflict("row changed")
        return value * 2

    assert run_with_commit_retry("flaky", flaky, 21, max_attempts=5, log=log) == 42
    assert len(calls) == 3


def test_exhausted_budget_reraises_conflict(caplog) -> None:
    calls = []

    def always_conflicts():
        calls.append(1)
        raise ConcurrencyConflict("row changed")

    with caplog.at_level(logging.WARNING, logger="tests.commit_retry"):
        with pytest.raises(ConcurrencyConflict):
            run_with_commit_retry("always_conflicts", always_conflicts, max_attempts=3, log=log)

    assert len(calls) == 3
    assert "Commit retry budget exhausted" in caplog.text


def test_other_errors_are_not_retried() -> None:
    calls = []

    def missing():
        calls.append(1)
        raise SlotNotFound("slot-1")

    with pytest.raises(SlotNotFound):
        run_with_commit_retry("missing", missing, max_attempts=5, log=log)

    assert len(calls) == 1
