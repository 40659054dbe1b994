"""
Tests for aggregate threshold evaluation.

Validates that one rounded non-ok percentage drives both the warning and
the critical comparison.
"""

import pytest

from cluster_guard.guard import LockCoordinator
from cluster_guard.models import CheckStatus, Outcome, Severity
from cluster_guard.store import InMemoryStore
from cluster_guard.thresholds import evaluate_aggregate, non_ok_percentage, threshold_callback


@pytest.mark.parametrize(
    "ok,total,expected",
    [
        (10, 10, 0),
        (8, 10, 20),
        (2, 3, 33),
        (1, 3, 67),
        (0, 7, 100),
    ],
)
def test_non_ok_percentage_rounds(ok, total, expected):
    assert non_ok_percentage(ok, total) == expected


def test_below_thresholds_is_ok():
    status = evaluate_aggregate({"ok": 9, "total": 10}, warning=20, critical=50)

    assert status == CheckStatus.ok("Number of non-zero results: 9/10 10% - OK")


def test_threshold_is_inclusive():
    status = evaluate_aggregate({"ok": 8, "total": 10}, warning=20, critical=50)

    assert status.severity == Severity.WARNING
    assert status.message == "Number of non-zero results exceeds threshold (20% non-zero)"


def test_critical_wins_over_warning():
    status = evaluate_aggregate({"ok": 1, "total": 3}, warning=20, critical=67)

    assert status.severity == Severity.CRITICAL
    assert "67% non-zero" in status.message


def test_rounded_value_is_used_for_both_comparisons():
    """
    Scenario:
    2/3 ok is 33.3% non-ok; thresholds sit right on the rounded value.

    Expectation:
    - The rounded 33 is compared against both thresholds
    """

    assert evaluate_aggregate({"ok": 2, "total": 3}, warning=33).severity == Severity.WARNING
    assert evaluate_aggregate({"ok": 2, "total": 3}, critical=33).severity == Severity.CRITICAL
    assert evaluate_aggregate({"ok": 2, "total": 3}, warning=34, critical=34).severity == Severity.OK


def test_unset_thresholds_never_alert():
    assert evaluate_aggregate({"ok": 0, "total": 5}).severity == Severity.OK


@pytest.mark.parametrize("aggregate", [{}, {"ok": 1}, {"ok": 0, "total": 0}, {"ok": "1", "total": "2"}])
def test_empty_or_malformed_aggregate_warns(aggregate):
    assert evaluate_aggregate(aggregate, warning=10) == CheckStatus.warning("No results in aggregate")


def test_threshold_callback_runs_under_lock():
    store = InMemoryStore()
    fetched = []

    def fetch():
        fetched.append(1)
        return {"ok": 5, "total": 10}

    result = LockCoordinator(store).run("lock:c:k", 60, threshold_callback(fetch, warning=30, critical=60))

    assert fetched == [1]
    assert result.outcome == Outcome.ACQUIRED
    assert result.severity == Severity.WARNING
    assert "50% non-zero" in result.message


def test_fetch_failure_becomes_critical_and_releases():
    store = InMemoryStore()

    def fetch():
        raise RuntimeError("Error querying api: 500")

    result = LockCoordinator(store).run("lock:c:k", 60, threshold_callback(fetch))

    assert result.outcome == Outcome.FAILED
    assert result.severity == Severity.CRITICAL
    assert "Error querying api: 500" in result.message
    assert "lock:c:k" not in store
