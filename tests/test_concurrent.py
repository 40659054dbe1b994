"""
Tests proving at most one fleet member runs a check per interval.

Validates that:
- Coordinators racing on one fresh key run the check exactly once
- Losers observe contention and never run their check
- Different checks never contend with each other
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import List

from cluster_guard.guard import LockCoordinator
from cluster_guard.models import CheckResult, CheckStatus, Outcome, Severity, lock_key
from cluster_guard.store import InMemoryStore


# -------- tests --------

def test_two_coordinators_racing_run_once():
    """
    Scenario:
    Two independently-built coordinators start on the same fresh key.

    Expectation:
    - Exactly one observes creation and runs its check
    - The other observes contention and does not run its check
    """

    store = InMemoryStore()
    key = lock_key("prod-east", "check_http")
    start = threading.Barrier(2)
    loser_done = threading.Event()
    ran: List[str] = []

    def make_check(name: str):
        def check():
            ran.append(name)
            # Hold the lock until the other side has looked at it
            loser_done.wait(timeout=5)
            return CheckStatus.ok(f"{name} ran")
        return check

    def member(name: str) -> CheckResult:
        coordinator = LockCoordinator(store)
        start.wait(timeout=5)
        result = coordinator.run(key, 60, make_check(name))
        if result.outcome != Outcome.ACQUIRED:
            loser_done.set()
        return result

    with ThreadPoolExecutor(max_workers=2) as executor:
        futures = [executor.submit(member, name) for name in ("a", "b")]
        results = [f.result() for f in as_completed(futures)]

    assert len(ran) == 1

    acquired = [r for r in results if r.outcome == Outcome.ACQUIRED]
    assert len(acquired) == 1
    assert acquired[0].message == f"{ran[0]} ran"

    contended = [r for r in results if r.outcome != Outcome.ACQUIRED]
    assert len(contended) == 1
    assert contended[0].outcome == Outcome.HELD_VALID
    assert contended[0].severity == Severity.OK
    assert contended[0].ran is False

    assert key not in store


def test_fleet_contention_never_escalates():
    """
    Scenario:
    10 members race on the same key while the winner is slow.

    Expectation:
    - Check executes EXACTLY once
    - Every loser reports OK contention, never an error
    """

    store = InMemoryStore()
    key = lock_key("prod-east", "check_disk")
    members = 10

    execution_count = 0
    counter_lock = threading.Lock()
    finished = threading.Condition()
    losers_finished = 0

    def check():
        nonlocal execution_count
        with counter_lock:
            execution_count += 1
        with finished:
            finished.wait_for(lambda: losers_finished == members - 1, timeout=5)
        return CheckStatus.ok("ran")

    def member() -> CheckResult:
        nonlocal losers_finished
        result = LockCoordinator(store).run(key, 300, check)
        if result.outcome != Outcome.ACQUIRED:
            with finished:
                losers_finished += 1
                finished.notify_all()
        return result

    results: List[CheckResult] = []
    with ThreadPoolExecutor(max_workers=members) as executor:
        futures = [executor.submit(member) for _ in range(members)]
        for future in as_completed(futures):
            results.append(future.result())

    # CRITICAL: check executed once
    assert execution_count == 1

    assert len([r for r in results if r.outcome == Outcome.ACQUIRED]) == 1

    losers = [r for r in results if r.outcome != Outcome.ACQUIRED]
    assert len(losers) == members - 1
    for r in losers:
        assert r.outcome in (Outcome.HELD_VALID, Outcome.SLIPPED)
        assert r.severity == Severity.OK


def test_distinct_checks_do_not_contend():
    store = InMemoryStore()
    ran: List[str] = []

    def make_check(name: str):
        def check():
            ran.append(name)
            time.sleep(0.01)
            return CheckStatus.ok(name)
        return check

    keys = [lock_key("prod-east", "check_http"), lock_key("prod-west", "check_http")]

    with ThreadPoolExecutor(max_workers=2) as executor:
        futures = [
            executor.submit(LockCoordinator(store).run, key, 60, make_check(key))
            for key in keys
        ]
        results = [f.result() for f in futures]

    assert sorted(ran) == sorted(keys)
    assert all(r.outcome == Outcome.ACQUIRED for r in results)


def test_lock_expires_on_its_own_after_a_crash():
    """
    Scenario:
    Winner sets its TTL and then dies without releasing.

    Expectation:
    - Store forgets the key once the TTL elapses, so the next cycle acquires
    """

    now = [1_700_000_000.0]
    store = InMemoryStore(clock=lambda: now[0])
    key = lock_key("prod-east", "check_http")

    store.set_if_absent(key, str(int(now[0])))
    store.expire(key, 60)

    now[0] += 30
    assert key in store

    now[0] += 31
    assert key not in store

    result = LockCoordinator(store, clock=lambda: now[0]).run(key, 60, lambda: CheckStatus.ok("ran"))
    assert result.outcome == Outcome.ACQUIRED
