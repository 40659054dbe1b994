import time
import traceback
from typing import Callable, Optional

import structlog

from .errors import CallbackError, GuardError, ProtocolError, StoreConnectionError
from .models import CheckResult, CheckStatus, Outcome, resolve_interval
from .store import KeyValueStore

logger = structlog.get_logger(__name__)

PROBE_TOKEN = "hello"

CheckCallback = Callable[[], Optional[CheckStatus]]


class LockCoordinator:
    """
    Runs a recurring check on at most one fleet member per interval.

    Guarantees:
    - For one lock key and one interval window, at most one callback runs
      across every process sharing the store
    - The lock is force-released after the callback, whether it succeeded
      or failed
    - A lock left behind by a crashed holder is cleared once older than
      the interval
    - Contention resolves to OK or WARNING and never raises

    Does NOT:
    - Retry anything (the periodic schedule is the retry)
    - Lock in-process; mutual exclusion is the store's set-if-absent
    - Tolerate clock skew larger than the interval
    """

    def __init__(
        self,
        store: KeyValueStore,
        clock: Callable[[], float] = time.time,
        probe_token: str = PROBE_TOKEN,
        force_unlock: bool = False,
    ):
        self._store = store
        self._clock = clock
        self._probe_token = probe_token
        self._force_unlock = force_unlock

    def run(
        self,
        key: str,
        interval: Optional[int],
        callback: CheckCallback,
    ) -> CheckResult:
        """
        Run ``callback`` if this caller wins the lock for ``key``.

        Algorithm:
        1. Liveness probe (fatal on mismatch)
        2. SET key=now IF-NOT-EXISTS
        3. Won: set TTL, run callback, force-expire, report callback status
        4. Lost: GET key and compare its age with the interval
           - gone: SLIPPED (OK)
           - older than interval: force-expire, HELD_STALE (WARNING)
           - otherwise: HELD_VALID (OK)

        Raises StoreConnectionError, ProtocolError or ReplyError on
        infrastructure failure.
        """
        interval = resolve_interval(interval)
        started = time.monotonic()

        self._verify_connection()
        now = int(self._clock())

        if self._force_unlock:
            logger.warning("Force-unlocking before acquisition", key=key)
            self._release(key)

        # 1. Atomic creation; the store lets exactly one caller through
        if self._store.set_if_absent(key, str(now)):
            return self._run_locked(key, interval, callback, started)

        # 2. Contention: inspect the holder's acquisition time
        lock_value = self._store.get(key)

        if lock_value is None:
            # Holder released (or TTL fired) between our SET and GET
            logger.info("Lock slipped away", key=key)
            return self._result(Outcome.SLIPPED, CheckStatus.ok("Lock slipped away"), started)

        acquired_at = self._parse_timestamp(key, lock_value)
        elapsed = now - acquired_at

        if elapsed > interval:
            self._release(key)
            logger.warning("Stale lock expired", key=key, elapsed=elapsed, interval=interval)
            return self._result(
                Outcome.HELD_STALE,
                CheckStatus.warning(
                    f"Lock problem: held for {elapsed} seconds "
                    f"({now} - {acquired_at} > {interval}), expired immediately"
                ),
                started,
            )

        remaining = interval - elapsed
        logger.info("Lock held elsewhere", key=key, remaining=remaining)
        return self._result(
            Outcome.HELD_VALID,
            CheckStatus.ok(f"Lock expires in {remaining} seconds"),
            started,
        )

    # ---------- helpers ----------

    def _run_locked(self, key: str, interval: int, callback: CheckCallback, started: float) -> CheckResult:
        logger.info("Lock acquired", key=key, interval=interval)

        # Bounds how long the key outlives us if this process dies
        try:
            self._store.expire(key, interval)
        except GuardError:
            logger.error("Could not set lock TTL, releasing", key=key, interval=interval)
            self._release_after_error(key)
            raise

        status = None
        failure = None
        try:
            status = callback()
            if status is not None and not isinstance(status, CheckStatus):
                raise TypeError(f"Check returned {type(status).__name__}, expected CheckStatus")
        except Exception as exc:
            status = None
            failure = CallbackError(exc, traceback.format_exc())
            logger.error(
                "Check failed while holding lock",
                key=key,
                error=failure.message,
                error_type=failure.origin,
            )
        finally:
            # Also runs on KeyboardInterrupt / SystemExit from the check
            self._release(key)

        if failure is not None:
            return self._result(
                Outcome.FAILED,
                CheckStatus.critical(f"Releasing lock due to error: {failure}"),
                started,
                error=failure,
            )

        if status is None:
            status = CheckStatus.unknown("Check didn't report status")

        logger.info("Lock released", key=key, severity=status.severity.name)
        return self._result(Outcome.ACQUIRED, status, started)

    def _verify_connection(self) -> None:
        try:
            reply = self._store.echo(self._probe_token)
        except GuardError as exc:
            raise StoreConnectionError("Store connection check failed", str(exc)) from exc

        if reply != self._probe_token:
            raise StoreConnectionError(
                "Store connection check failed",
                f"expected {self._probe_token!r}, got {reply!r}",
            )

    def _release(self, key: str) -> None:
        self._store.expire(key, 0)

    def _release_after_error(self, key: str) -> None:
        """Release while another store error is already propagating."""
        try:
            self._release(key)
        except GuardError as exc:
            # The caller re-raises the first error; the staleness rule clears the key later
            logger.error("Could not release lock", key=key, error=str(exc))

    @staticmethod
    def _parse_timestamp(key: str, value: str) -> int:
        try:
            return int(value)
        except ValueError:
            raise ProtocolError(f"Lock value at {key} is not a timestamp", repr(value)) from None

    @staticmethod
    def _result(
        outcome: Outcome,
        status: CheckStatus,
        started: float,
        error: Optional[Exception] = None,
    ) -> CheckResult:
        return CheckResult(
            outcome=outcome,
            severity=status.severity,
            message=status.message,
            duration_ms=int((time.monotonic() - started) * 1000),
            error=error,
        )
