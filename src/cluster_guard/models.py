from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Optional

DEFAULT_INTERVAL = 300
DEFAULT_NAMESPACE = "lock"
KEY_SEPARATOR = ":"


class Severity(IntEnum):
    """
    Check severities, valued as monitoring exit codes.
    """

    OK = 0
    WARNING = 1
    CRITICAL = 2
    UNKNOWN = 3


class Outcome(str, Enum):
    """
    What happened to the lock during one invocation.

    Transitions:
        start -> ACQUIRED | FAILED           (set-if-absent succeeded)
        start -> HELD_VALID | HELD_STALE     (key exists, timestamp read)
        start -> SLIPPED                     (key vanished before the read)
        start -> ERROR                       (store unreachable or undecodable)
    """

    ACQUIRED = "acquired"
    HELD_VALID = "held-valid"
    HELD_STALE = "held-stale"
    SLIPPED = "slipped"
    FAILED = "failed"
    ERROR = "error"


@dataclass(frozen=True)
class CheckStatus:
    """
    A severity plus a human-readable message.

    Returned by check callbacks and consumed by the status reporter.
    """

    severity: Severity
    message: str

    @classmethod
    def ok(cls, message: str) -> "CheckStatus":
        return cls(Severity.OK, message)

    @classmethod
    def warning(cls, message: str) -> "CheckStatus":
        return cls(Severity.WARNING, message)

    @classmethod
    def critical(cls, message: str) -> "CheckStatus":
        return cls(Severity.CRITICAL, message)

    @classmethod
    def unknown(cls, message: str) -> "CheckStatus":
        return cls(Severity.UNKNOWN, message)


@dataclass(frozen=True)
class CheckResult:
    """
    Result returned from LockCoordinator.run() and run_check().

    ``error`` is set for FAILED (the CallbackError) and ERROR (the
    infrastructure exception) outcomes.
    """

    outcome: Outcome
    severity: Severity
    message: str
    duration_ms: int = 0
    error: Optional[Exception] = None

    @property
    def ran(self) -> bool:
        return self.outcome in (Outcome.ACQUIRED, Outcome.FAILED)

    @property
    def exit_code(self) -> int:
        return int(self.severity)


def lock_key(cluster_name: str, check: str, namespace: str = DEFAULT_NAMESPACE) -> str:
    """
    Build the fleet-wide lock key for one recurring check.

    Components may not be empty or contain the separator, so distinct
    (namespace, cluster, check) triples never map to the same key.
    """
    for label, value in (("namespace", namespace), ("cluster_name", cluster_name), ("check", check)):
        if not value:
            raise ValueError(f"Lock key {label} must not be empty")
        if KEY_SEPARATOR in value:
            raise ValueError(f"Lock key {label} {value!r} must not contain {KEY_SEPARATOR!r}")

    return KEY_SEPARATOR.join((namespace, cluster_name, check))


def resolve_interval(interval: Optional[int]) -> int:
    if interval is None:
        return DEFAULT_INTERVAL
    if isinstance(interval, bool) or not isinstance(interval, int) or interval <= 0:
        raise ValueError(f"Lock interval must be a positive number of seconds, got {interval!r}")
    return interval
