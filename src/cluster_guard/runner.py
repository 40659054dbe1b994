import time
from typing import Any, Callable, Mapping, Optional

import structlog

from .config import ClusterCheckConfig
from .errors import ProtocolError, ReplyError, StoreConnectionError
from .guard import CheckCallback, LockCoordinator
from .logging import configure_logging
from .models import CheckResult, Outcome, Severity
from .protocol import ProtocolClient
from .thresholds import threshold_callback

logger = structlog.get_logger(__name__)

Connector = Callable[[str, int, Optional[float]], ProtocolClient]

INFRASTRUCTURE_ERRORS = (StoreConnectionError, ProtocolError, ReplyError)


def run_check(
    config: ClusterCheckConfig,
    callback: CheckCallback,
    connect: Connector = ProtocolClient.connect,
    clock: Callable[[], float] = time.time,
) -> CheckResult:
    """
    Run one cycle of a cluster check under its fleet-wide lock.

    Store and protocol failures become a CRITICAL result instead of
    propagating; the connection is always closed.
    """
    key = config.lock_key
    started = time.monotonic()
    client = None

    try:
        client = connect(config.store.host, config.store.port, config.store.timeout)
        coordinator = LockCoordinator(client, clock=clock, force_unlock=config.force_unlock)
        result = coordinator.run(key, config.effective_interval, callback)
    except INFRASTRUCTURE_ERRORS as e:
        logger.error("Cluster check aborted", key=key, error=str(e), error_type=type(e).__name__)
        return CheckResult(
            outcome=Outcome.ERROR,
            severity=Severity.CRITICAL,
            message=f"{e} ({type(e).__name__})",
            duration_ms=int((time.monotonic() - started) * 1000),
            error=e,
        )
    finally:
        if client is not None:
            client.close()

    logger.info(
        "Cluster check finished",
        key=key,
        outcome=result.outcome.value,
        severity=result.severity.name,
        duration_ms=result.duration_ms,
    )
    return result


def run_threshold_check(
    config: ClusterCheckConfig,
    fetch: Callable[[], Mapping[str, Any]],
    connect: Connector = ProtocolClient.connect,
    clock: Callable[[], float] = time.time,
) -> CheckResult:
    """
    Entry point for an aggregate cluster check.

    Applies the configured log level, then evaluates the fetched aggregate
    against the configured warning/critical percentages under the lock.
    """
    configure_logging(config.log_level)
    callback = threshold_callback(fetch, warning=config.warning, critical=config.critical)
    return run_check(config, callback, connect=connect, clock=clock)
