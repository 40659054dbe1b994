"""Aggregate threshold evaluation for cluster checks."""

from typing import Any, Callable, Mapping, Optional

import structlog

from .models import CheckStatus

logger = structlog.get_logger(__name__)


def non_ok_percentage(ok: int, total: int) -> int:
    """Share of non-ok results, rounded to a whole percent."""
    return round((1 - ok / total) * 100)


def evaluate_aggregate(
    aggregate: Mapping[str, Any],
    warning: Optional[int] = None,
    critical: Optional[int] = None,
) -> CheckStatus:
    ok = aggregate.get("ok")
    total = aggregate.get("total")

    if not isinstance(ok, int) or not isinstance(total, int) or total <= 0:
        return CheckStatus.warning("No results in aggregate")

    pct = non_ok_percentage(ok, total)
    message = f"Number of non-zero results exceeds threshold ({pct}% non-zero)"

    if critical is not None and pct >= critical:
        return CheckStatus.critical(message)
    if warning is not None and pct >= warning:
        return CheckStatus.warning(message)

    return CheckStatus.ok(f"Number of non-zero results: {ok}/{total} {pct}% - OK")


def threshold_callback(
    fetch: Callable[[], Mapping[str, Any]],
    warning: Optional[int] = None,
    critical: Optional[int] = None,
) -> Callable[[], CheckStatus]:
    """
    Wrap an aggregate fetcher into a LockCoordinator callback.

    ``fetch`` is expected to return a mapping with ``ok`` and ``total``
    counts; any exception it raises is left to the coordinator.
    """

    def check() -> CheckStatus:
        status = evaluate_aggregate(fetch(), warning=warning, critical=critical)
        logger.info("Aggregate evaluated", severity=status.severity.name, message=status.message)
        return status

    return check
