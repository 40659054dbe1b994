"""
Fleet-wide run-once guard for recurring cluster checks.

Public API surface for the cluster_guard package.
Internal modules should not be imported directly by consumers.
"""

from .config import ClusterCheckConfig, StoreConfig, load_config
from .errors import (
    CallbackError,
    ConfigurationError,
    GuardError,
    ProtocolError,
    ReplyError,
    StoreConnectionError,
)
from .guard import LockCoordinator
from .logging import configure_logging
from .models import CheckResult, CheckStatus, Outcome, Severity, lock_key
from .protocol import ProtocolClient
from .runner import run_check, run_threshold_check
from .store import InMemoryStore, KeyValueStore
from .thresholds import evaluate_aggregate, threshold_callback

__all__ = [
    "LockCoordinator",
    "ProtocolClient",
    "KeyValueStore",
    "InMemoryStore",
    "CheckResult",
    "CheckStatus",
    "Outcome",
    "Severity",
    "lock_key",
    "run_check",
    "run_threshold_check",
    "evaluate_aggregate",
    "threshold_callback",
    "ClusterCheckConfig",
    "StoreConfig",
    "load_config",
    "configure_logging",
    "GuardError",
    "StoreConnectionError",
    "ProtocolError",
    "ReplyError",
    "CallbackError",
    "ConfigurationError",
]

__version__ = "0.1.0"
