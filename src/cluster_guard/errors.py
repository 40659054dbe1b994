"""
Error taxonomy for cluster_guard.

Infrastructure failures (connection, protocol, server error replies) and
callback failures are reported as CRITICAL. Lock contention is never an
error and never raises.
"""

from typing import Optional


class GuardError(Exception):
    """Base exception for all cluster_guard errors."""

    def __init__(self, message: str, details: Optional[str] = None):
        self.message = message
        self.details = details
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class StoreConnectionError(GuardError, ConnectionError):
    """
    The store connection could not be established or verified.

    Raised on transport failure, on a dropped socket and when the
    liveness probe does not echo the expected token.
    """


class ProtocolError(GuardError):
    """A reply could not be decoded (bad header, short read, bad terminator)."""


class ReplyError(GuardError):
    """The store answered with an error reply (``-ERR ...``)."""

    def __init__(self, server_message: str):
        self.server_message = server_message
        super().__init__("Store error reply", server_message)


class CallbackError(GuardError):
    """The protected work failed while the lock was held."""

    def __init__(self, original_error: BaseException, traceback_text: str = ""):
        self.original_error = original_error
        self.traceback_text = traceback_text
        super().__init__(str(original_error) or type(original_error).__name__)

    @property
    def origin(self) -> str:
        return type(self.original_error).__name__

    def __str__(self) -> str:
        text = f"{self.message} ({self.origin})"
        if self.traceback_text:
            text = f"{text}\n{self.traceback_text.rstrip()}"
        return text


class ConfigurationError(GuardError):
    """Invalid or unreadable check configuration."""

    def __init__(self, message: str, config_file: Optional[str] = None, details: Optional[str] = None):
        self.config_file = config_file
        super().__init__(message, details)
