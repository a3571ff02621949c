"""Exception hierarchy for offsync.

All exceptions inherit from :class:`OffsyncError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`offsync.exit_codes`.

Inside the interception layer :class:`NetworkError` and
:class:`NotFoundError` never escape a caching strategy: they are turned
into the route's fallback response. :class:`StoreError` is logged and the
surrounding operation continues in degraded mode. Only the CLI lets these
errors reach :func:`offsync.app.main`, which exits with ``exit_code``.

Subclass hierarchy::

    OffsyncError (exit 1)
    +-- InvalidUsageError   (exit 2)
    +-- NotFoundError       (exit 4)
    +-- NetworkError        (exit 6)
    +-- StoreError          (exit 8)
    +-- ConfigError         (exit 1)
"""

from offsync.exit_codes import (
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_NETWORK_ERROR,
    EXIT_NOT_FOUND,
    EXIT_STORE_ERROR,
)


class OffsyncError(Exception):
    """Base exception for all offsync errors.

    Args:
        message: Human-readable error description.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(OffsyncError):
    """Raised for invalid CLI arguments, unknown sync tags or control messages."""

    exit_code = EXIT_INVALID_USAGE


class NotFoundError(OffsyncError):
    """Raised when no cached entry exists and the network path has failed."""

    exit_code = EXIT_NOT_FOUND


class NetworkError(OffsyncError):
    """Raised when a fetch fails at the transport level or times out."""

    exit_code = EXIT_NETWORK_ERROR


class StoreError(OffsyncError):
    """Raised when the persistent store cannot be read or written."""

    exit_code = EXIT_STORE_ERROR


class ConfigError(OffsyncError):
    """Raised for configuration problems (invalid JSON, failed validation)."""

    exit_code = EXIT_GENERIC_FAILURE
