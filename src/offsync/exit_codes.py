"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to an error category and is referenced by the matching
:class:`~offsync.exceptions.OffsyncError` subclass, so wrapper scripts can
tell a dead network apart from a broken cache directory without parsing
stderr.

Example::

    $ offsync sync run
    $ echo $?
    8   # EXIT_STORE_ERROR -- the persistent store could not be read
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or an unknown sync tag."""

EXIT_NOT_FOUND = 4
"""Nothing was cached for the request and no network path was available."""

EXIT_NETWORK_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""

EXIT_STORE_ERROR = 8
"""The persistent store could not be read or written."""
