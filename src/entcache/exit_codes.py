"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~entcache.exceptions.EntcacheError` subclass.
Shell wrappers can inspect the exit code to determine the failure class
without parsing stderr.

Example::

    $ entcache get messages 99
    $ echo $?
    4   # EXIT_NOT_FOUND -- the entity does not exist on the server
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required parameters."""

EXIT_AUTH_FAILURE = 3
"""The remote API rejected the request as unauthenticated or forbidden."""

EXIT_NOT_FOUND = 4
"""The requested entity was not found (HTTP 404)."""

EXIT_SERVER_ERROR = 5
"""The remote API returned an HTTP 5xx server error."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""

EXIT_RESPONSE_SHAPE = 7
"""The API answered with a payload that cannot be mapped to entities."""

EXIT_REQUEST_ERROR = 8
"""The remote API rejected the request with a 4xx status other than 401/403/404."""
