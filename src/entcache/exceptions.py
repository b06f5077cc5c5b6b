"""Errors raised while fetching entities or loading API profiles.

A missing entity is not an error inside the cache: ``get`` returns
``None`` and ``delete`` returns ``False``. Errors start where the cache
meets the outside world. The HTTP client maps status codes onto them, the
services raise them for bodies that are not entities, and the config layer
raises them for unusable profiles.

Each class carries the process exit code :func:`entcache.app.main` uses,
so a script can tell "no such entity" (4) from "API down" (5 or 6).

Subclass hierarchy::

    EntcacheError (exit 1)
    +-- InvalidUsageError   (exit 2)
    +-- AuthError           (exit 3)
    +-- NotFoundError       (exit 4)
    +-- ServerError         (exit 5)
    +-- ConnectionError_    (exit 6)
    +-- ResponseShapeError  (exit 7)
    +-- RequestError        (exit 8)
    +-- ConfigError         (exit 1)
"""

from entcache.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_NOT_FOUND,
    EXIT_REQUEST_ERROR,
    EXIT_RESPONSE_SHAPE,
    EXIT_SERVER_ERROR,
)


class EntcacheError(Exception):
    """Base class; ``except EntcacheError`` covers every failure listed above.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(EntcacheError):
    """Bad CLI input, e.g. a ``--param`` without ``=``."""

    exit_code = EXIT_INVALID_USAGE


class AuthError(EntcacheError):
    """The entity API refused the request (401 or 403)."""

    exit_code = EXIT_AUTH_FAILURE


class NotFoundError(EntcacheError):
    """No such entity: a 404, or an empty list from a single-entity GET."""

    exit_code = EXIT_NOT_FOUND


class ServerError(EntcacheError):
    """The entity API failed (5xx) after all retries."""

    exit_code = EXIT_SERVER_ERROR


class ConnectionError_(EntcacheError):
    """The entity API could not be reached, even after retrying.

    Named with a trailing underscore to avoid shadowing the built-in
    ``ConnectionError``.
    """

    exit_code = EXIT_CONNECTION_ERROR


class ResponseShapeError(EntcacheError):
    """Raised when a response body cannot be mapped to entities.

    For example a query endpoint answering with a JSON object instead of a
    list, or a list item without an identity key.
    """

    exit_code = EXIT_RESPONSE_SHAPE


class RequestError(EntcacheError):
    """The API rejected the request body or query (any other 4xx)."""

    exit_code = EXIT_REQUEST_ERROR


class ConfigError(EntcacheError):
    """No usable profile: none selected, missing, or not valid JSON."""

    exit_code = EXIT_GENERIC_FAILURE
