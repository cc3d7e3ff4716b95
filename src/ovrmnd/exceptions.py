"""Exception hierarchy for ovrmnd.

All exceptions inherit from :class:`OvrmndError`, which carries a stable
string ``code`` (shown in JSON error output) and an ``exit_code`` from
:mod:`ovrmnd.exit_codes`.  The core never lets these escape a public
boundary: :class:`~ovrmnd.client.executor.RequestExecutor` converts them to a
failed :class:`~ovrmnd.models.ApiResult` via :meth:`OvrmndError.to_api_error`.
The CLI entry point catches whatever reaches it and exits with
``exc.exit_code``.

Subclass hierarchy::

    OvrmndError              (exit 1)
    +-- ParamRequiredError   (exit 2)
    +-- ParamInvalidError    (exit 2)
    +-- EndpointNotFoundError(exit 4)
    +-- ConfigError          (exit 7)
    +-- AuthError            (exit 3)
    +-- TransportError       (exit 6)
    +-- UpstreamHTTPError    (exit 3/4/5 depending on status)
    +-- GraphQLError         (exit 5)
    +-- CacheIOError         (exit 1, recovered locally)

:class:`TransformPathError` is a plain :class:`ValueError`: it only ever
travels inside the transform pipeline, which logs it and moves on.
"""

from __future__ import annotations

from typing import Any, Optional

from ovrmnd.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CONFIG_ERROR,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_NOT_FOUND,
    EXIT_SERVER_ERROR,
)


class OvrmndError(Exception):
    """Base exception for all ovrmnd errors.

    Args:
        message: Human-readable error description printed to stderr.
        details: Optional structured context (kept in JSON output).
        help: Optional next-step suggestion for the user.
        exit_code: Optional override for the class-level exit code.
    """

    code: str = "UNKNOWN_ERROR"
    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(
        self,
        message: str,
        details: Any = None,
        help: Optional[str] = None,
        exit_code: int | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details
        self.help = help
        if exit_code is not None:
            self.exit_code = exit_code

    def to_api_error(self):
        """Convert to the :class:`~ovrmnd.models.ApiError` result shape."""
        from ovrmnd.models import ApiError

        return ApiError(code=self.code, message=self.message, details=self.details, help=self.help)


class ParamRequiredError(OvrmndError):
    """Raised when one or more path parameters are missing.

    Every missing name is reported at once, in template order.
    """

    code = "PARAM_REQUIRED"
    exit_code = EXIT_INVALID_USAGE

    def __init__(self, missing: list[str], endpoint: str = "") -> None:
        self.missing = list(missing)
        names = ", ".join(self.missing)
        noun = "parameter" if len(self.missing) == 1 else "parameters"
        where = f" for endpoint '{endpoint}'" if endpoint else ""
        super().__init__(
            f"Missing required path {noun}{where}: {names}",
            details={"missing": self.missing},
            help=" ".join(f"{name}=<value>" for name in self.missing),
        )


class ParamInvalidError(OvrmndError):
    """Raised for malformed parameters: bad ``key=value`` pairs, bad batch JSON, bad target."""

    code = "PARAM_INVALID"
    exit_code = EXIT_INVALID_USAGE


class EndpointNotFoundError(OvrmndError):
    """Raised when a service, endpoint, operation or alias name does not resolve."""

    code = "ENDPOINT_NOT_FOUND"
    exit_code = EXIT_NOT_FOUND


class ConfigError(OvrmndError):
    """Raised for configuration problems (invalid YAML, failed validation, unset env vars)."""

    code = "CONFIG_INVALID"
    exit_code = EXIT_CONFIG_ERROR


class AuthError(OvrmndError):
    """Raised when the authentication block of a service cannot be applied."""

    code = "AUTH_INVALID"
    exit_code = EXIT_AUTH_FAILURE


class TransportError(OvrmndError):
    """Raised by the transport on network-level failures (timeout, DNS, connection refused).

    Named with the ``Transport`` prefix to avoid shadowing the built-in
    ``ConnectionError``.
    """

    code = "TRANSPORT_ERROR"
    exit_code = EXIT_CONNECTION_ERROR


class UpstreamHTTPError(OvrmndError):
    """The upstream API answered with a non-2xx status.

    Args:
        status_code: The HTTP status code.
        body: The decoded response body (JSON value or text).
        reason: Optional reason phrase.
    """

    code = "UPSTREAM_HTTP_ERROR"
    exit_code = EXIT_SERVER_ERROR

    def __init__(self, status_code: int, body: Any = None, reason: str = "") -> None:
        self.status_code = status_code
        self.body = body
        message = f"HTTP {status_code}: {reason}" if reason else f"HTTP {status_code}"
        super().__init__(
            message,
            details={"status_code": status_code, "body": body},
            exit_code=self.exit_code_for_status(status_code),
        )

    @staticmethod
    def exit_code_for_status(status_code: Optional[int]) -> int:
        if status_code in (401, 403):
            return EXIT_AUTH_FAILURE
        if status_code == 404:
            return EXIT_NOT_FOUND
        return EXIT_SERVER_ERROR


class GraphQLError(OvrmndError):
    """The GraphQL endpoint returned an ``errors`` array."""

    code = "GRAPHQL_ERROR"
    exit_code = EXIT_SERVER_ERROR

    def __init__(self, messages: list[str], status_code: int = 200, response: Any = None) -> None:
        self.messages = list(messages)
        self.status_code = status_code
        first = self.messages[0] if self.messages else "GraphQL error occurred"
        super().__init__(
            first,
            details={"errors": self.messages, "status_code": status_code, "response": response},
        )


class CacheIOError(OvrmndError):
    """A cache read or write failed.  Always recovered inside the cache store."""

    code = "CACHE_IO_ERROR"


class TransformPathError(ValueError):
    """A transform path could not be parsed or written."""


def exit_code_for(error: Any) -> int:
    """Map an :class:`~ovrmnd.models.ApiError` back to a process exit code."""
    if error.code == UpstreamHTTPError.code:
        details = error.details if isinstance(error.details, dict) else {}
        return UpstreamHTTPError.exit_code_for_status(details.get("status_code"))
    for cls in (
        ParamRequiredError,
        ParamInvalidError,
        EndpointNotFoundError,
        ConfigError,
        AuthError,
        TransportError,
        GraphQLError,
    ):
        if cls.code == error.code:
            return cls.exit_code
    return EXIT_GENERIC_FAILURE
