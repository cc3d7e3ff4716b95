"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to an error category and is referenced by the matching
:class:`~ovrmnd.exceptions.OvrmndError` subclass.  Shell wrappers can inspect
``$?`` to tell a missing parameter from an upstream outage without parsing
stderr.

Example::

    $ ovrmnd call github.getRepo owner=octocat
    $ echo $?
    2   # EXIT_INVALID_USAGE -- the ``repo`` path parameter is missing
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred, or at least one batch item failed."""

EXIT_INVALID_USAGE = 2
"""Invalid arguments: bad target, missing path parameter, malformed batch JSON."""

EXIT_AUTH_FAILURE = 3
"""Authentication was rejected by the upstream API (HTTP 401/403)."""

EXIT_NOT_FOUND = 4
"""The endpoint, alias or service is unknown, or the API answered HTTP 404."""

EXIT_SERVER_ERROR = 5
"""The upstream API returned an error status (other 4xx or 5xx)."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""

EXIT_CONFIG_ERROR = 7
"""A service configuration file could not be parsed or validated."""
