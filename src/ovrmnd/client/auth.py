"""Apply a service's authentication block to outgoing request headers.

Two schemes are supported:

* ``bearer`` -- ``Authorization: Bearer <token>``.
* ``apikey`` -- ``<header>: <token>``, with ``X-API-Key`` as the default
  header name.

The token has already been interpolated from the environment when the service
file was loaded (see :func:`~ovrmnd.config.load_service_file`).
"""

from __future__ import annotations

import logging
import re

from ovrmnd.cache.keys import SECRET_HEADERS
from ovrmnd.exceptions import AuthError
from ovrmnd.models import ServiceConfig

logger = logging.getLogger(__name__)

DEFAULT_API_KEY_HEADER = "X-API-Key"

_HEADER_NAME_RE = re.compile(r"^[A-Za-z0-9-]+$")


def _auth_header_name(service: ServiceConfig) -> str | None:
    auth = service.authentication
    if auth is None:
        return None
    if auth.type == "bearer":
        return "Authorization"
    return auth.header or DEFAULT_API_KEY_HEADER


def apply_auth(service: ServiceConfig, headers: dict[str, str]) -> dict[str, str]:
    """Return a copy of *headers* with the service's credential added.

    Args:
        service: The service whose ``authentication`` block to apply.
        headers: Headers assembled so far.

    Returns:
        A new dict; *headers* is not modified.  Unchanged when the service
        has no authentication.

    Raises:
        AuthError: If the token is empty or the API-key header name is
            not a valid HTTP header name.
    """
    auth = service.authentication
    if auth is None:
        return dict(headers)

    if not auth.token or not auth.token.strip():
        raise AuthError(
            f"Authentication token for service '{service.service_name}' is empty",
            help="Ensure the environment variable referenced by the token is set",
        )

    merged = dict(headers)
    if auth.type == "bearer":
        merged["Authorization"] = f"Bearer {auth.token}"
        logger.debug("Applied bearer authentication for %s", service.service_name)
        return merged

    header = _auth_header_name(service)
    if not _HEADER_NAME_RE.match(header):
        raise AuthError(
            f"Invalid API key header name: {header!r}",
            help="Header names may only contain letters, digits and hyphens",
        )
    merged[header] = auth.token
    logger.debug("Applied API key authentication to header %s", header)
    return merged


def auth_header_names(service: ServiceConfig) -> set[str]:
    """Lower-cased names of the headers :func:`apply_auth` writes."""
    name = _auth_header_name(service)
    return {name.lower()} if name else set()


def redact_headers(headers: dict[str, str], extra: set[str] | None = None) -> dict[str, str]:
    """Mask credential-bearing header values for debug output.

    Long values keep their first and last four characters.
    """
    sensitive = SECRET_HEADERS | {h.lower() for h in (extra or set())}
    redacted = {}
    for name, value in headers.items():
        if name.lower() not in sensitive:
            redacted[name] = value
        elif len(value) > 12:
            redacted[name] = f"{value[:4]}...{value[-4:]}"
        else:
            redacted[name] = "***REDACTED***"
    return redacted
