"""Configuration management: XDG paths, atomic writes and service discovery.

This module handles all persistent configuration for ovrmnd:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.ovrmnd/`` on macOS and Windows.  See :func:`get_config_dir` and
  :func:`get_cache_dir`.
* **Global config** -- a single :class:`~ovrmnd.models.GlobalConfig` JSON
  file with cache, request and output settings.
* **Service files** -- YAML files describing one API each.  Global files
  live in ``<config dir>/services/``; a project can add or override
  services in ``./.ovrmnd/``.  A local file wins over a global file that
  declares the same ``serviceName``.  New files are written with
  :func:`atomic_write`.
* **Environment interpolation** -- ``${VAR}`` placeholders in base URLs,
  tokens, endpoint paths, headers, default parameters and alias arguments
  are replaced at load time.  An unset variable is a
  :class:`~ovrmnd.exceptions.ConfigError`.
* **Target resolution** -- :func:`resolve_target` turns ``service.name``
  into an endpoint (or GraphQL operation) plus alias defaults.
"""

from __future__ import annotations

import json
import logging
import os
import platform
import re
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union

import yaml
from pydantic import ValidationError

from ovrmnd.exceptions import ConfigError, EndpointNotFoundError, ParamInvalidError
from ovrmnd.models import (
    CacheConfig,
    EndpointConfig,
    GlobalConfig,
    GraphQLOperationConfig,
    ServiceConfig,
)

logger = logging.getLogger(__name__)

_APP_NAME = "ovrmnd"
_CONFIG_FILENAME = "config.json"
_LOCAL_DIRNAME = ".ovrmnd"
_SERVICE_SUFFIXES = (".yaml", ".yml")
ENV_VAR_RE = re.compile(r"\$\{([^}]+)\}")


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    system = platform.system()
    return system == "Linux" or system.endswith("BSD")


def _fallback_base_dir() -> Path:
    """``~/.ovrmnd`` on platforms without XDG conventions."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_dir(env_var: str, *default_segments: str) -> Path:
    configured = os.environ.get(env_var, "")
    if configured:
        return Path(configured) / _APP_NAME
    return Path.home().joinpath(*default_segments, _APP_NAME)


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/ovrmnd/`` (default ``~/.config/ovrmnd/``).
    On macOS/Windows: ``~/.ovrmnd/``.
    """
    if _is_xdg_platform():
        path = _xdg_dir("XDG_CONFIG_HOME", ".config")
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_cache_dir() -> Path:
    """Return the cache directory, creating it if necessary.

    Cached responses can be deleted at any time.

    On Linux/BSD: ``$XDG_CACHE_HOME/ovrmnd/`` (default ``~/.cache/ovrmnd/``).
    On macOS/Windows: ``~/.ovrmnd/cache/``.
    """
    if _is_xdg_platform():
        path = _xdg_dir("XDG_CACHE_HOME", ".cache")
    else:
        path = _fallback_base_dir() / "cache"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_services_dir() -> Path:
    """Directory holding the user's global service files (``<config dir>/services``)."""
    return get_config_dir() / "services"


def get_local_services_dir() -> Path:
    """Project-local service directory, ``./.ovrmnd``."""
    return Path.cwd() / _LOCAL_DIRNAME


def resolve_cache_dir(config: CacheConfig) -> Path:
    """The cache root to hand to :class:`~ovrmnd.cache.CacheStore`."""
    if config.directory:
        return Path(config.directory).expanduser()
    return get_cache_dir() / "responses"


# --- Atomic file writes ---


def atomic_write(path: Path, data: str) -> None:
    """Replace *path* with *data* without ever leaving a half-written file.

    The content goes to a temporary sibling first, is flushed to disk, and
    is then moved over *path* with :func:`os.replace`.  The temporary file is
    removed if anything fails.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    handle = tempfile.NamedTemporaryFile(
        mode="w",
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp",
        delete=False,
        encoding="utf-8",
    )
    try:
        with handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(handle.name, path)
    except BaseException:
        Path(handle.name).unlink(missing_ok=True)
        raise


# --- Global config ---


def _global_config_path() -> Path:
    return get_config_dir() / _CONFIG_FILENAME


def load_global_config() -> GlobalConfig:
    """Load the global configuration, or defaults when no file exists.

    Raises:
        ConfigError: If the file exists but is not valid JSON or fails
            validation.
    """
    path = _global_config_path()
    if not path.is_file():
        return GlobalConfig()
    try:
        return GlobalConfig.model_validate(json.loads(path.read_text(encoding="utf-8")))
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid global config at {path}: {exc}") from exc


# --- Environment interpolation ---


def interpolate_env(value: str) -> str:
    """Replace every ``${VAR}`` in *value* with the environment variable's value.

    Raises:
        ConfigError: If a referenced variable is not set.
    """

    def substitute(match: re.Match[str]) -> str:
        name = match.group(1)
        resolved = os.environ.get(name)
        if resolved is None:
            raise ConfigError(
                f"Environment variable {name} is not defined",
                details={"variable": name},
                help=f"export {name}=...",
            )
        return resolved

    return ENV_VAR_RE.sub(substitute, value)


def _interpolate_tree(value: Any) -> Any:
    if isinstance(value, str):
        return interpolate_env(value)
    if isinstance(value, list):
        return [_interpolate_tree(item) for item in value]
    if isinstance(value, dict):
        return {key: _interpolate_tree(item) for key, item in value.items()}
    return value


def _interpolate_service(raw: dict[str, Any]) -> dict[str, Any]:
    """Interpolate the fields that may carry ``${VAR}`` placeholders.

    GraphQL query text is left untouched.
    """
    data = dict(raw)
    for key in ("baseUrl", "graphqlEndpoint"):
        if isinstance(data.get(key), str):
            data[key] = interpolate_env(data[key])

    auth = data.get("authentication")
    if isinstance(auth, dict) and isinstance(auth.get("token"), str):
        data["authentication"] = {**auth, "token": interpolate_env(auth["token"])}

    endpoints = []
    for endpoint in data.get("endpoints") or []:
        if isinstance(endpoint, dict):
            endpoint = dict(endpoint)
            for key in ("path", "headers", "defaultParams"):
                if key in endpoint:
                    endpoint[key] = _interpolate_tree(endpoint[key])
        endpoints.append(endpoint)
    if endpoints:
        data["endpoints"] = endpoints

    aliases = []
    for alias in data.get("aliases") or []:
        if isinstance(alias, dict) and "args" in alias:
            alias = {**alias, "args": _interpolate_tree(alias["args"])}
        aliases.append(alias)
    if aliases:
        data["aliases"] = aliases
    return data


# --- Service files ---


def validation_messages(exc: ValidationError) -> list[str]:
    """One ``location: message`` line per error in *exc*."""
    messages = []
    for error in exc.errors():
        location = ".".join(str(p) for p in error["loc"])
        messages.append(f"{location}: {error['msg']}" if location else error["msg"])
    return messages


def load_service_file(path: Union[str, Path]) -> ServiceConfig:
    """Parse, interpolate and validate one service YAML file.

    Raises:
        ConfigError: If the file cannot be read, is not a YAML mapping,
            references an unset environment variable, or fails validation.
    """
    path = Path(path)
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"Cannot read service file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigError(f"Service file {path} must contain a mapping")

    try:
        data = _interpolate_service(raw)
    except ConfigError as exc:
        raise ConfigError(f"{exc.message} (in {path})", details=exc.details, help=exc.help) from exc

    try:
        return ServiceConfig.model_validate(data)
    except ValidationError as exc:
        problems = "; ".join(validation_messages(exc))
        raise ConfigError(
            f"Invalid service file {path}: {problems}",
            details={"path": str(path)},
        ) from exc


def _service_files_in(directory: Path) -> list[Path]:
    if not directory.is_dir():
        return []
    return [
        path
        for path in sorted(directory.iterdir())
        if path.suffix in _SERVICE_SUFFIXES and path.is_file()
    ]


def find_service_files(config_dir: Optional[Union[str, Path]] = None) -> list[Path]:
    """List the service files :func:`discover_services` would read, global ones first."""
    if config_dir is not None:
        return _service_files_in(Path(config_dir).expanduser())
    return _service_files_in(get_services_dir()) + _service_files_in(get_local_services_dir())


def _load_services_in(directory: Path) -> dict[str, ServiceConfig]:
    """Load every service file in *directory*.  Broken files are logged and skipped."""
    services: dict[str, ServiceConfig] = {}
    for path in _service_files_in(directory):
        try:
            service = load_service_file(path)
        except ConfigError as exc:
            logger.warning("Skipping %s: %s", path, exc.message)
            continue
        logger.debug("Loaded service %s from %s", service.service_name, path)
        services[service.service_name] = service
    return services


def discover_services(config_dir: Optional[Union[str, Path]] = None) -> dict[str, ServiceConfig]:
    """Load all available services keyed by ``serviceName``.

    Args:
        config_dir: Load only from this directory.  When ``None``, global
            services are loaded first and local ``./.ovrmnd`` services
            override them by name.
    """
    if config_dir is not None:
        return _load_services_in(Path(config_dir).expanduser())

    services = _load_services_in(get_services_dir())
    local = _load_services_in(get_local_services_dir())
    for name in local:
        if name in services:
            logger.debug("Local service %s overrides the global one", name)
    services.update(local)
    return services


# --- Target resolution ---


@dataclass
class ResolvedTarget:
    """What ``service.name`` refers to.

    Exactly one of ``endpoint`` and ``operation`` is set.  ``alias_defaults``
    holds the alias's ``args`` when *name* was an alias.
    """

    service: ServiceConfig
    endpoint: Optional[EndpointConfig] = None
    operation: Optional[GraphQLOperationConfig] = None
    alias: Optional[str] = None
    alias_defaults: dict[str, Any] = field(default_factory=dict)

    @property
    def target(self) -> Union[EndpointConfig, GraphQLOperationConfig]:
        return self.endpoint if self.endpoint is not None else self.operation

    @property
    def name(self) -> str:
        return self.target.name


def split_target(target: str) -> tuple[str, str]:
    """Split ``service.name`` at its first dot.

    Raises:
        ParamInvalidError: If either part is missing.
    """
    service, sep, name = target.partition(".")
    if not sep or not service or not name:
        raise ParamInvalidError(
            f"Invalid target {target!r}, expected service.endpoint",
            help="Run 'ovrmnd list' to see the available services",
        )
    return service, name


def resolve_target(
    target: str,
    services: Optional[dict[str, ServiceConfig]] = None,
    config_dir: Optional[Union[str, Path]] = None,
) -> ResolvedTarget:
    """Resolve ``service.name`` to an endpoint, operation or alias.

    Endpoint and operation names take precedence over alias names.

    Raises:
        ParamInvalidError: If *target* is not of the form ``service.name``.
        EndpointNotFoundError: If the service or the name does not exist.
    """
    service_name, name = split_target(target)
    if services is None:
        services = discover_services(config_dir)

    service = services.get(service_name)
    if service is None:
        available = ", ".join(sorted(services)) or "none"
        raise EndpointNotFoundError(
            f"Service '{service_name}' not found",
            details={"service": service_name, "available": sorted(services)},
            help=f"Available services: {available}",
        )

    def lookup(ref: str) -> Optional[Union[EndpointConfig, GraphQLOperationConfig]]:
        if service.api_type == "graphql":
            return service.find_operation(ref) or service.find_endpoint(ref)
        return service.find_endpoint(ref) or service.find_operation(ref)

    found = lookup(name)
    alias_name = None
    alias_defaults: dict[str, Any] = {}
    if found is None:
        alias = service.find_alias(name)
        if alias is not None:
            found = lookup(alias.endpoint)
            alias_name = alias.name
            alias_defaults = dict(alias.args)

    if found is None:
        choices = [e.name for e in service.endpoints]
        choices += [o.name for o in service.graphql_operations]
        choices += [a.name for a in service.aliases]
        raise EndpointNotFoundError(
            f"'{name}' is not an endpoint, operation or alias of service '{service_name}'",
            details={"service": service_name, "name": name},
            help=f"Available: {', '.join(choices)}",
        )

    if isinstance(found, GraphQLOperationConfig):
        return ResolvedTarget(
            service=service, operation=found, alias=alias_name, alias_defaults=alias_defaults
        )
    return ResolvedTarget(
        service=service, endpoint=found, alias=alias_name, alias_defaults=alias_defaults
    )
