import logging
import os
import sys
from dataclasses import dataclass, fields, replace
from typing import Any

import yaml

from kubectl_remediate.errors import ConfigError
from kubectl_remediate.quantity import parse_cpu, parse_memory

ENV_PREFIX = "KUBECTL_REMEDIATE_"
CONFIG_ENV = ENV_PREFIX + "CONFIG"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Classes commonly present on managed clusters, most specific first
DEFAULT_PREFERRED_CLASSES = ("standard-rwo", "gp2", "gp3", "ssd", "fast-ssd", "standard")

# =============================================================================
# Logging Configuration
# =============================================================================


def setup_logging(level: str | None = None) -> None:
    """Configure process-wide logging for the CLI."""
    level_name = (level or os.getenv("LOG_LEVEL", "WARNING")).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.WARNING),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stderr)],
        force=True,
    )
    # Reduce noise from the client libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("kubernetes").setLevel(logging.WARNING)


# =============================================================================
# Settings
# =============================================================================


@dataclass(frozen=True)
class Settings:
    kubeconfig: str | None = None
    context: str | None = None
    namespace: str = "default"
    preferred_storage_classes: tuple[str, ...] = DEFAULT_PREFERRED_CLASSES
    memory_floor: str = "256Mi"
    cpu_floor: str = "100m"
    delete_timeout: float = 120.0
    bind_timeout: float = 300.0
    ready_timeout: float = 600.0
    manifest_path: str | None = None
    plugin_dir: str | None = None
    field_manager: str = "kubectl-remediate"
    log_level: str | None = None  # None defers to LOG_LEVEL

    def merged(self, **overrides: Any) -> "Settings":
        """Return a copy with every non-None override applied."""
        values = {k: v for k, v in overrides.items() if v is not None}
        if "preferred_storage_classes" in values:
            values["preferred_storage_classes"] = tuple(
                values["preferred_storage_classes"]
            )
        return replace(self, **values)


_FIELD_NAMES = tuple(f.name for f in fields(Settings))
_TIMEOUTS = ("delete_timeout", "bind_timeout", "ready_timeout")


def _coerce(name: str, value: Any) -> Any:
    if name == "preferred_storage_classes":
        if isinstance(value, str):
            value = [v.strip() for v in value.split(",") if v.strip()]
        return tuple(value)
    if name in _TIMEOUTS:
        try:
            return float(value)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"{name} must be a number, got {value!r}") from e
    if value is None:
        return None
    return str(value)


def _from_yaml(path: str) -> dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")

    values: dict[str, Any] = {}
    for key, value in data.items():
        name = key.replace("-", "_")
        if name not in _FIELD_NAMES:
            raise ConfigError(f"Unknown setting '{key}' in {path}")
        values[name] = _coerce(name, value)
    return values


def _from_env(environ: dict[str, str]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for name in _FIELD_NAMES:
        raw = environ.get(ENV_PREFIX + name.upper())
        if raw:
            values[name] = _coerce(name, raw)
    return values


def load_settings(
    path: str | None = None, environ: dict[str, str] | None = None
) -> Settings:
    """
    Defaults < YAML config file < KUBECTL_REMEDIATE_* environment variables.
    CLI flags are layered on top by the caller via Settings.merged().
    """
    environ = dict(os.environ) if environ is None else environ
    path = path or environ.get(CONFIG_ENV)

    values: dict[str, Any] = {}
    if path:
        values.update(_from_yaml(path))
    values.update(_from_env(environ))

    settings = Settings(**values)
    validate_settings(settings)
    return settings


def validate_settings(settings: Settings) -> None:
    if not settings.namespace:
        raise ConfigError("namespace must be a non-empty string")
    for name in _TIMEOUTS:
        value = getattr(settings, name)
        if value <= 0:
            raise ConfigError(f"{name} must be positive, got {value}")
    try:
        parse_memory(settings.memory_floor)
        parse_cpu(settings.cpu_floor)
    except ValueError as e:
        raise ConfigError(f"Invalid resource floor: {e}") from e
    if any(not c for c in settings.preferred_storage_classes):
        raise ConfigError("preferred_storage_classes must not contain empty names")
    if settings.manifest_path and not os.path.exists(settings.manifest_path):
        raise ConfigError(f"Manifest template not found: {settings.manifest_path}")
    if settings.plugin_dir and not os.path.isdir(settings.plugin_dir):
        raise ConfigError(f"Plugin directory not found: {settings.plugin_dir}")
