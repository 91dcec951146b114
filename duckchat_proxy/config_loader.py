"""Configuration loading from YAML files with environment variable support."""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml
from dotenv import dotenv_values

from .core.exceptions import ConfigurationError

logger = logging.getLogger("duckchat-proxy")

# Default path to the config file (relative to project root)
DEFAULT_CONFIG_PATH = "configs/config_default.yaml"

DEFAULT_STATUS_URL = "https://duckduckgo.com/duckchat/v1/status"
DEFAULT_CHAT_URL = "https://duckduckgo.com/duckchat/v1/chat"
DEFAULT_COMPLETION_ID = "chatcmpl-duckduckgo-ai"
DEFAULT_TOKEN_TTL_SECONDS = 24 * 60 * 60

_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)")


@dataclass(frozen=True)
class UpstreamSettings:
    """Where and how to reach the duckchat endpoints."""

    status_url: str = DEFAULT_STATUS_URL
    chat_url: str = DEFAULT_CHAT_URL
    timeout: float = 60.0
    headers: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class CacheSettings:
    """Continuity cache configuration."""

    enabled: bool = True
    backend: str = "memory"
    ttl_seconds: int = DEFAULT_TOKEN_TTL_SECONDS
    max_entries: int = 10000
    database: Optional[dict[str, Any]] = None


@dataclass(frozen=True)
class ProxySettings:
    """Typed view over the loaded YAML configuration."""

    host: str = "127.0.0.1"
    port: int = 8787
    log_level: str = "INFO"
    completion_id: str = DEFAULT_COMPLETION_ID
    upstream: UpstreamSettings = field(default_factory=UpstreamSettings)
    cache: CacheSettings = field(default_factory=CacheSettings)


PROJECT_ROOT = Path(__file__).resolve().parent.parent


def resolve_config_path(path: str | Path) -> Path:
    """Absolute config path; relative paths hang off the project root."""
    candidate = Path(path).expanduser()
    return candidate if candidate.is_absolute() else PROJECT_ROOT / candidate


def read_dotenv(config_path: Path, env_path: str | None = None) -> dict[str, str]:
    """Values from ``env_path`` or the ``.env`` beside the config.

    os.environ is left untouched; keys without a value are dropped.
    """
    env_file = resolve_config_path(env_path) if env_path else config_path.with_name(".env")
    if not env_file.is_file():
        return {}
    logger.info(f"Reading substitution values from {env_file}")
    return {key: value for key, value in dotenv_values(env_file).items() if value is not None}


def load_config(
    path: str | None = None,
    env_path: str | None = None,
    substitute_env: bool = True,
) -> dict:
    """Read the YAML config into a plain dict.

    Args:
        path: Config file. Defaults to $DUCKCHAT_CONFIG, then
              configs/config_default.yaml under the project root.
        env_path: .env file to use instead of the one beside the config.
        substitute_env: Expand ``${VAR}`` / ``$VAR`` placeholders.

    Raises:
        RuntimeError: The config file does not exist.
    """
    config_path = resolve_config_path(path or os.getenv("DUCKCHAT_CONFIG") or DEFAULT_CONFIG_PATH)
    if not config_path.is_file():
        logger.error(f"Config file not found: {config_path}")
        raise RuntimeError(f"Config file not found: {config_path}")

    logger.info(f"Loading configuration from {config_path}")
    data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}

    if substitute_env:
        data = _substitute_env_vars(data, read_dotenv(config_path, env_path))
    return data


def _lookup_env(name: str, env_values: Mapping[str, str]) -> Optional[str]:
    if name in env_values:
        return env_values[name]
    return os.environ.get(name)


def _substitute_env_vars(
    obj: Any, env_values: Mapping[str, str] | None = None
) -> Any:
    """Expand placeholders in every string of a parsed YAML tree.

    .env values take precedence over the process environment. A variable
    found in neither is logged and its placeholder kept verbatim.
    """
    env_values = env_values or {}

    if isinstance(obj, dict):
        return {key: _substitute_env_vars(value, env_values) for key, value in obj.items()}
    if isinstance(obj, list):
        return [_substitute_env_vars(item, env_values) for item in obj]
    if not isinstance(obj, str):
        return obj

    def expand(match: re.Match) -> str:
        name = match.group(1) or match.group(2)
        value = _lookup_env(name, env_values)
        if value is None:
            logger.warning(f"Config placeholder ${name} has no value; leaving it as is")
            return match.group(0)
        return value

    return _ENV_PATTERN.sub(expand, obj)


def _parse_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _section(config: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = config.get(key)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigurationError(f"'{key}' must be a mapping")
    return value


def _to_int(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"'{name}' must be an integer, got {value!r}") from exc


def load_settings(config: Mapping[str, Any]) -> ProxySettings:
    """Build typed settings from a raw configuration mapping.

    Server host/port honour DUCKCHAT_HOST and DUCKCHAT_PORT first.

    Raises:
        ConfigurationError: If a value has the wrong shape.
    """
    proxy_settings = _section(config, "proxy_settings")
    server_cfg = _section(proxy_settings, "server")
    logging_cfg = _section(proxy_settings, "logging")

    host = os.getenv("DUCKCHAT_HOST") or str(server_cfg.get("host", "127.0.0.1"))
    port = _to_int(os.getenv("DUCKCHAT_PORT") or server_cfg.get("port", 8787), "port")

    upstream_cfg = _section(config, "upstream")
    headers = upstream_cfg.get("headers") or {}
    if not isinstance(headers, Mapping):
        raise ConfigurationError("'upstream.headers' must be a mapping")
    try:
        timeout = float(upstream_cfg.get("timeout", 60))
    except (TypeError, ValueError) as exc:
        raise ConfigurationError("'upstream.timeout' must be a number") from exc
    upstream = UpstreamSettings(
        status_url=str(upstream_cfg.get("status_url") or DEFAULT_STATUS_URL),
        chat_url=str(upstream_cfg.get("chat_url") or DEFAULT_CHAT_URL),
        timeout=timeout,
        headers={str(k): str(v) for k, v in headers.items()},
    )

    cache_cfg = _section(config, "conversation_cache")
    backend = str(cache_cfg.get("backend", "memory")).strip().lower()
    if backend not in {"memory", "database"}:
        raise ConfigurationError(
            f"Unsupported conversation_cache backend: {backend}. Supported: memory, database"
        )
    database_cfg = cache_cfg.get("database")
    if database_cfg is not None and not isinstance(database_cfg, Mapping):
        raise ConfigurationError("'conversation_cache.database' must be a mapping")
    cache = CacheSettings(
        enabled=_parse_bool(cache_cfg.get("enabled"), True),
        backend=backend,
        ttl_seconds=_to_int(
            cache_cfg.get("ttl_seconds", DEFAULT_TOKEN_TTL_SECONDS), "ttl_seconds"
        ),
        max_entries=_to_int(cache_cfg.get("max_entries", 10000), "max_entries"),
        database=dict(database_cfg) if database_cfg else None,
    )

    completion_cfg = _section(config, "completion")

    return ProxySettings(
        host=host,
        port=port,
        log_level=str(logging_cfg.get("level", "INFO")).upper(),
        completion_id=str(completion_cfg.get("id") or DEFAULT_COMPLETION_ID),
        upstream=upstream,
        cache=cache,
    )
