"""Agent config: listener ports, connection limits, logging.

Defaults: loaded from beacon/config/defaults.yaml (single source of truth, no code-level defaults).
Precedence: CLI flags > YAML config file > defaults.yaml.
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

_DEFAULTS_PATH = Path(__file__).resolve().parent / "defaults.yaml"

# Lazy-loaded packaged defaults
_DEFAULT_CONFIG: Optional[Dict[str, Any]] = None


class ConfigError(ValueError):
    """Invalid agent configuration (bad port, non-positive limit, unreadable file)."""


def _load_default_config() -> Dict[str, Any]:
    """Load defaults.yaml. No code-level defaults."""
    global _DEFAULT_CONFIG
    if _DEFAULT_CONFIG is None:
        with open(_DEFAULTS_PATH, encoding="utf-8") as f:
            _DEFAULT_CONFIG = yaml.safe_load(f) or {}
    return _DEFAULT_CONFIG


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Merge override into base. Override values take precedence."""
    out = dict(base)
    for k, v in override.items():
        if k in out and isinstance(out[k], dict) and isinstance(v, dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _merged_config(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """Merge config with defaults so missing keys come from defaults.yaml."""
    return _deep_merge(_load_default_config(), cfg)


def read_config(config_path: Optional[str] = None) -> Tuple[dict, Optional[str]]:
    """Load YAML config. Returns (config, resolved_path).

    Path resolution: explicit argument, then BEACON_CONFIG, then config/config.yaml.
    An explicit path that does not exist is an error; a missing implicit config/config.yaml
    just means "defaults only" and returns ({}, None).
    """
    explicit = config_path or os.environ.get("BEACON_CONFIG")
    path = Path(explicit) if explicit else Path("config/config.yaml")
    if not path.exists():
        if explicit:
            raise ConfigError(f"config file not found: {path}")
        return {}, None
    try:
        with open(path, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {path}: {e}") from e
    if not isinstance(config, dict):
        raise ConfigError(f"config root must be a mapping: {path}")
    return config, str(path.resolve())


def apply_cli_overrides(config: Dict[str, Any], /, **flags: Any) -> Dict[str, Any]:
    """Return a new config with non-None CLI flags written into the server section.

    Accepted flags: host, api_port, orchestrator_port. `config` is positional-only so a flag may share its name.
    """
    server = {k: v for k, v in flags.items() if k in ("host", "api_port", "orchestrator_port") and v is not None}
    if not server:
        return dict(config)
    return _deep_merge(config, {"server": server})


def _port(value: Any, name: str) -> int:
    try:
        port = int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from e
    # 0 = ephemeral port (tests / embedding)
    if not 0 <= port <= 65535:
        raise ConfigError(f"{name} out of range 0..65535: {port}")
    return port


def _positive(value: Any, name: str, cast=float):
    try:
        out = cast(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{name} must be a number, got {value!r}") from e
    if out <= 0:
        raise ConfigError(f"{name} must be > 0, got {out}")
    return out


def get_server_config(config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Return validated listener config as a flat dict.

    Keys: host, api_port, orchestrator_port, limit_concurrency, timeout_keep_alive, request_timeout_sec.
    """
    merged = _merged_config(config or {})
    s = merged.get("server") or {}
    api_port = _port(s.get("api_port"), "server.api_port")
    orchestrator_port = _port(s.get("orchestrator_port"), "server.orchestrator_port")
    if api_port and api_port == orchestrator_port:
        raise ConfigError(f"api_port and orchestrator_port must differ (both {api_port})")
    return {
        "host": str(s.get("host")),
        "api_port": api_port,
        "orchestrator_port": orchestrator_port,
        "limit_concurrency": _positive(s.get("limit_concurrency"), "server.limit_concurrency", int),
        "timeout_keep_alive": _positive(s.get("timeout_keep_alive"), "server.timeout_keep_alive", int),
        "request_timeout_sec": _positive(s.get("request_timeout_sec"), "server.request_timeout_sec"),
    }


def get_logging_config(config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Return logging config (level name, buffer_size)."""
    merged = _merged_config(config or {})
    lg = merged.get("logging") or {}
    level = str(lg.get("level") or "INFO").upper()
    return {
        "level": level,
        "buffer_size": _positive(lg.get("buffer_size"), "logging.buffer_size", int),
    }
