from __future__ import annotations

import os
from dataclasses import asdict, fields
from pathlib import Path
from typing import Any, Callable, Union, get_args, get_type_hints

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # type: ignore[no-redef]

from .config import RelayConfig

CONFIG_FILE_ENV = "GEMINI_RELAY_CONFIG_FILE"
ENV_PREFIX = "GEMINI_RELAY_"
DEFAULT_CONFIG_PATH = Path("configs/gemini_relay.toml")

# Variables understood by the original Node server; prefixed names win.
LEGACY_ENV = {
    "api_key": "GEMINI_API_KEY",
    "port": "PORT",
}

_SECTION_MAP: dict[str, list[str]] = {
    "server": ["host", "port", "cors_origins", "enable_metrics"],
    "upstream": [
        "api_key",
        "api_base_url",
        "api_version",
        "upstream_timeout_s",
        "default_model",
    ],
    "logging": ["log_dir", "log_level", "log_path", "max_log_bytes"],
}
# [models] is a free-form table: mnemonic = "upstream-model-id"
MODELS_SECTION = "models"


class ConfigError(ValueError):
    """Raised when the relay cannot start with the resolved configuration."""


def _field_types() -> dict[str, Any]:
    hints = get_type_hints(RelayConfig)
    return {f.name: hints[f.name] for f in fields(RelayConfig)}


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _coerce_int(value: Any) -> int:
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    return int(str(value))


def _coerce_float(value: Any) -> float:
    if isinstance(value, (int, float)):
        return float(value)
    return float(str(value))


def _coerce_str(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def _coerce_list(value: Any) -> list[str]:
    if isinstance(value, str):
        parts = [item.strip() for item in value.split(",")]
        return [item for item in parts if item]
    return [str(item) for item in value]


def _coerce_models(value: Any) -> dict[str, str]:
    """Accept a TOML table or ``fast=model-a,thinking=model-b``."""
    if isinstance(value, str):
        table: dict[str, str] = {}
        for item in value.split(","):
            key, sep, model = item.partition("=")
            if sep and key.strip() and model.strip():
                table[key.strip()] = model.strip()
        return table
    return {str(k): str(v) for k, v in dict(value).items()}


_CASTERS: dict[Any, Callable[[Any], Any]] = {
    bool: _coerce_bool,
    int: _coerce_int,
    float: _coerce_float,
    str: _coerce_str,
}


def _coerce_value(field_type: Any, value: Any) -> Any:
    origin = getattr(field_type, "__origin__", None)
    if origin is None:
        caster = _CASTERS.get(field_type)
        if caster:
            return caster(value)
        return value

    if origin is list:
        return _coerce_list(value)

    if origin is dict:
        return _coerce_models(value)

    if origin is Union:
        args = [arg for arg in get_args(field_type) if arg is not type(None)]
        if len(args) == 1:
            if value in ("", None):
                return None
            caster = _CASTERS.get(args[0])
            if caster:
                return caster(value)
    return value


def _read_config_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with path.open("rb") as fh:
            data = tomllib.load(fh)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid config file {path}: {exc}") from exc

    out: dict[str, Any] = {}
    for section, keys in _SECTION_MAP.items():
        section_values = data.get(section, {})
        if not isinstance(section_values, dict):
            continue
        for key in keys:
            if key in section_values:
                out[key] = section_values[key]
    models = data.get(MODELS_SECTION)
    if isinstance(models, dict) and models:
        out["models"] = models
    return out


def _env_overrides() -> dict[str, Any]:
    env = os.environ
    out: dict[str, Any] = {}
    for f in fields(RelayConfig):
        if f.name == "config_file_path":
            continue
        legacy = LEGACY_ENV.get(f.name)
        if legacy and env.get(legacy):
            out[f.name] = env[legacy]
        val = env.get(ENV_PREFIX + f.name.upper())
        if val is not None:
            out[f.name] = val
    return out


def _default_config_dict() -> dict[str, Any]:
    data = asdict(RelayConfig())
    data.pop("config_file_path", None)
    return data


def _normalize(config: dict[str, Any]) -> dict[str, Any]:
    field_types = _field_types()
    normalized = {}
    for key, default_value in _default_config_dict().items():
        value = config.get(key, default_value)
        try:
            normalized[key] = _coerce_value(field_types.get(key), value)
        except (TypeError, ValueError):
            normalized[key] = default_value
    if not normalized.get("models"):
        normalized["models"] = _default_config_dict()["models"]
    normalized["api_base_url"] = str(normalized["api_base_url"]).rstrip("/")
    return normalized


def config_file_path() -> Path:
    return Path(os.environ.get(CONFIG_FILE_ENV, DEFAULT_CONFIG_PATH)).expanduser()


def load_relay_config() -> RelayConfig:
    candidate = config_file_path()
    values = _read_config_file(candidate)
    values.update(_env_overrides())
    normalized = _normalize(values)
    cfg = RelayConfig(**normalized)
    cfg.config_file_path = str(candidate)
    validate_config(cfg)
    return cfg


def validate_config(cfg: RelayConfig) -> None:
    if cfg.default_model not in cfg.models:
        raise ConfigError(
            f"Default model '{cfg.default_model}' is not one of: "
            f"{', '.join(sorted(cfg.models))}"
        )


def require_api_key(cfg: RelayConfig) -> str:
    if not cfg.api_key:
        raise ConfigError(
            f"GEMINI_API_KEY environment variable is required "
            f"(or {ENV_PREFIX}API_KEY / [upstream] api_key)"
        )
    return cfg.api_key


def list_env_overrides() -> dict[str, str]:
    return {
        key: value for key, value in os.environ.items() if key.startswith(ENV_PREFIX)
    }
