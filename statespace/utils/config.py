"""Loading CLI defaults from JSON or YAML files."""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any, Mapping, Sequence

import yaml

_YAML_SUFFIXES = {".yaml", ".yml"}
_TRUE_STRINGS = {"true", "t", "yes", "y", "on", "1"}
_FALSE_STRINGS = {"false", "f", "no", "n", "off", "0"}


class ConfigError(ValueError):
    """Raised when a CLI configuration file is invalid."""


def load_config(path: Path) -> Mapping[str, Any]:
    """Read a mapping of option names to values; YAML by suffix, JSON otherwise."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read configuration file {path}: {exc}") from exc

    try:
        if path.suffix.lower() in _YAML_SUFFIXES:
            payload = yaml.safe_load(text)
        else:
            payload = json.loads(text)
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Cannot parse configuration file {path}: {exc}") from exc

    if payload is None:
        return {}
    if not isinstance(payload, Mapping):
        raise ConfigError("Configuration file must contain a mapping")
    return payload


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise ConfigError(f"Cannot interpret {value!r} as a boolean")


def _coerce_value(key: str, value: Any, default: Any) -> Any:
    """Convert ``value`` to the type of the option's current default."""
    if default is None or value is None:
        return value
    try:
        if isinstance(default, bool):
            return _coerce_bool(value)
        if isinstance(default, Path):
            return Path(value).expanduser()
        if isinstance(default, (int, float, str)):
            return type(default)(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid value for {key}: {value!r}") from exc
    return value


def apply_cli_config(
    namespace: argparse.Namespace,
    config: Mapping[str, Any],
    *,
    path_options: Sequence[str] = (),
) -> argparse.Namespace:
    """Write ``config`` onto ``namespace``, rejecting unknown option names.

    Keys may use dashes or underscores. Options listed in ``path_options``
    become :class:`~pathlib.Path` objects even when their default is ``None``.
    """
    for raw_key, value in config.items():
        key = str(raw_key).replace("-", "_")
        if key == "config":
            continue
        if not hasattr(namespace, key):
            raise ConfigError(f"Unknown CLI option in configuration: {raw_key}")
        if key in path_options and value is not None:
            coerced = Path(value).expanduser()
        else:
            coerced = _coerce_value(key, value, getattr(namespace, key))
        setattr(namespace, key, coerced)
    return namespace


def add_config_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="JSON/YAML file providing default values for the other options",
    )


def parse_args_with_config(
    parser: argparse.ArgumentParser,
    argv: Sequence[str] | None = None,
    *,
    path_options: Sequence[str] = (),
) -> argparse.Namespace:
    """Parse ``argv``, using ``--config`` file values as defaults.

    The file is applied to the parser defaults before the final parse, so
    options given explicitly on the command line take precedence.
    """
    preliminary, _ = parser.parse_known_args(argv)
    config_path = getattr(preliminary, "config", None)
    if config_path is not None:
        defaults = apply_cli_config(
            argparse.Namespace(**vars(preliminary)),
            load_config(config_path),
            path_options=path_options,
        )
        parser.set_defaults(**vars(defaults))
    return parser.parse_args(argv)


__all__ = [
    "ConfigError",
    "add_config_argument",
    "apply_cli_config",
    "load_config",
    "parse_args_with_config",
]
