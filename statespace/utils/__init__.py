"""Shared utilities for the command-line pipelines."""

from statespace.utils.config import (
    ConfigError,
    add_config_argument,
    apply_cli_config,
    load_config,
    parse_args_with_config,
)
from statespace.utils.files import ensure_parent, write_json

__all__ = [
    "ConfigError",
    "add_config_argument",
    "apply_cli_config",
    "ensure_parent",
    "load_config",
    "parse_args_with_config",
    "write_json",
]
