#!/usr/bin/env python3
"""Configuration Manager module for controller settings loaded from YAML and the command line."""

import os
from typing import Any, Dict, Optional

import yaml

from .errors import FatalConfigurationError

DEFAULT_CONFIG = {
    "namespace": "openshift-machine-api",
    "name": "cluster",
    "check_interval": 30,
    "requeue_interval": 5,
    "max_backoff": 300,
    "fatal_requeue_after": 600,
}

NUMERIC_KEYS = ("check_interval", "requeue_interval", "max_backoff", "fatal_requeue_after")


def load_controller_config(config_path: Optional[str] = None, printer=None) -> Dict[str, Any]:
    """
    Load controller settings from an optional YAML file on top of the defaults.

    Args:
        config_path: Path to a YAML mapping of settings, or None for defaults only
        printer: Printer instance for logging

    Returns:
        dict: Validated settings

    Raises:
        FatalConfigurationError: If the file is missing, unparseable, or holds invalid values
    """
    config = dict(DEFAULT_CONFIG)
    if not config_path:
        return config

    if not os.path.exists(config_path):
        raise FatalConfigurationError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise FatalConfigurationError(f"Failed to parse configuration file {config_path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise FatalConfigurationError(f"Configuration file {config_path} must contain a mapping")

    unknown = sorted(set(data) - set(DEFAULT_CONFIG))
    if unknown and printer:
        printer.print_warning(f"Ignoring unknown configuration keys: {', '.join(unknown)}")

    config.update({key: value for key, value in data.items() if key in DEFAULT_CONFIG})
    if printer:
        printer.print_info(f"Loaded configuration from {config_path}")
    return validate_controller_config(config)


def validate_controller_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate controller settings.

    Raises:
        FatalConfigurationError: If a value has the wrong type or range
    """
    for key in ("namespace", "name"):
        if not isinstance(config.get(key), str) or not config[key]:
            raise FatalConfigurationError(f"Configuration value '{key}' must be a non-empty string")

    for key in NUMERIC_KEYS:
        value = config.get(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
            raise FatalConfigurationError(f"Configuration value '{key}' must be a positive number, got {value!r}")

    return config


def build_controller_config(args, printer=None) -> Dict[str, Any]:
    """
    Merge settings: command-line values override the YAML file, which overrides defaults.

    Args:
        args: Parsed command-line arguments (argparse.Namespace)
        printer: Printer instance for logging

    Returns:
        dict: Validated settings
    """
    config = load_controller_config(getattr(args, "config", None), printer=printer)

    overrides = {
        "namespace": getattr(args, "namespace", None),
        "name": getattr(args, "name", None),
        "check_interval": getattr(args, "check_interval", None),
    }
    config.update({key: value for key, value in overrides.items() if value is not None})
    return validate_controller_config(config)
