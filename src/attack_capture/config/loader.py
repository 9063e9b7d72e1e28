"""Configuration loader utilities."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

import yaml

from ..errors import ConfigurationError
from .types import (
    AttackConfig,
    CaptureConfig,
    Config,
    LoggingConfig,
    SandboxConfig,
    resolve_paths,
    validate_config,
)


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")
    with path.open("r", encoding="utf-8") as handle:
        try:
            raw = yaml.safe_load(handle)
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Could not parse {path}: {exc}") from exc
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Top level of {path} must be a mapping")
    return raw


def _section(raw: Dict[str, Any], name: str, cls):
    payload = raw.get(name) or {}
    try:
        return cls(**payload)
    except TypeError as exc:
        raise ConfigurationError(f"Invalid '{name}' section: {exc}") from exc


def load_config(path: Path | str) -> Config:
    """Load a configuration file and return a validated :class:`Config`."""

    path = Path(path)
    raw = _load_yaml(path)

    capture = _section(raw, "capture", CaptureConfig)
    if capture.host_dir is not None:
        capture.host_dir = Path(capture.host_dir)

    config = Config(
        sandbox=_section(raw, "sandbox", SandboxConfig),
        attack=_section(raw, "attack", AttackConfig),
        capture=capture,
        logging=_section(raw, "logging", LoggingConfig),
    )
    # relative paths are anchored at the config file's directory
    config = resolve_paths(config, root=path.parent)
    return validate_config(config)


__all__ = ["load_config"]
