from __future__ import annotations

from .loader import load_config
from .types import (
    AttackConfig, CaptureConfig, Config, LoggingConfig, SandboxConfig,
    resolve_paths, validate_config,
)

__all__ = [
    "AttackConfig", "CaptureConfig", "Config", "LoggingConfig", "SandboxConfig",
    "load_config", "resolve_paths", "validate_config",
]
