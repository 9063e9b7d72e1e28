# src/attack_capture/config/types.py

"""Configuration dataclasses and validation."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from ..errors import ConfigurationError

# registry[:port]/path/components[:tag][@digest]
_IMAGE_REFERENCE = re.compile(
    r"^(?:(?P<registry>[a-zA-Z0-9.-]+(?::[0-9]+)?)/)?"
    r"(?P<path>[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*(?:/[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*)*)"
    r"(?::(?P<tag>[\w][\w.-]{0,127}))?"
    r"(?:@(?P<digest>sha256:[a-f0-9]{64}))?$"
)
_CONTAINER_NAME = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9_.-]*$")


@dataclass
class SandboxConfig:
    """Container used as the attacked, capturing sandbox."""

    image: str = "contackgen/server-attack:latest"
    container_name: str = "udpattack"
    unique_name: bool = False
    capture_path: str = "/data/capture.pcap"
    command: str = "./payload.sh -d {duration}"
    duration: int = 10
    exec_timeout: Optional[float] = None
    allowed_images: List[str] = field(default_factory=list)

    def render_command(self) -> str:
        return self.command.format(duration=self.duration)


@dataclass
class AttackConfig:
    """UDP flood parameters."""

    signature_hex: str = "a5c3e1f00d15ea5e"
    header_skip: int = 8
    packet_count: Optional[int] = 1000
    duration: Optional[float] = None
    seed: int = 42
    target_port: int = 9
    payload_size: int = 64
    rate: Optional[float] = None

    @property
    def signature(self) -> bytes:
        return bytes.fromhex(self.signature_hex)


@dataclass
class CaptureConfig:
    """Host-side handling of the copied capture file."""

    host_dir: Optional[Path] = None
    timestamp_format: str = "%Y-%m-%d %H:%M:%S.%f"
    max_records: Optional[int] = None
    drop_before_start: bool = True
    show_progress: bool = False


@dataclass
class LoggingConfig:
    level: str = "INFO"
    json: bool = True


@dataclass
class Config:
    """Root configuration object."""

    sandbox: SandboxConfig = field(default_factory=SandboxConfig)
    attack: AttackConfig = field(default_factory=AttackConfig)
    capture: CaptureConfig = field(default_factory=CaptureConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def expand_path(base: Path, path: Path) -> Path:
    """Resolve a path relative to a base directory."""

    if path.is_absolute():
        return path
    return (base / path).resolve()


def resolve_paths(config: Config, root: Optional[Path] = None) -> Config:
    """Resolve filesystem paths relative to a root directory."""

    base = root or Path.cwd()
    if config.capture.host_dir is not None:
        config.capture.host_dir = expand_path(base, Path(config.capture.host_dir))
    return config


def _validate_sandbox(sandbox: SandboxConfig) -> None:
    if not _IMAGE_REFERENCE.match(sandbox.image or ""):
        raise ConfigurationError(f"Invalid docker image reference: {sandbox.image!r}")
    if sandbox.allowed_images and sandbox.image not in sandbox.allowed_images:
        raise ConfigurationError(f"The docker image {sandbox.image} is not supported.")
    if not _CONTAINER_NAME.match(sandbox.container_name or ""):
        raise ConfigurationError(f"Invalid container name: {sandbox.container_name!r}")
    if not sandbox.capture_path.startswith("/"):
        raise ConfigurationError(f"Capture path must be absolute inside the sandbox: {sandbox.capture_path}")
    if sandbox.duration <= 0:
        raise ConfigurationError("Sandbox capture duration must be positive")
    if sandbox.exec_timeout is not None and sandbox.exec_timeout <= 0:
        raise ConfigurationError("exec_timeout must be positive when set")
    try:
        rendered = sandbox.render_command()
    except (KeyError, IndexError, ValueError) as exc:
        raise ConfigurationError(f"Invalid command template {sandbox.command!r}: {exc}") from exc
    if not rendered.strip():
        raise ConfigurationError("Sandbox command is empty")


def _validate_attack(attack: AttackConfig) -> None:
    try:
        signature = attack.signature
    except ValueError as exc:
        raise ConfigurationError(f"signature_hex is not valid hexadecimal: {attack.signature_hex!r}") from exc
    if not signature:
        raise ConfigurationError("Attack signature must not be empty")
    if attack.header_skip < 0:
        raise ConfigurationError("header_skip must not be negative")
    if attack.packet_count is None and attack.duration is None:
        raise ConfigurationError("Attack needs a packet_count or a duration budget")
    if attack.packet_count is not None and attack.packet_count <= 0:
        raise ConfigurationError("packet_count must be positive")
    if attack.duration is not None and attack.duration <= 0:
        raise ConfigurationError("Attack duration must be positive")
    if attack.payload_size < len(signature):
        raise ConfigurationError(
            f"payload_size ({attack.payload_size}) is smaller than the signature ({len(signature)} bytes)"
        )
    if not 0 < attack.target_port < 65536:
        raise ConfigurationError(f"target_port out of range: {attack.target_port}")
    if attack.rate is not None and attack.rate <= 0:
        raise ConfigurationError("rate must be positive when set")


def _validate_capture(capture: CaptureConfig) -> None:
    if capture.host_dir is not None:
        host_dir = Path(capture.host_dir)
        if not host_dir.is_dir():
            raise ConfigurationError(f"The capture directory {host_dir} does not exist.")
    if "%" not in capture.timestamp_format:
        raise ConfigurationError(f"The timestamp format {capture.timestamp_format} is not valid.")
    try:
        datetime.now().strftime(capture.timestamp_format)
    except ValueError as exc:
        raise ConfigurationError(f"The timestamp format {capture.timestamp_format} is not valid.") from exc
    if capture.max_records is not None and capture.max_records <= 0:
        raise ConfigurationError("max_records must be positive when set")


def validate_config(config: Config) -> Config:
    """Raise :class:`ConfigurationError` on the first invalid setting."""

    _validate_sandbox(config.sandbox)
    _validate_attack(config.attack)
    _validate_capture(config.capture)
    return config
