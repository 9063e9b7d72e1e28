"""Exception hierarchy for the capture pipeline."""

from __future__ import annotations


class AttackCaptureError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(AttackCaptureError):
    """Invalid configuration detected before any sandbox work begins."""


class ConnectivityError(AttackCaptureError):
    """The container engine could not be reached."""


class ImageError(AttackCaptureError):
    """The sandbox image could not be found or pulled."""


class LifecycleError(AttackCaptureError):
    """A sandbox lifecycle step failed or was requested out of order."""


class PacketDecodeError(AttackCaptureError):
    """A captured frame carries neither IPv4 nor IPv6."""


class CaptureFileError(AttackCaptureError):
    """A capture file is missing, truncated or not a pcap/pcapng file."""


class AttackError(AttackCaptureError):
    """The attack generator failed while running."""


class SessionError(AttackCaptureError):
    """A session stage failed; the original error is chained as ``__cause__``."""

    def __init__(self, stage: str, cause: BaseException) -> None:
        super().__init__(f"session failed during '{stage}': {cause}")
        self.stage = stage
        self.cause = cause


__all__ = [
    "AttackCaptureError",
    "AttackError",
    "CaptureFileError",
    "ConfigurationError",
    "ConnectivityError",
    "ImageError",
    "LifecycleError",
    "PacketDecodeError",
    "SessionError",
]
