# src/attack_capture/capture/structures.py

"""Data structures used across the capture pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Dict, Literal, Optional, Union

IPV6_HEADER_BYTES = 40
IPV6_CHECKSUM = "null"


@dataclass(frozen=True)
class IPv4Layer:
    """Decoded IPv4 header fields and payload."""

    source: str
    destination: str
    header_length: int
    total_length: int
    identification: int
    fragment_offset: int
    ttl: int
    protocol: Optional[int]
    protocol_name: str
    checksum: int
    payload: bytes
    version: Literal[4] = 4


@dataclass(frozen=True)
class IPv6Layer:
    """Decoded IPv6 header fields and payload."""

    source: str
    destination: str
    payload_length: int
    hop_limit: int
    next_header: Optional[int]
    protocol_name: str
    payload: bytes
    identification: int = 0
    fragment_offset: int = 0
    version: Literal[6] = 6


NetworkLayer = Union[IPv4Layer, IPv6Layer]


@dataclass(frozen=True)
class CapturedPacket:
    """Flat feature record for one captured IP packet."""

    source_address: str
    destination_address: str
    ip_version: int
    header_length: int
    total_length: int
    identification: int
    fragment_offset: int
    time_to_live: int
    transport_protocol_id: int
    transport_name: str
    header_checksum: str
    payload_hex: str
    arrival_us: int
    session_elapsed_ms: float
    is_attack: bool

    @property
    def arrival_time(self) -> datetime:
        seconds, micros = divmod(self.arrival_us, 1_000_000)
        return datetime.fromtimestamp(seconds, tz=timezone.utc).replace(microsecond=micros)

    def as_row(self, timestamp_format: Optional[str] = None) -> Dict[str, object]:
        """Return a flat dict suitable for a dataframe row."""

        row: Dict[str, object] = asdict(self)
        if timestamp_format is not None:
            row["timestamp"] = self.arrival_time.strftime(timestamp_format)
        return row
