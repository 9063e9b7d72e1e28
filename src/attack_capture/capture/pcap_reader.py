"""PCAP reading utilities."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Iterator, Optional, Tuple

from scapy.error import Scapy_Exception
from scapy.packet import Packet
from scapy.utils import PcapReader

from ..errors import CaptureFileError

FrameCallback = Callable[[Packet, int], bool]


def arrival_micros(frame: Packet) -> int:
    """Arrival time of ``frame`` in integer microseconds since the epoch."""

    # PcapReader sets ``time`` as float (pcap) or EDecimal (pcapng, ns resolution)
    return int(round(float(frame.time) * 1_000_000))


class CaptureReader:
    """Stream frames of a pcap/pcapng file in arrival order.

    Unreadable files raise :class:`CaptureFileError`.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._reader: Optional[PcapReader] = None

    def open(self) -> PcapReader:
        if self._reader is None:
            try:
                # PcapReader dispatches to the pcapng reader on the file magic
                self._reader = PcapReader(str(self.path))
            except (Scapy_Exception, OSError) as exc:
                raise CaptureFileError(f"Could not open capture {self.path}: {exc}") from exc
        return self._reader

    def close(self) -> None:
        if self._reader is not None:
            self._reader.close()
            self._reader = None

    def frames(self) -> Iterator[Tuple[Packet, int]]:
        reader = self.open()
        try:
            for frame in reader:
                yield frame, arrival_micros(frame)
        except (Scapy_Exception, OSError) as exc:
            raise CaptureFileError(f"Could not read capture {self.path}: {exc}") from exc

    def for_each_frame(self, callback: FrameCallback) -> int:
        """Invoke ``callback(frame, arrival_us)`` until it returns False.

        Returns the number of frames delivered.
        """

        delivered = 0
        for frame, arrival_us in self.frames():
            delivered += 1
            if not callback(frame, arrival_us):
                break
        return delivered

    def __enter__(self) -> "CaptureReader":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def first_arrival_micros(path: Path | str) -> Optional[int]:
    """Arrival time of the first frame, or None for an empty capture."""

    with CaptureReader(path) as reader:
        for _, arrival_us in reader.frames():
            return arrival_us
    return None
