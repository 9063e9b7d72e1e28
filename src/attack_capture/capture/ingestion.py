"""Turn a capture file into labeled packet records."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from scapy.packet import Packet

from ..errors import PacketDecodeError
from ..utils.logging import get_logger
from ..utils.progress import frame_progress
from .extractor import decode_network_layer, extract_packet
from .labeler import AttackLabeler
from .pcap_reader import CaptureReader
from .records import RecordSet


@dataclass
class IngestionStats:
    frames: int = 0
    records: int = 0
    attacks: int = 0
    skipped_non_ip: int = 0
    skipped_before_start: int = 0
    truncated: bool = False


def elapsed_millis(arrival_us: int, session_start_us: int) -> float:
    """Milliseconds between the session start and a frame arrival (both in µs)."""

    return (arrival_us - session_start_us) / 1000.0


class CaptureIngestor:
    """Stream a capture file through the decoder, extractor and labeler."""

    def __init__(
        self,
        labeler: AttackLabeler,
        session_start_us: int,
        max_records: Optional[int] = None,
        drop_before_start: bool = True,
        show_progress: bool = False,
    ) -> None:
        self.labeler = labeler
        self.session_start_us = session_start_us
        self.max_records = max_records
        self.drop_before_start = drop_before_start
        self.show_progress = show_progress
        self.logger = get_logger(__name__)

    def ingest(self, path: Path, records: Optional[RecordSet] = None) -> tuple[RecordSet, IngestionStats]:
        """Decode every frame of ``path`` into ``records``.

        Each call is a fresh pass over the file; frames without an IP layer are
        skipped and the loop continues.
        """

        records = records if records is not None else RecordSet()
        stats = IngestionStats()
        bar = frame_progress(f"Reading {Path(path).name}", disable=not self.show_progress)

        def handle(frame: Packet, arrival_us: int) -> bool:
            stats.frames += 1
            bar.update(1)
            try:
                layer = decode_network_layer(frame)
            except PacketDecodeError:
                stats.skipped_non_ip += 1
                self.logger.debug("frame_skipped", reason="not_ip", index=stats.frames - 1)
                return True
            elapsed = elapsed_millis(arrival_us, self.session_start_us)
            if self.drop_before_start and elapsed < 0:
                stats.skipped_before_start += 1
                return True
            record = extract_packet(layer, arrival_us, elapsed, self.labeler)
            records.append(record)
            stats.records += 1
            stats.attacks += int(record.is_attack)
            if self.max_records is not None and stats.records >= self.max_records:
                stats.truncated = True
                return False
            return True

        self.logger.info("capture_read_start", path=str(path), session_start_us=self.session_start_us)
        try:
            with CaptureReader(path) as reader:
                reader.for_each_frame(handle)
        finally:
            bar.close()
        self.logger.info(
            "capture_read_done",
            path=str(path),
            frames=stats.frames,
            records=stats.records,
            attacks=stats.attacks,
            skipped_non_ip=stats.skipped_non_ip,
            skipped_before_start=stats.skipped_before_start,
            truncated=stats.truncated,
        )
        return records, stats
