import pytest
from scapy.layers.inet import IP, UDP
from scapy.layers.l2 import ARP, Ether
from scapy.packet import Raw

from attack_capture.capture.ingestion import CaptureIngestor, elapsed_millis
from attack_capture.capture.labeler import AttackLabeler
from attack_capture.capture.pcap_reader import CaptureReader, first_arrival_micros
from attack_capture.capture.records import RecordSet
from attack_capture.errors import CaptureFileError

from conftest import ETHER, SIGNATURE, framed, stamp, write_capture

START = 1_700_000_000.0
START_US = 1_700_000_000_000_000


def _udp(data: bytes, src: str = "10.0.0.9"):
    return IP(src=src, dst="172.17.0.2") / UDP(sport=50000, dport=9) / Raw(load=data)


def _capture(tmp_path):
    packets = [
        framed(_udp(SIGNATURE + b"one"), START + 0.001),
        stamp(Ether(**ETHER) / ARP(psrc="172.17.0.1", pdst="172.17.0.2"), START + 0.002),
        framed(_udp(SIGNATURE + b"two"), START + 0.003),
        framed(_udp(b"\x00" + SIGNATURE), START + 0.004),
    ]
    return write_capture(tmp_path / "session.pcap", packets)


def test_ingest_labels_ip_frames_and_skips_others(tmp_path):
    ingestor = CaptureIngestor(AttackLabeler(SIGNATURE), session_start_us=START_US)
    records, stats = ingestor.ingest(_capture(tmp_path))

    assert [record.is_attack for record in records] == [True, True, False]
    assert stats.frames == 4
    assert stats.records == 3
    assert stats.attacks == 2
    assert stats.skipped_non_ip == 1
    assert not stats.truncated
    assert [record.arrival_us for record in records] == [
        START_US + 1_000, START_US + 3_000, START_US + 4_000,
    ]
    assert [record.session_elapsed_ms for record in records] == [1.0, 3.0, 4.0]


def test_ingest_is_a_fresh_pass_each_time(tmp_path):
    path = _capture(tmp_path)
    ingestor = CaptureIngestor(AttackLabeler(SIGNATURE), session_start_us=START_US)
    first, _ = ingestor.ingest(path)
    second, _ = ingestor.ingest(path)
    assert len(first) == len(second) == 3


def test_ingest_appends_into_given_record_set(tmp_path):
    records = RecordSet()
    ingestor = CaptureIngestor(AttackLabeler(SIGNATURE), session_start_us=START_US)
    returned, _ = ingestor.ingest(_capture(tmp_path), records)
    assert returned is records
    assert len(records) == 3


def test_max_records_stops_early(tmp_path):
    ingestor = CaptureIngestor(AttackLabeler(SIGNATURE), session_start_us=START_US, max_records=2)
    records, stats = ingestor.ingest(_capture(tmp_path))
    assert len(records) == 2
    assert stats.truncated


def test_frames_before_session_start_are_dropped(tmp_path):
    late_start = START_US + 2_500
    ingestor = CaptureIngestor(AttackLabeler(SIGNATURE), session_start_us=late_start)
    records, stats = ingestor.ingest(_capture(tmp_path))
    assert len(records) == 2
    assert stats.skipped_before_start == 1
    assert all(record.session_elapsed_ms >= 0 for record in records)


def test_frames_before_start_can_be_kept(tmp_path):
    ingestor = CaptureIngestor(
        AttackLabeler(SIGNATURE), session_start_us=START_US + 2_500, drop_before_start=False
    )
    records, _ = ingestor.ingest(_capture(tmp_path))
    assert len(records) == 3
    assert records[0].session_elapsed_ms == -1.5


def test_reader_callback_controls_iteration(tmp_path):
    path = _capture(tmp_path)
    seen = []
    with CaptureReader(path) as reader:
        delivered = reader.for_each_frame(
            lambda frame, arrival_us: seen.append(arrival_us) or len(seen) < 2
        )
    assert delivered == 2
    assert seen == [START_US + 1_000, START_US + 2_000]
    assert first_arrival_micros(path) == START_US + 1_000


def test_elapsed_millis():
    assert elapsed_millis(START_US + 1_500, START_US) == 1.5
    assert elapsed_millis(START_US - 2_000, START_US) == -2.0


def test_unreadable_capture_raises_capture_file_error(tmp_path):
    path = tmp_path / "broken.pcap"
    path.write_bytes(b"this is not a capture file at all")
    ingestor = CaptureIngestor(AttackLabeler(SIGNATURE), session_start_us=START_US)
    with pytest.raises(CaptureFileError):
        ingestor.ingest(path)
    with pytest.raises(CaptureFileError):
        first_arrival_micros(tmp_path / "missing.pcap")
