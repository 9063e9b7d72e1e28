import pytest
from scapy.layers.inet import IP, UDP
from scapy.layers.inet6 import IPv6

from attack_capture.attack.generator import AttackThread, UdpFlood
from attack_capture.capture.labeler import AttackLabeler
from attack_capture.config.types import AttackConfig
from attack_capture.errors import AttackError

from conftest import SIGNATURE, RecordingSender


def _flood(**overrides):
    params = dict(signature_hex=SIGNATURE.hex(), packet_count=20, seed=7)
    params.update(overrides)
    sender = RecordingSender()
    return UdpFlood(AttackConfig(**params), sender), sender


def test_packet_budget_is_respected():
    flood, sender = _flood(packet_count=50)
    stats = flood.run("172.17.0.2")
    assert stats.packets_sent == 50
    assert len(sender.packets) == 50
    assert not stats.stopped_early
    assert sender.closed == 1


def test_every_packet_carries_signature_at_header_offset():
    flood, sender = _flood(payload_size=32, target_port=4444)
    flood.run("172.17.0.2")
    labeler = AttackLabeler(SIGNATURE)
    for packet in sender.packets:
        assert packet[IP].dst == "172.17.0.2"
        assert packet[UDP].dport == 4444
        assert len(packet[UDP].payload) == 32
        assert labeler.is_attack(bytes(packet[IP].payload))


def test_same_seed_same_stream():
    first, first_sender = _flood(seed=11)
    second, second_sender = _flood(seed=11)
    other, other_sender = _flood(seed=12)
    for flood in (first, second, other):
        flood.run("172.17.0.2")
    first_bytes = [bytes(packet[UDP]) for packet in first_sender.packets]
    assert first_bytes == [bytes(packet[UDP]) for packet in second_sender.packets]
    assert first_bytes != [bytes(packet[UDP]) for packet in other_sender.packets]


def test_ipv6_target():
    flood, sender = _flood(packet_count=3)
    flood.run("fd00::2")
    assert all(IPv6 in packet for packet in sender.packets)
    assert sender.packets[0][IPv6].dst == "fd00::2"


def test_duration_budget_ends_flood():
    flood, sender = _flood(packet_count=None, duration=0.1, rate=200)
    stats = flood.run("172.17.0.2")
    assert 0 < stats.packets_sent == len(sender.packets)
    assert stats.elapsed >= 0.09
    assert not stats.stopped_early


def test_invalid_target_raises():
    flood, sender = _flood()
    with pytest.raises(AttackError):
        flood.run("not-an-address")
    assert sender.packets == []


def test_attack_thread_can_be_stopped():
    flood, sender = _flood(packet_count=None, duration=30, rate=50)
    thread = AttackThread(flood, "172.17.0.2")
    thread.start()
    thread.stop()
    thread.join(timeout=5)
    assert not thread.is_alive()
    assert thread.stats is not None
    assert thread.stats.stopped_early
    assert thread.stats.packets_sent == len(sender.packets)


def test_attack_thread_reraises_on_join():
    class BrokenSender(RecordingSender):
        def send(self, packet):
            raise PermissionError("raw sockets need privileges")

    flood = UdpFlood(AttackConfig(signature_hex=SIGNATURE.hex()), BrokenSender())
    thread = AttackThread(flood, "172.17.0.2")
    thread.start()
    with pytest.raises(AttackError):
        thread.join(timeout=5)
    assert thread.stats is None


def test_reset_rearms_a_stopped_flood():
    flood, sender = _flood(packet_count=5)
    flood.stop()
    assert flood.run("172.17.0.2").packets_sent == 0
    flood.reset()
    stats = flood.run("172.17.0.2")
    assert stats.packets_sent == 5
    assert not stats.stopped_early
