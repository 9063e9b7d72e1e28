"""Decode captured frames into flat feature records."""

from __future__ import annotations

from typing import Optional

from scapy.layers.inet import IP
from scapy.layers.inet6 import IPv6, IPv6ExtHdrFragment
from scapy.packet import NoPayload, Packet

from ..errors import PacketDecodeError
from .labeler import AttackLabeler
from .structures import (
    IPV6_CHECKSUM,
    IPV6_HEADER_BYTES,
    CapturedPacket,
    IPv4Layer,
    IPv6Layer,
    NetworkLayer,
)


def _outermost_ip(frame: Packet) -> Optional[Packet]:
    layer = frame
    while not isinstance(layer, NoPayload):
        if isinstance(layer, (IP, IPv6)):
            return layer
        layer = layer.payload
    return None


def _protocol_name(layer: Packet, field: str) -> str:
    value = getattr(layer, field, None)
    if value is None:
        return "unknown"
    try:
        name = layer.get_field(field).i2repr(layer, value)
    except (AttributeError, KeyError, TypeError):
        name = str(value)
    return str(name).strip("'").lower()


def _ipv4(layer: IP) -> IPv4Layer:
    ihl = int(layer.ihl) if layer.ihl is not None else 5
    payload = bytes(layer.payload)
    if layer.len is not None:
        # drop link-layer padding trailing the datagram
        payload = payload[: max(0, int(layer.len) - ihl * 4)]
    total_length = int(layer.len) if layer.len is not None else ihl * 4 + len(payload)
    return IPv4Layer(
        source=str(layer.src),
        destination=str(layer.dst),
        header_length=ihl,
        total_length=total_length,
        identification=int(layer.id),
        fragment_offset=int(layer.frag),
        ttl=int(layer.ttl),
        protocol=int(layer.proto) if layer.proto is not None else None,
        protocol_name=_protocol_name(layer, "proto"),
        checksum=int(layer.chksum) if layer.chksum is not None else 0,
        payload=payload,
    )


def _ipv6(layer: IPv6) -> IPv6Layer:
    payload = bytes(layer.payload)
    if layer.plen is not None:
        payload = payload[: int(layer.plen)]
    identification = fragment_offset = 0
    fragment = layer.getlayer(IPv6ExtHdrFragment)
    if fragment is not None:
        identification = int(fragment.id)
        fragment_offset = int(fragment.offset)
    return IPv6Layer(
        source=str(layer.src),
        destination=str(layer.dst),
        payload_length=int(layer.plen) if layer.plen is not None else len(payload),
        hop_limit=int(layer.hlim),
        next_header=int(layer.nh) if layer.nh is not None else None,
        protocol_name=_protocol_name(layer, "nh"),
        payload=payload,
        identification=identification,
        fragment_offset=fragment_offset,
    )


def decode_network_layer(frame: Packet) -> NetworkLayer:
    """Return the outermost IPv4/IPv6 layer of ``frame``.

    Raises :class:`PacketDecodeError` for frames carrying neither protocol.
    """

    layer = _outermost_ip(frame)
    if isinstance(layer, IP):
        return _ipv4(layer)
    if isinstance(layer, IPv6):
        return _ipv6(layer)
    raise PacketDecodeError(f"Not an IPv4 or IPv6 packet: {frame.summary()}")


def extract_packet(
    layer: NetworkLayer,
    arrival_us: int,
    elapsed_ms: float,
    labeler: AttackLabeler,
) -> CapturedPacket:
    """Build a :class:`CapturedPacket` from a decoded network layer."""

    if layer.version == 4:
        return CapturedPacket(
            source_address=layer.source,
            destination_address=layer.destination,
            ip_version=4,
            header_length=layer.header_length,
            total_length=layer.total_length,
            identification=layer.identification,
            fragment_offset=layer.fragment_offset,
            time_to_live=layer.ttl,
            transport_protocol_id=layer.protocol or 0,
            transport_name=layer.protocol_name,
            header_checksum=format(layer.checksum, "x"),
            payload_hex=layer.payload.hex(),
            arrival_us=arrival_us,
            session_elapsed_ms=elapsed_ms,
            is_attack=labeler.is_attack(layer.payload),
        )
    if layer.version == 6:
        return CapturedPacket(
            source_address=layer.source,
            destination_address=layer.destination,
            ip_version=6,
            header_length=IPV6_HEADER_BYTES // 4,
            total_length=layer.payload_length + IPV6_HEADER_BYTES,
            identification=layer.identification,
            fragment_offset=layer.fragment_offset,
            time_to_live=layer.hop_limit,
            transport_protocol_id=layer.next_header or 0,
            transport_name=layer.protocol_name,
            header_checksum=IPV6_CHECKSUM,
            payload_hex=layer.payload.hex(),
            arrival_us=arrival_us,
            session_elapsed_ms=elapsed_ms,
            is_attack=labeler.is_attack(layer.payload),
        )
    raise PacketDecodeError(f"Unsupported IP version: {getattr(layer, 'version', None)}")
