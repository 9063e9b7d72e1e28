"""Signature-based attack labeling."""

from __future__ import annotations

from dataclasses import dataclass

# Transport header (UDP) preceding the signature in generated payloads.
DEFAULT_HEADER_SKIP = 8


def matches_signature(payload: bytes, signature: bytes, header_skip: int = DEFAULT_HEADER_SKIP) -> bool:
    """Return True when ``signature`` sits exactly ``header_skip`` bytes into ``payload``.

    This is a fixed-offset comparison, not a search: a signature shifted by a
    single byte does not match.
    """

    end = header_skip + len(signature)
    if len(payload) < end:
        return False
    return payload[header_skip:end] == signature


@dataclass(frozen=True)
class AttackLabeler:
    """Classify network payloads as attack traffic."""

    signature: bytes
    header_skip: int = DEFAULT_HEADER_SKIP

    def __post_init__(self) -> None:
        if not self.signature:
            raise ValueError("signature must not be empty")
        if self.header_skip < 0:
            raise ValueError("header_skip must not be negative")

    def is_attack(self, payload: bytes) -> bool:
        return matches_signature(bytes(payload), self.signature, self.header_skip)
