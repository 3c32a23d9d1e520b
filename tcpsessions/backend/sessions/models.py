"""
sessions/models.py

Data models for session reconstruction.

FlowKey — hashable directional 4-tuple used as dict key by the reconstructor
Session — one reconstructed TCP conversation
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, NamedTuple

if TYPE_CHECKING:
    from ..models import Packet


def format_ipv4(raw: bytes) -> str:
    return ".".join(str(octet) for octet in raw)


# ---------------------------------------------------------------------------
# FlowKey — hashable, directional 4-tuple
# ---------------------------------------------------------------------------

class FlowKey(NamedTuple):
    """
    Directional 4-tuple identifying one side of a conversation.

    Unlike a normalised 5-tuple, the order matters: a session is stored
    under the key of its *opening* packet, and a closing packet sent by the
    other side is matched through reversed().
    """

    source_port: int
    destination_port: int
    source_ip: bytes
    destination_ip: bytes

    @classmethod
    def forward(cls, packet: Packet) -> FlowKey:
        """Key as seen by the packet's sender."""
        return cls(
            packet.tcp_layer.source_port,
            packet.tcp_layer.destination_port,
            packet.ip_layer.source_ip,
            packet.ip_layer.destination_ip,
        )

    @classmethod
    def reverse(cls, packet: Packet) -> FlowKey:
        """Key as seen by the packet's receiver, i.e. the opening side of a reply."""
        return cls.forward(packet).reversed()

    def reversed(self) -> FlowKey:
        return FlowKey(
            self.destination_port,
            self.source_port,
            self.destination_ip,
            self.source_ip,
        )

    def __repr__(self) -> str:
        return (
            f"{format_ipv4(self.source_ip)}:{self.source_port}"
            f"→{format_ipv4(self.destination_ip)}:{self.destination_port}"
        )


# ---------------------------------------------------------------------------
# Session — one reconstructed conversation
# ---------------------------------------------------------------------------

@dataclass
class Session:
    """
    Packets observed between a connection-open and connection-close signal.

    The key never changes after creation, packets are only appended and
    end_timestamp is set at most once.
    """

    key: FlowKey

    start_timestamp: datetime
    """Timestamp of the SYN packet that opened the session."""

    end_timestamp: datetime | None = None
    """Timestamp of the first matching FIN; None while still open."""

    packets: list[Packet] = field(default_factory=list)

    # ------------------------------------------------------------------
    # Mutators (used by SessionReconstructor only)
    # ------------------------------------------------------------------

    def add(self, packet: Packet) -> None:
        self.packets.append(packet)

    def close(self, timestamp: datetime) -> bool:
        """
        Record the closing timestamp.

        Returns False (and leaves the session untouched) if it was already
        closed.
        """
        if self.end_timestamp is not None:
            return False
        self.end_timestamp = timestamp
        return True

    # ------------------------------------------------------------------
    # Computed properties
    # ------------------------------------------------------------------

    @property
    def source_port(self) -> int:
        return self.key.source_port

    @property
    def destination_port(self) -> int:
        return self.key.destination_port

    @property
    def source_ip(self) -> bytes:
        return self.key.source_ip

    @property
    def destination_ip(self) -> bytes:
        return self.key.destination_ip

    @property
    def is_closed(self) -> bool:
        return self.end_timestamp is not None

    @property
    def duration(self) -> float | None:
        """Seconds between open and close, None while open."""
        if self.end_timestamp is None:
            return None
        return (self.end_timestamp - self.start_timestamp).total_seconds()

    @property
    def packet_count(self) -> int:
        return len(self.packets)

    def __repr__(self) -> str:
        return (
            f"Session({self.key!r} "
            f"pkts={self.packet_count} "
            f"start={self.start_timestamp.isoformat()} "
            f"closed={self.is_closed})"
        )
