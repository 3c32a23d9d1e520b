"""
backend/models.py

Normalised packet model shared by every stage of the pipeline.

One Packet is built per decoded frame by the capture adapter and is then
handed, read-only, to the session reconstructor. Packets are frozen so the
same instance can safely be referenced from several Session records.

Layer layout:
  EthernetFrame   — link layer (MACs, ethertype)
  IPv4Packet      — network layer (addresses, TTL, options, ...)
  TCPSegment      — transport layer (ports, seq/ack, flags, options)
  ApplicationData — protocol classification + raw payload bytes

Every numeric field defaults to zero / False. Fields the upstream decoder
never reports (header checksum, total length, identification) stay zero
rather than being recomputed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Tuple, Union

if TYPE_CHECKING:
    from .sessions.models import FlowKey


# ---------------------------------------------------------------------------
# Fixed header sizes (bytes)
# ---------------------------------------------------------------------------
ETHERNET_HEADER_SIZE = 14   # without the trailing frame check sequence
IPV4_HEADER_SIZE = 20
TCP_HEADER_SIZE = 20


# ---------------------------------------------------------------------------
# Link layer
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class EthernetFrame:
    """Layer 2 frame header."""

    source_mac: bytes = bytes(6)
    destination_mac: bytes = bytes(6)

    ethertype: int = 0
    """0x0800 for IPv4."""

    frame_check_sequence: int = 0


# ---------------------------------------------------------------------------
# Network layer
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class IPv4Flags:
    reserved: bool = False
    dont_fragment: bool = False
    more_fragments: bool = False


@dataclass(frozen=True, slots=True)
class IPv4Packet:
    """Layer 3 header. Addresses are 4-byte values."""

    source_ip: bytes = bytes(4)
    destination_ip: bytes = bytes(4)
    version: int = 0
    ihl: int = 0
    """Header length in 32-bit words."""

    dscp: int = 0
    ecn: int = 0
    total_length: int = 0
    identification: int = 0
    flags: IPv4Flags = field(default_factory=IPv4Flags)
    fragment_offset: int = 0
    ttl: int = 0
    protocol: int = 0
    """Transport protocol number, 6 for TCP."""

    header_checksum: int = 0
    options: bytes = b""


# ---------------------------------------------------------------------------
# Transport layer
# ---------------------------------------------------------------------------

_F_FIN = 0x001
_F_SYN = 0x002
_F_RST = 0x004
_F_PSH = 0x008
_F_ACK = 0x010
_F_URG = 0x020
_F_ECE = 0x040
_F_CWR = 0x080


@dataclass(frozen=True, slots=True)
class TCPFlags:
    fin: bool = False
    syn: bool = False
    rst: bool = False
    psh: bool = False
    ack: bool = False
    urg: bool = False
    ece: bool = False
    cwr: bool = False

    @classmethod
    def from_int(cls, value: int) -> TCPFlags:
        """Decode the TCP flags bitmask (bits above CWR are ignored)."""
        return cls(
            fin=bool(value & _F_FIN),
            syn=bool(value & _F_SYN),
            rst=bool(value & _F_RST),
            psh=bool(value & _F_PSH),
            ack=bool(value & _F_ACK),
            urg=bool(value & _F_URG),
            ece=bool(value & _F_ECE),
            cwr=bool(value & _F_CWR),
        )

    def to_int(self) -> int:
        value = 0
        for flag, bit in (
            (self.fin, _F_FIN),
            (self.syn, _F_SYN),
            (self.rst, _F_RST),
            (self.psh, _F_PSH),
            (self.ack, _F_ACK),
            (self.urg, _F_URG),
            (self.ece, _F_ECE),
            (self.cwr, _F_CWR),
        ):
            if flag:
                value |= bit
        return value

    def names(self) -> list[str]:
        """Upper-case names of the set flags, e.g. ['SYN', 'ACK']."""
        return [
            name.upper()
            for name in ("fin", "syn", "rst", "psh", "ack", "urg", "ece", "cwr")
            if getattr(self, name)
        ]


@dataclass(frozen=True, slots=True)
class TCPOption:
    kind: int = 0
    length: int = 0
    """Declared option length in bytes (kind + length + data)."""

    data: bytes = b""


@dataclass(frozen=True, slots=True)
class TCPSegment:
    """Layer 4 header."""

    source_port: int = 0
    destination_port: int = 0
    sequence_number: int = 0
    acknowledgment_number: int = 0
    data_offset: int = 0
    """Header length in 32-bit words."""

    flags: TCPFlags = field(default_factory=TCPFlags)
    window_size: int = 0
    checksum: int = 0
    urgent_pointer: int = 0
    options: Tuple[TCPOption, ...] = ()


# ---------------------------------------------------------------------------
# Application layer
# ---------------------------------------------------------------------------

class ApplicationProtocol(str, Enum):
    """Well-known application protocols."""

    HTTP = "HTTP"
    HTTPS = "HTTPS"
    FTP = "FTP"
    SSH = "SSH"
    SMTP = "SMTP"
    DNS = "DNS"


@dataclass(frozen=True, slots=True)
class CustomProtocol:
    """Any protocol outside ApplicationProtocol, identified by a free-form label."""

    label: str


@dataclass(frozen=True, slots=True)
class ApplicationData:
    protocol: Union[ApplicationProtocol, CustomProtocol] = CustomProtocol("TCP")
    payload: bytes = b""


# ---------------------------------------------------------------------------
# Packet
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class Packet:
    """One observed frame at the moment it was captured."""

    timestamp: datetime
    """Capture time (UTC, timezone-aware)."""

    ethernet_layer: EthernetFrame = field(default_factory=EthernetFrame)
    ip_layer: IPv4Packet = field(default_factory=IPv4Packet)
    tcp_layer: TCPSegment = field(default_factory=TCPSegment)
    application_layer: ApplicationData = field(default_factory=ApplicationData)

    # ------------------------------------------------------------------
    # Derived accessors
    # ------------------------------------------------------------------

    def total_size(self) -> int:
        """
        Size of the frame in bytes.

        Ethernet header (no FCS) + IPv4 header and options + TCP header and
        the declared length of each TCP option + application payload.
        """
        return (
            ETHERNET_HEADER_SIZE
            + IPV4_HEADER_SIZE + len(self.ip_layer.options)
            + TCP_HEADER_SIZE + sum(opt.length for opt in self.tcp_layer.options)
            + len(self.application_layer.payload)
        )

    def is_handshake(self) -> bool:
        """
        True when SYN or FIN is set.

        RST-only teardowns are not counted; inspect tcp_layer.flags
        directly for anything finer.
        """
        flags = self.tcp_layer.flags
        return flags.syn or flags.fin

    def protocol_label(self) -> str:
        protocol = self.application_layer.protocol
        if isinstance(protocol, CustomProtocol):
            return protocol.label
        return protocol.value

    @property
    def source_port(self) -> int:
        return self.tcp_layer.source_port

    @property
    def destination_port(self) -> int:
        return self.tcp_layer.destination_port

    @property
    def source_ip(self) -> bytes:
        return self.ip_layer.source_ip

    @property
    def destination_ip(self) -> bytes:
        return self.ip_layer.destination_ip

    def flow_key(self) -> FlowKey:
        """Directional 4-tuple key as seen by this packet's sender."""
        from .sessions.models import FlowKey

        return FlowKey.forward(self)
