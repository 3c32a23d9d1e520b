"""
capture/pcap_reader.py

Alternative decoder: reads a capture with Scapy instead of tshark.

Scapy does the dissection; packet_from_scapy() only copies header fields
into the Packet model. Frames that are not Ethernet/IPv4/TCP return None
so the caller can skip them.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Iterator

from scapy.error import Scapy_Exception
from scapy.layers.inet import IP, TCP
from scapy.layers.l2 import Ether
from scapy.utils import PcapReader

from ..metrics import METRICS
from ..models import (
    ApplicationData,
    EthernetFrame,
    IPv4Flags,
    IPv4Packet,
    Packet,
    TCPFlags,
    TCPSegment,
)
from .errors import DecoderError
from .parser import (
    classify_protocol,
    parse_ip_address,
    parse_mac_address,
    parse_tcp_options,
)

if TYPE_CHECKING:
    from scapy.packet import Packet as ScapyPacket  # type: ignore[import-untyped]

logger = logging.getLogger(__name__)

# IPv4 flag bits as Scapy reports them
_IP_MF = 0x1
_IP_DF = 0x2
_IP_RB = 0x4


def _header_options(raw: bytes, header_len: int, fixed: int) -> bytes:
    """Bytes between the fixed header and the declared header length."""
    return raw[fixed:header_len] if header_len > fixed else b""


def packet_from_scapy(pkt: "ScapyPacket") -> Packet | None:
    """
    Copy a Scapy Ether/IP/TCP frame into a Packet.

    Returns None for anything else (ARP, IPv6, UDP, ...).
    """
    if not (pkt.haslayer(Ether) and pkt.haslayer(IP) and pkt.haslayer(TCP)):
        return None

    eth = pkt[Ether]
    ip = pkt[IP]
    tcp = pkt[TCP]

    ip_raw = bytes(ip)
    ihl = ip_raw[0] & 0x0F
    tcp_raw = bytes(tcp)
    data_offset = tcp_raw[12] >> 4

    try:
        tcp_options = parse_tcp_options(_header_options(tcp_raw, data_offset * 4, 20))
    except ValueError as exc:
        METRICS.values_defaulted.inc()
        logger.debug("tcp.options: %s — using no options", exc)
        tcp_options = ()

    ip_flags = int(ip.flags)
    source_port = int(tcp.sport)
    destination_port = int(tcp.dport)
    # IP total length bounds the segment, so Ethernet trailer padding is excluded
    ip_total_len = int.from_bytes(ip_raw[2:4], "big")
    payload = tcp_raw[data_offset * 4:max(ip_total_len - ihl * 4, 0)]

    return Packet(
        timestamp=datetime.fromtimestamp(float(pkt.time), tz=timezone.utc),
        ethernet_layer=EthernetFrame(
            source_mac=parse_mac_address(eth.src),
            destination_mac=parse_mac_address(eth.dst),
            ethertype=int.from_bytes(bytes(eth)[12:14], "big"),
        ),
        ip_layer=IPv4Packet(
            source_ip=parse_ip_address(ip.src),
            destination_ip=parse_ip_address(ip.dst),
            version=int(ip.version),
            ihl=ihl,
            dscp=int(ip.tos) >> 2,
            ecn=int(ip.tos) & 0x3,
            flags=IPv4Flags(
                reserved=bool(ip_flags & _IP_RB),
                dont_fragment=bool(ip_flags & _IP_DF),
                more_fragments=bool(ip_flags & _IP_MF),
            ),
            fragment_offset=int(ip.frag),
            ttl=int(ip.ttl),
            protocol=ip_raw[9],
            options=_header_options(ip_raw, ihl * 4, 20),
        ),
        tcp_layer=TCPSegment(
            source_port=source_port,
            destination_port=destination_port,
            sequence_number=int(tcp.seq),
            acknowledgment_number=int(tcp.ack),
            data_offset=data_offset,
            flags=TCPFlags.from_int(int(tcp.flags)),
            window_size=int(tcp.window),
            urgent_pointer=int(tcp.urgptr),
            options=tcp_options,
        ),
        application_layer=ApplicationData(
            protocol=classify_protocol(source_port, destination_port),
            payload=payload,
        ),
    )


def read_pcap(capture: Path) -> Iterator[Packet]:
    """Stream Packets out of a pcap/pcapng file, skipping non-TCP frames."""
    skipped = 0
    try:
        reader = PcapReader(str(capture))
    except (OSError, Scapy_Exception) as exc:
        raise DecoderError(f"Could not read {capture}: {exc}") from exc

    with reader:
        for pkt in reader:
            METRICS.records_received.inc()
            packet = packet_from_scapy(pkt)
            if packet is None:
                METRICS.records_skipped.inc()
                skipped += 1
                continue
            METRICS.records_parsed_ok.inc()
            yield packet
    if skipped:
        logger.info("Skipped %d non-TCP frames in %s", skipped, capture)
