"""
tests/test_serializers.py

Tests for serializers.py — Packet / Session → pydantic documents.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

from tcpsessions.backend.models import (
    ApplicationData,
    CustomProtocol,
    EthernetFrame,
    IPv4Packet,
    Packet,
    TCPFlags,
    TCPOption,
    TCPSegment,
)
from tcpsessions.backend.serializers import PacketDocument, SessionDocument, format_mac
from tcpsessions.backend.sessions import find_tcp_sessions

T0 = datetime(2023, 11, 14, 22, 13, 20, 500000, tzinfo=timezone.utc)
A = bytes([192, 168, 1, 10])
B = bytes([93, 184, 216, 34])


def pkt(src, sport, dst, dport, flags, offset=0.0, payload=b"") -> Packet:
    return Packet(
        timestamp=T0 + timedelta(seconds=offset),
        ethernet_layer=EthernetFrame(
            source_mac=bytes.fromhex("001122334455"),
            destination_mac=bytes.fromhex("66778899aabb"),
            ethertype=0x0800,
        ),
        ip_layer=IPv4Packet(source_ip=src, destination_ip=dst, version=4, ihl=5, ttl=64, protocol=6),
        tcp_layer=TCPSegment(
            source_port=sport,
            destination_port=dport,
            flags=TCPFlags.from_int(flags),
            options=(TCPOption(kind=2, length=4, data=b"\x05\xb4"),),
        ),
        application_layer=ApplicationData(protocol=CustomProtocol("IRC"), payload=payload),
    )


class TestPacketDocument:

    def test_human_readable_fields(self):
        doc = PacketDocument.from_packet(pkt(A, 1000, B, 6667, 0x18, payload=b"PING"))
        assert doc.ethernet_layer.source_mac == "00:11:22:33:44:55"
        assert doc.ip_layer.source_ip == "192.168.1.10"
        assert doc.ip_layer.destination_ip == "93.184.216.34"
        assert doc.tcp_layer.flags.psh is True
        assert doc.tcp_layer.flags.syn is False
        assert doc.tcp_layer.options[0].data == "05b4"
        assert doc.application_layer.protocol == "IRC"
        assert doc.application_layer.payload == "50494e47"
        assert doc.total_size == 14 + 20 + 20 + 4 + 4

    def test_json_dump(self):
        dumped = PacketDocument.from_packet(pkt(A, 1000, B, 80, 0x02)).model_dump(mode="json")
        assert dumped["timestamp"].startswith("2023-11-14T22:13:20.500000")
        assert json.loads(json.dumps(dumped))["tcp_layer"]["source_port"] == 1000

    def test_format_mac(self):
        assert format_mac(bytes([0, 1, 0xAB, 0xCD, 0xEF, 0xFF])) == "00:01:ab:cd:ef:ff"


class TestSessionDocument:

    def test_closed_session(self):
        stream = [
            pkt(A, 1000, B, 80, 0x02, 0.0),
            pkt(B, 80, A, 1000, 0x10, 0.1),
            pkt(B, 80, A, 1000, 0x01, 0.2),
        ]
        [session] = find_tcp_sessions(stream)
        doc = SessionDocument.from_session(session)
        assert doc.source_port == 1000
        assert doc.destination_port == 80
        assert doc.source_ip == "192.168.1.10"
        assert doc.destination_ip == "93.184.216.34"
        assert doc.start_timestamp == stream[0].timestamp
        assert doc.end_timestamp == stream[2].timestamp
        assert doc.packet_count == 3
        assert len(doc.packets) == 3

    def test_open_session_summary(self):
        [session] = find_tcp_sessions([pkt(A, 1000, B, 80, 0x02)])
        dumped = SessionDocument.from_session(session, include_packets=False).model_dump(mode="json")
        assert dumped["end_timestamp"] is None
        assert dumped["packet_count"] == 1
        assert dumped["packets"] == []
