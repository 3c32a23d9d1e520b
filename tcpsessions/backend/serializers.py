"""
backend/serializers.py

Pydantic documents for Packet and Session records.

Field names follow the model; binary values are rendered for humans:
MACs as 'aa:bb:cc:dd:ee:ff', IPv4 as dotted decimal, payloads and option
data as hex. Dump with model_dump(mode="json") for ISO-8601 timestamps.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from .models import Packet
from .sessions.models import Session, format_ipv4


def format_mac(raw: bytes) -> str:
    return ":".join(f"{octet:02x}" for octet in raw)


class EthernetFrameDocument(BaseModel):
    source_mac: str
    destination_mac: str
    ethertype: int
    frame_check_sequence: int = 0


class IPv4FlagsDocument(BaseModel):
    reserved: bool = False
    dont_fragment: bool = False
    more_fragments: bool = False


class IPv4PacketDocument(BaseModel):
    version: int
    ihl: int
    dscp: int
    ecn: int
    total_length: int
    identification: int
    flags: IPv4FlagsDocument
    fragment_offset: int
    ttl: int
    protocol: int
    header_checksum: int
    source_ip: str
    destination_ip: str
    options: str = ""


class TCPFlagsDocument(BaseModel):
    fin: bool = False
    syn: bool = False
    rst: bool = False
    psh: bool = False
    ack: bool = False
    urg: bool = False
    ece: bool = False
    cwr: bool = False


class TCPOptionDocument(BaseModel):
    kind: int
    length: int
    data: str = ""


class TCPSegmentDocument(BaseModel):
    source_port: int
    destination_port: int
    sequence_number: int
    acknowledgment_number: int
    data_offset: int
    flags: TCPFlagsDocument
    window_size: int
    checksum: int
    urgent_pointer: int
    options: list[TCPOptionDocument] = []


class ApplicationDataDocument(BaseModel):
    protocol: str
    payload: str = ""


class PacketDocument(BaseModel):
    timestamp: datetime
    ethernet_layer: EthernetFrameDocument
    ip_layer: IPv4PacketDocument
    tcp_layer: TCPSegmentDocument
    application_layer: ApplicationDataDocument
    total_size: int

    @classmethod
    def from_packet(cls, packet: Packet) -> "PacketDocument":
        eth = packet.ethernet_layer
        ip = packet.ip_layer
        tcp = packet.tcp_layer
        return cls(
            timestamp=packet.timestamp,
            ethernet_layer=EthernetFrameDocument(
                source_mac=format_mac(eth.source_mac),
                destination_mac=format_mac(eth.destination_mac),
                ethertype=eth.ethertype,
                frame_check_sequence=eth.frame_check_sequence,
            ),
            ip_layer=IPv4PacketDocument(
                version=ip.version,
                ihl=ip.ihl,
                dscp=ip.dscp,
                ecn=ip.ecn,
                total_length=ip.total_length,
                identification=ip.identification,
                flags=IPv4FlagsDocument(
                    reserved=ip.flags.reserved,
                    dont_fragment=ip.flags.dont_fragment,
                    more_fragments=ip.flags.more_fragments,
                ),
                fragment_offset=ip.fragment_offset,
                ttl=ip.ttl,
                protocol=ip.protocol,
                header_checksum=ip.header_checksum,
                source_ip=format_ipv4(ip.source_ip),
                destination_ip=format_ipv4(ip.destination_ip),
                options=ip.options.hex(),
            ),
            tcp_layer=TCPSegmentDocument(
                source_port=tcp.source_port,
                destination_port=tcp.destination_port,
                sequence_number=tcp.sequence_number,
                acknowledgment_number=tcp.acknowledgment_number,
                data_offset=tcp.data_offset,
                flags=TCPFlagsDocument(
                    fin=tcp.flags.fin,
                    syn=tcp.flags.syn,
                    rst=tcp.flags.rst,
                    psh=tcp.flags.psh,
                    ack=tcp.flags.ack,
                    urg=tcp.flags.urg,
                    ece=tcp.flags.ece,
                    cwr=tcp.flags.cwr,
                ),
                window_size=tcp.window_size,
                checksum=tcp.checksum,
                urgent_pointer=tcp.urgent_pointer,
                options=[
                    TCPOptionDocument(kind=opt.kind, length=opt.length, data=opt.data.hex())
                    for opt in tcp.options
                ],
            ),
            application_layer=ApplicationDataDocument(
                protocol=packet.protocol_label(),
                payload=packet.application_layer.payload.hex(),
            ),
            total_size=packet.total_size(),
        )


class SessionDocument(BaseModel):
    source_port: int
    destination_port: int
    source_ip: str
    destination_ip: str
    start_timestamp: datetime
    end_timestamp: datetime | None = None
    packet_count: int
    packets: list[PacketDocument] = []

    @classmethod
    def from_session(cls, session: Session, include_packets: bool = True) -> "SessionDocument":
        return cls(
            source_port=session.source_port,
            destination_port=session.destination_port,
            source_ip=format_ipv4(session.source_ip),
            destination_ip=format_ipv4(session.destination_ip),
            start_timestamp=session.start_timestamp,
            end_timestamp=session.end_timestamp,
            packet_count=session.packet_count,
            packets=(
                [PacketDocument.from_packet(p) for p in session.packets]
                if include_packets
                else []
            ),
        )
