"""
capture/parser.py

Converts one decoded tshark record into a typed Packet.

Input shape (tshark -T json -e <field> ...):
    {"_source": {"layers": {"frame.time_epoch": ["1700000000.123456"],
                            "eth.src": ["00:11:22:33:44:55"], ...}}}
A bare layers dict is accepted too. Values may be single-element lists
(tshark) or plain scalars.

Field policy:
  - Required: frame.time_epoch, eth.src, eth.dst, ip.src, ip.dst.
    Absent or unparseable → MissingFieldError, the record is skipped.
  - Everything else is optional. Absent → FIELD_DEFAULTS entry.
    Present but malformed → FIELD_DEFAULTS entry + values_defaulted counter.
  - Header checksum, total length and identification are never computed.
  - tshark reports ip.hdr_len but not the IP option bytes, so options are
    zero-filled to match the header length.

TCP flags bitmask (tcp.flags, hex string):
  FIN=0x001 SYN=0x002 RST=0x004 PSH=0x008 ACK=0x010 URG=0x020 ECE=0x040 CWR=0x080
"""

from __future__ import annotations

import ipaddress
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Iterator, Mapping, TypeVar

from ..metrics import METRICS
from ..models import (
    ApplicationData,
    ApplicationProtocol,
    CustomProtocol,
    EthernetFrame,
    IPv4Flags,
    IPv4Packet,
    Packet,
    TCPFlags,
    TCPOption,
    TCPSegment,
)
from .errors import MissingFieldError, UnparseableValueError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Defaults for optional fields
# ---------------------------------------------------------------------------
FIELD_DEFAULTS: dict[str, Any] = {
    "eth.type": 0x0800,
    "ip.version": 4,
    "ip.hdr_len": 20,
    "ip.dsfield.dscp": 0,
    "ip.dsfield.ecn": 0,
    "ip.flags.rb": False,
    "ip.flags.df": False,
    "ip.flags.mf": False,
    "ip.frag_offset": 0,
    "ip.ttl": 64,
    "ip.proto": 6,
    "tcp.srcport": 0,
    "tcp.dstport": 0,
    "tcp.seq": 0,
    "tcp.ack": 0,
    "tcp.hdr_len": 20,
    "tcp.flags": TCPFlags(),
    "tcp.window_size": 0,
    "tcp.urgent_pointer": 0,
    "tcp.options": (),
    "tcp.payload": b"",
    "frame.protocols": "",
}

_WELL_KNOWN_PORTS: dict[int, ApplicationProtocol] = {
    80: ApplicationProtocol.HTTP,
    443: ApplicationProtocol.HTTPS,
    21: ApplicationProtocol.FTP,
    22: ApplicationProtocol.SSH,
    25: ApplicationProtocol.SMTP,
    53: ApplicationProtocol.DNS,
}

# TCP option kinds without a length byte
_TCP_OPT_EOL = 0
_TCP_OPT_NOP = 1


# ---------------------------------------------------------------------------
# Raw value extraction
# ---------------------------------------------------------------------------

def _layers(record: Mapping[str, Any]) -> Mapping[str, Any]:
    source = record.get("_source")
    if isinstance(source, Mapping) and isinstance(source.get("layers"), Mapping):
        return source["layers"]
    return record


def _first(layers: Mapping[str, Any], name: str) -> str | None:
    """First value reported for a field, or None when absent/empty."""
    value = layers.get(name)
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if value is None:
        return None
    value = str(value).strip()
    return value or None


# ---------------------------------------------------------------------------
# Converters (raise ValueError on malformed input)
# ---------------------------------------------------------------------------

def _uint(bits: int, base: int = 10) -> Callable[[str], int]:
    limit = 1 << bits

    def convert(raw: str) -> int:
        value = int(raw, base)
        if not 0 <= value < limit:
            raise ValueError(f"out of range for {bits}-bit field")
        return value

    return convert


def _to_bool(raw: str) -> bool:
    lowered = raw.lower()
    if lowered in ("1", "true", "set"):
        return True
    if lowered in ("0", "false", "not set"):
        return False
    raise ValueError("not a boolean")


def _to_hex_bytes(raw: str) -> bytes:
    return bytes.fromhex(raw.replace(":", ""))


def parse_timestamp(raw: str) -> datetime:
    """Fractional epoch seconds → aware UTC datetime."""
    try:
        return datetime.fromtimestamp(float(raw), tz=timezone.utc)
    except (OverflowError, OSError) as exc:
        raise ValueError(str(exc)) from exc


def parse_mac_address(raw: str) -> bytes:
    """'00:11:22:aa:bb:cc' (or '-' separated) → 6 bytes."""
    parts = raw.replace("-", ":").split(":")
    if len(parts) != 6:
        raise ValueError("MAC address must have 6 octets")
    return bytes(int(part, 16) for part in parts)


def parse_ip_address(raw: str) -> bytes:
    """Dotted-decimal IPv4 → 4 bytes."""
    try:
        return ipaddress.IPv4Address(raw).packed
    except ipaddress.AddressValueError as exc:
        raise ValueError(str(exc)) from exc


def parse_tcp_flags(raw: str) -> TCPFlags:
    """'0x0012' → TCPFlags(syn=True, ack=True)."""
    return TCPFlags.from_int(_uint(12, 16)(raw))


def parse_tcp_options(raw: bytes) -> tuple[TCPOption, ...]:
    """
    Split raw TCP option bytes into (kind, length, data) entries.

    EOL ends the list and absorbs the padding after it, so the lengths
    always sum to len(raw). NOP is a single byte. Raises ValueError when a
    declared length runs past the buffer.
    """
    options: list[TCPOption] = []
    i = 0
    while i < len(raw):
        kind = raw[i]
        if kind == _TCP_OPT_EOL:
            options.append(TCPOption(kind=kind, length=len(raw) - i))
            break
        if kind == _TCP_OPT_NOP:
            options.append(TCPOption(kind=kind, length=1))
            i += 1
            continue
        if i + 1 >= len(raw):
            raise ValueError(f"truncated option kind={kind}")
        length = raw[i + 1]
        if length < 2 or i + length > len(raw):
            raise ValueError(f"bad length {length} for option kind={kind}")
        options.append(TCPOption(kind=kind, length=length, data=bytes(raw[i + 2:i + length])))
        i += length
    return tuple(options)


def classify_protocol(
    source_port: int,
    destination_port: int,
    protocols: str = "",
) -> ApplicationProtocol | CustomProtocol:
    """
    Well-known port on either side wins (destination first); otherwise the
    innermost dissector from frame.protocols, e.g. 'eth:ethertype:ip:tcp:tls'
    → CustomProtocol('TLS').
    """
    for port in (destination_port, source_port):
        if port in _WELL_KNOWN_PORTS:
            return _WELL_KNOWN_PORTS[port]
    if protocols:
        label = protocols.rsplit(":", 1)[-1].strip()
        if label:
            return CustomProtocol(label.upper())
    return CustomProtocol("TCP")


# ---------------------------------------------------------------------------
# Field access with the default table
# ---------------------------------------------------------------------------

def _required(layers: Mapping[str, Any], name: str, convert: Callable[[str], T]) -> T:
    raw = _first(layers, name)
    if raw is None:
        raise MissingFieldError(name)
    try:
        return convert(raw)
    except ValueError:
        raise MissingFieldError(name, raw) from None


def extract_optional(
    layers: Mapping[str, Any],
    name: str,
    convert: Callable[[str], T],
) -> T | None:
    """
    Parse an optional field.

    Returns None when absent. Raises UnparseableValueError when present but
    malformed.
    """
    raw = _first(layers, name)
    if raw is None:
        return None
    try:
        return convert(raw)
    except ValueError:
        raise UnparseableValueError(name, raw) from None


def _optional(layers: Mapping[str, Any], name: str, convert: Callable[[str], Any]) -> Any:
    try:
        value = extract_optional(layers, name, convert)
    except UnparseableValueError as exc:
        METRICS.values_defaulted.inc()
        logger.debug("%s — using default %r", exc, FIELD_DEFAULTS[name])
        return FIELD_DEFAULTS[name]
    return FIELD_DEFAULTS[name] if value is None else value


# ---------------------------------------------------------------------------
# Record → Packet
# ---------------------------------------------------------------------------

def parse_record(record: Mapping[str, Any]) -> Packet:
    """
    Build a Packet from one tshark record.

    Raises:
        MissingFieldError: a required identifying field is absent or
                           unparseable. Optional fields never raise.
    """
    layers = _layers(record)

    timestamp = _required(layers, "frame.time_epoch", parse_timestamp)
    source_mac = _required(layers, "eth.src", parse_mac_address)
    destination_mac = _required(layers, "eth.dst", parse_mac_address)
    source_ip = _required(layers, "ip.src", parse_ip_address)
    destination_ip = _required(layers, "ip.dst", parse_ip_address)

    ethernet = EthernetFrame(
        source_mac=source_mac,
        destination_mac=destination_mac,
        ethertype=_optional(layers, "eth.type", _uint(16, 16)),
    )

    ip_header_len = _optional(layers, "ip.hdr_len", _uint(8))
    ip = IPv4Packet(
        source_ip=source_ip,
        destination_ip=destination_ip,
        version=_optional(layers, "ip.version", _uint(4)),
        ihl=ip_header_len // 4,
        dscp=_optional(layers, "ip.dsfield.dscp", _uint(6)),
        ecn=_optional(layers, "ip.dsfield.ecn", _uint(2)),
        flags=IPv4Flags(
            reserved=_optional(layers, "ip.flags.rb", _to_bool),
            dont_fragment=_optional(layers, "ip.flags.df", _to_bool),
            more_fragments=_optional(layers, "ip.flags.mf", _to_bool),
        ),
        fragment_offset=_optional(layers, "ip.frag_offset", _uint(13)),
        ttl=_optional(layers, "ip.ttl", _uint(8)),
        protocol=_optional(layers, "ip.proto", _uint(8)),
        options=bytes(max(ip_header_len - 20, 0)),
    )

    source_port = _optional(layers, "tcp.srcport", _uint(16))
    destination_port = _optional(layers, "tcp.dstport", _uint(16))
    tcp = TCPSegment(
        source_port=source_port,
        destination_port=destination_port,
        sequence_number=_optional(layers, "tcp.seq", _uint(32)),
        acknowledgment_number=_optional(layers, "tcp.ack", _uint(32)),
        data_offset=_optional(layers, "tcp.hdr_len", _uint(8)) // 4,
        flags=_optional(layers, "tcp.flags", parse_tcp_flags),
        window_size=_optional(layers, "tcp.window_size", _uint(32)),
        urgent_pointer=_optional(layers, "tcp.urgent_pointer", _uint(16)),
        options=_optional(
            layers, "tcp.options", lambda raw: parse_tcp_options(_to_hex_bytes(raw))
        ),
    )

    application = ApplicationData(
        protocol=classify_protocol(
            source_port,
            destination_port,
            _optional(layers, "frame.protocols", str),
        ),
        payload=_optional(layers, "tcp.payload", _to_hex_bytes),
    )

    return Packet(
        timestamp=timestamp,
        ethernet_layer=ethernet,
        ip_layer=ip,
        tcp_layer=tcp,
        application_layer=application,
    )


def parse_records(records: Iterable[Mapping[str, Any]]) -> Iterator[Packet]:
    """
    Yield a Packet per usable record, in input order.

    Records missing a required field are logged and skipped; the batch
    always continues.
    """
    for index, record in enumerate(records):
        METRICS.records_received.inc()
        try:
            packet = parse_record(record)
        except MissingFieldError as exc:
            METRICS.records_skipped.inc()
            logger.warning("Skipping record #%d: %s", index, exc)
            continue
        METRICS.records_parsed_ok.inc()
        yield packet
