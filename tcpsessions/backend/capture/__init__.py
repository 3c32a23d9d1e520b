"""
capture/__init__.py

Public API for the capture sub-package.
"""

from .errors import DecoderError, MissingFieldError, RecordError, UnparseableValueError
from .parser import parse_record, parse_records
from .pcap_reader import packet_from_scapy, read_pcap
from .tshark import decode_capture, run_tshark

__all__ = [
    "DecoderError",
    "MissingFieldError",
    "RecordError",
    "UnparseableValueError",
    "decode_capture",
    "packet_from_scapy",
    "parse_record",
    "parse_records",
    "read_pcap",
    "run_tshark",
]
