"""
backend/main.py

Command-line driver: decode a capture, rebuild TCP sessions, print JSON.

    python -m tcpsessions.backend.main capture.pcap
    python -m tcpsessions.backend.main capture.pcap --decoder scapy --summary
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import NoReturn

from .capture import DecoderError, decode_capture, read_pcap
from .config import LOG_LEVELS, settings
from .metrics import METRICS
from .models import Packet
from .serializers import SessionDocument
from .sessions import find_tcp_sessions

logger = logging.getLogger("tcpsessions.main")


def load_packets(capture: Path, decoder: str) -> list[Packet]:
    if decoder == "scapy":
        return list(read_pcap(capture))
    return decode_capture(
        capture,
        tshark_path=settings.TSHARK_PATH,
        display_filter=settings.DISPLAY_FILTER,
        timeout=settings.TSHARK_TIMEOUT_SECONDS,
    )


def run(capture: Path, decoder: str, include_packets: bool, indent: int | None) -> str:
    """Decode, reconstruct and render the sessions of one capture as JSON."""
    packets = load_packets(capture, decoder)
    logger.info("Loaded %d packets from %s (ingest=%s)", len(packets), capture, METRICS.as_dict())

    sessions = find_tcp_sessions(packets)
    documents = [
        SessionDocument.from_session(s, include_packets=include_packets).model_dump(mode="json")
        for s in sessions
    ]
    return json.dumps(documents, indent=indent)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Reconstruct TCP sessions from a capture file")
    parser.add_argument("capture", type=Path, help="pcap / pcapng file to read")
    parser.add_argument(
        "--decoder", default=settings.DECODER, choices=["tshark", "scapy"],
    )
    parser.add_argument(
        "--summary", action="store_true",
        help="Omit per-session packet lists from the output",
    )
    parser.add_argument("-o", "--output", type=Path, default=None)
    parser.add_argument("--indent", type=int, default=settings.JSON_INDENT)
    parser.add_argument(
        "--log-level", default=settings.LOG_LEVEL,
        choices=LOG_LEVELS,
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> NoReturn:
    args = _parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )
    if not args.capture.is_file():
        print(f"ERROR: capture file not found: {args.capture}", file=sys.stderr)
        sys.exit(1)

    include_packets = settings.INCLUDE_PACKETS and not args.summary
    try:
        rendered = run(args.capture, args.decoder, include_packets, args.indent)
    except DecoderError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)

    if args.output is not None:
        args.output.write_text(rendered + "\n", encoding="utf-8")
        logger.info("Wrote sessions to %s", args.output)
    else:
        print(rendered)
    sys.exit(0)


if __name__ == "__main__":
    main()
