"""
capture/tshark.py

Runs tshark over a capture file and returns its JSON records.

tshark does all of the dissection; this module only builds the command
line, runs the process and hands the decoded JSON to parser.py. Nothing
here inspects packet bytes.
"""

from __future__ import annotations

import json
import logging
import shutil
import subprocess
from pathlib import Path
from typing import Any

from ..models import Packet
from .errors import DecoderError
from .parser import parse_records

logger = logging.getLogger(__name__)

# Fields pulled from tshark for every packet (see parser.FIELD_DEFAULTS).
TSHARK_FIELDS: tuple[str, ...] = (
    "frame.time_epoch",
    "frame.protocols",
    "eth.src",
    "eth.dst",
    "eth.type",
    "ip.version",
    "ip.hdr_len",
    "ip.dsfield.dscp",
    "ip.dsfield.ecn",
    "ip.flags.rb",
    "ip.flags.df",
    "ip.flags.mf",
    "ip.frag_offset",
    "ip.ttl",
    "ip.proto",
    "ip.src",
    "ip.dst",
    "tcp.srcport",
    "tcp.dstport",
    "tcp.seq",
    "tcp.ack",
    "tcp.hdr_len",
    "tcp.flags",
    "tcp.window_size",
    "tcp.urgent_pointer",
    "tcp.options",
    "tcp.payload",
)


def ensure_tshark_available(executable: str) -> str:
    """Return the resolved tshark path, or raise DecoderError."""
    resolved = shutil.which(executable)
    if resolved is None:
        raise DecoderError(
            f"Unable to locate {executable!r}. Install Wireshark/tshark "
            f"or set TSHARK_PATH."
        )
    return resolved


def build_command(
    capture: Path,
    tshark_path: str = "tshark",
    display_filter: str = "tcp",
) -> list[str]:
    command = [tshark_path, "-r", str(capture), "-T", "json", "-n"]
    if display_filter:
        command += ["-Y", display_filter]
    for name in TSHARK_FIELDS:
        command += ["-e", name]
    return command


def run_tshark(
    capture: Path,
    tshark_path: str = "tshark",
    display_filter: str = "tcp",
    timeout: float | None = None,
) -> list[dict[str, Any]]:
    """
    Decode a capture file into tshark JSON records.

    Raises:
        DecoderError: tshark is missing, exits non-zero, times out or
                      prints something that is not a JSON array.
    """
    executable = ensure_tshark_available(tshark_path)
    command = build_command(capture, executable, display_filter)
    logger.debug("Running %s", " ".join(command))

    try:
        result = subprocess.run(
            command,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as exc:
        raise DecoderError(f"tshark timed out after {timeout}s on {capture}") from exc
    except OSError as exc:
        raise DecoderError(f"Could not run tshark: {exc}") from exc

    if result.returncode != 0:
        raise DecoderError(
            f"tshark exited with status {result.returncode} while processing "
            f"{capture}\n{result.stderr.strip()}"
        )

    output = result.stdout.strip()
    if not output:
        return []
    try:
        records = json.loads(output)
    except json.JSONDecodeError as exc:
        raise DecoderError(f"tshark produced invalid JSON: {exc}") from exc
    if not isinstance(records, list):
        raise DecoderError("tshark JSON output is not an array")

    logger.info("tshark decoded %d records from %s", len(records), capture)
    return records


def decode_capture(
    capture: Path,
    tshark_path: str = "tshark",
    display_filter: str = "tcp",
    timeout: float | None = None,
) -> list[Packet]:
    """Run tshark and convert every usable record into a Packet."""
    records = run_tshark(capture, tshark_path, display_filter, timeout)
    return list(parse_records(records))
