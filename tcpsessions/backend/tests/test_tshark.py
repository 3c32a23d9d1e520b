"""
tests/test_tshark.py

Tests for capture/tshark.py with subprocess and shutil.which mocked.
tshark itself is never executed.
"""

from __future__ import annotations

import json
import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from tcpsessions.backend.capture.errors import DecoderError
from tcpsessions.backend.capture.tshark import (
    TSHARK_FIELDS,
    build_command,
    decode_capture,
    run_tshark,
)
from tcpsessions.backend.metrics import METRICS

MODULE = "tcpsessions.backend.capture.tshark"
CAPTURE = Path("capture.pcap")


@pytest.fixture(autouse=True)
def reset_metrics():
    METRICS.reset_all()
    yield


@pytest.fixture
def tshark_on_path():
    with patch(f"{MODULE}.shutil.which", return_value="/usr/bin/tshark") as which:
        yield which


def completed(stdout="", stderr="", returncode=0) -> MagicMock:
    result = MagicMock()
    result.stdout = stdout
    result.stderr = stderr
    result.returncode = returncode
    return result


def record(sport: str, flags: str, src="192.168.1.10", dst="93.184.216.34") -> dict:
    return {
        "_source": {
            "layers": {
                "frame.time_epoch": ["1700000000.000000"],
                "eth.src": ["00:11:22:33:44:55"],
                "eth.dst": ["66:77:88:99:aa:bb"],
                "ip.src": [src],
                "ip.dst": [dst],
                "tcp.srcport": [sport],
                "tcp.dstport": ["80"],
                "tcp.flags": [flags],
            }
        }
    }


# ---------------------------------------------------------------------------
# build_command
# ---------------------------------------------------------------------------

class TestBuildCommand:

    def test_reads_file_as_json(self):
        cmd = build_command(CAPTURE, "tshark", "tcp")
        assert cmd[:6] == ["tshark", "-r", "capture.pcap", "-T", "json", "-n"]
        assert cmd[cmd.index("-Y") + 1] == "tcp"

    def test_every_field_requested(self):
        cmd = build_command(CAPTURE)
        requested = [cmd[i + 1] for i, arg in enumerate(cmd) if arg == "-e"]
        assert requested == list(TSHARK_FIELDS)

    def test_no_display_filter(self):
        assert "-Y" not in build_command(CAPTURE, display_filter="")


# ---------------------------------------------------------------------------
# run_tshark
# ---------------------------------------------------------------------------

class TestRunTshark:

    def test_missing_binary(self):
        with patch(f"{MODULE}.shutil.which", return_value=None):
            with pytest.raises(DecoderError, match="tshark"):
                run_tshark(CAPTURE)

    def test_returns_records(self, tshark_on_path):
        out = json.dumps([record("1000", "0x0002")])
        with patch(f"{MODULE}.subprocess.run", return_value=completed(out)) as run:
            records = run_tshark(CAPTURE, timeout=5)
        assert len(records) == 1
        assert run.call_args.args[0][0] == "/usr/bin/tshark"
        assert run.call_args.kwargs["timeout"] == 5

    def test_empty_output(self, tshark_on_path):
        with patch(f"{MODULE}.subprocess.run", return_value=completed("")):
            assert run_tshark(CAPTURE) == []

    def test_non_zero_exit(self, tshark_on_path):
        failing = completed(stderr="The file doesn't exist.", returncode=2)
        with patch(f"{MODULE}.subprocess.run", return_value=failing):
            with pytest.raises(DecoderError, match="doesn't exist"):
                run_tshark(CAPTURE)

    def test_invalid_json(self, tshark_on_path):
        with patch(f"{MODULE}.subprocess.run", return_value=completed("[{oops")):
            with pytest.raises(DecoderError, match="invalid JSON"):
                run_tshark(CAPTURE)

    def test_non_array_json(self, tshark_on_path):
        with patch(f"{MODULE}.subprocess.run", return_value=completed('{"a": 1}')):
            with pytest.raises(DecoderError):
                run_tshark(CAPTURE)

    def test_timeout(self, tshark_on_path):
        with patch(
            f"{MODULE}.subprocess.run",
            side_effect=subprocess.TimeoutExpired(cmd="tshark", timeout=1),
        ):
            with pytest.raises(DecoderError, match="timed out"):
                run_tshark(CAPTURE, timeout=1)


# ---------------------------------------------------------------------------
# decode_capture
# ---------------------------------------------------------------------------

class TestDecodeCapture:

    def test_skips_unusable_records(self, tshark_on_path):
        records = [
            record("1000", "0x0002"),
            record("1001", "0x0010", src="not-an-ip"),
            record("1002", "0x0011"),
        ]
        with patch(f"{MODULE}.subprocess.run", return_value=completed(json.dumps(records))):
            packets = decode_capture(CAPTURE)
        assert [p.tcp_layer.source_port for p in packets] == [1000, 1002]
        assert METRICS.records_skipped.value == 1
