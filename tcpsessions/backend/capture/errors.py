"""
capture/errors.py

Exceptions raised at the ingestion boundary.

  RecordError            — base class for per-record problems
    MissingFieldError    — required identifying field absent/unusable → record skipped
    UnparseableValueError — optional field malformed → default substituted
  DecoderError           — the external decoder could not run or produced garbage
"""

from __future__ import annotations


class RecordError(ValueError):
    """A single decoder record could not be converted as-is."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field


class MissingFieldError(RecordError):
    """A required identifying field (address, timestamp) is absent or unparseable."""

    def __init__(self, field: str, value: object = None) -> None:
        if value is None:
            message = "required field missing"
        else:
            message = f"required field unparseable: {value!r}"
        super().__init__(field, message)
        self.value = value


class UnparseableValueError(RecordError):
    """An optional field is present but not in the expected format."""

    def __init__(self, field: str, value: object) -> None:
        super().__init__(field, f"unparseable value {value!r}")
        self.value = value


class DecoderError(RuntimeError):
    """The external decoder is missing, failed, or emitted invalid output."""
