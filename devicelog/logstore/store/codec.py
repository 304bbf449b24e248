"""
Text encodings for timestamps and entry values.

Everything in the store file is text. This module owns the two encodings
that need care:

- Timestamps are RFC 3339 with second precision, "Z" for UTC and a numeric
  offset otherwise (e.g. 2024-05-01T10:00:00Z, 2024-05-01T12:00:00+02:00).
- Values submitted as JSON numbers are written as the shortest decimal that
  round-trips, in positional notation with no trailing zeros.

Invariants:
    - format_timestamp output is always accepted by parse_timestamp
    - encode_value never emits scientific notation for finite floats

How to change safely:
    - Existing files must stay readable, only widen what parse accepts
    - Changing the value encoding changes how new entries compare against old ones
"""

from __future__ import annotations

import json
import math
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from .errors import EntryValidationError

# Zero value used for timestamps that cannot be parsed in lenient mode
ZERO_TIME = datetime.min.replace(tzinfo=timezone.utc)

_CLIENT_NAIVE_FORMAT = "%Y-%m-%dT%H:%M:%S"


def format_timestamp(value: datetime) -> str:
    """Format a datetime as RFC 3339 with second precision.

    Naive datetimes are treated as UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    text = value.replace(microsecond=0).isoformat()
    if text.endswith("+00:00"):
        text = text[:-6] + "Z"
    return text


def parse_timestamp(text: str) -> datetime:
    """Parse an RFC 3339 timestamp into an aware datetime.

    Raises:
        ValueError: If the text is not a timezone-aware timestamp
    """
    parsed = datetime.fromisoformat(text.strip())
    if parsed.tzinfo is None:
        raise ValueError(f"Timestamp has no UTC offset: {text!r}")
    return parsed


def parse_client_datetime(text: str | None) -> datetime:
    """Parse a client-supplied datetime.

    Accepts RFC 3339, or YYYY-MM-DDTHH:MM:SS which is read as UTC.

    Raises:
        EntryValidationError: If the field is missing or not in either format
    """
    if not text:
        raise EntryValidationError("missing required field: datetime", field_name="datetime")
    try:
        return parse_timestamp(text)
    except ValueError:
        pass
    try:
        return datetime.strptime(text, _CLIENT_NAIVE_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        raise EntryValidationError(
            "invalid datetime format, use RFC3339 or YYYY-MM-DDTHH:MM:SS",
            field_name="datetime",
        ) from None


def format_float(value: float) -> str:
    """Shortest round-trip positional representation of a float."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    text = format(Decimal(repr(value)), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def encode_value(value: Any) -> str:
    """Convert a submitted value of any JSON type to its stored text."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    # bool is an int subclass, check it first
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return format_float(value)
    return json.dumps(value, separators=(",", ":"), sort_keys=True)
