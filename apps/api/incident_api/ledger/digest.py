"""Canonical encoding and chain digest for incident records."""

import hashlib
import struct
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Optional

from incident_api.ledger.errors import EncodingError
from incident_api.ledger.schema import IncidentContent, Severity, to_utc_naive

FORMAT_TAG = "incident-ledger/v1"
DIGEST_HEX_LENGTH = 64

_ABSENT = b"\x00"
_PRESENT = b"\x01"
_SEVERITIES = {s.value for s in Severity}


def _encode_str(field: str, value: Any) -> bytes:
    """Length-prefix a UTF-8 string (4-byte big-endian length)."""
    if not isinstance(value, str):
        raise EncodingError(field, f"expected str, got {type(value).__name__}")
    try:
        raw = value.encode("utf-8")
    except UnicodeEncodeError as e:
        raise EncodingError(field, str(e)) from e
    return struct.pack(">I", len(raw)) + raw


def _encode_optional(field: str, value: Optional[Any]) -> bytes:
    if value is None:
        return _ABSENT
    return _PRESENT + _encode_str(field, value)


def _encode_list(field: str, values: Iterable[Any]) -> bytes:
    if isinstance(values, (str, bytes)) or values is None:
        raise EncodingError(field, "expected a sequence of strings")
    items = [_encode_str(field, v) for v in values]
    return struct.pack(">I", len(items)) + b"".join(items)


def _severity_value(value: Any) -> str:
    if isinstance(value, Enum):
        value = value.value
    if value not in _SEVERITIES:
        raise EncodingError("severity", f"unknown severity {value!r}")
    return value


def canonical_timestamp(value: Any) -> str:
    """Render a timestamp as UTC with microseconds; naive values are UTC."""
    if not isinstance(value, datetime):
        raise EncodingError("occurred_at", f"expected datetime, got {type(value).__name__}")
    return to_utc_naive(value).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def canonical_bytes(content: IncidentContent) -> bytes:
    """Deterministic byte encoding of incident content in fixed field order."""
    return b"".join(
        [
            _encode_str("format", FORMAT_TAG),
            _encode_str("title", content.title),
            _encode_str("description", content.description),
            _encode_str("severity", _severity_value(content.severity)),
            _encode_str("occurred_at", canonical_timestamp(content.occurred_at)),
            _encode_optional("location", content.location),
            _encode_optional("witnesses", content.witnesses),
            _encode_list("attachment_urls", content.attachment_urls),
        ]
    )


def digest(previous_digest: str, content: IncidentContent) -> str:
    """SHA-256 over the predecessor digest and the canonical content."""
    payload = _encode_str("previous_digest", previous_digest) + canonical_bytes(content)
    return hashlib.sha256(payload).hexdigest()


def short_digest(value: str, length: int = 16) -> str:
    """Human-facing prefix of a digest."""
    return value[:length]
