"""Incident ledger schemas.

``IncidentContent`` is the closed set of evidentiary fields that feed the
chain digest. Report and export models are what the ledger hands to the
legal-review and download collaborators.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

GENESIS_DIGEST = "0"


def to_utc_naive(value: datetime) -> datetime:
    """Aware datetimes are converted to UTC; naive ones are taken as UTC already."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class Severity(str, Enum):
    """Incident severity."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class IncidentContent(BaseModel):
    """Evidentiary content of an incident; never mutated after creation."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    severity: Severity = Severity.MEDIUM
    occurred_at: datetime
    location: Optional[str] = None
    witnesses: Optional[str] = None
    attachment_urls: Tuple[str, ...] = ()

    @field_validator("occurred_at")
    @classmethod
    def normalize_occurred_at(cls, value: datetime) -> datetime:
        """Store and hash the same instant: naive UTC."""
        return to_utc_naive(value)


# ============================================================================
# Verification
# ============================================================================


class Anomaly(BaseModel):
    """A single integrity finding at one record."""

    kind: Literal["content_tampered", "chain_broken"]
    sequence: int
    expected: str
    actual: str


class RecordDigest(BaseModel):
    """Per-record digests as stored and as recomputed."""

    sequence: int
    record_id: str
    previous_digest: str
    digest: str
    recomputed_digest: Optional[str] = None  # None when stored content cannot be canonicalized


class VerificationReport(BaseModel):
    """Outcome of re-verifying a tenant's whole chain."""

    tenant_id: str
    status: Literal["valid", "invalid"]
    record_count: int
    tip_digest: str = GENESIS_DIGEST
    records: List[RecordDigest] = Field(default_factory=list)
    anomalies: List[Anomaly] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return self.status == "valid"

    def anomalies_at(self, sequence: int) -> List[Anomaly]:
        return [a for a in self.anomalies if a.sequence == sequence]


# ============================================================================
# Export
# ============================================================================


class ExportDocument(BaseModel):
    """Rendered, court-ready export of a tenant's incident log."""

    tenant_id: str
    filename: str
    media_type: str = "text/plain; charset=utf-8"
    body: str
    sha256: str
    verified: bool
    record_count: int
    generated_at: Optional[datetime] = None  # only when the caller asked for one
    state_as_of: Optional[datetime] = None  # created_at of the last rendered record

    def encode(self) -> bytes:
        return self.body.encode("utf-8")
