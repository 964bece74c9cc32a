"""Error taxonomy for the incident ledger.

Tampering findings are not exceptions: ``content_tampered`` and ``chain_broken``
are reported inside a ``VerificationReport``.
"""

from enum import Enum
from typing import Optional


class LedgerError(Exception):
    """Base class for incident ledger errors."""


class EncodingError(LedgerError):
    """Incident content could not be canonicalized for hashing."""

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Cannot canonicalize field '{field}': {reason}")


class ConflictError(LedgerError):
    """Another writer advanced the tenant's chain tip first.

    Returned inside ``AppendResult`` rather than raised; the chain writer
    retries on it.
    """

    def __init__(self, tenant_id: str, expected_previous_digest: str, detail: Optional[str] = None):
        self.tenant_id = tenant_id
        self.expected_previous_digest = expected_previous_digest
        self.detail = detail
        message = f"Chain tip for tenant {tenant_id} moved past {expected_previous_digest[:16]}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class SubmissionErrorKind(str, Enum):
    """Why a submission was given up."""

    TOO_MANY_CONFLICTS = "too_many_conflicts"


class SubmissionError(LedgerError):
    """Submission failed after retries; safe for the user to resubmit."""

    retryable = True

    def __init__(self, kind: SubmissionErrorKind, tenant_id: str, attempts: int):
        self.kind = kind
        self.tenant_id = tenant_id
        self.attempts = attempts
        super().__init__(
            f"Incident for tenant {tenant_id} not recorded after {attempts} attempts "
            f"({kind.value}); please resubmit"
        )


class StorageError(LedgerError):
    """Infrastructure fault in the backing store. Not retried by the ledger."""


class ImmutableRecordError(LedgerError):
    """An incident record was about to be updated or deleted."""
