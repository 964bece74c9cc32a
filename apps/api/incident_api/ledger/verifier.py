"""Chain verification for a tenant's incident ledger."""

import logging
from typing import List

from incident_api.ledger.digest import digest
from incident_api.ledger.errors import EncodingError
from incident_api.ledger.schema import GENESIS_DIGEST, Anomaly, RecordDigest, VerificationReport
from incident_api.ledger.store import LedgerStore
from incident_api.utils.metrics import verifications

logger = logging.getLogger(__name__)


class ChainVerifier:
    """Recompute every digest and link of a tenant chain."""

    def __init__(self, store: LedgerStore):
        """Initialize verifier."""
        self.store = store

    def verify(self, tenant_id: str) -> VerificationReport:
        """Verify the tenant's whole chain.

        The scan never stops at the first finding; every tampered record and
        broken link is listed. Storage failures raise ``StorageError``, which
        is distinct from an ``invalid`` report.

        The head row is read before the scan, so appends that land during
        it do not count as truncation.
        """
        head = self.store.head(tenant_id)
        head_digest_seen = None
        expected_previous = GENESIS_DIGEST
        records: List[RecordDigest] = []
        anomalies: List[Anomaly] = []

        for record in self.store.sequence(tenant_id):
            try:
                recomputed = digest(record.previous_digest, record.content)
            except EncodingError as e:
                logger.warning(
                    f"Stored content no longer canonicalizes: {e}",
                    extra={"tenant_id": tenant_id, "sequence": record.sequence},
                )
                recomputed = None

            if recomputed != record.digest:
                anomalies.append(
                    Anomaly(
                        kind="content_tampered",
                        sequence=record.sequence,
                        expected=record.digest,
                        actual=recomputed or "<unencodable>",
                    )
                )

            if record.previous_digest != expected_previous:
                anomalies.append(
                    Anomaly(
                        kind="chain_broken",
                        sequence=record.sequence,
                        expected=expected_previous,
                        actual=record.previous_digest,
                    )
                )

            records.append(
                RecordDigest(
                    sequence=record.sequence,
                    record_id=record.id,
                    previous_digest=record.previous_digest,
                    digest=record.digest,
                    recomputed_digest=recomputed,
                )
            )
            if head is not None and record.sequence == head.last_sequence:
                head_digest_seen = record.digest
            expected_previous = record.digest

        if head is not None and head_digest_seen != head.tip_digest:
            # Tail removed or rewritten behind the head row
            anomalies.append(
                Anomaly(
                    kind="chain_broken",
                    sequence=head.last_sequence,
                    expected=head.tip_digest,
                    actual=head_digest_seen or "<missing>",
                )
            )

        report = VerificationReport(
            tenant_id=tenant_id,
            status="invalid" if anomalies else "valid",
            record_count=len(records),
            tip_digest=expected_previous,
            records=records,
            anomalies=anomalies,
        )

        verifications.labels(result=report.status).inc()
        if anomalies:
            logger.warning(
                f"Ledger verification failed with {len(anomalies)} anomalies",
                extra={
                    "tenant_id": tenant_id,
                    "anomalies": [f"{a.kind}@{a.sequence}" for a in anomalies],
                },
            )
        else:
            logger.info(
                "Ledger verified",
                extra={"tenant_id": tenant_id, "record_count": report.record_count},
            )
        return report
