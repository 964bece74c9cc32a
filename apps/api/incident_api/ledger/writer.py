"""Chain writer: optimistic read-tip / digest / compare-and-append with retries."""

import logging
import random
import time
from typing import Callable, Optional

from incident_api.ledger.digest import digest
from incident_api.ledger.errors import SubmissionError, SubmissionErrorKind
from incident_api.ledger.schema import IncidentContent, Severity, to_utc_naive
from incident_api.ledger.store import LedgerStore
from incident_api.models import IncidentRecord
from incident_api.settings import get_settings
from incident_api.utils.metrics import append_conflicts, submit_duration, submissions

logger = logging.getLogger(__name__)


class ChainWriter:
    """Append incidents to a tenant chain without ever forking it."""

    def __init__(
        self,
        store: LedgerStore,
        max_retries: Optional[int] = None,
        backoff_base_ms: Optional[int] = None,
        backoff_max_ms: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        settings = get_settings()
        self.store = store
        self.max_retries = settings.ledger_max_retries if max_retries is None else max_retries
        self.backoff_base_ms = settings.ledger_backoff_base_ms if backoff_base_ms is None else backoff_base_ms
        self.backoff_max_ms = settings.ledger_backoff_max_ms if backoff_max_ms is None else backoff_max_ms
        self._sleep = sleep

    def _backoff_seconds(self, attempt: int) -> float:
        """Full-jitter exponential backoff for the given retry number (1-based)."""
        ceiling = min(self.backoff_max_ms, self.backoff_base_ms * (2 ** (attempt - 1)))
        return random.uniform(0, ceiling) / 1000.0

    def _build_candidate(
        self, tenant_id: str, author_id: str, content: IncidentContent, tip: str
    ) -> IncidentRecord:
        record_digest = digest(tip, content)
        return IncidentRecord(
            tenant_id=tenant_id,
            author_id=author_id,
            title=content.title,
            description=content.description,
            severity=Severity(content.severity).value,
            occurred_at=to_utc_naive(content.occurred_at),
            location=content.location,
            witnesses=content.witnesses,
            attachment_urls=list(content.attachment_urls) or None,
            previous_digest=tip,
            digest=record_digest,
        )

    def submit(
        self,
        tenant_id: str,
        author_id: str,
        content: IncidentContent,
        max_retries: Optional[int] = None,
    ) -> IncidentRecord:
        """Append ``content`` to the tenant's chain and return the committed record.

        Raises:
            SubmissionError: tip kept moving for ``max_retries`` retries.
            EncodingError: content cannot be canonicalized (not retried).
            StorageError: backing store failed (not retried).
        """
        retries = self.max_retries if max_retries is None else max_retries
        attempt = 0
        start = time.monotonic()

        while True:
            attempt += 1
            tip = self.store.tip(tenant_id)
            candidate = self._build_candidate(tenant_id, author_id, content, tip)
            result = self.store.append_if_tip(tenant_id, tip, candidate)

            if result.ok:
                submissions.labels(outcome="committed").inc()
                submit_duration.observe(time.monotonic() - start)
                if attempt > 1:
                    logger.info(
                        f"Incident committed after {attempt} attempts",
                        extra={"tenant_id": tenant_id, "sequence": result.record.sequence},
                    )
                return result.record

            append_conflicts.inc()
            if attempt > retries:
                submissions.labels(outcome="too_many_conflicts").inc()
                logger.warning(
                    f"Giving up after {attempt} attempts: {result.conflict}",
                    extra={"tenant_id": tenant_id, "attempt": attempt},
                )
                raise SubmissionError(SubmissionErrorKind.TOO_MANY_CONFLICTS, tenant_id, attempt)

            delay = self._backoff_seconds(attempt)
            logger.info(
                f"Chain tip moved, retrying in {delay * 1000:.0f}ms",
                extra={"tenant_id": tenant_id, "attempt": attempt},
            )
            self._sleep(delay)
