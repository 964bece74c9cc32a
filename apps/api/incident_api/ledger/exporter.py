"""Court-ready text export of a tenant's incident log."""

import hashlib
import logging
from datetime import datetime
from typing import Optional

from jinja2 import Template

from incident_api.ledger.digest import FORMAT_TAG, short_digest
from incident_api.ledger.schema import ExportDocument, VerificationReport, to_utc_naive
from incident_api.ledger.store import LedgerStore
from incident_api.ledger.verifier import ChainVerifier
from incident_api.settings import get_settings
from incident_api.utils.metrics import exports

logger = logging.getLogger(__name__)

RULE = "-" * 43
BANNER = "!" * 43

ANOMALY_LABELS = {
    "content_tampered": "CONTENT TAMPERED",
    "chain_broken": "CHAIN BROKEN",
}

EXPORT_TEMPLATE = """INCIDENT LOG EXPORT - COURT READY DOCUMENT
Tenant: {{ tenant_id }}
Ledger state as of: {{ state_as_of }}
{% if generated_at %}
Generated: {{ generated_at }}
{% endif %}
Total Incidents: {{ record_count }}

{% if verified %}
INTEGRITY VERIFICATION: PASSED
All {{ record_count }} records were re-hashed and every link matches.
Chain tip: {{ tip_digest }}
{% else %}
{{ banner }}
!!! INTEGRITY VERIFICATION FAILED !!!
{{ banner }}
The records below are reproduced exactly as stored, but the ledger
no longer matches its own hash chain. {{ anomalies|length }} anomaly(ies) detected:
{% for a in anomalies %}
  - Incident #{{ a.sequence }}: {{ a.label }}
      expected: {{ a.expected }}
      found:    {{ a.actual }}
{% endfor %}
{{ banner }}
{% endif %}
{% for inc in incidents %}

{{ rule }}
INCIDENT #{{ inc.sequence }}{% if inc.flags %}  [{{ inc.flags }}]{% endif %}

{{ rule }}
ID: {{ inc.id }}
Title: {{ inc.title }}
Severity: {{ inc.severity }}
Date/Time: {{ inc.occurred_at }}
Location: {{ inc.location }}
Witnesses: {{ inc.witnesses }}
{% if inc.attachment_urls %}
Attachments:
{% for url in inc.attachment_urls %}
  - {{ url }}
{% endfor %}
{% endif %}
Reported By: {{ inc.author_id }}

Description:
{{ inc.description }}

Digest: {{ inc.short_digest }}
Previous Digest: {{ inc.short_previous_digest }}
Logged At: {{ inc.created_at }}
{% endfor %}

{{ rule }}
DIGEST APPENDIX
{{ rule }}
Each digest is SHA-256 over the length-prefixed previous digest followed by
the {{ format_tag }} canonical encoding of the incident content.
The first incident chains from the sentinel "0".
{% for r in records %}
#{{ r.sequence }} previous={{ r.previous_digest }}
    digest={{ r.digest }}
{% endfor %}

{{ rule }}
END OF DOCUMENT
{{ rule }}
This document was generated by {{ product_name }} and contains hash-chained incident records.
Each record is cryptographically hashed together with its predecessor to make tampering detectable.
"""

_template = Template(EXPORT_TEMPLATE, trim_blocks=True, lstrip_blocks=True, keep_trailing_newline=True)


def format_timestamp(value: Optional[datetime]) -> str:
    if value is None:
        return "N/A"
    return to_utc_naive(value).strftime("%Y-%m-%d %H:%M:%S UTC")


class LedgerExporter:
    """Render a deterministic export document annotated with verification status."""

    def __init__(self, store: LedgerStore, verifier: Optional[ChainVerifier] = None):
        """Initialize exporter."""
        self.store = store
        self.verifier = verifier or ChainVerifier(store)
        self.settings = get_settings()

    def export(
        self,
        tenant_id: str,
        report: Optional[VerificationReport] = None,
        generated_at: Optional[datetime] = None,
    ) -> ExportDocument:
        """Render the tenant's incident log.

        Only records covered by ``report`` are rendered, so appends made after
        verification never appear unverified in the document. The header
        carries the time of the last rendered append; a "Generated" line is
        printed only for an explicit ``generated_at``, so an unchanged ledger
        renders byte-identical output by default. A failing report never
        blocks the export; it is printed prominently instead.
        """
        if report is None:
            report = self.verifier.verify(tenant_id)
        if report.tenant_id != tenant_id:
            raise ValueError(f"Report is for tenant {report.tenant_id}, not {tenant_id}")

        prefix = self.settings.export_digest_prefix_chars
        flags_by_sequence = {}
        for anomaly in report.anomalies:
            flags_by_sequence.setdefault(anomaly.sequence, []).append(ANOMALY_LABELS[anomaly.kind])

        covered = {r.record_id for r in report.records}
        incidents = []
        last_created_at = None
        for record in self.store.sequence(tenant_id):
            if record.id not in covered:
                continue
            incidents.append(
                {
                    "sequence": record.sequence,
                    "id": record.id,
                    "title": record.title,
                    "severity": str(record.severity).upper(),
                    "occurred_at": format_timestamp(record.occurred_at),
                    "location": record.location or "N/A",
                    "witnesses": record.witnesses or "N/A",
                    "attachment_urls": record.attachment_urls or [],
                    "author_id": record.author_id,
                    "description": record.description,
                    "short_digest": short_digest(record.digest, prefix),
                    "short_previous_digest": short_digest(record.previous_digest, prefix),
                    "created_at": format_timestamp(record.created_at),
                    "flags": ", ".join(flags_by_sequence.get(record.sequence, [])),
                }
            )
            last_created_at = record.created_at

        body = _template.render(
            tenant_id=tenant_id,
            state_as_of=format_timestamp(last_created_at),
            generated_at=format_timestamp(generated_at) if generated_at else None,
            record_count=report.record_count,
            verified=report.is_valid,
            tip_digest=report.tip_digest,
            anomalies=[
                {
                    "sequence": a.sequence,
                    "label": ANOMALY_LABELS[a.kind],
                    "expected": a.expected,
                    "actual": a.actual,
                }
                for a in report.anomalies
            ],
            incidents=incidents,
            records=report.records,
            rule=RULE,
            banner=BANNER,
            format_tag=FORMAT_TAG,
            product_name=self.settings.export_product_name,
        )

        stamp = generated_at or last_created_at
        date_part = stamp.strftime("%Y-%m-%d") if stamp else "empty"
        document = ExportDocument(
            tenant_id=tenant_id,
            filename=f"incident-log-{tenant_id}-{date_part}.txt",
            body=body,
            sha256=hashlib.sha256(body.encode("utf-8")).hexdigest(),
            verified=report.is_valid,
            record_count=report.record_count,
            generated_at=generated_at,
            state_as_of=last_created_at,
        )

        exports.labels(verified=str(document.verified).lower()).inc()
        logger.info(
            "Incident log exported",
            extra={
                "tenant_id": tenant_id,
                "record_count": document.record_count,
                "verified": document.verified,
                "sha256": document.sha256,
            },
        )
        return document
