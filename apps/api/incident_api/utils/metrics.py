"""Prometheus metrics."""

from prometheus_client import Counter, Histogram

# Submission metrics
submissions = Counter(
    "incident_submissions_total",
    "Total incident submissions",
    ["outcome"],
)

append_conflicts = Counter(
    "incident_append_conflicts_total",
    "Appends that lost the race for the chain tip",
)

submit_duration = Histogram(
    "incident_submit_duration_seconds",
    "Incident submission duration, including retries",
)

# Verification / export metrics
verifications = Counter(
    "ledger_verifications_total",
    "Total chain verifications",
    ["result"],
)

exports = Counter(
    "ledger_exports_total",
    "Total incident log exports",
    ["verified"],
)
