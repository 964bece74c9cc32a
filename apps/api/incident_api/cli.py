"""CLI commands for the incident ledger."""

import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

import click

from incident_api.db.base import Base
from incident_api.db.session import engine
from incident_api.ledger.errors import StorageError
from incident_api.ledger.exporter import LedgerExporter
from incident_api.ledger.store import LedgerStore
from incident_api.ledger.verifier import ChainVerifier

EXIT_INVALID = 2


@click.group()
def cli():
    """Incident ledger CLI."""
    pass


@cli.command("init-db")
def init_db():
    """Create ledger tables (development; use alembic elsewhere)."""
    import incident_api.models  # noqa: F401

    Base.metadata.create_all(engine)
    click.echo("✓ Ledger tables created.")


@cli.command()
@click.argument("tenant_id")
def verify(tenant_id: str):
    """Re-verify a tenant's incident chain."""
    store = LedgerStore(engine)
    try:
        report = ChainVerifier(store).verify(tenant_id)
    except StorageError as e:
        click.echo(f"✗ Verification could not run: {e}", err=True)
        sys.exit(1)

    if report.is_valid:
        click.echo(f"✓ Tenant '{tenant_id}' is valid ({report.record_count} records)")
        click.echo(f"  Chain tip: {report.tip_digest}")
        return

    click.echo(f"✗ Tenant '{tenant_id}' FAILED verification ({report.record_count} records)")
    for anomaly in report.anomalies:
        click.echo(f"  • [#{anomaly.sequence}] {anomaly.kind}: expected {anomaly.expected}, found {anomaly.actual}")
    sys.exit(EXIT_INVALID)


@cli.command()
@click.argument("tenant_id")
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="Output file (default: the document's own filename)")
@click.option("--generated-at", type=click.DateTime(), default=None,
              help="Generation time to print on the document (omitted by default)")
def export(tenant_id: str, output: Optional[Path], generated_at: Optional[datetime]):
    """Export a tenant's incident log as a court-ready text document."""
    store = LedgerStore(engine)
    try:
        document = LedgerExporter(store).export(tenant_id, generated_at=generated_at)
    except StorageError as e:
        click.echo(f"✗ Export failed: {e}", err=True)
        sys.exit(1)

    out_path = output or Path(document.filename)
    out_path.write_bytes(document.encode())

    click.echo(f"Exported {document.record_count} incidents to {out_path}")
    click.echo(f"  SHA-256: {document.sha256}")
    if not document.verified:
        click.echo("✗ WARNING: ledger failed integrity verification; the document is marked accordingly.", err=True)


if __name__ == "__main__":
    cli()
