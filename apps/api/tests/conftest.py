"""Pytest configuration and fixtures for ledger tests."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "test")

from datetime import datetime  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import update  # noqa: E402

from incident_api.db.base import Base  # noqa: E402
from incident_api.db.session import make_engine  # noqa: E402
from incident_api.ledger.digest import digest  # noqa: E402
from incident_api.ledger.exporter import LedgerExporter  # noqa: E402
from incident_api.ledger.schema import IncidentContent, Severity  # noqa: E402
from incident_api.ledger.store import LedgerStore  # noqa: E402
from incident_api.ledger.verifier import ChainVerifier  # noqa: E402
from incident_api.ledger.writer import ChainWriter  # noqa: E402
from incident_api.models import IncidentRecord  # noqa: E402

# Use test database URL from environment or default to a SQLite file per test
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")

T1 = datetime(2026, 3, 14, 16, 30, 0)


@pytest.fixture(scope="function")
def engine(tmp_path):
    """
    Create a test database engine.

    SQLite needs a file (not :memory:) so that concurrent writer threads
    share one database. Set TEST_DATABASE_URL to run against PostgreSQL.
    """
    url = TEST_DATABASE_URL or f"sqlite:///{tmp_path / 'ledger.db'}"
    engine = make_engine(url)
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture
def store(engine) -> LedgerStore:
    return LedgerStore(engine)


@pytest.fixture
def writer(store) -> ChainWriter:
    return ChainWriter(store, max_retries=10, backoff_base_ms=1, backoff_max_ms=20)


@pytest.fixture
def verifier(store) -> ChainVerifier:
    return ChainVerifier(store)


@pytest.fixture
def exporter(store, verifier) -> LedgerExporter:
    return LedgerExporter(store, verifier)


def make_content(title: str = "Late pickup", **overrides) -> IncidentContent:
    """Build valid incident content with sensible defaults."""
    fields = {
        "title": title,
        "description": f"{title}: details as observed.",
        "severity": Severity.LOW,
        "occurred_at": T1,
    }
    fields.update(overrides)
    return IncidentContent(**fields)


def build_record(
    tenant_id: str,
    previous_digest: str,
    content: IncidentContent,
    author_id: str = "user-1",
) -> IncidentRecord:
    """Candidate record chained onto ``previous_digest``."""
    return IncidentRecord(
        tenant_id=tenant_id,
        author_id=author_id,
        title=content.title,
        description=content.description,
        severity=content.severity.value,
        occurred_at=content.occurred_at,
        location=content.location,
        witnesses=content.witnesses,
        attachment_urls=list(content.attachment_urls) or None,
        previous_digest=previous_digest,
        digest=digest(previous_digest, content),
    )


def tamper(engine, tenant_id: str, sequence: int, **values) -> None:
    """Overwrite stored columns directly, bypassing the ORM guard."""
    table = IncidentRecord.__table__
    with engine.begin() as connection:
        connection.execute(
            update(table)
            .where(table.c.tenant_id == tenant_id, table.c.sequence == sequence)
            .values(**values)
        )
