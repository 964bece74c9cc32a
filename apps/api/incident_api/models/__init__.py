"""Database models - import all models here for Alembic discovery."""

from incident_api.models.ledger import IncidentRecord, LedgerHead

__all__ = [
    "IncidentRecord",
    "LedgerHead",
]
