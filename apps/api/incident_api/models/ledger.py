"""Incident ledger models."""

import uuid
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    JSON,
    String,
    Text,
    UniqueConstraint,
    event,
)

from incident_api.db.base import Base
from incident_api.ledger.errors import ImmutableRecordError
from incident_api.ledger.schema import IncidentContent


class IncidentRecord(Base):
    """Append-only incident record, hash-chained per tenant."""

    __tablename__ = "incident_records"
    __table_args__ = (
        UniqueConstraint("tenant_id", "sequence", name="uq_incident_tenant_sequence"),
        # A second record chained onto the same predecessor is a fork
        UniqueConstraint("tenant_id", "previous_digest", name="uq_incident_tenant_previous_digest"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String(64), nullable=False, index=True)
    sequence = Column(BigInteger, nullable=False)
    author_id = Column(String(64), nullable=False, index=True)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    severity = Column(String(16), nullable=False)  # low, medium, high, critical
    occurred_at = Column(DateTime, nullable=False)
    location = Column(Text, nullable=True)
    witnesses = Column(Text, nullable=True)
    attachment_urls = Column(JSON, nullable=True)

    previous_digest = Column(String(64), nullable=False)
    digest = Column(String(64), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    @property
    def content(self) -> IncidentContent:
        """Stored content, exactly as persisted (no validation)."""
        # model_construct: tampered rows must still reach the digest check
        return IncidentContent.model_construct(
            title=self.title,
            description=self.description,
            severity=self.severity,
            occurred_at=self.occurred_at,
            location=self.location,
            witnesses=self.witnesses,
            attachment_urls=tuple(self.attachment_urls or ()),
        )

    def __repr__(self) -> str:
        return f"<IncidentRecord tenant={self.tenant_id} seq={self.sequence} digest={self.digest[:16]}>"


class LedgerHead(Base):
    """Current chain tip per tenant; changed only by compare-and-swap."""

    __tablename__ = "ledger_heads"

    tenant_id = Column(String(64), primary_key=True)
    tip_digest = Column(String(64), nullable=False)
    last_sequence = Column(BigInteger, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)


@event.listens_for(IncidentRecord, "before_update")
def _reject_update(mapper, connection, target):
    raise ImmutableRecordError(
        f"Incident record {target.id} (tenant {target.tenant_id}, sequence {target.sequence}) is immutable"
    )


@event.listens_for(IncidentRecord, "before_delete")
def _reject_delete(mapper, connection, target):
    raise ImmutableRecordError(
        f"Incident record {target.id} cannot be deleted; records are removed only with their tenant"
    )
