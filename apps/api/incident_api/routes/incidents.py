"""Incident ledger routes."""

import logging
from datetime import datetime
from functools import lru_cache
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status
from pydantic import BaseModel, ConfigDict

from incident_api.db.session import engine
from incident_api.ledger.exporter import LedgerExporter
from incident_api.ledger.schema import IncidentContent, VerificationReport
from incident_api.ledger.store import LedgerStore
from incident_api.ledger.verifier import ChainVerifier
from incident_api.ledger.writer import ChainWriter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["incidents"])


class IncidentResponse(BaseModel):
    """Committed incident record."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    sequence: int
    author_id: str
    title: str
    description: str
    severity: str
    occurred_at: datetime
    location: Optional[str] = None
    witnesses: Optional[str] = None
    attachment_urls: Optional[List[str]] = None
    previous_digest: str
    digest: str
    created_at: datetime


class IncidentListResponse(BaseModel):
    """Page of incidents in chain order."""

    tenant_id: str
    total: int
    offset: int
    limit: int
    incidents: List[IncidentResponse]


@lru_cache()
def get_ledger_store() -> LedgerStore:
    """Process-wide ledger store bound to the application engine."""
    return LedgerStore(engine)


def get_chain_writer(store: LedgerStore = Depends(get_ledger_store)) -> ChainWriter:
    return ChainWriter(store)


def get_verifier(store: LedgerStore = Depends(get_ledger_store)) -> ChainVerifier:
    return ChainVerifier(store)


def get_exporter(store: LedgerStore = Depends(get_ledger_store)) -> LedgerExporter:
    return LedgerExporter(store)


@router.post("/incidents", response_model=IncidentResponse, status_code=status.HTTP_201_CREATED)
def submit_incident(
    content: IncidentContent,
    request: Request,
    writer: ChainWriter = Depends(get_chain_writer),
):
    """Append an incident to the caller's family ledger. Incidents cannot be edited or deleted."""
    tenant_id: str = request.state.tenant_id
    author_id: str = request.state.user_id

    record = writer.submit(tenant_id, author_id, content)
    logger.info(
        "Incident submitted",
        extra={
            "tenant_id": tenant_id,
            "sequence": record.sequence,
            "correlation_id": getattr(request.state, "correlation_id", None),
        },
    )
    return record


@router.get("/incidents", response_model=IncidentListResponse)
def list_incidents(
    request: Request,
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=500),
    store: LedgerStore = Depends(get_ledger_store),
):
    """List incidents in chain order."""
    tenant_id: str = request.state.tenant_id
    return IncidentListResponse(
        tenant_id=tenant_id,
        total=store.count(tenant_id),
        offset=offset,
        limit=limit,
        incidents=[IncidentResponse.model_validate(r) for r in store.page(tenant_id, offset, limit)],
    )


@router.get("/incidents/verify", response_model=VerificationReport)
def verify_incidents(
    request: Request,
    verifier: ChainVerifier = Depends(get_verifier),
):
    """Re-verify the whole chain. An invalid chain is still a 200 with status "invalid"."""
    return verifier.verify(request.state.tenant_id)


@router.get("/incidents/export")
def export_incidents(
    request: Request,
    generated_at: Optional[datetime] = Query(
        None, description="Generation time printed on the document; omitted by default"
    ),
    exporter: LedgerExporter = Depends(get_exporter),
):
    """Download the court-ready incident log."""
    document = exporter.export(request.state.tenant_id, generated_at=generated_at)
    return Response(
        content=document.encode(),
        media_type=document.media_type,
        headers={
            "Content-Disposition": f'attachment; filename="{document.filename}"',
            "X-Ledger-Verified": str(document.verified).lower(),
            "X-Document-SHA256": document.sha256,
        },
    )
