"""Tenant-partitioned append log for incident records.

The per-tenant ``ledger_heads`` row is the chain tip. ``append_if_tip`` moves
it with a compare-and-swap and inserts the record in the same transaction, so
at most one writer wins for any given tip value. The
``(tenant_id, previous_digest)`` uniqueness constraint on
``incident_records`` rejects a fork even if the head row were bypassed.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterator, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from incident_api.db.session import make_session_factory
from incident_api.ledger.errors import ConflictError, StorageError
from incident_api.ledger.schema import GENESIS_DIGEST
from incident_api.models import IncidentRecord, LedgerHead

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppendResult:
    """Outcome of ``append_if_tip``: exactly one of ``record`` / ``conflict`` is set."""

    record: Optional[IncidentRecord] = None
    conflict: Optional[ConflictError] = None

    @property
    def ok(self) -> bool:
        return self.record is not None


class LedgerSequence:
    """Restartable, lazy view of a tenant's records in ascending sequence order.

    Each iteration opens its own read, so callers may iterate repeatedly.
    """

    def __init__(self, store: "LedgerStore", tenant_id: str, batch_size: int = 500):
        self._store = store
        self.tenant_id = tenant_id
        self.batch_size = batch_size

    def __iter__(self) -> Iterator[IncidentRecord]:
        return self._store._iter_records(self.tenant_id, self.batch_size)


class LedgerStore:
    """Durable incident log over SQLAlchemy."""

    def __init__(self, bind: Engine):
        """Initialize store with its own session factory."""
        self.bind = bind
        self._session_factory = make_session_factory(bind)

    def _session(self) -> Session:
        return self._session_factory()

    def tip(self, tenant_id: str) -> str:
        """Digest of the tenant's last record, or the genesis sentinel."""
        db = self._session()
        try:
            tip_digest = db.execute(
                select(LedgerHead.tip_digest).where(LedgerHead.tenant_id == tenant_id)
            ).scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Failed to read chain tip: {e}", extra={"tenant_id": tenant_id})
            raise StorageError(f"Failed to read chain tip for tenant {tenant_id}") from e
        finally:
            db.close()
        return tip_digest if tip_digest is not None else GENESIS_DIGEST

    def head(self, tenant_id: str) -> Optional[LedgerHead]:
        """The tenant's head row, or None before the first append."""
        db = self._session()
        try:
            return db.execute(
                select(LedgerHead).where(LedgerHead.tenant_id == tenant_id)
            ).scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Failed to read ledger head: {e}", extra={"tenant_id": tenant_id})
            raise StorageError(f"Failed to read ledger head for tenant {tenant_id}") from e
        finally:
            db.close()

    def append_if_tip(
        self,
        tenant_id: str,
        expected_previous_digest: str,
        record: IncidentRecord,
    ) -> AppendResult:
        """Atomically append ``record`` if the tenant's tip is still ``expected_previous_digest``.

        Assigns ``sequence`` and ``created_at``. On a lost race nothing is
        written and the result carries a ``ConflictError``.
        """
        if record.tenant_id != tenant_id:
            raise ValueError(f"Record tenant {record.tenant_id} does not match {tenant_id}")
        if record.previous_digest != expected_previous_digest:
            raise ValueError("Record previous_digest must equal the expected tip")

        now = datetime.utcnow()
        db = self._session()
        try:
            if expected_previous_digest == GENESIS_DIGEST:
                # Empty chain: creating the head row is the compare-and-swap
                db.add(
                    LedgerHead(
                        tenant_id=tenant_id,
                        tip_digest=record.digest,
                        last_sequence=1,
                        updated_at=now,
                    )
                )
                db.flush()
                next_sequence = 1
            else:
                result = db.execute(
                    update(LedgerHead)
                    .where(
                        LedgerHead.tenant_id == tenant_id,
                        LedgerHead.tip_digest == expected_previous_digest,
                    )
                    .values(
                        tip_digest=record.digest,
                        last_sequence=LedgerHead.last_sequence + 1,
                        updated_at=now,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    db.rollback()
                    return self._conflict(tenant_id, expected_previous_digest, "tip moved")
                next_sequence = db.execute(
                    select(LedgerHead.last_sequence).where(LedgerHead.tenant_id == tenant_id)
                ).scalar_one()

            record.sequence = next_sequence
            record.created_at = now
            db.add(record)
            db.commit()
        except IntegrityError:
            db.rollback()
            return self._conflict(tenant_id, expected_previous_digest, "uniqueness violation")
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(
                f"Append failed: {e}",
                exc_info=True,
                extra={"tenant_id": tenant_id},
            )
            raise StorageError(f"Failed to append incident for tenant {tenant_id}") from e
        finally:
            db.close()

        logger.info(
            "Incident appended",
            extra={"tenant_id": tenant_id, "sequence": record.sequence, "digest": record.digest},
        )
        return AppendResult(record=record)

    def _conflict(self, tenant_id: str, expected_previous_digest: str, detail: str) -> AppendResult:
        logger.info(
            f"Append conflict: {detail}",
            extra={"tenant_id": tenant_id, "expected_previous_digest": expected_previous_digest},
        )
        return AppendResult(conflict=ConflictError(tenant_id, expected_previous_digest, detail))

    def sequence(self, tenant_id: str, batch_size: int = 500) -> LedgerSequence:
        """Ordered, restartable sequence of the tenant's records."""
        return LedgerSequence(self, tenant_id, batch_size=batch_size)

    def _iter_records(self, tenant_id: str, batch_size: int) -> Iterator[IncidentRecord]:
        db = self._session()
        try:
            stmt = (
                select(IncidentRecord)
                .where(IncidentRecord.tenant_id == tenant_id)
                .order_by(IncidentRecord.sequence.asc())
                .execution_options(yield_per=batch_size)
            )
            for record in db.scalars(stmt):
                yield record
        except SQLAlchemyError as e:
            logger.error(f"Failed to read incident sequence: {e}", extra={"tenant_id": tenant_id})
            raise StorageError(f"Failed to read incidents for tenant {tenant_id}") from e
        finally:
            db.close()

    def page(self, tenant_id: str, offset: int = 0, limit: int = 50) -> List[IncidentRecord]:
        """Records in sequence order, for listing."""
        db = self._session()
        try:
            return list(
                db.scalars(
                    select(IncidentRecord)
                    .where(IncidentRecord.tenant_id == tenant_id)
                    .order_by(IncidentRecord.sequence.asc())
                    .offset(offset)
                    .limit(limit)
                )
            )
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list incidents for tenant {tenant_id}") from e
        finally:
            db.close()

    def count(self, tenant_id: str) -> int:
        db = self._session()
        try:
            return db.execute(
                select(func.count()).select_from(IncidentRecord).where(IncidentRecord.tenant_id == tenant_id)
            ).scalar_one()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to count incidents for tenant {tenant_id}") from e
        finally:
            db.close()

    def tenants(self) -> List[str]:
        """Tenants that have at least one record."""
        db = self._session()
        try:
            return list(db.scalars(select(LedgerHead.tenant_id).order_by(LedgerHead.tenant_id)))
        except SQLAlchemyError as e:
            raise StorageError("Failed to list tenants") from e
        finally:
            db.close()
