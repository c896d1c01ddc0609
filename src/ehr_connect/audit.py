"""Append-only access ledger with retention sweeps.

Every access-relevant action (connecting, refreshing, searching, syncing)
is appended to the audit table. Writing an event is fire-and-forget: a
failure is logged here and never propagates, because audit logging must
not block or fail the operation it describes.

Retention:
- audit events are kept for ``AUDIT_RETENTION_DAYS`` (90)
- patient snapshots are kept for ``SNAPSHOT_RETENTION_DAYS`` (30) after
  their last sync

``sweep()`` enforces both with independent range deletes, so it is
idempotent and needs no coordination between runs.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from ehr_connect.config import AUDIT_RETENTION_DAYS, SNAPSHOT_RETENTION_DAYS
from ehr_connect.models import AuditAction, AuditEvent, ClientInfo, utcnow
from ehr_connect.store import AUDIT_TABLE, SNAPSHOTS_TABLE, Store

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SweepResult:
    audit_deleted: int
    snapshots_deleted: int


class AccessLedger:
    def __init__(
        self,
        store: Store,
        clock: Callable[[], datetime] = utcnow,
        audit_retention: timedelta = timedelta(days=AUDIT_RETENTION_DAYS),
        snapshot_retention: timedelta = timedelta(days=SNAPSHOT_RETENTION_DAYS),
    ) -> None:
        self._store = store
        self._clock = clock
        self.audit_retention = audit_retention
        self.snapshot_retention = snapshot_retention

    async def record(
        self,
        principal: str,
        action: AuditAction,
        resource: str | None = None,
        patient_id: str | None = None,
        client: ClientInfo | None = None,
    ) -> None:
        """Append one audit event. Never raises."""
        try:
            event = AuditEvent(
                principal=principal,
                action=action,
                patient_id=patient_id,
                resource=resource,
                ip_address=client.ip_address if client else None,
                user_agent=client.user_agent if client else None,
                timestamp=self._clock(),
            )
            await self._store.insert(
                AUDIT_TABLE, (uuid.uuid4().hex,), event.model_dump()
            )
        except Exception:
            logger.exception("Failed to log audit event %s for %s", action, principal)

    async def events(self, principal: str | None = None) -> list[AuditEvent]:
        """Read back the trail, oldest first."""
        rows = await self._store.select(
            AUDIT_TABLE,
            None if principal is None else (lambda row: row["principal"] == principal),
        )
        events = [AuditEvent.model_validate(row) for row in rows]
        return sorted(events, key=lambda e: e.timestamp)

    async def sweep(self, now: datetime | None = None) -> SweepResult:
        """Purge audit events and snapshots past their retention window."""
        now = now or self._clock()
        audit_cutoff = now - self.audit_retention
        snapshot_cutoff = now - self.snapshot_retention

        audit_deleted = await self._store.delete_where(
            AUDIT_TABLE, lambda row: row["timestamp"] < audit_cutoff
        )
        snapshots_deleted = await self._store.delete_where(
            SNAPSHOTS_TABLE, lambda row: row["last_synced"] < snapshot_cutoff
        )
        logger.info(
            "Retention sweep removed %d audit events and %d snapshots",
            audit_deleted,
            snapshots_deleted,
        )
        return SweepResult(audit_deleted, snapshots_deleted)


async def run_retention_loop(ledger: AccessLedger, interval_seconds: float) -> None:
    """Sweep forever on a fixed interval until cancelled.

    A failed sweep is logged and retried on the next tick; the deletes are
    idempotent, so nothing is lost by skipping a run.
    """
    while True:
        try:
            await ledger.sweep()
        except Exception:
            logger.exception("Retention sweep failed")
        await asyncio.sleep(interval_seconds)
