"""Tests for the access ledger and retention sweeps."""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from ehr_connect.audit import AccessLedger, SweepResult, run_retention_loop
from ehr_connect.models import AuditAction, ClientInfo
from ehr_connect.store import AUDIT_TABLE, SNAPSHOTS_TABLE, InMemoryStore

NOW = datetime(2024, 11, 18, 12, 0, tzinfo=timezone.utc)


class _Clock:
    """A settable clock so tests can write events "in the past"."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class TestRecord:
    @pytest.mark.asyncio
    async def test_record_and_read_back(self) -> None:
        ledger = AccessLedger(InMemoryStore(), clock=lambda: NOW)
        client = ClientInfo(ip_address="10.0.0.7", user_agent="pytest")

        await ledger.record(
            "dr@example.com", AuditAction.PATIENT_DATA_FETCHED, "Patient via Plasma FHIR",
            patient_id="pat-1", client=client,
        )
        await ledger.record("other@example.com", AuditAction.OAUTH_CONNECTED, "OAuth Token")

        [event] = await ledger.events("dr@example.com")
        assert event.action == AuditAction.PATIENT_DATA_FETCHED
        assert event.patient_id == "pat-1"
        assert event.ip_address == "10.0.0.7"
        assert event.user_agent == "pytest"
        assert event.timestamp == NOW
        assert len(await ledger.events()) == 2

    @pytest.mark.asyncio
    async def test_events_are_oldest_first(self) -> None:
        clock = _Clock(NOW)
        ledger = AccessLedger(InMemoryStore(), clock=clock)
        await ledger.record("dr@example.com", AuditAction.TOKEN_REFRESHED)
        clock.now = NOW - timedelta(hours=1)
        await ledger.record("dr@example.com", AuditAction.OAUTH_CONNECTED)

        actions = [e.action for e in await ledger.events("dr@example.com")]
        assert actions == [AuditAction.OAUTH_CONNECTED, AuditAction.TOKEN_REFRESHED]

    @pytest.mark.asyncio
    async def test_store_failure_is_logged_not_raised(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        """An audit write must never fail the operation it describes."""
        store = AsyncMock()
        store.insert.side_effect = ConnectionError("database unavailable")
        ledger = AccessLedger(store)

        with caplog.at_level(logging.ERROR, logger="ehr_connect.audit"):
            await ledger.record("dr@example.com", AuditAction.PATIENT_SEARCH)

        store.insert.assert_awaited_once()
        assert "Failed to log audit event" in caplog.text


class TestSweep:
    @pytest.mark.asyncio
    async def test_sweep_removes_only_expired_rows(self) -> None:
        store = InMemoryStore()
        clock = _Clock(NOW - timedelta(days=91))
        ledger = AccessLedger(store, clock=clock)
        await ledger.record("dr@example.com", AuditAction.OAUTH_CONNECTED)
        clock.now = NOW - timedelta(days=89)
        await ledger.record("dr@example.com", AuditAction.TOKEN_REFRESHED)

        await store.upsert(SNAPSHOTS_TABLE, ("dr@example.com", "stale"),
                           {"last_synced": NOW - timedelta(days=31)})
        await store.upsert(SNAPSHOTS_TABLE, ("dr@example.com", "fresh"),
                           {"last_synced": NOW - timedelta(days=29)})

        result = await ledger.sweep(now=NOW)

        assert result == SweepResult(audit_deleted=1, snapshots_deleted=1)
        [event] = await ledger.events()
        assert event.action == AuditAction.TOKEN_REFRESHED
        snapshots = await store.select(SNAPSHOTS_TABLE)
        assert len(snapshots) == 1
        assert snapshots[0]["last_synced"] == NOW - timedelta(days=29)

    @pytest.mark.asyncio
    async def test_sweep_is_idempotent(self) -> None:
        store = InMemoryStore()
        ledger = AccessLedger(store, clock=lambda: NOW - timedelta(days=100))
        await ledger.record("dr@example.com", AuditAction.OAUTH_CONNECTED)
        await ledger.record("dr@example.com", AuditAction.TOKEN_REFRESHED)

        first = await ledger.sweep(now=NOW)
        second = await ledger.sweep(now=NOW)

        assert first.audit_deleted == 2
        assert second == SweepResult(audit_deleted=0, snapshots_deleted=0)
        assert await store.select(AUDIT_TABLE) == []

    @pytest.mark.asyncio
    async def test_retention_windows_are_configurable(self) -> None:
        store = InMemoryStore()
        ledger = AccessLedger(
            store,
            clock=lambda: NOW - timedelta(days=10),
            audit_retention=timedelta(days=7),
        )
        await ledger.record("dr@example.com", AuditAction.OAUTH_CONNECTED)

        result = await ledger.sweep(now=NOW)
        assert result.audit_deleted == 1


class TestRetentionLoop:
    @pytest.mark.asyncio
    async def test_loop_survives_a_failed_sweep(self) -> None:
        calls = 0

        async def sweep() -> SweepResult:
            nonlocal calls
            calls += 1
            if calls == 1:
                raise RuntimeError("transient failure")
            if calls == 3:
                raise asyncio.CancelledError
            return SweepResult(0, 0)

        ledger = AsyncMock(spec=AccessLedger)
        ledger.sweep.side_effect = sweep

        with pytest.raises(asyncio.CancelledError):
            await run_retention_loop(ledger, interval_seconds=0)

        assert calls == 3
