"""Tests for the in-memory audit log."""

from datetime import timedelta

from ladderdraft.models.audit_model import AuditAction, AuditLogEntry, InMemoryAuditLog


class TestInMemoryAuditLog:
    def test_query_newest_first_within_window(self, clock):
        log = InMemoryAuditLog()
        start = clock.now
        for offset in (0, 10, 20):
            log.record(AuditAction.QUEUE_ADDED, "u1", "s1", now=start + timedelta(seconds=offset))

        entries = log.query("u1", "s1", [AuditAction.QUEUE_ADDED], since=start + timedelta(seconds=5))
        assert [e.created_at for e in entries] == [start + timedelta(seconds=20), start + timedelta(seconds=10)]

    def test_query_filters_action_and_limit(self, clock):
        log = InMemoryAuditLog()
        log.record(AuditAction.PICK_ATTEMPTED, "u1", "s1", now=clock.now)
        log.record(AuditAction.PICK_MADE, "u1", "s1", now=clock.now)
        log.record(AuditAction.PICK_ATTEMPTED, "u1", "s1", now=clock.now + timedelta(seconds=1))

        entries = log.query("u1", "s1", [AuditAction.PICK_ATTEMPTED], since=clock.now, limit=1)
        assert len(entries) == 1
        assert entries[0].created_at == clock.now + timedelta(seconds=1)

    def test_out_of_order_writes_stay_sorted(self, clock):
        log = InMemoryAuditLog()
        log.record(AuditAction.QUEUE_ADDED, "u1", "s1", now=clock.now + timedelta(seconds=5))
        log.record(AuditAction.QUEUE_ADDED, "u1", "s1", now=clock.now)
        entries = log.query("u1", "s1", [AuditAction.QUEUE_ADDED], since=clock.now)
        assert entries[0].created_at > entries[1].created_at

    def test_append_never_raises(self, clock):
        class BrokenLog(InMemoryAuditLog):
            def _write(self, entry):
                raise IOError("disk full")

        assert BrokenLog().record(AuditAction.PICK_MADE, "u1", "s1", now=clock.now) is False

    def test_entry_round_trips_through_dict(self, clock):
        entry = AuditLogEntry(AuditAction.PICK_FAILED, "u1", "s1", created_at=clock.now,
                              pick_id="k1", metadata={"error": "rate_limited"})
        assert AuditLogEntry.from_dict(entry.to_dict()) == entry
