"""Tests for the non-blocking writer and notifications."""

import asyncio

import pytest

from src.audit import AuditLogger
from src.models.audit import AuditEventType
from src.services.storage import InMemoryAuditStorage
from src.services.writer import NonBlockingWriter, NotificationCenter


GROUP = "test-group"


class TestNotificationCenter:

    def test_drain_clears(self):
        center = NotificationCenter()
        center.success("Saved")
        center.error("Could not save", "member")

        drained = center.drain()

        assert [n.level for n in drained] == ["success", "error"]
        assert drained[1].operation == "member"
        assert center.pending == []

    def test_rejects_unknown_level(self):
        with pytest.raises(ValueError):
            NotificationCenter().notify("panic", "nope")


class TestNonBlockingWriter:
    """Tests for fire-and-forget writes."""

    @pytest.mark.asyncio
    async def test_submit_returns_before_write_completes(self):
        writer = NonBlockingWriter()
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow_write():
            started.set()
            await release.wait()

        writer.submit(slow_write(), "slow write")
        assert writer.pending_count == 1

        await started.wait()
        release.set()
        assert await writer.drain() == 0
        assert writer.pending_count == 0

    @pytest.mark.asyncio
    async def test_failure_becomes_notification_and_audit(self):
        audit_storage = InMemoryAuditStorage()
        audit = AuditLogger(GROUP, audit_storage)
        writer = NonBlockingWriter(audit_logger=audit)

        async def failing_write():
            raise RuntimeError("quota exceeded")

        writer.submit(failing_write(), "premium for 2025-01")
        failed = await writer.drain()

        assert failed == 1
        [notification] = writer.notifications.drain()
        assert notification.level == "error"
        assert notification.message == "Could not save premium for 2025-01: quota exceeded"

        [event] = audit_storage.events
        assert event.event_type == AuditEventType.WRITE_FAILED
        assert event.error_message == "quota exceeded"
        assert event.group_id == GROUP

    @pytest.mark.asyncio
    async def test_failures_are_independent(self):
        writer = NonBlockingWriter()
        done = []

        async def ok(name):
            done.append(name)

        async def boom():
            raise RuntimeError("boom")

        writer.submit(ok("a"), "a")
        writer.submit(boom(), "b")
        writer.submit(ok("c"), "c")

        assert await writer.drain() == 1
        assert sorted(done) == ["a", "c"]

    @pytest.mark.asyncio
    async def test_drain_waits_for_writes_submitted_during_drain(self):
        writer = NonBlockingWriter()
        done = []

        async def inner():
            done.append("inner")

        async def outer():
            writer.submit(inner(), "inner")
            done.append("outer")

        writer.submit(outer(), "outer")
        await writer.drain()

        assert done == ["outer", "inner"]

    def test_submit_needs_running_loop(self):
        writer = NonBlockingWriter()

        async def write():
            pass

        coro = write()
        with pytest.raises(RuntimeError):
            writer.submit(coro, "no loop")
        coro.close()


class TestAuditLogger:

    @pytest.mark.asyncio
    async def test_storage_failure_does_not_raise(self):
        class BrokenStorage(InMemoryAuditStorage):
            async def append_event(self, event):
                raise RuntimeError("sheet unavailable")

        audit = AuditLogger(GROUP, BrokenStorage())
        assert await audit.log_validation_failed("member", [{"field": "name"}]) is None

    @pytest.mark.asyncio
    async def test_ai_request_events(self):
        storage = InMemoryAuditStorage()
        audit = AuditLogger(GROUP, storage)

        await audit.log_ai_request("sms_parsing", True)
        await audit.log_ai_request("sms_parsing", False, "bad json")

        assert [e.event_type for e in storage.events] == [
            AuditEventType.AI_REQUEST_COMPLETED,
            AuditEventType.AI_REQUEST_FAILED,
        ]
