"""
Non-Blocking Writer

DESIGN DECISION: The UI never waits on a storage write. Each mutation is
scheduled as an asyncio task and the caller returns immediately; local
state is updated optimistically by the caller.

Failures never reach the call site. They are delivered through a
NotificationCenter (shown as toasts in the UI) and recorded in the
audit log. Optimistic state is not rolled back.

Writes are independent: there is no ordering guarantee between two
submitted writes and no locking. Every write addresses its own cell
(a member field, one payment month), so last-write-wins is safe.
"""

import asyncio
from datetime import datetime
from typing import TYPE_CHECKING, Awaitable, Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from src.audit import AuditLogger


logger = structlog.get_logger(__name__)


class Notification(BaseModel):
    """A message for the user about something that happened in the background."""

    level: str = Field(..., pattern="^(info|success|error)$")
    message: str
    operation: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class NotificationCenter:
    """Collects notifications until the UI drains them."""

    def __init__(self):
        self._pending: list[Notification] = []

    def notify(self, level: str, message: str, operation: Optional[str] = None) -> Notification:
        notification = Notification(level=level, message=message, operation=operation)
        self._pending.append(notification)
        return notification

    def error(self, message: str, operation: Optional[str] = None) -> Notification:
        return self.notify("error", message, operation)

    def success(self, message: str, operation: Optional[str] = None) -> Notification:
        return self.notify("success", message, operation)

    @property
    def pending(self) -> list[Notification]:
        return list(self._pending)

    def drain(self) -> list[Notification]:
        """Return and clear all pending notifications."""
        drained, self._pending = self._pending, []
        return drained


class BatchWriteError(Exception):
    """Some writes of a multi-write operation failed; the rest landed."""

    def __init__(self, failed: int, total: int, first_error: Exception):
        self.failed = failed
        self.total = total
        self.first_error = first_error
        super().__init__(f"{failed} of {total} writes failed: {first_error}")


class NonBlockingWriter:
    """
    Fire-and-forget write channel.

    Usage:
        writer.submit(storage.patch_payment_month(...), "toggle premium")
        ...
        await writer.drain()  # before the event loop is torn down
    """

    def __init__(
        self,
        notifications: Optional[NotificationCenter] = None,
        audit_logger: Optional["AuditLogger"] = None,
    ):
        self._notifications = notifications or NotificationCenter()
        self._audit = audit_logger
        self._tasks: set[asyncio.Task] = set()

    @property
    def notifications(self) -> NotificationCenter:
        return self._notifications

    @property
    def pending_count(self) -> int:
        return len(self._tasks)

    def submit(
        self,
        write: Awaitable,
        operation: str,
        correlation_id: Optional[UUID] = None,
    ) -> asyncio.Task:
        """
        Schedule a write and return without waiting for it.

        Must be called from inside a running event loop.
        """
        task = asyncio.get_running_loop().create_task(
            self._run(write, operation, correlation_id)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(
        self,
        write: Awaitable,
        operation: str,
        correlation_id: Optional[UUID],
    ) -> bool:
        try:
            await write
            return True
        except Exception as e:
            logger.error(
                "background_write_failed",
                operation=operation,
                error=str(e),
                correlation_id=str(correlation_id) if correlation_id else None,
            )
            self._notifications.error(f"Could not save {operation}: {e}", operation)
            if self._audit:
                await self._audit.log_write_failed(operation, str(e), correlation_id)
            return False

    async def drain(self) -> int:
        """
        Wait for every outstanding write to finish.

        Never raises; failures have already been reported.

        Returns:
            Number of writes that failed
        """
        failed = 0
        while self._tasks:
            tasks = list(self._tasks)
            self._tasks.difference_update(tasks)
            results = await asyncio.gather(*tasks, return_exceptions=True)
            failed += sum(1 for r in results if r is not True)
        return failed
