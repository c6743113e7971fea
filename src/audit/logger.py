"""
Audit Logger

DESIGN DECISION: Every significant action in the system is logged.
This provides:
1. Complete traceability of who changed the group's books
2. Debugging capability for writes that fail in the background
3. A history the treasurer can review

The audit logger:
- Is async so it can sit beside the background writes
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from src.models.audit import AuditEvent, AuditEventBuilder
from src.services.storage import AuditStorageInterface


logging.basicConfig(format="%(message)s", level=logging.INFO)

# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def set_log_level(level: str) -> None:
    """Apply the configured log level to the root logger."""
    logging.getLogger().setLevel(level.upper())


class AuditLogger:
    """
    Central audit logging service for one group.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The audit worksheet (for persistence and treasurer visibility)
    """

    def __init__(
        self,
        group_id: str,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Args:
            group_id: Group every event is attributed to.
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._group_id = group_id
        self._storage = storage
        self._logger = structlog.get_logger("audit")

    @property
    def group_id(self) -> str:
        return self._group_id

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_validation_failed(
        self,
        subject: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a rejected form or import."""
        await self.log(AuditEventBuilder.validation_failed(
            self._group_id, subject, issues, correlation_id=correlation_id,
        ))

    async def log_ai_request(
        self,
        task: str,
        succeeded: bool,
        error_message: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log the outcome of a model call."""
        await self.log(AuditEventBuilder.ai_request(
            self._group_id,
            task,
            succeeded,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_write_failed(
        self,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a background write that did not reach storage."""
        await self.log(AuditEventBuilder.write_failed(
            self._group_id, operation, error_message, correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., marking a month paid).
    Pass it through all subsequent operations.
    """
    return uuid4()
