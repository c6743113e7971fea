"""
Audit Models for Chama Ledger

Every significant action in the system is logged for audit purposes.
This provides:
1. Traceability of who changed which record
2. Debugging information when a write fails in the background
3. A history the treasurer can show at group meetings

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Members
    MEMBER_ADDED = "member_added"
    MEMBER_UPDATED = "member_updated"
    MEMBER_DELETED = "member_deleted"
    MEMBERS_IMPORTED = "members_imported"

    # Ledger
    TRANSACTION_RECORDED = "transaction_recorded"
    TRANSACTIONS_IMPORTED = "transactions_imported"
    PAYOUT_RECORDED = "payout_recorded"
    LOAN_ISSUED = "loan_issued"
    LOAN_REPAYMENT_RECORDED = "loan_repayment_recorded"

    # Insurance
    POLICY_CREATED = "policy_created"
    PREMIUM_STATUS_UPDATED = "premium_status_updated"
    MONTH_MARKED_PAID = "month_marked_paid"

    # Merry-go-round
    SCHEDULE_GENERATED = "schedule_generated"
    PAYOUT_STATUS_UPDATED = "payout_status_updated"

    # Validation
    VALIDATION_FAILED = "validation_failed"

    # AI assistant
    AI_REQUEST_COMPLETED = "ai_request_completed"
    AI_REQUEST_FAILED = "ai_request_failed"

    # System events
    WRITE_FAILED = "write_failed"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )
    group_id: Optional[str] = Field(
        default=None,
        description="Group the event belongs to"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'member', 'loan', 'payment_record')"
    )
    entity_id: Optional[UUID] = None

    # Correlation - ties together the events of one user action
    correlation_id: Optional[UUID] = None

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(default_factory=dict)

    # Error information (if applicable)
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "group_id": self.group_id,
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, group_id, event_type, severity, entity_type,
         entity_id, correlation_id, description, details_json,
         error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.group_id or "",
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.member_added(group_id, member_id, name, correlation_id)
        event = AuditEventBuilder.write_failed(group_id, "patch payment", error, correlation_id)
    """

    @staticmethod
    def member_added(
        group_id: str,
        member_id: UUID,
        name: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MEMBER_ADDED,
            group_id=group_id,
            entity_type="member",
            entity_id=member_id,
            correlation_id=correlation_id,
            description=f"Member added: {name}",
            details={"name": name},
            is_user_action=True,
        )

    @staticmethod
    def member_updated(
        group_id: str,
        member_id: UUID,
        changes: dict,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MEMBER_UPDATED,
            group_id=group_id,
            entity_type="member",
            entity_id=member_id,
            correlation_id=correlation_id,
            description=f"Member updated: {', '.join(sorted(changes)) or 'no changes'}",
            details={"changes": changes},
            is_user_action=True,
        )

    @staticmethod
    def member_deleted(
        group_id: str,
        member_id: UUID,
        name: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MEMBER_DELETED,
            severity=AuditSeverity.WARNING,
            group_id=group_id,
            entity_type="member",
            entity_id=member_id,
            correlation_id=correlation_id,
            description=f"Member deleted: {name}",
            details={"name": name},
            is_user_action=True,
        )

    @staticmethod
    def records_imported(
        group_id: str,
        kind: str,
        count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        event_type = (
            AuditEventType.MEMBERS_IMPORTED
            if kind == "members"
            else AuditEventType.TRANSACTIONS_IMPORTED
        )
        return AuditEvent(
            event_type=event_type,
            group_id=group_id,
            correlation_id=correlation_id,
            description=f"Imported {count} {kind} from CSV",
            details={"kind": kind, "count": count},
            is_user_action=True,
        )

    @staticmethod
    def transaction_recorded(
        group_id: str,
        transaction_id: UUID,
        transaction_type: str,
        category: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        event_type = (
            AuditEventType.PAYOUT_RECORDED
            if category == "Payout"
            else AuditEventType.TRANSACTION_RECORDED
        )
        return AuditEvent(
            event_type=event_type,
            group_id=group_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"{transaction_type} recorded: {category} {amount}",
            details={
                "type": transaction_type,
                "category": category,
                "amount": amount,
            },
            is_user_action=True,
        )

    @staticmethod
    def loan_issued(
        group_id: str,
        loan_id: UUID,
        member_name: str,
        principal: str,
        balance: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOAN_ISSUED,
            group_id=group_id,
            entity_type="loan",
            entity_id=loan_id,
            correlation_id=correlation_id,
            description=f"Loan of {principal} issued to {member_name}",
            details={"principal": principal, "balance": balance},
            is_user_action=True,
        )

    @staticmethod
    def loan_repayment(
        group_id: str,
        loan_id: UUID,
        amount: str,
        new_balance: str,
        status: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOAN_REPAYMENT_RECORDED,
            group_id=group_id,
            entity_type="loan",
            entity_id=loan_id,
            correlation_id=correlation_id,
            description=f"Loan repayment of {amount} recorded ({status})",
            details={
                "amount": amount,
                "new_balance": new_balance,
                "status": status,
            },
            is_user_action=True,
        )

    @staticmethod
    def policy_created(
        group_id: str,
        policy_id: UUID,
        name: str,
        premium: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.POLICY_CREATED,
            group_id=group_id,
            entity_type="policy",
            entity_id=policy_id,
            correlation_id=correlation_id,
            description=f"Insurance policy created: {name}",
            details={"name": name, "monthly_premium": premium},
            is_user_action=True,
        )

    @staticmethod
    def premium_status_updated(
        group_id: str,
        policy_id: UUID,
        member_id: UUID,
        month_key: str,
        status: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PREMIUM_STATUS_UPDATED,
            group_id=group_id,
            entity_type="member",
            entity_id=member_id,
            correlation_id=correlation_id,
            description=f"Premium for {month_key} set to {status}",
            details={
                "policy_id": str(policy_id),
                "month_key": month_key,
                "status": status,
            },
            is_user_action=True,
        )

    @staticmethod
    def month_marked_paid(
        group_id: str,
        policy_id: UUID,
        month_key: str,
        writes: int,
        skipped_waived: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MONTH_MARKED_PAID,
            group_id=group_id,
            entity_type="policy",
            entity_id=policy_id,
            correlation_id=correlation_id,
            description=f"Marked {month_key} as paid for {writes} members",
            details={
                "month_key": month_key,
                "writes": writes,
                "skipped_waived": skipped_waived,
            },
            is_user_action=True,
        )

    @staticmethod
    def schedule_generated(
        group_id: str,
        member_count: int,
        first_month: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SCHEDULE_GENERATED,
            group_id=group_id,
            correlation_id=correlation_id,
            description=f"Rotation schedule generated for {member_count} members",
            details={"member_count": member_count, "first_month": first_month},
            is_user_action=True,
        )

    @staticmethod
    def payout_status_updated(
        group_id: str,
        member_id: UUID,
        month_label: str,
        status: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PAYOUT_STATUS_UPDATED,
            group_id=group_id,
            entity_type="member",
            entity_id=member_id,
            correlation_id=correlation_id,
            description=f"Payout for {month_label} marked {status}",
            details={"month": month_label, "status": status},
            is_user_action=True,
        )

    @staticmethod
    def validation_failed(
        group_id: str,
        subject: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            group_id=group_id,
            correlation_id=correlation_id,
            description=f"Validation of {subject} failed with {len(issues)} issues",
            details={"subject": subject, "issues": issues},
        )

    @staticmethod
    def ai_request(
        group_id: str,
        task: str,
        succeeded: bool,
        error_message: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.AI_REQUEST_COMPLETED
                if succeeded
                else AuditEventType.AI_REQUEST_FAILED
            ),
            severity=AuditSeverity.INFO if succeeded else AuditSeverity.ERROR,
            group_id=group_id,
            correlation_id=correlation_id,
            description=f"AI {task} {'completed' if succeeded else 'failed'}",
            details={"task": task},
            error_message=error_message,
        )

    @staticmethod
    def write_failed(
        group_id: str,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.WRITE_FAILED,
            severity=AuditSeverity.ERROR,
            group_id=group_id,
            correlation_id=correlation_id,
            description=f"Background write failed: {operation}",
            details={"operation": operation},
            error_message=error_message,
        )
