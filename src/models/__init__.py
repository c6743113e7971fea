"""
Data Models Package

This package contains all Pydantic models used in Chama Ledger.
All data flowing through the system must conform to these schemas.
"""

from src.models.group import (
    MONTH_KEY_PATTERN,
    InsurancePayment,
    InsurancePolicy,
    Loan,
    LoanStatus,
    Member,
    MemberStatus,
    PayoutStatus,
    PremiumStatus,
    ScheduleItem,
    Transaction,
    TransactionCategory,
    TransactionType,
    ValidationIssue,
    ValidationResult,
)
from src.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Group models
    "MONTH_KEY_PATTERN",
    "InsurancePayment",
    "InsurancePolicy",
    "Loan",
    "LoanStatus",
    "Member",
    "MemberStatus",
    "PayoutStatus",
    "PremiumStatus",
    "ScheduleItem",
    "Transaction",
    "TransactionCategory",
    "TransactionType",
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
