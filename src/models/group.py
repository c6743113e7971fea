"""
Core Data Models for Chama Ledger

These models define the strict schemas for all data flowing through the system.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for storage and logging

DESIGN DECISION: Every stored record carries the id of the group it
belongs to. Storage implementations are constructed for one group and
refuse to mix records from another.
"""

import re
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)


MONTH_KEY_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class MemberStatus(str, Enum):
    """Only Active members take part in schedules and premium totals."""
    ACTIVE = "Active"
    INACTIVE = "Inactive"


class TransactionType(str, Enum):
    INCOME = "Income"
    EXPENSE = "Expense"


class TransactionCategory(str, Enum):
    """
    Ledger categories.

    Loan repayments and payouts are written by the loan and payout
    flows; the rest are entered by hand or imported.
    """
    CONTRIBUTION = "Contribution"
    LATE_FEE = "Late Fee"
    PROJECT = "Project"
    SOCIAL_FUND = "Social Fund"
    OPERATIONAL = "Operational"
    LAST_RESPECT = "Last Respect"
    LOAN_REPAYMENT = "Loan Repayment"
    PAYOUT = "Payout"


class LoanStatus(str, Enum):
    ACTIVE = "Active"
    PAID_OFF = "Paid Off"


class PremiumStatus(str, Enum):
    """
    Status of one member's premium for one month.

    WAIVED means the member owes nothing that month. It is excluded
    from completion ratios and never overwritten by bulk actions.
    """
    PAID = "Paid"
    UNPAID = "Unpaid"
    WAIVED = "Waived"


class PayoutStatus(str, Enum):
    """Status of a merry-go-round payout slot."""
    PENDING = "Pending"
    PAID = "Paid"
    SKIPPED = "Skipped"


# =============================================================================
# MEMBERS, TRANSACTIONS, LOANS
# =============================================================================

class Member(BaseModel):
    """A member of the group."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    group_id: str = Field(..., min_length=1)
    name: str = Field(
        ...,
        min_length=1,
        max_length=120,
        description="Display name"
    )
    phone: str = Field(
        ...,
        min_length=1,
        max_length=20,
        description="Contact phone number"
    )
    join_date: date = Field(default_factory=date.today)
    status: MemberStatus = MemberStatus.ACTIVE

    @property
    def is_active(self) -> bool:
        return self.status == MemberStatus.ACTIVE


class Transaction(BaseModel):
    """
    A single ledger entry.

    Amounts are always positive; `type` carries the direction.
    `member_name` is denormalised for display and kept in sync
    when a member is renamed.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    group_id: str = Field(..., min_length=1)
    date: date
    description: str = Field(..., min_length=1, max_length=300)
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    type: TransactionType
    category: TransactionCategory
    member_id: Optional[UUID] = None
    member_name: Optional[str] = None
    loan_id: Optional[UUID] = None


class Loan(BaseModel):
    """A loan advanced to a member."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    group_id: str = Field(..., min_length=1)
    member_id: UUID
    member_name: str = Field(..., min_length=1)
    principal: Decimal = Field(..., gt=0, decimal_places=2)
    interest_rate: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="Flat interest as a percentage of principal"
    )
    balance: Decimal = Field(..., description="Outstanding amount; may go below zero on overpayment")
    issue_date: date
    status: LoanStatus = LoanStatus.ACTIVE
    reason: str = Field(..., min_length=1, max_length=500)


# =============================================================================
# INSURANCE
# =============================================================================

class InsurancePolicy(BaseModel):
    """A group insurance policy with a fixed monthly premium."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    group_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=120)
    monthly_premium: Decimal = Field(..., gt=0, decimal_places=2)


class InsurancePayment(BaseModel):
    """
    A member's payment record under one policy.

    `payments` is sparse: a month with no key is absent, which is
    not the same as an explicit UNPAID.
    """

    id: UUID = Field(default_factory=uuid4)
    group_id: str = Field(..., min_length=1)
    policy_id: UUID
    member_id: UUID
    payments: dict[str, PremiumStatus] = Field(default_factory=dict)

    @field_validator('payments')
    @classmethod
    def validate_month_keys(cls, v: dict[str, PremiumStatus]) -> dict[str, PremiumStatus]:
        """Month keys must be YYYY-MM with a zero-padded month."""
        for key in v:
            if not MONTH_KEY_PATTERN.match(key):
                raise ValueError(f"Invalid month key: {key!r} (expected YYYY-MM)")
        return v

    def status_for(self, month_key: str) -> Optional[PremiumStatus]:
        return self.payments.get(month_key)


# =============================================================================
# MERRY-GO-ROUND SCHEDULE
# =============================================================================

class ScheduleItem(BaseModel):
    """One payout slot in a rotation schedule."""

    month_label: str = Field(
        ...,
        description="Long month name and year, e.g. 'August 2025'"
    )
    payout_date: date = Field(
        ...,
        description="First day of the payout month"
    )
    member: Member
    status: PayoutStatus = PayoutStatus.PENDING
    payout_amount: Decimal = Field(..., ge=0)


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field (or CSV column/row) with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_format', 'invalid_value')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    row: Optional[int] = Field(
        default=None,
        ge=1,
        description="1-based data row number for CSV issues"
    )


class ValidationResult(BaseModel):
    """
    Result of validating a form submission or an import file.

    Nothing is written unless `is_valid` is True.
    """

    subject: str = Field(
        ...,
        description="What was validated (e.g. 'member', 'members_csv')"
    )
    validated_at: datetime = Field(
        default_factory=datetime.utcnow
    )
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def is_valid(self) -> bool:
        return not self.has_errors

    @property
    def warnings(self) -> list[str]:
        return [i.message for i in self.issues if i.severity == "warning"]

    def error_messages(self) -> list[str]:
        messages = []
        for issue in self.issues:
            if issue.severity != "error":
                continue
            prefix = f"Row {issue.row}: " if issue.row else ""
            messages.append(f"{prefix}{issue.message}")
        return messages
