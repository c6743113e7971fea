"""
Tests for Chama Ledger

Test strategy:
1. Unit tests for individual components (models, validators, ledger maths)
2. Integration tests for flows (with in-memory storage and fake models)
3. No real API calls in tests (use fakes)
"""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from src.models.group import (
    InsurancePayment,
    Loan,
    LoanStatus,
    Member,
    MemberStatus,
    PremiumStatus,
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


GROUP = "test-group"


class TestGroupModels:
    """Tests for member, ledger and insurance models."""

    def test_member_defaults(self):
        """New members are Active and joined today."""
        member = Member(group_id=GROUP, name="Wanjiku", phone="+254712345678")
        assert member.status == MemberStatus.ACTIVE
        assert member.is_active is True
        assert member.join_date == date.today()

    def test_member_strips_whitespace(self):
        """Test that whitespace is stripped from the name."""
        member = Member(group_id=GROUP, name="  Otieno  ", phone="0712345678")
        assert member.name == "Otieno"

    def test_member_requires_group(self):
        with pytest.raises(ValueError):
            Member(group_id="", name="Akinyi", phone="0712345678")

    def test_transaction_rejects_non_positive_amount(self):
        """Amounts are positive; the type carries the direction."""
        with pytest.raises(ValueError):
            Transaction(
                group_id=GROUP,
                date=date(2025, 1, 5),
                description="Refund",
                amount=Decimal("-100"),
                type=TransactionType.EXPENSE,
                category=TransactionCategory.OPERATIONAL,
            )

    def test_transaction_category_values(self):
        assert TransactionCategory("Loan Repayment") == TransactionCategory.LOAN_REPAYMENT
        assert TransactionCategory.LAST_RESPECT.value == "Last Respect"

    def test_loan_balance_may_go_negative(self):
        """Overpayment leaves a negative balance rather than failing."""
        loan = Loan(
            group_id=GROUP,
            member_id=uuid4(),
            member_name="Kamau",
            principal=Decimal("1000"),
            balance=Decimal("-50"),
            issue_date=date(2025, 3, 1),
            status=LoanStatus.PAID_OFF,
            reason="School fees",
        )
        assert loan.balance == Decimal("-50")
        assert loan.interest_rate == Decimal("0")

    def test_payment_record_is_sparse(self):
        """A month with no key is absent, not Unpaid."""
        record = InsurancePayment(
            group_id=GROUP,
            policy_id=uuid4(),
            member_id=uuid4(),
            payments={"2025-01": PremiumStatus.PAID},
        )
        assert record.status_for("2025-01") == PremiumStatus.PAID
        assert record.status_for("2025-02") is None

    @pytest.mark.parametrize("key", ["2025-1", "2025-13", "25-01", "2025/01"])
    def test_payment_record_rejects_bad_month_keys(self, key):
        with pytest.raises(ValueError, match="Invalid month key"):
            InsurancePayment(
                group_id=GROUP,
                policy_id=uuid4(),
                member_id=uuid4(),
                payments={key: PremiumStatus.PAID},
            )


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.MEMBER_ADDED,
            description="Member added",
        )
        assert event.event_type == AuditEventType.MEMBER_ADDED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.LOAN_ISSUED,
            group_id=GROUP,
            description="Loan issued",
            details={"principal": "1000"},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "loan_issued"
        assert log_dict["group_id"] == GROUP
        assert log_dict["details"]["principal"] == "1000"

    def test_audit_event_to_sheets_row(self):
        """Test conversion to sheets row."""
        event = AuditEvent(
            event_type=AuditEventType.MONTH_MARKED_PAID,
            group_id=GROUP,
            description="Marked month paid",
            is_user_action=True,
        )
        row = event.to_sheets_row()
        assert len(row) == 12
        assert row[2] == GROUP
        assert row[3] == "month_marked_paid"
        assert row[11] == "True"

    def test_builder_member_added(self):
        correlation_id = uuid4()
        member_id = uuid4()

        event = AuditEventBuilder.member_added(GROUP, member_id, "Wanjiku", correlation_id)

        assert event.event_type == AuditEventType.MEMBER_ADDED
        assert event.entity_id == member_id
        assert event.correlation_id == correlation_id
        assert event.group_id == GROUP
        assert event.is_user_action is True

    def test_builder_payout_is_its_own_event_type(self):
        """Payouts are transactions but audited separately."""
        event = AuditEventBuilder.transaction_recorded(
            GROUP, uuid4(), "Expense", "Payout", "25000"
        )
        assert event.event_type == AuditEventType.PAYOUT_RECORDED

        event = AuditEventBuilder.transaction_recorded(
            GROUP, uuid4(), "Income", "Contribution", "5000"
        )
        assert event.event_type == AuditEventType.TRANSACTION_RECORDED

    def test_builder_write_failed_is_error(self):
        event = AuditEventBuilder.write_failed(GROUP, "premium for 2025-01", "quota exceeded")
        assert event.severity == AuditSeverity.ERROR
        assert event.error_message == "quota exceeded"


class TestValidationResult:
    """Tests for ValidationResult model."""

    def test_validation_result_has_errors(self):
        """Test has_errors property."""
        result = ValidationResult(
            subject="member",
            issues=[
                ValidationIssue(
                    field="name",
                    issue_type="missing",
                    message="Name is required",
                    severity="error",
                ),
            ],
        )
        assert result.has_errors is True
        assert result.is_valid is False
        assert result.error_count == 1

    def test_validation_result_warnings_only(self):
        """Test that warnings don't count as errors."""
        result = ValidationResult(
            subject="loan_repayment",
            issues=[
                ValidationIssue(
                    field="loan",
                    issue_type="already_paid",
                    message="This loan is already paid off",
                    severity="warning",
                ),
            ],
        )
        assert result.has_errors is False
        assert result.is_valid is True
        assert result.warnings == ["This loan is already paid off"]

    def test_error_messages_prefix_csv_rows(self):
        result = ValidationResult(
            subject="members_csv",
            issues=[
                ValidationIssue(
                    field="phone",
                    issue_type="missing",
                    message="Phone is required",
                    severity="error",
                    row=3,
                ),
            ],
        )
        assert result.error_messages() == ["Row 3: Phone is required"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
