"""Tests for form validation."""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from src.config import AppSettings
from src.models.group import Loan, LoanStatus, Member, MemberStatus
from src.validation import FormValidationError, GroupValidator, parse_amount


GROUP = "test-group"


@pytest.fixture
def validator():
    return GroupValidator(AppSettings(future_date_tolerance_days=7))


def fields(result):
    return {issue.field for issue in result.issues if issue.severity == "error"}


class TestParseAmount:

    @pytest.mark.parametrize("raw, expected", [
        ("5000", Decimal("5000")),
        (" 1,250.50 ", Decimal("1250.50")),
        (Decimal("3"), Decimal("3")),
        (12, Decimal("12")),
    ])
    def test_parses_numbers(self, raw, expected):
        assert parse_amount(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "abc", "NaN", "Infinity"])
    def test_rejects_non_numbers(self, raw):
        assert parse_amount(raw) is None


class TestMemberValidation:

    def test_valid_member(self, validator):
        assert validator.validate_member("Wanjiku", "+254 712 345 678").is_valid

    def test_missing_fields(self, validator):
        result = validator.validate_member("", "  ")
        assert fields(result) == {"name", "phone"}

    def test_bad_phone(self, validator):
        result = validator.validate_member("Wanjiku", "call me")
        assert fields(result) == {"phone"}

    def test_unknown_status(self, validator):
        result = validator.validate_member("Wanjiku", "0712345678", "Suspended")
        assert fields(result) == {"status"}

    def test_require_raises(self, validator):
        with pytest.raises(FormValidationError, match="Name is required"):
            GroupValidator.require(validator.validate_member("", "0712345678"))


class TestTransactionValidation:

    def test_valid_transaction(self, validator):
        result = validator.validate_transaction(
            date.today(), "Monthly contribution", "5000", "Income", "Contribution"
        )
        assert result.is_valid

    def test_future_date_beyond_tolerance(self, validator):
        result = validator.validate_transaction(
            date.today() + timedelta(days=30), "Later", "100", "Income", "Contribution"
        )
        assert fields(result) == {"date"}

    def test_future_date_within_tolerance(self, validator):
        result = validator.validate_transaction(
            date.today() + timedelta(days=3), "Soon", "100", "Income", "Contribution"
        )
        assert result.is_valid

    @pytest.mark.parametrize("amount", ["0", "-5", "abc", "10.005"])
    def test_bad_amounts(self, validator, amount):
        result = validator.validate_transaction(
            date.today(), "Entry", amount, "Income", "Contribution"
        )
        assert fields(result) == {"amount"}

    def test_unknown_type_and_category(self, validator):
        result = validator.validate_transaction(
            date.today(), "Entry", "100", "Transfer", "Groceries"
        )
        assert fields(result) == {"type", "category"}


class TestLoanValidation:

    def test_loan_needs_active_member(self, validator):
        member = Member(group_id=GROUP, name="Kamau", phone="0712345678", status=MemberStatus.INACTIVE)
        result = validator.validate_loan(member, "1000", "10", "Stock")
        assert fields(result) == {"member"}

    def test_missing_member_and_reason(self, validator):
        result = validator.validate_loan(None, "1000", "", "")
        assert fields(result) == {"member", "reason"}

    def test_negative_rate(self, validator):
        member = Member(group_id=GROUP, name="Kamau", phone="0712345678")
        result = validator.validate_loan(member, "1000", "-1", "Stock")
        assert fields(result) == {"interest_rate"}

    def test_repayment_on_paid_off_loan_is_a_warning(self, validator):
        loan = Loan(
            group_id=GROUP,
            member_id=uuid4(),
            member_name="Kamau",
            principal=Decimal("1000"),
            balance=Decimal("0"),
            issue_date=date(2025, 1, 1),
            status=LoanStatus.PAID_OFF,
            reason="Stock",
        )
        result = validator.validate_repayment(loan, "100")
        assert result.is_valid
        assert result.warnings == ["This loan is already paid off"]

    def test_repayment_for_missing_loan(self, validator):
        assert fields(validator.validate_repayment(None, "100")) == {"loan"}


class TestOtherValidation:

    def test_policy(self, validator):
        assert validator.validate_policy("NHIF", "500").is_valid
        assert fields(validator.validate_policy("", "0")) == {"name", "monthly_premium"}

    def test_empty_sms(self, validator):
        assert not validator.validate_sms("   ").is_valid
        assert validator.validate_sms("QFH2 Confirmed. Ksh500.00 received").is_valid

    def test_user_friendly_summary(self, validator):
        result = validator.validate_member("", "0712345678")
        summary = validator.get_user_friendly_summary(result)
        assert "Please fix the following" in summary
        assert "Name is required" in summary

        ok = validator.validate_member("Wanjiku", "0712345678")
        assert validator.get_user_friendly_summary(ok) == "✅ All checks passed."


class TestLengthLimits:
    """Inputs the validator accepts must also fit the models."""

    def test_long_name(self, validator):
        result = validator.validate_member("W" * 121, "0712345678")
        assert fields(result) == {"name"}
        assert validator.validate_member("W" * 120, "0712345678").is_valid

    def test_phone_with_plus_and_twenty_digits(self, validator):
        result = validator.validate_member("Wanjiku", "+" + "7" * 20)
        assert fields(result) == {"phone"}
        assert "at most 20 characters" in result.error_messages()[0]
        assert validator.validate_member("Wanjiku", "+" + "7" * 19).is_valid

    def test_long_description(self, validator):
        result = validator.validate_transaction(date.today(), "x" * 301, "100", "Income", "Contribution")
        assert fields(result) == {"description"}

    def test_long_loan_reason(self, validator):
        member = Member(group_id=GROUP, name="Kamau", phone="0712345678")
        result = validator.validate_loan(member, "1000", "0", "r" * 501)
        assert fields(result) == {"reason"}

    def test_long_policy_name(self, validator):
        result = validator.validate_policy("P" * 121, "500")
        assert fields(result) == {"name"}
