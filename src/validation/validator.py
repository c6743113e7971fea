"""
Form Validation

DESIGN DECISION: Every form submission is validated before anything is
written. Validation happens in two passes:

PASS 1 - PRESENCE AND FORMAT:
- Required fields present
- Amounts parse as numbers
- Values belong to the allowed enums

PASS 2 - BUSINESS RULES:
- Amounts are positive
- Loans only go to Active members
- Transaction dates are not far in the future

IMPORTANT: Validation NEVER silently fixes issues.
It reports them so the form can show them inline, and nothing is
applied while an error-level issue remains.
"""

import re
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from src.config import AppSettings, get_settings
from src.models.group import (
    Loan,
    LoanStatus,
    Member,
    MemberStatus,
    TransactionCategory,
    TransactionType,
    ValidationIssue,
    ValidationResult,
)


PHONE_PATTERN = re.compile(r"^\+?[0-9 ]{7,20}$")

# Same limits as the Field constraints in src/models/group.py
NAME_MAX_LENGTH = 120
PHONE_MAX_LENGTH = 20
DESCRIPTION_MAX_LENGTH = 300
REASON_MAX_LENGTH = 500


class FormValidationError(Exception):
    """A form submission failed validation; nothing was written."""

    def __init__(self, result: ValidationResult):
        self.result = result
        super().__init__("; ".join(result.error_messages()) or "Validation failed")


class CsvValidationError(Exception):
    """A CSV import failed validation; no row was imported."""

    def __init__(self, result: ValidationResult):
        self.result = result
        super().__init__("; ".join(result.error_messages()) or "Invalid CSV")


def parse_amount(value: Any) -> Optional[Decimal]:
    """Parse a user-entered amount; None if it is not a number."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    text = str(value).strip().replace(",", "")
    if not text:
        return None
    try:
        amount = Decimal(text)
    except InvalidOperation:
        return None
    return amount if amount.is_finite() else None


def _error(field: str, issue_type: str, message: str, row: Optional[int] = None) -> ValidationIssue:
    return ValidationIssue(
        field=field,
        issue_type=issue_type,
        message=message,
        severity="error",
        row=row,
    )


def _too_long(
    field: str,
    label: str,
    value: str,
    limit: int,
    row: Optional[int] = None,
) -> list[ValidationIssue]:
    if len(value) > limit:
        return [_error(field, "too_long", f"{label} must be at most {limit} characters", row)]
    return []


def _positive_amount_issues(
    field: str,
    label: str,
    value: Any,
    row: Optional[int] = None,
) -> list[ValidationIssue]:
    """Amounts are positive with at most two decimal places."""
    parsed = parse_amount(value)
    if parsed is None:
        return [_error(field, "invalid_format", f"{label} '{value}' is not a number", row)]
    if parsed <= 0:
        return [_error(field, "invalid_value", f"{label} must be greater than zero", row)]
    if parsed.as_tuple().exponent < -2:
        return [_error(field, "invalid_value", f"{label} can have at most two decimal places", row)]
    return []


class GroupValidator:
    """
    Validates member, ledger and insurance form input.

    Each method returns a ValidationResult; `require` turns an invalid
    result into a FormValidationError for callers that want to stop.
    """

    def __init__(self, settings: Optional[AppSettings] = None):
        self._settings = settings or get_settings().app

    @staticmethod
    def require(result: ValidationResult) -> ValidationResult:
        if result.has_errors:
            raise FormValidationError(result)
        return result

    # ---------------------------------------------------------------- members

    def member_issues(
        self,
        name: Optional[str],
        phone: Optional[str],
        status: Optional[str] = None,
        row: Optional[int] = None,
    ) -> list[ValidationIssue]:
        issues = []

        if not name or not str(name).strip():
            issues.append(_error("name", "missing", "Name is required", row))
        else:
            issues.extend(_too_long("name", "Name", str(name).strip(), NAME_MAX_LENGTH, row))

        if not phone or not str(phone).strip():
            issues.append(_error("phone", "missing", "Phone is required", row))
        elif len(str(phone).strip()) > PHONE_MAX_LENGTH:
            issues.extend(_too_long("phone", "Phone", str(phone).strip(), PHONE_MAX_LENGTH, row))
        elif not PHONE_PATTERN.match(str(phone).strip()):
            issues.append(_error(
                "phone",
                "invalid_format",
                f"Phone '{phone}' may only contain digits, spaces and a leading +",
                row,
            ))

        if status is not None and status not in {s.value for s in MemberStatus}:
            issues.append(_error("status", "invalid_value", f"Unknown member status: {status}", row))

        return issues

    def validate_member(
        self,
        name: Optional[str],
        phone: Optional[str],
        status: Optional[str] = None,
    ) -> ValidationResult:
        return ValidationResult(subject="member", issues=self.member_issues(name, phone, status))

    # ----------------------------------------------------------- transactions

    def transaction_issues(
        self,
        transaction_date: Optional[date],
        description: Optional[str],
        amount: Any,
        transaction_type: Optional[str],
        category: Optional[str],
        row: Optional[int] = None,
    ) -> list[ValidationIssue]:
        issues = []

        if transaction_date is None:
            issues.append(_error("date", "missing", "Date is required", row))
        else:
            max_date = date.today() + timedelta(days=self._settings.future_date_tolerance_days)
            if transaction_date > max_date:
                issues.append(_error(
                    "date",
                    "future_date",
                    f"Date ({transaction_date}) is too far in the future",
                    row,
                ))

        if not description or not str(description).strip():
            issues.append(_error("description", "missing", "Description is required", row))
        else:
            issues.extend(_too_long(
                "description", "Description", str(description).strip(), DESCRIPTION_MAX_LENGTH, row
            ))

        issues.extend(_positive_amount_issues("amount", "Amount", amount, row))

        if transaction_type not in {t.value for t in TransactionType}:
            issues.append(_error(
                "type",
                "invalid_value",
                f"Type must be Income or Expense, got '{transaction_type}'",
                row,
            ))

        if category not in {c.value for c in TransactionCategory}:
            issues.append(_error("category", "invalid_value", f"Unknown category: '{category}'", row))

        return issues

    def validate_transaction(
        self,
        transaction_date: Optional[date],
        description: Optional[str],
        amount: Any,
        transaction_type: Optional[str],
        category: Optional[str],
    ) -> ValidationResult:
        return ValidationResult(
            subject="transaction",
            issues=self.transaction_issues(
                transaction_date, description, amount, transaction_type, category
            ),
        )

    # ------------------------------------------------------------------ loans

    def validate_loan(
        self,
        member: Optional[Member],
        principal: Any,
        interest_rate: Any,
        reason: Optional[str],
    ) -> ValidationResult:
        issues = []

        if member is None:
            issues.append(_error("member", "missing", "A member must be selected"))
        elif member.status != MemberStatus.ACTIVE:
            issues.append(_error(
                "member",
                "invalid_value",
                f"{member.name} is not an active member",
            ))

        issues.extend(_positive_amount_issues("principal", "Principal", principal))

        parsed_rate = parse_amount(interest_rate if interest_rate not in (None, "") else "0")
        if parsed_rate is None:
            issues.append(_error("interest_rate", "invalid_format", "Interest rate must be a number"))
        elif parsed_rate < 0:
            issues.append(_error("interest_rate", "invalid_value", "Interest rate cannot be negative"))

        if not reason or not str(reason).strip():
            issues.append(_error("reason", "missing", "A reason for the loan is required"))
        else:
            issues.extend(_too_long("reason", "Reason", str(reason).strip(), REASON_MAX_LENGTH))

        return ValidationResult(subject="loan", issues=issues)

    def validate_repayment(self, loan: Optional[Loan], amount: Any) -> ValidationResult:
        issues = []

        if loan is None:
            issues.append(_error("loan", "missing", "Loan not found"))
        elif loan.status == LoanStatus.PAID_OFF:
            issues.append(ValidationIssue(
                field="loan",
                issue_type="already_paid",
                message="This loan is already paid off",
                severity="warning",
            ))

        issues.extend(_positive_amount_issues("amount", "Repayment amount", amount))

        return ValidationResult(subject="loan_repayment", issues=issues)

    # -------------------------------------------------------------- insurance

    def validate_policy(self, name: Optional[str], monthly_premium: Any) -> ValidationResult:
        issues = []

        if not name or not str(name).strip():
            issues.append(_error("name", "missing", "Policy name is required"))
        else:
            issues.extend(_too_long("name", "Policy name", str(name).strip(), NAME_MAX_LENGTH))

        issues.extend(_positive_amount_issues("monthly_premium", "Monthly premium", monthly_premium))

        return ValidationResult(subject="policy", issues=issues)

    # -------------------------------------------------------------- assistant

    def validate_sms(self, sms_text: Optional[str]) -> ValidationResult:
        issues = []
        if not sms_text or not sms_text.strip():
            issues.append(_error("sms_text", "missing", "Paste the SMS message to parse"))
        return ValidationResult(subject="sms", issues=issues)

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """
        Generate a user-friendly summary of validation results.

        This is what we show beside the form.
        """
        if result.is_valid and not result.warnings:
            return "✅ All checks passed."

        lines = []
        if result.has_errors:
            lines.append("❌ Please fix the following:")
            for message in result.error_messages():
                lines.append(f"   • {message}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("⚠️ Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines)
