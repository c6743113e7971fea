"""
CSV Import and Export

Imports are all-or-nothing:
1. Missing required columns abort before any row is looked at
2. Every row is validated; one bad row rejects the whole file
3. A row whose record the model rejects counts as a bad row too

Column names are matched exactly (after trimming whitespace); unknown
columns are ignored.
"""

import io
from datetime import date
from typing import Optional

import pandas as pd
import structlog
from pydantic import ValidationError

from src.models.group import (
    Member,
    Transaction,
    TransactionCategory,
    TransactionType,
    ValidationIssue,
    ValidationResult,
)
from src.validation import CsvValidationError, GroupValidator, parse_amount


logger = structlog.get_logger(__name__)

MEMBER_REQUIRED_COLUMNS = ["name", "phone"]
TRANSACTION_REQUIRED_COLUMNS = ["date", "description", "amount", "type", "category"]
TRANSACTION_MEMBER_COLUMN = "memberName"

MEMBER_EXPORT_COLUMNS = ["name", "phone", "join_date", "status"]
TRANSACTION_EXPORT_COLUMNS = TRANSACTION_REQUIRED_COLUMNS + [TRANSACTION_MEMBER_COLUMN]


def _file_error(subject: str, message: str) -> CsvValidationError:
    return CsvValidationError(ValidationResult(
        subject=subject,
        issues=[ValidationIssue(
            field="file",
            issue_type="invalid_format",
            message=message,
            severity="error",
        )],
    ))


def _model_issues(error: ValidationError, row: int) -> list[ValidationIssue]:
    """Field errors raised while building a record, as row issues."""
    return [
        ValidationIssue(
            field=str(err["loc"][0]) if err["loc"] else "row",
            issue_type="invalid_value",
            message=err["msg"],
            severity="error",
            row=row,
        )
        for err in error.errors()
    ]


def read_csv(data: bytes, subject: str, required: list[str], max_rows: Optional[int] = None) -> pd.DataFrame:
    """
    Load CSV bytes as an all-string DataFrame and check its header.

    Raises:
        CsvValidationError: If the file can't be parsed, has too many
            rows, or lacks a required column
    """
    try:
        df = pd.read_csv(
            io.BytesIO(data),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
        )
    except pd.errors.EmptyDataError:
        raise _file_error(subject, "The file is empty")
    except (pd.errors.ParserError, UnicodeDecodeError) as e:
        raise _file_error(subject, f"Could not read CSV: {e}")

    df.columns = [str(c).strip() for c in df.columns]
    df = df.fillna("")

    missing = [col for col in required if col not in df.columns]
    if missing:
        raise CsvValidationError(ValidationResult(
            subject=subject,
            issues=[ValidationIssue(
                field="header",
                issue_type="missing",
                message=f"Missing required columns: {', '.join(missing)}",
                severity="error",
            )],
        ))

    if max_rows is not None and len(df) > max_rows:
        raise _file_error(subject, f"Too many rows ({len(df)}); the limit is {max_rows}")

    return df


def parse_members_csv(
    data: bytes,
    group_id: str,
    validator: Optional[GroupValidator] = None,
    max_rows: Optional[int] = None,
) -> list[Member]:
    """
    Parse a members CSV into new Active members joining today.

    Raises:
        CsvValidationError: If the header or any row is invalid
    """
    validator = validator or GroupValidator()
    df = read_csv(data, "members_csv", MEMBER_REQUIRED_COLUMNS, max_rows)

    issues: list[ValidationIssue] = []
    members = []
    for row_number, record in enumerate(df.to_dict("records"), start=1):
        name = record["name"].strip()
        phone = record["phone"].strip()
        row_issues = validator.member_issues(name, phone, row=row_number)
        if row_issues:
            issues.extend(row_issues)
            continue
        try:
            members.append(Member(group_id=group_id, name=name, phone=phone))
        except ValidationError as e:
            issues.extend(_model_issues(e, row_number))

    if issues:
        raise CsvValidationError(ValidationResult(subject="members_csv", issues=issues))

    return members


def parse_transactions_csv(
    data: bytes,
    group_id: str,
    members: list[Member],
    validator: Optional[GroupValidator] = None,
    max_rows: Optional[int] = None,
) -> list[Transaction]:
    """
    Parse a transactions CSV.

    `memberName`, when present and non-empty, must match a member's
    name (case-insensitive); the transaction is linked to that member.

    Raises:
        CsvValidationError: If the header or any row is invalid
    """
    validator = validator or GroupValidator()
    df = read_csv(data, "transactions_csv", TRANSACTION_REQUIRED_COLUMNS, max_rows)
    by_name = {m.name.casefold(): m for m in members}
    has_member_column = TRANSACTION_MEMBER_COLUMN in df.columns

    issues: list[ValidationIssue] = []
    transactions = []
    for row_number, record in enumerate(df.to_dict("records"), start=1):
        raw_date = record["date"].strip()
        parsed_date = None
        if raw_date:
            try:
                parsed_date = date.fromisoformat(raw_date)
            except ValueError:
                pass

        description = record["description"].strip()
        transaction_type = record["type"].strip()
        category = record["category"].strip()
        row_issues = validator.transaction_issues(
            parsed_date,
            description,
            record["amount"],
            transaction_type,
            category,
            row=row_number,
        )
        if raw_date and parsed_date is None:
            row_issues = [i for i in row_issues if i.field != "date"]
            row_issues.append(ValidationIssue(
                field="date",
                issue_type="invalid_format",
                message=f"Date '{raw_date}' is not in YYYY-MM-DD format",
                severity="error",
                row=row_number,
            ))

        member = None
        member_name = record.get(TRANSACTION_MEMBER_COLUMN, "").strip() if has_member_column else ""
        if member_name:
            member = by_name.get(member_name.casefold())
            if member is None:
                row_issues.append(ValidationIssue(
                    field=TRANSACTION_MEMBER_COLUMN,
                    issue_type="unknown_member",
                    message=f"No member named '{member_name}'",
                    severity="error",
                    row=row_number,
                ))

        issues.extend(row_issues)
        if row_issues or parsed_date is None:
            continue

        try:
            transactions.append(Transaction(
                group_id=group_id,
                date=parsed_date,
                description=description,
                amount=parse_amount(record["amount"]),
                type=TransactionType(transaction_type),
                category=TransactionCategory(category),
                member_id=member.id if member else None,
                member_name=member.name if member else None,
            ))
        except ValidationError as e:
            issues.extend(_model_issues(e, row_number))

    if issues:
        raise CsvValidationError(ValidationResult(subject="transactions_csv", issues=issues))

    return transactions


def members_to_csv_bytes(members: list[Member]) -> bytes:
    df = pd.DataFrame(
        [
            {
                "name": m.name,
                "phone": m.phone,
                "join_date": m.join_date.isoformat(),
                "status": m.status.value,
            }
            for m in members
        ],
        columns=MEMBER_EXPORT_COLUMNS,
    )
    return df.to_csv(index=False).encode("utf-8")


def transactions_to_csv_bytes(transactions: list[Transaction]) -> bytes:
    df = pd.DataFrame(
        [
            {
                "date": t.date.isoformat(),
                "description": t.description,
                "amount": str(t.amount),
                "type": t.type.value,
                "category": t.category.value,
                TRANSACTION_MEMBER_COLUMN: t.member_name or "",
            }
            for t in transactions
        ],
        columns=TRANSACTION_EXPORT_COLUMNS,
    )
    return df.to_csv(index=False).encode("utf-8")


def members_template_csv() -> bytes:
    """Header-only members CSV for users to fill in."""
    return pd.DataFrame(columns=MEMBER_REQUIRED_COLUMNS).to_csv(index=False).encode("utf-8")
