"""Tests for CSV import and export."""

import io
from datetime import date
from decimal import Decimal

import pandas as pd
import pytest

from src.config import AppSettings
from src.models.group import Member, Transaction, TransactionCategory, TransactionType
from src.services import csv_io
from src.validation import CsvValidationError, GroupValidator


GROUP = "test-group"


@pytest.fixture
def validator():
    return GroupValidator(AppSettings())


@pytest.fixture
def members():
    return [
        Member(group_id=GROUP, name="Wanjiku Mwangi", phone="0712345678"),
        Member(group_id=GROUP, name="Otieno", phone="0722345678"),
    ]


class TestMembersCsv:
    """Tests for member imports."""

    def test_parses_valid_file(self, validator):
        data = b"name,phone,notes\nWanjiku, 0712345678 ,treasurer\nOtieno,+254 722 345 678,\n"

        parsed = csv_io.parse_members_csv(data, GROUP, validator)

        assert [m.name for m in parsed] == ["Wanjiku", "Otieno"]
        assert parsed[0].phone == "0712345678"
        assert all(m.group_id == GROUP and m.is_active for m in parsed)

    def test_header_whitespace_is_ignored(self, validator):
        parsed = csv_io.parse_members_csv(b" name , phone \nAkinyi,0712345678\n", GROUP, validator)
        assert parsed[0].name == "Akinyi"

    def test_missing_column_rejects_file(self, validator):
        with pytest.raises(CsvValidationError, match="Missing required columns: phone"):
            csv_io.parse_members_csv(b"name\nWanjiku\n", GROUP, validator)

    def test_one_bad_row_rejects_all(self, validator):
        data = b"name,phone\nWanjiku,0712345678\n,0722345678\nKamau,not-a-phone\n"

        with pytest.raises(CsvValidationError) as excinfo:
            csv_io.parse_members_csv(data, GROUP, validator)

        result = excinfo.value.result
        assert {issue.row for issue in result.issues} == {2, 3}
        assert "Row 2: Name is required" in result.error_messages()

    def test_overlong_phone_is_a_row_error(self, validator):
        data = b"name,phone\nA,0712345678\nB,+77777777777777777777\n"

        with pytest.raises(CsvValidationError) as excinfo:
            csv_io.parse_members_csv(data, GROUP, validator)

        [issue] = excinfo.value.result.issues
        assert (issue.row, issue.field) == (2, "phone")

    def test_record_the_model_rejects_is_a_row_error(self):
        class LenientValidator(GroupValidator):
            def member_issues(self, name, phone, status=None, row=None):
                return []

        data = b"name,phone\n" + b"N" * 121 + b",0712345678\n"

        with pytest.raises(CsvValidationError) as excinfo:
            csv_io.parse_members_csv(data, GROUP, LenientValidator(AppSettings()))

        [issue] = excinfo.value.result.issues
        assert (issue.row, issue.field) == (1, "name")

    def test_empty_file(self, validator):
        with pytest.raises(CsvValidationError, match="empty"):
            csv_io.parse_members_csv(b"", GROUP, validator)

    def test_row_limit(self, validator):
        data = b"name,phone\n" + b"A,0712345678\n" * 3
        with pytest.raises(CsvValidationError, match="Too many rows"):
            csv_io.parse_members_csv(data, GROUP, validator, max_rows=2)

    def test_template_has_header_only(self):
        assert csv_io.members_template_csv().decode("utf-8").strip() == "name,phone"


class TestTransactionsCsv:
    """Tests for transaction imports."""

    HEADER = b"date,description,amount,type,category,memberName\n"

    def test_parses_and_links_members(self, validator, members):
        data = self.HEADER + (
            b"2025-01-05,January contribution,5000,Income,Contribution,wanjiku mwangi\n"
            b"2025-01-06,Bank charges,35.50,Expense,Operational,\n"
        )

        parsed = csv_io.parse_transactions_csv(data, GROUP, members, validator)

        assert len(parsed) == 2
        assert parsed[0].member_id == members[0].id
        assert parsed[0].member_name == "Wanjiku Mwangi"
        assert parsed[0].date == date(2025, 1, 5)
        assert parsed[1].member_id is None
        assert parsed[1].amount == Decimal("35.50")
        assert parsed[1].category == TransactionCategory.OPERATIONAL

    def test_member_column_is_optional(self, validator, members):
        data = b"date,description,amount,type,category\n2025-01-05,Fees,100,Income,Late Fee\n"
        parsed = csv_io.parse_transactions_csv(data, GROUP, members, validator)
        assert parsed[0].member_id is None

    def test_unknown_member_rejects_file(self, validator, members):
        data = self.HEADER + b"2025-01-05,Contribution,5000,Income,Contribution,Nobody\n"
        with pytest.raises(CsvValidationError, match="No member named 'Nobody'"):
            csv_io.parse_transactions_csv(data, GROUP, members, validator)

    def test_bad_date_reports_format(self, validator, members):
        data = self.HEADER + b"05/01/2025,Contribution,5000,Income,Contribution,\n"

        with pytest.raises(CsvValidationError) as excinfo:
            csv_io.parse_transactions_csv(data, GROUP, members, validator)

        issues = excinfo.value.result.issues
        assert [(i.field, i.issue_type) for i in issues] == [("date", "invalid_format")]

    def test_overlong_description(self, validator, members):
        data = self.HEADER + b"2025-01-05," + b"d" * 301 + b",5000,Income,Contribution,\n"

        with pytest.raises(CsvValidationError) as excinfo:
            csv_io.parse_transactions_csv(data, GROUP, members, validator)

        assert [i.field for i in excinfo.value.result.issues] == ["description"]

    def test_every_bad_row_is_reported(self, validator, members):
        data = self.HEADER + (
            b"2025-01-05,,5000,Income,Contribution,\n"
            b"2025-01-06,Fees,-3,Income,Contribution,\n"
            b"2025-01-07,Fees,3,Refund,Contribution,\n"
        )
        with pytest.raises(CsvValidationError) as excinfo:
            csv_io.parse_transactions_csv(data, GROUP, members, validator)

        result = excinfo.value.result
        assert [(i.row, i.field) for i in result.issues] == [
            (1, "description"),
            (2, "amount"),
            (3, "type"),
        ]


class TestExport:

    def test_transactions_export_reimports(self, validator, members):
        transactions = [
            Transaction(
                group_id=GROUP,
                date=date(2025, 2, 1),
                description="February contribution",
                amount=Decimal("5000.00"),
                type=TransactionType.INCOME,
                category=TransactionCategory.CONTRIBUTION,
                member_id=members[1].id,
                member_name=members[1].name,
            ),
        ]

        exported = csv_io.transactions_to_csv_bytes(transactions)
        df = pd.read_csv(io.BytesIO(exported), dtype=str, keep_default_na=False)
        assert list(df.columns) == ["date", "description", "amount", "type", "category", "memberName"]

        reimported = csv_io.parse_transactions_csv(exported, GROUP, members, validator)
        assert reimported[0].member_id == members[1].id
        assert reimported[0].amount == Decimal("5000.00")

    def test_members_export(self, members):
        df = pd.read_csv(io.BytesIO(csv_io.members_to_csv_bytes(members)), dtype=str)
        assert list(df.columns) == ["name", "phone", "join_date", "status"]
        assert df["phone"].tolist() == ["0712345678", "0722345678"]
        assert df["status"].tolist() == ["Active", "Active"]
