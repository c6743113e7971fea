"""Tests for ledger reports and list filters."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

from src.ledger import reports
from src.models.group import (
    InsurancePayment,
    InsurancePolicy,
    Loan,
    LoanStatus,
    Member,
    PremiumStatus,
    Transaction,
    TransactionCategory,
    TransactionType,
)


GROUP = "test-group"
TODAY = date(2025, 6, 30)


def txn(day, amount, kind=TransactionType.INCOME, category=TransactionCategory.CONTRIBUTION,
        description="Entry", member=None):
    return Transaction(
        group_id=GROUP,
        date=day,
        description=description,
        amount=Decimal(amount),
        type=kind,
        category=category,
        member_id=member.id if member else None,
        member_name=member.name if member else None,
    )


def loan(name, issued, balance="100", status=LoanStatus.ACTIVE):
    return Loan(
        group_id=GROUP,
        member_id=uuid4(),
        member_name=name,
        principal=Decimal("100"),
        balance=Decimal(balance),
        issue_date=issued,
        status=status,
        reason="Stock",
    )


class TestOverview:
    """Tests for the dashboard headline figures."""

    def test_recent_period_and_overall_balance(self):
        transactions = [
            txn(date(2025, 6, 20), "5000"),
            txn(date(2025, 6, 10), "1200", TransactionType.EXPENSE, TransactionCategory.OPERATIONAL),
            txn(date(2025, 3, 1), "10000"),
            txn(date(2025, 2, 1), "3000", TransactionType.EXPENSE, TransactionCategory.PROJECT),
        ]

        summary = reports.overview(transactions, today=TODAY)

        assert summary.period_days == 30
        assert summary.income == Decimal("5000")
        assert summary.expenses == Decimal("1200")
        assert summary.net_change == Decimal("3800")
        assert summary.total_balance == Decimal("10800")

    def test_empty_ledger(self):
        summary = reports.overview([], today=TODAY)
        assert summary.total_balance == Decimal("0")
        assert summary.net_change == Decimal("0")

    def test_monthly_series_oldest_first(self):
        transactions = [
            txn(date(2025, 6, 1), "100"),
            txn(date(2025, 5, 3), "40", TransactionType.EXPENSE, TransactionCategory.OPERATIONAL),
            txn(date(2025, 5, 1), "60"),
        ]
        series = reports.monthly_series(transactions)
        assert [row.month_key for row in series] == ["2025-05", "2025-06"]
        assert series[0].income == Decimal("60")
        assert series[0].expenses == Decimal("40")

    def test_total_contributions_counts_contribution_income_only(self):
        wanjiku = Member(group_id=GROUP, name="Wanjiku", phone="0712345678")
        transactions = [
            txn(TODAY, "5000", member=wanjiku),
            txn(TODAY, "5000", member=wanjiku),
            txn(TODAY, "200", category=TransactionCategory.LATE_FEE, member=wanjiku),
            txn(TODAY, "5000"),
        ]
        assert reports.total_contributions(transactions, wanjiku.id) == Decimal("10000")

    def test_outstanding_loans_ignores_paid_off(self):
        loans = [
            loan("A", TODAY, "300"),
            loan("B", TODAY, "0", LoanStatus.PAID_OFF),
            loan("C", TODAY, "150"),
        ]
        assert reports.outstanding_loans(loans) == Decimal("450")


class TestFilters:
    """Tests for list searches."""

    def test_filter_members_by_name_sorted(self):
        members = [
            Member(group_id=GROUP, name=name, phone="0712345678")
            for name in ["Otieno", "akinyi", "Kamau", "Achieng"]
        ]
        assert [m.name for m in reports.filter_members(members)] == [
            "Achieng", "akinyi", "Kamau", "Otieno",
        ]
        assert [m.name for m in reports.filter_members(members, "A")] == [
            "Achieng", "akinyi", "Kamau",
        ]

    def test_filter_transactions_matches_description_member_or_category(self):
        kamau = Member(group_id=GROUP, name="Kamau", phone="0712345678")
        transactions = [
            txn(TODAY, "10", description="Tent hire", category=TransactionCategory.SOCIAL_FUND),
            txn(TODAY, "20", description="Monthly", member=kamau),
            txn(TODAY, "30", description="Bank charges", category=TransactionCategory.OPERATIONAL),
        ]
        assert len(reports.filter_transactions(transactions, "tent")) == 1
        assert len(reports.filter_transactions(transactions, "kamau")) == 1
        assert len(reports.filter_transactions(transactions, "social")) == 1
        assert len(reports.filter_transactions(transactions, "")) == 3

    def test_filter_loans_newest_first(self):
        loans = [
            loan("Kamau", date(2025, 1, 1)),
            loan("Wanjiku", date(2025, 3, 1)),
            loan("Kamau Jr", date(2025, 2, 1)),
        ]
        result = reports.filter_loans(loans, "kamau")
        assert [l.member_name for l in result] == ["Kamau Jr", "Kamau"]

    def test_payouts_newest_first(self):
        transactions = [
            txn(date(2025, 1, 1), "100", TransactionType.EXPENSE, TransactionCategory.PAYOUT),
            txn(date(2025, 2, 1), "100"),
            txn(date(2025, 3, 1), "100", TransactionType.EXPENSE, TransactionCategory.PAYOUT),
        ]
        result = reports.payouts(transactions)
        assert [t.date for t in result] == [date(2025, 3, 1), date(2025, 1, 1)]


class TestAssistantInputs:
    """Tests for the figures handed to the assistant."""

    def test_member_report_input_defaults_to_unpaid(self):
        member = Member(group_id=GROUP, name="Wanjiku", phone="0712345678")
        nhif = InsurancePolicy(group_id=GROUP, name="NHIF", monthly_premium=Decimal("500"))
        private = InsurancePolicy(group_id=GROUP, name="Private Cover", monthly_premium=Decimal("2000"))
        records = {
            nhif.id: [InsurancePayment(
                group_id=GROUP,
                policy_id=nhif.id,
                member_id=member.id,
                payments={"2025-06": PremiumStatus.PAID},
            )],
        }
        transactions = [
            txn(TODAY, "5000", member=member),
            txn(TODAY, "9000"),
        ]

        report_input = reports.member_report_input(
            member, transactions, [nhif, private], records, today=TODAY
        )

        assert report_input.member_name == "Wanjiku"
        assert len(report_input.transactions) == 1
        statuses = {p.policy_name: p.status for p in report_input.insurance_payments}
        assert statuses == {"NHIF": "Paid", "Private Cover": "Unpaid"}

    def test_financial_report_text(self):
        transactions = [
            txn(date(2025, 6, 1), "5000"),
            txn(date(2025, 6, 2), "1000", TransactionType.EXPENSE, TransactionCategory.OPERATIONAL),
        ]
        text = reports.financial_report_text(transactions, [loan("A", TODAY, "250")], today=TODAY)

        assert "Currency: KES" in text
        assert "Overall balance: 4,000.00" in text
        assert "Outstanding loan balances: 250.00" in text
        assert "- 2025-06: income 5,000.00, expenses 1,000.00" in text
        assert "- Expense / Operational: 1,000.00" in text
