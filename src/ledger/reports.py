"""
Ledger Reports

Deterministic aggregations over transactions. The assistant's narrative
reports are generated FROM these numbers; it never computes them itself.

Amounts are stored positive; `type` gives the direction, so net figures
are income minus expenses.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel

from src.agents.ai_agents import MemberReportInput, PolicyPaymentStatus, ReportTransaction
from src.ledger.reconciler import find_record, month_key
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


ZERO = Decimal("0")


class Overview(BaseModel):
    """Dashboard headline figures."""

    period_days: int
    income: Decimal
    expenses: Decimal
    net_change: Decimal
    total_balance: Decimal


class MonthlyTotals(BaseModel):
    month_key: str
    income: Decimal
    expenses: Decimal


def _sum(transactions: list[Transaction], transaction_type: TransactionType) -> Decimal:
    return sum((t.amount for t in transactions if t.type == transaction_type), ZERO)


def overview(
    transactions: list[Transaction],
    today: Optional[date] = None,
    period_days: int = 30,
) -> Overview:
    """Income and expenses for the recent period, plus the overall balance."""
    today = today or date.today()
    since = today - timedelta(days=period_days)
    recent = [t for t in transactions if t.date >= since]

    income = _sum(recent, TransactionType.INCOME)
    expenses = _sum(recent, TransactionType.EXPENSE)
    return Overview(
        period_days=period_days,
        income=income,
        expenses=expenses,
        net_change=income - expenses,
        total_balance=_sum(transactions, TransactionType.INCOME) - _sum(transactions, TransactionType.EXPENSE),
    )


def monthly_series(transactions: list[Transaction]) -> list[MonthlyTotals]:
    """Income and expenses per YYYY-MM, oldest month first."""
    totals: dict[str, dict[TransactionType, Decimal]] = {}
    for t in transactions:
        key = month_key(t.date.year, t.date.month)
        bucket = totals.setdefault(key, {TransactionType.INCOME: ZERO, TransactionType.EXPENSE: ZERO})
        bucket[t.type] += t.amount

    return [
        MonthlyTotals(
            month_key=key,
            income=bucket[TransactionType.INCOME],
            expenses=bucket[TransactionType.EXPENSE],
        )
        for key, bucket in sorted(totals.items())
    ]


def total_contributions(transactions: list[Transaction], member_id: UUID) -> Decimal:
    """Sum of a member's Contribution income."""
    return sum(
        (
            t.amount for t in transactions
            if t.member_id == member_id
            and t.type == TransactionType.INCOME
            and t.category == TransactionCategory.CONTRIBUTION
        ),
        ZERO,
    )


def outstanding_loans(loans: list[Loan]) -> Decimal:
    return sum((loan.balance for loan in loans if loan.status == LoanStatus.ACTIVE), ZERO)


# =============================================================================
# LISTS AND FILTERS
# =============================================================================

def filter_members(members: list[Member], text: str = "") -> list[Member]:
    """Members whose name contains `text`, alphabetically."""
    needle = text.strip().casefold()
    matches = [m for m in members if needle in m.name.casefold()]
    return sorted(matches, key=lambda m: m.name.casefold())


def filter_transactions(transactions: list[Transaction], text: str = "") -> list[Transaction]:
    """Transactions whose description, member name or category contains `text`."""
    needle = text.strip().casefold()
    if not needle:
        return list(transactions)
    return [
        t for t in transactions
        if needle in t.description.casefold()
        or (t.member_name and needle in t.member_name.casefold())
        or needle in t.category.value.casefold()
    ]


def filter_loans(loans: list[Loan], text: str = "") -> list[Loan]:
    """Loans whose member name contains `text`, newest issue date first."""
    needle = text.strip().casefold()
    matches = [loan for loan in loans if needle in loan.member_name.casefold()]
    return sorted(matches, key=lambda loan: loan.issue_date, reverse=True)


def payouts(transactions: list[Transaction]) -> list[Transaction]:
    """Payout expenses, newest first."""
    return sorted(
        (t for t in transactions if t.category == TransactionCategory.PAYOUT),
        key=lambda t: t.date,
        reverse=True,
    )


# =============================================================================
# ASSISTANT INPUTS
# =============================================================================

def member_report_input(
    member: Member,
    transactions: list[Transaction],
    policies: list[InsurancePolicy],
    records_by_policy: dict[UUID, list[InsurancePayment]],
    today: Optional[date] = None,
) -> MemberReportInput:
    """
    Collect a member's transactions and this month's premium status.

    A policy with no status for the current month reports Unpaid.
    """
    today = today or date.today()
    current = month_key(today.year, today.month)

    insurance = []
    for policy in policies:
        record = find_record(records_by_policy.get(policy.id, []), member.id)
        status = record.status_for(current) if record else None
        insurance.append(PolicyPaymentStatus(
            policy_name=policy.name,
            status=(status or PremiumStatus.UNPAID).value,
        ))

    return MemberReportInput(
        member_name=member.name,
        transactions=[
            ReportTransaction(
                date=t.date,
                description=t.description,
                amount=t.amount,
                type=t.type,
                category=t.category.value,
            )
            for t in transactions
            if t.member_id == member.id
        ],
        insurance_payments=insurance,
    )


def financial_report_text(
    transactions: list[Transaction],
    loans: list[Loan],
    currency: str = "KES",
    today: Optional[date] = None,
) -> str:
    """Plain-text financial report handed to the summary prompt."""
    summary = overview(transactions, today=today)
    lines = [
        f"Currency: {currency}",
        f"Overall balance: {summary.total_balance:,.2f}",
        f"Income (last {summary.period_days} days): {summary.income:,.2f}",
        f"Expenses (last {summary.period_days} days): {summary.expenses:,.2f}",
        f"Net change (last {summary.period_days} days): {summary.net_change:,.2f}",
        f"Outstanding loan balances: {outstanding_loans(loans):,.2f}",
        "",
        "Monthly totals:",
    ]
    for row in monthly_series(transactions):
        lines.append(f"- {row.month_key}: income {row.income:,.2f}, expenses {row.expenses:,.2f}")

    by_category: dict[str, Decimal] = {}
    for t in transactions:
        label = f"{t.type.value} / {t.category.value}"
        by_category[label] = by_category.get(label, ZERO) + t.amount
    if by_category:
        lines.append("")
        lines.append("Totals by category:")
        for label, amount in sorted(by_category.items()):
            lines.append(f"- {label}: {amount:,.2f}")

    return "\n".join(lines)
