"""
Premium Ledger Reconciler

Pure functions over a snapshot of members and one policy's payment
records. Nothing here reads or writes storage; write operations are
returned as plans for the caller to submit.

RULES:
- Only the current Active roster counts toward monthly totals.
  Records of members who are no longer Active are ignored.
- A month with no key in a record is absent, not Unpaid.
- Waived months are excluded from both sides of a completion ratio,
  and "mark month as paid" never overwrites them.
- Every write touches exactly one month key of one record.
"""

from decimal import Decimal
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from src.models.group import (
    MONTH_KEY_PATTERN,
    InsurancePayment,
    Member,
    PremiumStatus,
)


def month_key(year: int, month: int) -> str:
    """
    Format a calendar month as a payment-map key.

    Raises:
        ValueError: If month is not 1-12
    """
    if not 1 <= month <= 12:
        raise ValueError(f"Month must be 1-12, got {month}")
    return f"{year:04d}-{month:02d}"


def parse_month_key(key: str) -> tuple[int, int]:
    """
    Split a YYYY-MM key into (year, month).

    Raises:
        ValueError: If the key is malformed
    """
    if not isinstance(key, str) or not MONTH_KEY_PATTERN.match(key):
        raise ValueError(f"Invalid month key: {key!r} (expected YYYY-MM)")
    year, month = key.split("-")
    return int(year), int(month)


def year_month_keys(year: int) -> list[str]:
    return [month_key(year, month) for month in range(1, 13)]


def find_record(records: list[InsurancePayment], member_id: UUID) -> Optional[InsurancePayment]:
    """The member's payment record; the first one wins if there are several."""
    for record in records:
        if record.member_id == member_id:
            return record
    return None


# =============================================================================
# RESULTS
# =============================================================================

class MonthlyStats(BaseModel):
    """Collection totals for one policy and month."""

    month_key: str
    active_members: int = Field(..., ge=0)
    paid_members: int = Field(..., ge=0)
    total_possible: Decimal
    collected: Decimal
    outstanding: Decimal


class AnnualProgress(BaseModel):
    """Paid months against payable (non-Waived) months for one year."""

    paid: int = Field(..., ge=0)
    payable: int = Field(..., ge=0, le=12)

    @property
    def denominator(self) -> int:
        return self.payable or 1

    @property
    def display(self) -> str:
        return f"{self.paid}/{self.denominator}"

    @property
    def percent(self) -> float:
        return self.paid / self.denominator * 100


class PaymentWrite(BaseModel):
    """
    One planned write to a policy's payment records.

    A patch sets `month_key` on the existing record `record_id`.
    A create makes a new record for the member holding only `month_key`.
    """

    kind: Literal["patch", "create"]
    member_id: UUID
    month_key: str
    status: PremiumStatus
    record_id: Optional[UUID] = None

    def to_record(self, group_id: str, policy_id: UUID) -> InsurancePayment:
        """The record a create writes."""
        return InsurancePayment(
            group_id=group_id,
            policy_id=policy_id,
            member_id=self.member_id,
            payments={self.month_key: self.status},
        )


# =============================================================================
# READS
# =============================================================================

def reconcile_month(
    members: list[Member],
    monthly_premium: Decimal,
    records: list[InsurancePayment],
    year: int,
    month: int,
) -> MonthlyStats:
    """
    Compute total possible, collected and outstanding for one month.

    total_possible = active members x premium
    collected      = premium x active members whose month is Paid
    outstanding    = total_possible - collected
    """
    key = month_key(year, month)
    premium = Decimal(monthly_premium)
    active = [m for m in members if m.is_active]

    paid = 0
    for member in active:
        record = find_record(records, member.id)
        if record is not None and record.status_for(key) == PremiumStatus.PAID:
            paid += 1

    total_possible = premium * len(active)
    collected = premium * paid
    return MonthlyStats(
        month_key=key,
        active_members=len(active),
        paid_members=paid,
        total_possible=total_possible,
        collected=collected,
        outstanding=total_possible - collected,
    )


def annual_progress(record: Optional[InsurancePayment], year: int) -> AnnualProgress:
    """
    Count Paid months against payable months in a year.

    Absent months are payable; Waived months are not.
    """
    paid = 0
    payable = 0
    for key in year_month_keys(year):
        status = record.status_for(key) if record else None
        if status == PremiumStatus.WAIVED:
            continue
        payable += 1
        if status == PremiumStatus.PAID:
            paid += 1
    return AnnualProgress(paid=paid, payable=payable)


def status_grid(record: Optional[InsurancePayment], year: int) -> dict[str, Optional[PremiumStatus]]:
    """The 12 month keys of `year` with their status, None where absent."""
    return {
        key: (record.status_for(key) if record else None)
        for key in year_month_keys(year)
    }


# =============================================================================
# WRITE PLANS
# =============================================================================

def plan_month_toggle(
    member_id: UUID,
    records: list[InsurancePayment],
    month_key: str,
    paid: bool,
) -> PaymentWrite:
    """
    Plan the single write for ticking or unticking one status cell.

    Checked means Paid, unchecked means Unpaid.
    """
    parse_month_key(month_key)
    status = PremiumStatus.PAID if paid else PremiumStatus.UNPAID
    record = find_record(records, member_id)
    if record is None:
        return PaymentWrite(
            kind="create",
            member_id=member_id,
            month_key=month_key,
            status=status,
        )
    return PaymentWrite(
        kind="patch",
        member_id=member_id,
        month_key=month_key,
        status=status,
        record_id=record.id,
    )


def plan_mark_month_paid(
    members: list[Member],
    records: list[InsurancePayment],
    month_key: str,
) -> list[PaymentWrite]:
    """
    Plan "mark month as paid" for every Active member.

    Members whose month is Waived get no write at all.
    """
    parse_month_key(month_key)
    writes = []
    for member in members:
        if not member.is_active:
            continue
        record = find_record(records, member.id)
        if record is None:
            writes.append(PaymentWrite(
                kind="create",
                member_id=member.id,
                month_key=month_key,
                status=PremiumStatus.PAID,
            ))
        elif record.status_for(month_key) != PremiumStatus.WAIVED:
            writes.append(PaymentWrite(
                kind="patch",
                member_id=member.id,
                month_key=month_key,
                status=PremiumStatus.PAID,
                record_id=record.id,
            ))
    return writes
